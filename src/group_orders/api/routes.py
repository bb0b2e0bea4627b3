"""FastAPI routes for the Group Orders domain.

Every mutation returns the fresh group order snapshot.
"""

from fastapi import APIRouter, HTTPException

from group_orders.api.schemas import (
    AddItemRequest,
    AdvanceStageRequest,
    AssignPayerRequest,
    CancelRequest,
    ConfigureGatewayRequest,
    CreateGroupOrderRequest,
    DiscountResponse,
    DiscrepancyResponse,
    DisputeRequest,
    GatewayConfigResponse,
    GroupOrderResponse,
    ItemResponse,
    LedgerResponse,
    MarkDeliveredRequest,
    PayerSummaryResponse,
    PaymentSummaryResponse,
    PayRequest,
    ProposeDefaultScheduleRequest,
    ProposeScheduleRequest,
    RecordPaymentRequest,
    RequiredAmountResponse,
    ScheduleResponse,
    UpdateItemStatusRequest,
)
from group_orders.config import settings
from group_orders.gateway import get_gateway
from group_orders.gateway.fake_adapter import FakeGateway
from group_orders.service import GroupOrderAggregateService, GroupOrderSnapshot

service = GroupOrderAggregateService()


def _money_map(values: dict) -> dict[str, str]:
    return {key: str(value) for key, value in values.items()}


def _payer_response(payer) -> PayerSummaryResponse:
    return PayerSummaryResponse(
        payer_id=payer.payer_id,
        payer_name=payer.payer_name,
        item_ids=list(payer.item_ids),
        total_responsible=str(payer.total_responsible),
        paid=str(payer.paid),
        outstanding=str(payer.outstanding),
        status=payer.status.value,
        paid_by_stage=_money_map(payer.paid_by_stage),
    )


def to_response(snapshot: GroupOrderSnapshot) -> GroupOrderResponse:
    items = []
    for item in snapshot.items:
        ledger = None
        if item.ledger is not None:
            ledger = LedgerResponse(
                ledger_id=item.ledger.ledger_id,
                stage=item.ledger.stage,
                stage_label=item.ledger.stage_label,
                stage_color=item.ledger.stage_color,
                total_payable=str(item.ledger.total_payable),
                total_paid=str(item.ledger.total_paid),
                outstanding=str(item.ledger.outstanding),
                progress_percentage=str(item.ledger.progress_percentage),
                disputed=item.ledger.disputed,
                disputed_by=item.ledger.disputed_by,
                paid_by_stage=_money_map(item.ledger.paid_by_stage),
            )
        items.append(
            ItemResponse(
                item_id=item.item_id,
                garment_type=item.garment_type,
                family_member_name=item.family_member_name,
                base_amount=str(item.base_amount),
                discount_amount=str(item.discount_amount),
                final_amount=str(item.final_amount),
                delivery_priority=item.delivery_priority,
                status=item.status,
                estimated_delivery=item.estimated_delivery,
                actual_delivery=item.actual_delivery,
                ledger=ledger,
            )
        )

    payment = snapshot.payment
    return GroupOrderResponse(
        group_order_id=snapshot.group_order_id,
        group_order_number=snapshot.group_order_number,
        group_name=snapshot.group_name,
        organizer_id=snapshot.organizer_id,
        event_type=snapshot.event_type,
        event_date=snapshot.event_date,
        payment_mode=snapshot.payment_mode,
        delivery_strategy=snapshot.delivery_strategy,
        status=snapshot.status,
        payment_due_date=snapshot.payment_due_date,
        revision=snapshot.revision,
        items=items,
        discount=DiscountResponse.from_result(snapshot.discount),
        estimated_discount=DiscountResponse.from_result(snapshot.estimated_discount),
        payment=PaymentSummaryResponse(
            total_payable=str(payment.total_payable),
            total_paid=str(payment.total_paid),
            outstanding=str(payment.outstanding),
            progress_percentage=str(payment.progress_percentage),
            ledger_count=payment.ledger_count,
            released_count=payment.released_count,
            paid_by_stage=_money_map(payment.paid_by_stage),
        ),
        payers=[_payer_response(payer) for payer in snapshot.payers],
        schedules=[
            ScheduleResponse(
                schedule_id=schedule.schedule_id,
                scheduled_date=schedule.scheduled_date,
                status=schedule.status,
                item_ids=list(schedule.item_ids),
                delivered_item_ids=list(schedule.delivered_item_ids),
                notes=schedule.notes,
                actual_delivery_date=schedule.actual_delivery_date,
                failure_reason=schedule.failure_reason,
            )
            for schedule in snapshot.schedules
        ],
        progress=snapshot.progress,
    )


# ---------------------------------------------------------------------------
# Group Order Router
# ---------------------------------------------------------------------------
group_order_router = APIRouter(prefix="/group-orders", tags=["group-orders"])


@group_order_router.post("", status_code=201, response_model=GroupOrderResponse)
async def create_group_order(body: CreateGroupOrderRequest) -> GroupOrderResponse:
    """Start a draft group order."""
    return to_response(service.create_group_order(**body.model_dump()))


@group_order_router.get("/{group_order_id}", response_model=GroupOrderResponse)
async def get_group_order(group_order_id: str) -> GroupOrderResponse:
    return to_response(service.snapshot(group_order_id))


@group_order_router.post("/{group_order_id}/items", status_code=201, response_model=GroupOrderResponse)
async def add_item(group_order_id: str, body: AddItemRequest) -> GroupOrderResponse:
    return to_response(service.add_item(group_order_id, **body.model_dump()))


@group_order_router.put("/{group_order_id}/payers", response_model=GroupOrderResponse)
async def assign_payer(group_order_id: str, body: AssignPayerRequest) -> GroupOrderResponse:
    """Assign items to a payer (split-payment groups)."""
    return to_response(service.assign_payer(group_order_id, body.payer_id, body.payer_name, body.item_ids))


@group_order_router.put("/{group_order_id}/confirm", response_model=GroupOrderResponse)
async def confirm_group_order(group_order_id: str) -> GroupOrderResponse:
    """Price the items with the bulk discount and open their escrow ledgers."""
    return to_response(service.confirm(group_order_id))


@group_order_router.put("/{group_order_id}/cancel", response_model=GroupOrderResponse)
async def cancel_group_order(group_order_id: str, body: CancelRequest) -> GroupOrderResponse:
    return to_response(service.cancel_group_order(group_order_id, body.reason))


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------
@group_order_router.get("/{group_order_id}/required-amount", response_model=RequiredAmountResponse)
async def required_amount(group_order_id: str, stage: str, item_ids: str) -> RequiredAmountResponse:
    """Exact amount due at ``stage`` for a comma-separated list of item ids."""
    ids = [item_id for item_id in item_ids.split(",") if item_id]
    amount = service.required_amount(group_order_id, ids, stage)
    return RequiredAmountResponse(stage=stage, item_ids=ids, amount=str(amount))


@group_order_router.post("/{group_order_id}/payments", response_model=GroupOrderResponse)
async def record_payment(group_order_id: str, body: RecordPaymentRequest) -> GroupOrderResponse:
    """Record a payment already collected outside the gateway."""
    return to_response(
        service.record_payment(
            group_order_id,
            body.item_ids,
            body.amount,
            body.stage,
            payer_id=body.payer_id,
            reference=body.reference,
        )
    )


@group_order_router.post("/{group_order_id}/pay", response_model=GroupOrderResponse)
async def pay(group_order_id: str, body: PayRequest) -> GroupOrderResponse:
    """Charge the payer through the payment gateway and credit the ledgers."""
    return to_response(
        service.pay(
            group_order_id,
            body.item_ids,
            body.stage,
            payer_id=body.payer_id,
            method=body.method,
            amount=body.amount,
        )
    )


@group_order_router.get("/{group_order_id}/payers/{payer_id}", response_model=PayerSummaryResponse)
async def get_payer_summary(group_order_id: str, payer_id: str) -> PayerSummaryResponse:
    return _payer_response(service.payer_summary(group_order_id, payer_id))


@group_order_router.get("/{group_order_id}/discrepancies", response_model=list[DiscrepancyResponse])
async def get_discrepancies(group_order_id: str) -> list[DiscrepancyResponse]:
    """Escrow reconciliation report for the group's ledgers."""
    return [
        DiscrepancyResponse(
            ledger_id=found.ledger_id,
            order_item_id=found.order_item_id,
            errors=list(found.errors),
            severity=found.severity,
        )
        for found in service.discrepancies(group_order_id)
    ]


# ---------------------------------------------------------------------------
# Escrow stages and disputes
# ---------------------------------------------------------------------------
@group_order_router.put("/{group_order_id}/items/{item_id}/advance", response_model=GroupOrderResponse)
async def advance_stage(group_order_id: str, item_id: str, body: AdvanceStageRequest) -> GroupOrderResponse:
    return to_response(service.advance_stage(group_order_id, item_id, body.actor))


@group_order_router.put("/{group_order_id}/items/{item_id}/dispute", response_model=GroupOrderResponse)
async def flag_dispute(group_order_id: str, item_id: str, body: DisputeRequest) -> GroupOrderResponse:
    return to_response(service.flag_dispute(group_order_id, item_id, body.actor, body.reason))


@group_order_router.put("/{group_order_id}/items/{item_id}/dispute/clear", response_model=GroupOrderResponse)
async def clear_dispute(group_order_id: str, item_id: str, body: DisputeRequest) -> GroupOrderResponse:
    return to_response(service.clear_dispute(group_order_id, item_id, body.actor))


# ---------------------------------------------------------------------------
# Item lifecycle
# ---------------------------------------------------------------------------
@group_order_router.put("/{group_order_id}/items/{item_id}/status", response_model=GroupOrderResponse)
async def update_item_status(group_order_id: str, item_id: str, body: UpdateItemStatusRequest) -> GroupOrderResponse:
    return to_response(service.update_item_status(group_order_id, item_id, body.status, body.reason))


@group_order_router.put("/{group_order_id}/items/{item_id}/cancel", response_model=GroupOrderResponse)
async def cancel_item(group_order_id: str, item_id: str, body: CancelRequest) -> GroupOrderResponse:
    return to_response(service.cancel_item(group_order_id, item_id, body.reason))


# ---------------------------------------------------------------------------
# Delivery schedules
# ---------------------------------------------------------------------------
@group_order_router.post("/{group_order_id}/schedules", status_code=201, response_model=GroupOrderResponse)
async def propose_schedule(group_order_id: str, body: ProposeScheduleRequest) -> GroupOrderResponse:
    return to_response(service.propose_schedule(group_order_id, body.item_ids, body.scheduled_date, body.notes))


@group_order_router.post("/{group_order_id}/schedules/default", status_code=201, response_model=GroupOrderResponse)
async def propose_default_schedule(group_order_id: str, body: ProposeDefaultScheduleRequest) -> GroupOrderResponse:
    """Propose a schedule following the group's delivery strategy."""
    return to_response(service.propose_default_schedule(group_order_id, body.scheduled_date, body.notes))


@group_order_router.put("/{group_order_id}/schedules/{schedule_id}/ready", response_model=GroupOrderResponse)
async def mark_schedule_ready(group_order_id: str, schedule_id: str) -> GroupOrderResponse:
    return to_response(service.mark_schedule_ready(group_order_id, schedule_id))


@group_order_router.put("/{group_order_id}/schedules/{schedule_id}/dispatch", response_model=GroupOrderResponse)
async def dispatch_schedule(group_order_id: str, schedule_id: str) -> GroupOrderResponse:
    return to_response(service.dispatch_schedule(group_order_id, schedule_id))


@group_order_router.put("/{group_order_id}/schedules/{schedule_id}/fail", response_model=GroupOrderResponse)
async def mark_schedule_failed(group_order_id: str, schedule_id: str, body: CancelRequest) -> GroupOrderResponse:
    return to_response(service.mark_schedule_failed(group_order_id, schedule_id, body.reason))


@group_order_router.put("/{group_order_id}/schedules/{schedule_id}/deliver", response_model=GroupOrderResponse)
async def mark_schedule_delivered(
    group_order_id: str,
    schedule_id: str,
    body: MarkDeliveredRequest,
) -> GroupOrderResponse:
    return to_response(service.mark_schedule_delivered(group_order_id, schedule_id, body.actual_delivery))


# ---------------------------------------------------------------------------
# Gateway configuration (non-production only)
# ---------------------------------------------------------------------------
@group_order_router.post("/gateway/configure", response_model=GatewayConfigResponse)
async def configure_gateway(body: ConfigureGatewayRequest) -> GatewayConfigResponse:
    """Configure the FakeGateway behavior (non-production only)."""
    if settings.is_production:
        raise HTTPException(status_code=403, detail="Gateway configuration not available in production")

    gateway = get_gateway()
    if not isinstance(gateway, FakeGateway):
        raise HTTPException(status_code=400, detail="Gateway configuration only available for FakeGateway")

    gateway.configure(
        should_succeed=body.should_succeed,
        failure_reason=body.failure_reason,
    )
    return GatewayConfigResponse(
        gateway=type(gateway).__name__,
        should_succeed=gateway.should_succeed,
        failure_reason=gateway.failure_reason,
    )
