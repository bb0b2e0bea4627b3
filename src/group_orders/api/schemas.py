"""Pydantic API schemas for the Group Orders domain.

These are the external API contracts, separate from the domain snapshot.
Money goes out as 2-place decimal strings.
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from group_orders.discount.engine import BulkDiscountResult


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------
class CreateGroupOrderRequest(BaseModel):
    group_name: str
    organizer_id: str
    payment_mode: str = "SINGLE_PAYER"
    delivery_strategy: str = "ALL_TOGETHER"
    event_type: str | None = None
    event_date: datetime | None = None
    payment_due_date: datetime | None = None
    coordination_notes: str | None = None


class AddItemRequest(BaseModel):
    garment_type: str
    base_amount: Decimal
    delivery_priority: int | None = None
    family_member_name: str | None = None
    estimated_delivery: datetime | None = None


class AssignPayerRequest(BaseModel):
    payer_id: str
    payer_name: str
    item_ids: list[str]


class CancelRequest(BaseModel):
    reason: str


class RecordPaymentRequest(BaseModel):
    item_ids: list[str]
    amount: Decimal
    stage: str
    payer_id: str | None = None
    reference: str | None = None


class PayRequest(BaseModel):
    item_ids: list[str]
    stage: str
    payer_id: str
    method: str = "MTN_MOMO"
    amount: Decimal | None = None


class AdvanceStageRequest(BaseModel):
    actor: str = "system"


class DisputeRequest(BaseModel):
    actor: str
    reason: str | None = None


class UpdateItemStatusRequest(BaseModel):
    status: str
    reason: str | None = None


class ProposeScheduleRequest(BaseModel):
    item_ids: list[str]
    scheduled_date: datetime
    notes: str | None = None


class ProposeDefaultScheduleRequest(BaseModel):
    scheduled_date: datetime
    notes: str | None = None


class MarkDeliveredRequest(BaseModel):
    actual_delivery: dict[str, datetime] | None = None


class ConfigureGatewayRequest(BaseModel):
    should_succeed: bool = True
    failure_reason: str = "Insufficient funds"


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------
class LedgerResponse(BaseModel):
    ledger_id: str
    stage: str
    stage_label: str
    stage_color: str
    total_payable: str
    total_paid: str
    outstanding: str
    progress_percentage: str
    disputed: bool
    disputed_by: str | None = None
    paid_by_stage: dict[str, str]


class ItemResponse(BaseModel):
    item_id: str
    garment_type: str
    family_member_name: str | None = None
    base_amount: str
    discount_amount: str
    final_amount: str
    delivery_priority: int
    status: str
    estimated_delivery: datetime | None = None
    actual_delivery: datetime | None = None
    ledger: LedgerResponse | None = None


class ItemDiscountResponse(BaseModel):
    index: int
    original_amount: str
    discount: str
    final_amount: str


class DiscountResponse(BaseModel):
    tier: str
    discount_percentage: int
    original_total: str
    discounted_total: str
    savings: str
    estimated: bool
    items: list[ItemDiscountResponse] = Field(default_factory=list)

    @classmethod
    def from_result(cls, result: BulkDiscountResult) -> "DiscountResponse":
        return cls(**result.to_dict())


class PaymentSummaryResponse(BaseModel):
    total_payable: str
    total_paid: str
    outstanding: str
    progress_percentage: str
    ledger_count: int
    released_count: int
    paid_by_stage: dict[str, str]


class PayerSummaryResponse(BaseModel):
    payer_id: str
    payer_name: str
    item_ids: list[str]
    total_responsible: str
    paid: str
    outstanding: str
    status: str
    paid_by_stage: dict[str, str]


class ScheduleResponse(BaseModel):
    schedule_id: str
    scheduled_date: datetime
    status: str
    item_ids: list[str]
    delivered_item_ids: list[str]
    notes: str | None = None
    actual_delivery_date: datetime | None = None
    failure_reason: str | None = None


class GroupOrderResponse(BaseModel):
    group_order_id: str
    group_order_number: str
    group_name: str
    organizer_id: str
    event_type: str | None = None
    event_date: datetime | None = None
    payment_mode: str
    delivery_strategy: str
    status: str
    payment_due_date: datetime | None = None
    revision: int
    items: list[ItemResponse]
    discount: DiscountResponse
    estimated_discount: DiscountResponse
    payment: PaymentSummaryResponse
    payers: list[PayerSummaryResponse]
    schedules: list[ScheduleResponse]
    progress: dict[str, int]


class RequiredAmountResponse(BaseModel):
    stage: str
    item_ids: list[str]
    amount: str


class DiscrepancyResponse(BaseModel):
    ledger_id: str
    order_item_id: str
    errors: list[str]
    severity: str


class GatewayConfigResponse(BaseModel):
    gateway: str
    should_succeed: bool
    failure_reason: str
