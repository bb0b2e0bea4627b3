"""Presentation lookup for escrow stages, kept apart from the state machine."""

from dataclasses import dataclass

from group_orders.escrow.ledger import EscrowStage


@dataclass(frozen=True)
class StageDisplay:
    label: str
    description: str
    color: str


STAGE_DISPLAY = {
    EscrowStage.DEPOSIT: StageDisplay(
        label="Deposit (25%)",
        description="Deposit secures the tailor's time and materials",
        color="yellow",
    ),
    EscrowStage.FITTING: StageDisplay(
        label="Fitting (50%)",
        description="Paid once the fitting is approved",
        color="blue",
    ),
    EscrowStage.FINAL: StageDisplay(
        label="Final (25%)",
        description="Paid on delivery of the finished garment",
        color="purple",
    ),
    EscrowStage.RELEASED: StageDisplay(
        label="Released",
        description="All funds released to the tailor",
        color="green",
    ),
}


def display_for(stage: EscrowStage | str) -> StageDisplay:
    return STAGE_DISPLAY[EscrowStage(stage)]
