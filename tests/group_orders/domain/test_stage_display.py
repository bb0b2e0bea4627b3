"""Tests for the escrow stage display lookup."""

import pytest
from group_orders.escrow.display import STAGE_DISPLAY, display_for
from group_orders.escrow.ledger import EscrowStage


class TestStageDisplay:
    def test_every_stage_has_a_display(self):
        assert set(STAGE_DISPLAY) == set(EscrowStage)

    @pytest.mark.parametrize(
        "stage,label,color",
        [
            ("DEPOSIT", "Deposit (25%)", "yellow"),
            ("FITTING", "Fitting (50%)", "blue"),
            ("FINAL", "Final (25%)", "purple"),
            ("RELEASED", "Released", "green"),
        ],
    )
    def test_labels_and_colors(self, stage, label, color):
        display = display_for(stage)
        assert display.label == label
        assert display.color == color

    def test_accepts_enum_members(self):
        assert display_for(EscrowStage.FITTING) is STAGE_DISPLAY[EscrowStage.FITTING]

    def test_unknown_stage(self):
        with pytest.raises(ValueError):
            display_for("LAYAWAY")
