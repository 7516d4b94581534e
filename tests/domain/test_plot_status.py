"""
Tests for the plot status state machine.

Covers:
- Business-path moves are accepted without flags
- Off-path moves are rejected unless manual, and flagged when manual
- Sold is not terminal for a manual edit
- Status parsing of client strings
"""

import pytest

from colony_kernel.domain.plot_status import (
    BUSINESS_TRANSITIONS,
    PlotStatus,
    StatusChange,
    TransitionRejected,
    parse_status,
    plan_transition,
)
from colony_kernel.exceptions import ValidationError


class TestBusinessPath:
    """Moves along available -> blocked/reserved/booked -> sold."""

    @pytest.mark.parametrize(
        "target",
        [PlotStatus.BLOCKED, PlotStatus.RESERVED, PlotStatus.BOOKED],
    )
    def test_available_leads_to_holds(self, target):
        change = plan_transition(PlotStatus.AVAILABLE, target)

        assert isinstance(change, StatusChange)
        assert change.changed
        assert change.off_path is False

    @pytest.mark.parametrize(
        "current",
        [PlotStatus.BLOCKED, PlotStatus.RESERVED, PlotStatus.BOOKED],
    )
    def test_holds_lead_to_sold(self, current):
        change = plan_transition(current, PlotStatus.SOLD)

        assert isinstance(change, StatusChange)
        assert change.marks_sold
        assert change.opens_booking

    @pytest.mark.parametrize(
        "current",
        [PlotStatus.BLOCKED, PlotStatus.RESERVED, PlotStatus.BOOKED],
    )
    def test_holds_revert_to_available(self, current):
        change = plan_transition(current, PlotStatus.AVAILABLE)

        assert isinstance(change, StatusChange)
        assert change.to_status == PlotStatus.AVAILABLE
        assert not change.opens_booking

    def test_same_status_is_noop(self):
        change = plan_transition("sold", "sold")

        assert isinstance(change, StatusChange)
        assert not change.changed
        assert not change.marks_sold

    def test_sold_has_no_business_exit(self):
        assert BUSINESS_TRANSITIONS[PlotStatus.SOLD] == frozenset()


class TestOffPath:
    """Moves outside the business path."""

    def test_available_to_sold_rejected(self):
        result = plan_transition(PlotStatus.AVAILABLE, PlotStatus.SOLD)

        assert isinstance(result, TransitionRejected)
        assert "available does not lead to sold" in result.reason

    def test_sold_to_available_rejected_for_business_caller(self):
        result = plan_transition(PlotStatus.SOLD, PlotStatus.AVAILABLE)

        assert isinstance(result, TransitionRejected)
        assert "admin edit" in result.reason

    def test_blocked_to_booked_rejected(self):
        result = plan_transition(PlotStatus.BLOCKED, PlotStatus.BOOKED)

        assert isinstance(result, TransitionRejected)

    def test_manual_reaches_any_state_with_flag(self):
        change = plan_transition(PlotStatus.SOLD, PlotStatus.AVAILABLE, manual=True)

        assert isinstance(change, StatusChange)
        assert change.off_path is True
        assert change.to_status == PlotStatus.AVAILABLE

    def test_manual_business_move_is_not_flagged(self):
        change = plan_transition(PlotStatus.BOOKED, PlotStatus.SOLD, manual=True)

        assert isinstance(change, StatusChange)
        assert change.off_path is False

    def test_manual_available_to_sold_marks_sold(self):
        change = plan_transition(PlotStatus.AVAILABLE, PlotStatus.SOLD, manual=True)

        assert change.marks_sold
        assert change.opens_booking
        assert change.off_path


class TestParseStatus:

    def test_accepts_enum(self):
        assert parse_status(PlotStatus.BOOKED) is PlotStatus.BOOKED

    def test_normalizes_case_and_whitespace(self):
        assert parse_status("  Sold ") == PlotStatus.SOLD

    def test_unknown_value_raises(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_status("archived")

        assert exc_info.value.field == "status"
        assert "archived" in exc_info.value.reason

    def test_plan_rejects_unknown_target(self):
        with pytest.raises(ValidationError):
            plan_transition(PlotStatus.AVAILABLE, "gone")
