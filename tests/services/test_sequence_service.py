"""
Tests for SequenceService.

Covers:
- First value of each sequence
- Next value after the highest well-formed identifier
- Hand-entered identifiers in other shapes are ignored
- Per-colony partitioning of plot numbers
- Width overflow and missing partition keys
"""

from decimal import Decimal

import pytest

from colony_kernel.exceptions import SequencingError
from colony_kernel.models.booking import Booking, BookingStatus
from colony_kernel.models.plot import Plot
from colony_kernel.services.sequence_service import (
    BOOKING_NUMBER,
    PLOT_NUMBER,
    SequenceFormat,
    user_code_format,
)


def _add_plot(session, colony_id, property_id, plot_number, actor_id):
    plot = Plot(
        plot_number=plot_number,
        colony_id=colony_id,
        property_id=property_id,
        area=Decimal("100"),
        price_per_sqft=Decimal("10"),
        total_price=Decimal("1000"),
        created_by_id=actor_id,
    )
    session.add(plot)
    session.flush()
    return plot


class TestSequenceFormat:

    def test_format_zero_pads(self):
        assert PLOT_NUMBER.format(7) == "PLOT-0007"
        assert BOOKING_NUMBER.format(42) == "BK000042"
        assert user_code_format("AG").format(3) == "AG-00003"

    def test_matches_only_fixed_width(self):
        assert PLOT_NUMBER.matches("PLOT-0012")
        assert not PLOT_NUMBER.matches("PLOT-12A")
        assert not PLOT_NUMBER.matches("PLOT-00012")
        assert not PLOT_NUMBER.matches(None)

    def test_format_overflow_raises(self):
        fmt = SequenceFormat("tiny", "T", 2, "uq_tiny", "tiny.code")

        assert fmt.format(99) == "T99"
        with pytest.raises(SequencingError) as exc_info:
            fmt.format(100)
        assert exc_info.value.sequence == "tiny"


class TestPlotNumbers:

    def test_first_plot_number(self, sequence_service, colony):
        assert sequence_service.next_plot_number(colony.id) == "PLOT-0001"

    def test_next_after_highest(
        self, session, sequence_service, colony, colony_property, test_actor_id
    ):
        for number in ("PLOT-0001", "PLOT-0002", "PLOT-0005"):
            _add_plot(session, colony.id, colony_property.id, number, test_actor_id)

        assert sequence_service.next_plot_number(colony.id) == "PLOT-0006"

    def test_malformed_numbers_ignored(
        self, session, sequence_service, colony, colony_property, test_actor_id
    ):
        _add_plot(session, colony.id, colony_property.id, "PLOT-0003", test_actor_id)
        _add_plot(session, colony.id, colony_property.id, "PLOT-12A", test_actor_id)
        _add_plot(session, colony.id, colony_property.id, "PLOT-99999", test_actor_id)
        _add_plot(session, colony.id, colony_property.id, "A-17", test_actor_id)

        assert sequence_service.next_plot_number(colony.id) == "PLOT-0004"

    def test_sequences_are_per_colony(
        self, session, sequence_service, colony, colony_property, create_colony, test_actor_id
    ):
        other = create_colony(name="Sunrise Enclave")
        _add_plot(session, colony.id, colony_property.id, "PLOT-0009", test_actor_id)

        assert sequence_service.next_plot_number(other.id) == "PLOT-0001"
        assert sequence_service.next_plot_number(colony.id) == "PLOT-0010"

    def test_missing_colony_raises(self, sequence_service):
        with pytest.raises(SequencingError) as exc_info:
            sequence_service.next_plot_number(None)
        assert exc_info.value.sequence == "plot_number"

    def test_exhausted_width_raises(
        self, session, sequence_service, colony, colony_property, test_actor_id
    ):
        _add_plot(session, colony.id, colony_property.id, "PLOT-9999", test_actor_id)

        with pytest.raises(SequencingError, match="last available value"):
            sequence_service.next_plot_number(colony.id)


class TestBookingNumbers:

    def test_first_booking_number(self, sequence_service):
        assert sequence_service.next_booking_number() == "BK000001"

    def test_next_booking_number_is_global(
        self, session, sequence_service, deterministic_clock, test_actor_id
    ):
        for number in ("BK000010", "BK000002", "BK-LEGACY"):
            session.add(Booking(
                booking_number=number,
                total_amount=Decimal("100"),
                advance_amount=Decimal("0"),
                remaining_amount=Decimal("100"),
                status=BookingStatus.CANCELLED,
                booking_date=deterministic_clock.now(),
                created_by_id=test_actor_id,
            ))
        session.flush()

        assert sequence_service.next_booking_number() == "BK000011"


class TestUserCodes:

    def test_first_code_for_prefix(self, sequence_service):
        assert sequence_service.next_user_code("AG") == "AG-00001"

    def test_missing_prefix_raises(self, sequence_service):
        with pytest.raises(SequencingError):
            sequence_service.next_user_code(None)
