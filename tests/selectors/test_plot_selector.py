"""Tests for PlotSelector listings."""

from decimal import Decimal

import pytest

from colony_kernel.exceptions import ValidationError
from colony_kernel.selectors.plot_selector import PlotSelector


@pytest.fixture
def plots(create_plot):
    return [
        create_plot(area="100", price_per_sqft="1000", facing="north"),
        create_plot(area="200", price_per_sqft="1000", facing="east"),
        create_plot(area="300", price_per_sqft="1000", facing="north", status="blocked"),
        create_plot(area="400", price_per_sqft="1000", facing="south", status="sold"),
    ]


class TestListByColony:

    def test_ordered_by_plot_number(self, session, colony, plots):
        listing = PlotSelector(session).list_by_colony(colony.id)

        assert [p.plot_number for p in listing] == [
            "PLOT-0001", "PLOT-0002", "PLOT-0003", "PLOT-0004",
        ]

    def test_status_filter(self, session, colony, plots):
        listing = PlotSelector(session).list_by_colony(colony.id, status="Blocked")

        assert [p.plot_number for p in listing] == ["PLOT-0003"]

    def test_facing_filter(self, session, colony, plots):
        listing = PlotSelector(session).list_by_colony(colony.id, facing="North")

        assert [p.id for p in listing] == [plots[0].id, plots[2].id]

    def test_price_bounds_inclusive(self, session, colony, plots):
        listing = PlotSelector(session).list_by_colony(
            colony.id, min_price=Decimal("200000"), max_price=Decimal("300000")
        )

        assert [p.plot_number for p in listing] == ["PLOT-0002", "PLOT-0003"]

    def test_area_bounds(self, session, colony, plots):
        listing = PlotSelector(session).list_by_colony(colony.id, min_area=350)

        assert [p.status for p in listing] == ["sold"]

    def test_other_colony_excluded(self, session, create_colony, plots):
        other = create_colony(name="Sunrise Enclave")

        assert PlotSelector(session).list_by_colony(other.id) == []

    def test_unknown_status_rejected(self, session, colony):
        with pytest.raises(ValidationError):
            PlotSelector(session).list_by_colony(colony.id, status="archived")


class TestListByProperty:

    def test_lists_property_plots(self, session, colony_property, plots):
        listing = PlotSelector(session).list_by_property(colony_property.id)

        assert len(listing) == 4
        assert listing[0].total_price == Decimal("100000")
