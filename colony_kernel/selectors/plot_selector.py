"""
Module: colony_kernel.selectors.plot_selector
Responsibility: Plot listings for a colony or a property, with the filters
    the plot browser offers (status, facing, price and area ranges).
Architecture position: Kernel > Selectors.
"""

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from colony_kernel.domain.plot_status import PlotStatus, parse_status
from colony_kernel.models.plot import Plot
from colony_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class PlotSummary:
    """One plot in a listing."""

    id: UUID
    plot_number: str
    colony_id: UUID
    property_id: UUID
    status: str
    area: Decimal
    price_per_sqft: Decimal
    total_price: Decimal
    facing: str | None
    corner: bool
    customer_name: str | None


class PlotSelector(BaseSelector[Plot]):
    """Read-only plot queries, ordered by plot number."""

    def list_by_colony(
        self,
        colony_id: UUID,
        status: PlotStatus | str | None = None,
        facing: str | None = None,
        min_price: Decimal | None = None,
        max_price: Decimal | None = None,
        min_area: Decimal | None = None,
        max_area: Decimal | None = None,
    ) -> list[PlotSummary]:
        """
        Plots of a colony matching every given filter.

        Price bounds apply to total_price; all bounds are inclusive.
        """
        stmt = select(Plot).where(Plot.colony_id == colony_id)
        if status is not None:
            stmt = stmt.where(Plot.status == parse_status(status).value)
        if facing is not None:
            stmt = stmt.where(Plot.facing == facing.lower())
        if min_price is not None:
            stmt = stmt.where(Plot.total_price >= Decimal(str(min_price)))
        if max_price is not None:
            stmt = stmt.where(Plot.total_price <= Decimal(str(max_price)))
        if min_area is not None:
            stmt = stmt.where(Plot.area >= Decimal(str(min_area)))
        if max_area is not None:
            stmt = stmt.where(Plot.area <= Decimal(str(max_area)))

        plots = self.session.execute(stmt.order_by(Plot.plot_number)).scalars().all()
        return [self._to_summary(p) for p in plots]

    def list_by_property(self, property_id: UUID) -> list[PlotSummary]:
        plots = self.session.execute(
            select(Plot)
            .where(Plot.property_id == property_id)
            .order_by(Plot.plot_number)
        ).scalars().all()
        return [self._to_summary(p) for p in plots]

    @staticmethod
    def _to_summary(plot: Plot) -> PlotSummary:
        return PlotSummary(
            id=plot.id,
            plot_number=plot.plot_number,
            colony_id=plot.colony_id,
            property_id=plot.property_id,
            status=PlotStatus(plot.status).value,
            area=plot.area,
            price_per_sqft=plot.price_per_sqft,
            total_price=plot.total_price,
            facing=plot.facing,
            corner=plot.corner,
            customer_name=plot.customer_name,
        )
