"""
Module: colony_kernel.selectors.colony_selector
Responsibility: Detects drift between a colony's cached plot counts and a
    fresh scan of its plots.  Drift means some write bypassed the services;
    ``scripts/recount_colonies.py`` repairs it through ColonyService.recount.
Architecture position: Kernel > Selectors.
"""

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import func, select

from colony_kernel.domain.plot_status import PlotStatus
from colony_kernel.exceptions import ColonyNotFoundError
from colony_kernel.models.colony import Colony
from colony_kernel.models.plot import Plot
from colony_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class CountDrift:
    """Cached versus scanned counts, keyed by count column."""

    colony_id: UUID
    cached: dict[str, int]
    actual: dict[str, int]

    @property
    def has_drift(self) -> bool:
        return self.cached != self.actual

    @property
    def drifted_fields(self) -> tuple[str, ...]:
        return tuple(sorted(k for k in self.cached if self.cached[k] != self.actual[k]))


class ColonySelector(BaseSelector[Colony]):
    """Read-only colony queries."""

    def verify_counts(self, colony_id: UUID) -> CountDrift:
        """
        Compare cached counts with the plots table.

        Raises:
            ColonyNotFoundError: colony_id does not exist.
        """
        colony = self.session.get(Colony, colony_id)
        if colony is None:
            raise ColonyNotFoundError(str(colony_id))

        rows = self.session.execute(
            select(Plot.status, func.count(Plot.id))
            .where(Plot.colony_id == colony_id)
            .group_by(Plot.status)
        ).all()
        by_status = {str(status): count for status, count in rows}

        return CountDrift(
            colony_id=colony.id,
            cached={
                "total_plots": colony.total_plots,
                "available_plots": colony.available_plots,
                "sold_plots": colony.sold_plots,
                "blocked_plots": colony.blocked_plots,
            },
            actual={
                "total_plots": sum(by_status.values()),
                "available_plots": by_status.get(PlotStatus.AVAILABLE.value, 0),
                "sold_plots": by_status.get(PlotStatus.SOLD.value, 0),
                "blocked_plots": by_status.get(PlotStatus.BLOCKED.value, 0),
            },
        )

    def all_colony_ids(self) -> list[UUID]:
        return list(self.session.execute(
            select(Colony.id).order_by(Colony.name)
        ).scalars())
