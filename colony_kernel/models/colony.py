"""
Module: colony_kernel.models.colony
Responsibility: ORM persistence for colonies (land developments divided into
    plots), including the cached plot-count aggregates.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - total_plots / available_plots / sold_plots / blocked_plots are a cache
      of a scan over plots.colony_id.  They are written only by
      ColonyService.recount(); client updates never touch them.

Failure modes:
    - Count drift if a plot mutation bypasses the services.  Detectable with
      ColonySelector.verify_counts().
"""

from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from colony_kernel.db.base import TrackedBase, UUIDString


class ColonyStatus(str, Enum):
    PLANNING = "planning"
    READY_TO_SELL = "ready_to_sell"
    ON_HOLD = "on_hold"
    ACTIVE = "active"
    INACTIVE = "inactive"
    SOLD_OUT = "sold_out"
    UNDER_DEVELOPMENT = "under_development"


# Columns owned by the recount; never accepted from clients
PLOT_COUNT_FIELDS: frozenset[str] = frozenset({
    "total_plots",
    "available_plots",
    "sold_plots",
    "blocked_plots",
})


class Colony(TrackedBase):
    """
    A colony and its cached plot counts.

    Guarantees:
        - The four plot counts start at zero and are overwritten by every
          recount with values derived from the plots table.
        - khatoni_holders is a list of land-right holder records, each with
          name, address, mobile, aadhar/pan numbers, relation fields and a
          documents mapping.
    """

    __tablename__ = "colonies"

    __table_args__ = (
        Index("idx_colony_city", "city_id"),
        Index("idx_colony_status", "status"),
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    city_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("cities.id"),
        nullable=True,
    )

    address: Mapped[str | None] = mapped_column(String(500), nullable=True)

    latitude: Mapped[Decimal | None] = mapped_column(nullable=True)
    longitude: Mapped[Decimal | None] = mapped_column(nullable=True)

    total_area: Mapped[Decimal | None] = mapped_column(nullable=True)
    price_per_sqft: Mapped[Decimal | None] = mapped_column(nullable=True)

    status: Mapped[ColonyStatus] = mapped_column(
        String(30),
        nullable=False,
        default=ColonyStatus.PLANNING,
    )

    # Cached aggregates (ColonyService.recount only)
    total_plots: Mapped[int] = mapped_column(nullable=False, default=0)
    available_plots: Mapped[int] = mapped_column(nullable=False, default=0)
    sold_plots: Mapped[int] = mapped_column(nullable=False, default=0)
    blocked_plots: Mapped[int] = mapped_column(nullable=False, default=0)

    khatoni_holders: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON,
        nullable=False,
        default=list,
    )

    def __repr__(self) -> str:
        return f"<Colony {self.name}: {self.total_plots} plots>"
