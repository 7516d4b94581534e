"""
Module: colony_kernel.models.plot
Responsibility: ORM persistence for plots, the central entity of the kernel:
    numbered parcels inside a colony with price, status, buyer and registry
    details, and frozen owner/witness snapshots.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/plot_status.py only.

Invariants enforced:
    - plot_number is unique within a colony (uq_plot_colony_number).  The
      constraint is what makes concurrent sequence allocation safe: the
      loser of a race gets an IntegrityError and retries.
    - total_price == area * price_per_sqft (maintained by PlotService).
    - plot_owners / witnesses are snapshots copied at selection time; they
      are not references into the settings registry.

Failure modes:
    - IntegrityError on duplicate (colony_id, plot_number).
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, Boolean, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from colony_kernel.db.base import TrackedBase, UUIDString
from colony_kernel.domain.plot_status import INITIAL_STATUS, PlotStatus


class PlotType(str, Enum):
    RESIDENTIAL = "residential"
    COMMERCIAL = "commercial"
    FARMHOUSE = "farmhouse"


class Facing(str, Enum):
    NORTH = "north"
    SOUTH = "south"
    EAST = "east"
    WEST = "west"
    NORTHEAST = "northeast"
    NORTHWEST = "northwest"
    SOUTHEAST = "southeast"
    SOUTHWEST = "southwest"


class RegistryStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"


class Plot(TrackedBase):
    """
    A numbered parcel of land in a colony.

    Guarantees:
        - (colony_id, plot_number) is unique.
        - status is one of PlotStatus; default available.
        - registry_document and plot_images are lists of URL strings.
        - customer_documents, dimensions are JSON mappings.
    """

    __tablename__ = "plots"

    __table_args__ = (
        UniqueConstraint("colony_id", "plot_number", name="uq_plot_colony_number"),
        Index("idx_plot_colony_status", "colony_id", "status"),
        Index("idx_plot_property", "property_id"),
    )

    plot_number: Mapped[str] = mapped_column(String(30), nullable=False)

    colony_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("colonies.id"),
        nullable=False,
    )

    property_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("properties.id"),
        nullable=False,
    )

    plot_type: Mapped[PlotType] = mapped_column(
        String(20),
        nullable=False,
        default=PlotType.RESIDENTIAL,
    )

    # Pricing
    area: Mapped[Decimal] = mapped_column(nullable=False)
    price_per_sqft: Mapped[Decimal] = mapped_column(nullable=False)
    total_price: Mapped[Decimal] = mapped_column(nullable=False)

    status: Mapped[PlotStatus] = mapped_column(
        String(20),
        nullable=False,
        default=INITIAL_STATUS,
    )

    # Layout
    dimensions: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    facing: Mapped[str | None] = mapped_column(String(20), nullable=True)
    corner: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    road_width: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    features: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    # Buyer
    customer_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    customer_number: Mapped[str | None] = mapped_column(String(30), nullable=True)
    customer_short_address: Mapped[str | None] = mapped_column(String(255), nullable=True)
    customer_full_address: Mapped[str | None] = mapped_column(Text, nullable=True)
    customer_aadhar_number: Mapped[str | None] = mapped_column(String(20), nullable=True)
    customer_pan_number: Mapped[str | None] = mapped_column(String(20), nullable=True)
    customer_documents: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    # Sale
    final_price: Mapped[Decimal | None] = mapped_column(nullable=True)
    paid_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    mode_of_payment: Mapped[str | None] = mapped_column(String(20), nullable=True)
    transaction_date: Mapped[datetime | None] = mapped_column(nullable=True)
    sold_date: Mapped[datetime | None] = mapped_column(nullable=True)
    agent_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    agent_code: Mapped[str | None] = mapped_column(String(20), nullable=True)
    commission_percentage: Mapped[Decimal | None] = mapped_column(nullable=True)
    commission_amount: Mapped[Decimal | None] = mapped_column(nullable=True)

    # Registry
    registry_date: Mapped[datetime | None] = mapped_column(nullable=True)
    registry_status: Mapped[RegistryStatus] = mapped_column(
        String(20),
        nullable=False,
        default=RegistryStatus.PENDING,
    )
    registry_document: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    registry_pdf: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    payment_slip: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    plot_images: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    # Frozen legal identities
    plot_owners: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    witnesses: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<Plot {self.plot_number} ({self.status})>"
