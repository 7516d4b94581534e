"""
Module: colony_kernel.models.property
Responsibility: ORM persistence for properties, the sellable units of land a
    colony is marketed as.  Every plot belongs to exactly one property.
"""

from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from colony_kernel.db.base import TrackedBase, UUIDString


class PropertyStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    INACTIVE = "inactive"
    READY_TO_SELL = "ready_to_sell"
    UNDER_DEVELOPMENT = "under_development"
    SOLD_OUT = "sold_out"


class PropertyCategory(str, Enum):
    RESIDENTIAL = "Residential"
    COMMERCIAL = "Commercial"
    FARMHOUSE = "Farmhouse"


class Property(TrackedBase):
    """
    A sellable unit of land.

    ``colony_id`` is nullable: historical properties predate the colony link
    and are backfilled by migration.  ``media`` holds already-uploaded URLs
    (main_picture, video_upload, map_image, noc, registry, legal_doc,
    more_images).
    """

    __tablename__ = "properties"

    __table_args__ = (
        Index("idx_property_colony", "colony_id"),
        Index("idx_property_status", "status"),
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    colony_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("colonies.id", ondelete="SET NULL"),
        nullable=True,
    )

    city_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("cities.id"),
        nullable=True,
    )

    categories: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    address: Mapped[str | None] = mapped_column(String(500), nullable=True)
    tagline: Mapped[str | None] = mapped_column(String(255), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    total_land_area_gaj: Mapped[Decimal | None] = mapped_column(nullable=True)
    base_price_per_gaj: Mapped[Decimal | None] = mapped_column(nullable=True)

    facilities: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    roads: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    parks: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    media: Mapped[dict[str, Any]] = mapped_column(
        JSON,
        nullable=False,
        default=lambda: {"more_images": []},
    )

    status: Mapped[PropertyStatus] = mapped_column(
        String(30),
        nullable=False,
        default=PropertyStatus.ACTIVE,
    )

    def __repr__(self) -> str:
        return f"<Property {self.name} ({self.status})>"
