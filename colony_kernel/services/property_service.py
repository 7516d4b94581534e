"""
PropertyService -- sellable units of land that plots belong to.

Properties carry marketing data (media, facilities, roads, parks) whose
files are uploaded elsewhere; the kernel stores the URLs it is given.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Mapping
from uuid import UUID

from colony_kernel.domain.permissions import Identity, Permission, require_permission
from colony_kernel.domain.pricing import require_non_negative
from colony_kernel.exceptions import CityNotFoundError, ColonyNotFoundError, ValidationError
from colony_kernel.logging_config import get_logger
from colony_kernel.models.city import City
from colony_kernel.models.colony import Colony
from colony_kernel.models.property import Property, PropertyCategory, PropertyStatus
from colony_kernel.services.base import BaseService

logger = get_logger("services.property")

MEDIA_KEYS = (
    "main_picture",
    "video_upload",
    "map_image",
    "noc",
    "registry",
    "legal_doc",
    "more_images",
)


@dataclass(frozen=True)
class PropertyInfo:
    id: UUID
    name: str
    colony_id: UUID | None
    city_id: UUID | None
    categories: tuple[str, ...]
    total_land_area_gaj: Decimal | None
    base_price_per_gaj: Decimal | None
    status: str
    media: dict[str, Any]


class PropertyService(BaseService[Property]):
    """Service for properties."""

    def create_property(self, fields: Mapping[str, Any], identity: Identity) -> PropertyInfo:
        """
        Create a property, optionally linked to a colony.

        Raises:
            ForbiddenError, ValidationError, ColonyNotFoundError,
            CityNotFoundError.
        """
        require_permission(identity, Permission.PROPERTY_CREATE)

        name = (fields.get("name") or "").strip()
        if not name:
            raise ValidationError("name", "property name is required")

        colony_id = fields.get("colony_id")
        if colony_id is not None and self.session.get(Colony, colony_id) is None:
            raise ColonyNotFoundError(str(colony_id))
        city_id = fields.get("city_id")
        if city_id is not None and self.session.get(City, city_id) is None:
            raise CityNotFoundError(str(city_id))

        try:
            categories = [PropertyCategory(c).value for c in fields.get("categories") or []]
        except ValueError as exc:
            raise ValidationError("categories", str(exc)) from None
        try:
            status = PropertyStatus(fields.get("status") or PropertyStatus.ACTIVE)
        except ValueError:
            raise ValidationError("status", f"unknown property status '{fields['status']}'") from None

        media = dict(fields.get("media") or {})
        unknown = set(media) - set(MEDIA_KEYS)
        if unknown:
            raise ValidationError("media", f"unknown keys: {', '.join(sorted(unknown))}")
        media.setdefault("more_images", [])

        prop = Property(
            name=name,
            colony_id=colony_id,
            city_id=city_id,
            categories=categories,
            address=fields.get("address"),
            tagline=fields.get("tagline"),
            description=fields.get("description"),
            total_land_area_gaj=_optional_amount(fields, "total_land_area_gaj"),
            base_price_per_gaj=_optional_amount(fields, "base_price_per_gaj"),
            facilities=list(fields.get("facilities") or []),
            roads=[dict(r) for r in fields.get("roads") or []],
            parks=[dict(p) for p in fields.get("parks") or []],
            media=media,
            status=status,
            created_by_id=identity.user_id,
        )
        self.session.add(prop)
        self.session.flush()

        logger.info(
            "property_created",
            extra={"property_id": str(prop.id), "colony_id": str(colony_id) if colony_id else None},
        )
        return PropertyInfo(
            id=prop.id,
            name=prop.name,
            colony_id=prop.colony_id,
            city_id=prop.city_id,
            categories=tuple(prop.categories),
            total_land_area_gaj=prop.total_land_area_gaj,
            base_price_per_gaj=prop.base_price_per_gaj,
            status=PropertyStatus(prop.status).value,
            media=dict(prop.media),
        )


def _optional_amount(fields: Mapping[str, Any], key: str) -> Decimal | None:
    value = fields.get(key)
    return None if value is None else require_non_negative(value, key)
