"""
ColonyService -- colony records and their cached plot counts.

Responsibility:
    Creates and updates colonies, deletes empty ones, and owns ``recount()``: the only writer
    of ``total_plots``, ``available_plots``, ``sold_plots`` and
    ``blocked_plots``.

Architecture position:
    Kernel > Services.  ``recount`` is called by PlotService after every
    plot create, update and delete, and by BookingService after it moves
    a plot's status.

Invariants enforced:
    - The four counts equal a fresh scan of the plots table after every
      recount.  Recount is a full overwrite, so concurrent recounts are
      idempotent and the last writer wins.
    - Client updates never write the counts: ``update_colony`` rejects
      them with ValidationError.

Failure modes:
    - ColonyNotFoundError: colony_id does not exist.
    - ColonyHasPlotsError: deleting a colony that still has plots.
    - ValidationError: missing name, count fields in a patch, malformed
      numbers.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Mapping
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from colony_kernel.domain.permissions import Identity, Permission, require_permission
from colony_kernel.domain.plot_status import PlotStatus
from colony_kernel.domain.pricing import require_non_negative, to_decimal
from colony_kernel.exceptions import (
    CityNotFoundError,
    ColonyHasPlotsError,
    ColonyNotFoundError,
    ValidationError,
)
from colony_kernel.logging_config import get_logger
from colony_kernel.models.city import City
from colony_kernel.models.colony import PLOT_COUNT_FIELDS, Colony, ColonyStatus
from colony_kernel.models.plot import Plot
from colony_kernel.services.base import BaseService

logger = get_logger("services.colony")

_TEXT_FIELDS = ("name", "address")
_DECIMAL_FIELDS = ("latitude", "longitude")
_NON_NEGATIVE_FIELDS = ("total_area", "price_per_sqft")


@dataclass(frozen=True)
class ColonyPlotCounts:
    """Result of a recount."""

    colony_id: UUID
    total: int
    available: int
    sold: int
    blocked: int


@dataclass(frozen=True)
class ColonyInfo:
    """Immutable colony snapshot returned by the service."""

    id: UUID
    name: str
    city_id: UUID | None
    address: str | None
    latitude: Decimal | None
    longitude: Decimal | None
    total_area: Decimal | None
    price_per_sqft: Decimal | None
    status: str
    total_plots: int
    available_plots: int
    sold_plots: int
    blocked_plots: int
    khatoni_holders: tuple[dict[str, Any], ...]


class ColonyService(BaseService[Colony]):
    """
    Service for managing colonies.

    Contract:
        All mutations flush; none commit.

    Non-goals:
        - Does not cascade to plots or properties on update.
    """

    def __init__(self, session: Session):
        super().__init__(session)

    def create_colony(self, fields: Mapping[str, Any], identity: Identity) -> ColonyInfo:
        """
        Create a colony with zeroed plot counts.

        Raises:
            ForbiddenError: identity lacks colony_create.
            ValidationError: name missing or count fields supplied.
            CityNotFoundError: city_id does not exist.
        """
        require_permission(identity, Permission.COLONY_CREATE)
        self._reject_count_fields(fields)

        name = (fields.get("name") or "").strip()
        if not name:
            raise ValidationError("name", "colony name is required")

        colony = Colony(
            name=name,
            status=ColonyStatus.PLANNING,
            total_plots=0,
            available_plots=0,
            sold_plots=0,
            blocked_plots=0,
            khatoni_holders=[],
            created_by_id=identity.user_id,
        )
        self._apply(colony, {k: v for k, v in fields.items() if k != "name"})

        self.session.add(colony)
        self.session.flush()

        logger.info(
            "colony_created",
            extra={"colony_id": str(colony.id), "colony_name": colony.name},
        )
        return self._to_dto(colony)

    def update_colony(
        self,
        colony_id: UUID,
        patch: Mapping[str, Any],
        identity: Identity,
    ) -> ColonyInfo:
        """
        Apply a partial update; omitted fields are untouched.

        Raises:
            ForbiddenError: identity lacks colony_update.
            ColonyNotFoundError: colony_id does not exist.
            ValidationError: patch names a plot count field.
        """
        require_permission(identity, Permission.COLONY_UPDATE)
        self._reject_count_fields(patch)
        colony = self._get_by_id(colony_id)

        self._apply(colony, patch)
        colony.updated_by_id = identity.user_id
        self.session.flush()

        logger.info(
            "colony_updated",
            extra={"colony_id": str(colony.id), "fields": sorted(patch)},
        )
        return self._to_dto(colony)

    def delete_colony(self, colony_id: UUID, identity: Identity) -> None:
        """
        Delete a colony that has no plots.  Its properties are detached
        (colony_id set to NULL), not deleted.

        Raises:
            ForbiddenError: identity lacks colony_delete.
            ColonyNotFoundError: colony_id does not exist.
            ColonyHasPlotsError: at least one plot still belongs to it.
        """
        require_permission(identity, Permission.COLONY_DELETE)
        colony = self._get_by_id(colony_id)

        plot_count = self.session.scalar(
            select(func.count(Plot.id)).where(Plot.colony_id == colony_id)
        )
        if plot_count:
            raise ColonyHasPlotsError(str(colony_id), plot_count)

        name = colony.name
        self.session.delete(colony)
        self.session.flush()

        logger.info(
            "colony_deleted",
            extra={"colony_id": str(colony_id), "colony_name": name},
        )

    def get_colony(self, colony_id: UUID) -> ColonyInfo:
        return self._to_dto(self._get_by_id(colony_id))

    def recount(self, colony_id: UUID) -> ColonyPlotCounts:
        """
        Rescan the colony's plots and overwrite the cached counts.

        Postconditions:
            total_plots == number of plots with this colony_id, and the
            available/sold/blocked counts equal the plots in exactly that
            status.  Reserved and booked plots are counted only in the
            total.

        Raises:
            ColonyNotFoundError: colony_id does not exist.
        """
        colony = self._get_by_id(colony_id)

        rows = self.session.execute(
            select(Plot.status, func.count(Plot.id))
            .where(Plot.colony_id == colony_id)
            .group_by(Plot.status)
        ).all()
        by_status = {str(status): count for status, count in rows}

        counts = ColonyPlotCounts(
            colony_id=colony.id,
            total=sum(by_status.values()),
            available=by_status.get(PlotStatus.AVAILABLE.value, 0),
            sold=by_status.get(PlotStatus.SOLD.value, 0),
            blocked=by_status.get(PlotStatus.BLOCKED.value, 0),
        )

        colony.total_plots = counts.total
        colony.available_plots = counts.available
        colony.sold_plots = counts.sold
        colony.blocked_plots = counts.blocked
        self.session.flush()

        logger.info(
            "colony_recounted",
            extra={
                "colony_id": str(colony.id),
                "total_plots": counts.total,
                "available_plots": counts.available,
                "sold_plots": counts.sold,
                "blocked_plots": counts.blocked,
            },
        )
        return counts

    def _get_by_id(self, colony_id: UUID) -> Colony:
        colony = self.session.get(Colony, colony_id)
        if colony is None:
            raise ColonyNotFoundError(str(colony_id))
        return colony

    @staticmethod
    def _reject_count_fields(fields: Mapping[str, Any]) -> None:
        supplied = PLOT_COUNT_FIELDS.intersection(fields)
        if supplied:
            raise ValidationError(
                sorted(supplied)[0],
                "plot counts are derived from plots and cannot be set",
            )

    def _apply(self, colony: Colony, fields: Mapping[str, Any]) -> None:
        for key in _TEXT_FIELDS:
            if key in fields:
                value = fields[key]
                if key == "name" and not (value or "").strip():
                    raise ValidationError("name", "colony name is required")
                setattr(colony, key, value.strip() if isinstance(value, str) else value)

        for key in _DECIMAL_FIELDS:
            if key in fields:
                value = fields[key]
                setattr(colony, key, None if value is None else to_decimal(value, key))

        for key in _NON_NEGATIVE_FIELDS:
            if key in fields:
                value = fields[key]
                setattr(colony, key, None if value is None else require_non_negative(value, key))

        if "status" in fields:
            try:
                colony.status = ColonyStatus(fields["status"])
            except ValueError:
                raise ValidationError("status", f"unknown colony status '{fields['status']}'") from None

        if "city_id" in fields:
            city_id = fields["city_id"]
            if city_id is not None and self.session.get(City, city_id) is None:
                raise CityNotFoundError(str(city_id))
            colony.city_id = city_id

        if "khatoni_holders" in fields:
            holders = fields["khatoni_holders"] or []
            for index, holder in enumerate(holders):
                if not (holder.get("name") or "").strip():
                    raise ValidationError(
                        f"khatoni_holders[{index}].name",
                        "each khatoni holder needs a name",
                    )
            colony.khatoni_holders = [dict(holder) for holder in holders]

    def _to_dto(self, colony: Colony) -> ColonyInfo:
        return ColonyInfo(
            id=colony.id,
            name=colony.name,
            city_id=colony.city_id,
            address=colony.address,
            latitude=colony.latitude,
            longitude=colony.longitude,
            total_area=colony.total_area,
            price_per_sqft=colony.price_per_sqft,
            status=ColonyStatus(colony.status).value,
            total_plots=colony.total_plots,
            available_plots=colony.available_plots,
            sold_plots=colony.sold_plots,
            blocked_plots=colony.blocked_plots,
            khatoni_holders=tuple(colony.khatoni_holders or ()),
        )
