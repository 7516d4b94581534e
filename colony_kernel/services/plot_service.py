"""
PlotService -- the plot lifecycle.

Responsibility:
    Creates, updates and deletes plots.  Owns numbering (through
    SequenceService), derived pricing, status moves (through
    ``plan_transition``), owner/witness snapshots, and the follow-up work a
    plot write triggers: booking reconciliation and colony recounts.

Architecture position:
    Kernel > Services.  Called by the routing layer with an Identity that
    has already been authenticated.

Invariants enforced:
    - total_price == area * price_per_sqft exactly, recomputed whenever
      either factor changes.  Both must be present and positive.
    - plot_number is unique within the colony.  Generated numbers are
      retried on a lost race; a duplicate manual number is a
      DuplicatePlotNumberError.
    - Status only moves through ``plan_transition``.  Admin edits may go
      anywhere (off-path moves are logged at WARNING); other callers are
      held to the business path.  Only an admin may reserve a plot.
    - A plot whose resulting status is booked or sold is backed by an open
      booking before the operation returns.
    - The colony counts are recounted after every create, update and
      delete, for the former colony too when a plot moves.
    - Sold plots are never deleted.

Failure modes:
    - ForbiddenError, ValidationError, ColonyNotFoundError,
      PropertyNotFoundError, PlotNotFoundError, OwnerNotFoundError.
    - DuplicatePlotNumberError, SoldPlotDeletionError,
      InvalidStatusTransitionError.
    - SequencingError: plot number allocation failed; nothing is written.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Mapping, Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from colony_kernel.db.integrity import is_unique_violation
from colony_kernel.domain.clock import Clock, SystemClock, parse_datetime
from colony_kernel.domain.permissions import Identity, Permission, require_permission
from colony_kernel.domain.plot_status import (
    INITIAL_STATUS,
    PlotStatus,
    StatusChange,
    TransitionRejected,
    parse_status,
    plan_transition,
)
from colony_kernel.domain.pricing import compute_total_price, require_measure, require_non_negative
from colony_kernel.exceptions import (
    ColonyNotFoundError,
    DuplicatePlotNumberError,
    InvalidStatusTransitionError,
    PlotNotFoundError,
    PropertyNotFoundError,
    SoldPlotDeletionError,
    ValidationError,
)
from colony_kernel.logging_config import LogContext, get_logger
from colony_kernel.models.colony import Colony
from colony_kernel.models.plot import Facing, Plot, PlotType, RegistryStatus
from colony_kernel.models.property import Property
from colony_kernel.services.base import BaseService
from colony_kernel.services.booking_service import BookingService
from colony_kernel.services.colony_service import ColonyService
from colony_kernel.services.sequence_service import PLOT_NUMBER, SequenceService
from colony_kernel.services.settings_service import SettingsService

logger = get_logger("services.plot")

_TEXT_FIELDS = (
    "customer_name",
    "customer_number",
    "customer_short_address",
    "customer_full_address",
    "customer_aadhar_number",
    "customer_pan_number",
    "mode_of_payment",
    "agent_name",
    "agent_code",
    "registry_pdf",
    "payment_slip",
    "notes",
)

_OPTIONAL_AMOUNT_FIELDS = (
    "final_price",
    "paid_amount",
    "commission_percentage",
    "commission_amount",
)

_DATE_FIELDS = ("transaction_date", "registry_date", "sold_date")

# Fields whose change re-checks paid_amount against the sale price
_PAYMENT_FIELDS = frozenset({"paid_amount", "final_price", "area", "price_per_sqft"})

_WITNESS_FIELDS = (
    "name",
    "phone",
    "aadhar_number",
    "pan_number",
    "date_of_birth",
    "son_of",
    "daughter_of",
    "wife_of",
    "address",
)

# url list field -> (keep key, new-upload key)
_URL_LIST_FIELDS = {
    "registry_document": ("existing_registry_documents", "new_registry_documents"),
    "plot_images": ("existing_plot_images", "new_plot_images"),
}

_STRUCTURED_FIELDS = frozenset({
    "plot_type",
    "dimensions",
    "facing",
    "corner",
    "road_width",
    "features",
    "registry_status",
    "customer_documents",
    "witnesses",
    "selected_owner_ids",
    "status",
    "area",
    "price_per_sqft",
    "plot_number",
})

_CREATE_FIELDS = (
    _STRUCTURED_FIELDS
    | set(_TEXT_FIELDS)
    | set(_OPTIONAL_AMOUNT_FIELDS)
    | set(_DATE_FIELDS)
    | set(_URL_LIST_FIELDS)
)

_UPDATE_FIELDS = (
    _CREATE_FIELDS
    | {"colony_id", "property_id"}
    | {key for pair in _URL_LIST_FIELDS.values() for key in pair}
)


@dataclass(frozen=True)
class PlotInfo:
    """Immutable plot snapshot returned by the service."""

    id: UUID
    plot_number: str
    colony_id: UUID
    property_id: UUID
    plot_type: str
    area: Decimal
    price_per_sqft: Decimal
    total_price: Decimal
    status: str
    dimensions: dict[str, Any]
    facing: str | None
    corner: bool
    road_width: Decimal
    features: tuple[str, ...]
    customer_name: str | None
    customer_number: str | None
    final_price: Decimal | None
    paid_amount: Decimal | None
    sold_date: datetime | None
    registry_status: str
    registry_document: tuple[str, ...]
    plot_images: tuple[str, ...]
    plot_owners: tuple[dict[str, Any], ...]
    witnesses: tuple[dict[str, Any], ...]
    notes: str | None


class PlotService(BaseService[Plot]):
    """
    Service for the plot lifecycle.

    Contract:
        All mutations flush; none commit.  The plot row, the colony
        recount and any auto-created booking share the caller's
        transaction.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        sequences: SequenceService | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._sequences = sequences or SequenceService(session)
        self._colonies = ColonyService(session)
        self._bookings = BookingService(session, clock=self._clock, sequences=self._sequences)
        self._settings = SettingsService(session)

    # -----------------------------------------------------------------
    # Create
    # -----------------------------------------------------------------

    def create_plot(
        self,
        colony_id: UUID,
        property_id: UUID,
        fields: Mapping[str, Any],
        identity: Identity,
    ) -> PlotInfo:
        """
        Create a plot in a colony.

        Args:
            colony_id: Colony the plot belongs to.
            property_id: Property the plot belongs to.
            fields: area and price_per_sqft (required); plot_number to
                number by hand; status for bulk entry of already-sold
                plots; selected_owner_ids, witnesses, and the descriptive,
                buyer and registry fields of Plot.
            identity: Acting user; needs plot_create.

        Returns:
            PlotInfo of the persisted plot.
        """
        with LogContext.bind(actor_id=identity.user_id, colony_id=colony_id):
            return self._do_create_plot(colony_id, property_id, fields, identity)

    def _do_create_plot(
        self,
        colony_id: UUID,
        property_id: UUID,
        fields: Mapping[str, Any],
        identity: Identity,
    ) -> PlotInfo:
        require_permission(identity, Permission.PLOT_CREATE)
        _reject_unknown(fields, _CREATE_FIELDS)

        colony = self._get_colony(colony_id)
        prop = self._get_property(property_id, colony.id)

        area = require_measure(fields.get("area"), "area")
        price_per_sqft = require_measure(fields.get("price_per_sqft"), "price_per_sqft")

        target = parse_status(fields.get("status") or INITIAL_STATUS)
        change = self._plan(None, INITIAL_STATUS, target, identity)

        attrs: dict[str, Any] = {
            "colony_id": colony.id,
            "property_id": prop.id,
            "area": area,
            "price_per_sqft": price_per_sqft,
            "total_price": compute_total_price(area, price_per_sqft),
            "status": change.to_status,
            "plot_type": PlotType.RESIDENTIAL,
            "dimensions": {},
            "corner": False,
            "road_width": Decimal("0"),
            "features": [],
            "customer_documents": {},
            "registry_status": RegistryStatus.PENDING,
            "registry_document": [],
            "plot_images": [],
            "plot_owners": [],
            "witnesses": [],
            "created_by_id": identity.user_id,
        }
        attrs.update(self._field_values(fields))
        for key in _URL_LIST_FIELDS:
            if key in fields:
                attrs[key] = clean_urls(fields[key])
        _check_paid_amount(attrs.get("paid_amount"), attrs.get("final_price"), attrs["total_price"])
        if change.marks_sold and attrs.get("sold_date") is None:
            attrs["sold_date"] = self._clock.now()

        def persist(number: str) -> Plot:
            plot = Plot(plot_number=number, **attrs)
            self.session.add(plot)
            return plot

        plot_number = (fields.get("plot_number") or "").strip()
        if plot_number:
            plot = self._insert_numbered(colony.id, plot_number, persist)
        else:
            plot = self._sequences.allocate_with_retry(
                PLOT_NUMBER,
                lambda: self._sequences.next_plot_number(colony.id),
                persist,
            )

        logger.info(
            "plot_created",
            extra={
                "plot_id": str(plot.id),
                "plot_number": plot.plot_number,
                "colony_id": str(colony.id),
                "total_price": plot.total_price,
                "status": change.to_status.value,
            },
        )
        if change.changed:
            self._log_status_change(plot, change)

        if change.opens_booking:
            self._bookings.ensure_booking(plot, identity.user_id)
        self._colonies.recount(colony.id)
        return self._to_dto(plot)

    # -----------------------------------------------------------------
    # Update
    # -----------------------------------------------------------------

    def update_plot(
        self,
        plot_id: UUID,
        patch: Mapping[str, Any],
        identity: Identity,
    ) -> PlotInfo:
        """
        Apply a partial update to a plot.

        Each key present in ``patch`` overwrites; omitted keys are left
        alone.  ``registry_document`` and ``plot_images`` merge: the kept
        list (``existing_*``, defaulting to the current list) followed by
        freshly uploaded URLs (``new_*``), flattened and filtered to
        http(s) URLs.

        Raises:
            ForbiddenError, PlotNotFoundError, ValidationError,
            ColonyNotFoundError, PropertyNotFoundError,
            DuplicatePlotNumberError, InvalidStatusTransitionError,
            OwnerNotFoundError.
        """
        with LogContext.bind(actor_id=identity.user_id, plot_id=plot_id):
            return self._do_update_plot(plot_id, patch, identity)

    def _do_update_plot(
        self,
        plot_id: UUID,
        patch: Mapping[str, Any],
        identity: Identity,
    ) -> PlotInfo:
        require_permission(identity, Permission.PLOT_UPDATE)
        _reject_unknown(patch, _UPDATE_FIELDS)
        plot = self._get_by_id(plot_id)

        former_colony_id = plot.colony_id
        new_number = (patch.get("plot_number") or "").strip()

        # Nothing reaches the database until the guarded flush below
        with self.session.no_autoflush:
            if "colony_id" in patch and patch["colony_id"] != plot.colony_id:
                plot.colony_id = self._get_colony(patch["colony_id"]).id
            if "property_id" in patch or plot.colony_id != former_colony_id:
                plot.property_id = self._get_property(
                    patch.get("property_id", plot.property_id), plot.colony_id
                ).id

            if "area" in patch or "price_per_sqft" in patch:
                area = require_measure(patch.get("area", plot.area), "area")
                price_per_sqft = require_measure(
                    patch.get("price_per_sqft", plot.price_per_sqft), "price_per_sqft"
                )
                plot.area = area
                plot.price_per_sqft = price_per_sqft
                plot.total_price = compute_total_price(area, price_per_sqft)

            change = None
            if "status" in patch:
                change = self._plan(plot, plot.status, parse_status(patch["status"]), identity)

            for key, value in self._field_values(patch).items():
                setattr(plot, key, value)
            for key, (keep_key, new_key) in _URL_LIST_FIELDS.items():
                merged = merge_url_list(getattr(plot, key), patch, key, keep_key, new_key)
                if merged is not None:
                    setattr(plot, key, merged)

            if change is not None and change.changed:
                plot.status = change.to_status
                if change.marks_sold and "sold_date" not in patch:
                    plot.sold_date = self._clock.now()

            if _PAYMENT_FIELDS & set(patch):
                _check_paid_amount(plot.paid_amount, plot.final_price, plot.total_price)

            plot.updated_by_id = identity.user_id

            renumber = bool(new_number) and new_number != plot.plot_number
            if renumber or plot.colony_id != former_colony_id:
                self._check_number_free(
                    plot.colony_id, new_number or plot.plot_number, exclude=plot.id
                )

        if renumber or plot.colony_id != former_colony_id:
            number = new_number or plot.plot_number
            self._flush_numbered(plot.colony_id, number, lambda: setattr(plot, "plot_number", number))
        else:
            self.session.flush()

        logger.info(
            "plot_updated",
            extra={
                "plot_id": str(plot.id),
                "plot_number": plot.plot_number,
                "fields": sorted(patch),
            },
        )
        if change is not None and change.changed:
            self._log_status_change(plot, change)

        if PlotStatus(plot.status) in (PlotStatus.BOOKED, PlotStatus.SOLD):
            self._bookings.ensure_booking(plot, identity.user_id)

        self._colonies.recount(plot.colony_id)
        if plot.colony_id != former_colony_id:
            self._colonies.recount(former_colony_id)
        return self._to_dto(plot)

    # -----------------------------------------------------------------
    # Delete
    # -----------------------------------------------------------------

    def delete_plot(self, plot_id: UUID, identity: Identity) -> None:
        """
        Delete a plot that is not sold and recount its colony.

        Bookings that referenced the plot keep their plot_number and lose
        the plot_id link.

        Raises:
            ForbiddenError, PlotNotFoundError, SoldPlotDeletionError.
        """
        with LogContext.bind(actor_id=identity.user_id, plot_id=plot_id):
            self._do_delete_plot(plot_id, identity)

    def _do_delete_plot(self, plot_id: UUID, identity: Identity) -> None:
        require_permission(identity, Permission.PLOT_DELETE)
        plot = self._get_by_id(plot_id)

        if plot.status == PlotStatus.SOLD:
            raise SoldPlotDeletionError(str(plot.id), plot.plot_number)

        colony_id = plot.colony_id
        plot_number = plot.plot_number
        self.session.delete(plot)
        self.session.flush()

        logger.info(
            "plot_deleted",
            extra={
                "plot_id": str(plot_id),
                "plot_number": plot_number,
                "colony_id": str(colony_id),
            },
        )
        self._colonies.recount(colony_id)

    def get_plot(self, plot_id: UUID) -> PlotInfo:
        return self._to_dto(self._get_by_id(plot_id))

    # -----------------------------------------------------------------
    # Internals
    # -----------------------------------------------------------------

    def _plan(
        self,
        plot: Plot | None,
        current: PlotStatus | str,
        target: PlotStatus,
        identity: Identity,
    ) -> StatusChange:
        plot_ref = str(plot.id) if plot is not None else "new"
        if target == PlotStatus.RESERVED and current != target and not identity.is_admin:
            raise InvalidStatusTransitionError(
                plot_ref,
                PlotStatus(current).value,
                target.value,
                "only an admin can reserve a plot",
            )

        change = plan_transition(current, target, manual=identity.is_admin)
        if isinstance(change, TransitionRejected):
            raise InvalidStatusTransitionError(
                plot_ref,
                change.from_status.value,
                change.to_status.value,
                change.reason,
            )
        if change.off_path:
            logger.warning(
                "plot_status_off_path",
                extra={
                    "plot_id": plot_ref,
                    "from_status": change.from_status.value,
                    "to_status": change.to_status.value,
                    "user_id": str(identity.user_id),
                },
            )
        return change

    def _log_status_change(self, plot: Plot, change: StatusChange) -> None:
        logger.info(
            "plot_status_changed",
            extra={
                "plot_id": str(plot.id),
                "plot_number": plot.plot_number,
                "from_status": change.from_status.value,
                "to_status": change.to_status.value,
            },
        )

    def _insert_numbered(
        self,
        colony_id: UUID,
        plot_number: str,
        persist: Callable[[str], Plot],
    ) -> Plot:
        self._check_number_free(colony_id, plot_number)
        holder: list[Plot] = []
        self._flush_numbered(colony_id, plot_number, lambda: holder.append(persist(plot_number)))
        return holder[0]

    def _check_number_free(
        self,
        colony_id: UUID,
        plot_number: str,
        exclude: UUID | None = None,
    ) -> None:
        stmt = select(Plot.id).where(
            Plot.colony_id == colony_id,
            Plot.plot_number == plot_number,
        )
        if exclude is not None:
            stmt = stmt.where(Plot.id != exclude)
        if self.session.execute(stmt).first() is not None:
            raise DuplicatePlotNumberError(str(colony_id), plot_number)

    def _flush_numbered(
        self,
        colony_id: UUID,
        plot_number: str,
        write: Callable[[], Any],
    ) -> None:
        # A concurrent writer can take the number between check and flush
        savepoint = self.session.begin_nested()
        try:
            write()
            self.session.flush()
        except IntegrityError as exc:
            savepoint.rollback()
            if is_unique_violation(exc, PLOT_NUMBER.constraint, PLOT_NUMBER.column):
                raise DuplicatePlotNumberError(str(colony_id), plot_number) from exc
            raise
        savepoint.commit()

    def _field_values(self, fields: Mapping[str, Any]) -> dict[str, Any]:
        """Validated column values for the plain fields present in ``fields``."""
        values: dict[str, Any] = {}

        for key in _TEXT_FIELDS:
            if key in fields:
                value = fields[key]
                values[key] = value.strip() if isinstance(value, str) else value

        for key in _OPTIONAL_AMOUNT_FIELDS:
            if key in fields:
                value = fields[key]
                values[key] = None if value is None else require_non_negative(value, key)

        for key in _DATE_FIELDS:
            if key in fields:
                values[key] = parse_datetime(fields[key], key)

        if "plot_type" in fields:
            values["plot_type"] = _enum_value(PlotType, fields["plot_type"], "plot_type")
        if "facing" in fields:
            values["facing"] = (
                None if fields["facing"] is None
                else _enum_value(Facing, fields["facing"], "facing").value
            )
        if "registry_status" in fields:
            values["registry_status"] = _enum_value(
                RegistryStatus, fields["registry_status"], "registry_status"
            )
        if "corner" in fields:
            values["corner"] = bool(fields["corner"])
        if "road_width" in fields:
            value = fields["road_width"]
            values["road_width"] = (
                Decimal("0") if value is None else require_non_negative(value, "road_width")
            )
        if "features" in fields:
            values["features"] = [str(f) for f in fields["features"] or []]
        if "dimensions" in fields:
            values["dimensions"] = _json_mapping(fields["dimensions"], "dimensions")
        if "customer_documents" in fields:
            values["customer_documents"] = _json_mapping(
                fields["customer_documents"], "customer_documents"
            )
        if "witnesses" in fields:
            values["witnesses"] = [
                _witness_record(w, index) for index, w in enumerate(fields["witnesses"] or [])
            ]
        if "selected_owner_ids" in fields:
            values["plot_owners"] = self._settings.snapshot_owners(
                fields["selected_owner_ids"] or []
            )
        return values

    def _get_by_id(self, plot_id: UUID) -> Plot:
        plot = self.session.get(Plot, plot_id)
        if plot is None:
            raise PlotNotFoundError(str(plot_id))
        return plot

    def _get_colony(self, colony_id: UUID) -> Colony:
        colony = self.session.get(Colony, colony_id) if colony_id is not None else None
        if colony is None:
            raise ColonyNotFoundError(str(colony_id))
        return colony

    def _get_property(self, property_id: UUID, colony_id: UUID) -> Property:
        prop = self.session.get(Property, property_id) if property_id is not None else None
        if prop is None:
            raise PropertyNotFoundError(str(property_id))
        if prop.colony_id is not None and prop.colony_id != colony_id:
            raise ValidationError("property_id", "property belongs to another colony")
        return prop

    def _to_dto(self, plot: Plot) -> PlotInfo:
        return PlotInfo(
            id=plot.id,
            plot_number=plot.plot_number,
            colony_id=plot.colony_id,
            property_id=plot.property_id,
            plot_type=PlotType(plot.plot_type).value,
            area=plot.area,
            price_per_sqft=plot.price_per_sqft,
            total_price=plot.total_price,
            status=PlotStatus(plot.status).value,
            dimensions=dict(plot.dimensions or {}),
            facing=plot.facing,
            corner=plot.corner,
            road_width=plot.road_width,
            features=tuple(plot.features or ()),
            customer_name=plot.customer_name,
            customer_number=plot.customer_number,
            final_price=plot.final_price,
            paid_amount=plot.paid_amount,
            sold_date=plot.sold_date,
            registry_status=RegistryStatus(plot.registry_status).value,
            registry_document=tuple(plot.registry_document or ()),
            plot_images=tuple(plot.plot_images or ()),
            plot_owners=tuple(plot.plot_owners or ()),
            witnesses=tuple(plot.witnesses or ()),
            notes=plot.notes,
        )


# ---------------------------------------------------------------------------
# Field helpers
# ---------------------------------------------------------------------------


def _flatten(items: Any) -> list[Any]:
    if isinstance(items, (list, tuple)):
        flat: list[Any] = []
        for item in items:
            flat.extend(_flatten(item))
        return flat
    return [items]


def clean_urls(items: Any) -> list[str]:
    """Flatten nested lists and keep http(s) URL strings, first occurrence wins."""
    seen: list[str] = []
    for item in _flatten(items if items is not None else []):
        if isinstance(item, str) and item.startswith(("http://", "https://")) and item not in seen:
            seen.append(item)
    return seen


def merge_url_list(
    current: Sequence[str],
    patch: Mapping[str, Any],
    field: str,
    keep_key: str,
    new_key: str,
) -> list[str] | None:
    """
    Merged URL list for an update, or None when the patch leaves it alone.

    The kept part is ``patch[keep_key]``, else ``patch[field]``, else the
    current list.
    """
    if keep_key not in patch and new_key not in patch and field not in patch:
        return None
    if keep_key in patch:
        kept = patch[keep_key]
    elif field in patch:
        kept = patch[field]
    else:
        kept = list(current or [])
    return clean_urls([kept, patch.get(new_key) or []])


def _reject_unknown(fields: Mapping[str, Any], allowed: frozenset[str] | set[str]) -> None:
    if "total_price" in fields:
        raise ValidationError("total_price", "derived from area and price_per_sqft")
    unknown = set(fields) - set(allowed)
    if unknown:
        name = sorted(unknown)[0]
        raise ValidationError(name, "unknown plot field")


def _check_paid_amount(
    paid_amount: Decimal | None,
    final_price: Decimal | None,
    total_price: Decimal,
) -> None:
    limit = final_price if final_price is not None else total_price
    if paid_amount is not None and paid_amount > limit:
        raise ValidationError("paid_amount", "paid amount cannot exceed the sale price")


def _enum_value(enum_cls, value: Any, field: str):
    try:
        return enum_cls(value.lower() if isinstance(value, str) else value)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationError(field, f"'{value}' is not one of: {allowed}") from None


def _json_mapping(value: Any, field: str) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ValidationError(field, "must be a mapping")
    return dict(value)


def _witness_record(witness: Mapping[str, Any], index: int) -> dict[str, Any]:
    name = (witness.get("name") or "").strip()
    if not name:
        raise ValidationError(f"witnesses[{index}].name", "each witness needs a name")
    record = {key: witness.get(key) for key in _WITNESS_FIELDS}
    record["name"] = name
    record["documents"] = _json_mapping(witness.get("documents"), f"witnesses[{index}].documents")
    return record
