"""
SettingsService -- company settings and the owner / witness registries.

Responsibility:
    Owns the singleton Settings row, the registry of plot owners (land
    sellers) and company witnesses, and the snapshot copies of owner
    identities that plots carry.

Architecture position:
    Kernel > Services.  PlotService calls ``snapshot_owners`` when a plot
    selects owners.  ``migrate_legacy_owner`` is a startup step;
    ``resync_plot_owners`` backs the ``scripts/sync_owners.py`` batch.

Invariants enforced:
    - Reading settings never writes: ``get_instance`` only creates the row
      when none exists.  The legacy single-owner migration is a separate,
      explicit step.
    - Plot owner snapshots are frozen at selection.  Editing an owner in
      the registry does not touch plots; only ``resync_plot_owners``
      rewrites snapshots, and it logs every plot it changes.
    - Every owner and witness record carries a stable string ``id``.

Failure modes:
    - OwnerNotFoundError: snapshot or edit of an id not in the registry.
    - ValidationError: owner or witness without a name.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from colony_kernel.domain.permissions import Identity, Permission, require_permission
from colony_kernel.exceptions import OwnerNotFoundError, ValidationError
from colony_kernel.logging_config import get_logger
from colony_kernel.models.plot import Plot
from colony_kernel.models.settings import Settings
from colony_kernel.services.base import BaseService

logger = get_logger("services.settings")

LEGACY_OWNER_NAME = "Owner"

DOCUMENT_KEYS = ("aadhar_front", "aadhar_back", "pan_card", "passport_photo", "full_photo")

_HOLDER_FIELDS = (
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

_COMPANY_FIELDS = ("company_name", "email", "phone", "address", "gst_number", "pan_number")


@dataclass(frozen=True)
class ResyncReport:
    """Outcome of a plot owner snapshot resync."""

    plots_scanned: int
    plots_updated: int
    updated_plot_ids: tuple[UUID, ...]
    dry_run: bool


def owner_snapshot(owner: Mapping[str, Any]) -> dict[str, Any]:
    """Copy of one registry owner in the shape plots store."""
    documents = owner.get("documents") or {}
    snapshot = {"owner_id": owner["id"]}
    for key in _HOLDER_FIELDS:
        snapshot[f"owner_{key}"] = owner.get(key) or ""
    snapshot["owner_documents"] = {key: documents.get(key) or "" for key in DOCUMENT_KEYS}
    return snapshot


def _holder_record(fields: Mapping[str, Any], record_id: str | None = None) -> dict[str, Any]:
    name = (fields.get("name") or "").strip()
    if not name:
        raise ValidationError("name", "a name is required")
    record: dict[str, Any] = {"id": record_id or uuid4().hex}
    for key in _HOLDER_FIELDS:
        record[key] = fields.get(key)
    record["name"] = name
    documents = fields.get("documents") or {}
    record["documents"] = {key: documents.get(key) for key in DOCUMENT_KEYS if documents.get(key)}
    return record


class SettingsService(BaseService[Settings]):
    """Service for the settings singleton and its registries."""

    def __init__(self, session: Session):
        super().__init__(session)

    def get_instance(self) -> Settings:
        """Return the settings row, creating an empty one on first access."""
        settings = self.session.execute(
            select(Settings).order_by(Settings.created_at).limit(1)
        ).scalar_one_or_none()
        if settings is None:
            settings = Settings(company_name="", owners=[], company_witnesses=[])
            self.session.add(settings)
            self.session.flush()
            logger.info("settings_created", extra={"settings_id": str(settings.id)})
        return settings

    def migrate_legacy_owner(self) -> bool:
        """
        Convert the pre-registry single owner into a one-element owners list.

        Runs once at startup.  Does nothing when there is no legacy data or
        the owners list is already populated.

        Returns:
            True if a migration was performed.
        """
        settings = self.get_instance()
        if not settings.has_legacy_owner or settings.owners:
            return False

        owner = {
            "id": uuid4().hex,
            "name": LEGACY_OWNER_NAME,
            "aadhar_number": settings.legacy_owner_aadhar_number or "",
            "pan_number": settings.legacy_owner_pan_number or "",
            "documents": dict(settings.legacy_owner_documents or {}),
        }
        settings.owners = [owner]
        settings.legacy_owner_aadhar_number = None
        settings.legacy_owner_pan_number = None
        settings.legacy_owner_documents = None
        self.session.flush()

        logger.info("legacy_owner_migrated", extra={"owner_id": owner["id"]})
        return True

    def update_company(self, patch: Mapping[str, Any], identity: Identity) -> Settings:
        require_permission(identity, Permission.SETTINGS_UPDATE)
        settings = self.get_instance()
        for key in _COMPANY_FIELDS:
            if key in patch:
                setattr(settings, key, patch[key])
        self.session.flush()
        return settings

    # Owners

    def add_owner(self, fields: Mapping[str, Any], identity: Identity) -> dict[str, Any]:
        require_permission(identity, Permission.SETTINGS_UPDATE)
        settings = self.get_instance()
        owner = _holder_record(fields)
        settings.owners = [*settings.owners, owner]
        self.session.flush()
        logger.info("owner_added", extra={"owner_id": owner["id"]})
        return dict(owner)

    def update_owner(
        self,
        owner_id: str,
        patch: Mapping[str, Any],
        identity: Identity,
    ) -> dict[str, Any]:
        """
        Edit a registry owner.  Existing plot snapshots are not touched.

        Raises:
            OwnerNotFoundError: owner_id is not in the registry.
        """
        require_permission(identity, Permission.SETTINGS_UPDATE)
        settings = self.get_instance()
        owners = [dict(o) for o in settings.owners]
        for index, owner in enumerate(owners):
            if owner["id"] == owner_id:
                merged = {**owner, **patch}
                if "documents" in patch:
                    merged["documents"] = {**(owner.get("documents") or {}), **(patch["documents"] or {})}
                owners[index] = _holder_record(merged, record_id=owner_id)
                break
        else:
            raise OwnerNotFoundError(owner_id)

        settings.owners = owners
        self.session.flush()
        logger.info("owner_updated", extra={"owner_id": owner_id, "fields": sorted(patch)})
        return dict(owners[index])

    def remove_owner(self, owner_id: str, identity: Identity) -> None:
        require_permission(identity, Permission.SETTINGS_UPDATE)
        settings = self.get_instance()
        remaining = [o for o in settings.owners if o["id"] != owner_id]
        if len(remaining) == len(settings.owners):
            raise OwnerNotFoundError(owner_id)
        settings.owners = remaining
        self.session.flush()
        logger.info("owner_removed", extra={"owner_id": owner_id})

    def add_company_witness(self, fields: Mapping[str, Any], identity: Identity) -> dict[str, Any]:
        require_permission(identity, Permission.SETTINGS_UPDATE)
        settings = self.get_instance()
        witness = _holder_record(fields)
        settings.company_witnesses = [*settings.company_witnesses, witness]
        self.session.flush()
        return dict(witness)

    # Snapshots

    def snapshot_owners(self, owner_ids: Iterable[str]) -> list[dict[str, Any]]:
        """
        Resolve owner ids against the registry and copy them for a plot.

        Raises:
            OwnerNotFoundError: an id is not in the registry.
        """
        registry = {o["id"]: o for o in self.get_instance().owners}
        snapshots = []
        for owner_id in owner_ids:
            owner = registry.get(str(owner_id))
            if owner is None:
                raise OwnerNotFoundError(str(owner_id))
            snapshots.append(owner_snapshot(owner))
        return snapshots

    def resync_plot_owners(self, actor_id: UUID, dry_run: bool = False) -> ResyncReport:
        """
        Rewrite plot owner snapshots from the current registry.

        Only snapshots whose owner is still in the registry are refreshed;
        others are kept as they were.  A plot counts as updated only when
        its snapshot actually differs.

        Args:
            actor_id: Recorded as the plots' updater.
            dry_run: Report what would change without writing.
        """
        registry = {o["id"]: o for o in self.get_instance().owners}
        plots = self.session.execute(
            select(Plot).order_by(Plot.colony_id, Plot.plot_number)
        ).scalars().all()

        scanned = 0
        updated: list[UUID] = []
        for plot in plots:
            if not plot.plot_owners:
                continue
            scanned += 1
            fresh = [
                owner_snapshot(registry[snap.get("owner_id")])
                if snap.get("owner_id") in registry
                else snap
                for snap in plot.plot_owners
            ]
            if fresh == plot.plot_owners:
                continue

            updated.append(plot.id)
            logger.info(
                "plot_owner_snapshot_resynced",
                extra={
                    "plot_id": str(plot.id),
                    "plot_number": plot.plot_number,
                    "owner_ids": [s.get("owner_id") for s in fresh],
                    "dry_run": dry_run,
                    "actor_id": str(actor_id),
                },
            )
            if not dry_run:
                plot.plot_owners = fresh
                plot.updated_by_id = actor_id

        if not dry_run:
            self.session.flush()

        return ResyncReport(
            plots_scanned=scanned,
            plots_updated=len(updated),
            updated_plot_ids=tuple(updated),
            dry_run=dry_run,
        )
