"""
Module: colony_kernel.models.settings
Responsibility: ORM persistence for the singleton settings row: company
    details and the registries of plot owners (land sellers) and company
    witnesses whose identities are snapshotted onto plots.

Invariants enforced:
    - Exactly one row is used (SettingsService.get_instance creates it on
      first access).
    - Each owner / witness record carries a stable string ``id`` that plot
      snapshots refer back to as ``owner_id``.
    - legacy_owner_* columns are only populated on databases that predate
      the owners list; SettingsService.migrate_legacy_owner empties them.
"""

from typing import Any

from sqlalchemy import JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from colony_kernel.db.base import TimestampedBase


class Settings(TimestampedBase):
    """Company-wide settings and legal-identity registries."""

    __tablename__ = "settings"

    company_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(30), nullable=True)
    address: Mapped[str | None] = mapped_column(String(500), nullable=True)
    gst_number: Mapped[str | None] = mapped_column(String(30), nullable=True)
    pan_number: Mapped[str | None] = mapped_column(String(20), nullable=True)

    owners: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    company_witnesses: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON,
        nullable=False,
        default=list,
    )

    # Pre-owners-list schema
    legacy_owner_aadhar_number: Mapped[str | None] = mapped_column(String(20), nullable=True)
    legacy_owner_pan_number: Mapped[str | None] = mapped_column(String(20), nullable=True)
    legacy_owner_documents: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    @property
    def has_legacy_owner(self) -> bool:
        return bool(
            self.legacy_owner_aadhar_number
            or self.legacy_owner_pan_number
            or self.legacy_owner_documents
        )
