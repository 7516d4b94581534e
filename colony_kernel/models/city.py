"""
Module: colony_kernel.models.city
Responsibility: ORM persistence for cities that colonies are located in.
"""

from sqlalchemy import Boolean, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from colony_kernel.db.base import TimestampedBase


class City(TimestampedBase):
    """A city grouping colonies. ``name`` is unique."""

    __tablename__ = "cities"

    __table_args__ = (
        UniqueConstraint("name", name="uq_city_name"),
    )

    name: Mapped[str] = mapped_column(String(120), nullable=False)

    state: Mapped[str | None] = mapped_column(String(120), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<City {self.name}>"
