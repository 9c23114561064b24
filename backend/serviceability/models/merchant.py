"""Authoritative merchant record."""

from __future__ import annotations

from sqlalchemy import Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from serviceability.models.base import Base


class Merchant(Base):
    """One row per merchant; ``pincodes_serviced`` holds the encoded pincode set."""

    __tablename__ = "merchants"

    # Ids come from the identifier generator; the primary key rejects duplicates.
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    business_category: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    phone_number: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    email: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    pincodes_serviced: Mapped[str] = mapped_column(
        Text, nullable=False, default=""
    )

    def __repr__(self) -> str:
        return f"Merchant(id={self.id!r}, name={self.name!r})"
