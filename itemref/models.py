from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Index, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


ITEM_ID_LENGTH = 16


class Base(DeclarativeBase):
    """Base class for all ORM models."""


class TimestampMixin:
    """Common created/updated timestamp columns."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class Item(Base, TimestampMixin):
    """Canonical catalogue entry.

    ``quantity`` and ``feature`` keep the client's free text; quantities are
    canonicalised on every comparison rather than stored. Only ``id`` is
    unique: there is no constraint on the normalised
    (name, brand, quantity, feature) tuple.
    """

    __tablename__ = "item"
    __table_args__ = (Index("ix_item_brand_name", "brand", "name"),)

    id: Mapped[str] = mapped_column(String(ITEM_ID_LENGTH), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    brand: Mapped[str] = mapped_column(String(255), nullable=False)
    quantity: Mapped[Optional[str]] = mapped_column(String(64))
    feature: Mapped[Optional[str]] = mapped_column(String(512))
    product_color: Mapped[Optional[str]] = mapped_column("productColor", String(255))
    pic_website: Mapped[Optional[str]] = mapped_column("picWebsite", String(1024))

    def __repr__(self) -> str:
        return f"Item(id={self.id}, brand={self.brand}, name={self.name}, quantity={self.quantity})"
