"""
SQLAlchemy ORM models for persistent storage.

Cards, containers (decks and binders), the allocations that bind them,
legacy free-standing wishlist entries and durable operation checkpoints.
"""

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class CardDB(Base):
    """
    A card record in the user's inventory.

    Cards with status "wishlist" describe demand rather than supply; their
    quantity is the number of copies wanted.
    """

    __tablename__ = "cards"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), index=True)
    edition: Mapped[str] = mapped_column(String(16), default="")
    quantity: Mapped[int] = mapped_column(Integer, default=1)
    status: Mapped[str] = mapped_column(String(16), default="collection", index=True)
    price: Mapped[float] = mapped_column(Float, default=0.0)
    foil: Mapped[bool] = mapped_column(Boolean, default=False)
    condition: Mapped[str] = mapped_column(String(4), default="NM")
    language: Mapped[str] = mapped_column(String(8), default="en")
    scryfall_id: Mapped[str] = mapped_column(String(64), default="", index=True)
    image: Mapped[str] = mapped_column(Text, default="")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    def __repr__(self) -> str:
        return f"<CardDB(id={self.id}, name={self.name}, qty={self.quantity}, {self.status})>"


class ContainerDB(Base):
    """
    A deck or binder.

    Holds no card data itself: contents are AllocationDB rows that point at
    CardDB records. `stats` is derived and recomputed on every change.
    """

    __tablename__ = "containers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    kind: Mapped[str] = mapped_column(String(16), index=True)
    name: Mapped[str] = mapped_column(String(255))
    description: Mapped[str] = mapped_column(Text, default="")
    format: Mapped[str | None] = mapped_column(String(32), nullable=True)
    commander: Mapped[str | None] = mapped_column(String(255), nullable=True)
    stats: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    def __repr__(self) -> str:
        return f"<ContainerDB(id={self.id}, kind={self.kind}, name={self.name})>"


class AllocationDB(Base):
    """A claim on `quantity` copies of a card, scoped to one container section."""

    __tablename__ = "allocations"
    __table_args__ = (
        UniqueConstraint("card_id", "container_id", "section", name="uq_allocation_slot"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    card_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("cards.id", ondelete="CASCADE"), index=True
    )
    container_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("containers.id", ondelete="CASCADE"), index=True
    )
    section: Mapped[str] = mapped_column(String(16), default="mainboard")
    quantity: Mapped[int] = mapped_column(Integer)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    added_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    def __repr__(self) -> str:
        return (
            f"<AllocationDB(card={self.card_id}, container={self.container_id}, "
            f"{self.section}, qty={self.quantity})>"
        )


class WishlistItemDB(Base):
    """
    Legacy free-standing wishlist entry stored directly on a container.

    Older decks recorded missing cards here instead of as wishlist-status
    cards. They are still read and counted in container stats.
    """

    __tablename__ = "container_wishlist"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    container_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("containers.id", ondelete="CASCADE"), index=True
    )
    name: Mapped[str] = mapped_column(String(255))
    edition: Mapped[str] = mapped_column(String(16), default="")
    scryfall_id: Mapped[str] = mapped_column(String(64), default="")
    quantity: Mapped[int] = mapped_column(Integer)
    section: Mapped[str] = mapped_column(String(16), default="mainboard")
    price: Mapped[float] = mapped_column(Float, default=0.0)
    foil: Mapped[bool] = mapped_column(Boolean, default=False)
    condition: Mapped[str] = mapped_column(String(4), default="NM")
    image: Mapped[str] = mapped_column(Text, default="")
    added_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class CheckpointDB(Base):
    """Durable checkpoint record, one row per operation kind."""

    __tablename__ = "checkpoints"

    kind: Mapped[str] = mapped_column(String(16), primary_key=True)
    payload: Mapped[str] = mapped_column(Text)
    size_bytes: Mapped[int] = mapped_column(Integer, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )
