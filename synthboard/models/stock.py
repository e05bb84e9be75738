"""Stock models: named collections of purchasable building blocks."""

import uuid

from sqlalchemy import ForeignKey, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from synthboard.models.base import Base, TimestampMixin, UUIDMixin


class Stock(Base, UUIDMixin, TimestampMixin):
    """A building-block library that routes are evaluated against."""

    __tablename__ = "stocks"

    name: Mapped[str] = mapped_column(String(200), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    items: Mapped[list["StockItem"]] = relationship(
        "StockItem",
        back_populates="stock",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class StockItem(Base, UUIDMixin):
    """Membership of one molecule in one stock."""

    __tablename__ = "stock_items"
    __table_args__ = (
        UniqueConstraint("stock_id", "molecule_id", name="uq_stock_molecule"),
    )

    stock_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("stocks.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    molecule_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("molecules.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    stock: Mapped["Stock"] = relationship("Stock", back_populates="items")
