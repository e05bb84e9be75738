"""Benchmark models: benchmark sets, their targets and reference routes."""

import uuid
from typing import Any

from sqlalchemy import Boolean, ForeignKey, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from synthboard.models.base import Base, JSONType, TimestampMixin, UUIDMixin


class BenchmarkSet(Base, UUIDMixin, TimestampMixin):
    """A named collection of targets evaluated against one stock."""

    __tablename__ = "benchmark_sets"

    name: Mapped[str] = mapped_column(String(200), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    stock_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("stocks.id", ondelete="RESTRICT"),
        nullable=False,
    )

    # True once at least one acceptable route has been loaded
    has_acceptable_routes: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )

    series: Mapped[str] = mapped_column(String(50), nullable=False, default="OTHER")
    is_listed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    targets: Mapped[list["BenchmarkTarget"]] = relationship(
        "BenchmarkTarget",
        back_populates="benchmark_set",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class BenchmarkTarget(Base, UUIDMixin):
    """A target molecule of a benchmark, addressed by its external id."""

    __tablename__ = "benchmark_targets"
    __table_args__ = (
        UniqueConstraint("benchmark_set_id", "target_id", name="uq_benchmark_target"),
    )

    benchmark_set_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("benchmark_sets.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # External identifier used in exported files
    target_id: Mapped[str] = mapped_column(String(200), nullable=False)

    molecule_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("molecules.id", ondelete="RESTRICT"),
        nullable=False,
    )

    # Properties of the primary acceptable route, used for stratification
    route_length: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_convergent: Mapped[bool | None] = mapped_column(Boolean, nullable=True)

    target_metadata: Mapped[dict[str, Any] | None] = mapped_column(
        "metadata",
        JSONType,
        nullable=True,
    )

    benchmark_set: Mapped["BenchmarkSet"] = relationship(
        "BenchmarkSet",
        back_populates="targets",
    )

    acceptable_routes: Mapped[list["AcceptableRoute"]] = relationship(
        "AcceptableRoute",
        back_populates="target",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="AcceptableRoute.route_index",
    )


class AcceptableRoute(Base, UUIDMixin):
    """A reference route accepted as a correct answer for a target."""

    __tablename__ = "acceptable_routes"
    __table_args__ = (
        UniqueConstraint("benchmark_target_id", "route_index", name="uq_target_route_index"),
    )

    benchmark_target_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("benchmark_targets.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    route_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("routes.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Position in the target's acceptable_routes list; 0 is the primary route
    route_index: Mapped[int] = mapped_column(Integer, nullable=False)

    target: Mapped["BenchmarkTarget"] = relationship(
        "BenchmarkTarget",
        back_populates="acceptable_routes",
    )
