"""PredictionRoute and RouteSolvability models."""

import uuid
from typing import Any

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Index, Integer, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from synthboard.models.base import Base, JSONType, TimestampMixin, UUIDMixin


class PredictionRoute(Base, UUIDMixin, TimestampMixin):
    """Records that a run predicted a route for a target at a given rank.

    This is the row that belongs to a run; the Route itself may be shared
    with any number of other runs.
    """

    __tablename__ = "prediction_routes"
    __table_args__ = (
        UniqueConstraint(
            "route_id",
            "prediction_run_id",
            "target_id",
            name="uq_prediction_route_run_target",
        ),
        UniqueConstraint(
            "prediction_run_id",
            "target_id",
            "rank",
            name="uq_prediction_run_target_rank",
        ),
        Index("ix_prediction_routes_target_rank", "target_id", "rank"),
        CheckConstraint("rank >= 1", name="ck_prediction_routes_rank_positive"),
    )

    route_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("routes.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    prediction_run_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("prediction_runs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    target_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("benchmark_targets.id", ondelete="CASCADE"),
        nullable=False,
    )

    # 1-indexed position in the model's ranked output
    rank: Mapped[int] = mapped_column(Integer, nullable=False)

    prediction_metadata: Mapped[dict[str, Any] | None] = mapped_column(
        "metadata",
        JSONType,
        nullable=True,
    )

    route: Mapped["Route"] = relationship("Route", lazy="joined")

    prediction_run: Mapped["PredictionRun"] = relationship(
        "PredictionRun",
        back_populates="predictions",
    )

    solvabilities: Mapped[list["RouteSolvability"]] = relationship(
        "RouteSolvability",
        back_populates="prediction_route",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class RouteSolvability(Base, UUIDMixin, TimestampMixin):
    """Evaluation outcome of one prediction against one stock."""

    __tablename__ = "route_solvabilities"
    __table_args__ = (
        UniqueConstraint("prediction_route_id", "stock_id", name="uq_prediction_stock"),
    )

    prediction_route_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("prediction_routes.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    stock_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("stocks.id", ondelete="RESTRICT"),
        nullable=False,
    )

    is_solvable: Mapped[bool] = mapped_column(Boolean, nullable=False)
    matches_acceptable: Mapped[bool] = mapped_column(Boolean, nullable=False)
    matched_acceptable_index: Mapped[int | None] = mapped_column(Integer, nullable=True)

    prediction_route: Mapped["PredictionRoute"] = relationship(
        "PredictionRoute",
        back_populates="solvabilities",
    )


from synthboard.models.route import Route
from synthboard.models.run import PredictionRun
