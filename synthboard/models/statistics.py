"""Run-level statistics models."""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, Index, Integer, String, Text, UniqueConstraint, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from synthboard.models.base import Base, UUIDMixin


class ModelRunStatistics(Base, UUIDMixin):
    """Pre-computed metrics of one run evaluated against one stock.

    ``statistics_json`` keeps the full metrics object for exact display;
    the metric groups are the queryable form of the same data.
    """

    __tablename__ = "model_run_statistics"
    __table_args__ = (
        UniqueConstraint("prediction_run_id", "stock_id", name="uq_statistics_run_stock"),
    )

    prediction_run_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("prediction_runs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    benchmark_set_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("benchmark_sets.id", ondelete="RESTRICT"),
        nullable=False,
    )

    stock_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("stocks.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    statistics_json: Mapped[str] = mapped_column(Text, nullable=False)

    computed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    metric_groups: Mapped[list["StratifiedMetricGroup"]] = relationship(
        "StratifiedMetricGroup",
        back_populates="statistics",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class StratifiedMetricGroup(Base, UUIDMixin):
    """One metric value, overall (group_key NULL) or for one bucket."""

    __tablename__ = "stratified_metric_groups"
    __table_args__ = (
        Index("ix_metric_groups_statistics_metric", "statistics_id", "metric_name"),
        Index("ix_metric_groups_metric_group", "metric_name", "group_key"),
    )

    statistics_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("model_run_statistics.id", ondelete="CASCADE"),
        nullable=False,
    )

    # "Solvability" or "Top-{k}"
    metric_name: Mapped[str] = mapped_column(String(50), nullable=False)

    # Stratification bucket (route length); NULL for the overall value
    group_key: Mapped[int | None] = mapped_column(Integer, nullable=True)

    value: Mapped[float] = mapped_column(Float, nullable=False)
    ci_lower: Mapped[float] = mapped_column(Float, nullable=False)
    ci_upper: Mapped[float] = mapped_column(Float, nullable=False)
    n_samples: Mapped[int] = mapped_column(Integer, nullable=False)
    reliability_code: Mapped[str] = mapped_column(String(20), nullable=False)
    reliability_message: Mapped[str] = mapped_column(Text, nullable=False)

    statistics: Mapped["ModelRunStatistics"] = relationship(
        "ModelRunStatistics",
        back_populates="metric_groups",
    )
