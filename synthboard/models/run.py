"""Model and PredictionRun models for tracking prediction executions."""

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from synthboard.models.base import Base, JSONType, TimestampMixin, UUIDMixin


class Algorithm(Base, UUIDMixin, TimestampMixin):
    """A retrosynthesis algorithm (e.g. Retro*, DirectMultiStep)."""

    __tablename__ = "algorithms"

    name: Mapped[str] = mapped_column(String(200), nullable=False, unique=True)
    paper: Mapped[str | None] = mapped_column(Text, nullable=True)


class ModelInstance(Base, UUIDMixin, TimestampMixin):
    """A concrete trained/configured model of an algorithm."""

    __tablename__ = "model_instances"

    algorithm_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("algorithms.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False, unique=True)
    version: Mapped[str | None] = mapped_column(String(50), nullable=True)

    instance_metadata: Mapped[dict[str, Any] | None] = mapped_column(
        "metadata",
        JSONType,
        nullable=True,
    )

    algorithm: Mapped["Algorithm"] = relationship("Algorithm")


class PredictionRun(Base, UUIDMixin, TimestampMixin):
    """All predictions of one model instance on one benchmark."""

    __tablename__ = "prediction_runs"
    __table_args__ = (
        UniqueConstraint("model_instance_id", "benchmark_set_id", name="uq_model_benchmark"),
    )

    model_instance_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("model_instances.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    benchmark_set_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("benchmark_sets.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    # Provenance
    retrocast_version: Mapped[str | None] = mapped_column(String(50), nullable=True)
    command_params: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    executed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    # Cost tracking
    hourly_cost: Mapped[float | None] = mapped_column(Float, nullable=True)
    total_cost: Mapped[float | None] = mapped_column(Float, nullable=True)

    # Derived aggregates, recomputed from prediction_routes
    total_routes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    avg_route_length: Mapped[float | None] = mapped_column(Float, nullable=True)

    model_instance: Mapped["ModelInstance"] = relationship("ModelInstance", lazy="joined")

    predictions: Mapped[list["PredictionRoute"]] = relationship(
        "PredictionRoute",
        back_populates="prediction_run",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


from synthboard.models.prediction import PredictionRoute
