"""Pydantic schemas for pre-computed run statistics.

Evaluators emit snake_case; the dashboard stores and serves camelCase.
Every model accepts either spelling and serializes to camelCase with
``by_alias=True``.
"""

import enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

SOLVABILITY_METRIC = "Solvability"
TOP_K_METRIC_PREFIX = "Top-"


class ReliabilityCode(str, enum.Enum):
    """Rule-of-thumb reliability of a bootstrap confidence interval."""

    OK = "OK"
    LOW_N = "LOW_N"
    EXTREME_P = "EXTREME_P"


class CamelModel(BaseModel):
    """Base model translating between snake_case and camelCase."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


class ReliabilityFlag(CamelModel):
    """Reliability verdict attached to a metric."""

    code: ReliabilityCode
    message: str


class MetricResult(CamelModel):
    """A proportion with its confidence interval."""

    value: float
    ci_lower: float
    ci_upper: float
    n_samples: int
    reliability: ReliabilityFlag


class StratifiedMetric(CamelModel):
    """A metric reported overall and per bucket (route length)."""

    metric_name: str | None = None
    overall: MetricResult
    by_group: dict[int, MetricResult] = Field(default_factory=dict)


class RankProbability(CamelModel):
    """Probability mass of the acceptable route appearing at ``rank``."""

    rank: int
    probability: float


class ModelStatistics(CamelModel):
    """All metrics of one run against one stock."""

    solvability: StratifiedMetric
    top_k_accuracy: dict[int, StratifiedMetric] | None = None
    rank_distribution: list[RankProbability] | None = None
    expected_rank: float | None = None

    def named_metrics(self) -> list[tuple[str, StratifiedMetric]]:
        """Metrics in storage order, keyed by their row ``metric_name``."""
        metrics = [(SOLVABILITY_METRIC, self.solvability)]
        for k in sorted(self.top_k_accuracy or {}):
            metrics.append((f"{TOP_K_METRIC_PREFIX}{k}", self.top_k_accuracy[k]))
        return metrics
