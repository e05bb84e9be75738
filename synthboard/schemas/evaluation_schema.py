"""Pydantic schemas for per-stock evaluation exports."""

from typing import Any

from pydantic import BaseModel, Field


class ScoredRoute(BaseModel):
    """Evaluation outcome of a single predicted route."""

    rank: int = Field(ge=1)
    is_solved: bool
    matches_acceptable: bool = False
    matched_acceptable_index: int | None = None


class TargetEvaluation(BaseModel):
    """The result of evaluating one target against one stock."""

    target_id: str
    routes: list[ScoredRoute] = Field(default_factory=list)
    is_solvable: bool = False
    acceptable_rank: int | None = None
    matched_route_length: int | None = None
    matched_route_is_convergent: bool | None = None


class EvaluationResults(BaseModel):
    """Evaluation of every target of a run against one stock."""

    model_name: str
    benchmark_name: str
    stock_name: str
    has_acceptable_routes: bool = False
    results: dict[str, TargetEvaluation] = Field(default_factory=dict)
    metadata: dict[str, Any] = Field(default_factory=dict)
