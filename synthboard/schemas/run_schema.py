"""Pydantic schemas for prediction runs, routes and load jobs."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class RunSummary(BaseModel):
    """Response schema for a prediction run."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    model_instance_id: UUID
    benchmark_set_id: UUID
    retrocast_version: str | None = None
    executed_at: datetime | None = None
    hourly_cost: float | None = None
    total_cost: float | None = None
    total_routes: int = 0
    avg_route_length: float | None = None


class RunAggregates(BaseModel):
    """Aggregates recomputed from a run's prediction linkages."""

    run_id: UUID
    total_routes: int
    avg_route_length: float


class RouteTreeNode(BaseModel):
    """A route node with its children, as consumed by the tree visualizer."""

    id: UUID
    molecule_id: UUID
    smiles: str
    inchikey: str
    is_leaf: bool
    reaction_hash: str | None = None
    template: str | None = None
    metadata: dict[str, Any] | None = None
    children: list[RouteTreeNode] = Field(default_factory=list)


class RouteDetail(BaseModel):
    """A deduplicated route with its nested node tree."""

    id: UUID
    signature: str
    content_hash: str
    length: int
    is_convergent: bool
    tree: RouteTreeNode


class SolvabilityEntry(BaseModel):
    """Solvability of a prediction against one stock."""

    model_config = ConfigDict(from_attributes=True)

    stock_id: UUID
    is_solvable: bool
    matches_acceptable: bool
    matched_acceptable_index: int | None = None


class PredictionEntry(BaseModel):
    """One ranked prediction of a run for a target."""

    prediction_route_id: UUID
    route_id: UUID
    rank: int
    length: int
    is_convergent: bool
    metadata: dict[str, Any] | None = None
    solvability: list[SolvabilityEntry] = Field(default_factory=list)


class PredictionLoadRequest(BaseModel):
    """Request schema for queueing a prediction load."""

    benchmark_name: str
    model_name: str
    algorithm_name: str
    algorithm_paper: str | None = None
    model_version: str | None = None
    stock_path: str | None = Field(
        default=None,
        description="Stock directory name inside the scored/results folders",
    )
    stock_name: str | None = Field(
        default=None,
        description="Stock name as stored in the database",
    )
    routes_only: bool = False


class LoadAccepted(BaseModel):
    """Response schema for a queued load job."""

    task_id: str
    message: str


RouteTreeNode.model_rebuild()
