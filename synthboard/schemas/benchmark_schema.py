"""Pydantic schemas for benchmark definition and load-job files."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from synthboard.schemas.route_schema import PredictedRoute


class AcceptableRouteInput(PredictedRoute):
    """A reference route; rank is meaningless here and defaults to 1."""

    rank: int = Field(default=1, ge=1)


class BenchmarkTargetInput(BaseModel):
    """A target of a benchmark definition file."""

    id: str
    smiles: str
    inchi_key: str | None = None
    metadata: dict[str, Any] | None = None
    acceptable_routes: list[AcceptableRouteInput] = Field(default_factory=list)


class BenchmarkDefinition(BaseModel):
    """Contents of a benchmark ``.json.gz`` file."""

    name: str
    description: str | None = None
    stock_name: str | None = None
    targets: dict[str, BenchmarkTargetInput] = Field(default_factory=dict)


class BenchmarkLoadRequest(BaseModel):
    """Request schema for queueing a benchmark load."""

    path: str = Field(description="Benchmark .json.gz file, as seen by the worker")
    name: str | None = None
    description: str | None = None
    stock_name: str | None = None


class StockLoadRequest(BaseModel):
    """Request schema for queueing a stock load."""

    path: str = Field(description="SMILES or CSV file, as seen by the worker")
    name: str
    description: str | None = None


class Manifest(BaseModel):
    """Provenance written next to processed routes."""

    schema_version: str | None = None
    retrocast_version: str | None = None
    created_at: datetime | None = None
    action: str | None = None
    parameters: dict[str, Any] = Field(default_factory=dict)
