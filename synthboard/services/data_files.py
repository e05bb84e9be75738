"""Readers for the gzipped JSON exports consumed by the loaders."""

import gzip
from pathlib import Path
from typing import Any, TypeVar

from pydantic import TypeAdapter, ValidationError

from synthboard.core.exceptions import MalformedInputError, NotFoundError
from synthboard.core.logging import get_logger
from synthboard.schemas.benchmark_schema import BenchmarkDefinition, Manifest
from synthboard.schemas.evaluation_schema import EvaluationResults
from synthboard.schemas.route_schema import PredictedRoute
from synthboard.schemas.statistics_schema import ModelStatistics

logger = get_logger(__name__)

# Route entries are validated per target by parse_target_routes
RawRoutesByTarget = dict[str, list[dict[str, Any]]]
_RAW_ROUTES_ADAPTER = TypeAdapter(RawRoutesByTarget)
_TARGET_ROUTES_ADAPTER = TypeAdapter(list[PredictedRoute])

T = TypeVar("T")


def _read_bytes(path: Path) -> bytes:
    if not path.is_file():
        raise NotFoundError("File", str(path))
    if path.suffix == ".gz":
        with gzip.open(path, "rb") as f:
            return f.read()
    return path.read_bytes()


def _validate(adapter: TypeAdapter[T], path: Path) -> T:
    try:
        return adapter.validate_json(_read_bytes(path))
    except (ValidationError, OSError) as e:
        logger.error("data_file_invalid", path=str(path), error=str(e))
        raise MalformedInputError(f"Invalid data file {path}: {e}") from e


def load_routes(path: Path) -> RawRoutesByTarget:
    """Load ``{target_id: [route, ...]}`` from ``routes.json.gz``, unvalidated per route."""
    routes = _validate(_RAW_ROUTES_ADAPTER, path)
    logger.debug(
        "routes_file_loaded",
        path=str(path),
        targets=len(routes),
        routes=sum(len(r) for r in routes.values()),
    )
    return routes


def parse_target_routes(target_id: str, routes: list[dict[str, Any]]) -> list[PredictedRoute]:
    """Validate the routes of one target.

    Raises:
        MalformedInputError: If any route of the target is invalid.
    """
    try:
        return _TARGET_ROUTES_ADAPTER.validate_python(routes)
    except ValidationError as e:
        raise MalformedInputError(f"Invalid routes for target {target_id}: {e}") from e


def load_manifest(path: Path) -> Manifest | None:
    """Load the provenance manifest, or None when the file is absent."""
    if not path.is_file():
        return None
    return _validate(TypeAdapter(Manifest), path)


def load_evaluation(path: Path) -> EvaluationResults:
    """Load per-target evaluation results for one stock."""
    return _validate(TypeAdapter(EvaluationResults), path)


def load_statistics(path: Path) -> ModelStatistics:
    """Load pre-computed run statistics for one stock."""
    return _validate(TypeAdapter(ModelStatistics), path)


def load_benchmark_definition(path: Path) -> BenchmarkDefinition:
    """Load a benchmark definition file."""
    benchmark = _validate(TypeAdapter(BenchmarkDefinition), path)
    logger.info("benchmark_file_loaded", name=benchmark.name, targets=len(benchmark.targets))
    return benchmark
