"""API routes for prediction runs."""

from typing import Annotated, Any
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from synthboard.core.database import get_async_session
from synthboard.core.logging import get_logger
from synthboard.schemas.run_schema import PredictionEntry, RunAggregates, RunSummary
from synthboard.services.catalog import Catalog
from synthboard.services.statistics_recorder import StatisticsRecorder

logger = get_logger(__name__)

router = APIRouter(prefix="/runs", tags=["runs"])

DBSession = Annotated[AsyncSession, Depends(get_async_session)]


@router.get(
    "/{run_id}",
    response_model=RunSummary,
)
async def get_run(
    run_id: UUID,
    db: DBSession,
) -> RunSummary:
    """Get a prediction run with its route aggregates.

    Args:
        run_id: UUID of the run.
        db: Database session.

    Returns:
        RunSummary including total_routes and avg_route_length.
    """
    run = await Catalog(db).get_run(run_id)
    return RunSummary.model_validate(run)


@router.get("/{run_id}/statistics/{stock_id}")
async def get_run_statistics(
    run_id: UUID,
    stock_id: UUID,
    db: DBSession,
) -> dict[str, Any]:
    """Get the stratified metrics of a run against one stock.

    The body uses the camelCase form stored for display.
    """
    await Catalog(db).get_run(run_id)
    statistics = await StatisticsRecorder(db).load_run_statistics(run_id, stock_id)
    return statistics.model_dump(mode="json", by_alias=True, exclude_none=True)


@router.get(
    "/{run_id}/targets/{target_id}/predictions",
    response_model=list[PredictionEntry],
)
async def get_target_predictions(
    run_id: UUID,
    target_id: UUID,
    db: DBSession,
) -> list[PredictionEntry]:
    """Get the ranked predictions of a run for one target.

    Args:
        run_id: UUID of the run.
        target_id: Internal UUID of the benchmark target.
        db: Database session.

    Returns:
        Predictions ordered by rank, each with route length, convergence
        and per-stock solvability.
    """
    return await Catalog(db).get_target_predictions(run_id, target_id)


@router.post(
    "/{run_id}/refresh",
    response_model=RunAggregates,
)
async def refresh_run(
    run_id: UUID,
    db: DBSession,
) -> RunAggregates:
    """Recompute the route aggregates of a run from its predictions."""
    aggregates = await StatisticsRecorder(db).refresh_run_aggregates(run_id)
    logger.info("run_refreshed", run_id=str(run_id), total_routes=aggregates.total_routes)
    return aggregates
