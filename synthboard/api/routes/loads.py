"""API routes for queueing data loads."""

from fastapi import APIRouter, status

from synthboard.core.logging import get_logger
from synthboard.schemas.benchmark_schema import BenchmarkLoadRequest, StockLoadRequest
from synthboard.schemas.run_schema import LoadAccepted, PredictionLoadRequest
from synthboard.worker.tasks import (
    load_benchmark_task,
    load_predictions_task,
    load_stock_task,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/loads", tags=["loads"])


@router.post(
    "/predictions",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=LoadAccepted,
)
async def queue_prediction_load(request: PredictionLoadRequest) -> LoadAccepted:
    """Queue a prediction load for async processing.

    Returns immediately with the task id; the task result is the load
    summary.

    Args:
        request: Benchmark, model and optional stock to load.

    Returns:
        LoadAccepted with the Celery task id and status 202 Accepted.
    """
    result = load_predictions_task.delay(request.model_dump())

    logger.info(
        "prediction_load_queued",
        task_id=result.id,
        benchmark=request.benchmark_name,
        model=request.model_name,
    )

    return LoadAccepted(
        task_id=result.id,
        message="Prediction load queued for processing",
    )


@router.post(
    "/benchmarks",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=LoadAccepted,
)
async def queue_benchmark_load(request: BenchmarkLoadRequest) -> LoadAccepted:
    """Queue loading a benchmark definition with its acceptable routes."""
    result = load_benchmark_task.delay(
        request.path,
        request.name,
        request.description,
        request.stock_name,
    )
    logger.info("benchmark_load_queued", task_id=result.id, path=request.path)

    return LoadAccepted(
        task_id=result.id,
        message="Benchmark load queued for processing",
    )


@router.post(
    "/stocks",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=LoadAccepted,
)
async def queue_stock_load(request: StockLoadRequest) -> LoadAccepted:
    """Queue loading building blocks into a stock."""
    result = load_stock_task.delay(request.path, request.name, request.description)
    logger.info("stock_load_queued", task_id=result.id, stock=request.name)

    return LoadAccepted(task_id=result.id, message="Stock load queued for processing")
