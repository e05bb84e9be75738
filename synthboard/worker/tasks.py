"""Celery tasks wrapping the loaders.

Each task runs its coroutine on a fresh event loop with its own engine, so
pooled connections never cross loops.
"""

import asyncio
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any, TypeVar
from uuid import UUID

from celery import Task
from sqlalchemy.ext.asyncio import AsyncSession

from synthboard.core.config import get_settings
from synthboard.core.database import build_engine, build_session_factory
from synthboard.core.logging import get_logger
from synthboard.schemas.run_schema import PredictionLoadRequest
from synthboard.services.benchmark_loader import BenchmarkLoader
from synthboard.services.prediction_loader import PredictionLoader
from synthboard.services.statistics_recorder import StatisticsRecorder
from synthboard.services.stock_loader import StockLoader
from synthboard.worker.celery_app import celery_app

logger = get_logger(__name__)
settings = get_settings()

T = TypeVar("T")


class LoadTask(Task):
    """Base task that logs failures with their arguments."""

    abstract = True

    def on_failure(
        self,
        exc: Exception,
        task_id: str,
        args: tuple,
        kwargs: dict,
        einfo: Any,
    ) -> None:
        """Log the failed load; the loaders already rolled back."""
        logger.error(
            "task_failed",
            task=self.name,
            task_id=task_id,
            error=str(exc),
            error_type=type(exc).__name__,
        )


async def _with_session(work: Callable[[AsyncSession], Awaitable[T]]) -> T:
    engine = build_engine(settings.database_url, echo=settings.database_echo)
    session_factory = build_session_factory(engine)
    try:
        async with session_factory() as session:
            try:
                result = await work(session)
                await session.commit()
                return result
            except Exception:
                await session.rollback()
                raise
    finally:
        await engine.dispose()


@celery_app.task(bind=True, base=LoadTask, name="synthboard.load_predictions")
def load_predictions_task(self: Task, payload: dict[str, Any]) -> dict[str, Any]:
    """Load a model's predictions for a benchmark.

    Args:
        payload: PredictionLoadRequest fields.

    Returns:
        LoadSummary as a dictionary.
    """
    request = PredictionLoadRequest.model_validate(payload)

    async def work(session: AsyncSession) -> dict[str, Any]:
        summary = await PredictionLoader(session, data_dir=settings.data_dir).load(request)
        return summary.to_dict()

    return asyncio.run(_with_session(work))


@celery_app.task(bind=True, base=LoadTask, name="synthboard.load_benchmark")
def load_benchmark_task(
    self: Task,
    path: str,
    name: str | None = None,
    description: str | None = None,
    stock_name: str | None = None,
) -> dict[str, Any]:
    """Load a benchmark definition file."""

    async def work(session: AsyncSession) -> dict[str, Any]:
        summary = await BenchmarkLoader(session).load(
            Path(path),
            name=name,
            description=description,
            stock_name=stock_name,
        )
        return {
            "benchmark_id": str(summary.benchmark_id),
            "targets_loaded": summary.targets_loaded,
            "targets_failed": summary.targets_failed,
            "routes_created": summary.routes_created,
            "routes_reused": summary.routes_reused,
            "failures": summary.failures,
        }

    return asyncio.run(_with_session(work))


@celery_app.task(bind=True, base=LoadTask, name="synthboard.load_stock")
def load_stock_task(
    self: Task,
    path: str,
    name: str,
    description: str | None = None,
) -> dict[str, Any]:
    """Load a stock file."""

    async def work(session: AsyncSession) -> dict[str, Any]:
        summary = await StockLoader(session).load(Path(path), name, description)
        return {
            "stock_id": str(summary.stock_id),
            "molecules_read": summary.molecules_read,
            "items_created": summary.items_created,
            "lines_skipped": summary.lines_skipped,
        }

    return asyncio.run(_with_session(work))


@celery_app.task(bind=True, base=LoadTask, name="synthboard.refresh_run")
def refresh_run_task(self: Task, run_id: str) -> dict[str, Any]:
    """Recompute the route aggregates of a run."""

    async def work(session: AsyncSession) -> dict[str, Any]:
        aggregates = await StatisticsRecorder(session).refresh_run_aggregates(UUID(run_id))
        return aggregates.model_dump(mode="json")

    return asyncio.run(_with_session(work))
