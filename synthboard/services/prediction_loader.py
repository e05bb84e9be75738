"""Prediction loader: ingests one model's exported predictions for a benchmark.

Expected layout under the data directory::

    3-processed/{benchmark}/{model}/routes.json.gz
    3-processed/{benchmark}/{model}/manifest.json          (optional)
    4-scored/{benchmark}/{model}/{stock}/evaluation.json.gz
    5-results/{benchmark}/{model}/{stock}/statistics.json.gz

Targets are processed one at a time and committed individually. A target
that fails is rolled back, reported in the summary and skipped.
"""

import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from synthboard.core.config import get_settings
from synthboard.core.exceptions import (
    MalformedInputError,
    NotFoundError,
    SynthboardError,
    TransientStoreError,
)
from synthboard.core.logging import get_logger, load_context, target_context
from synthboard.models.prediction import PredictionRoute
from synthboard.schemas.evaluation_schema import TargetEvaluation
from synthboard.schemas.run_schema import PredictionLoadRequest
from synthboard.services import data_files
from synthboard.services.catalog import Catalog
from synthboard.services.prediction_linker import PredictionLinker
from synthboard.services.route_registry import RouteRegistry
from synthboard.services.statistics_recorder import StatisticsRecorder

logger = get_logger(__name__)


@dataclass
class LoadSummary:
    """Counts reported after a load; failures map external target id to error."""

    run_id: UUID | None = None
    targets_processed: int = 0
    targets_failed: int = 0
    routes_created: int = 0
    routes_reused: int = 0
    predictions_linked: int = 0
    solvability_recorded: int = 0
    statistics_recorded: bool = False
    total_routes: int = 0
    avg_route_length: float = 0.0
    failures: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """JSON-friendly form, used as the task result."""
        return {
            "run_id": str(self.run_id) if self.run_id else None,
            "targets_processed": self.targets_processed,
            "targets_failed": self.targets_failed,
            "routes_created": self.routes_created,
            "routes_reused": self.routes_reused,
            "predictions_linked": self.predictions_linked,
            "solvability_recorded": self.solvability_recorded,
            "statistics_recorded": self.statistics_recorded,
            "total_routes": self.total_routes,
            "avg_route_length": self.avg_route_length,
            "failures": dict(self.failures),
        }


@dataclass
class _TargetCounts:
    routes_created: int = 0
    routes_reused: int = 0
    predictions_linked: int = 0


class PredictionLoader:
    """Drives the gate, linker and recorder over one model's exports."""

    def __init__(
        self,
        session: AsyncSession,
        data_dir: Path | None = None,
        progress_every: int | None = None,
    ) -> None:
        settings = get_settings()
        self.session = session
        self.data_dir = Path(data_dir) if data_dir is not None else settings.data_dir
        self.progress_every = progress_every or settings.loader_progress_every
        self.catalog = Catalog(session)
        self.registry = RouteRegistry(session)
        self.linker = PredictionLinker(session)
        self.recorder = StatisticsRecorder(session)

    def routes_path(self, benchmark: str, model: str) -> Path:
        return self.data_dir / "3-processed" / benchmark / model / "routes.json.gz"

    def manifest_path(self, benchmark: str, model: str) -> Path:
        return self.data_dir / "3-processed" / benchmark / model / "manifest.json"

    def evaluation_path(self, benchmark: str, model: str, stock: str) -> Path:
        return self.data_dir / "4-scored" / benchmark / model / stock / "evaluation.json.gz"

    def statistics_path(self, benchmark: str, model: str, stock: str) -> Path:
        return self.data_dir / "5-results" / benchmark / model / stock / "statistics.json.gz"

    async def _commit(self) -> None:
        try:
            await self.session.commit()
        except DBAPIError as e:
            await self.session.rollback()
            raise TransientStoreError(str(e)) from e

    async def load(self, request: PredictionLoadRequest) -> LoadSummary:
        """Load routes and, when a stock is given, evaluations and statistics.

        Args:
            request: What to load and the provenance to record.

        Returns:
            LoadSummary with per-item counts and the failing target ids.

        Raises:
            MalformedInputError: If only one of the stock options is given,
                or an input file is invalid.
            NotFoundError: If the benchmark, stock or an input file is missing.
            TransientStoreError: If the database fails outside a single target.
        """
        if bool(request.stock_path) != bool(request.stock_name):
            raise MalformedInputError("stock_path and stock_name must be given together")

        with_evaluation = bool(request.stock_path) and not request.routes_only
        bench, model = request.benchmark_name, request.model_name

        routes_file = self.routes_path(bench, model)
        if not routes_file.is_file():
            raise NotFoundError("File", str(routes_file))
        if with_evaluation:
            for path in (
                self.evaluation_path(bench, model, request.stock_path),
                self.statistics_path(bench, model, request.stock_path),
            ):
                if not path.is_file():
                    raise NotFoundError("File", str(path))

        start_time = time.perf_counter()

        benchmark = await self.catalog.get_benchmark_by_name(bench)
        benchmark_id = benchmark.id
        algorithm = await self.catalog.get_or_create_algorithm(
            request.algorithm_name,
            request.algorithm_paper,
        )
        model_instance = await self.catalog.get_or_create_model_instance(
            model,
            algorithm.id,
            request.model_version,
        )

        manifest = data_files.load_manifest(self.manifest_path(bench, model))
        run = await self.catalog.upsert_run(
            model_instance.id,
            benchmark_id,
            retrocast_version=manifest.retrocast_version if manifest else None,
            command_params=manifest.parameters if manifest and manifest.parameters else None,
            executed_at=manifest.created_at if manifest else None,
        )
        run_id = run.id

        stock_id: UUID | None = None
        if with_evaluation:
            stock = await self.catalog.get_stock_by_name(request.stock_name)
            stock_id = stock.id

        await self._commit()

        summary = LoadSummary(run_id=run_id)
        with load_context(run_id):
            logger.info(
                "prediction_load_started",
                benchmark=bench,
                model=model,
                stock=request.stock_name,
                routes_only=not with_evaluation,
            )

            await self._load_routes(routes_file, run_id, benchmark_id, summary)

            if with_evaluation:
                await self._load_evaluation(
                    self.evaluation_path(bench, model, request.stock_path),
                    run_id,
                    benchmark_id,
                    stock_id,
                    summary,
                )
                statistics = data_files.load_statistics(
                    self.statistics_path(bench, model, request.stock_path)
                )
                await self.recorder.record_run_statistics(
                    run_id,
                    benchmark_id,
                    stock_id,
                    statistics,
                )
                await self._commit()
                summary.statistics_recorded = True

            aggregates = await self.recorder.refresh_run_aggregates(run_id)
            await self._commit()
            summary.total_routes = aggregates.total_routes
            summary.avg_route_length = aggregates.avg_route_length

            logger.info(
                "prediction_load_completed",
                targets_processed=summary.targets_processed,
                targets_failed=summary.targets_failed,
                routes_created=summary.routes_created,
                routes_reused=summary.routes_reused,
                predictions_linked=summary.predictions_linked,
                solvability_recorded=summary.solvability_recorded,
                duration_s=round(time.perf_counter() - start_time, 2),
            )
            return summary

    async def _load_target(
        self,
        run_id: UUID,
        benchmark_id: UUID,
        external_id: str,
        raw_routes: list[dict[str, Any]],
    ) -> _TargetCounts:
        counts = _TargetCounts()
        routes = data_files.parse_target_routes(external_id, raw_routes)
        target = await self.catalog.find_target(benchmark_id, external_id)

        for route in routes:
            resolution = await self.registry.get_or_create_route(
                route.signature,
                route.content_hash,
                route.target,
            )
            if resolution.was_reused:
                counts.routes_reused += 1
            else:
                counts.routes_created += 1

            await self.linker.link(
                resolution.route_id,
                run_id,
                target.id,
                route.rank,
                route.metadata,
            )
            counts.predictions_linked += 1

        return counts

    async def _load_routes(
        self,
        path: Path,
        run_id: UUID,
        benchmark_id: UUID,
        summary: LoadSummary,
    ) -> None:
        routes_by_target = data_files.load_routes(path)
        total = len(routes_by_target)

        for i, (external_id, routes) in enumerate(routes_by_target.items()):
            if i % self.progress_every == 0:
                logger.info("processing_target", index=i + 1, total=total, target_id=external_id)

            with target_context(external_id):
                try:
                    counts = await self._load_target(run_id, benchmark_id, external_id, routes)
                    await self.session.commit()
                except SynthboardError as e:
                    await self.session.rollback()
                    summary.targets_failed += 1
                    summary.failures[external_id] = str(e)
                    logger.warning(
                        "target_load_failed",
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                    continue
                except DBAPIError as e:
                    await self.session.rollback()
                    logger.error("target_load_store_error", error=str(e))
                    raise TransientStoreError(str(e)) from e

            summary.targets_processed += 1
            summary.routes_created += counts.routes_created
            summary.routes_reused += counts.routes_reused
            summary.predictions_linked += counts.predictions_linked

    async def _record_target_evaluation(
        self,
        run_id: UUID,
        target_id: UUID,
        stock_id: UUID,
        evaluation: TargetEvaluation,
    ) -> int:
        result = await self.session.execute(
            select(PredictionRoute.rank, PredictionRoute.id).where(
                PredictionRoute.prediction_run_id == run_id,
                PredictionRoute.target_id == target_id,
            )
        )
        by_rank = dict(result.all())

        recorded = 0
        for scored in evaluation.routes:
            prediction_route_id = by_rank.get(scored.rank)
            if prediction_route_id is None:
                logger.warning(
                    "scored_route_rank_missing",
                    target_id=evaluation.target_id,
                    rank=scored.rank,
                )
                continue
            await self.recorder.record_solvability(
                prediction_route_id,
                stock_id,
                is_solvable=scored.is_solved,
                matches_acceptable=scored.matches_acceptable,
                matched_acceptable_index=scored.matched_acceptable_index,
            )
            recorded += 1
        return recorded

    async def _load_evaluation(
        self,
        path: Path,
        run_id: UUID,
        benchmark_id: UUID,
        stock_id: UUID,
        summary: LoadSummary,
    ) -> None:
        evaluation = data_files.load_evaluation(path)
        logger.info("evaluation_load_started", targets=len(evaluation.results))

        for external_id, target_evaluation in evaluation.results.items():
            try:
                target = await self.catalog.find_target(benchmark_id, external_id)
                recorded = await self._record_target_evaluation(
                    run_id,
                    target.id,
                    stock_id,
                    target_evaluation,
                )
                await self.session.commit()
            except SynthboardError as e:
                await self.session.rollback()
                logger.warning("evaluation_target_skipped", target_id=external_id, error=str(e))
                continue
            except DBAPIError as e:
                await self.session.rollback()
                raise TransientStoreError(str(e)) from e

            summary.solvability_recorded += recorded
