"""Solvability and statistics recorder.

Handles the three derived-data writes of a load: per-prediction
solvability, run-level stratified metrics, and the run's route aggregates.
"""

from collections import defaultdict
from uuid import UUID

from pydantic import ValidationError
from sqlalchemy import delete, func, insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from synthboard.core.exceptions import NotFoundError
from synthboard.core.logging import get_logger
from synthboard.models.prediction import PredictionRoute, RouteSolvability
from synthboard.models.route import Route
from synthboard.models.run import PredictionRun
from synthboard.models.statistics import ModelRunStatistics, StratifiedMetricGroup
from synthboard.schemas.run_schema import RunAggregates
from synthboard.schemas.statistics_schema import (
    SOLVABILITY_METRIC,
    TOP_K_METRIC_PREFIX,
    MetricResult,
    ModelStatistics,
    ReliabilityFlag,
    StratifiedMetric,
)

logger = get_logger(__name__)


def _metric_row(
    statistics_id: UUID,
    metric_name: str,
    group_key: int | None,
    result: MetricResult,
) -> dict:
    return {
        "statistics_id": statistics_id,
        "metric_name": metric_name,
        "group_key": group_key,
        "value": result.value,
        "ci_lower": result.ci_lower,
        "ci_upper": result.ci_upper,
        "n_samples": result.n_samples,
        "reliability_code": result.reliability.code.value,
        "reliability_message": result.reliability.message,
    }


def _row_to_result(row: StratifiedMetricGroup) -> MetricResult:
    return MetricResult(
        value=row.value,
        ci_lower=row.ci_lower,
        ci_upper=row.ci_upper,
        n_samples=row.n_samples,
        reliability=ReliabilityFlag(
            code=row.reliability_code,
            message=row.reliability_message,
        ),
    )


def statistics_from_rows(rows: list[StratifiedMetricGroup]) -> ModelStatistics | None:
    """Rebuild a metrics object from its stored metric rows.

    Rank distribution and expected rank only live in the JSON blob and are
    not recovered. Returns None when there is no overall Solvability row.
    """
    overall: dict[str, MetricResult] = {}
    groups: dict[str, dict[int, MetricResult]] = defaultdict(dict)
    for row in rows:
        if row.group_key is None:
            overall[row.metric_name] = _row_to_result(row)
        else:
            groups[row.metric_name][row.group_key] = _row_to_result(row)

    if SOLVABILITY_METRIC not in overall:
        return None

    def stratified(name: str) -> StratifiedMetric:
        return StratifiedMetric(
            metric_name=name,
            overall=overall[name],
            by_group=groups.get(name, {}),
        )

    top_k: dict[int, StratifiedMetric] = {}
    for name in overall:
        if name.startswith(TOP_K_METRIC_PREFIX):
            suffix = name[len(TOP_K_METRIC_PREFIX):]
            if suffix.isdigit():
                top_k[int(suffix)] = stratified(name)

    return ModelStatistics(
        solvability=stratified(SOLVABILITY_METRIC),
        top_k_accuracy=top_k or None,
    )


class StatisticsRecorder:
    """Writes solvability, run statistics and run aggregates."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def record_solvability(
        self,
        prediction_route_id: UUID,
        stock_id: UUID,
        is_solvable: bool,
        matches_acceptable: bool,
        matched_acceptable_index: int | None = None,
    ) -> UUID:
        """Upsert the evaluation of one prediction against one stock.

        Returns:
            Id of the RouteSolvability row.
        """
        result = await self.session.execute(
            select(RouteSolvability).where(
                RouteSolvability.prediction_route_id == prediction_route_id,
                RouteSolvability.stock_id == stock_id,
            )
        )
        solvability = result.scalar_one_or_none()

        if solvability is None:
            solvability = RouteSolvability(
                prediction_route_id=prediction_route_id,
                stock_id=stock_id,
            )
            self.session.add(solvability)

        solvability.is_solvable = is_solvable
        solvability.matches_acceptable = matches_acceptable
        solvability.matched_acceptable_index = matched_acceptable_index
        await self.session.flush()
        return solvability.id

    async def record_run_statistics(
        self,
        run_id: UUID,
        benchmark_id: UUID,
        stock_id: UUID,
        statistics: ModelStatistics,
    ) -> UUID:
        """Replace the statistics of ``run_id`` against ``stock_id``.

        The previous statistics and their metric rows are deleted and the
        new ones inserted in one savepoint; readers never see a mix.

        Args:
            run_id: Id of the prediction run.
            benchmark_id: Benchmark the run was evaluated on.
            stock_id: Stock the metrics were computed against.
            statistics: Pre-computed metrics.

        Returns:
            Id of the new ModelRunStatistics row.
        """
        blob = statistics.model_dump_json(by_alias=True, exclude_none=True)

        async with self.session.begin_nested():
            await self.session.execute(
                delete(ModelRunStatistics).where(
                    ModelRunStatistics.prediction_run_id == run_id,
                    ModelRunStatistics.stock_id == stock_id,
                )
            )

            record = ModelRunStatistics(
                prediction_run_id=run_id,
                benchmark_set_id=benchmark_id,
                stock_id=stock_id,
                statistics_json=blob,
            )
            self.session.add(record)
            await self.session.flush()

            rows = []
            for name, metric in statistics.named_metrics():
                rows.append(_metric_row(record.id, name, None, metric.overall))
                for group_key, result in sorted(metric.by_group.items()):
                    rows.append(_metric_row(record.id, name, group_key, result))
            await self.session.execute(insert(StratifiedMetricGroup), rows)

        logger.info(
            "run_statistics_recorded",
            run_id=str(run_id),
            stock_id=str(stock_id),
            metric_rows=len(rows),
        )
        return record.id

    async def load_run_statistics(self, run_id: UUID, stock_id: UUID) -> ModelStatistics:
        """Read the statistics of a run against a stock.

        Falls back to the metric rows when the stored blob cannot be parsed.

        Raises:
            NotFoundError: If no statistics were recorded.
        """
        result = await self.session.execute(
            select(ModelRunStatistics).where(
                ModelRunStatistics.prediction_run_id == run_id,
                ModelRunStatistics.stock_id == stock_id,
            )
        )
        record = result.scalar_one_or_none()
        if record is None:
            raise NotFoundError("ModelRunStatistics", f"{run_id}/{stock_id}")

        try:
            return ModelStatistics.model_validate_json(record.statistics_json)
        except ValidationError:
            logger.warning("statistics_blob_unreadable", statistics_id=str(record.id))

        rows = await self.session.execute(
            select(StratifiedMetricGroup).where(StratifiedMetricGroup.statistics_id == record.id)
        )
        statistics = statistics_from_rows(list(rows.scalars().all()))
        if statistics is None:
            raise NotFoundError("ModelRunStatistics", f"{run_id}/{stock_id}")
        return statistics

    async def refresh_run_aggregates(self, run_id: UUID) -> RunAggregates:
        """Recompute total routes and mean route length of a run.

        Counts prediction linkages, so a route predicted for two targets
        counts twice.

        Raises:
            NotFoundError: If the run does not exist.
        """
        run = await self.session.get(PredictionRun, run_id)
        if run is None:
            raise NotFoundError("PredictionRun", run_id)

        result = await self.session.execute(
            select(func.count(PredictionRoute.id), func.avg(Route.length))
            .join(Route, Route.id == PredictionRoute.route_id)
            .where(PredictionRoute.prediction_run_id == run_id)
        )
        total, avg_length = result.one()

        run.total_routes = total
        run.avg_route_length = float(avg_length) if avg_length is not None else 0.0
        await self.session.flush()

        logger.info(
            "run_aggregates_refreshed",
            run_id=str(run_id),
            total_routes=run.total_routes,
            avg_route_length=run.avg_route_length,
        )
        return RunAggregates(
            run_id=run_id,
            total_routes=run.total_routes,
            avg_route_length=run.avg_route_length,
        )
