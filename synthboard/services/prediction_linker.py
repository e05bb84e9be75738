"""Prediction linkage manager: ties shared routes to the run and target that produced them."""

from typing import Any
from uuid import UUID

from sqlalchemy import delete, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from synthboard.core.exceptions import (
    DuplicatePredictionError,
    MalformedInputError,
    NotFoundError,
    TargetMismatchError,
)
from synthboard.core.logging import get_logger
from synthboard.models.benchmark import BenchmarkTarget
from synthboard.models.prediction import PredictionRoute
from synthboard.models.run import PredictionRun

logger = get_logger(__name__)


class PredictionLinker:
    """Creates and clears PredictionRoute rows."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def _get_run(self, run_id: UUID) -> PredictionRun:
        run = await self.session.get(PredictionRun, run_id)
        if run is None:
            raise NotFoundError("PredictionRun", run_id)
        return run

    async def link(
        self,
        route_id: UUID,
        run_id: UUID,
        target_id: UUID,
        rank: int,
        metadata: dict[str, Any] | None = None,
    ) -> UUID:
        """Record that ``run_id`` predicted ``route_id`` for ``target_id`` at ``rank``.

        Args:
            route_id: Id of a stored Route.
            run_id: Id of the prediction run.
            target_id: Internal id of the benchmark target.
            rank: 1-indexed rank of the prediction.
            metadata: Free-form prediction metadata.

        Returns:
            Id of the new PredictionRoute.

        Raises:
            MalformedInputError: If ``rank`` is below 1.
            NotFoundError: If the run or the target does not exist.
            TargetMismatchError: If the target belongs to another benchmark.
            DuplicatePredictionError: If the run already links this route to
                the target, or already has a prediction at this rank.
        """
        if rank < 1:
            raise MalformedInputError(f"Prediction rank must be >= 1, got {rank}")

        run = await self._get_run(run_id)

        target = await self.session.get(BenchmarkTarget, target_id)
        if target is None:
            raise NotFoundError("BenchmarkTarget", target_id)
        if target.benchmark_set_id != run.benchmark_set_id:
            raise TargetMismatchError(target_id, run.benchmark_set_id)

        result = await self.session.execute(
            select(PredictionRoute.route_id, PredictionRoute.rank).where(
                PredictionRoute.prediction_run_id == run_id,
                PredictionRoute.target_id == target_id,
                or_(
                    PredictionRoute.route_id == route_id,
                    PredictionRoute.rank == rank,
                ),
            )
        )
        for existing_route_id, existing_rank in result.all():
            if existing_route_id == route_id:
                raise DuplicatePredictionError(
                    f"Run {run_id} already links route {route_id} to target {target_id}"
                )
            raise DuplicatePredictionError(
                f"Run {run_id} already has a rank {existing_rank} prediction for target {target_id}"
            )

        prediction = PredictionRoute(
            route_id=route_id,
            prediction_run_id=run_id,
            target_id=target_id,
            rank=rank,
            prediction_metadata=metadata,
        )
        try:
            async with self.session.begin_nested():
                self.session.add(prediction)
                await self.session.flush()
        except IntegrityError as e:
            raise DuplicatePredictionError(
                f"Concurrent prediction for run {run_id}, target {target_id}, rank {rank}"
            ) from e

        return prediction.id

    async def clear_run_predictions(self, run_id: UUID) -> int:
        """Delete every prediction of a run, with its solvability rows.

        Routes and molecules stay; they may be shared with other runs.

        Returns:
            Number of PredictionRoute rows deleted.
        """
        await self._get_run(run_id)

        result = await self.session.execute(
            delete(PredictionRoute).where(PredictionRoute.prediction_run_id == run_id)
        )
        logger.info("run_predictions_cleared", run_id=str(run_id), deleted=result.rowcount)
        return result.rowcount
