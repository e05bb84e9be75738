"""Tests for the prediction linkage manager."""

import uuid

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from synthboard.core.exceptions import (
    DuplicatePredictionError,
    MalformedInputError,
    NotFoundError,
    TargetMismatchError,
)
from synthboard.models.benchmark import BenchmarkSet
from synthboard.models.prediction import PredictionRoute, RouteSolvability
from synthboard.models.route import Route
from synthboard.services.prediction_linker import PredictionLinker
from synthboard.services.statistics_recorder import StatisticsRecorder


async def _route(session: AsyncSession, signature: str, length: int = 1) -> Route:
    route = Route(
        signature=signature,
        content_hash=f"hash-{signature}",
        length=length,
        is_convergent=False,
    )
    session.add(route)
    await session.flush()
    return route


async def _prediction_count(session: AsyncSession) -> int:
    return (await session.execute(select(func.count(PredictionRoute.id)))).scalar_one()


class TestLink:
    """Tests for PredictionLinker.link."""

    async def test_links_route(self, session: AsyncSession, run, target) -> None:
        """A valid linkage stores rank and metadata."""
        route = await _route(session, "sig-a")

        prediction_id = await PredictionLinker(session).link(
            route.id, run.id, target.id, rank=1, metadata={"score": 0.93}
        )
        await session.commit()

        prediction = await session.get(PredictionRoute, prediction_id)
        assert prediction.rank == 1
        assert prediction.route_id == route.id
        assert prediction.prediction_metadata == {"score": 0.93}

    async def test_several_ranks_per_target(self, session: AsyncSession, run, target) -> None:
        linker = PredictionLinker(session)
        for rank, signature in enumerate(["sig-a", "sig-b", "sig-c"], start=1):
            route = await _route(session, signature)
            await linker.link(route.id, run.id, target.id, rank=rank)

        assert await _prediction_count(session) == 3

    async def test_same_route_twice_rejected(self, session: AsyncSession, run, target) -> None:
        """A run cannot link the same route to a target at two ranks."""
        route = await _route(session, "sig-a")
        linker = PredictionLinker(session)
        await linker.link(route.id, run.id, target.id, rank=1)

        with pytest.raises(DuplicatePredictionError):
            await linker.link(route.id, run.id, target.id, rank=2)
        assert await _prediction_count(session) == 1

    async def test_rank_tie_rejected(self, session: AsyncSession, run, target) -> None:
        """Two routes at the same rank for one run and target is a duplicate."""
        first = await _route(session, "sig-a")
        second = await _route(session, "sig-b")
        linker = PredictionLinker(session)
        await linker.link(first.id, run.id, target.id, rank=1)

        with pytest.raises(DuplicatePredictionError):
            await linker.link(second.id, run.id, target.id, rank=1)

    async def test_other_run_may_share_route_and_rank(
        self,
        session: AsyncSession,
        run,
        run_factory,
        benchmark,
        target,
    ) -> None:
        other_run = await run_factory(benchmark.id, "other-model")
        route = await _route(session, "sig-a")
        linker = PredictionLinker(session)

        await linker.link(route.id, run.id, target.id, rank=1)
        await linker.link(route.id, other_run.id, target.id, rank=1)

        assert await _prediction_count(session) == 2

    @pytest.mark.parametrize("rank", [0, -3])
    async def test_rank_below_one(self, session: AsyncSession, run, target, rank: int) -> None:
        route = await _route(session, "sig-a")
        with pytest.raises(MalformedInputError):
            await PredictionLinker(session).link(route.id, run.id, target.id, rank=rank)

    async def test_unknown_run(self, session: AsyncSession, target) -> None:
        route = await _route(session, "sig-a")
        with pytest.raises(NotFoundError) as exc_info:
            await PredictionLinker(session).link(route.id, uuid.uuid4(), target.id, rank=1)
        assert exc_info.value.entity == "PredictionRun"

    async def test_unknown_target(self, session: AsyncSession, run) -> None:
        route = await _route(session, "sig-a")
        with pytest.raises(NotFoundError) as exc_info:
            await PredictionLinker(session).link(route.id, run.id, uuid.uuid4(), rank=1)
        assert exc_info.value.entity == "BenchmarkTarget"

    async def test_target_from_other_benchmark(
        self,
        session: AsyncSession,
        run,
        stock,
        target_factory,
    ) -> None:
        """Targets must belong to the benchmark the run was evaluated on."""
        other = BenchmarkSet(name="ref-lng-84", stock_id=stock.id)
        session.add(other)
        await session.commit()
        foreign_target = await target_factory(other.id, "target-001")
        route = await _route(session, "sig-a")

        with pytest.raises(TargetMismatchError):
            await PredictionLinker(session).link(route.id, run.id, foreign_target.id, rank=1)
        assert await _prediction_count(session) == 0


class TestClearRunPredictions:
    """Tests for clearing a run before a reload."""

    async def test_clears_only_that_run(
        self,
        session: AsyncSession,
        run,
        run_factory,
        benchmark,
        target,
        stock,
    ) -> None:
        """Predictions and solvability of the run go; routes and other runs stay."""
        other_run = await run_factory(benchmark.id, "other-model")
        route = await _route(session, "sig-a")
        linker = PredictionLinker(session)
        prediction_id = await linker.link(route.id, run.id, target.id, rank=1)
        await linker.link(route.id, other_run.id, target.id, rank=1)
        await StatisticsRecorder(session).record_solvability(
            prediction_id, stock.id, is_solvable=True, matches_acceptable=False
        )
        await session.commit()

        deleted = await linker.clear_run_predictions(run.id)
        await session.commit()

        assert deleted == 1
        assert await _prediction_count(session) == 1
        solvability_count = await session.execute(select(func.count(RouteSolvability.id)))
        assert solvability_count.scalar_one() == 0
        assert await session.get(Route, route.id) is not None

    async def test_reload_after_clear(self, session: AsyncSession, run, target) -> None:
        """Clearing allows the same route and rank to be linked again."""
        route = await _route(session, "sig-a")
        linker = PredictionLinker(session)
        await linker.link(route.id, run.id, target.id, rank=1)

        await linker.clear_run_predictions(run.id)
        await linker.link(route.id, run.id, target.id, rank=1)

        assert await _prediction_count(session) == 1

    async def test_unknown_run(self, session: AsyncSession) -> None:
        with pytest.raises(NotFoundError):
            await PredictionLinker(session).clear_run_predictions(uuid.uuid4())
