"""Catalog lookups for the entities a load refers to by name or external id."""

from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from synthboard.core.exceptions import NotFoundError
from synthboard.core.logging import get_logger
from synthboard.models.benchmark import BenchmarkSet, BenchmarkTarget
from synthboard.models.prediction import PredictionRoute
from synthboard.models.route import Route, RouteNode
from synthboard.models.run import Algorithm, ModelInstance, PredictionRun
from synthboard.models.stock import Stock
from synthboard.schemas.run_schema import PredictionEntry, RouteDetail, SolvabilityEntry
from synthboard.services.route_tree import StoredNode, build_route_tree

logger = get_logger(__name__)


class Catalog:
    """Name and id based lookups, plus get-or-create for model provenance."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_benchmark_by_name(self, name: str) -> BenchmarkSet:
        """Fetch a benchmark by exact name."""
        result = await self.session.execute(
            select(BenchmarkSet).where(BenchmarkSet.name == name)
        )
        benchmark = result.scalar_one_or_none()
        if benchmark is None:
            raise NotFoundError("BenchmarkSet", name)
        return benchmark

    async def get_stock_by_name(self, name: str) -> Stock:
        """Fetch a stock by name, ignoring case."""
        result = await self.session.execute(
            select(Stock).where(func.lower(Stock.name) == name.lower())
        )
        stock = result.scalar_one_or_none()
        if stock is None:
            raise NotFoundError("Stock", name)
        return stock

    async def find_target(self, benchmark_id: UUID, external_id: str) -> BenchmarkTarget:
        """Resolve a target by the external id used in exported files."""
        result = await self.session.execute(
            select(BenchmarkTarget).where(
                BenchmarkTarget.benchmark_set_id == benchmark_id,
                BenchmarkTarget.target_id == external_id,
            )
        )
        target = result.scalar_one_or_none()
        if target is None:
            raise NotFoundError("BenchmarkTarget", external_id)
        return target

    async def get_or_create_algorithm(self, name: str, paper: str | None = None) -> Algorithm:
        """Fetch an algorithm by name, creating it if needed.

        An existing algorithm keeps its stored paper.
        """
        result = await self.session.execute(select(Algorithm).where(Algorithm.name == name))
        algorithm = result.scalar_one_or_none()
        if algorithm is None:
            algorithm = Algorithm(name=name, paper=paper)
            self.session.add(algorithm)
            await self.session.flush()
            logger.info("algorithm_created", name=name)
        return algorithm

    async def get_or_create_model_instance(
        self,
        name: str,
        algorithm_id: UUID,
        version: str | None = None,
    ) -> ModelInstance:
        """Fetch a model instance by name, creating it if needed.

        A given ``version`` overwrites the stored one.
        """
        result = await self.session.execute(
            select(ModelInstance).where(ModelInstance.name == name)
        )
        model = result.scalar_one_or_none()
        if model is None:
            model = ModelInstance(name=name, algorithm_id=algorithm_id, version=version)
            self.session.add(model)
            logger.info("model_instance_created", name=name)
        elif version is not None:
            model.version = version
        await self.session.flush()
        return model

    async def get_run(self, run_id: UUID) -> PredictionRun:
        """Fetch a prediction run by id."""
        run = await self.session.get(PredictionRun, run_id)
        if run is None:
            raise NotFoundError("PredictionRun", run_id)
        return run

    async def upsert_run(
        self,
        model_instance_id: UUID,
        benchmark_id: UUID,
        retrocast_version: str | None = None,
        command_params: dict[str, Any] | None = None,
        executed_at: datetime | None = None,
    ) -> PredictionRun:
        """Return the run of a model on a benchmark, creating it if needed.

        Provenance fields that are given overwrite the stored values.
        """
        result = await self.session.execute(
            select(PredictionRun).where(
                PredictionRun.model_instance_id == model_instance_id,
                PredictionRun.benchmark_set_id == benchmark_id,
            )
        )
        run = result.scalar_one_or_none()
        if run is None:
            run = PredictionRun(
                model_instance_id=model_instance_id,
                benchmark_set_id=benchmark_id,
                executed_at=executed_at or datetime.now(timezone.utc),
            )
            self.session.add(run)

        if retrocast_version is not None:
            run.retrocast_version = retrocast_version
        if command_params is not None:
            run.command_params = command_params
        if executed_at is not None:
            run.executed_at = executed_at

        await self.session.flush()
        return run

    async def get_route_detail(self, route_id: UUID) -> RouteDetail:
        """Read a route and rebuild its nested node tree."""
        route = await self.session.get(Route, route_id)
        if route is None:
            raise NotFoundError("Route", route_id)

        result = await self.session.execute(
            select(RouteNode)
            .where(RouteNode.route_id == route_id)
            .order_by(RouteNode.position, RouteNode.id)
        )
        stored = [
            StoredNode(
                id=node.id,
                parent_id=node.parent_id,
                molecule_id=node.molecule_id,
                smiles=node.molecule.smiles,
                inchikey=node.molecule.inchikey,
                is_leaf=node.is_leaf,
                reaction_hash=node.reaction_hash,
                template=node.template,
                metadata=node.step_metadata,
            )
            for node in result.scalars().all()
        ]

        return RouteDetail(
            id=route.id,
            signature=route.signature,
            content_hash=route.content_hash,
            length=route.length,
            is_convergent=route.is_convergent,
            tree=build_route_tree(stored),
        )

    async def get_target_predictions(
        self,
        run_id: UUID,
        target_id: UUID,
    ) -> list[PredictionEntry]:
        """Ranked predictions of a run for one target, with solvability."""
        await self.get_run(run_id)

        result = await self.session.execute(
            select(PredictionRoute)
            .options(selectinload(PredictionRoute.solvabilities))
            .where(
                PredictionRoute.prediction_run_id == run_id,
                PredictionRoute.target_id == target_id,
            )
            .order_by(PredictionRoute.rank)
        )

        return [
            PredictionEntry(
                prediction_route_id=prediction.id,
                route_id=prediction.route_id,
                rank=prediction.rank,
                length=prediction.route.length,
                is_convergent=prediction.route.is_convergent,
                metadata=prediction.prediction_metadata,
                solvability=[
                    SolvabilityEntry.model_validate(s) for s in prediction.solvabilities
                ],
            )
            for prediction in result.scalars().all()
        ]
