"""Benchmark loader: creates a benchmark with its targets and acceptable routes."""

from dataclasses import dataclass, field
from pathlib import Path
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from synthboard.core.exceptions import MalformedInputError, SynthboardError, TransientStoreError
from synthboard.core.logging import get_logger
from synthboard.models.benchmark import AcceptableRoute, BenchmarkSet, BenchmarkTarget
from synthboard.schemas.benchmark_schema import BenchmarkTargetInput
from synthboard.services import data_files
from synthboard.services.catalog import Catalog
from synthboard.services.chemistry_tool import ChemistryTool
from synthboard.services.molecule_store import MoleculeStore
from synthboard.services.route_registry import RouteRegistry
from synthboard.services.route_tree import compute_route_length, is_route_convergent

logger = get_logger(__name__)


@dataclass
class BenchmarkLoadSummary:
    """Counts reported after a benchmark load."""

    benchmark_id: UUID
    targets_loaded: int = 0
    targets_failed: int = 0
    routes_created: int = 0
    routes_reused: int = 0
    failures: dict[str, str] = field(default_factory=dict)


class BenchmarkLoader:
    """Loads a benchmark definition file into a new BenchmarkSet."""

    def __init__(self, session: AsyncSession, chemistry: ChemistryTool | None = None) -> None:
        self.session = session
        self.chemistry = chemistry or ChemistryTool()
        self.catalog = Catalog(session)
        self.molecules = MoleculeStore(session)
        self.registry = RouteRegistry(session)

    async def load(
        self,
        path: Path,
        name: str | None = None,
        description: str | None = None,
        stock_name: str | None = None,
    ) -> BenchmarkLoadSummary:
        """Create a benchmark from ``path``.

        Args:
            path: Benchmark ``.json.gz`` file.
            name: Benchmark name; defaults to the name in the file.
            description: Overrides the file description.
            stock_name: Stock to evaluate against; overrides ``stock_name``
                from the file.

        Returns:
            BenchmarkLoadSummary with target and route counts.

        Raises:
            MalformedInputError: If the benchmark already exists or no stock
                is named.
            NotFoundError: If the file or the stock does not exist.
        """
        definition = data_files.load_benchmark_definition(Path(path))
        name = name or definition.name

        resolved_stock = stock_name or definition.stock_name
        if not resolved_stock:
            raise MalformedInputError(f"Benchmark {name} does not name a stock")
        stock = await self.catalog.get_stock_by_name(resolved_stock)

        existing = await self.session.execute(
            select(BenchmarkSet.id).where(BenchmarkSet.name == name)
        )
        if existing.scalar_one_or_none() is not None:
            raise MalformedInputError(f"Benchmark {name} already exists")

        benchmark = BenchmarkSet(
            name=name,
            description=description or definition.description,
            stock_id=stock.id,
        )
        self.session.add(benchmark)
        await self.session.flush()
        benchmark_id = benchmark.id
        await self.session.commit()

        summary = BenchmarkLoadSummary(benchmark_id=benchmark_id)
        acceptable_linked = 0

        for external_id, target in definition.targets.items():
            try:
                created, reused = await self._load_target(benchmark_id, external_id, target)
                await self.session.commit()
            except SynthboardError as e:
                await self.session.rollback()
                summary.targets_failed += 1
                summary.failures[external_id] = str(e)
                logger.warning("benchmark_target_failed", target_id=external_id, error=str(e))
                continue
            except DBAPIError as e:
                await self.session.rollback()
                raise TransientStoreError(str(e)) from e

            summary.targets_loaded += 1
            summary.routes_created += created
            summary.routes_reused += reused
            acceptable_linked += created + reused

        if acceptable_linked:
            await self.session.execute(
                update(BenchmarkSet)
                .where(BenchmarkSet.id == benchmark_id)
                .values(has_acceptable_routes=True)
            )
            await self.session.commit()

        logger.info(
            "benchmark_loaded",
            benchmark=name,
            targets_loaded=summary.targets_loaded,
            targets_failed=summary.targets_failed,
            routes_created=summary.routes_created,
            routes_reused=summary.routes_reused,
        )
        return summary

    async def _load_target(
        self,
        benchmark_id: UUID,
        external_id: str,
        target: BenchmarkTargetInput,
    ) -> tuple[int, int]:
        identity = self.chemistry.identity(target.smiles, target.inchi_key)
        molecule_ids = await self.molecules.resolve_or_create([identity])

        # The primary (first) acceptable route drives stratification
        route_length = None
        convergent = None
        if target.acceptable_routes:
            primary = target.acceptable_routes[0].target
            route_length = compute_route_length(primary)
            convergent = is_route_convergent(primary)

        benchmark_target = BenchmarkTarget(
            benchmark_set_id=benchmark_id,
            target_id=external_id,
            molecule_id=molecule_ids[identity.inchikey],
            route_length=route_length,
            is_convergent=convergent,
            target_metadata=target.metadata,
        )
        self.session.add(benchmark_target)
        await self.session.flush()

        created = reused = 0
        for route_index, route in enumerate(target.acceptable_routes):
            resolution = await self.registry.get_or_create_route(
                route.signature,
                route.content_hash,
                route.target,
            )
            if resolution.was_reused:
                reused += 1
            else:
                created += 1

            self.session.add(
                AcceptableRoute(
                    benchmark_target_id=benchmark_target.id,
                    route_id=resolution.route_id,
                    route_index=route_index,
                )
            )
        await self.session.flush()
        return created, reused
