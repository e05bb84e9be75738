"""Shared fixtures: a throwaway SQLite database and catalog entities."""

from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import datetime, timezone
from pathlib import Path

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from synthboard.core.database import build_engine, build_session_factory
from synthboard.models import benchmark as _benchmark  # noqa: F401
from synthboard.models import molecule as _molecule  # noqa: F401
from synthboard.models import prediction as _prediction  # noqa: F401
from synthboard.models import route as _route  # noqa: F401
from synthboard.models import run as _run  # noqa: F401
from synthboard.models import statistics as _statistics  # noqa: F401
from synthboard.models import stock as _stock  # noqa: F401
from synthboard.models.base import Base
from synthboard.models.benchmark import BenchmarkSet, BenchmarkTarget
from synthboard.models.run import Algorithm, ModelInstance, PredictionRun
from synthboard.models.stock import Stock
from synthboard.schemas.route_schema import MoleculeNode
from synthboard.services.molecule_store import MoleculeStore
from synthboard.services.route_tree import MoleculeIdentity

PARACETAMOL = ("CC(=O)Nc1ccc(O)cc1", "RZVAJINKPMORJF-UHFFFAOYSA-N")
ACETIC_ANHYDRIDE = ("CC(=O)OC(C)=O", "WFDIJRYMOMRACN-UHFFFAOYSA-N")
AMINOPHENOL = ("Nc1ccc(O)cc1", "PLIKAWJENQZMHA-UHFFFAOYSA-N")
NITROPHENOL = ("O=[N+]([O-])c1ccc(O)cc1", "BTJIUGUIPKRLHP-UHFFFAOYSA-N")


def leaf(molecule: tuple[str, str]) -> dict:
    smiles, inchikey = molecule
    return {"smiles": smiles, "inchikey": inchikey}


def product(molecule: tuple[str, str], *reactants: dict) -> dict:
    smiles, inchikey = molecule
    return {
        "smiles": smiles,
        "inchikey": inchikey,
        "synthesis_step": {"reactants": list(reactants)},
    }


@pytest.fixture
def convergent_tree() -> MoleculeNode:
    """Paracetamol from acetic anhydride (leaf) and 4-aminophenol, itself from 4-nitrophenol."""
    return MoleculeNode.model_validate(
        product(
            PARACETAMOL,
            leaf(ACETIC_ANHYDRIDE),
            product(AMINOPHENOL, leaf(NITROPHENOL)),
        )
    )


@pytest.fixture
def linear_tree() -> MoleculeNode:
    """Three linear steps: T <- X <- Y <- Z."""
    return MoleculeNode.model_validate(
        product(
            ("CCCC(=O)O", "KEY-T"),
            product(
                ("CCCC=O", "KEY-X"),
                product(("CCCCO", "KEY-Y"), leaf(("CCCCBr", "KEY-Z"))),
            ),
        )
    )


@pytest.fixture
async def engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    """Create a fresh SQLite database with the full schema."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'synthboard.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return build_session_factory(engine)


@pytest.fixture
async def session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
async def stock(session: AsyncSession) -> Stock:
    stock = Stock(name="Buyables Stock", description="Purchasable building blocks")
    session.add(stock)
    await session.commit()
    return stock


@pytest.fixture
async def benchmark(session: AsyncSession, stock: Stock) -> BenchmarkSet:
    benchmark = BenchmarkSet(name="mkt-cnv-160", stock_id=stock.id)
    session.add(benchmark)
    await session.commit()
    return benchmark


@pytest.fixture
def target_factory(
    session: AsyncSession,
) -> Callable[..., Awaitable[BenchmarkTarget]]:
    """Create targets whose molecule goes through the identity store."""

    async def make(
        benchmark_id,
        external_id: str,
        molecule: tuple[str, str] = PARACETAMOL,
    ) -> BenchmarkTarget:
        smiles, inchikey = molecule
        ids = await MoleculeStore(session).resolve_or_create(
            [MoleculeIdentity(smiles=smiles, inchikey=inchikey)]
        )
        target = BenchmarkTarget(
            benchmark_set_id=benchmark_id,
            target_id=external_id,
            molecule_id=ids[inchikey],
        )
        session.add(target)
        await session.commit()
        return target

    return make


@pytest.fixture
async def target(target_factory, benchmark: BenchmarkSet) -> BenchmarkTarget:
    return await target_factory(benchmark.id, "target-001")


@pytest.fixture
def run_factory(session: AsyncSession) -> Callable[..., Awaitable[PredictionRun]]:
    """Create a run for a new model instance and algorithm."""

    async def make(benchmark_id, model_name: str) -> PredictionRun:
        algorithm = Algorithm(name=f"algo-{model_name}")
        session.add(algorithm)
        await session.flush()
        model = ModelInstance(algorithm_id=algorithm.id, name=model_name)
        session.add(model)
        await session.flush()
        run = PredictionRun(
            model_instance_id=model.id,
            benchmark_set_id=benchmark_id,
            executed_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
        )
        session.add(run)
        await session.commit()
        return run

    return make


@pytest.fixture
async def run(run_factory, benchmark: BenchmarkSet) -> PredictionRun:
    return await run_factory(benchmark.id, "dms-explorer-xl")
