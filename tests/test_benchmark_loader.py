"""Tests for loading benchmark definition files."""

import gzip
import json
from pathlib import Path

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from conftest import ACETIC_ANHYDRIDE, AMINOPHENOL, NITROPHENOL, PARACETAMOL, leaf, product
from synthboard.core.exceptions import MalformedInputError, NotFoundError
from synthboard.models.benchmark import AcceptableRoute, BenchmarkSet, BenchmarkTarget
from synthboard.models.molecule import Molecule
from synthboard.models.route import Route
from synthboard.services.benchmark_loader import BenchmarkLoader


@pytest.fixture
def benchmark_file(tmp_path: Path) -> Path:
    """A three-target benchmark; the last target has an unparsable SMILES."""
    convergent = product(
        PARACETAMOL,
        leaf(ACETIC_ANHYDRIDE),
        product(AMINOPHENOL, leaf(NITROPHENOL)),
    )
    payload = {
        "name": "ref-cnv-3",
        "description": "Three reference targets",
        "stock_name": "buyables stock",
        "targets": {
            "paracetamol": {
                "id": "paracetamol",
                "smiles": PARACETAMOL[0],
                "inchi_key": PARACETAMOL[1],
                "metadata": {"source": "patent"},
                "acceptable_routes": [
                    {
                        "target": convergent,
                        "signature": "sig-reference",
                        "content_hash": "hash-reference",
                    }
                ],
            },
            "ethanol": {"id": "ethanol", "smiles": "CCO"},
            "broken": {"id": "broken", "smiles": "C1CC(N"},
        },
    }
    path = tmp_path / "ref-cnv-3.json.gz"
    with gzip.open(path, "wt", encoding="utf-8") as f:
        json.dump(payload, f)
    return path


class TestBenchmarkLoader:
    """Tests for BenchmarkLoader.load."""

    async def test_loads_targets_and_acceptable_routes(
        self,
        session: AsyncSession,
        stock,
        benchmark_file: Path,
    ) -> None:
        """Valid targets are stored, the broken one is reported."""
        summary = await BenchmarkLoader(session).load(benchmark_file)

        assert summary.targets_loaded == 2
        assert summary.targets_failed == 1
        assert set(summary.failures) == {"broken"}
        assert summary.routes_created == 1

        has_routes = await session.execute(
            select(BenchmarkSet.has_acceptable_routes).where(
                BenchmarkSet.id == summary.benchmark_id
            )
        )
        assert has_routes.scalar_one() is True

        targets = {
            t.target_id: t
            for t in (
                await session.execute(
                    select(BenchmarkTarget).where(
                        BenchmarkTarget.benchmark_set_id == summary.benchmark_id
                    )
                )
            ).scalars()
        }
        assert set(targets) == {"paracetamol", "ethanol"}
        assert targets["paracetamol"].route_length == 2
        assert targets["paracetamol"].is_convergent is True
        assert targets["paracetamol"].target_metadata == {"source": "patent"}
        assert targets["ethanol"].route_length is None

        acceptable = (await session.execute(select(AcceptableRoute))).scalar_one()
        assert acceptable.route_index == 0
        assert acceptable.benchmark_target_id == targets["paracetamol"].id

    async def test_derives_missing_identity_key(
        self,
        session: AsyncSession,
        stock,
        benchmark_file: Path,
    ) -> None:
        """A target without an InChIKey gets one from RDKit."""
        await BenchmarkLoader(session).load(benchmark_file)

        ethanol = await session.execute(
            select(Molecule).where(Molecule.inchikey == "LFQSCWFLJHTTHZ-UHFFFAOYSA-N")
        )
        assert ethanol.scalar_one().smiles == "CCO"

    async def test_acceptable_route_shared_with_predictions(
        self,
        session: AsyncSession,
        stock,
        benchmark_file: Path,
    ) -> None:
        """Loading the same definition under another name reuses the route."""
        loader = BenchmarkLoader(session)
        await loader.load(benchmark_file)
        summary = await loader.load(benchmark_file, name="ref-cnv-3-copy")

        assert summary.routes_created == 0
        assert summary.routes_reused == 1
        assert (await session.execute(select(func.count(Route.id)))).scalar_one() == 1

    async def test_existing_benchmark_rejected(
        self,
        session: AsyncSession,
        stock,
        benchmark_file: Path,
    ) -> None:
        loader = BenchmarkLoader(session)
        await loader.load(benchmark_file)

        with pytest.raises(MalformedInputError):
            await loader.load(benchmark_file)

    async def test_unknown_stock(self, session: AsyncSession, benchmark_file: Path) -> None:
        with pytest.raises(NotFoundError):
            await BenchmarkLoader(session).load(benchmark_file)

    async def test_overrides(
        self,
        session: AsyncSession,
        stock,
        benchmark_file: Path,
    ) -> None:
        """Name and description arguments win over the file."""
        summary = await BenchmarkLoader(session).load(
            benchmark_file,
            name="renamed",
            description="Custom description",
            stock_name="Buyables Stock",
        )

        benchmark = (
            await session.execute(
                select(BenchmarkSet.name, BenchmarkSet.description).where(
                    BenchmarkSet.id == summary.benchmark_id
                )
            )
        ).one()
        assert benchmark.name == "renamed"
        assert benchmark.description == "Custom description"

    async def test_missing_file(self, session: AsyncSession, tmp_path: Path) -> None:
        with pytest.raises(NotFoundError):
            await BenchmarkLoader(session).load(tmp_path / "absent.json.gz")
