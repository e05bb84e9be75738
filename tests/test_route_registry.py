"""Tests for route materialization and the deduplication gate."""

import uuid

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from conftest import ACETIC_ANHYDRIDE, AMINOPHENOL, PARACETAMOL, leaf, product
from synthboard.core.exceptions import MalformedInputError, MalformedTreeError, NotFoundError
from synthboard.models.molecule import Molecule
from synthboard.models.prediction import PredictionRoute
from synthboard.models.route import Route, RouteNode
from synthboard.schemas.route_schema import MoleculeNode
from synthboard.schemas.run_schema import RouteTreeNode
from synthboard.services.catalog import Catalog
from synthboard.services.prediction_linker import PredictionLinker
from synthboard.services.route_registry import RouteRegistry
from synthboard.services.route_tree import NodeDescriptor, MoleculeIdentity
from synthboard.services.tree_materializer import TreeMaterializer


async def _count(session: AsyncSession, column) -> int:
    return (await session.execute(select(func.count(column)))).scalar_one()


def _shape(node) -> tuple:
    """Order-independent structure of a tree: (key, is_leaf, sorted children)."""
    if isinstance(node, RouteTreeNode):
        return (node.inchikey, node.is_leaf, tuple(sorted(_shape(c) for c in node.children)))
    return (
        node.inchikey,
        node.treated_as_leaf,
        tuple(sorted(_shape(c) for c in node.reactants)),
    )


class TestTreeMaterializer:
    """Tests for writing node trees."""

    async def test_materializes_every_node(
        self,
        session: AsyncSession,
        convergent_tree: MoleculeNode,
    ) -> None:
        """One row per node, root without parent, molecules created once."""
        route = Route(signature="sig", content_hash="hash", length=2, is_convergent=True)
        session.add(route)
        await session.flush()

        tree = await TreeMaterializer(session).materialize(convergent_tree, route.id)
        await session.commit()

        assert tree.node_count == 4
        nodes = (await session.execute(select(RouteNode))).scalars().all()
        assert len(nodes) == 4
        roots = [n for n in nodes if n.parent_id is None]
        assert [n.id for n in roots] == [tree.root_node_id]
        assert roots[0].molecule_id == tree.root_molecule_id
        assert await _count(session, Molecule.id) == 4

    async def test_leaf_flags_persisted(
        self,
        session: AsyncSession,
        convergent_tree: MoleculeNode,
    ) -> None:
        """is_leaf is true exactly for nodes without children."""
        route = Route(signature="sig", content_hash="hash", length=2, is_convergent=True)
        session.add(route)
        await session.flush()
        await TreeMaterializer(session).materialize(convergent_tree, route.id)

        nodes = (await session.execute(select(RouteNode))).scalars().all()
        parents = {n.parent_id for n in nodes}
        for node in nodes:
            assert node.is_leaf == (node.id not in parents)
            assert (node.reaction_hash is None) == node.is_leaf

    async def test_unreachable_nodes_rejected_before_writing(self, session: AsyncSession) -> None:
        """Descriptors pointing outside the tree are rejected without writes."""
        route = Route(signature="sig", content_hash="hash", length=0, is_convergent=False)
        session.add(route)
        await session.flush()

        nodes = [
            NodeDescriptor(temp_id=0, parent_temp_id=None, inchikey="A", is_leaf=False),
            NodeDescriptor(temp_id=1, parent_temp_id=5, inchikey="B", is_leaf=True),
        ]
        molecules = [MoleculeIdentity("C", "A"), MoleculeIdentity("N", "B")]

        with pytest.raises(MalformedTreeError):
            await TreeMaterializer(session).materialize_descriptors(nodes, molecules, route.id)
        assert await _count(session, RouteNode.id) == 0
        assert await _count(session, Molecule.id) == 0


class TestRouteRegistry:
    """Tests for the signature-keyed deduplication gate."""

    async def test_creates_route_with_derived_properties(
        self,
        session: AsyncSession,
        convergent_tree: MoleculeNode,
    ) -> None:
        """A new signature creates a Route with length and convergence."""
        resolution = await RouteRegistry(session).get_or_create_route(
            "sig-1", "hash-1", convergent_tree
        )
        await session.commit()

        assert resolution.was_reused is False
        route = await session.get(Route, resolution.route_id)
        assert route.length == 2
        assert route.is_convergent is True
        assert route.signature == "sig-1"
        assert route.content_hash == "hash-1"

    async def test_same_signature_reused(
        self,
        session: AsyncSession,
        convergent_tree: MoleculeNode,
    ) -> None:
        """Loading the same signature twice keeps one route and one node set."""
        registry = RouteRegistry(session)
        first = await registry.get_or_create_route("sig-1", "hash-1", convergent_tree)
        second = await registry.get_or_create_route("sig-1", "hash-1", convergent_tree)
        await session.commit()

        assert second.was_reused is True
        assert second.route_id == first.route_id
        assert await _count(session, Route.id) == 1
        assert await _count(session, RouteNode.id) == 4

    async def test_signature_used_verbatim(
        self,
        session: AsyncSession,
        convergent_tree: MoleculeNode,
    ) -> None:
        """Signatures differing only in case are distinct routes."""
        registry = RouteRegistry(session)
        first = await registry.get_or_create_route("SIG", "hash-1", convergent_tree)
        second = await registry.get_or_create_route("sig", "hash-2", convergent_tree)

        assert first.route_id != second.route_id
        assert await _count(session, RouteNode.id) == 8
        # Shared molecules are not duplicated
        assert await _count(session, Molecule.id) == 4

    async def test_zero_step_route(self, session: AsyncSession) -> None:
        """A route made of the target alone has one leaf node."""
        tree = MoleculeNode.model_validate(leaf(PARACETAMOL))
        resolution = await RouteRegistry(session).get_or_create_route("sig-0", "hash-0", tree)

        route = await session.get(Route, resolution.route_id)
        assert route.length == 0
        assert route.is_convergent is False
        node = (await session.execute(select(RouteNode))).scalar_one()
        assert node.is_leaf is True
        assert node.parent_id is None

    async def test_content_hash_collision_rejected(
        self,
        session: AsyncSession,
        convergent_tree: MoleculeNode,
    ) -> None:
        """A clash on content hash alone is not a signature race and is rejected."""
        registry = RouteRegistry(session)
        await registry.get_or_create_route("sig-1", "hash-1", convergent_tree)

        with pytest.raises(MalformedInputError, match="hash-1"):
            await registry.get_or_create_route("sig-2", "hash-1", convergent_tree)
        assert await _count(session, Route.id) == 1
        assert await _count(session, RouteNode.id) == 4

    async def test_lost_insert_race_returns_winner(
        self,
        session: AsyncSession,
        session_factory: async_sessionmaker[AsyncSession],
        convergent_tree: MoleculeNode,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """A signature committed by another load after the lookup is re-read."""
        async with session_factory() as other:
            winner = await RouteRegistry(other).get_or_create_route(
                "sig-race", "hash-race", convergent_tree
            )
            await other.commit()

        registry = RouteRegistry(session)
        lookup = registry.find_by_signature
        calls: list[str] = []

        async def miss_first(signature: str):
            calls.append(signature)
            if len(calls) == 1:
                return None
            return await lookup(signature)

        monkeypatch.setattr(registry, "find_by_signature", miss_first)

        resolution = await registry.get_or_create_route(
            "sig-race", "hash-race-2", convergent_tree
        )
        await session.commit()

        assert resolution.route_id == winner.route_id
        assert resolution.was_reused is True
        assert calls == ["sig-race", "sig-race"]
        assert await _count(session, Route.id) == 1
        assert await _count(session, RouteNode.id) == 4

    async def test_reactant_order_preserved(self, session: AsyncSession) -> None:
        """The read view lists reactants in the order they were loaded."""
        registry = RouteRegistry(session)
        catalog = Catalog(session)
        orders = {
            "sig-ab": [ACETIC_ANHYDRIDE, AMINOPHENOL],
            "sig-ba": [AMINOPHENOL, ACETIC_ANHYDRIDE],
        }

        for signature, reactants in orders.items():
            tree = MoleculeNode.model_validate(
                product(PARACETAMOL, *(leaf(r) for r in reactants))
            )
            resolution = await registry.get_or_create_route(signature, f"hash-{signature}", tree)
            detail = await catalog.get_route_detail(resolution.route_id)

            assert [c.inchikey for c in detail.tree.children] == [r[1] for r in reactants]

    async def test_round_trip(
        self,
        session: AsyncSession,
        convergent_tree: MoleculeNode,
    ) -> None:
        """Reading a stored route gives back the input structure."""
        resolution = await RouteRegistry(session).get_or_create_route(
            "sig-1", "hash-1", convergent_tree
        )
        await session.commit()

        detail = await Catalog(session).get_route_detail(resolution.route_id)

        assert detail.length == 2
        assert detail.is_convergent is True
        assert _shape(detail.tree) == _shape(convergent_tree)
        assert detail.tree.smiles == PARACETAMOL[0]

    async def test_round_trip_linear(
        self,
        session: AsyncSession,
        linear_tree: MoleculeNode,
    ) -> None:
        resolution = await RouteRegistry(session).get_or_create_route(
            "sig-lin", "hash-lin", linear_tree
        )
        detail = await Catalog(session).get_route_detail(resolution.route_id)

        assert _shape(detail.tree) == _shape(linear_tree)
        assert detail.length == 3
        assert detail.is_convergent is False


class TestIngestionScenario:
    """The same route predicted by two runs for one target."""

    async def test_two_runs_share_one_route(
        self,
        session: AsyncSession,
        convergent_tree: MoleculeNode,
        benchmark,
        target,
        run_factory,
    ) -> None:
        """R1 and R2 link the same Route; nodes are stored once."""
        run_1 = await run_factory(benchmark.id, "model-r1")
        run_2 = await run_factory(benchmark.id, "model-r2")
        registry = RouteRegistry(session)
        linker = PredictionLinker(session)

        first = await registry.get_or_create_route("sig-T", "hash-T", convergent_tree)
        await linker.link(first.route_id, run_1.id, target.id, rank=1)
        await session.commit()

        route = await session.get(Route, first.route_id)
        assert route.length == 2
        assert route.is_convergent is True
        assert await _count(session, RouteNode.id) == 4
        assert await _count(session, PredictionRoute.id) == 1

        second = await registry.get_or_create_route("sig-T", "hash-T", convergent_tree)
        await linker.link(second.route_id, run_2.id, target.id, rank=1)
        await session.commit()

        assert second.route_id == first.route_id
        assert second.was_reused is True
        assert await _count(session, Route.id) == 1
        assert await _count(session, RouteNode.id) == 4
        assert await _count(session, PredictionRoute.id) == 2

    async def test_unknown_route_detail(self, session: AsyncSession) -> None:
        with pytest.raises(NotFoundError):
            await Catalog(session).get_route_detail(uuid.uuid4())
