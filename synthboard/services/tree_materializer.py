"""Route tree materializer: persists a nested route as flat RouteNode rows."""

from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass
from uuid import UUID, uuid4

from sqlalchemy import insert
from sqlalchemy.ext.asyncio import AsyncSession

from synthboard.core.exceptions import MalformedTreeError
from synthboard.core.logging import get_logger
from synthboard.models.route import RouteNode
from synthboard.schemas.route_schema import MoleculeNode
from synthboard.services.molecule_store import MoleculeStore
from synthboard.services.route_tree import (
    MoleculeIdentity,
    NodeDescriptor,
    find_root,
    flatten_route,
)

logger = get_logger(__name__)


def _plan_levels(nodes: list[NodeDescriptor]) -> list[list[NodeDescriptor]]:
    """Group descriptors into breadth-first levels starting at the root.

    Raises:
        MalformedTreeError: If there is no unique root, or some descriptors
            are not reachable from it.
    """
    root = find_root(nodes)

    children_by_parent: dict[int, list[NodeDescriptor]] = defaultdict(list)
    for node in nodes:
        if node.parent_temp_id is not None:
            children_by_parent[node.parent_temp_id].append(node)

    levels: list[list[NodeDescriptor]] = []
    seen: set[int] = set()
    frontier = [root]
    while frontier:
        levels.append(frontier)
        seen.update(n.temp_id for n in frontier)
        frontier = [
            child
            for node in frontier
            for child in children_by_parent.get(node.temp_id, [])
            if child.temp_id not in seen
        ]

    if len(seen) != len(nodes):
        raise MalformedTreeError(
            f"{len(nodes) - len(seen)} route nodes are not reachable from the root"
        )
    return levels


@dataclass
class MaterializedTree:
    """Ids of the persisted root node and its molecule."""

    root_node_id: UUID
    root_molecule_id: UUID
    node_count: int


class TreeMaterializer:
    """Writes a route tree with one molecule round trip and one insert per level.

    Nodes are created breadth-first so every parent row exists before a
    child references it.
    """

    def __init__(self, session: AsyncSession, molecule_store: MoleculeStore | None = None) -> None:
        self.session = session
        self.molecule_store = molecule_store or MoleculeStore(session)

    async def materialize(self, root: MoleculeNode, route_id: UUID) -> MaterializedTree:
        """Persist every node of ``root`` under ``route_id``.

        Args:
            root: Target molecule of the route.
            route_id: Id of an existing Route row.

        Returns:
            MaterializedTree with the root node and root molecule ids.

        Raises:
            MalformedTreeError: If the flattened tree has no unique root or
                contains unreachable nodes.
        """
        flat = flatten_route(root)
        return await self.materialize_descriptors(flat.nodes, flat.molecules.values(), route_id)

    async def materialize_descriptors(
        self,
        nodes: list[NodeDescriptor],
        molecules: Iterable[MoleculeIdentity],
        route_id: UUID,
    ) -> MaterializedTree:
        """Persist pre-flattened node descriptors."""
        levels = _plan_levels(nodes)
        root = levels[0][0]

        molecule_ids = await self.molecule_store.resolve_or_create(molecules)

        real_ids: dict[int, UUID] = {}
        for level in levels:
            rows = []
            for node in level:
                node_id = uuid4()
                real_ids[node.temp_id] = node_id
                rows.append(
                    {
                        "id": node_id,
                        "route_id": route_id,
                        "molecule_id": molecule_ids[node.inchikey],
                        "parent_id": (
                            real_ids[node.parent_temp_id]
                            if node.parent_temp_id is not None
                            else None
                        ),
                        "is_leaf": node.is_leaf,
                        "position": node.position,
                        "reaction_hash": node.reaction_hash,
                        "template": node.template,
                        "step_metadata": node.metadata,
                    }
                )
            await self.session.execute(insert(RouteNode), rows)

        logger.debug(
            "route_tree_materialized",
            route_id=str(route_id),
            nodes=len(nodes),
            molecules=len(molecule_ids),
        )

        return MaterializedTree(
            root_node_id=real_ids[root.temp_id],
            root_molecule_id=molecule_ids[root.inchikey],
            node_count=len(nodes),
        )
