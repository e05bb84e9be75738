"""Pure helpers over route trees.

Covers the derived route properties (length, convergence, reaction hash),
flattening a nested route into node descriptors for bulk insertion, and
rebuilding a nested tree from flat node rows.
"""

import hashlib
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

from synthboard.core.exceptions import MalformedInputError, MalformedTreeError
from synthboard.schemas.route_schema import MoleculeNode
from synthboard.schemas.run_schema import RouteTreeNode


@dataclass(frozen=True)
class MoleculeIdentity:
    """Display form and identity key of a molecule."""

    smiles: str
    inchikey: str


@dataclass
class NodeDescriptor:
    """A route node waiting to be persisted.

    ``temp_id`` is the index of the descriptor in the flattened list;
    ``parent_temp_id`` points to another index, or is None for the root.
    ``position`` keeps the reactant order of the parent's step.
    """

    temp_id: int
    parent_temp_id: int | None
    inchikey: str
    is_leaf: bool
    position: int = 0
    reaction_hash: str | None = None
    template: str | None = None
    metadata: dict[str, Any] | None = None


@dataclass
class FlattenedRoute:
    """Arena of node descriptors plus the distinct molecules they reference."""

    nodes: list[NodeDescriptor] = field(default_factory=list)
    molecules: dict[str, MoleculeIdentity] = field(default_factory=dict)


def compute_route_length(root: MoleculeNode) -> int:
    """Longest root-to-leaf path, counted in reaction steps."""
    reactants = root.reactants
    if not reactants:
        return 0
    return 1 + max(compute_route_length(r) for r in reactants)


def is_route_convergent(root: MoleculeNode) -> bool:
    """True if any reaction step in the tree has more than one reactant."""
    reactants = root.reactants
    if len(reactants) > 1:
        return True
    return any(is_route_convergent(r) for r in reactants)


def compute_reaction_hash(product_smiles: str, reactant_smiles: Iterable[str]) -> str:
    """sha256 of ``product>>r1.r2...`` with reactants sorted.

    Identical reaction steps in different routes share the same hash.
    """
    content = f"{product_smiles}>>{'.'.join(sorted(reactant_smiles))}"
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def _step_metadata(node: MoleculeNode) -> dict[str, Any] | None:
    step = node.synthesis_step
    if step is None:
        return None

    metadata: dict[str, Any] = {}
    if step.reagents:
        metadata["reagents"] = step.reagents
    if step.solvents:
        metadata["solvents"] = step.solvents
    if step.mapped_smiles:
        metadata["mapped_smiles"] = step.mapped_smiles
    if step.metadata:
        metadata["step_metadata"] = step.metadata
    return metadata or None


def flatten_route(root: MoleculeNode) -> FlattenedRoute:
    """Depth-first flatten of a route into node descriptors.

    Descriptors are emitted in pre-order, so a parent always precedes its
    children in ``nodes``. Molecules are keyed by InChIKey; the first SMILES
    seen for a key wins.
    """
    flat = FlattenedRoute()
    stack: list[tuple[MoleculeNode, int | None, int]] = [(root, None, 0)]

    while stack:
        node, parent_temp_id, position = stack.pop()
        if not node.inchikey:
            raise MalformedInputError(f"Molecule {node.smiles!r} has no identity key")

        flat.molecules.setdefault(
            node.inchikey,
            MoleculeIdentity(smiles=node.smiles, inchikey=node.inchikey),
        )

        reactants = node.reactants
        temp_id = len(flat.nodes)
        flat.nodes.append(
            NodeDescriptor(
                temp_id=temp_id,
                parent_temp_id=parent_temp_id,
                inchikey=node.inchikey,
                is_leaf=not reactants,
                position=position,
                reaction_hash=(
                    compute_reaction_hash(node.smiles, (r.smiles for r in reactants))
                    if reactants
                    else None
                ),
                template=node.synthesis_step.template if reactants else None,
                metadata=_step_metadata(node) if reactants else None,
            )
        )

        for index in reversed(range(len(reactants))):
            stack.append((reactants[index], temp_id, index))

    return flat


def find_root(nodes: Sequence[NodeDescriptor]) -> NodeDescriptor:
    """Return the single descriptor without a parent."""
    roots = [n for n in nodes if n.parent_temp_id is None]
    if len(roots) != 1:
        raise MalformedTreeError(f"Route must have exactly one root, found {len(roots)}")
    return roots[0]


@dataclass
class StoredNode:
    """A persisted route node joined with its molecule."""

    id: UUID
    parent_id: UUID | None
    molecule_id: UUID
    smiles: str
    inchikey: str
    is_leaf: bool
    reaction_hash: str | None = None
    template: str | None = None
    metadata: dict[str, Any] | None = None


def build_route_tree(nodes: Sequence[StoredNode]) -> RouteTreeNode:
    """Rebuild the nested tree from flat rows linked by ``parent_id``.

    Raises:
        MalformedTreeError: If there is not exactly one root, or a node
            points to a parent outside ``nodes``.
    """
    roots = [n for n in nodes if n.parent_id is None]
    if len(roots) != 1:
        raise MalformedTreeError(f"Stored route has {len(roots)} root nodes")

    tree_nodes = {
        n.id: RouteTreeNode(
            id=n.id,
            molecule_id=n.molecule_id,
            smiles=n.smiles,
            inchikey=n.inchikey,
            is_leaf=n.is_leaf,
            reaction_hash=n.reaction_hash,
            template=n.template,
            metadata=n.metadata,
        )
        for n in nodes
    }

    for n in nodes:
        if n.parent_id is None:
            continue
        parent = tree_nodes.get(n.parent_id)
        if parent is None:
            raise MalformedTreeError(f"Node {n.id} references unknown parent {n.parent_id}")
        parent.children.append(tree_nodes[n.id])

    return tree_nodes[roots[0].id]
