"""Route deduplication gate.

A route structure is stored once, keyed by the signature computed by the
exporting toolkit. Loading the same route from another run, target or
rank only re-uses the existing Route id.
"""

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from synthboard.core.exceptions import MalformedInputError
from synthboard.core.logging import get_logger
from synthboard.models.route import Route
from synthboard.schemas.route_schema import MoleculeNode
from synthboard.services.route_tree import compute_route_length, is_route_convergent
from synthboard.services.tree_materializer import TreeMaterializer

logger = get_logger(__name__)


@dataclass
class RouteResolution:
    """Outcome of the gate: the route id and whether it already existed."""

    route_id: UUID
    was_reused: bool


class RouteRegistry:
    """Looks up routes by signature and creates the missing ones."""

    def __init__(
        self,
        session: AsyncSession,
        materializer: TreeMaterializer | None = None,
    ) -> None:
        self.session = session
        self.materializer = materializer or TreeMaterializer(session)

    async def find_by_signature(self, signature: str) -> UUID | None:
        """Return the id of the route with ``signature``, if stored."""
        result = await self.session.execute(
            select(Route.id).where(Route.signature == signature)
        )
        return result.scalar_one_or_none()

    async def get_or_create_route(
        self,
        signature: str,
        content_hash: str,
        root: MoleculeNode,
    ) -> RouteResolution:
        """Resolve a route by signature, materializing it on a miss.

        The Route row and all of its nodes are written inside one savepoint,
        so a failure leaves neither behind.

        Args:
            signature: Opaque structural signature, used as given.
            content_hash: Integrity digest stored alongside the route.
            root: Target molecule of the route tree.

        Returns:
            RouteResolution with the route id and ``was_reused`` set when the
            signature was already stored.

        Raises:
            MalformedTreeError: If the tree has no unique root.
            MalformedInputError: If a node has no identity key, or the
                content hash is stored under another signature.
        """
        existing = await self.find_by_signature(signature)
        if existing is not None:
            return RouteResolution(route_id=existing, was_reused=True)

        route = Route(
            signature=signature,
            content_hash=content_hash,
            length=compute_route_length(root),
            is_convergent=is_route_convergent(root),
        )

        try:
            async with self.session.begin_nested():
                self.session.add(route)
                await self.session.flush()
                tree = await self.materializer.materialize(root, route.id)
        except IntegrityError as e:
            # Another load stored the same signature first
            winner = await self.find_by_signature(signature)
            if winner is None:
                logger.warning(
                    "route_content_hash_conflict",
                    signature=signature,
                    content_hash=content_hash,
                )
                raise MalformedInputError(
                    f"Content hash {content_hash} is already stored under another signature"
                ) from e
            logger.info("route_insert_race_resolved", signature=signature)
            return RouteResolution(route_id=winner, was_reused=True)

        logger.debug(
            "route_created",
            route_id=str(route.id),
            length=route.length,
            is_convergent=route.is_convergent,
            nodes=tree.node_count,
        )
        return RouteResolution(route_id=route.id, was_reused=False)
