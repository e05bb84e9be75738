"""API routes for deduplicated synthesis routes."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from synthboard.core.database import get_async_session
from synthboard.schemas.run_schema import RouteDetail
from synthboard.services.catalog import Catalog

router = APIRouter(prefix="/routes", tags=["routes"])

DBSession = Annotated[AsyncSession, Depends(get_async_session)]


@router.get(
    "/{route_id}",
    response_model=RouteDetail,
)
async def get_route(
    route_id: UUID,
    db: DBSession,
) -> RouteDetail:
    """Get a route with its node tree nested from the target down.

    Args:
        route_id: UUID of the route.
        db: Database session.

    Returns:
        RouteDetail whose ``tree`` is the root node; reactants are in
        ``children``.
    """
    return await Catalog(db).get_route_detail(route_id)
