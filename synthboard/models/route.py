"""Route models: deduplicated route structures and their node trees."""

import uuid
from typing import Any

from sqlalchemy import Boolean, ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from synthboard.models.base import Base, JSONType, TimestampMixin, UUIDMixin


class Route(Base, UUIDMixin, TimestampMixin):
    """A synthesis route structure, stored once per signature.

    A Route knows nothing about runs or targets; those associations live in
    PredictionRoute and AcceptableRoute.
    """

    __tablename__ = "routes"

    # Opaque structural signature computed upstream
    signature: Mapped[str] = mapped_column(
        String(256),
        nullable=False,
        unique=True,
    )

    # Secondary integrity digest
    content_hash: Mapped[str] = mapped_column(
        String(256),
        nullable=False,
        unique=True,
    )

    # Longest root-to-leaf path in reaction steps
    length: Mapped[int] = mapped_column(Integer, nullable=False)

    is_convergent: Mapped[bool] = mapped_column(Boolean, nullable=False)

    nodes: Mapped[list["RouteNode"]] = relationship(
        "RouteNode",
        back_populates="route",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class RouteNode(Base, UUIDMixin):
    """One molecule vertex of a route tree.

    Internal nodes are products of a reaction step whose reactants are the
    node's children. Only the root has no parent.
    """

    __tablename__ = "route_nodes"

    route_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("routes.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    molecule_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("molecules.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    parent_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("route_nodes.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )

    is_leaf: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Order among the reactants of the parent step; 0 for the root
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # sha256 of "product>>sorted.reactants"; null for leaves
    reaction_hash: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
        index=True,
    )

    template: Mapped[str | None] = mapped_column(String, nullable=True)

    # Reagents, solvents, mapped SMILES and engine-specific step data
    step_metadata: Mapped[dict[str, Any] | None] = mapped_column(
        "metadata",
        JSONType,
        nullable=True,
    )

    route: Mapped["Route"] = relationship("Route", back_populates="nodes")

    molecule: Mapped["Molecule"] = relationship("Molecule", lazy="joined")


from synthboard.models.molecule import Molecule
