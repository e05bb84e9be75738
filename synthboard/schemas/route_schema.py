"""Pydantic schemas for routes exported by prediction engines."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ReactionStep(BaseModel):
    """A reaction producing the parent molecule from its reactants."""

    model_config = ConfigDict(extra="ignore")

    reactants: list[MoleculeNode] = Field(default_factory=list)
    template: str | None = None
    reagents: list[str] | None = None
    solvents: list[str] | None = None
    mapped_smiles: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class MoleculeNode(BaseModel):
    """A molecule in a route tree; a leaf when it has no synthesis step."""

    model_config = ConfigDict(extra="ignore")

    smiles: str
    inchikey: str = Field(min_length=1, description="Canonical identity key")
    synthesis_step: ReactionStep | None = None
    is_leaf: bool | None = Field(default=None, description="Explicit leaf override")
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def reactants(self) -> list[MoleculeNode]:
        """Children of this node, empty for leaves."""
        if self.treated_as_leaf or self.synthesis_step is None:
            return []
        return self.synthesis_step.reactants

    @property
    def treated_as_leaf(self) -> bool:
        """Leaf when flagged so, or when no reaction step produces it."""
        if self.is_leaf is True:
            return True
        return self.synthesis_step is None or not self.synthesis_step.reactants


class PredictedRoute(BaseModel):
    """One ranked route prediction for a target."""

    model_config = ConfigDict(extra="ignore")

    target: MoleculeNode
    rank: int = Field(ge=1)
    content_hash: str = Field(min_length=1)
    signature: str = Field(min_length=1)
    solvability: dict[str, bool] = Field(default_factory=dict)
    metadata: dict[str, Any] | None = None


ReactionStep.model_rebuild()
