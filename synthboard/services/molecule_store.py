"""Molecule identity store: global molecule deduplication by InChIKey."""

from collections.abc import Iterable
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from synthboard.core.exceptions import MalformedInputError, SynthboardError
from synthboard.core.logging import get_logger
from synthboard.models.molecule import Molecule
from synthboard.services.route_tree import MoleculeIdentity

logger = get_logger(__name__)

_DIALECT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class MoleculeStore:
    """Resolves identity keys to molecule ids, creating missing molecules.

    Creation is create-or-reuse: a key inserted concurrently by another
    load is silently skipped and re-read, never reported as an error.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def _lookup(self, inchikeys: Iterable[str]) -> dict[str, UUID]:
        keys = list(inchikeys)
        if not keys:
            return {}
        result = await self.session.execute(
            select(Molecule.inchikey, Molecule.id).where(Molecule.inchikey.in_(keys))
        )
        return {inchikey: molecule_id for inchikey, molecule_id in result.all()}

    async def _insert_missing(self, molecules: list[MoleculeIdentity]) -> None:
        dialect = self.session.get_bind().dialect.name
        insert = _DIALECT_INSERTS.get(dialect)
        if insert is None:
            raise SynthboardError(f"Unsupported database dialect: {dialect}")

        stmt = insert(Molecule).on_conflict_do_nothing(index_elements=["inchikey"])
        await self.session.execute(
            stmt,
            [{"id": uuid4(), "inchikey": m.inchikey, "smiles": m.smiles} for m in molecules],
        )

    async def resolve_or_create(
        self,
        structures: Iterable[MoleculeIdentity],
    ) -> dict[str, UUID]:
        """Map every identity key in ``structures`` to a molecule id.

        Args:
            structures: Molecules to resolve. Duplicate keys keep the first
                display form.

        Returns:
            Dict of InChIKey -> molecule id covering every input key.

        Raises:
            MalformedInputError: If a structure has an empty identity key.
        """
        unique: dict[str, MoleculeIdentity] = {}
        for structure in structures:
            if not structure.inchikey:
                raise MalformedInputError(f"Molecule {structure.smiles!r} has no identity key")
            unique.setdefault(structure.inchikey, structure)

        resolved = await self._lookup(unique)
        missing = [m for key, m in unique.items() if key not in resolved]

        if missing:
            await self._insert_missing(missing)
            resolved.update(await self._lookup(m.inchikey for m in missing))
            logger.debug(
                "molecules_created",
                requested=len(unique),
                new=len(missing),
            )

        return resolved

    async def get_by_inchikey(self, inchikey: str) -> Molecule | None:
        """Fetch a molecule by identity key."""
        result = await self.session.execute(
            select(Molecule).where(Molecule.inchikey == inchikey)
        )
        return result.scalar_one_or_none()
