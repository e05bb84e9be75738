"""Stock loader: fills a stock with building blocks from a SMILES file.

Accepted formats:
- CSV with a header naming a SMILES column and optionally an InChIKey
  column (e.g. ``SMILES,InChi Key``)
- one SMILES per line, keys derived with RDKit
"""

import csv
from dataclasses import dataclass
from pathlib import Path
from uuid import UUID, uuid4

from sqlalchemy import insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from synthboard.core.exceptions import MalformedInputError, NotFoundError
from synthboard.core.logging import get_logger
from synthboard.models.stock import Stock, StockItem
from synthboard.services.chemistry_tool import ChemistryTool
from synthboard.services.molecule_store import MoleculeStore
from synthboard.services.route_tree import MoleculeIdentity

logger = get_logger(__name__)

BATCH_SIZE = 1000


@dataclass
class StockLoadSummary:
    """Counts reported after a stock load."""

    stock_id: UUID
    molecules_read: int = 0
    items_created: int = 0
    lines_skipped: int = 0


def _find_column(fieldnames: list[str], needle: str) -> str | None:
    for name in fieldnames:
        if needle in name.strip().lower().replace(" ", "").replace("_", ""):
            return name
    return None


class StockLoader:
    """Loads building blocks into a named stock, idempotently."""

    def __init__(self, session: AsyncSession, chemistry: ChemistryTool | None = None) -> None:
        self.session = session
        self.chemistry = chemistry or ChemistryTool()
        self.molecules = MoleculeStore(session)

    def parse_file(self, path: Path) -> tuple[list[MoleculeIdentity], int]:
        """Read molecule identities from ``path``.

        Returns:
            Tuple of (identities, number of skipped lines).
        """
        path = Path(path)
        if not path.is_file():
            raise NotFoundError("File", str(path))

        with path.open("r", encoding="utf-8", newline="") as f:
            lines = [line for line in f if line.strip()]
        if not lines:
            raise MalformedInputError(f"Stock file {path} is empty")

        header = lines[0].lower()
        if "smiles" in header:
            reader = csv.DictReader(lines)
            smiles_col = _find_column(reader.fieldnames or [], "smiles")
            key_col = _find_column(reader.fieldnames or [], "inchikey")
            rows = (
                (row.get(smiles_col) or "", row.get(key_col) if key_col else None)
                for row in reader
            )
        else:
            rows = ((line.split()[0], None) for line in lines)

        identities: list[MoleculeIdentity] = []
        skipped = 0
        for smiles, inchikey in rows:
            smiles = smiles.strip()
            if not smiles:
                skipped += 1
                continue
            try:
                identities.append(self.chemistry.identity(smiles, inchikey))
            except MalformedInputError:
                skipped += 1
                logger.warning("stock_line_skipped", smiles=smiles)

        return identities, skipped

    async def _get_or_create_stock(self, name: str, description: str | None) -> Stock:
        result = await self.session.execute(select(Stock).where(Stock.name == name))
        stock = result.scalar_one_or_none()
        if stock is None:
            stock = Stock(name=name, description=description)
            self.session.add(stock)
            await self.session.flush()
            logger.info("stock_created", name=name)
        return stock

    async def _add_items(self, stock_id: UUID, molecule_ids: set[UUID]) -> int:
        result = await self.session.execute(
            select(StockItem.molecule_id).where(
                StockItem.stock_id == stock_id,
                StockItem.molecule_id.in_(molecule_ids),
            )
        )
        missing = molecule_ids - set(result.scalars().all())
        if missing:
            await self.session.execute(
                insert(StockItem),
                [{"id": uuid4(), "stock_id": stock_id, "molecule_id": m} for m in missing],
            )
        return len(missing)

    async def load(
        self,
        path: Path,
        name: str,
        description: str | None = None,
    ) -> StockLoadSummary:
        """Add every molecule of ``path`` to the stock ``name``.

        Re-loading the same file creates no duplicate molecules or items.

        Raises:
            NotFoundError: If the file does not exist.
            MalformedInputError: If the file is empty or holds no valid row.
        """
        identities, skipped = self.parse_file(path)
        if not identities:
            raise MalformedInputError(f"No valid molecules in {path}")

        stock = await self._get_or_create_stock(name, description)
        summary = StockLoadSummary(
            stock_id=stock.id,
            molecules_read=len(identities),
            lines_skipped=skipped,
        )

        for start in range(0, len(identities), BATCH_SIZE):
            batch = identities[start:start + BATCH_SIZE]
            molecule_ids = await self.molecules.resolve_or_create(batch)
            summary.items_created += await self._add_items(
                summary.stock_id,
                set(molecule_ids.values()),
            )
            await self.session.commit()

        logger.info(
            "stock_loaded",
            name=name,
            molecules_read=summary.molecules_read,
            items_created=summary.items_created,
            lines_skipped=summary.lines_skipped,
        )
        return summary
