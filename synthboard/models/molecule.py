"""Molecule model: globally deduplicated chemical structures."""

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from synthboard.models.base import Base, TimestampMixin, UUIDMixin


class Molecule(Base, UUIDMixin, TimestampMixin):
    """A chemical structure, unique by InChIKey.

    Rows are created the first time a structure is seen and never updated:
    the SMILES stored is whichever display form arrived first.
    """

    __tablename__ = "molecules"

    # Canonical identity key used for deduplication
    inchikey: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        unique=True,
    )

    # Display form
    smiles: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        index=True,
    )
