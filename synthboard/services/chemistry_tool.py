"""Chemistry Tool service for RDKit operations.

Provides SMILES validation and identity-key derivation for molecules that
arrive without an InChIKey (stock files, benchmark targets).
"""

from dataclasses import dataclass

from rdkit import Chem, RDLogger
from rdkit.Chem.rdchem import Mol

from synthboard.core.exceptions import MalformedInputError
from synthboard.core.logging import get_logger
from synthboard.services.route_tree import MoleculeIdentity

logger = get_logger(__name__)

# Parse failures are reported through ValidationResult instead
RDLogger.DisableLog("rdApp.*")


@dataclass
class ValidationResult:
    """Result of SMILES validation."""

    is_valid: bool
    mol: Mol | None
    error: str | None = None


class ChemistryTool:
    """RDKit-based chemistry operations with error handling.

    Provides:
    - SMILES validation and sanitization
    - Canonical SMILES
    - InChIKey derivation
    """

    def validate_smiles(self, smiles: str) -> ValidationResult:
        """Validate and sanitize a SMILES string.

        Args:
            smiles: SMILES string to validate.

        Returns:
            ValidationResult with is_valid flag, mol object if valid,
            and error message if invalid.
        """
        if not smiles or not isinstance(smiles, str):
            return ValidationResult(is_valid=False, mol=None, error="Empty or invalid SMILES input")

        try:
            mol = Chem.MolFromSmiles(smiles, sanitize=True)
        except Exception as e:
            return ValidationResult(
                is_valid=False,
                mol=None,
                error=f"{type(e).__name__}: {e}",
            )

        if mol is None:
            return ValidationResult(is_valid=False, mol=None, error="Failed to parse SMILES")
        return ValidationResult(is_valid=True, mol=mol, error=None)

    def canonical_smiles(self, smiles: str) -> str | None:
        """Canonical SMILES, or None if ``smiles`` does not parse."""
        validation = self.validate_smiles(smiles)
        if not validation.is_valid:
            return None
        return Chem.MolToSmiles(validation.mol)

    def inchikey(self, smiles: str) -> str | None:
        """Standard InChIKey of ``smiles``, or None if it cannot be derived."""
        validation = self.validate_smiles(smiles)
        if not validation.is_valid:
            return None

        key = Chem.MolToInchiKey(validation.mol)
        if not key:
            logger.warning("inchikey_derivation_failed", smiles=smiles)
            return None
        return key

    def identity(self, smiles: str, inchikey: str | None = None) -> MoleculeIdentity:
        """Build a molecule identity, deriving the key when it is missing.

        Raises:
            MalformedInputError: If no key is given and none can be derived.
        """
        key = inchikey.strip() if inchikey else None
        if not key:
            key = self.inchikey(smiles)
        if not key:
            raise MalformedInputError(f"Cannot derive an identity key for {smiles!r}")
        return MoleculeIdentity(smiles=smiles, inchikey=key)
