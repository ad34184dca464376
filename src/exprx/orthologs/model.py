"""Ortholog pair table and its on-disk cache."""

import gzip
import logging
import pickle
from dataclasses import dataclass
from pathlib import Path
from typing import List, Tuple, Union

import numpy as np
import pandas as pd

from exprx.errors import DataIOError, ValidationError
from exprx.validation import require_columns

logger = logging.getLogger(__name__)

GENE_COLUMNS = ["gene_id", "gene_name", "chromosome", "gene_type"]

CACHE_FORMAT = "exprx-orthologs"
CACHE_VERSION = 1

PAIR_SEPARATOR = "|"


@dataclass
class OrthologTable:
    """
    Confirmed 1-to-1 orthologs as two row-aligned gene tables.

    Row i of ``genes_a`` and row i of ``genes_b`` are the same ortholog
    pair. Each gene id appears at most once in its species' table.
    """

    species_a: str
    species_b: str
    genes_a: pd.DataFrame
    genes_b: pd.DataFrame

    def __post_init__(self):
        require_columns(self.genes_a, GENE_COLUMNS, f"Ortholog table for {self.species_a}")
        require_columns(self.genes_b, GENE_COLUMNS, f"Ortholog table for {self.species_b}")
        if len(self.genes_a) != len(self.genes_b):
            raise ValidationError(
                f"Ortholog tables are not row-aligned: {len(self.genes_a)} vs {len(self.genes_b)} rows"
            )
        for species, genes in ((self.species_a, self.genes_a), (self.species_b, self.genes_b)):
            if genes["gene_id"].isna().any():
                raise ValidationError(f"Ortholog table for {species} has missing gene ids")
            dup = genes["gene_id"][genes["gene_id"].duplicated()]
            if not dup.empty:
                raise ValidationError(
                    f"Ortholog table for {species} has duplicated gene ids: "
                    + ", ".join(map(str, dup.unique()[:5]))
                )
        self.genes_a = self.genes_a.reset_index(drop=True)
        self.genes_b = self.genes_b.reset_index(drop=True)

    def __len__(self) -> int:
        return len(self.genes_a)

    @property
    def pairs(self) -> List[Tuple[str, str]]:
        """(gene_id_a, gene_id_b) for every row."""
        return list(zip(self.genes_a["gene_id"], self.genes_b["gene_id"]))

    @property
    def pair_ids(self) -> List[str]:
        """Row keys used by merged expression matrices: ``"<a>|<b>"``."""
        return [f"{a}{PAIR_SEPARATOR}{b}" for a, b in self.pairs]

    def subset(self, mask) -> "OrthologTable":
        """Keep the rows selected by a boolean mask (aligned across species)."""
        mask = np.asarray(mask, dtype=bool)
        if mask.shape != (len(self),):
            raise ValidationError(f"Mask has {mask.size} entries for {len(self)} ortholog pairs")
        return OrthologTable(
            species_a=self.species_a,
            species_b=self.species_b,
            genes_a=self.genes_a[mask],
            genes_b=self.genes_b[mask],
        )

    def swapped(self) -> "OrthologTable":
        """Same pairs with species A and B exchanged."""
        return OrthologTable(
            species_a=self.species_b,
            species_b=self.species_a,
            genes_a=self.genes_b,
            genes_b=self.genes_a,
        )

    def to_frame(self) -> pd.DataFrame:
        """Side-by-side view with ``_a`` / ``_b`` column suffixes."""
        left = self.genes_a[GENE_COLUMNS].add_suffix("_a")
        right = self.genes_b[GENE_COLUMNS].add_suffix("_b")
        return pd.concat([left, right], axis=1)

    def equals(self, other: "OrthologTable") -> bool:
        return (
            isinstance(other, OrthologTable)
            and self.species_a == other.species_a
            and self.species_b == other.species_b
            and self.genes_a.equals(other.genes_a)
            and self.genes_b.equals(other.genes_b)
        )


def empty_gene_table() -> pd.DataFrame:
    return pd.DataFrame({c: pd.Series(dtype=object) for c in GENE_COLUMNS})


# =============================================================================
# Cache
# =============================================================================


def save_orthologs(table: OrthologTable, path: Union[str, Path]) -> Path:
    """Write an ortholog table to a gzip-compressed cache file."""
    path = Path(path)
    payload = {
        "format": CACHE_FORMAT,
        "version": CACHE_VERSION,
        "species_a": table.species_a,
        "species_b": table.species_b,
        "genes_a": table.genes_a,
        "genes_b": table.genes_b,
    }
    path.parent.mkdir(parents=True, exist_ok=True)
    with gzip.open(path, "wb") as fh:
        pickle.dump(payload, fh, protocol=pickle.HIGHEST_PROTOCOL)
    logger.info("Saved %d ortholog pairs to %s", len(table), path)
    return path


def load_orthologs(path: Union[str, Path]) -> OrthologTable:
    """Reload a table written by ``save_orthologs``."""
    path = Path(path)
    if not path.is_file():
        raise DataIOError(f"Ortholog cache not found: {path}")
    try:
        with gzip.open(path, "rb") as fh:
            payload = pickle.load(fh)
    except (OSError, EOFError, pickle.UnpicklingError, AttributeError) as exc:
        raise DataIOError(f"Could not read ortholog cache {path}: {exc}") from exc

    if not isinstance(payload, dict) or payload.get("format") != CACHE_FORMAT:
        raise DataIOError(f"{path} is not an exprx ortholog cache")
    if payload.get("version") != CACHE_VERSION:
        raise DataIOError(
            f"Unsupported ortholog cache version {payload.get('version')!r} in {path}"
        )

    table = OrthologTable(
        species_a=payload["species_a"],
        species_b=payload["species_b"],
        genes_a=payload["genes_a"],
        genes_b=payload["genes_b"],
    )
    logger.info("Loaded %d ortholog pairs from %s", len(table), path)
    return table
