"""In-memory expression dataset for a two-species comparison.

Pipeline stages never mutate a dataset in place: each returns an updated
copy via ``ExpressionDataset.evolve``.
"""

import copy
from dataclasses import dataclass, replace
from typing import List, Optional

import pandas as pd

from exprx.orthologs.model import OrthologTable

METADATA_COLUMNS = ["sample_id", "species", "file_path", "group_label"]

RESULT_COLUMNS = [
    "gene_id_a",
    "gene_id_b",
    "mean_expr_a",
    "mean_expr_b",
    "log2_fold_change",
    "pvalue",
    "pvalue_adjusted",
]


@dataclass
class SpeciesBlock:
    """Replicates of one species.

    Attributes:
        species: Species value from the metadata table
        sample_metadata: One row per replicate (``METADATA_COLUMNS`` + extras)
        raw_expression: genes x replicates, NaN where a replicate lacks a gene
    """

    species: str
    sample_metadata: pd.DataFrame
    raw_expression: pd.DataFrame

    @property
    def sample_ids(self) -> List[str]:
        return list(self.raw_expression.columns)

    @property
    def n_replicates(self) -> int:
        return self.raw_expression.shape[1]


@dataclass
class ExpressionDataset:
    """Expression data for two species plus the products of each stage."""

    species_a: SpeciesBlock
    species_b: SpeciesBlock
    orthologs: Optional[OrthologTable] = None
    merged_expression: Optional[pd.DataFrame] = None
    normalized_expression: Optional[pd.DataFrame] = None
    dropped_pairs: Optional[int] = None
    normalization_method: Optional[str] = None

    @property
    def blocks(self) -> List[SpeciesBlock]:
        return [self.species_a, self.species_b]

    @property
    def sample_metadata(self) -> pd.DataFrame:
        """Metadata of all replicates, species A first."""
        return pd.concat(
            [self.species_a.sample_metadata, self.species_b.sample_metadata],
            ignore_index=True,
        )

    def group_labels(self, columns: Optional[List[str]] = None) -> List[str]:
        """Group label of each replicate column (merged column order by default)."""
        meta = self.sample_metadata.set_index("sample_id")
        if columns is None:
            columns = self.species_a.sample_ids + self.species_b.sample_ids
        return [str(meta.at[c, "group_label"]) for c in columns]

    def evolve(self, **changes) -> "ExpressionDataset":
        """Deep copy with the given fields replaced."""
        return replace(copy.deepcopy(self), **changes)


@dataclass
class DifferentialResult:
    """Per-ortholog-pair statistics from a differential comparison."""

    table: pd.DataFrame
    method: str
    p_adjust: str
    groups: List[str]

    def __len__(self) -> int:
        return len(self.table)

    def sorted_by(self, column: str = "pvalue_adjusted", ascending: bool = True) -> pd.DataFrame:
        """Copy of the table sorted on ``column`` (stable)."""
        return self.table.sort_values(column, ascending=ascending, kind="mergesort")

    def to_tsv(self, path) -> None:
        self.table.to_csv(path, sep="\t", index=False)
