"""
Expression merger.

Projects both species' raw expression matrices onto the ortholog pair
list and concatenates them into one matrix: one row per ortholog pair,
species-A replicates first, then species-B replicates.
"""

import logging

import pandas as pd

from exprx.errors import ValidationError
from exprx.expression.model import ExpressionDataset
from exprx.orthologs.model import OrthologTable
from exprx.validation import check_na_rows, verify_matrix

logger = logging.getLogger(__name__)


def merge_expression(dataset: ExpressionDataset, orthologs: OrthologTable) -> ExpressionDataset:
    """
    Merge per-species expression onto ortholog pairs.

    Pairs whose genes are missing from either species' matrix, or whose
    row holds a missing value, are dropped. Dropping is expected with
    partial coverage; the count is kept in ``dropped_pairs``.

    Args:
        dataset: Loaded expression dataset
        orthologs: 1-to-1 ortholog table

    Returns:
        Copy of ``dataset`` with ``merged_expression``, ``orthologs`` (the
        surviving pairs) and ``dropped_pairs`` set

    Raises:
        ValidationError: if the merged matrix has fewer than 2 rows or
            4 columns
    """
    orthologs = align_species(dataset, orthologs)
    raw_a = dataset.species_a.raw_expression
    raw_b = dataset.species_b.raw_expression
    for block in dataset.blocks:
        if not block.raw_expression.index.is_unique:
            raise ValidationError(f"Expression matrix for {block.species} has duplicated gene ids")

    present = (
        orthologs.genes_a["gene_id"].isin(raw_a.index).to_numpy()
        & orthologs.genes_b["gene_id"].isin(raw_b.index).to_numpy()
    )
    kept = orthologs.subset(present)

    pair_index = pd.Index(kept.pair_ids, name="pair_id")
    part_a = raw_a.loc[kept.genes_a["gene_id"]].set_axis(pair_index, axis=0)
    part_b = raw_b.loc[kept.genes_b["gene_id"]].set_axis(pair_index, axis=0)
    merged = pd.concat([part_a, part_b], axis=1)

    na_rows = check_na_rows(merged)
    if na_rows:
        complete = ~merged.index.isin(na_rows)
        merged = merged[complete]
        kept = kept.subset(complete)

    dropped = len(orthologs) - len(merged)
    logger.info(
        "Merged %d of %d ortholog pairs (%d dropped: %d without expression, %d with missing values)",
        len(merged), len(orthologs), dropped, int((~present).sum()), len(na_rows),
    )

    verify_matrix(merged, "merged expression matrix")

    return dataset.evolve(
        orthologs=kept,
        merged_expression=merged,
        normalized_expression=None,
        normalization_method=None,
        dropped_pairs=dropped,
    )


def align_species(dataset: ExpressionDataset, orthologs: OrthologTable) -> OrthologTable:
    """Orient ``orthologs`` so its species A matches the dataset's species A.

    Species are matched by name. When the names do not line up (e.g. the
    metadata says "human" and the table "hsapiens") the order is taken as
    given.
    """
    names = (dataset.species_a.species, dataset.species_b.species)
    if (orthologs.species_a, orthologs.species_b) == names:
        return orthologs
    if (orthologs.species_b, orthologs.species_a) == names:
        logger.info("Swapping ortholog table to match dataset species order %s", names)
        return orthologs.swapped()
    logger.warning(
        "Ortholog species (%s, %s) do not match dataset species (%s, %s); assuming the same order",
        orthologs.species_a, orthologs.species_b, names[0], names[1],
    )
    return orthologs
