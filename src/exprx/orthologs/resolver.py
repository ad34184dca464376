"""
Reciprocal 1-to-1 ortholog resolution.

Each species' homolog annotation lists its genes with cross-references to
the other species. A gene mapped to several homologs shows up on several
rows, and a gene claimed by several genes of the other species shows up
several times in that species' cross-reference column. Both cases are
ambiguous and are discarded; the remaining pairs must point at each other.
"""

import logging
from typing import Dict

import pandas as pd

from exprx.annotation.biomart import HOMOLOG_COLUMNS, AnnotationSource, species_id
from exprx.errors import ConfigurationError, ExternalServiceError
from exprx.orthologs.model import GENE_COLUMNS, OrthologTable
from exprx.validation import require_columns, unique_id_pairs

logger = logging.getLogger(__name__)

SUMMARY_COLUMNS = {
    "genetype": "gene_type",
    "chromosome": "chromosome",
}

MISSING_LABEL = "NA"


def resolve_pairs(
    species_a: str,
    species_b: str,
    source: AnnotationSource,
) -> OrthologTable:
    """
    Resolve the unique, reciprocal 1-to-1 orthologs between two species.

    Args:
        species_a: Canonical species id (e.g. "hsapiens")
        species_b: Canonical species id (e.g. "mmusculus")
        source: Annotation source providing homolog tables

    Returns:
        OrthologTable sorted by species-A gene id
    """
    species_a = species_id(species_a)
    species_b = species_id(species_b)
    if species_a == species_b:
        raise ConfigurationError(f"Need two different species, got {species_a!r} twice")

    ann_a = _fetch(source, species_a, species_b)
    ann_b = _fetch(source, species_b, species_a)

    table = pairs_from_annotation(ann_a, ann_b, species_a, species_b)
    logger.info(
        "Resolved %d 1-to-1 orthologs between %s (%d rows) and %s (%d rows)",
        len(table), species_a, len(ann_a), species_b, len(ann_b),
    )
    return table


def pairs_from_annotation(
    ann_a: pd.DataFrame,
    ann_b: pd.DataFrame,
    species_a: str,
    species_b: str,
) -> OrthologTable:
    """
    Reduce two homolog annotation tables to reciprocal 1-to-1 pairs.

    ``ann_a`` holds species-A genes with ``homolog_id`` pointing into
    species B, ``ann_b`` the reverse.
    """
    require_columns(ann_a, ["gene_id", "homolog_id"], f"Homolog annotation for {species_a}")
    require_columns(ann_b, ["gene_id", "homolog_id"], f"Homolog annotation for {species_b}")

    # A ids that are unambiguous on both sides, then the same for B
    ids_a = set(unique_id_pairs(ann_a["gene_id"].tolist(), ann_b["homolog_id"].tolist()))
    ids_b = set(unique_id_pairs(ann_b["gene_id"].tolist(), ann_a["homolog_id"].tolist()))

    # ids_a only holds genes that occur on a single row, so these maps are exact
    cross_a = _cross_reference(ann_a, ids_a)
    cross_b = _cross_reference(ann_b, ids_b)

    pairs = sorted(
        (ga, gb)
        for ga, gb in cross_a.items()
        if gb in ids_b and cross_b.get(gb) == ga
    )

    genes_a = _gene_rows(ann_a, [ga for ga, _ in pairs])
    genes_b = _gene_rows(ann_b, [gb for _, gb in pairs])
    return OrthologTable(species_a=species_a, species_b=species_b, genes_a=genes_a, genes_b=genes_b)


def summarize_by(
    table: OrthologTable,
    group_by: str = "genetype",
    species: str = "a",
) -> pd.DataFrame:
    """
    Count ortholog pairs per gene type or chromosome.

    Args:
        table: Ortholog table
        group_by: "genetype" or "chromosome"
        species: Which species' annotation to group on ("a" or "b")

    Returns:
        DataFrame with ``value`` and ``count`` columns, largest group first.
        Missing annotation is counted under "NA".
    """
    if group_by not in SUMMARY_COLUMNS:
        raise ConfigurationError(
            f"group_by must be one of {', '.join(SUMMARY_COLUMNS)}, got {group_by!r}"
        )
    if species not in ("a", "b"):
        raise ConfigurationError(f"species must be 'a' or 'b', got {species!r}")

    genes = table.genes_a if species == "a" else table.genes_b
    values = genes[SUMMARY_COLUMNS[group_by]].astype(object)
    values = values.where(values.notna() & (values.astype(str).str.strip() != ""), MISSING_LABEL)

    counts = values.astype(str).value_counts(sort=False)
    summary = counts.rename_axis("value").reset_index(name="count")
    summary = summary.sort_values(["count", "value"], ascending=[False, True], kind="mergesort")
    return summary.reset_index(drop=True)


# -----------------------------------------------------------------
# Internal
# -----------------------------------------------------------------


def _fetch(source: AnnotationSource, source_species: str, target_species: str) -> pd.DataFrame:
    try:
        ann = source.get_homolog_annotation(source_species, target_species)
    except ExternalServiceError:
        raise
    except Exception as exc:
        raise ExternalServiceError(
            f"Homolog annotation for {source_species} -> {target_species} failed: {exc}"
        ) from exc

    ann = ann.copy()
    for column in HOMOLOG_COLUMNS:
        if column not in ann.columns:
            ann[column] = pd.NA
    return ann


def _cross_reference(ann: pd.DataFrame, ids: set) -> Dict[str, str]:
    rows = ann[ann["gene_id"].isin(ids) & ann["homolog_id"].notna()]
    return dict(zip(rows["gene_id"], rows["homolog_id"]))


def _gene_rows(ann: pd.DataFrame, gene_ids) -> pd.DataFrame:
    for column in GENE_COLUMNS:
        if column not in ann.columns:
            ann = ann.assign(**{column: pd.NA})
    genes = ann[GENE_COLUMNS].drop_duplicates(subset="gene_id").set_index("gene_id", drop=False)
    return genes.loc[list(gene_ids), GENE_COLUMNS].reset_index(drop=True)
