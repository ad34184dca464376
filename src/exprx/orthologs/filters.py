"""Subsetting ortholog tables by gene type, chromosome or gene id.

Gene type and chromosome predicates look at species A's annotation.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

import numpy as np

from exprx.errors import ConfigurationError
from exprx.orthologs.model import OrthologTable

logger = logging.getLogger(__name__)


@dataclass
class OrthologFilter:
    """A reusable set of ortholog predicates (all optional, combined with AND)."""

    gene_type_include: Optional[Iterable[str]] = None
    gene_type_exclude: Optional[Iterable[str]] = None
    chromosome_include: Optional[Iterable[str]] = None
    chromosome_exclude: Optional[Iterable[str]] = None
    gene_id_include: Optional[Iterable[str]] = None
    gene_id_exclude: Optional[Iterable[str]] = None

    def apply(self, table: OrthologTable) -> OrthologTable:
        return filter_orthologs(
            table,
            gene_type_include=self.gene_type_include,
            gene_type_exclude=self.gene_type_exclude,
            chromosome_include=self.chromosome_include,
            chromosome_exclude=self.chromosome_exclude,
            gene_id_include=self.gene_id_include,
            gene_id_exclude=self.gene_id_exclude,
        )

    @property
    def is_empty(self) -> bool:
        return all(v is None for v in vars(self).values())


def filter_orthologs(
    table: OrthologTable,
    gene_type_include: Optional[Iterable[str]] = None,
    gene_type_exclude: Optional[Iterable[str]] = None,
    chromosome_include: Optional[Iterable[str]] = None,
    chromosome_exclude: Optional[Iterable[str]] = None,
    gene_id_include: Optional[Iterable[str]] = None,
    gene_id_exclude: Optional[Iterable[str]] = None,
) -> OrthologTable:
    """
    Keep the ortholog pairs that satisfy every given predicate.

    Args:
        table: Ortholog table to filter
        gene_type_include: Keep only these species-A gene types
        gene_type_exclude: Drop these species-A gene types
        chromosome_include: Keep only these species-A chromosomes
        chromosome_exclude: Drop these species-A chromosomes
        gene_id_include: Keep pairs where either gene id is listed
        gene_id_exclude: Drop pairs where either gene id is listed

    Returns:
        A new, row-aligned OrthologTable

    Raises:
        ConfigurationError: if include and exclude are both given for the
            same dimension
    """
    _check_exclusive("gene type", gene_type_include, gene_type_exclude)
    _check_exclusive("chromosome", chromosome_include, chromosome_exclude)
    _check_exclusive("gene id", gene_id_include, gene_id_exclude)

    keep = np.ones(len(table), dtype=bool)

    gene_type = table.genes_a["gene_type"].astype(str)
    if gene_type_include is not None:
        keep &= gene_type.isin(_as_set(gene_type_include)).to_numpy()
    if gene_type_exclude is not None:
        keep &= ~gene_type.isin(_as_set(gene_type_exclude)).to_numpy()

    chromosome = table.genes_a["chromosome"].astype(str)
    if chromosome_include is not None:
        keep &= chromosome.isin(_as_set(chromosome_include)).to_numpy()
    if chromosome_exclude is not None:
        keep &= ~chromosome.isin(_as_set(chromosome_exclude)).to_numpy()

    if gene_id_include is not None or gene_id_exclude is not None:
        ids = _as_set(gene_id_include if gene_id_include is not None else gene_id_exclude)
        listed = (
            table.genes_a["gene_id"].astype(str).isin(ids)
            | table.genes_b["gene_id"].astype(str).isin(ids)
        ).to_numpy()
        keep &= listed if gene_id_include is not None else ~listed

    result = table.subset(keep)
    logger.info("Ortholog filter kept %d of %d pairs", len(result), len(table))
    return result


def _check_exclusive(dimension: str, include, exclude) -> None:
    if include is not None and exclude is not None:
        raise ConfigurationError(
            f"Specify either an include or an exclude list for {dimension}, not both"
        )


def _as_set(values: Iterable[str]) -> set:
    if isinstance(values, str):
        return {values}
    return {str(v) for v in values}
