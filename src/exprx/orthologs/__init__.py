"""Ortholog resolution, filtering and caching.

Usage::

    from exprx.annotation import BioMartClient
    from exprx.orthologs import resolve_pairs, filter_orthologs, save_orthologs

    table = resolve_pairs("hsapiens", "mmusculus", BioMartClient())
    table = filter_orthologs(table, gene_type_include=["protein_coding"])
    save_orthologs(table, "hsapiens_mmusculus.orthologs.pkl.gz")
"""

from exprx.orthologs.filters import OrthologFilter, filter_orthologs
from exprx.orthologs.model import OrthologTable, load_orthologs, save_orthologs
from exprx.orthologs.resolver import pairs_from_annotation, resolve_pairs, summarize_by

__all__ = [
    "OrthologFilter",
    "OrthologTable",
    "filter_orthologs",
    "load_orthologs",
    "pairs_from_annotation",
    "resolve_pairs",
    "save_orthologs",
    "summarize_by",
]
