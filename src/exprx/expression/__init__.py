"""Expression dataset model, loading and ortholog-based merging."""

from exprx.expression.loader import load_dataset, read_expression_file, read_metadata
from exprx.expression.merger import align_species, merge_expression
from exprx.expression.model import DifferentialResult, ExpressionDataset, SpeciesBlock

__all__ = [
    "DifferentialResult",
    "ExpressionDataset",
    "SpeciesBlock",
    "align_species",
    "load_dataset",
    "merge_expression",
    "read_expression_file",
    "read_metadata",
]
