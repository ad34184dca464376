"""Normalization and differential testing behind pluggable backends."""

from exprx.analysis.differential import (
    DifferentialTest,
    RankProdTest,
    ScipyRankTest,
    adjust_pvalues,
    compare,
)
from exprx.analysis.normalization import EdgeRNormalizer, Normalizer, normalize

__all__ = [
    "DifferentialTest",
    "EdgeRNormalizer",
    "Normalizer",
    "RankProdTest",
    "ScipyRankTest",
    "adjust_pvalues",
    "compare",
    "normalize",
]
