"""
Normalization adapter.

The normalization itself is done by an external library behind the
``Normalizer`` protocol. The default backend runs edgeR's
``calcNormFactors`` (TMM, TMMwsp, RLE, upperquartile) followed by
``cpm`` with normalized library sizes, or limma's ``normalizeQuantiles``
for quantile normalization.
"""

import logging
from typing import List, Optional, Protocol

import pandas as pd

from exprx.analysis import r_bridge
from exprx.config import NORMALIZATION_METHODS, check_choice
from exprx.errors import ExprxError, ExternalServiceError, ValidationError
from exprx.expression.model import ExpressionDataset
from exprx.validation import verify_group_list, verify_matrix

logger = logging.getLogger(__name__)


class Normalizer(Protocol):
    """Capability contract for a normalization library."""

    def normalize(self, matrix: pd.DataFrame, groups: List[str], method: str) -> pd.DataFrame:
        """Return a matrix of the same shape and labels as ``matrix``."""
        ...


class EdgeRNormalizer:
    """
    Normalization through edgeR / limma via rpy2.

    Requires R with the edgeR and limma Bioconductor packages.
    """

    def normalize(self, matrix: pd.DataFrame, groups: List[str], method: str) -> pd.DataFrame:
        check_choice("normalization method", method, NORMALIZATION_METHODS)
        r_mat = r_bridge.to_r_matrix(matrix)

        try:
            if method == "quantile":
                limma = r_bridge.r_package("limma")
                result = limma.normalizeQuantiles(r_mat)
            else:
                edger = r_bridge.r_package("edgeR")
                dge = edger.DGEList(counts=r_mat, group=r_bridge.str_vector(groups))
                dge = edger.calcNormFactors(dge, method=method)
                result = edger.cpm(dge, **{"normalized.lib.sizes": True, "log": False})
        except ExprxError:
            raise
        except Exception as exc:
            raise ExternalServiceError(f"{method} normalization failed in R: {exc}") from exc

        return r_bridge.from_r_matrix(result, matrix.index, matrix.columns)


def normalize(
    dataset: ExpressionDataset,
    method: str = "TMM",
    backend: Optional[Normalizer] = None,
) -> ExpressionDataset:
    """
    Normalize the merged expression matrix.

    Args:
        dataset: Dataset with ``merged_expression`` set
        method: One of TMM, TMMwsp, RLE, upperquartile, quantile
        backend: Normalization backend (default: EdgeRNormalizer)

    Returns:
        Copy of ``dataset`` with ``normalized_expression`` set
    """
    check_choice("normalization method", method, NORMALIZATION_METHODS)
    matrix = dataset.merged_expression
    if matrix is None:
        raise ValidationError("Dataset has no merged expression; merge orthologs first")

    verify_matrix(matrix, "merged expression matrix")
    groups = dataset.group_labels(list(matrix.columns))
    verify_group_list(groups)

    backend = backend or EdgeRNormalizer()
    logger.info("Normalizing %d x %d matrix with %s", matrix.shape[0], matrix.shape[1], method)
    try:
        result = backend.normalize(matrix.copy(), groups, method)
    except ExprxError:
        raise
    except Exception as exc:
        raise ExternalServiceError(f"{method} normalization failed: {exc}") from exc

    if not isinstance(result, pd.DataFrame):
        raise ExternalServiceError(
            f"Normalization backend returned {type(result).__name__}, expected a DataFrame"
        )
    if result.shape != matrix.shape or not result.index.equals(matrix.index) or not result.columns.equals(matrix.columns):
        raise ExternalServiceError(
            f"Normalization changed the matrix layout: {matrix.shape} -> {result.shape}"
        )

    return dataset.evolve(normalized_expression=result, normalization_method=method)
