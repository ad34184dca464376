"""
Differential comparator.

Tests every ortholog pair in the normalized matrix for a difference
between the two groups and assembles the per-pair result table. The
statistics come from an external library behind the ``DifferentialTest``
protocol:

- ``RankProdTest``: Bioconductor RankProd via rpy2 (rank product, the
  default)
- ``ScipyRankTest``: scipy Mann-Whitney U or Welch t test

Multiple-testing correction uses statsmodels ``multipletests``.
"""

import logging
from typing import List, Optional, Protocol

import numpy as np
import pandas as pd
from scipy import stats
from statsmodels.stats.multitest import multipletests

from exprx.analysis import r_bridge
from exprx.config import P_ADJUST_METHODS, TEST_METHODS, check_choice
from exprx.errors import ExprxError, ExternalServiceError, ValidationError
from exprx.expression.model import RESULT_COLUMNS, DifferentialResult, ExpressionDataset
from exprx.orthologs.model import PAIR_SEPARATOR
from exprx.validation import verify_group_list, verify_matrix

logger = logging.getLogger(__name__)

# Seed handed to RankProd's permutation step so results are reproducible
RANKPROD_SEED = 123


class DifferentialTest(Protocol):
    """Capability contract for a differential-expression test library."""

    def test(
        self,
        matrix: pd.DataFrame,
        groups: List[str],
        method: str,
        p_adjust: str,
    ) -> pd.DataFrame:
        """Return ``pvalue`` and ``pvalue_adjusted`` columns indexed like ``matrix``."""
        ...


def adjust_pvalues(pvalues, p_adjust: str) -> np.ndarray:
    """Apply an R-style multiple-testing correction (BH, bonferroni, ...)."""
    check_choice("p_adjust method", p_adjust, tuple(P_ADJUST_METHODS))
    p = np.asarray(pvalues, dtype=float)
    method = P_ADJUST_METHODS[p_adjust]
    if method is None or p.size == 0:
        return p.copy()
    adjusted = np.full_like(p, np.nan)
    ok = ~np.isnan(p)
    if ok.any():
        _, adjusted[ok], _, _ = multipletests(p[ok], method=method)
    return adjusted


def _group_masks(groups: List[str]):
    labels = list(dict.fromkeys(groups))
    arr = np.asarray(groups)
    return labels, arr == labels[0], arr == labels[1]


class RankProdTest:
    """
    Rank product test through Bioconductor RankProd.

    Values are passed as log2(x + 1). RankProd reports two one-sided
    p-values per gene (group 1 < group 2 and group 1 > group 2); the
    two-sided p-value is twice the smaller one, capped at 1.
    """

    def __init__(self, seed: int = RANKPROD_SEED):
        self.seed = seed

    def test(self, matrix: pd.DataFrame, groups: List[str], method: str, p_adjust: str) -> pd.DataFrame:
        if method != "RankProd":
            raise ExternalServiceError(f"RankProdTest cannot run {method!r}")
        _, first, _ = _group_masks(groups)
        logged = np.log2(matrix.clip(lower=0) + 1.0)

        try:
            rankprod = r_bridge.r_package("RankProd")
            res = rankprod.RankProducts(
                r_bridge.to_r_matrix(logged),
                r_bridge.int_vector(np.where(first, 0, 1)),
                logged=True,
                plot=False,
                rand=self.seed,
                **{"na.rm": False},
            )
            pval = r_bridge.from_r_matrix(
                res.rx2("pval"), matrix.index, ["lower", "higher"]
            )
        except ExprxError:
            raise
        except Exception as exc:
            raise ExternalServiceError(f"RankProd failed in R: {exc}") from exc

        two_sided = np.minimum(2.0 * pval.min(axis=1).to_numpy(), 1.0)
        return pd.DataFrame(
            {"pvalue": two_sided, "pvalue_adjusted": adjust_pvalues(two_sided, p_adjust)},
            index=matrix.index,
        )


class ScipyRankTest:
    """
    Per-row Mann-Whitney U or Welch t test on log2(x + 1) values.

    Rows where the test is undefined (e.g. constant values) get p = 1.
    """

    def test(self, matrix: pd.DataFrame, groups: List[str], method: str, p_adjust: str) -> pd.DataFrame:
        _, first, second = _group_masks(groups)
        log_expr = np.log2(matrix.clip(lower=0).to_numpy(dtype=float) + 1.0)
        x, y = log_expr[:, first], log_expr[:, second]

        pvalues = []
        for row_x, row_y in zip(x, y):
            try:
                if method == "welch_t":
                    _, pvalue = stats.ttest_ind(row_x, row_y, equal_var=False)
                elif method == "mann_whitney_u":
                    _, pvalue = stats.mannwhitneyu(row_x, row_y, alternative="two-sided")
                else:
                    raise ExternalServiceError(f"ScipyRankTest cannot run {method!r}")
            except ValueError:
                pvalue = 1.0
            if np.isnan(pvalue):
                pvalue = 1.0
            pvalues.append(float(pvalue))

        pvalues = np.asarray(pvalues, dtype=float)
        return pd.DataFrame(
            {"pvalue": pvalues, "pvalue_adjusted": adjust_pvalues(pvalues, p_adjust)},
            index=matrix.index,
        )


def default_backend(method: str) -> DifferentialTest:
    if method == "RankProd":
        return RankProdTest()
    return ScipyRankTest()


def compare(
    dataset: ExpressionDataset,
    method: str = "RankProd",
    p_adjust: str = "BH",
    backend: Optional[DifferentialTest] = None,
) -> DifferentialResult:
    """
    Test each ortholog pair for differential expression between the groups.

    Args:
        dataset: Dataset with ``normalized_expression`` set
        method: RankProd, mann_whitney_u or welch_t
        p_adjust: Multiple-testing correction (BH, fdr, BY, bonferroni,
            holm, hochberg, hommel, none)
        backend: Test backend (default chosen from ``method``)

    Returns:
        DifferentialResult, one row per ortholog pair, unsorted

    Raises:
        ValidationError: if the matrix is too small or the groups are not
            two groups of at least two replicates; checked before any
            statistic is computed
    """
    check_choice("test method", method, TEST_METHODS)
    check_choice("p_adjust method", p_adjust, tuple(P_ADJUST_METHODS))

    matrix = dataset.normalized_expression
    if matrix is None:
        raise ValidationError("Dataset has no normalized expression; run normalize first")
    verify_matrix(matrix, "normalized expression matrix")
    groups = dataset.group_labels(list(matrix.columns))
    verify_group_list(groups)

    backend = backend or default_backend(method)
    logger.info(
        "Comparing %d ortholog pairs with %s (%s correction)", matrix.shape[0], method, p_adjust
    )
    try:
        stats_df = backend.test(matrix.copy(), groups, method, p_adjust)
    except ExprxError:
        raise
    except Exception as exc:
        raise ExternalServiceError(f"{method} test failed: {exc}") from exc
    stats_df = _check_backend_output(stats_df, matrix)

    labels, first, second = _group_masks(groups)
    mean_a = matrix.loc[:, first].mean(axis=1)
    mean_b = matrix.loc[:, second].mean(axis=1)
    with np.errstate(divide="ignore", invalid="ignore"):
        log2fc = np.log2(mean_a.to_numpy(dtype=float) / mean_b.to_numpy(dtype=float))

    split = matrix.index.to_series().str.split(PAIR_SEPARATOR, n=1, expand=True)
    table = pd.DataFrame(
        {
            "gene_id_a": split[0].to_numpy(),
            "gene_id_b": split[1].to_numpy(),
            "mean_expr_a": mean_a.to_numpy(),
            "mean_expr_b": mean_b.to_numpy(),
            "log2_fold_change": log2fc,
            "pvalue": stats_df["pvalue"].to_numpy(dtype=float),
            "pvalue_adjusted": stats_df["pvalue_adjusted"].to_numpy(dtype=float),
        },
        columns=RESULT_COLUMNS,
    )
    return DifferentialResult(table=table, method=method, p_adjust=p_adjust, groups=labels)


def _check_backend_output(stats_df, matrix: pd.DataFrame) -> pd.DataFrame:
    if not isinstance(stats_df, pd.DataFrame):
        raise ExternalServiceError(
            f"Test backend returned {type(stats_df).__name__}, expected a DataFrame"
        )
    missing = [c for c in ("pvalue", "pvalue_adjusted") if c not in stats_df.columns]
    if missing:
        raise ExternalServiceError(f"Test backend output lacks columns: {', '.join(missing)}")
    if len(stats_df) != len(matrix) or not stats_df.index.equals(matrix.index):
        raise ExternalServiceError(
            f"Test backend returned {len(stats_df)} rows for {len(matrix)} ortholog pairs"
        )
    return stats_df
