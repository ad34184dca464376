"""Structural checks shared by every pipeline stage."""

import logging
import re
from collections import Counter
from typing import Hashable, Iterable, List, Sequence

import numpy as np
import pandas as pd

from exprx.errors import ValidationError

logger = logging.getLogger(__name__)

ENSEMBL_GENE_ID = re.compile(r"^ENS\w+\d+$")

MIN_MATRIX_ROWS = 2
MIN_MATRIX_COLUMNS = 4
MIN_GROUP_SIZE = 2


def _as_flat_list(values, name: str) -> List[Hashable]:
    """Return ``values`` as a list, rejecting scalars and nested containers."""
    if isinstance(values, (str, bytes)) or values is None:
        raise ValidationError(f"{name} should be a flat list of identifiers.")
    if isinstance(values, (pd.DataFrame, dict)):
        raise ValidationError(f"{name} should be a flat list of identifiers.")
    if isinstance(values, np.ndarray) and values.ndim != 1:
        raise ValidationError(f"{name} should be a flat list of identifiers.")
    try:
        items = list(values)
    except TypeError:
        raise ValidationError(f"{name} should be a flat list of identifiers.") from None
    for item in items:
        if isinstance(item, (list, tuple, set, dict, np.ndarray, pd.Series)):
            raise ValidationError(f"{name} should be a flat list of identifiers.")
    return items


def _is_blank(value) -> bool:
    if isinstance(value, str):
        return not value.strip()
    return bool(pd.isna(value))


def unique_id_pairs(x: Iterable, y: Iterable) -> List[str]:
    """Return ids that occur exactly once in ``x`` and exactly once in ``y``.

    Applied to the gene id column of one species' homolog table and the
    cross-reference column of the other species' table, this yields the
    candidate 1-to-1 ortholog ids. Blank entries are ignored. The result is
    sorted so it does not depend on input order.

    Raises:
        ValidationError: if either input is not a flat list of identifiers.
    """
    x_items = _as_flat_list(x, "x")
    y_items = _as_flat_list(y, "y")

    x_cnt = Counter(v for v in x_items if not _is_blank(v))
    y_cnt = Counter(v for v in y_items if not _is_blank(v))

    x_once = {k for k, n in x_cnt.items() if n == 1}
    y_once = {k for k, n in y_cnt.items() if n == 1}
    return sorted(x_once & y_once, key=str)


def valid_ensembl_geneid(ids: Iterable[str]) -> bool:
    """Check that every id looks like an Ensembl gene id (``ENS...<digits>``).

    Logs a warning naming the abnormal ids and returns False if any id fails.
    """
    items = [str(i) for i in _as_flat_list(ids, "id")]
    if not items:
        logger.warning("No Ensembl gene IDs given.")
        return False
    abnormal = [i for i in items if not ENSEMBL_GENE_ID.match(i)]
    if abnormal:
        shown = ", ".join(abnormal[:5])
        more = f" (+{len(abnormal) - 5} more)" if len(abnormal) > 5 else ""
        logger.warning("%s%s: the ID looks abnormal.", shown, more)
        return False
    return True


def verify_matrix(x: pd.DataFrame, name: str = "matrix") -> None:
    """Require a DataFrame with at least 2 rows and 4 columns."""
    if not isinstance(x, pd.DataFrame):
        raise ValidationError(f"{name} is not a matrix.")
    n_rows, n_cols = x.shape
    if n_rows < MIN_MATRIX_ROWS:
        raise ValidationError(
            f"{name} should have >={MIN_MATRIX_ROWS} rows. But got {n_rows}."
        )
    if n_cols < MIN_MATRIX_COLUMNS:
        raise ValidationError(
            f"{name} should have >={MIN_MATRIX_COLUMNS} columns. But got {n_cols}."
        )


def check_na_rows(x: pd.DataFrame) -> List[Hashable]:
    """Return the index labels of rows that contain any missing value."""
    return list(x.index[x.isna().any(axis=1)])


def verify_group_list(group_list: Sequence) -> None:
    """Require exactly two distinct labels with at least two members each.

    Labels can be anything hashable: group numbers, species names and so on.
    """
    labels = _as_flat_list(group_list, "group_list")
    counts = Counter(labels)
    if len(counts) != 2:
        raise ValidationError(
            f"group_list should have 2 distinct groups, but got {len(counts)}:\n"
            + "\n".join(str(k) for k in counts)
        )
    if min(counts.values()) < MIN_GROUP_SIZE:
        raise ValidationError(
            f"Each group in group_list should have >={MIN_GROUP_SIZE} elements, but:\n"
            + "\n".join(f"{k}:\t{n}" for k, n in counts.items())
        )


def require_columns(df: pd.DataFrame, columns: Iterable[str], what: str) -> None:
    """Raise ValidationError if ``df`` lacks any of ``columns``."""
    missing = [c for c in columns if c not in df.columns]
    if missing:
        raise ValidationError(f"{what} is missing required columns: {', '.join(missing)}")
