"""
Minimal rpy2 bridge to the Bioconductor packages used by the default backends.

rpy2 and the R packages are imported lazily so the rest of exprx works
without an R installation; any failure to reach R surfaces as an
ExternalServiceError.
"""

import logging
from typing import Dict, Sequence

import pandas as pd

from exprx.errors import ExternalServiceError

logger = logging.getLogger(__name__)

_packages: Dict[str, object] = {}


def robjects():
    """Return ``rpy2.robjects``, raising ExternalServiceError if unavailable."""
    try:
        import rpy2.robjects as ro
    except ImportError as exc:
        raise ExternalServiceError(
            "rpy2 is required for this backend. Install with: pip install 'exprx[r]'"
        ) from exc
    return ro


def r_package(name: str):
    """Import an R package via rpy2 (cached per process)."""
    if name not in _packages:
        robjects()
        from rpy2.robjects.packages import PackageNotInstalledError, importr

        try:
            _packages[name] = importr(name, on_conflict="warn")
        except PackageNotInstalledError as exc:
            raise ExternalServiceError(
                f"R package {name!r} is not installed. Install it with BiocManager::install('{name}')"
            ) from exc
        logger.debug("Loaded R package %s", name)
    return _packages[name]


def to_r_matrix(matrix: pd.DataFrame):
    """Convert a numeric DataFrame to an R matrix keeping row and column names."""
    ro = robjects()
    from rpy2.robjects import pandas2ri
    from rpy2.robjects.conversion import localconverter

    with localconverter(ro.default_converter + pandas2ri.converter):
        r_frame = pandas2ri.py2rpy(matrix.astype(float))
    return ro.r["as.matrix"](r_frame)


def from_r_matrix(r_mat, index: Sequence, columns: Sequence) -> pd.DataFrame:
    """Convert an R numeric matrix back to a DataFrame labelled ``index`` x ``columns``."""
    ro = robjects()
    from rpy2.robjects import pandas2ri
    from rpy2.robjects.conversion import localconverter

    with localconverter(ro.default_converter + pandas2ri.converter):
        frame = pandas2ri.rpy2py(ro.r["as.data.frame"](r_mat))
    return align_labels(frame, index, columns)


def align_labels(frame: pd.DataFrame, index: Sequence, columns: Sequence) -> pd.DataFrame:
    """
    Put the expected labels on a frame returned by R.

    Rows and columns are matched by name when R kept the names, and taken
    in order otherwise (R drops or renumbers names in some functions).
    """
    index = pd.Index(index)
    columns = pd.Index(columns)
    if frame.shape != (len(index), len(columns)):
        raise ExternalServiceError(
            f"R returned a {frame.shape[0]} x {frame.shape[1]} matrix, "
            f"expected {len(index)} x {len(columns)}"
        )
    frame = frame.astype(float)
    frame = _match_axis(frame, index, axis=0)
    frame = _match_axis(frame, columns, axis=1)
    return frame


def _match_axis(frame: pd.DataFrame, labels: pd.Index, axis: int) -> pd.DataFrame:
    current = frame.axes[axis].astype(str)
    wanted = labels.astype(str)
    if current.is_unique and set(current) == set(wanted):
        positions = pd.Index(current).get_indexer(wanted)
        frame = frame.iloc[positions] if axis == 0 else frame.iloc[:, positions]
    return frame.set_axis(labels, axis=axis)


def str_vector(values: Sequence[str]):
    return robjects().StrVector([str(v) for v in values])


def int_vector(values: Sequence[int]):
    return robjects().IntVector([int(v) for v in values])
