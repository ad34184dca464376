"""
Dataset loader.

Reads a sample metadata table and one expression file per replicate into
an ExpressionDataset.

Metadata table (CSV, or TSV for ``.tsv``/``.txt``), one row per replicate:

    sample_id   unique replicate id, becomes the matrix column name
    species     species of the replicate; exactly two distinct values
    file_path   expression file, relative to ``data_dir`` unless absolute
    group_label optional; defaults to the species value

Expression files: delimited text with a header row, comma-separated for
``.csv`` (optionally ``.csv.gz``) and tab-separated otherwise. The first
column holds gene ids; the value is taken from ``LoaderConfig.value_column``
or, when unset, the second column (TPM, FPKM or RPKM).
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Dict, List, Optional, Union

import pandas as pd

from exprx.config import LoaderConfig
from exprx.errors import DataIOError, ValidationError
from exprx.expression.model import METADATA_COLUMNS, ExpressionDataset, SpeciesBlock
from exprx.validation import require_columns

logger = logging.getLogger(__name__)

REQUIRED_METADATA_COLUMNS = ["sample_id", "species", "file_path"]

# Value cells read as missing rather than malformed
MISSING_TOKENS = ["", "NA", "NaN", "nan"]


def load_dataset(
    meta: Union[pd.DataFrame, str, Path],
    data_dir: Union[str, Path] = ".",
    config: Optional[LoaderConfig] = None,
) -> ExpressionDataset:
    """
    Load replicate expression files described by a metadata table.

    Args:
        meta: Metadata DataFrame or path to a metadata file
        data_dir: Directory that relative ``file_path`` entries resolve against
        config: Loader options

    Returns:
        ExpressionDataset with one SpeciesBlock per species
    """
    config = config or LoaderConfig()
    data_dir = Path(data_dir)
    meta = read_metadata(meta)

    species_order = _species_order(meta, config.species_order)

    paths = [_resolve_path(data_dir, p) for p in meta["file_path"]]
    columns = _read_all(paths, list(meta["sample_id"]), config)

    blocks = []
    for species in species_order:
        rows = meta[meta["species"] == species].reset_index(drop=True)
        series = [columns[sid] for sid in rows["sample_id"]]
        raw = pd.concat(series, axis=1, join="outer", sort=False)
        raw.index.name = "gene_id"
        blocks.append(SpeciesBlock(species=species, sample_metadata=rows, raw_expression=raw))
        logger.info(
            "Loaded %s: %d replicates, %d genes", species, raw.shape[1], raw.shape[0]
        )

    return ExpressionDataset(species_a=blocks[0], species_b=blocks[1])


def read_metadata(meta: Union[pd.DataFrame, str, Path]) -> pd.DataFrame:
    """Read and validate the sample metadata table."""
    if isinstance(meta, pd.DataFrame):
        df = meta.copy()
    else:
        path = Path(meta)
        if not path.is_file():
            raise DataIOError(f"Metadata file not found: {path}")
        sep = "\t" if path.suffix.lower() in (".tsv", ".txt") else ","
        try:
            df = pd.read_csv(path, sep=sep, dtype=str, keep_default_na=False)
        except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as exc:
            raise DataIOError(f"Malformed metadata file {path}: {exc}") from exc

    require_columns(df, REQUIRED_METADATA_COLUMNS, "Metadata table")
    if df.empty:
        raise ValidationError("Metadata table has no rows")

    for column in REQUIRED_METADATA_COLUMNS:
        df[column] = df[column].fillna("").astype(str).str.strip()
        blank = df[column] == ""
        if blank.any():
            raise ValidationError(
                f"Metadata column {column!r} is blank on rows: "
                + ", ".join(str(i) for i in df.index[blank][:5])
            )

    dup = df["sample_id"][df["sample_id"].duplicated()]
    if not dup.empty:
        raise ValidationError(
            "Metadata has duplicated sample_id values: " + ", ".join(dup.unique()[:5])
        )

    if "group_label" not in df.columns:
        df["group_label"] = df["species"]
    else:
        labels = df["group_label"].fillna("").astype(str).str.strip()
        df["group_label"] = labels.where(labels != "", df["species"])

    extras = [c for c in df.columns if c not in METADATA_COLUMNS]
    return df[METADATA_COLUMNS + extras].reset_index(drop=True)


def read_expression_file(
    path: Path,
    sample_id: str,
    value_column: Optional[str] = None,
) -> pd.Series:
    """
    Read one replicate's expression file into a Series named ``sample_id``.

    Raises:
        DataIOError: if the file is missing or malformed
    """
    if not path.is_file():
        raise DataIOError(f"Expression file not found for {sample_id}: {path}")

    name = path.name.lower()
    if name.endswith(".gz"):
        name = name[:-3]
    sep = "," if name.endswith(".csv") else "\t"

    try:
        df = pd.read_csv(path, sep=sep, header=0, dtype=str, keep_default_na=False)
    except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError, OSError) as exc:
        raise DataIOError(f"Malformed expression file {path}: {exc}") from exc

    if df.shape[1] < 2:
        raise DataIOError(
            f"Expression file {path} needs a gene id and a value column, got {list(df.columns)}"
        )

    gene_col = df.columns[0]
    if value_column is None:
        value_col = df.columns[1]
    elif value_column in df.columns:
        value_col = value_column
    else:
        raise DataIOError(f"Expression file {path} has no column {value_column!r}")

    genes = df[gene_col].str.strip()
    if (genes == "").any():
        raise DataIOError(f"Expression file {path} has rows without a gene id")
    dup = genes[genes.duplicated()]
    if not dup.empty:
        raise DataIOError(
            f"Expression file {path} has duplicated gene ids: " + ", ".join(dup.unique()[:5])
        )

    raw = df[value_col].str.strip()
    missing = raw.isin(MISSING_TOKENS)
    values = pd.to_numeric(raw.where(~missing), errors="coerce")
    bad = values.isna() & ~missing
    if bad.any():
        first = bad.idxmax()
        raise DataIOError(
            f"Expression file {path} has a non-numeric value {raw[first]!r} for gene {genes[first]!r}"
        )

    return pd.Series(values.to_numpy(dtype=float), index=pd.Index(genes, name="gene_id"), name=sample_id)


# -----------------------------------------------------------------
# Internal
# -----------------------------------------------------------------


def _species_order(meta: pd.DataFrame, explicit) -> List[str]:
    present = list(dict.fromkeys(meta["species"]))
    if len(present) != 2:
        raise ValidationError(
            f"Metadata should contain exactly 2 species, but got {len(present)}: {', '.join(present)}"
        )
    if explicit is None:
        return present
    order = [str(s) for s in explicit]
    if set(order) != set(present):
        raise ValidationError(
            f"species_order {order} does not match metadata species {present}"
        )
    return order


def _resolve_path(data_dir: Path, file_path: str) -> Path:
    path = Path(file_path)
    return path if path.is_absolute() else data_dir / path


def _read_all(paths: List[Path], sample_ids: List[str], config: LoaderConfig) -> Dict[str, pd.Series]:
    """Read replicate files concurrently; results are keyed, not ordered by arrival."""
    with ThreadPoolExecutor(max_workers=config.max_workers) as pool:
        futures = {
            sid: pool.submit(read_expression_file, path, sid, config.value_column)
            for path, sid in zip(paths, sample_ids)
        }
        return {sid: futures[sid].result() for sid in sample_ids}
