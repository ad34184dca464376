"""
Species registry.

Only species with a genome in the Ensembl database are supported. The list
either comes from the version-pinned CSV shipped with the package or,
on request, live from BioMart.
"""

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import pandas as pd

from exprx.annotation.biomart import AnnotationSource, BioMartClient, species_id
from exprx.config import RegistryConfig
from exprx.errors import (
    ConfigurationError,
    DataIOError,
    ExternalServiceError,
    SpeciesListNotFoundError,
)
from exprx.validation import require_columns

logger = logging.getLogger(__name__)

PACKAGED_SPECIES_LIST = Path(__file__).resolve().parent.parent / "data" / "species_list.csv"

SPECIES_LIST_COLUMNS = ["Dataset", "Species", "ScientificName", "Version"]

# "Human genes (GRCh38.p14)" -> "Human"
_DESCRIPTION_SUFFIX = re.compile(r"\s+genes\s+\(.*$")


@dataclass(frozen=True)
class SpeciesRecord:
    """One supported species."""

    dataset_id: str  # e.g. "hsapiens"
    common_name: str  # e.g. "Human"
    scientific_name: str = ""  # e.g. "Homo sapiens"
    version: str = ""  # e.g. "GRCh38.p14"

    def to_dict(self) -> dict:
        return {
            "Dataset": self.dataset_id,
            "Species": self.common_name,
            "ScientificName": self.scientific_name,
            "Version": self.version,
        }


def list_species(
    pattern: str = "",
    updated: bool = False,
    config: Optional[RegistryConfig] = None,
    source: Optional[AnnotationSource] = None,
) -> List[SpeciesRecord]:
    """
    List supported species, optionally filtered by a name pattern.

    Args:
        pattern: Case-insensitive substring matched against the dataset id
            and the common name. Empty returns every species.
        updated: If True fetch the live list from BioMart, otherwise read
            the species list packaged with exprx.
        config: Registry configuration (location of the packaged list)
        source: Annotation source used when ``updated`` is True
            (default: ``BioMartClient()``)

    Returns:
        Matching records in source order

    Examples:
        list_species()
        list_species(pattern="human")
        list_species(pattern="macaque", updated=True)
    """
    if not isinstance(updated, bool):
        raise ConfigurationError("The parameter updated should be set as True or False")
    if pattern is None:
        pattern = ""

    if updated:
        records = _fetch_remote_species(source or BioMartClient())
    else:
        records = _read_local_species((config or RegistryConfig()).species_list_path)

    return filter_species(records, pattern)


def filter_species(records: List[SpeciesRecord], pattern: str) -> List[SpeciesRecord]:
    """Union of records whose dataset id or common name contains ``pattern``."""
    needle = pattern.casefold()
    by_id = {i for i, r in enumerate(records) if needle in r.dataset_id.casefold()}
    by_name = {i for i, r in enumerate(records) if needle in r.common_name.casefold()}
    return [records[i] for i in sorted(by_id | by_name)]


def resolve_species(
    name: str,
    config: Optional[RegistryConfig] = None,
) -> SpeciesRecord:
    """
    Resolve a species name or alias to exactly one record.

    Exact (case-insensitive) matches on dataset id, common name or scientific
    name win; otherwise the pattern must match a single species.
    """
    records = list_species(config=config)
    key = name.strip().casefold()
    if not key:
        raise ConfigurationError("Species name must not be empty")
    exact = [
        r for r in records
        if key in (r.dataset_id.casefold(), r.common_name.casefold(), r.scientific_name.casefold())
    ]
    if len(exact) == 1:
        return exact[0]
    matches = exact or filter_species(records, name.strip())
    if not matches:
        raise ConfigurationError(f"Unknown species {name!r}. Use list_species() to list all species.")
    if len(matches) > 1:
        shown = ", ".join(f"{r.dataset_id} ({r.common_name})" for r in matches[:10])
        raise ConfigurationError(f"Species {name!r} is ambiguous: {shown}")
    return matches[0]


def species_frame(records: List[SpeciesRecord]) -> pd.DataFrame:
    """Records as a DataFrame with the species list column layout."""
    return pd.DataFrame([r.to_dict() for r in records], columns=SPECIES_LIST_COLUMNS)


# -----------------------------------------------------------------
# Internal
# -----------------------------------------------------------------


def _read_local_species(path: Optional[Path]) -> List[SpeciesRecord]:
    species_file = Path(path) if path is not None else PACKAGED_SPECIES_LIST
    if not species_file.is_file():
        raise SpeciesListNotFoundError(f"Species list file doesn't exist: {species_file}")
    try:
        df = pd.read_csv(species_file, dtype=str, keep_default_na=False)
    except (pd.errors.ParserError, UnicodeDecodeError) as exc:
        raise DataIOError(f"Malformed species list {species_file}: {exc}") from exc
    require_columns(df, ["Dataset", "Species"], f"Species list {species_file}")

    records = [
        SpeciesRecord(
            dataset_id=row["Dataset"].strip(),
            common_name=row["Species"].strip(),
            scientific_name=row.get("ScientificName", "").strip(),
            version=row.get("Version", "").strip(),
        )
        for _, row in df.iterrows()
    ]
    logger.debug("Loaded %d species from %s", len(records), species_file)
    return records


def _fetch_remote_species(source: AnnotationSource) -> List[SpeciesRecord]:
    try:
        df = source.list_datasets()
    except ExternalServiceError:
        raise
    except Exception as exc:
        raise ExternalServiceError(f"Could not fetch the species list: {exc}") from exc

    records = []
    for _, row in df.iterrows():
        description = str(row.get("description", "") or "")
        records.append(
            SpeciesRecord(
                dataset_id=species_id(str(row["dataset"])),
                common_name=_DESCRIPTION_SUFFIX.sub("", description).strip(),
                version=str(row.get("version", "") or ""),
            )
        )
    logger.info("Fetched %d species from the annotation service", len(records))
    return records
