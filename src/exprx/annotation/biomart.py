"""
Ensembl BioMart client for species lists and homolog annotation.

Queries the BioMart martservice endpoint with XML queries and returns
pandas DataFrames with normalized column names. Anything that looks like
an annotation source (``list_datasets`` + ``get_homolog_annotation``) can
stand in for ``BioMartClient``; tests use in-memory fakes.

Usage::

    from exprx.annotation.biomart import BioMartClient

    client = BioMartClient()
    human = client.get_homolog_annotation("hsapiens", "mmusculus")
"""

import io
import logging
import time
from typing import Optional, Protocol

import pandas as pd
import requests

from exprx.annotation.http_utils import create_session
from exprx.config import BioMartConfig
from exprx.errors import ExternalServiceError

logger = logging.getLogger(__name__)

DATASET_SUFFIX = "_gene_ensembl"

# Normalized columns of a homolog annotation table
HOMOLOG_COLUMNS = [
    "gene_id",
    "gene_name",
    "chromosome",
    "gene_type",
    "homolog_id",
    "homology_type",
]

DATASET_COLUMNS = ["dataset", "description", "version"]

QUERY_TEMPLATE = """<?xml version="1.0" encoding="UTF-8"?>
<!DOCTYPE Query>
<Query virtualSchemaName="default" formatter="TSV" header="0" uniqueRows="1" count="" datasetConfigVersion="0.6">
    <Dataset name="{dataset}" interface="default">
{attributes}
    </Dataset>
</Query>"""


class AnnotationSource(Protocol):
    """Capability contract for a homolog annotation provider."""

    def list_datasets(self) -> pd.DataFrame:
        """Return one row per species dataset: ``dataset, description, version``."""
        ...

    def get_homolog_annotation(self, source_species: str, target_species: str) -> pd.DataFrame:
        """Return the source species' genes with cross-references to the target.

        Columns are ``HOMOLOG_COLUMNS``. A gene with several homologs appears on
        several rows; a gene with none has a blank ``homolog_id``.
        """
        ...


def dataset_name(species: str) -> str:
    """``hsapiens`` -> ``hsapiens_gene_ensembl`` (idempotent)."""
    species = species.strip()
    if species.endswith(DATASET_SUFFIX):
        return species
    return f"{species}{DATASET_SUFFIX}"


def species_id(dataset: str) -> str:
    """``hsapiens_gene_ensembl`` -> ``hsapiens``."""
    dataset = dataset.strip()
    if dataset.endswith(DATASET_SUFFIX):
        return dataset[: -len(DATASET_SUFFIX)]
    return dataset


def build_homolog_query(source_species: str, target_species: str) -> str:
    """Build the XML query for ``source_species`` genes and their ``target_species`` homologs."""
    target = species_id(target_species)
    attributes = [
        "ensembl_gene_id",
        "external_gene_name",
        "chromosome_name",
        "gene_biotype",
        f"{target}_homolog_ensembl_gene",
        f"{target}_homolog_orthology_type",
    ]
    lines = "\n".join(f'        <Attribute name="{a}"/>' for a in attributes)
    return QUERY_TEMPLATE.format(dataset=dataset_name(source_species), attributes=lines)


class BioMartClient:
    """
    Thin client for the Ensembl BioMart REST service.

    Calls are synchronous and may take minutes for full-genome homolog
    tables. Failures raise ExternalServiceError once the configured
    retries (none by default) are used up.

    Args:
        config: Connection settings (defaults to ``BioMartConfig.from_env()``)
        session: Optional pre-built requests session
    """

    def __init__(
        self,
        config: Optional[BioMartConfig] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.config = config or BioMartConfig.from_env()
        self._session = session

    @property
    def session(self) -> requests.Session:
        if self._session is None:
            self._session = create_session(self.config)
        return self._session

    # -----------------------------------------------------------------
    # Public API
    # -----------------------------------------------------------------

    def list_datasets(self) -> pd.DataFrame:
        """List the gene datasets served by the configured mart."""
        text = self._get(
            {"type": "datasets", "mart": self.config.mart},
            description="dataset list",
        )
        rows = []
        for line in text.splitlines():
            parts = line.split("\t")
            if len(parts) < 5 or not parts[1].strip():
                continue
            rows.append(
                {
                    "dataset": parts[1].strip(),
                    "description": parts[2].strip(),
                    "version": parts[4].strip(),
                }
            )
        if not rows:
            raise ExternalServiceError("BioMart returned an empty dataset list")
        logger.info("BioMart lists %d datasets", len(rows))
        return pd.DataFrame(rows, columns=DATASET_COLUMNS)

    def get_homolog_annotation(self, source_species: str, target_species: str) -> pd.DataFrame:
        """Fetch ``source_species`` genes with their ``target_species`` homologs."""
        query = build_homolog_query(source_species, target_species)
        text = self._get(
            {"query": query},
            description=f"{species_id(source_species)} -> {species_id(target_species)} homologs",
        )
        return parse_homolog_tsv(text)

    # -----------------------------------------------------------------
    # Internal
    # -----------------------------------------------------------------

    def _get(self, params: dict, description: str) -> str:
        logger.info("Querying BioMart: %s...", description)
        start = time.time()
        try:
            response = self.session.get(
                self.config.url, params=params, timeout=self.config.timeout
            )
            response.raise_for_status()
        except requests.exceptions.Timeout as exc:
            raise ExternalServiceError(
                f"BioMart {description} timed out after {self.config.timeout}s"
            ) from exc
        except requests.exceptions.RequestException as exc:
            raise ExternalServiceError(f"BioMart {description} failed: {exc}") from exc

        text = response.text
        if text.lstrip().startswith("Query ERROR"):
            raise ExternalServiceError(f"BioMart {description} error: {text[:500]}")

        logger.info(
            "  Got %d lines in %.1fs", text.count("\n"), time.time() - start
        )
        return text


def parse_homolog_tsv(text: str) -> pd.DataFrame:
    """Parse a headerless BioMart homolog TSV into a normalized DataFrame."""
    if not text.strip():
        return pd.DataFrame(columns=HOMOLOG_COLUMNS)
    try:
        df = pd.read_csv(
            io.StringIO(text),
            sep="\t",
            header=None,
            names=HOMOLOG_COLUMNS,
            dtype=str,
            keep_default_na=False,
        )
    except (pd.errors.ParserError, ValueError) as exc:
        raise ExternalServiceError(f"Could not parse BioMart response: {exc}") from exc
    df = df.apply(lambda col: col.str.strip())
    return df.replace("", pd.NA)
