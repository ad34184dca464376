"""
Pipeline orchestrator.

Runs the full comparison for one dataset:

    load -> orthologs (cache or resolve) -> filter -> merge -> normalize -> compare
"""

import dataclasses
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

import pandas as pd

from exprx.analysis.differential import DifferentialTest, compare
from exprx.analysis.normalization import Normalizer, normalize
from exprx.annotation.biomart import AnnotationSource, BioMartClient, species_id
from exprx.annotation.species import resolve_species
from exprx.config import AnalysisConfig, BioMartConfig, LoaderConfig, RegistryConfig
from exprx.errors import ValidationError
from exprx.expression.loader import load_dataset
from exprx.expression.merger import merge_expression
from exprx.expression.model import DifferentialResult, ExpressionDataset
from exprx.orthologs.filters import OrthologFilter
from exprx.orthologs.model import OrthologTable, load_orthologs
from exprx.orthologs.resolver import resolve_pairs

logger = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    """Container for a pipeline run."""

    dataset: ExpressionDataset
    result: DifferentialResult

    def get_stats(self) -> dict:
        orthologs = self.dataset.orthologs
        return {
            "species_a": self.dataset.species_a.species,
            "species_b": self.dataset.species_b.species,
            "replicates_a": self.dataset.species_a.n_replicates,
            "replicates_b": self.dataset.species_b.n_replicates,
            "ortholog_pairs": len(orthologs) if orthologs is not None else 0,
            "dropped_pairs": self.dataset.dropped_pairs or 0,
            "normalization": self.dataset.normalization_method,
            "test_method": self.result.method,
            "p_adjust": self.result.p_adjust,
        }


def run_pipeline(
    meta: Union[pd.DataFrame, str, Path],
    data_dir: Union[str, Path] = ".",
    orthologs: Union[OrthologTable, str, Path, None] = None,
    source: Optional[AnnotationSource] = None,
    filters: Optional[OrthologFilter] = None,
    analysis: Optional[AnalysisConfig] = None,
    loader: Optional[LoaderConfig] = None,
    normalizer: Optional[Normalizer] = None,
    tester: Optional[DifferentialTest] = None,
    registry: Optional[RegistryConfig] = None,
) -> PipelineResult:
    """
    Run the interspecies comparison end to end.

    Args:
        meta: Sample metadata (DataFrame or path)
        data_dir: Directory holding the expression files
        orthologs: Ortholog table, or path to a saved ortholog cache. When
            None the orthologs are resolved through ``source``.
        source: Annotation source used when ``orthologs`` is None
            (default: BioMartClient configured from the environment)
        filters: Optional ortholog filter applied before merging
        analysis: Normalization and test choices
        loader: Options for reading expression files
        normalizer: Normalization backend
        tester: Differential test backend
        registry: Species list location, used to map metadata species
            names to canonical ids when resolving orthologs

    Returns:
        PipelineResult with the final dataset and the result table
    """
    start = time.time()
    analysis = analysis or AnalysisConfig()

    dataset = load_dataset(meta, data_dir, loader)

    if orthologs is None:
        table = _resolve_for_dataset(dataset, source, registry)
    else:
        if isinstance(orthologs, (str, Path)):
            orthologs = load_orthologs(orthologs)
        table = _orient_for_dataset(dataset, orthologs, registry)

    if filters is not None and not filters.is_empty:
        table = filters.apply(table)

    dataset = merge_expression(dataset, table)
    dataset = normalize(dataset, analysis.normalization, backend=normalizer)
    result = compare(dataset, analysis.test_method, analysis.p_adjust, backend=tester)

    logger.info(
        "Pipeline finished in %.1fs: %d ortholog pairs tested, %d dropped",
        time.time() - start, len(result), dataset.dropped_pairs or 0,
    )
    return PipelineResult(dataset=dataset, result=result)


def _resolve_for_dataset(
    dataset: ExpressionDataset,
    source: Optional[AnnotationSource],
    registry: Optional[RegistryConfig],
) -> OrthologTable:
    name_a = dataset.species_a.species
    name_b = dataset.species_b.species
    id_a = resolve_species(name_a, registry).dataset_id
    id_b = resolve_species(name_b, registry).dataset_id
    logger.info("Resolving orthologs for %s (%s) and %s (%s)", name_a, id_a, name_b, id_b)

    source = source or BioMartClient(BioMartConfig.from_env())
    table = resolve_pairs(id_a, id_b, source)
    # Label the table with the metadata names so the merge keeps the order
    return dataclasses.replace(table, species_a=name_a, species_b=name_b)


def _orient_for_dataset(
    dataset: ExpressionDataset,
    table: OrthologTable,
    registry: Optional[RegistryConfig],
) -> OrthologTable:
    """Label a supplied ortholog table with the metadata species names.

    Tables already named like the metadata pass through. Otherwise both
    metadata names are mapped to dataset ids (``human`` -> ``hsapiens``) and
    the table is swapped if needed.
    """
    names = (dataset.species_a.species, dataset.species_b.species)
    labels = (table.species_a, table.species_b)
    if labels == names or labels[::-1] == names:
        return table

    ids = tuple(resolve_species(name, registry).dataset_id for name in names)
    table_ids = tuple(species_id(label) for label in labels)
    if table_ids == ids[::-1]:
        logger.info("Swapping ortholog table %s to match dataset species %s", labels, names)
        table = table.swapped()
    elif table_ids != ids:
        raise ValidationError(
            f"Ortholog table is for {labels[0]} and {labels[1]}, but the dataset "
            f"holds {names[0]} ({ids[0]}) and {names[1]} ({ids[1]})"
        )
    return dataclasses.replace(table, species_a=names[0], species_b=names[1])
