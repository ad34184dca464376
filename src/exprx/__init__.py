"""exprx: interspecies differential expression on 1-to-1 orthologs.

Typical use::

    from exprx import run_pipeline
    from exprx.config import AnalysisConfig

    outcome = run_pipeline("samples.csv", data_dir="data",
                           orthologs="hsapiens_mmusculus.orthologs.pkl.gz",
                           analysis=AnalysisConfig(test_method="mann_whitney_u"))
    outcome.result.sorted_by("pvalue_adjusted").head()
"""

from exprx.analysis import compare, normalize
from exprx.annotation import BioMartClient, list_species, resolve_species
from exprx.expression import load_dataset, merge_expression
from exprx.orthologs import filter_orthologs, load_orthologs, resolve_pairs, save_orthologs
from exprx.pipeline import PipelineResult, run_pipeline

__version__ = "0.3.0"

__all__ = [
    "BioMartClient",
    "PipelineResult",
    "compare",
    "filter_orthologs",
    "list_species",
    "load_dataset",
    "load_orthologs",
    "merge_expression",
    "normalize",
    "resolve_pairs",
    "resolve_species",
    "run_pipeline",
    "save_orthologs",
]
