"""Configuration dataclasses and method enumerations.

Every stage takes its options explicitly through these objects.
Environment variables are only read by the ``from_env`` constructors.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

from dotenv import find_dotenv, load_dotenv

from exprx.errors import ConfigurationError

# =============================================================================
# Method enumerations
# =============================================================================

NORMALIZATION_METHODS = ("TMM", "TMMwsp", "RLE", "upperquartile", "quantile")

TEST_METHODS = ("RankProd", "mann_whitney_u", "welch_t")

# R-style names (as accepted by p.adjust) -> statsmodels multipletests names
P_ADJUST_METHODS = {
    "BH": "fdr_bh",
    "fdr": "fdr_bh",
    "BY": "fdr_by",
    "bonferroni": "bonferroni",
    "holm": "holm",
    "hochberg": "simes-hochberg",
    "hommel": "hommel",
    "none": None,
}

# =============================================================================
# Annotation service
# =============================================================================

DEFAULT_BIOMART_URL = "https://www.ensembl.org/biomart/martservice"
DEFAULT_BIOMART_TIMEOUT = 600


@dataclass
class BioMartConfig:
    """Connection settings for the Ensembl BioMart service.

    Attributes:
        url: martservice endpoint
        timeout: Seconds before a request is abandoned
        mart: Mart holding the gene datasets
        user_agent: User-Agent header sent with every request
        max_retries: Retries on connection errors and 5xx replies (0 = fail at once)
    """

    url: str = DEFAULT_BIOMART_URL
    timeout: int = DEFAULT_BIOMART_TIMEOUT
    mart: str = "ENSEMBL_MART_ENSEMBL"
    user_agent: str = "exprx/0.3"
    max_retries: int = 0

    def __post_init__(self):
        if self.timeout <= 0:
            raise ConfigurationError(f"timeout must be > 0, got {self.timeout}")
        if self.max_retries < 0:
            raise ConfigurationError(f"max_retries must be >= 0, got {self.max_retries}")

    @classmethod
    def from_env(cls) -> "BioMartConfig":
        """Build a config from ``EXPRX_BIOMART_*`` variables.

        A ``.env`` file in the working directory is loaded first; variables
        already set in the process environment take precedence.
        """
        load_dotenv(find_dotenv(usecwd=True))
        return cls(
            url=os.environ.get("EXPRX_BIOMART_URL") or DEFAULT_BIOMART_URL,
            timeout=_env_int("EXPRX_BIOMART_TIMEOUT", DEFAULT_BIOMART_TIMEOUT),
            max_retries=_env_int("EXPRX_BIOMART_RETRIES", 0),
        )


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from None


# =============================================================================
# Species registry / loader / analysis
# =============================================================================


@dataclass
class RegistryConfig:
    """Where the packaged species list lives.

    Attributes:
        species_list_path: Explicit path to a species list CSV. When None the
            ``species_list.csv`` resource shipped inside the package is used.
    """

    species_list_path: Optional[Path] = None


@dataclass
class LoaderConfig:
    """Options for reading per-replicate expression files."""

    # Column holding the expression value; None means "second column"
    value_column: Optional[str] = None
    max_workers: int = 4
    # Explicit (species_a, species_b) order; default is order of first appearance
    species_order: Optional[Sequence[str]] = None

    def __post_init__(self):
        if self.max_workers < 1:
            raise ConfigurationError(f"max_workers must be >= 1, got {self.max_workers}")
        if self.species_order is not None and len(self.species_order) != 2:
            raise ConfigurationError(
                f"species_order must name exactly 2 species, got {list(self.species_order)}"
            )


@dataclass
class AnalysisConfig:
    """Normalization and testing choices for a pipeline run."""

    normalization: str = "TMM"
    test_method: str = "RankProd"
    p_adjust: str = "BH"

    def __post_init__(self):
        check_choice("normalization method", self.normalization, NORMALIZATION_METHODS)
        check_choice("test method", self.test_method, TEST_METHODS)
        check_choice("p_adjust method", self.p_adjust, tuple(P_ADJUST_METHODS))


def check_choice(what: str, value: str, choices: Sequence[str]) -> str:
    """Raise ConfigurationError unless ``value`` is one of ``choices``."""
    if value not in choices:
        raise ConfigurationError(
            f"Unknown {what} {value!r}; expected one of: {', '.join(choices)}"
        )
    return value
