"""Species registry and homolog annotation sources."""

from exprx.annotation.biomart import AnnotationSource, BioMartClient
from exprx.annotation.species import (
    SpeciesRecord,
    list_species,
    resolve_species,
    species_frame,
)

__all__ = [
    "AnnotationSource",
    "BioMartClient",
    "SpeciesRecord",
    "list_species",
    "resolve_species",
    "species_frame",
]
