"""Error kinds raised by the exprx pipeline.

Every public operation either returns a well-typed value or raises one of
the exceptions below. They also subclass the closest builtin so callers
that only know about ``ValueError``/``OSError`` still catch them.
"""


class ExprxError(Exception):
    """Base class for all exprx errors."""


class ConfigurationError(ExprxError, ValueError):
    """Bad or contradictory parameters, unknown enum value."""


class ValidationError(ExprxError, ValueError):
    """A structural invariant was violated (shape, cardinality, columns, duplicates)."""


class DataIOError(ExprxError, OSError):
    """A file or packaged resource is missing or malformed."""


class ExternalServiceError(ExprxError, RuntimeError):
    """Failure inside the annotation service, normalization or test backend."""


class SpeciesListNotFoundError(DataIOError, ConfigurationError):
    """The configured species list resource does not exist."""
