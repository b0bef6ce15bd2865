"""Coverage instrumentation for served browser sources."""

from .instrumenter import InstrumentationError, Instrumenter, coverage_variable
from .middleware import SourceMapRegistry, instrument_handler, is_excluded

__all__ = [
    "InstrumentationError",
    "Instrumenter",
    "SourceMapRegistry",
    "coverage_variable",
    "instrument_handler",
    "is_excluded",
]
