"""Batch ingestion of bioRxiv/medRxiv MECA archives into a works catalog."""

from .config import IngestConfig, load_config
from .errors import (
    ConfigurationError,
    DuplicateConflict,
    ErrorKind,
    ExtractionError,
    IngestError,
    MetadataError,
    TransportError,
)
from .pipeline import IngestPipeline, PeriodResult, PipelineSettings, ProcessingOutcome, RunSummary
from .types import ContentEra, Server

__all__ = [
    "ConfigurationError",
    "ContentEra",
    "DuplicateConflict",
    "ErrorKind",
    "ExtractionError",
    "IngestConfig",
    "IngestError",
    "IngestPipeline",
    "MetadataError",
    "PeriodResult",
    "PipelineSettings",
    "ProcessingOutcome",
    "RunSummary",
    "Server",
    "TransportError",
    "load_config",
    "__version__",
]

__version__ = "0.1.0"
