"""Shared utilities."""

from .exceptions import (
    AnalysisCancelled,
    ChunkingDegraded,
    EngineError,
    ExtractionError,
    PersistenceWriteError,
    ReconstructionGap,
    ResponseParseError,
    StructureClassificationError,
    TokenBudgetEstimationFailed,
    UnitAnalysisFailed,
)
from .logger import ProductionLogger, clear_job_context, get_logger, set_job_context

__all__ = [
    "get_logger",
    "ProductionLogger",
    "set_job_context",
    "clear_job_context",
    "EngineError",
    "ExtractionError",
    "StructureClassificationError",
    "ChunkingDegraded",
    "TokenBudgetEstimationFailed",
    "UnitAnalysisFailed",
    "ResponseParseError",
    "PersistenceWriteError",
    "ReconstructionGap",
    "AnalysisCancelled",
]
