"""Error taxonomy for the analysis engine.

Only a few of these ever reach a caller. Most are raised at a call site and
absorbed one frame up, where a documented fallback replaces the failed value.
"""


class EngineError(Exception):
    """Base class for analysis engine errors."""


class ExtractionError(EngineError):
    """The input document could not be turned into text. Fatal to the job."""


class StructureClassificationError(EngineError):
    """Reserved. Structure classification is best effort and never raises."""


class ChunkingDegraded(EngineError):
    """Chunking fell back to fixed-size character chunks.

    Never raised; instances are logged so the degradation shows up in the
    structured log stream.
    """


class TokenBudgetEstimationFailed(EngineError):
    """Per-unit token estimate could not be computed."""


class UnitAnalysisFailed(EngineError):
    """Analysis of a single unit failed and was replaced by a fallback verdict."""

    def __init__(self, unit_id: str, cause: BaseException):
        super().__init__(f"Analysis of unit {unit_id} failed: {cause}")
        self.unit_id = unit_id
        self.cause = cause


class ResponseParseError(EngineError):
    """Reasoning service output could not be parsed into the expected structure."""

    def __init__(self, message: str, raw: str = ""):
        super().__init__(message)
        self.raw = raw


class PersistenceWriteError(EngineError):
    """A batched write was rejected. Nothing from the batch is visible."""


class ReconstructionGap(EngineError):
    """A referenced detail record is missing on read. Logged, never raised."""


class AnalysisCancelled(EngineError):
    """Cancellation observed at a stage checkpoint."""
