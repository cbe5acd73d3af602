"""
Structured logging for the analysis engine.

Every log line carries the context of the job it was emitted from (job id,
analysis id, owning user) without the call site passing it along. The job
service sets that context when a job starts running; the asyncio task that
runs the job carries it through every awaited call.

Output is JSON (one object per line) in production or when LOG_FORMAT=json,
a compact human-readable line otherwise.
"""

import json
import logging
import sys
import traceback
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any

from ..config import get_settings

_job_context: ContextVar[dict[str, str]] = ContextVar("job_context", default={})

HUMAN_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def current_job_context() -> dict[str, str]:
    return dict(_job_context.get())


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging in production."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
            **current_job_context(),
        }
        log_data.update(getattr(record, "extra_fields", {}))

        if record.exc_info and record.exc_info[0] is not None:
            exc_type, exc_value, exc_tb = record.exc_info
            log_data["exception"] = {
                "type": exc_type.__name__,
                "message": str(exc_value),
                "traceback": traceback.format_exception(exc_type, exc_value, exc_tb),
            }
        if record.stack_info:
            log_data["stack_info"] = record.stack_info

        return json.dumps(log_data, default=str, ensure_ascii=False)


class ProductionLogger(logging.LoggerAdapter):
    """
    Logger adapter adding job context and metric helpers.

    Structured fields passed as ``extra`` are collected under
    ``extra_fields`` so the JSON formatter can emit them verbatim.
    """

    def process(self, msg: str, kwargs: dict) -> tuple[str, dict]:
        fields = {**current_job_context(), **(self.extra or {}), **kwargs.get("extra", {})}
        kwargs["extra"] = {"extra_fields": fields}
        return msg, kwargs

    def log_performance(self, operation: str, duration_ms: float, **metadata: Any) -> None:
        """
        Log the duration of an operation.

        Args:
            operation: Name of the operation (e.g. "segment_document")
            duration_ms: Duration in milliseconds
            **metadata: Additional metadata
        """
        self.info(
            f"Performance: {operation} completed in {duration_ms:.2f}ms",
            extra={
                "operation": operation,
                "duration_ms": duration_ms,
                "metric_type": "performance",
                **metadata,
            },
        )

    def log_batch(
        self,
        batch_index: int,
        total_batches: int,
        batch_size: int,
        duration_ms: float,
        **metadata: Any,
    ) -> None:
        """Log completion of one rate-limited batch of unit analyses."""
        self.info(
            f"Batch {batch_index + 1}/{total_batches} completed: "
            f"{batch_size} units in {duration_ms:.2f}ms",
            extra={
                "batch_index": batch_index,
                "total_batches": total_batches,
                "batch_size": batch_size,
                "duration_ms": duration_ms,
                "metric_type": "batch",
                **metadata,
            },
        )

    def log_audit(self, action: str, resource: str, result: str, **metadata: Any) -> None:
        """
        Log an audit event on a persisted resource.

        Args:
            action: Action performed (e.g. "create", "save", "review", "delete")
            resource: Resource affected (e.g. "compliance_analysis", "analysis_job")
            result: Outcome (e.g. "success", "pending", "approved")
            **metadata: Additional metadata
        """
        self.info(
            f"Audit: {action} on {resource} - {result}",
            extra={
                "action": action,
                "resource": resource,
                "result": result,
                "audit_event": True,
                **metadata,
            },
        )

    def log_error_with_context(self, message: str, error: BaseException, **context: Any) -> None:
        """Log an error with its type, message and traceback."""
        self.error(
            message,
            exc_info=(type(error), error, error.__traceback__),
            extra={
                "error_type": type(error).__name__,
                "error_message": str(error),
                **context,
            },
        )

    def log_llm_call(
        self,
        model: str,
        provider: str,
        duration_ms: float,
        tokens_used: int = 0,
        **metadata: Any,
    ) -> None:
        """Log a reasoning service call for rate-limit and cost tracking."""
        self.info(
            f"LLM call: {provider}/{model} - {tokens_used} tokens in {duration_ms:.2f}ms",
            extra={
                "llm_provider": provider,
                "llm_model": model,
                "duration_ms": duration_ms,
                "tokens_used": tokens_used,
                "metric_type": "llm_call",
                **metadata,
            },
        )


def _build_handler(level: int, structured: bool) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    if structured:
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(logging.Formatter(HUMAN_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    return handler


def get_logger(name: str) -> ProductionLogger:
    """
    Get a configured logger.

    Args:
        name: Logger name (typically __name__)

    Example:
        logger = get_logger(__name__)
        logger.log_performance("segment_document", 45.2, units=12)
        logger.log_audit("save", "compliance_analysis", "success")
    """
    settings = get_settings()
    base_logger = logging.getLogger(name)

    if not base_logger.handlers:
        level = getattr(logging, settings.log_level.upper(), logging.INFO)
        structured = settings.is_production or settings.log_format == "json"
        base_logger.setLevel(level)
        base_logger.addHandler(_build_handler(level, structured))
        base_logger.propagate = False

    return ProductionLogger(base_logger, {})


def set_job_context(
    job_id: str | None = None,
    analysis_id: str | None = None,
    user_id: str | None = None,
) -> None:
    """Attach job identifiers to every log line emitted from the current task."""
    context = current_job_context()
    for key, value in (("job_id", job_id), ("analysis_id", analysis_id), ("user_id", user_id)):
        if value:
            context[key] = value
    _job_context.set(context)


def clear_job_context() -> None:
    _job_context.set({})
