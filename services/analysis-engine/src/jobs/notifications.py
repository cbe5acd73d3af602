"""
Outbound notifications.

Job code emits events into a bounded queue and moves on. A dispatcher task
delivers them to the registered sinks with retries; delivery failures are
logged and never reach the emitting job.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Literal, Protocol

from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential

from shared.config import get_settings
from shared.models import AnalysisResult, ProgressUpdate
from shared.utils import get_logger


class NotificationSink(Protocol):
    async def on_progress(self, analysis_id: str, update: ProgressUpdate) -> None:
        ...

    async def on_completed(self, analysis_id: str, result: AnalysisResult) -> None:
        ...

    async def on_failed(self, analysis_id: str, error: str) -> None:
        ...


@dataclass
class NotificationEvent:
    kind: Literal["progress", "completed", "failed"]
    analysis_id: str
    payload: Any = None
    metadata: dict[str, Any] = field(default_factory=dict)


class LoggingNotificationSink:
    """Writes every notification to the structured log."""

    def __init__(self, logger=None):
        self.logger = logger or get_logger(__name__)

    async def on_progress(self, analysis_id: str, update: ProgressUpdate) -> None:
        self.logger.info(
            f"Progress {analysis_id}: {update.stage.value} {update.percent}% {update.message}",
            extra={"analysis_id": analysis_id, "stage": update.stage.value, "percent": update.percent},
        )

    async def on_completed(self, analysis_id: str, result: AnalysisResult) -> None:
        overall = result.overall_compliance
        self.logger.info(
            f"Analysis {analysis_id} completed",
            extra={
                "analysis_id": analysis_id,
                "is_compliant": overall.is_compliant if overall else None,
                "compliance_score": overall.compliance_score if overall else None,
            },
        )

    async def on_failed(self, analysis_id: str, error: str) -> None:
        self.logger.warning(f"Analysis {analysis_id} failed: {error}", extra={"analysis_id": analysis_id})


class NotificationChannel:
    """Bounded outbound event queue with an independent delivery loop."""

    def __init__(
        self,
        sinks: list[NotificationSink] | None = None,
        max_attempts: int | None = None,
        queue_size: int | None = None,
        wait=None,
        logger=None,
    ):
        settings = get_settings()
        self.logger = logger or get_logger(__name__)
        self.sinks = list(sinks) if sinks is not None else [LoggingNotificationSink(self.logger)]
        self.max_attempts = max_attempts or settings.notification_max_attempts
        self.wait = wait or wait_exponential(multiplier=1, min=2, max=10)
        self._queue: asyncio.Queue[NotificationEvent] = asyncio.Queue(
            maxsize=queue_size or settings.notification_queue_size
        )
        self._dispatcher: asyncio.Task | None = None

    def emit(self, event: NotificationEvent) -> None:
        """Queue an event. Never blocks and never raises."""
        try:
            self._ensure_dispatcher()
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self.logger.warning(
                f"Notification queue full, dropping {event.kind} event",
                extra={"analysis_id": event.analysis_id},
            )
        except RuntimeError as e:
            # No running event loop
            self.logger.warning(f"Cannot queue {event.kind} notification: {e}")

    def emit_progress(self, analysis_id: str, update: ProgressUpdate) -> None:
        self.emit(NotificationEvent("progress", analysis_id, update))

    def emit_completed(self, analysis_id: str, result: AnalysisResult) -> None:
        self.emit(NotificationEvent("completed", analysis_id, result))

    def emit_failed(self, analysis_id: str, error: str) -> None:
        self.emit(NotificationEvent("failed", analysis_id, error))

    def _ensure_dispatcher(self) -> None:
        if self._dispatcher is None or self._dispatcher.done():
            self._dispatcher = asyncio.get_running_loop().create_task(self._dispatch_loop())

    async def drain(self) -> None:
        """Wait until every queued event has been delivered or given up on."""
        await self._queue.join()

    async def close(self) -> None:
        await self.drain()
        if self._dispatcher is not None:
            self._dispatcher.cancel()
            try:
                await self._dispatcher
            except asyncio.CancelledError:
                pass
            self._dispatcher = None

    async def _dispatch_loop(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                for sink in self.sinks:
                    await self._deliver(sink, event)
            finally:
                self._queue.task_done()

    async def _deliver(self, sink: NotificationSink, event: NotificationEvent) -> None:
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_attempts),
                wait=self.wait,
                reraise=True,
            ):
                with attempt:
                    if event.kind == "progress":
                        await sink.on_progress(event.analysis_id, event.payload)
                    elif event.kind == "completed":
                        await sink.on_completed(event.analysis_id, event.payload)
                    else:
                        await sink.on_failed(event.analysis_id, event.payload)
        except Exception as e:
            self.logger.log_error_with_context(
                f"Delivery of {event.kind} notification failed",
                e,
                analysis_id=event.analysis_id,
                sink=type(sink).__name__,
                attempts=self.max_attempts,
            )
