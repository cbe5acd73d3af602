"""
Analysis Job Service

Runs compliance analyses as background jobs:

1. Download: fetch the uploaded file and extract its text
2. Split / context / analyze: delegated to ComplianceAnalysisPipeline
3. Save: persist the result through the CompactResultStore

A job id is processed at most once at a time. Cancellation is cooperative:
the abort signal is only looked at between stages, so a running batch of
unit analyses always finishes.
"""

import asyncio
import time
import uuid

from shared.config import get_settings
from shared.models import (
    AnalysisJob,
    AnalysisStatus,
    AnalysisStrategy,
    JobStage,
    LocalSectionSearch,
    ProgressUpdate,
)
from shared.models.analysis import utc_now
from shared.utils import (
    AnalysisCancelled,
    PersistenceWriteError,
    clear_job_context,
    get_logger,
    set_job_context,
)

from analysis import ComplianceAnalysisPipeline
from extraction import DocumentSource, PlainTextExtractor, TextExtractor
from persistence import CompactResultStore
from reasoning import FileAttachment

from .notifications import NotificationChannel


class AnalysisJobService:
    """Schedules, tracks and cancels analysis jobs."""

    def __init__(
        self,
        pipeline: ComplianceAnalysisPipeline,
        results: CompactResultStore,
        source: DocumentSource,
        extractor: TextExtractor | None = None,
        notifications: NotificationChannel | None = None,
        job_collection: str | None = None,
        logger=None,
    ):
        settings = get_settings()
        self.logger = logger or get_logger(__name__)
        self.pipeline = pipeline
        self.results = results
        self.store = results.store
        self.source = source
        self.extractor = extractor or PlainTextExtractor()
        self.notifications = notifications or NotificationChannel(logger=self.logger)
        self.job_collection = job_collection or settings.job_collection

        self._in_flight: set[str] = set()
        self._abort_events: dict[str, asyncio.Event] = {}
        self._tasks: dict[str, asyncio.Task] = {}

    def job_path(self, job_id: str) -> str:
        return f"{self.job_collection}/{job_id}"

    def is_in_flight(self, job_id: str) -> bool:
        return job_id in self._in_flight

    async def create_job(
        self,
        document_id: str,
        user_id: str,
        job_id: str | None = None,
        strategy: AnalysisStrategy | None = None,
    ) -> str:
        """
        Register a pending job and start processing it.

        Calling again with the id of a job that is still running does not
        start a second run.

        Returns:
            The job id (also used as the analysis id)
        """
        job_id = job_id or str(uuid.uuid4())
        if job_id in self._in_flight:
            self.logger.info(f"Job {job_id} is already running", extra={"job_id": job_id})
            return job_id

        job = AnalysisJob(
            job_id=job_id,
            analysis_id=job_id,
            document_id=document_id,
            user_id=user_id,
            strategy=strategy or LocalSectionSearch(),
        )
        await self.store.set(self.job_path(job_id), job.model_dump(mode="json"), merge=False)
        self.logger.log_audit("create", "analysis_job", "pending", job_id=job_id, document_id=document_id)

        await self.start(job_id)
        return job_id

    async def start(self, job_id: str) -> bool:
        """
        Start processing a stored job.

        Returns:
            False if the job is already in flight or does not exist
        """
        if job_id in self._in_flight:
            self.logger.info(f"Ignoring start of in-flight job {job_id}", extra={"job_id": job_id})
            return False
        # Claim the id before the first await
        self._in_flight.add(job_id)

        try:
            job = await self.get_job(job_id)
        except Exception:
            self._in_flight.discard(job_id)
            raise
        if job is None:
            self._in_flight.discard(job_id)
            self.logger.warning(f"Cannot start unknown job {job_id}", extra={"job_id": job_id})
            return False

        self._abort_events[job_id] = asyncio.Event()
        task = asyncio.create_task(self._run(job))
        self._tasks[job_id] = task
        task.add_done_callback(lambda _: self._tasks.pop(job_id, None))
        return True

    def cancel(self, job_id: str) -> bool:
        """Request cancellation. Returns False if the job is not running."""
        event = self._abort_events.get(job_id)
        if event is None:
            return False
        event.set()
        self.logger.info(f"Cancellation requested for job {job_id}", extra={"job_id": job_id})
        return True

    async def get_job(self, job_id: str, user_id: str | None = None) -> AnalysisJob | None:
        data = await self.store.get(self.job_path(job_id))
        if data is None:
            return None
        job = AnalysisJob.model_validate(data)
        if user_id is not None and job.user_id != user_id:
            return None
        return job

    async def wait(self, job_id: str) -> AnalysisJob | None:
        """Wait for a running job to finish and return its final record."""
        task = self._tasks.get(job_id)
        if task is not None:
            await asyncio.shield(task)
        return await self.get_job(job_id)

    async def _run(self, job: AnalysisJob) -> None:
        set_job_context(job_id=job.job_id, analysis_id=job.analysis_id, user_id=job.user_id)
        abort = self._abort_events[job.job_id]
        start_time = time.time()

        async def checkpoint(stage: JobStage) -> None:
            if abort.is_set():
                raise AnalysisCancelled(f"Job {job.job_id} cancelled at {stage.value}")

        async def progress(update: ProgressUpdate) -> None:
            await self._update_job(job, stage=update.stage, progress=update.percent, message=update.message)
            self.notifications.emit_progress(job.analysis_id, update)

        try:
            await self._update_job(job, status=AnalysisStatus.PROCESSING, stage=JobStage.DOWNLOAD)

            source_file = await self.source.fetch(job.document_id, job.user_id)
            text = await asyncio.to_thread(
                self.extractor.extract_text,
                source_file.data,
                source_file.content_type,
                source_file.filename,
            )
            await progress(
                ProgressUpdate(
                    stage=JobStage.DOWNLOAD,
                    percent=10,
                    message=f"Extracted {len(text)} characters from {source_file.filename}",
                )
            )
            await checkpoint(JobStage.DOWNLOAD)

            result = await self.pipeline.analyze(
                text,
                document_id=job.document_id,
                user_id=job.user_id,
                analysis_id=job.analysis_id,
                strategy=job.strategy,
                kind=source_file.kind,
                keyword_map=source_file.keyword_map or None,
                attachment=FileAttachment(
                    filename=source_file.filename,
                    content_type=source_file.content_type,
                    data=source_file.data,
                ),
                checkpoint=checkpoint,
                progress=progress,
            )

            await checkpoint(JobStage.SAVE)
            await progress(ProgressUpdate(stage=JobStage.SAVE, percent=95, message="Saving analysis"))
            await self.results.save(result)

            await self._update_job(
                job,
                status=AnalysisStatus.COMPLETED,
                progress=100,
                message="Analysis completed",
            )
            self.notifications.emit_completed(job.analysis_id, result)
            self.logger.log_performance(
                "analysis_job",
                (time.time() - start_time) * 1000,
                job_id=job.job_id,
                units=len(result.units),
            )

        except AnalysisCancelled as e:
            self.logger.info(str(e), extra={"job_id": job.job_id, "stage": job.stage.value if job.stage else None})
            await self._update_job(job, status=AnalysisStatus.CANCELLED, message="Analysis cancelled")

        except Exception as e:
            self.logger.log_error_with_context(
                f"Job {job.job_id} failed",
                e,
                job_id=job.job_id,
                stage=job.stage.value if job.stage else None,
            )
            await self._update_job(job, status=AnalysisStatus.FAILED, error=str(e))
            self.notifications.emit_failed(job.analysis_id, str(e))

        finally:
            self._in_flight.discard(job.job_id)
            self._abort_events.pop(job.job_id, None)
            clear_job_context()

    async def _update_job(self, job: AnalysisJob, **changes) -> None:
        """Apply changes to the job and write them to its record (best effort)."""
        for key, value in changes.items():
            setattr(job, key, value)
        job.updated_at = utc_now()

        fields = set(changes) | {"updated_at"}
        try:
            await self.store.set(self.job_path(job.job_id), job.model_dump(mode="json", include=fields))
        except PersistenceWriteError as e:
            self.logger.warning(
                f"Could not update job record {job.job_id}: {e}",
                extra={"job_id": job.job_id},
            )
