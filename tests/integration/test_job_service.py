"""
Integration Tests for the Analysis Job Service

Jobs run against an in-memory document store, an in-memory document source
and a scripted reasoning service.
"""

import asyncio
from unittest.mock import AsyncMock, Mock, patch

import pytest
from sqlalchemy.exc import OperationalError
from tenacity import wait_none

from shared.models import AnalysisStatus, DirectDocumentWithToolSearch, DocumentKind, JobStage
from shared.utils import PersistenceWriteError

from extraction import InMemoryDocumentSource, SourceFile
from jobs import AnalysisJobService, NotificationChannel
from persistence import CompactResultStore
from conftest import SAMPLE_CONTRACT, FakeReasoningService, verdict_by_content


class GatedSource:
    """Document source that holds every fetch until the gate opens."""

    def __init__(self, inner):
        self.inner = inner
        self.gate = asyncio.Event()
        self.fetches = 0

    async def fetch(self, document_id, user_id):
        self.fetches += 1
        await self.gate.wait()
        return await self.inner.fetch(document_id, user_id)


@pytest.fixture
def source():
    return InMemoryDocumentSource(
        [
            SourceFile(
                document_id="doc-1",
                user_id="user-1",
                filename="vertrag.txt",
                content_type="text/plain",
                data=SAMPLE_CONTRACT.replace("Zürich", "CITY_1").encode(),
                kind=DocumentKind.CONTRACT,
                keyword_map={"CITY_1": "Zürich"},
            ),
            SourceFile(
                document_id="scan-1",
                user_id="user-1",
                filename="scan.pdf",
                content_type="application/pdf",
                data=b"%PDF-1.7",
            ),
        ]
    )


@pytest.fixture
def sink():
    sink = Mock()
    sink.on_progress = AsyncMock()
    sink.on_completed = AsyncMock()
    sink.on_failed = AsyncMock()
    return sink


@pytest.fixture
def reasoning():
    return FakeReasoningService(verdict=verdict_by_content)


@pytest.fixture
def results(document_store, mock_logger):
    return CompactResultStore(document_store, collection="analyses", logger=mock_logger)


@pytest.fixture
def make_service(make_pipeline, reasoning, results, sink, mock_logger):
    def make(source):
        channel = NotificationChannel(sinks=[sink], max_attempts=1, wait=wait_none(), logger=mock_logger)
        return AnalysisJobService(
            make_pipeline(reasoning),
            results,
            source,
            notifications=channel,
            job_collection="jobs",
            logger=mock_logger,
        )

    return make


class TestJobLifecycle:
    """Tests for completed jobs."""

    async def test_job_completes_and_is_persisted(self, make_service, source, results, sink):
        service = make_service(source)

        job_id = await service.create_job("doc-1", "user-1", job_id="job-1")
        job = await service.wait(job_id)
        await service.notifications.close()

        assert job.status == AnalysisStatus.COMPLETED
        assert job.progress == 100
        assert job.analysis_id == "job-1"
        assert not service.is_in_flight("job-1")

        result = await results.get("job-1", user_id="user-1")
        assert result.analysis_id == "job-1"
        assert result.overall_compliance.is_compliant is False
        assert any("Gerichtsstand ist Zürich" in unit.unit.content for unit in result.units)

        sink.on_completed.assert_awaited_once()
        assert sink.on_completed.await_args.args[0] == "job-1"
        stages = [call.args[1].stage for call in sink.on_progress.await_args_list]
        assert stages[0] == JobStage.DOWNLOAD
        assert stages[-1] == JobStage.SAVE
        percents = [call.args[1].percent for call in sink.on_progress.await_args_list]
        assert percents == sorted(percents)

    async def test_job_id_is_generated(self, make_service, source):
        service = make_service(source)

        job_id = await service.create_job("doc-1", "user-1")

        assert job_id
        assert (await service.wait(job_id)).status == AnalysisStatus.COMPLETED

    async def test_direct_strategy_receives_the_file(self, make_service, source, reasoning):
        service = make_service(source)

        job_id = await service.create_job(
            "doc-1", "user-1", job_id="job-1", strategy=DirectDocumentWithToolSearch(vector_store_id="vs_1")
        )
        job = await service.wait(job_id)

        assert job.strategy.kind == "direct_document"
        attachment = reasoning.calls_of("verdict")[0]["file_attachment"]
        assert attachment.filename == "vertrag.txt"
        assert attachment.data.startswith("Arbeitsvertrag".encode())

    async def test_job_is_private_to_its_user(self, make_service, source):
        service = make_service(source)

        job_id = await service.create_job("doc-1", "user-1", job_id="job-1")
        await service.wait(job_id)

        assert await service.get_job("job-1", user_id="user-2") is None
        assert await service.get_job("job-1", user_id="user-1") is not None


class TestJobConcurrency:
    """Tests for the in-flight set and cancellation."""

    async def test_duplicate_start_runs_once(self, make_service, source, reasoning):
        gated = GatedSource(source)
        service = make_service(gated)

        await service.create_job("doc-1", "user-1", job_id="job-1")
        await service.create_job("doc-1", "user-1", job_id="job-1")
        assert await service.start("job-1") is False
        assert service.is_in_flight("job-1")

        gated.gate.set()
        job = await service.wait("job-1")

        assert job.status == AnalysisStatus.COMPLETED
        assert gated.fetches == 1
        assert len(reasoning.calls_of("context")) == 1

    async def test_concurrent_starts_claim_the_job_once(self, make_service, source):
        gated = GatedSource(source)
        service = make_service(gated)
        await service.create_job("doc-1", "user-1", job_id="job-1")
        gated.gate.set()
        await service.wait("job-1")

        started = await asyncio.gather(service.start("job-1"), service.start("job-1"))
        await service.wait("job-1")

        assert sorted(started) == [False, True]
        assert gated.fetches == 2

    async def test_cancel_before_analysis(self, make_service, source, results, reasoning):
        gated = GatedSource(source)
        service = make_service(gated)

        await service.create_job("doc-1", "user-1", job_id="job-1")
        assert service.cancel("job-1") is True
        gated.gate.set()
        job = await service.wait("job-1")

        assert job.status == AnalysisStatus.CANCELLED
        assert reasoning.calls == []
        assert await results.get("job-1") is None
        assert not service.is_in_flight("job-1")

    async def test_cancel_unknown_job(self, make_service, source):
        assert make_service(source).cancel("nope") is False

    async def test_start_unknown_job(self, make_service, source):
        service = make_service(source)

        assert await service.start("nope") is False
        assert not service.is_in_flight("nope")

    async def test_failed_job_read_releases_the_claim(self, make_service, source):
        service = make_service(source)
        await service.wait(await service.create_job("doc-1", "user-1", job_id="job-1"))

        error = OperationalError("SELECT", {}, Exception("database is locked"))
        with patch.object(service.store, "get", AsyncMock(side_effect=error)):
            with pytest.raises(OperationalError):
                await service.start("job-1")
        assert not service.is_in_flight("job-1")

        assert await service.start("job-1") is True
        assert (await service.wait("job-1")).status == AnalysisStatus.COMPLETED


class TestJobFailures:
    """Tests for failed jobs."""

    async def test_unknown_document_fails_the_job(self, make_service, source, sink):
        service = make_service(source)

        job_id = await service.create_job("missing", "user-1", job_id="job-1")
        job = await service.wait(job_id)
        await service.notifications.close()

        assert job.status == AnalysisStatus.FAILED
        assert "missing" in job.error
        sink.on_failed.assert_awaited_once()
        sink.on_completed.assert_not_called()

    async def test_unsupported_file_fails_the_job(self, make_service, source):
        service = make_service(source)

        job = await service.wait(await service.create_job("scan-1", "user-1", job_id="job-1"))

        assert job.status == AnalysisStatus.FAILED
        assert "Unsupported content type" in job.error

    async def test_rejected_save_fails_the_job(self, make_service, source, results, sink):
        results.save = AsyncMock(side_effect=PersistenceWriteError("record too large"))
        service = make_service(source)

        job = await service.wait(await service.create_job("doc-1", "user-1", job_id="job-1"))
        await service.notifications.close()

        assert job.status == AnalysisStatus.FAILED
        assert job.error == "record too large"
        assert job.stage == JobStage.SAVE
        sink.on_failed.assert_awaited_once_with("job-1", "record too large")
