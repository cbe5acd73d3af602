"""
Unit Tests for the Notification Channel
"""

from unittest.mock import AsyncMock, Mock

import pytest
from tenacity import wait_none

from shared.models import AnalysisResult, JobStage, ProgressUpdate

from jobs import LoggingNotificationSink, NotificationChannel


@pytest.fixture
def sink():
    sink = Mock()
    sink.on_progress = AsyncMock()
    sink.on_completed = AsyncMock()
    sink.on_failed = AsyncMock()
    return sink


@pytest.fixture
def make_channel(mock_logger):
    def make(sinks, **kwargs):
        kwargs.setdefault("max_attempts", 3)
        return NotificationChannel(sinks=sinks, wait=wait_none(), logger=mock_logger, **kwargs)

    return make


class TestNotificationChannel:
    """Tests for queued notification delivery."""

    async def test_delivers_events_in_order(self, make_channel, sink):
        channel = make_channel([sink])
        update = ProgressUpdate(stage=JobStage.SPLIT, percent=30, message="Split into 4 units")
        result = AnalysisResult(analysis_id="a1", document_id="d1", user_id="u1")

        channel.emit_progress("a1", update)
        channel.emit_completed("a1", result)
        channel.emit_failed("a2", "boom")
        await channel.close()

        sink.on_progress.assert_awaited_once_with("a1", update)
        sink.on_completed.assert_awaited_once_with("a1", result)
        sink.on_failed.assert_awaited_once_with("a2", "boom")

    async def test_retries_transient_failures(self, make_channel, sink, mock_logger):
        sink.on_failed.side_effect = [ConnectionError("webhook down"), None]
        channel = make_channel([sink])

        channel.emit_failed("a1", "boom")
        await channel.close()

        assert sink.on_failed.await_count == 2
        mock_logger.log_error_with_context.assert_not_called()

    async def test_gives_up_after_max_attempts(self, make_channel, sink, mock_logger):
        sink.on_failed.side_effect = ConnectionError("webhook down")
        channel = make_channel([sink], max_attempts=2)

        channel.emit_failed("a1", "boom")
        await channel.close()

        assert sink.on_failed.await_count == 2
        mock_logger.log_error_with_context.assert_called_once()
        assert mock_logger.log_error_with_context.call_args.kwargs["analysis_id"] == "a1"

    async def test_failing_sink_does_not_block_others(self, make_channel, sink):
        broken = Mock()
        broken.on_completed = AsyncMock(side_effect=RuntimeError("broken"))
        channel = make_channel([broken, sink], max_attempts=1)
        result = AnalysisResult(analysis_id="a1", document_id="d1", user_id="u1")

        channel.emit_completed("a1", result)
        await channel.close()

        sink.on_completed.assert_awaited_once()

    async def test_full_queue_drops_events(self, make_channel, sink, mock_logger):
        channel = make_channel([sink], queue_size=1)

        channel.emit_failed("a1", "first")
        channel.emit_failed("a2", "second")
        await channel.close()

        sink.on_failed.assert_awaited_once_with("a1", "first")
        assert "queue full" in mock_logger.warning.call_args.args[0]

    def test_emit_without_event_loop_does_not_raise(self, make_channel, sink, mock_logger):
        channel = make_channel([sink])

        channel.emit_failed("a1", "boom")

        mock_logger.warning.assert_called_once()


class TestLoggingNotificationSink:
    async def test_logs_progress_and_failure(self, mock_logger):
        sink = LoggingNotificationSink(logger=mock_logger)

        await sink.on_progress("a1", ProgressUpdate(stage=JobStage.ANALYZE, percent=65))
        await sink.on_failed("a1", "boom")

        assert "65%" in mock_logger.info.call_args.args[0]
        assert "boom" in mock_logger.warning.call_args.args[0]
