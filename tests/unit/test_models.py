"""
Unit Tests for Shared Models

Tests Pydantic models for data validation and serialization.
"""

import math

import pytest
from pydantic import TypeAdapter, ValidationError

from shared.models import (
    AnalysisJob,
    AnalysisStrategy,
    Chunk,
    ChunkLevel,
    ComplianceVerdict,
    DetailsBlob,
    DirectDocumentWithToolSearch,
    Finding,
    LocalSectionSearch,
    ProgressUpdate,
    Recommendation,
    JobStage,
)


class TestComplianceVerdict:
    """Tests for ComplianceVerdict sanitization."""

    def test_confidence_is_clamped(self):
        assert ComplianceVerdict(is_compliant=True, confidence=1.7).confidence == 1.0
        assert ComplianceVerdict(is_compliant=True, confidence=-0.2).confidence == 0.0

    def test_invalid_confidence_becomes_zero(self):
        assert ComplianceVerdict(is_compliant=True, confidence="high").confidence == 0.0
        assert ComplianceVerdict(is_compliant=True, confidence=math.nan).confidence == 0.0

    def test_numeric_string_confidence(self):
        assert ComplianceVerdict(is_compliant=False, confidence="0.75").confidence == 0.75

    def test_string_lists_are_coerced(self):
        verdict = ComplianceVerdict(
            is_compliant=False,
            confidence=0.5,
            violations="Missing clause",
            recommendations=["Add clause", "", None],
        )

        assert verdict.violations == ["Missing clause"]
        assert verdict.recommendations == ["Add clause"]

    def test_none_lists_become_empty(self):
        verdict = ComplianceVerdict(is_compliant=True, confidence=0.5, violations=None)
        assert verdict.violations == []


class TestChunk:
    """Tests for Chunk model."""

    def test_chunk_length(self):
        chunk = Chunk(
            id="doc_chunk_0",
            document_id="doc",
            index=0,
            level=ChunkLevel.SECTION,
            content="§ 1 Test",
            start_offset=10,
            end_offset=18,
        )
        assert chunk.length == 8

    def test_negative_offset_rejected(self):
        with pytest.raises(ValidationError):
            Chunk(
                id="doc_chunk_0",
                document_id="doc",
                index=0,
                level=ChunkLevel.SECTION,
                content="x",
                start_offset=-1,
                end_offset=1,
            )


class TestDetailsBlob:
    """Tests for the discriminated detail records."""

    def test_items_are_parsed_by_record_type(self):
        blob = DetailsBlob.model_validate(
            {
                "items": {
                    "u_finding_0": {
                        "record_type": "finding",
                        "id": "u_finding_0",
                        "unit_id": "u",
                        "type": "legal_violation",
                        "severity": "high",
                        "title": "t",
                        "description": "d",
                        "location": {"start_offset": 0, "end_offset": 5},
                    },
                    "u_rec_0": {
                        "record_type": "recommendation",
                        "id": "u_rec_0",
                        "unit_id": "u",
                        "priority": "low",
                        "description": "r",
                    },
                }
            }
        )

        assert isinstance(blob.items["u_finding_0"], Finding)
        assert isinstance(blob.items["u_rec_0"], Recommendation)


class TestStrategies:
    """Tests for analysis strategy selection."""

    def test_strategy_union_from_dict(self):
        adapter = TypeAdapter(AnalysisStrategy)

        local = adapter.validate_python({"kind": "local_section_search", "segmentation": "hierarchical"})
        direct = adapter.validate_python({"kind": "direct_document", "vector_store_id": "vs_1"})

        assert isinstance(local, LocalSectionSearch)
        assert local.segmentation == "hierarchical"
        assert isinstance(direct, DirectDocumentWithToolSearch)
        assert direct.region == "CH"

    def test_job_roundtrip_keeps_strategy(self):
        job = AnalysisJob(
            job_id="j1",
            analysis_id="j1",
            document_id="d1",
            user_id="u1",
            strategy=DirectDocumentWithToolSearch(vector_store_id="vs_1"),
        )

        restored = AnalysisJob.model_validate(job.model_dump(mode="json"))
        assert isinstance(restored.strategy, DirectDocumentWithToolSearch)
        assert restored.strategy.vector_store_id == "vs_1"


def test_progress_percent_bounds():
    with pytest.raises(ValidationError):
        ProgressUpdate(stage=JobStage.ANALYZE, percent=120)
