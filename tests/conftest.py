"""
Pytest Configuration and Shared Fixtures

Provides reusable fixtures for unit and integration tests.
"""

import json
import os
import sys
from pathlib import Path
from unittest.mock import AsyncMock, Mock

import pytest

# Add project root and analysis-engine src to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))
sys.path.insert(0, str(PROJECT_ROOT / "services" / "analysis-engine" / "src"))

from shared.config import Settings, get_settings
from shared.models import (
    AnalysisResult,
    AnalysisStatus,
    AnalysisUnit,
    ComplianceVerdict,
    DocumentContext,
    Finding,
    FindingSeverity,
    FindingType,
    GeneratedQuery,
    Recommendation,
    RecommendationPriority,
    TextLocation,
    UnitResult,
)

# ============================================================================
# Pytest Configuration
# ============================================================================

def pytest_configure(config):
    """Configure pytest."""
    # Set test environment
    os.environ["ENVIRONMENT"] = "development"
    os.environ["LOG_LEVEL"] = "DEBUG"
    os.environ["DATABASE_URL"] = "sqlite://"

    # Mock API keys for tests that don't actually call APIs
    if "OPENAI_API_KEY" not in os.environ:
        os.environ["OPENAI_API_KEY"] = "sk-test-key"


def pytest_collection_modifyitems(config, items):
    """Modify test items during collection."""
    # Auto-mark tests based on path
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)


# ============================================================================
# Configuration Fixtures
# ============================================================================

@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """Get test settings."""
    return get_settings()


@pytest.fixture
def mock_logger() -> Mock:
    """Logger double; the engine loggers do not propagate to caplog."""
    return Mock()


# ============================================================================
# Test Doubles
# ============================================================================

class WordCountTokenizer:
    """Counts whitespace-separated words as tokens."""

    def count(self, text: str) -> int:
        return len(text.split())


def split_paragraphs(user_prompt: str) -> str:
    """Segmentation answer proposing one section per blank-line separated paragraph."""
    text = user_prompt.split("TEXT:\n", 1)[-1]
    sections = [
        {"title": paragraph.strip().splitlines()[0][:40], "content": paragraph.strip()}
        for paragraph in text.split("\n\n")
        if paragraph.strip()
    ]
    return json.dumps({"sections": sections})


DEFAULT_CONTEXT = json.dumps(
    {
        "documentType": "employment contract",
        "businessDomain": "HR",
        "keyTerms": ["salary", "notice period"],
        "parties": ["Muster AG", "Max Muster"],
        "summary": "Employment contract",
    }
)

DEFAULT_QUERIES = json.dumps(
    {
        "queries": [
            {"query": "Kündigungsfrist Arbeitsvertrag", "focus": "termination"},
            {"query": "Probezeit OR 335b", "focus": "probation"},
        ]
    }
)

COMPLIANT_VERDICT = json.dumps(
    {
        "isCompliant": True,
        "confidence": 0.9,
        "reasoning": "The clause follows the statutory rules.",
        "violations": [],
        "recommendations": [],
    }
)

NON_COMPLIANT_VERDICT = json.dumps(
    {
        "isCompliant": False,
        "confidence": 0.8,
        "reasoning": "The notice period is shorter than the statutory minimum.",
        "violations": ["Notice period below statutory minimum"],
        "recommendations": ["Extend the notice period to one month"],
    }
)


class FakeReasoningService:
    """
    Scripted ReasoningService.

    Responses are chosen by the kind of call (recognised from the system
    prompt). A response may be a string, an exception to raise, or a
    callable receiving the user prompt.
    """

    def __init__(self, segmentation=None, context=None, queries=None, verdict=None):
        self.responses = {
            "segmentation": segmentation if segmentation is not None else split_paragraphs,
            "context": context if context is not None else DEFAULT_CONTEXT,
            "queries": queries if queries is not None else DEFAULT_QUERIES,
            "verdict": verdict if verdict is not None else COMPLIANT_VERDICT,
        }
        self.calls: list[dict] = []

    @staticmethod
    def route(system_prompt: str) -> str:
        if "splitting a legal document" in system_prompt:
            return "segmentation"
        if "beginning of a legal document" in system_prompt:
            return "context"
        if "search queries" in system_prompt:
            return "queries"
        return "verdict"

    def calls_of(self, kind: str) -> list[dict]:
        return [call for call in self.calls if call["kind"] == kind]

    async def invoke(
        self,
        system_prompt,
        user_prompt,
        file_attachment=None,
        tool_config=None,
        json_mode=False,
    ):
        kind = self.route(system_prompt)
        self.calls.append(
            {
                "kind": kind,
                "system_prompt": system_prompt,
                "user_prompt": user_prompt,
                "file_attachment": file_attachment,
                "tool_config": tool_config,
                "json_mode": json_mode,
            }
        )
        response = self.responses[kind]
        if callable(response) and not isinstance(response, type):
            response = response(user_prompt)
        if isinstance(response, BaseException):
            raise response
        return response


@pytest.fixture
def word_tokenizer() -> WordCountTokenizer:
    return WordCountTokenizer()


@pytest.fixture
def fake_reasoning() -> FakeReasoningService:
    return FakeReasoningService()


@pytest.fixture
def document_store(mock_logger):
    """In-memory document store."""
    from persistence import DocumentStore

    return DocumentStore(database_url="sqlite://", logger=mock_logger)


# ============================================================================
# Sample Data Fixtures
# ============================================================================

SAMPLE_CONTRACT = """Arbeitsvertrag

§ 1 Vertragsbeginn
Das Arbeitsverhältnis beginnt am 1. März 2024. Die ersten drei Monate gelten als Probezeit.

§ 2 Lohn
Der Arbeitnehmer erhält einen monatlichen Bruttolohn von CHF 7'500, zahlbar jeweils am Monatsende.

§ 3 Kündigung
Das Arbeitsverhältnis kann von beiden Parteien mit einer Kündigungsfrist von einer Woche gekündigt werden.

§ 4 Gerichtsstand
Gerichtsstand ist Zürich. Es gilt schweizerisches Recht, insbesondere OR Art. 319 ff."""


@pytest.fixture
def sample_contract_text() -> str:
    return SAMPLE_CONTRACT


@pytest.fixture
def sample_units() -> list[AnalysisUnit]:
    return [
        AnalysisUnit(
            id=f"unit_{i}",
            content=f"Section {i} content about obligations of the parties. " * 3,
            title=f"Section {i}",
            start_offset=i * 200,
            end_offset=i * 200 + 150,
        )
        for i in range(5)
    ]


@pytest.fixture
def sample_analysis_result() -> AnalysisResult:
    """Completed analysis with one compliant and one non-compliant unit."""
    compliant_unit = AnalysisUnit(
        id="unit_0", content="Der Lohn wird monatlich bezahlt.", title="§ 2 Lohn",
        start_offset=0, end_offset=32,
    )
    violating_unit = AnalysisUnit(
        id="unit_1", content="Kündigungsfrist von einer Woche.", title="§ 3 Kündigung",
        start_offset=33, end_offset=65,
    )
    return AnalysisResult(
        analysis_id="analysis-1",
        document_id="doc-1",
        user_id="user-1",
        status=AnalysisStatus.COMPLETED,
        document_context=DocumentContext(document_type="employment contract", key_terms=["salary"]),
        units=[
            UnitResult(
                unit=compliant_unit,
                verdict=ComplianceVerdict(is_compliant=True, confidence=0.9, reasoning="ok"),
                queries=[GeneratedQuery(text="Lohnzahlung OR", focus="salary")],
                recommendations=[
                    Recommendation(
                        id="unit_0_rec_0", unit_id="unit_0",
                        priority=RecommendationPriority.LOW, description="Name the payment date",
                    )
                ],
            ),
            UnitResult(
                unit=violating_unit,
                verdict=ComplianceVerdict(
                    is_compliant=False,
                    confidence=0.8,
                    reasoning="Too short",
                    violations=["Notice period below minimum"],
                    recommendations=["Extend notice period"],
                ),
                findings=[
                    Finding(
                        id="unit_1_finding_0",
                        unit_id="unit_1",
                        type=FindingType.LEGAL_VIOLATION,
                        severity=FindingSeverity.HIGH,
                        title="Legal violation in § 3 Kündigung",
                        description="Notice period below minimum",
                        location=TextLocation(start_offset=33, end_offset=65),
                        evidence=["Kündigungsfrist von einer Woche."],
                        legal_basis=["Swiss Code of Obligations"],
                    )
                ],
                recommendations=[
                    Recommendation(
                        id="unit_1_rec_0", unit_id="unit_1",
                        priority=RecommendationPriority.HIGH, description="Extend notice period",
                    )
                ],
            ),
        ],
    )


# ============================================================================
# Pipeline Fixtures
# ============================================================================

LAW_PROVISIONS = [
    ("or_335b", "Als Probezeit gilt der erste Monat eines Arbeitsverhältnisses. OR Art. 335b."),
    ("or_335c", "Die Kündigungsfrist beträgt im ersten Dienstjahr einen Monat. OR Art. 335c."),
    ("or_329a", "Der Arbeitgeber hat dem Arbeitnehmer jedes Jahr vier Wochen Ferien zu gewähren."),
    ("or_322", "Der Arbeitgeber hat dem Arbeitnehmer den vereinbarten Lohn zu entrichten."),
]


@pytest.fixture
async def law_search(mock_logger):
    """Keyword legal search over a few provisions of the Code of Obligations."""
    from shared.models import Chunk, ChunkLevel

    from retrieval import KeywordLegalContextSearch

    search = KeywordLegalContextSearch(logger=mock_logger)
    chunks = [
        Chunk(
            id=chunk_id, document_id="or", index=i, level=ChunkLevel.SECTION,
            content=content, start_offset=0, end_offset=len(content),
        )
        for i, (chunk_id, content) in enumerate(LAW_PROVISIONS)
    ]
    await search.index(chunks)
    return search


@pytest.fixture
def cooldown_sleep() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def make_pipeline(law_search, word_tokenizer, cooldown_sleep, mock_logger):
    """
    Build a pipeline around a reasoning double.

    Token estimates are fixed at 6000 per unit against a 12000 tokens/minute
    budget, so units run in batches of two.
    """
    from analysis import BatchOrchestrator, ComplianceAnalysisPipeline, SectionAnalyzer
    from chunking import HierarchicalChunker, TokenSegmenter

    def make(reasoning, segmentation="semantic"):
        estimator = Mock()
        estimator.estimate_unit_tokens.return_value = 6000
        return ComplianceAnalysisPipeline(
            reasoning,
            law_search,
            chunker=HierarchicalChunker(tokenizer=word_tokenizer, logger=mock_logger),
            segmenter=TokenSegmenter(
                reasoning, tokenizer=word_tokenizer, min_unit_length=50, logger=mock_logger
            ),
            orchestrator=BatchOrchestrator(
                estimator=estimator,
                rate_limit_tokens_per_minute=12000,
                safety_margin=1.0,
                cooldown_seconds=60,
                fallback_batch_size=3,
                sleep=cooldown_sleep,
                logger=mock_logger,
            ),
            analyzer=SectionAnalyzer(
                reasoning,
                law_search,
                queries_per_unit=2,
                top_k=3,
                score_threshold=0.5,
                legal_framework="Swiss Code of Obligations",
                logger=mock_logger,
            ),
            segmentation=segmentation,
            logger=mock_logger,
        )

    return make


def verdict_by_content(user_prompt: str) -> str:
    """Non-compliant for the one-week notice clause, compliant otherwise."""
    if "einer Woche" in user_prompt:
        return NON_COMPLIANT_VERDICT
    return COMPLIANT_VERDICT
