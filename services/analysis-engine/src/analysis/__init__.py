"""Compliance analysis: budgeting, batching, per-unit analysis and aggregation."""

from .aggregator import ComplianceAggregator
from .batch_orchestrator import BatchOrchestrator
from .document_context import DocumentContextExtractor
from .pipeline import ComplianceAnalysisPipeline
from .section_analyzer import SectionAnalyzer, fallback_verdict, parse_verdict
from .strategies import DirectDocumentRunner, LocalSectionSearchRunner, file_search_tool
from .token_budget import TokenBudgetEstimator

__all__ = [
    "TokenBudgetEstimator",
    "BatchOrchestrator",
    "SectionAnalyzer",
    "fallback_verdict",
    "parse_verdict",
    "ComplianceAggregator",
    "DocumentContextExtractor",
    "LocalSectionSearchRunner",
    "DirectDocumentRunner",
    "file_search_tool",
    "ComplianceAnalysisPipeline",
]
