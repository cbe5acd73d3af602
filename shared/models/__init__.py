"""Shared data models for the analysis engine."""

from .analysis import (
    AnalysisJob,
    AnalysisResult,
    AnalysisStatus,
    AnalysisStrategy,
    AnalysisUnit,
    CompactIndex,
    CompactUnitResult,
    ComplianceVerdict,
    DetailsBlob,
    DirectDocumentWithToolSearch,
    DocumentContext,
    Finding,
    FindingSeverity,
    FindingType,
    GeneratedQuery,
    JobStage,
    LegalContextItem,
    LegalSearchResult,
    LocalSectionSearch,
    OverallCompliance,
    ProgressUpdate,
    Recommendation,
    RecommendationPriority,
    ReviewStatus,
    TextLocation,
    UnitResult,
)
from .legal_document import (
    Chunk,
    ChunkLevel,
    Complexity,
    Document,
    DocumentKind,
    Language,
    StructureProfile,
)
from .records import Base, StoreRecord

__all__ = [
    "Document",
    "DocumentKind",
    "Language",
    "Complexity",
    "ChunkLevel",
    "StructureProfile",
    "Chunk",
    "AnalysisUnit",
    "DocumentContext",
    "GeneratedQuery",
    "LegalSearchResult",
    "LegalContextItem",
    "ComplianceVerdict",
    "FindingType",
    "FindingSeverity",
    "RecommendationPriority",
    "TextLocation",
    "Finding",
    "Recommendation",
    "UnitResult",
    "OverallCompliance",
    "AnalysisStatus",
    "ReviewStatus",
    "LocalSectionSearch",
    "DirectDocumentWithToolSearch",
    "AnalysisStrategy",
    "AnalysisResult",
    "CompactUnitResult",
    "CompactIndex",
    "DetailsBlob",
    "JobStage",
    "ProgressUpdate",
    "AnalysisJob",
    "Base",
    "StoreRecord",
]
