"""Compliance analysis data models."""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, field_validator

from .legal_document import Chunk


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AnalysisUnit(BaseModel):
    """A slice of the document judged on its own by the section analyzer."""

    id: str
    content: str
    title: str | None = None
    start_offset: int = Field(..., ge=0)
    end_offset: int = Field(..., ge=0)


class DocumentContext(BaseModel):
    """Document-wide facts passed along with every unit."""

    document_type: str = Field(default="contract", description="e.g. employment contract, NDA")
    business_domain: str = Field(default="general")
    key_terms: list[str] = Field(default_factory=list)
    parties: list[str] = Field(default_factory=list)
    summary: str | None = None


class GeneratedQuery(BaseModel):
    """Search query proposed for a unit's legal topic."""

    text: str
    focus: str | None = Field(None, description="Legal topic the query targets")
    templated: bool = Field(
        default=False, description="True when built from templates instead of the LLM"
    )


class LegalSearchResult(BaseModel):
    """Raw output of a legal-context search."""

    documents: list[Chunk] = Field(default_factory=list)
    scores: list[float] = Field(default_factory=list)


class LegalContextItem(BaseModel):
    """One retrieved source of law with the query that found it."""

    source: Chunk
    relevance_score: float
    query: str


class ComplianceVerdict(BaseModel):
    """Compliance judgment of a single unit."""

    is_compliant: bool
    confidence: float = Field(..., ge=0.0, le=1.0)
    reasoning: str = ""
    violations: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, v: Any) -> float:
        try:
            value = float(v)
        except (TypeError, ValueError):
            return 0.0
        if value != value:  # NaN
            return 0.0
        return min(1.0, max(0.0, value))

    @field_validator("violations", "recommendations", mode="before")
    @classmethod
    def coerce_string_list(cls, v: Any) -> list[str]:
        if v is None:
            return []
        if isinstance(v, str):
            return [v] if v.strip() else []
        return [str(item) for item in v if item is not None and str(item).strip()]


class FindingType(str, Enum):
    """Types of findings."""

    MISSING_CLAUSE = "missing_clause"
    UNCLEAR_CLAUSE = "unclear_clause"
    LEGAL_VIOLATION = "legal_violation"
    RISK_FACTOR = "risk_factor"
    COMPLIANCE_ISSUE = "compliance_issue"
    DEADLINE = "deadline"
    AMBIGUITY = "ambiguity"


class FindingSeverity(str, Enum):
    """Finding severity levels."""

    INFO = "info"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class RecommendationPriority(str, Enum):
    """Priority of a recommendation."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class TextLocation(BaseModel):
    """Position of a finding in the source text."""

    start_offset: int = Field(..., ge=0)
    end_offset: int = Field(..., ge=0)
    section_label: str | None = None


class Finding(BaseModel):
    """A single identified legal issue, owned by one analysis result."""

    record_type: Literal["finding"] = "finding"
    id: str
    unit_id: str
    type: FindingType
    severity: FindingSeverity
    title: str
    description: str
    location: TextLocation
    evidence: list[str] = Field(default_factory=list)
    legal_basis: list[str] = Field(default_factory=list)


class Recommendation(BaseModel):
    """Actionable advice attached to a unit."""

    record_type: Literal["recommendation"] = "recommendation"
    id: str
    unit_id: str
    priority: RecommendationPriority
    description: str


DetailItem = Annotated[Finding | Recommendation, Field(discriminator="record_type")]


class UnitResult(BaseModel):
    """Full outcome of analyzing one unit."""

    unit: AnalysisUnit
    verdict: ComplianceVerdict
    queries: list[GeneratedQuery] = Field(default_factory=list)
    legal_context: list[LegalContextItem] = Field(default_factory=list)
    findings: list[Finding] = Field(default_factory=list)
    recommendations: list[Recommendation] = Field(default_factory=list)
    is_fallback: bool = Field(
        default=False, description="True when the verdict is the manual-review placeholder"
    )


class OverallCompliance(BaseModel):
    """Document-level verdict folded from unit verdicts."""

    is_compliant: bool
    compliance_score: float = Field(..., ge=0.0, le=1.0)
    summary: str
    total_units: int = 0
    compliant_units: int = 0
    violation_count: int = 0
    fallback_count: int = 0


class AnalysisStatus(str, Enum):
    """Lifecycle states shared by analyses and jobs."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ReviewStatus(str, Enum):
    """Lawyer review workflow state."""

    UNCHECKED = "unchecked"
    CHECK_PENDING = "check_pending"
    APPROVED = "approved"
    DECLINED = "declined"


class LocalSectionSearch(BaseModel):
    """Split locally, search legal context per unit, batch under the token budget."""

    kind: Literal["local_section_search"] = "local_section_search"
    segmentation: Literal["semantic", "hierarchical"] | None = Field(
        default=None, description="Overrides UNIT_SEGMENTATION when set"
    )


class DirectDocumentWithToolSearch(BaseModel):
    """Hand the whole document to the reasoning service with its own search tool."""

    kind: Literal["direct_document"] = "direct_document"
    vector_store_id: str | None = None
    region: str = "CH"


AnalysisStrategy = Annotated[
    LocalSectionSearch | DirectDocumentWithToolSearch, Field(discriminator="kind")
]


class AnalysisResult(BaseModel):
    """Aggregated result of one analysis run."""

    analysis_id: str
    document_id: str
    user_id: str
    status: AnalysisStatus = AnalysisStatus.PENDING
    strategy: str = "local_section_search"
    document_context: DocumentContext = Field(default_factory=DocumentContext)
    units: list[UnitResult] = Field(default_factory=list)
    overall_compliance: OverallCompliance | None = None
    review_status: ReviewStatus = ReviewStatus.UNCHECKED
    review_comment: str | None = None
    error: str | None = None
    created_at: datetime = Field(default_factory=utc_now)
    completed_at: datetime | None = None


class CompactUnitResult(BaseModel):
    """Unit entry of the compact index. Findings and recommendations by id only."""

    unit_id: str
    title: str | None = None
    content: str
    start_offset: int
    end_offset: int
    verdict: ComplianceVerdict
    queries: list[GeneratedQuery] = Field(default_factory=list)
    finding_ids: list[str] = Field(default_factory=list)
    recommendation_ids: list[str] = Field(default_factory=list)
    is_fallback: bool = False


class CompactIndex(BaseModel):
    """Size-bounded part of a persisted analysis."""

    analysis_id: str
    document_id: str
    user_id: str
    status: AnalysisStatus
    strategy: str
    document_context: DocumentContext
    units: list[CompactUnitResult] = Field(default_factory=list)
    overall_compliance: OverallCompliance | None = None
    review_status: ReviewStatus = ReviewStatus.UNCHECKED
    review_comment: str | None = None
    error: str | None = None
    created_at: datetime
    completed_at: datetime | None = None


class DetailsBlob(BaseModel):
    """Unbounded part of a persisted analysis: detail records keyed by id."""

    items: dict[str, DetailItem] = Field(default_factory=dict)


class JobStage(str, Enum):
    """Stages of an analysis job."""

    DOWNLOAD = "download"
    SPLIT = "split"
    CONTEXT = "context"
    ANALYZE = "analyze"
    SAVE = "save"


class ProgressUpdate(BaseModel):
    """Progress event emitted while a job runs."""

    stage: JobStage
    percent: int = Field(..., ge=0, le=100)
    message: str = ""


class AnalysisJob(BaseModel):
    """Persisted job record."""

    job_id: str
    analysis_id: str
    document_id: str
    user_id: str
    status: AnalysisStatus = AnalysisStatus.PENDING
    stage: JobStage | None = None
    progress: int = 0
    message: str | None = None
    error: str | None = None
    strategy: AnalysisStrategy = Field(default_factory=LocalSectionSearch)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
