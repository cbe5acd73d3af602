"""Legal document data models."""

from enum import Enum

from pydantic import BaseModel, Field


class DocumentKind(str, Enum):
    """Kinds of legal documents the engine distinguishes."""

    CONTRACT = "contract"
    REGULATION = "regulation"
    CASE_LAW = "case_law"
    LEGAL_OPINION = "legal_opinion"
    GENERAL = "general"


class Language(str, Enum):
    """Languages recognised by the structure classifier."""

    GERMAN = "de"
    FRENCH = "fr"
    ITALIAN = "it"
    ENGLISH = "en"


class Complexity(str, Enum):
    """Structural complexity of a document."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ChunkLevel(str, Enum):
    """Granularity a chunk was cut at."""

    CHAPTER = "chapter"
    SECTION = "section"
    CLAUSE = "clause"
    TABLE = "table"
    PARAGRAPH = "paragraph"


class Document(BaseModel):
    """Raw input document. Ephemeral, never persisted by the engine."""

    id: str = Field(..., description="Document identifier")
    text: str = Field(..., description="Full extracted text")
    kind: DocumentKind = DocumentKind.GENERAL
    language: Language | None = Field(
        default=None, description="Declared language, detected when absent"
    )
    title: str | None = None
    hints: dict[str, str] = Field(
        default_factory=dict, description="Optional structural hints from the caller"
    )


class StructureProfile(BaseModel):
    """Structural shape of a document as seen by the classifier."""

    document_kind: DocumentKind = DocumentKind.GENERAL
    language: Language = Language.GERMAN
    has_chapters: bool = False
    has_sections: bool = False
    has_tables: bool = False
    complexity: Complexity = Complexity.LOW


class Chunk(BaseModel):
    """Annotated slice of a document produced by the hierarchical chunker."""

    id: str = Field(..., description="Stable chunk id ({document_id}_chunk_{index})")
    document_id: str
    index: int = Field(..., ge=0, description="Position in the chunk sequence")
    level: ChunkLevel
    content: str
    start_offset: int = Field(..., ge=0)
    end_offset: int = Field(..., ge=0)
    language: Language = Language.GERMAN
    legal_references: list[str] = Field(
        default_factory=list, description="Statute and article citations found in the content"
    )
    clause_tags: list[str] = Field(
        default_factory=list, description="Clause types detected in the content"
    )
    section: str | None = Field(None, description="Section numeral (e.g., '12', '3a')")
    subsection: str | None = Field(None, description="Subsection numeral")

    @property
    def length(self) -> int:
        return self.end_offset - self.start_offset
