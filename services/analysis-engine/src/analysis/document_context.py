"""Document-wide context extraction."""

from pydantic import AliasChoices, BaseModel, Field, ValidationError

from shared.models import DocumentContext
from shared.utils import ResponseParseError, get_logger

from reasoning import ReasoningService, extract_json

from .prompts import DOCUMENT_CONTEXT_SYSTEM_PROMPT

EXCERPT_LENGTH = 4000


class _ContextPayload(BaseModel):
    document_type: str | None = Field(
        default=None, validation_alias=AliasChoices("documentType", "document_type")
    )
    business_domain: str | None = Field(
        default=None, validation_alias=AliasChoices("businessDomain", "business_domain")
    )
    key_terms: list[str] = Field(
        default_factory=list, validation_alias=AliasChoices("keyTerms", "key_terms")
    )
    parties: list[str] = Field(default_factory=list)
    summary: str | None = None


class DocumentContextExtractor:
    """Asks the reasoning service what kind of document it is looking at."""

    def __init__(self, reasoning: ReasoningService, excerpt_length: int = EXCERPT_LENGTH, logger=None):
        self.reasoning = reasoning
        self.excerpt_length = excerpt_length
        self.logger = logger or get_logger(__name__)

    async def extract(self, text: str) -> DocumentContext:
        """Return the document context, or defaults when it cannot be determined."""
        raw = ""
        try:
            raw = await self.reasoning.invoke(
                DOCUMENT_CONTEXT_SYSTEM_PROMPT,
                f"DOCUMENT (beginning):\n{text[: self.excerpt_length]}",
                json_mode=True,
            )
            data = extract_json(raw)
            payload = _ContextPayload.model_validate(data)
        except (ResponseParseError, ValidationError) as e:
            self.logger.warning(
                "Unparseable document context, using defaults",
                extra={"error": str(e), "raw_response": raw[:500]},
            )
            return DocumentContext()
        except Exception as e:
            self.logger.log_error_with_context("Document context extraction failed, using defaults", e)
            return DocumentContext()

        defaults = DocumentContext()
        return DocumentContext(
            document_type=payload.document_type or defaults.document_type,
            business_domain=payload.business_domain or defaults.business_domain,
            key_terms=[term for term in payload.key_terms if term],
            parties=[party for party in payload.parties if party],
            summary=payload.summary,
        )
