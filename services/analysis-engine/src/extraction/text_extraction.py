"""
Document retrieval and text extraction collaborators.

Jobs fetch the uploaded file through a ``DocumentSource`` and turn it into
text with a ``TextExtractor``. Uploaded documents are anonymized; the keyword
map travels with the file so results can be de-anonymized at the end.
"""

import re
from typing import Protocol

from pydantic import BaseModel, Field

from shared.models import DocumentKind
from shared.utils import ExtractionError, get_logger

logger = get_logger(__name__)


class SourceFile(BaseModel):
    """An uploaded document as stored by the upload layer."""

    document_id: str
    user_id: str
    filename: str
    content_type: str
    data: bytes
    kind: DocumentKind = DocumentKind.GENERAL
    keyword_map: dict[str, str] = Field(
        default_factory=dict, description="Anonymization placeholder -> original text"
    )


class DocumentSource(Protocol):
    async def fetch(self, document_id: str, user_id: str) -> SourceFile:
        ...


class TextExtractor(Protocol):
    def extract_text(self, data: bytes, content_type: str, filename: str) -> str:
        ...


class InMemoryDocumentSource:
    """DocumentSource over files registered in memory (CLI runs and tests)."""

    def __init__(self, files: list[SourceFile] | None = None):
        self._files: dict[tuple[str, str], SourceFile] = {}
        for source_file in files or []:
            self.add(source_file)

    def add(self, source_file: SourceFile) -> None:
        self._files[(source_file.document_id, source_file.user_id)] = source_file

    async def fetch(self, document_id: str, user_id: str) -> SourceFile:
        try:
            return self._files[(document_id, user_id)]
        except KeyError:
            raise ExtractionError(f"Document {document_id} not found for user {user_id}") from None


class PlainTextExtractor:
    """Extracts text from plain-text and markdown uploads."""

    SUPPORTED_TYPES = ("text/plain", "text/markdown", "text/x-markdown")

    def extract_text(self, data: bytes, content_type: str, filename: str) -> str:
        """
        Decode a text upload.

        Raises:
            ExtractionError: for unsupported content types or empty documents
        """
        base_type = content_type.split(";")[0].strip().lower()
        if base_type not in self.SUPPORTED_TYPES:
            raise ExtractionError(f"Unsupported content type {content_type} for {filename}")

        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError:
            logger.warning(f"{filename} is not valid UTF-8, decoding as Latin-1")
            text = data.decode("latin-1")

        if not text.strip():
            raise ExtractionError(f"No text could be extracted from {filename}")

        logger.info(f"Extracted {len(text)} characters from {filename}")
        return text


def reverse_anonymization(text: str, keyword_map: dict[str, str] | None) -> str:
    """Replace anonymization placeholders with the original values."""
    if not text or not keyword_map:
        return text

    # Longest placeholders first so that e.g. PERSON_10 wins over PERSON_1
    placeholders = sorted((p for p in keyword_map if p), key=len, reverse=True)
    if not placeholders:
        return text
    pattern = re.compile("|".join(re.escape(p) for p in placeholders))
    return pattern.sub(lambda match: keyword_map[match.group(0)], text)
