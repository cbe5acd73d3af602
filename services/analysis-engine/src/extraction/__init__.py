"""Document retrieval and text extraction."""

from .text_extraction import (
    DocumentSource,
    InMemoryDocumentSource,
    PlainTextExtractor,
    SourceFile,
    TextExtractor,
    reverse_anonymization,
)

__all__ = [
    "SourceFile",
    "DocumentSource",
    "TextExtractor",
    "InMemoryDocumentSource",
    "PlainTextExtractor",
    "reverse_anonymization",
]
