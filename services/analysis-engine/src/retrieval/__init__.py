"""Legal-context retrieval."""

from .legal_context import (
    IndexableLegalContextSearch,
    KeywordLegalContextSearch,
    LegalContextSearch,
    QdrantLegalContextSearch,
)

__all__ = [
    "LegalContextSearch",
    "IndexableLegalContextSearch",
    "KeywordLegalContextSearch",
    "QdrantLegalContextSearch",
]
