"""Persistence of analysis results and job records."""

from .compact_store import CompactResultStore
from .document_store import DocumentStore, WriteOp

__all__ = ["DocumentStore", "WriteOp", "CompactResultStore"]
