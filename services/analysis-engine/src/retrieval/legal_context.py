"""
Legal-context search.

The analysis engine only depends on the ``LegalContextSearch`` capability.
Two adapters are provided:

- ``KeywordLegalContextSearch``: in-memory BM25 over indexed chunks, for
  local runs and tests
- ``QdrantLegalContextSearch``: OpenAI embeddings + Qdrant vector search
"""

import asyncio
import re
import uuid
from typing import Any, Protocol

from openai import AsyncOpenAI
from qdrant_client import QdrantClient
from qdrant_client.models import FieldCondition, Filter, MatchValue, PointStruct
from rank_bm25 import BM25Okapi

from shared.config.settings import get_settings
from shared.models import Chunk, ChunkLevel, LegalSearchResult
from shared.utils.logger import get_logger


class LegalContextSearch(Protocol):
    """Search capability over a body of law."""

    async def search(
        self,
        query: str,
        legal_area: str | None = None,
        jurisdiction: str | None = None,
        top_k: int = 5,
        index_id: str | None = None,
        score_threshold: float | None = None,
    ) -> LegalSearchResult:
        ...


class IndexableLegalContextSearch(LegalContextSearch, Protocol):
    """Search capability that can also ingest chunks."""

    async def index(
        self,
        chunks: list[Chunk],
        legal_area: str | None = None,
        jurisdiction: str | None = None,
    ) -> int:
        ...


_TOKEN = re.compile(r"\w+", re.UNICODE)


def tokenize(text: str) -> list[str]:
    return [token.lower() for token in _TOKEN.findall(text)]


class KeywordLegalContextSearch:
    """
    BM25 keyword search over chunks held in memory.

    Raw BM25 scores are unbounded, so scores are normalized by the best score
    of each query before the threshold is applied.
    """

    def __init__(self, logger=None):
        self.logger = logger or get_logger(__name__)
        self._entries: list[tuple[Chunk, str | None, str | None]] = []
        self._bm25: BM25Okapi | None = None

    async def index(
        self,
        chunks: list[Chunk],
        legal_area: str | None = None,
        jurisdiction: str | None = None,
    ) -> int:
        self._entries.extend((chunk, legal_area, jurisdiction) for chunk in chunks)
        corpus = [tokenize(chunk.content) for chunk, _, _ in self._entries]
        self._bm25 = BM25Okapi(corpus) if corpus else None
        self.logger.info(f"Indexed {len(chunks)} chunks ({len(self._entries)} total)")
        return len(chunks)

    async def search(
        self,
        query: str,
        legal_area: str | None = None,
        jurisdiction: str | None = None,
        top_k: int = 5,
        index_id: str | None = None,
        score_threshold: float | None = None,
    ) -> LegalSearchResult:
        if self._bm25 is None:
            return LegalSearchResult()

        query_tokens = tokenize(query)
        if not query_tokens:
            return LegalSearchResult()

        raw_scores = self._bm25.get_scores(query_tokens)
        best = max(raw_scores) if len(raw_scores) else 0.0
        if best <= 0:
            return LegalSearchResult()

        ranked = []
        for (chunk, area, region), raw in zip(self._entries, raw_scores):
            if legal_area and area and area != legal_area:
                continue
            if jurisdiction and region and region != jurisdiction:
                continue
            score = float(raw) / best
            if raw <= 0 or (score_threshold is not None and score < score_threshold):
                continue
            ranked.append((score, chunk))

        ranked.sort(key=lambda item: item[0], reverse=True)
        ranked = ranked[:top_k]
        return LegalSearchResult(
            documents=[chunk for _, chunk in ranked],
            scores=[score for score, _ in ranked],
        )


class QdrantLegalContextSearch:
    """Vector search over a Qdrant collection of legal chunks."""

    def __init__(self, client: QdrantClient | None = None, embedder: AsyncOpenAI | None = None, logger=None):
        settings = get_settings()
        self.logger = logger or get_logger(__name__)
        self.client = client or QdrantClient(
            url=settings.qdrant_url,
            api_key=settings.qdrant_api_key if settings.qdrant_api_key else None,
        )
        self.embedder = embedder or AsyncOpenAI(api_key=settings.openai_api_key)
        self.embedding_model = settings.embedding_model
        self.embedding_dimension = settings.embedding_dimension
        self.collection_name = settings.qdrant_collection_name

        self.logger.info(f"Initialized Qdrant legal search for collection: {self.collection_name}")

    async def _embed(self, texts: list[str]) -> list[list[float]]:
        response = await self.embedder.embeddings.create(
            model=self.embedding_model,
            input=texts,
            dimensions=self.embedding_dimension,
        )
        return [item.embedding for item in response.data]

    async def search(
        self,
        query: str,
        legal_area: str | None = None,
        jurisdiction: str | None = None,
        top_k: int = 5,
        index_id: str | None = None,
        score_threshold: float | None = None,
    ) -> LegalSearchResult:
        query_vector = (await self._embed([query]))[0]

        conditions = []
        if legal_area:
            conditions.append(FieldCondition(key="legal_area", match=MatchValue(value=legal_area)))
        if jurisdiction:
            conditions.append(FieldCondition(key="jurisdiction", match=MatchValue(value=jurisdiction)))

        response = await asyncio.to_thread(
            self.client.query_points,
            collection_name=index_id or self.collection_name,
            query=query_vector,
            limit=top_k,
            query_filter=Filter(must=conditions) if conditions else None,
            score_threshold=score_threshold,
            with_payload=True,
            with_vectors=False,
        )

        documents = [self._point_to_chunk(point.id, point.payload or {}) for point in response.points]
        scores = [float(point.score) for point in response.points]

        self.logger.info(
            f"Search returned {len(documents)} results (top_k={top_k})",
            extra={"legal_area": legal_area, "jurisdiction": jurisdiction},
        )
        return LegalSearchResult(documents=documents, scores=scores)

    async def index(
        self,
        chunks: list[Chunk],
        legal_area: str | None = None,
        jurisdiction: str | None = None,
    ) -> int:
        if not chunks:
            return 0

        vectors = await self._embed([chunk.content for chunk in chunks])
        points = [
            PointStruct(
                id=str(uuid.uuid5(uuid.NAMESPACE_URL, chunk.id)),
                vector=vector,
                payload={
                    **chunk.model_dump(mode="json"),
                    "legal_area": legal_area,
                    "jurisdiction": jurisdiction,
                },
            )
            for chunk, vector in zip(chunks, vectors)
        ]
        await asyncio.to_thread(
            self.client.upsert, collection_name=self.collection_name, points=points
        )
        self.logger.info(f"Upserted {len(points)} legal chunks into {self.collection_name}")
        return len(points)

    @staticmethod
    def _point_to_chunk(point_id: Any, payload: dict[str, Any]) -> Chunk:
        content = payload.get("content") or payload.get("text") or ""
        return Chunk(
            id=str(payload.get("id") or point_id),
            document_id=str(payload.get("document_id", "")),
            index=int(payload.get("index", 0)),
            level=payload.get("level", ChunkLevel.SECTION),
            content=content,
            start_offset=int(payload.get("start_offset", 0)),
            end_offset=int(payload.get("end_offset", len(content))),
            language=payload.get("language", "de"),
            legal_references=payload.get("legal_references", []),
            clause_tags=payload.get("clause_tags", []),
            section=payload.get("section"),
            subsection=payload.get("subsection"),
        )
