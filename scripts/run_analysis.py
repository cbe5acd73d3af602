#!/usr/bin/env python3
"""
Run a compliance analysis of a local document.

Steps:
1. Optionally index a folder of legal texts for keyword search
2. Register the document and run an analysis job
3. Persist the result and print the overall verdict
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

# Add project root and analysis-engine src to path
project_root = Path(__file__).parent.parent
engine_root = project_root / "services" / "analysis-engine" / "src"
sys.path.insert(0, str(project_root))
sys.path.insert(0, str(engine_root))

from analysis import ComplianceAnalysisPipeline
from chunking import HierarchicalChunker
from extraction import InMemoryDocumentSource, PlainTextExtractor, SourceFile
from jobs import AnalysisJobService, NotificationChannel
from persistence import CompactResultStore, DocumentStore
from reasoning import LangChainReasoningService
from retrieval import KeywordLegalContextSearch, QdrantLegalContextSearch

from shared.config import get_settings
from shared.models import (
    AnalysisStatus,
    DirectDocumentWithToolSearch,
    Document,
    DocumentKind,
    LocalSectionSearch,
)
from shared.utils import get_logger

CONTENT_TYPES = {".txt": "text/plain", ".md": "text/markdown"}


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Analyze a legal document for compliance.")
    parser.add_argument("document", type=Path, help="Text or markdown file to analyze.")
    parser.add_argument(
        "--kind",
        choices=[kind.value for kind in DocumentKind],
        default=DocumentKind.CONTRACT.value,
        help="Declared document kind.",
    )
    parser.add_argument(
        "--user-id",
        default="cli",
        help="Owner of the analysis.",
    )
    parser.add_argument(
        "--segmentation",
        choices=["semantic", "hierarchical"],
        default=None,
        help="Unit segmentation for the local section search strategy.",
    )
    parser.add_argument(
        "--direct",
        action="store_true",
        help="Send the whole document in one call with provider-side file search.",
    )
    parser.add_argument(
        "--vector-store-id",
        default=None,
        help="Vector store used by --direct.",
    )
    parser.add_argument(
        "--corpus",
        type=Path,
        default=None,
        help="Folder of legal texts to index for keyword search (instead of Qdrant).",
    )
    parser.add_argument(
        "--database-url",
        default=None,
        help="Database URL for persisted results (defaults to DATABASE_URL).",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Write the full result as JSON to this file.",
    )
    return parser.parse_args()


async def _keyword_search(corpus_dir: Path, chunker: HierarchicalChunker, logger) -> KeywordLegalContextSearch:
    settings = get_settings()
    search = KeywordLegalContextSearch(logger=logger)

    for path in sorted(corpus_dir.glob("*.txt")):
        document = Document(
            id=path.stem,
            text=path.read_text(encoding="utf-8"),
            kind=DocumentKind.REGULATION,
            title=path.stem,
        )
        chunks = chunker.split_document(document)
        await search.index(chunks, legal_area=settings.legal_area, jurisdiction=settings.jurisdiction)
        logger.info(f"Indexed {path.name}: {len(chunks)} chunks")

    return search


async def _run(args: argparse.Namespace) -> int:
    logger = get_logger(__name__)

    if not args.document.exists():
        logger.error(f"Document not found: {args.document}")
        return 1

    content_type = CONTENT_TYPES.get(args.document.suffix.lower())
    if content_type is None:
        logger.error(f"Unsupported file type: {args.document.suffix}")
        return 1

    chunker = HierarchicalChunker(logger=logger)
    if args.corpus:
        legal_search = await _keyword_search(args.corpus, chunker, logger)
    else:
        legal_search = QdrantLegalContextSearch(logger=logger)

    if args.direct:
        strategy = DirectDocumentWithToolSearch(vector_store_id=args.vector_store_id)
    else:
        strategy = LocalSectionSearch(segmentation=args.segmentation)

    document_id = args.document.stem
    source = InMemoryDocumentSource(
        [
            SourceFile(
                document_id=document_id,
                user_id=args.user_id,
                filename=args.document.name,
                content_type=content_type,
                data=args.document.read_bytes(),
                kind=DocumentKind(args.kind),
            )
        ]
    )

    store = DocumentStore(database_url=args.database_url, logger=logger)
    results = CompactResultStore(store, logger=logger)
    notifications = NotificationChannel(logger=logger)
    pipeline = ComplianceAnalysisPipeline(
        LangChainReasoningService(),
        legal_search,
        chunker=chunker,
        logger=logger,
    )
    service = AnalysisJobService(
        pipeline,
        results,
        source,
        extractor=PlainTextExtractor(),
        notifications=notifications,
        logger=logger,
    )

    job_id = await service.create_job(document_id, args.user_id, strategy=strategy)
    job = await service.wait(job_id)
    await notifications.close()

    if job is None or job.status != AnalysisStatus.COMPLETED:
        logger.error(f"Analysis did not complete: {job.error if job else 'job record missing'}")
        return 1

    result = await results.get(job.analysis_id, args.user_id)
    if result is None:
        logger.error(f"Analysis {job.analysis_id} could not be loaded")
        return 1

    overall = result.overall_compliance
    print(f"Analysis {result.analysis_id}")
    print(f"  Compliant:  {overall.is_compliant}")
    print(f"  Score:      {overall.compliance_score:.2f}")
    print(f"  Summary:    {overall.summary}")
    for unit_result in result.units:
        marker = "OK " if unit_result.verdict.is_compliant else "!! "
        title = unit_result.unit.title or unit_result.unit.id
        print(f"  {marker}{title} ({unit_result.verdict.confidence:.2f})")

    if args.output:
        args.output.write_text(
            json.dumps(result.model_dump(mode="json"), indent=2, ensure_ascii=False),
            encoding="utf-8",
        )
        logger.info(f"Result written to {args.output}")

    return 0


def main() -> int:
    return asyncio.run(_run(_parse_args()))


if __name__ == "__main__":
    sys.exit(main())
