"""
Document Store

Path-addressed JSON document store on SQLAlchemy. Supports get-by-path,
atomic multi-path batched writes with merge semantics, equality/ordering
queries over a flat collection and batched deletes. Records are subject to a
per-record size ceiling; a batch with an oversized record is rejected as a
whole.

Session work is synchronous and runs in a worker thread behind the async
methods.
"""

import asyncio
import json
import threading
from dataclasses import dataclass
from typing import Any

from sqlalchemy import create_engine, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from shared.config import get_settings
from shared.models import Base, StoreRecord
from shared.utils import PersistenceWriteError, get_logger


@dataclass
class WriteOp:
    """One record write inside a batch."""

    path: str
    data: dict[str, Any]
    bounded: bool = True


def collection_of(path: str) -> str:
    """``a/b/c/d`` belongs to collection ``a/b/c``; ``a/b`` to ``a``."""
    return path.rsplit("/", 1)[0] if "/" in path else ""


def record_size(data: dict[str, Any]) -> int:
    return len(json.dumps(data, default=str, ensure_ascii=False).encode("utf-8"))


class DocumentStore:
    """SQLAlchemy-backed path/JSON store."""

    def __init__(
        self,
        database_url: str | None = None,
        max_record_bytes: int | None = None,
        engine=None,
        logger=None,
    ):
        settings = get_settings()
        self.logger = logger or get_logger(__name__)
        self.max_record_bytes = max_record_bytes or settings.max_record_bytes

        if engine is None:
            url = database_url or settings.database_url
            kwargs: dict[str, Any] = {}
            if url.startswith("sqlite"):
                kwargs["connect_args"] = {"check_same_thread": False}
                if url in ("sqlite://", "sqlite:///:memory:"):
                    kwargs["poolclass"] = StaticPool
            engine = create_engine(url, echo=False, **kwargs)

        self.engine = engine
        self.SessionLocal = sessionmaker(autoflush=False, bind=self.engine)
        # Serializes session work; SQLite connections are shared across worker threads
        self._lock = threading.Lock()
        Base.metadata.create_all(bind=self.engine)

    def get_session(self) -> Session:
        """Get database session."""
        return self.SessionLocal()

    # Synchronous operations

    def get_sync(self, path: str) -> dict[str, Any] | None:
        with self._lock, self.get_session() as session:
            record = session.get(StoreRecord, path)
            return dict(record.data) if record is not None else None

    def batch_set_sync(self, writes: list[WriteOp], merge: bool = True) -> None:
        for op in writes:
            self._check_size(op, op.data)

        with self._lock, self.get_session() as session:
            try:
                for op in writes:
                    record = session.get(StoreRecord, op.path)
                    if record is None:
                        session.add(
                            StoreRecord(
                                path=op.path,
                                collection=collection_of(op.path),
                                data=op.data,
                                size_bytes=record_size(op.data),
                            )
                        )
                        continue

                    data = {**record.data, **op.data} if merge else op.data
                    self._check_size(op, data)
                    record.data = data
                    record.size_bytes = record_size(data)

                session.commit()
            except PersistenceWriteError:
                session.rollback()
                raise
            except SQLAlchemyError as e:
                session.rollback()
                raise PersistenceWriteError(f"Batch write of {len(writes)} records failed: {e}") from e

        self.logger.debug(
            f"Committed batch of {len(writes)} records",
            extra={"paths": [op.path for op in writes]},
        )

    def query_sync(
        self,
        collection: str,
        where: dict[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[tuple[str, dict[str, Any]]]:
        statement = select(StoreRecord).where(StoreRecord.collection == collection)
        for key, value in (where or {}).items():
            statement = statement.where(StoreRecord.data[key].as_string() == str(value))
        if order_by:
            column = StoreRecord.data[order_by].as_string()
            statement = statement.order_by(column.desc() if descending else column.asc())
        if limit:
            statement = statement.limit(limit)

        with self._lock, self.get_session() as session:
            return [(record.path, dict(record.data)) for record in session.scalars(statement)]

    def delete_sync(self, paths: list[str]) -> int:
        with self._lock, self.get_session() as session:
            try:
                deleted = 0
                for path in paths:
                    record = session.get(StoreRecord, path)
                    if record is not None:
                        session.delete(record)
                        deleted += 1
                session.commit()
            except SQLAlchemyError as e:
                session.rollback()
                raise PersistenceWriteError(f"Delete of {len(paths)} records failed: {e}") from e
        return deleted

    def _check_size(self, op: WriteOp, data: dict[str, Any]) -> None:
        if not op.bounded:
            return
        size = record_size(data)
        if size > self.max_record_bytes:
            raise PersistenceWriteError(
                f"Record {op.path} is {size} bytes, exceeding the {self.max_record_bytes} byte limit"
            )

    # Async facade

    async def get(self, path: str) -> dict[str, Any] | None:
        return await asyncio.to_thread(self.get_sync, path)

    async def batch_set(self, writes: list[WriteOp], merge: bool = True) -> None:
        """
        Write all records in one transaction.

        Raises:
            PersistenceWriteError: if any record exceeds the size ceiling or
                the transaction fails; nothing from the batch is written
        """
        await asyncio.to_thread(self.batch_set_sync, writes, merge)

    async def set(self, path: str, data: dict[str, Any], merge: bool = True) -> None:
        await self.batch_set([WriteOp(path, data)], merge=merge)

    async def query(
        self,
        collection: str,
        where: dict[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[tuple[str, dict[str, Any]]]:
        return await asyncio.to_thread(
            self.query_sync, collection, where, order_by, descending, limit
        )

    async def delete(self, paths: list[str]) -> int:
        return await asyncio.to_thread(self.delete_sync, paths)
