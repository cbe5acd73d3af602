"""
Unit Tests for the Path-Addressed Document Store
"""

import pytest

from shared.utils import PersistenceWriteError

from persistence import DocumentStore, WriteOp
from persistence.document_store import collection_of


class TestCollectionOf:
    @pytest.mark.parametrize(
        "path,collection",
        [
            ("analyses/a1", "analyses"),
            ("analyses/a1/details/items", "analyses/a1/details"),
            ("root", ""),
        ],
    )
    def test_collection_of(self, path, collection):
        assert collection_of(path) == collection


class TestDocumentStore:
    """Tests for DocumentStore on in-memory SQLite."""

    async def test_get_missing(self, document_store):
        assert await document_store.get("analyses/none") is None

    async def test_set_and_get(self, document_store):
        await document_store.set("analyses/a1", {"user_id": "u1", "score": 0.5})

        assert await document_store.get("analyses/a1") == {"user_id": "u1", "score": 0.5}

    async def test_merge_keeps_existing_fields(self, document_store):
        await document_store.set("analyses/a1", {"user_id": "u1", "status": "pending"})
        await document_store.set("analyses/a1", {"status": "completed"})

        assert await document_store.get("analyses/a1") == {"user_id": "u1", "status": "completed"}

    async def test_overwrite_without_merge(self, document_store):
        await document_store.set("analyses/a1", {"user_id": "u1", "status": "pending"})
        await document_store.set("analyses/a1", {"status": "completed"}, merge=False)

        assert await document_store.get("analyses/a1") == {"status": "completed"}

    async def test_batch_is_atomic_on_oversized_record(self, mock_logger):
        store = DocumentStore(database_url="sqlite://", max_record_bytes=100, logger=mock_logger)

        with pytest.raises(PersistenceWriteError):
            await store.batch_set(
                [
                    WriteOp("analyses/a1", {"ok": True}),
                    WriteOp("analyses/a1/details/items", {"blob": "x" * 500}),
                ]
            )

        assert await store.get("analyses/a1") is None

    async def test_unbounded_record_skips_ceiling(self, mock_logger):
        store = DocumentStore(database_url="sqlite://", max_record_bytes=100, logger=mock_logger)

        await store.batch_set([WriteOp("analyses/a1/details/items", {"blob": "x" * 500}, bounded=False)])

        assert len((await store.get("analyses/a1/details/items"))["blob"]) == 500

    async def test_merge_that_grows_past_ceiling_is_rejected(self, mock_logger):
        store = DocumentStore(database_url="sqlite://", max_record_bytes=100, logger=mock_logger)
        await store.set("analyses/a1", {"a": "x" * 60})

        with pytest.raises(PersistenceWriteError):
            await store.set("analyses/a1", {"b": "y" * 60})

        assert await store.get("analyses/a1") == {"a": "x" * 60}

    async def test_query_filters_orders_and_limits(self, document_store):
        await document_store.batch_set(
            [
                WriteOp("analyses/a1", {"user_id": "u1", "created_at": "2024-01-01T00:00:00"}),
                WriteOp("analyses/a2", {"user_id": "u1", "created_at": "2024-03-01T00:00:00"}),
                WriteOp("analyses/a3", {"user_id": "u2", "created_at": "2024-02-01T00:00:00"}),
                WriteOp("analyses/a2/details/items", {"user_id": "u1"}),
            ]
        )

        records = await document_store.query(
            "analyses", where={"user_id": "u1"}, order_by="created_at", descending=True
        )
        assert [path for path, _ in records] == ["analyses/a2", "analyses/a1"]

        limited = await document_store.query("analyses", order_by="created_at", limit=1)
        assert [path for path, _ in limited] == ["analyses/a1"]

    async def test_delete(self, document_store):
        await document_store.set("analyses/a1", {"x": 1})

        deleted = await document_store.delete(["analyses/a1", "analyses/missing"])

        assert deleted == 1
        assert await document_store.get("analyses/a1") is None
