"""
Knowledge base: durable append, similarity queries, paging and index rebuild.
"""

import inspect
import sqlite3
import threading
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from schemabridge.core.errors import ExemplarNotFound, RetrievalError
from schemabridge.core.knowledge_base import KnowledgeBase
from schemabridge.core.schema import Exemplar, ONLINE, OFFLINE, DUMMY, SUCCESS, ERROR
from schemabridge.vector.index import SimpleInMemoryVectorStore

BASE_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def make_exemplar(embedding=(1.0, 0.0, 0.0), mode=ONLINE, outcome=SUCCESS, minutes=0, **kwargs):
    defaults = dict(
        id=Exemplar.new_id(),
        consumer_request={"firstName": "Alice", "lastName": "Smith"},
        schema_version="consumer-users@1",
        mode=mode,
        outcome=outcome,
        response={"fullName": "Alice Smith", "id": "xyz123"},
        embedding=list(embedding),
        timestamp=BASE_TIME + timedelta(minutes=minutes),
        source="server",
    )
    defaults.update(kwargs)
    return Exemplar(**defaults)


class TestAppendAndGet:
    def test_round_trip(self, knowledge_base):
        exemplar = make_exemplar(server_request={"f_name": "Alice", "l_name": "Smith"},
                                 server_response={"full_name": "Alice Smith", "user_id": "xyz123"})

        assert knowledge_base.append(exemplar) == exemplar.id
        stored = knowledge_base.get(exemplar.id)

        assert stored == exemplar
        assert len(knowledge_base.vector_store) == 1

    def test_missing_exemplar(self, knowledge_base):
        with pytest.raises(ExemplarNotFound) as exc_info:
            knowledge_base.get("does-not-exist")
        assert exc_info.value.exemplar_id == "does-not-exist"

    def test_exemplar_without_embedding_is_stored_but_not_indexed(self, knowledge_base):
        exemplar = make_exemplar(embedding=())
        knowledge_base.append(exemplar)

        assert knowledge_base.count() == 1
        assert len(knowledge_base.vector_store) == 0

    def test_index_rejection_keeps_stored_exemplar(self, knowledge_base):
        knowledge_base.append(make_exemplar(embedding=(1.0, 0.0, 0.0)))
        mismatched = make_exemplar(embedding=(1.0, 0.0))

        assert knowledge_base.append(mismatched) == mismatched.id
        assert knowledge_base.get(mismatched.id) == mismatched
        assert knowledge_base.count() == 2
        assert len(knowledge_base.vector_store) == 1

    def test_write_failure_is_retrieval_error(self, knowledge_base):
        exemplar = make_exemplar()
        knowledge_base.append(exemplar)

        # Duplicate id violates the unique constraint
        with pytest.raises(RetrievalError) as exc_info:
            knowledge_base.append(exemplar)

        assert exc_info.value.reason == RetrievalError.STORE_UNAVAILABLE
        assert len(knowledge_base.vector_store) == 1

    def test_unavailable_store(self, knowledge_base):
        with patch("schemabridge.core.knowledge_base.get_db", side_effect=sqlite3.OperationalError("locked")):
            with pytest.raises(RetrievalError):
                knowledge_base.count()
            with pytest.raises(RetrievalError):
                knowledge_base.append(make_exemplar())

    def test_exemplar_rejects_unknown_mode(self):
        with pytest.raises(ValueError):
            make_exemplar(mode="degraded")

    def test_concurrent_appends(self, knowledge_base):
        errors = []

        def worker():
            try:
                for i in range(10):
                    knowledge_base.append(make_exemplar(embedding=(1.0, float(i), 0.0)))
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert knowledge_base.count() == 40
        assert len(knowledge_base.vector_store) == 40


class TestQueryByEmbedding:
    def test_is_a_generator(self, knowledge_base):
        knowledge_base.append(make_exemplar())
        assert inspect.isgenerator(knowledge_base.query_by_embedding([1.0, 0.0, 0.0], 3))

    def test_nearest_first(self, knowledge_base):
        far = make_exemplar(embedding=(0.0, 1.0, 0.0))
        near = make_exemplar(embedding=(1.0, 0.1, 0.0))
        knowledge_base.append(far)
        knowledge_base.append(near)

        results = list(knowledge_base.query_by_embedding([1.0, 0.0, 0.0], 2))

        assert [e.id for e, _ in results] == [near.id, far.id]
        assert results[0][1] < results[1][1]

    def test_equal_distance_prefers_most_recent(self, knowledge_base):
        older = make_exemplar(minutes=0, id="b-older")
        newer = make_exemplar(minutes=5, id="a-newer")
        knowledge_base.append(newer)
        knowledge_base.append(older)

        results = list(knowledge_base.query_by_embedding([1.0, 0.0, 0.0], 2))

        assert [e.id for e, _ in results] == ["a-newer", "b-older"]

    def test_equal_distance_and_time_orders_by_id(self, knowledge_base):
        for exemplar_id in ("c", "a", "b"):
            knowledge_base.append(make_exemplar(id=exemplar_id))

        results = list(knowledge_base.query_by_embedding([1.0, 0.0, 0.0], 3))

        assert [e.id for e, _ in results] == ["a", "b", "c"]

    def test_repeated_queries_are_deterministic(self, knowledge_base):
        for i in range(6):
            knowledge_base.append(make_exemplar(embedding=(1.0, i * 0.1, 0.0), minutes=i))

        first = [e.id for e, _ in knowledge_base.query_by_embedding([1.0, 0.2, 0.0], 4)]
        second = [e.id for e, _ in knowledge_base.query_by_embedding([1.0, 0.2, 0.0], 4)]

        assert first == second
        assert len(first) == 4

    def test_accept_filters_before_truncation(self, knowledge_base):
        online = make_exemplar(mode=ONLINE, minutes=0)
        knowledge_base.append(online)
        for i in range(1, 31):
            knowledge_base.append(make_exemplar(mode=OFFLINE, minutes=i, source="retrieval"))

        results = list(knowledge_base.query_by_embedding([1.0, 0.0, 0.0], 1,
                                                         accept=lambda e: e.mode == ONLINE))

        assert [e.id for e, _ in results] == [online.id]

    def test_accept_with_no_passing_exemplars(self, knowledge_base):
        for i in range(10):
            knowledge_base.append(make_exemplar(mode=OFFLINE, minutes=i))

        assert list(knowledge_base.query_by_embedding([1.0, 0.0, 0.0], 2, accept=lambda e: False)) == []

    def test_empty_store_and_zero_k(self, knowledge_base):
        assert list(knowledge_base.query_by_embedding([1.0, 0.0, 0.0], 3)) == []
        knowledge_base.append(make_exemplar())
        assert list(knowledge_base.query_by_embedding([1.0, 0.0, 0.0], 0)) == []


class TestListing:
    @pytest.fixture
    def populated(self, knowledge_base):
        knowledge_base.append(make_exemplar(mode=ONLINE, minutes=0, id="e1"))
        knowledge_base.append(make_exemplar(mode=OFFLINE, minutes=1, id="e2", source="retrieval"))
        knowledge_base.append(make_exemplar(mode=ONLINE, outcome=ERROR, minutes=2, id="e3", response=None,
                                            error_reason="timeout"))
        knowledge_base.append(make_exemplar(mode=DUMMY, minutes=3, id="e4", source="template"))
        return knowledge_base

    def test_list_newest_first(self, populated):
        assert [e.id for e in populated.list()] == ["e4", "e3", "e2", "e1"]

    def test_list_paging(self, populated):
        assert [e.id for e in populated.list(offset=1, limit=2)] == ["e3", "e2"]

    def test_list_filters(self, populated):
        assert [e.id for e in populated.list(mode=ONLINE)] == ["e3", "e1"]
        assert [e.id for e in populated.list(mode=ONLINE, outcome=SUCCESS)] == ["e1"]

    def test_count(self, populated):
        assert populated.count() == 4
        assert populated.count(outcome=ERROR) == 1
        assert populated.count(mode=DUMMY) == 1

    def test_since(self, populated):
        after = populated.since(BASE_TIME + timedelta(seconds=30))
        assert [e.id for e in after] == ["e2", "e3", "e4"]
        assert [e.id for e in populated.since(None, mode=OFFLINE)] == ["e2"]
        assert [e.id for e in populated.since(None, limit=2)] == ["e1", "e2"]

    def test_latest(self, populated):
        assert populated.latest().id == "e4"
        assert populated.latest(mode=OFFLINE).id == "e2"

    def test_latest_on_empty_store(self, knowledge_base):
        assert knowledge_base.latest() is None

    def test_stats(self, populated):
        stats = populated.get_stats()
        assert stats["exemplars"] == 4
        assert stats["indexed"] == 4
        assert stats["vector_store"] == "SimpleInMemoryVectorStore"


class TestRebuildIndex:
    def test_rebuild_from_sqlite(self, tmp_path):
        db_path = str(tmp_path / "kb.db")
        writer = KnowledgeBase(db_path=db_path, vector_store=SimpleInMemoryVectorStore())
        for i in range(5):
            writer.append(make_exemplar(embedding=(1.0, float(i), 0.0)))
        writer.append(make_exemplar(embedding=()))

        # A fresh process starts with an empty index
        reader = KnowledgeBase(db_path=db_path, vector_store=SimpleInMemoryVectorStore())
        assert len(reader.vector_store) == 0

        assert reader.rebuild_index(batch_size=2) == 5
        assert len(reader.vector_store) == 5
        assert list(reader.query_by_embedding([1.0, 0.0, 0.0], 1))

    def test_rebuild_is_idempotent(self, knowledge_base):
        knowledge_base.append(make_exemplar())
        knowledge_base.rebuild_index()
        knowledge_base.rebuild_index()
        assert len(knowledge_base.vector_store) == 1
