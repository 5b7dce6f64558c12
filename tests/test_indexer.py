"""Store-backed tests for dataroom.tree.indexer — Hierarchical index persistence."""

from contextlib import contextmanager

import pytest
from sqlalchemy.exc import OperationalError

import dataroom.tree.indexer as indexer_mod
from dataroom.engine.errors import DataroomIndexingError, DataroomNotFoundError
from dataroom.tree.indexer import (
    INDEXING_FAILED_MESSAGE,
    HierarchicalIndexer,
    IndexResult,
    is_retryable_error,
    recompute_hierarchical_indexes,
)


class _SerializationFailure(Exception):
    pgcode = "40001"


def serialization_error():
    return OperationalError("UPDATE dataroom_folders", {}, _SerializationFailure("could not serialize access"))


class TestRecompute:
    def test_root_documents_and_folders(self, tree, session_factory):
        dr = tree.dataroom()
        finance = tree.folder(dr, "Finance")
        legal = tree.folder(dr, "Legal")
        memo = tree.place(dr, "Memo.pdf", order_index=1)

        result = recompute_hierarchical_indexes(dr, session_factory=session_factory)

        assert result == IndexResult(folders_updated=2, documents_updated=1)
        assert tree.get_placement(memo)["hierarchical_index"] == "1"
        assert tree.get_folder(finance)["hierarchical_index"] == "2"
        assert tree.get_folder(legal)["hierarchical_index"] == "3"

    def test_nested_order_index(self, tree, session_factory):
        dr = tree.dataroom()
        a = tree.folder(dr, "A")
        x = tree.folder(dr, "X", parent=a, order_index=2)
        y = tree.folder(dr, "Y", parent=a, order_index=1)

        HierarchicalIndexer(session_factory=session_factory).recompute(dr)

        assert tree.get_folder(a)["hierarchical_index"] == "1"
        assert tree.get_folder(y)["hierarchical_index"] == "1.1"
        assert tree.get_folder(x)["hierarchical_index"] == "1.2"

    def test_placements_inside_folders(self, tree, session_factory):
        dr = tree.dataroom()
        a = tree.folder(dr, "A")
        inner = tree.place(dr, "Inner.pdf", folder_id=a)
        sub = tree.folder(dr, "Sub", parent=a, order_index=0)

        HierarchicalIndexer(session_factory=session_factory).recompute(dr)

        assert tree.get_folder(sub)["hierarchical_index"] == "1.1"
        assert tree.get_placement(inner)["hierarchical_index"] == "1.2"

    def test_idempotent(self, tree, session_factory):
        dr = tree.dataroom()
        a = tree.folder(dr, "A")
        tree.folder(dr, "B", parent=a)
        tree.place(dr, "Doc", folder_id=a)
        indexer = HierarchicalIndexer(session_factory=session_factory)

        indexer.recompute(dr)
        first = {f["id"]: f["hierarchical_index"] for f in tree.folders(dr)}
        first.update({p["id"]: p["hierarchical_index"] for p in tree.placements(dr)})
        indexer.recompute(dr)
        second = {f["id"]: f["hierarchical_index"] for f in tree.folders(dr)}
        second.update({p["id"]: p["hierarchical_index"] for p in tree.placements(dr)})

        assert first == second

    def test_stale_indexes_are_overwritten(self, tree, session_factory):
        dr = tree.dataroom()
        f = tree.folder(dr, "Only", hierarchical_index="7.3")
        HierarchicalIndexer(session_factory=session_factory).recompute(dr)
        assert tree.get_folder(f)["hierarchical_index"] == "1"

    def test_other_datarooms_untouched(self, tree, session_factory):
        dr = tree.dataroom()
        other = tree.dataroom("Other")
        tree.folder(dr, "A")
        foreign = tree.folder(other, "B", hierarchical_index="42")

        HierarchicalIndexer(session_factory=session_factory).recompute(dr)

        assert tree.get_folder(foreign)["hierarchical_index"] == "42"

    def test_small_batches_cover_every_row(self, tree, session_factory):
        dr = tree.dataroom()
        ids = [tree.folder(dr, f"Folder {i}") for i in range(7)]
        result = HierarchicalIndexer(session_factory=session_factory, batch_size=3).recompute(dr)

        assert result.folders_updated == 7
        assert sorted(tree.get_folder(i)["hierarchical_index"] for i in ids) == [str(n) for n in range(1, 8)]

    def test_empty_dataroom(self, tree, session_factory):
        dr = tree.dataroom()
        result = HierarchicalIndexer(session_factory=session_factory).recompute(dr)
        assert result.to_dict() == {"folders_updated": 0, "documents_updated": 0}

    def test_unknown_dataroom(self, session_factory):
        with pytest.raises(DataroomNotFoundError):
            HierarchicalIndexer(session_factory=session_factory).recompute("missing")


class TestFailureHandling:
    def test_failure_mid_batch_rolls_back(self, tree, session_factory, monkeypatch):
        dr = tree.dataroom()
        ids = [tree.folder(dr, name, hierarchical_index="old") for name in ("A", "B", "C")]

        def broken_chunks(rows, size):
            yield rows[:1]
            raise RuntimeError("connection lost")

        monkeypatch.setattr(indexer_mod, "_chunks", broken_chunks)
        indexer = HierarchicalIndexer(session_factory=session_factory, batch_size=1)

        with pytest.raises(DataroomIndexingError) as exc_info:
            indexer.recompute(dr)

        assert exc_info.value.message == INDEXING_FAILED_MESSAGE
        assert exc_info.value.attempts == 1
        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert [tree.get_folder(i)["hierarchical_index"] for i in ids] == ["old", "old", "old"]

    def test_retries_serialization_failure(self, tree, session_factory, monkeypatch):
        dr = tree.dataroom()
        f = tree.folder(dr, "A")
        original = HierarchicalIndexer.recompute_in_session
        calls = []

        def flaky(self, session, dataroom_id, lock=True):
            calls.append(dataroom_id)
            if len(calls) == 1:
                raise serialization_error()
            return original(self, session, dataroom_id, lock=lock)

        monkeypatch.setattr(HierarchicalIndexer, "recompute_in_session", flaky)
        sleeps = []
        indexer = HierarchicalIndexer(
            session_factory=session_factory, retry_delay=0.01, backoff="exponential", sleep=sleeps.append,
        )

        result = indexer.recompute(dr)

        assert result.folders_updated == 1
        assert len(calls) == 2
        assert sleeps == [0.01]
        assert tree.get_folder(f)["hierarchical_index"] == "1"

    def test_gives_up_after_max_retries(self, tree, session_factory, monkeypatch):
        dr = tree.dataroom()

        def always_conflict(self, session, dataroom_id, lock=True):
            raise serialization_error()

        monkeypatch.setattr(HierarchicalIndexer, "recompute_in_session", always_conflict)
        sleeps = []
        indexer = HierarchicalIndexer(
            session_factory=session_factory, max_retries=2, retry_delay=0.5, backoff="linear",
            sleep=sleeps.append,
        )

        with pytest.raises(DataroomIndexingError) as exc_info:
            indexer.recompute(dr)

        assert exc_info.value.attempts == 3
        assert sleeps == [0.5, 1.0]

    def test_snapshot_opens_while_dataroom_lock_is_held(self, tree, session_factory, monkeypatch):
        dr = tree.dataroom()
        tree.folder(dr, "A")
        events = []
        original = HierarchicalIndexer.recompute_in_session

        @contextmanager
        def recording_lock(engine, dataroom_id):
            events.append(("lock", dataroom_id))
            try:
                yield True
            finally:
                events.append(("unlock", dataroom_id))

        def reading(self, session, dataroom_id, lock=True):
            events.append(("read", lock))
            return original(self, session, dataroom_id, lock=lock)

        monkeypatch.setattr(indexer_mod, "hold_dataroom_lock", recording_lock)
        monkeypatch.setattr(HierarchicalIndexer, "recompute_in_session", reading)

        HierarchicalIndexer(session_factory=session_factory).recompute(dr)

        assert events == [("lock", dr), ("read", False), ("unlock", dr)]

    def test_lock_released_before_retry_sleep(self, tree, session_factory, monkeypatch):
        dr = tree.dataroom()
        events = []
        original = HierarchicalIndexer.recompute_in_session

        @contextmanager
        def recording_lock(engine, dataroom_id):
            events.append("lock")
            try:
                yield True
            finally:
                events.append("unlock")

        def flaky(self, session, dataroom_id, lock=True):
            if "read" not in events:
                events.append("read")
                raise serialization_error()
            return original(self, session, dataroom_id, lock=lock)

        monkeypatch.setattr(indexer_mod, "hold_dataroom_lock", recording_lock)
        monkeypatch.setattr(HierarchicalIndexer, "recompute_in_session", flaky)
        indexer = HierarchicalIndexer(
            session_factory=session_factory, retry_delay=0.01, sleep=lambda _: events.append("sleep"),
        )

        indexer.recompute(dr)

        assert events == ["lock", "read", "unlock", "sleep", "lock", "unlock"]


class TestRetryHelpers:
    def test_sqlstate_is_retryable(self):
        assert is_retryable_error(serialization_error())

    def test_sqlite_lock_is_retryable(self):
        assert is_retryable_error(OperationalError("UPDATE", {}, Exception("database is locked")))

    def test_other_errors_are_not(self):
        assert not is_retryable_error(RuntimeError("boom"))
        assert not is_retryable_error(OperationalError("UPDATE", {}, Exception("no such table")))

    @pytest.mark.parametrize("backoff,expected", [
        ("exponential", [0.1, 0.2, 0.4]),
        ("linear", [0.1, 0.2, 0.30000000000000004]),
        ("fixed", [0.1, 0.1, 0.1]),
    ])
    def test_calc_delay(self, backoff, expected):
        indexer = HierarchicalIndexer(retry_delay=0.1, backoff=backoff)
        assert [indexer._calc_delay(a) for a in range(3)] == pytest.approx(expected)

    def test_batch_size_from_config(self):
        assert HierarchicalIndexer().batch_size == 200
