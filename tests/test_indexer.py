"""Tests for the batch session indexer."""

import threading

import pytest
from filelock import FileLock

from claude_session_index.exceptions import (
    EmbeddingDimensionError,
    EmbeddingServiceUnavailable,
    IndexRunLockedError,
    SchemaError,
)
from claude_session_index.indexer import PREFLIGHT_TEXT, SessionIndexer, run_lock
from claude_session_index.loader import load_session_meta_by_id
from claude_session_index.models import SummaryResult
from conftest import PROJECT_NAME, FakeEmbedder, assistant_entry, user_entry


@pytest.fixture
def lock_path(tmp_path):
    return tmp_path / "locks" / "index-run.lock"


@pytest.fixture
def indexer(fake_store, fake_embedder, fake_summarizer, lock_path):
    return SessionIndexer(fake_store, fake_embedder, fake_summarizer, lock_path=lock_path)


class TestRunLock:
    """Tests for the host-wide run lock."""

    def test_acquire_and_release(self, lock_path):
        with run_lock(lock_path):
            assert lock_path.exists()
        with run_lock(lock_path):
            pass

    def test_contention(self, lock_path):
        lock_path.parent.mkdir(parents=True)
        with FileLock(lock_path):
            with pytest.raises(IndexRunLockedError) as exc_info:
                with run_lock(lock_path):
                    pass
        assert exc_info.value.lock_path == str(lock_path)


class TestPreflight:
    """Tests for failures that abort a whole run."""

    def test_embedding_unavailable_aborts(
        self, make_session, conversation, fake_store, fake_summarizer, lock_path
    ):
        make_session("session-001", conversation(2))
        indexer = SessionIndexer(
            fake_store, FakeEmbedder(available=False), fake_summarizer, lock_path=lock_path
        )
        with pytest.raises(EmbeddingServiceUnavailable):
            indexer.run()
        assert fake_store.records == []
        assert fake_summarizer.calls == []

    def test_schema_error_aborts(self, make_session, conversation, fake_store, indexer):
        make_session("session-001", conversation(2))
        fake_store.schema_error = SchemaError("Failed to create session_chunks")
        with pytest.raises(SchemaError):
            indexer.run()
        assert fake_store.records == []

    def test_dimension_mismatch_aborts_before_sessions(
        self, make_session, conversation, fake_store, fake_summarizer, lock_path
    ):
        """An embedder producing vectors the store cannot hold stops the run at preflight."""
        make_session("session-001", conversation(2))
        indexer = SessionIndexer(
            fake_store, FakeEmbedder(dimensions=384), fake_summarizer, lock_path=lock_path
        )
        with pytest.raises(EmbeddingDimensionError) as exc_info:
            indexer.run()
        assert exc_info.value.expected == 768
        assert exc_info.value.actual == 384
        assert fake_store.records == []
        assert fake_summarizer.calls == []

    def test_dimension_error_during_run_is_fatal(
        self, make_session, conversation, fake_store, fake_summarizer, lock_path
    ):
        """A dimension mismatch while indexing aborts instead of failing each session."""

        class DriftingEmbedder(FakeEmbedder):
            def embed(self, text):
                if text == PREFLIGHT_TEXT:
                    return super().embed(text)
                raise EmbeddingDimensionError(768, 384)

        for i in range(3):
            make_session(f"session-00{i}", conversation(2))
        indexer = SessionIndexer(
            fake_store, DriftingEmbedder(), fake_summarizer, lock_path=lock_path
        )
        with pytest.raises(EmbeddingDimensionError):
            indexer.run()
        assert fake_store.records == []
        assert len(fake_summarizer.calls) == 1


class TestRun:
    """Tests for SessionIndexer.run."""

    def test_no_sessions(self, mock_claude_dir, fake_store, indexer):
        stats = indexer.run()
        assert stats.processed == 0
        assert stats.skipped == 0
        assert stats.errors == 0
        assert fake_store.schema_calls == 1
        assert fake_store.rebuild_calls == 1

    def test_twelve_turn_session(self, make_session, conversation, fake_store, indexer):
        make_session("session-001", conversation(12))
        stats = indexer.run()

        assert stats.processed == 1
        assert stats.chunks_inserted == 3
        records = fake_store.records
        assert [r.chunk_index for r in records] == [0, 1, 2]
        assert {r.session_id for r in records} == {"session-001"}
        assert {r.project for r in records} == {"/Users/test/myproject"}
        assert {r.token_count for r in records} == {1500}
        assert records[0].tools_used == ["Read"]
        assert records[0].summary.startswith("Summary: User: Question 0")
        assert records[0].raw_excerpt.startswith("User: Question 0")

    def test_summary_is_what_gets_embedded(
        self, make_session, conversation, fake_embedder, fake_store, indexer
    ):
        make_session("session-001", conversation(2))
        indexer.run()
        assert fake_embedder.embedded == [PREFLIGHT_TEXT, fake_store.records[0].summary]

    def test_second_run_is_idempotent(self, make_session, conversation, fake_store, indexer):
        """A second run skips every session indexed by the first."""
        make_session("session-001", conversation(3))
        make_session("session-002", conversation(7))

        first = indexer.run()
        assert first.processed == 2
        assert len(fake_store.records) == 3

        second = indexer.run()
        assert second.processed == 0
        assert second.skipped == 2
        assert len(fake_store.records) == 3

    def test_force_reindexes(self, make_session, conversation, fake_store, indexer):
        """force ignores existing records and appends a duplicate set."""
        make_session("session-001", conversation(3))
        indexer.run()
        stats = indexer.run(force=True)
        assert stats.processed == 1
        assert len(fake_store.records) == 2

    def test_subagent_sessions_skipped(self, make_session, conversation, fake_store, indexer):
        make_session("agent-explore", conversation(2))
        make_session("session-001", conversation(2))
        stats = indexer.run()
        assert stats.skipped == 1
        assert stats.processed == 1
        assert {r.session_id for r in fake_store.records} == {"session-001"}

    def test_meta_only_session(self, make_session, fake_store, fake_summarizer, indexer):
        """A session with metadata but no log is indexed from metadata alone."""
        make_session("session-001", summary="Refactored the auth module")
        stats = indexer.run()

        assert stats.processed == 1
        assert fake_summarizer.calls == []
        record = fake_store.records[0]
        assert record.chunk_index == 0
        assert record.summary.startswith("Session: Refactored the auth module.")
        assert record.summary == record.raw_excerpt
        assert record.tools_used == ["Read", "Edit"]

    def test_empty_log_skipped(self, make_session, fake_store, indexer):
        make_session("session-001", [{"type": "summary", "summary": "nothing here"}])
        stats = indexer.run()
        assert stats.skipped == 1
        assert stats.processed == 0
        assert fake_store.records == []

    def test_failing_session_does_not_stop_run(
        self, make_session, conversation, fake_store, fake_summarizer, lock_path
    ):
        make_session("session-001", conversation(2, prefix="BROKEN"))
        make_session("session-002", conversation(2))
        indexer = SessionIndexer(
            fake_store, FakeEmbedder(fail_marker="BROKEN"), fake_summarizer, lock_path=lock_path
        )
        stats = indexer.run()

        assert stats.errors == 1
        assert stats.processed == 1
        assert {r.session_id for r in fake_store.records} == {"session-002"}

    def test_invalid_utf8_line_keeps_session(
        self, make_session, mock_claude_dir, conversation, fake_store, indexer
    ):
        """One undecodable byte in a log does not cost the session its valid turns."""
        make_session("session-001", conversation(2))
        log = mock_claude_dir / "projects" / PROJECT_NAME / "session-001.jsonl"
        with open(log, "ab") as f:
            f.write(b'{"type": "user", "message": {"role": "user", "content": "caf\xe9"}}\n')

        stats = indexer.run()

        assert stats.errors == 0
        assert stats.processed == 1
        assert len(fake_store.records) == 1

    def test_unreadable_meta_counted_as_error(
        self, make_session, mock_claude_dir, conversation, indexer
    ):
        (mock_claude_dir / "usage-data" / "session-meta" / "broken.json").write_text("{oops")
        make_session("session-001", conversation(1))
        stats = indexer.run()
        assert stats.errors == 1
        assert stats.processed == 1

    def test_max_sessions(self, make_session, conversation, fake_store, indexer):
        for i in range(4):
            make_session(f"session-00{i}", conversation(1))
        stats = indexer.run(max_sessions=2)
        assert stats.processed == 2
        assert {r.session_id for r in fake_store.records} == {"session-000", "session-001"}

    def test_skipped_sessions_do_not_count_toward_limit(
        self, make_session, conversation, fake_store, indexer
    ):
        make_session("agent-a", conversation(1))
        make_session("agent-b", conversation(1))
        make_session("session-001", conversation(1))
        stats = indexer.run(max_sessions=1)
        assert stats.processed == 1
        assert stats.skipped == 2

    def test_stop_event_before_start(self, make_session, conversation, fake_store, indexer):
        make_session("session-001", conversation(2))
        indexer.stop_event.set()
        stats = indexer.run()

        assert stats.interrupted is True
        assert stats.processed == 0
        assert fake_store.records == []
        assert fake_store.rebuild_calls == 1

    def test_stop_event_mid_session(
        self, make_session, conversation, fake_store, fake_embedder, lock_path
    ):
        """The run stops after the current chunk and still rebuilds the index."""
        make_session("session-001", conversation(12))
        make_session("session-002", conversation(2))
        stop_event = threading.Event()

        class StoppingSummarizer:
            def summarize(self, text, fallback=None):
                stop_event.set()
                return SummaryResult(text=text[:50])

        indexer = SessionIndexer(
            fake_store,
            fake_embedder,
            StoppingSummarizer(),
            lock_path=lock_path,
            stop_event=stop_event,
        )
        stats = indexer.run()

        assert stats.interrupted is True
        assert stats.processed == 1
        assert len(fake_store.records) == 1
        assert fake_store.rebuild_calls == 1


class TestIndexSession:
    """Tests for indexing a single session."""

    def test_returns_inserted_count(self, make_session, fake_store, indexer):
        make_session(
            "session-001",
            [
                user_entry("Read the config"),
                assistant_entry("Reading", tools=[("t1", "Read")]),
                user_entry("Now edit it"),
                assistant_entry("Editing", tools=[("t2", "Edit")]),
            ],
        )
        inserted = indexer.index_session(load_session_meta_by_id("session-001"))
        assert inserted == 1
        assert fake_store.records[0].tools_used == ["Read", "Edit"]

    def test_missing_log_uses_metadata(self, make_session, fake_store, indexer):
        make_session("session-001", first_prompt="Add JWT auth")
        assert indexer.index_session(load_session_meta_by_id("session-001")) == 1
        assert fake_store.records[0].summary.startswith("Session: Add JWT auth.")
