"""
tests/test_state.py
Unit tests for easydev.state (ProjectState) and easydev.locking (FileLock).

Tests cover:
- Transactions persist graph and manifest atomically
- Nothing is written when the transaction body raises
- Lock timeout and release on every exit path
- Concurrent declarations are serialized and both persisted
- Unreadable state files raise StateError
"""

from __future__ import annotations

import json
import pathlib
import threading
import time
from typing import List

import pytest

from easydev.errors import LockTimeoutError, RelationConflictError, StateError
from easydev.locking import FileLock
from easydev.models import ArtifactKind, GeneratedArtifact, RelationSpec
from easydev.relations import RelationGraph
from easydev.state import ProjectState


def _artifact(path: str = "app/models/post.py") -> GeneratedArtifact:
    return GeneratedArtifact(
        path=path,
        kind=ArtifactKind.MODEL,
        entity="Post",
        content_hash="a" * 64,
        block_hash="b" * 64,
    )


# ===========================================================================
# FileLock
# ===========================================================================


class TestFileLock:
    def test_context_manager(self, tmp_path: pathlib.Path) -> None:
        lock = FileLock(tmp_path / "state" / "x.lock", timeout=1.0)
        with lock:
            assert lock.is_locked
            assert (tmp_path / "state" / "x.lock").exists()
        assert not lock.is_locked

    def test_double_acquire_is_a_bug(self, tmp_path: pathlib.Path) -> None:
        lock = FileLock(tmp_path / "x.lock")
        with lock:
            with pytest.raises(RuntimeError):
                lock.acquire()

    def test_release_without_acquire(self, tmp_path: pathlib.Path) -> None:
        FileLock(tmp_path / "x.lock").release()

    def test_second_holder_times_out(self, tmp_path: pathlib.Path) -> None:
        path = tmp_path / "x.lock"
        with FileLock(path, timeout=1.0):
            started = time.monotonic()
            with pytest.raises(LockTimeoutError) as exc_info:
                FileLock(path, timeout=0.2, poll_interval=0.02).acquire()
            assert time.monotonic() - started >= 0.2
            assert exc_info.value.timeout == 0.2
        with FileLock(path, timeout=0.2):
            pass


# ===========================================================================
# Transactions
# ===========================================================================


class TestTransaction:
    def test_empty_project_loads_empty_state(self, state: ProjectState) -> None:
        session = state.load()
        assert len(session.graph) == 0
        assert session.manifest.artifacts == {}

    def test_changes_are_persisted(self, state: ProjectState, post_comment: RelationSpec) -> None:
        with state.transaction() as session:
            session.graph.add_relation(post_comment)
            session.manifest.record(_artifact())

        assert state.relations_path.read_text(encoding="utf-8") == (
            '{"from": "Post", "kind": "one_to_many", "to": "Comment"}\n'
        )
        data = json.loads(state.manifest_path.read_text(encoding="utf-8"))
        record = data["artifacts"]["app/models/post.py"]
        assert record["contentHash"] == "a" * 64
        assert record["blockHash"] == "b" * 64

        reloaded = state.load()
        assert post_comment in reloaded.graph
        assert reloaded.manifest.get("app/models/post.py") == _artifact()

    def test_unchanged_state_is_not_rewritten(self, state: ProjectState) -> None:
        with state.transaction():
            pass
        assert not state.relations_path.exists()
        assert not state.manifest_path.exists()

    def test_exception_writes_nothing(self, state: ProjectState, post_comment: RelationSpec) -> None:
        with state.transaction() as session:
            session.graph.add_relation(post_comment)

        with pytest.raises(RelationConflictError):
            with state.transaction() as session:
                session.graph.add_relation(
                    RelationSpec(from_entity="Post", to_entity="Tag", kind="many_to_many")
                )
                session.manifest.record(_artifact())
                session.graph.add_relation(post_comment)

        reloaded = state.load()
        assert reloaded.graph.relations() == [post_comment]
        assert reloaded.manifest.artifacts == {}

    def test_lock_released_after_failure(self, state: ProjectState) -> None:
        with pytest.raises(ValueError):
            with state.transaction():
                raise ValueError("boom")
        with FileLock(state.lock_path, timeout=0.1):
            pass

    def test_transaction_times_out_while_locked(self, project_root: pathlib.Path) -> None:
        state = ProjectState(project_root, lock_timeout=0.1)
        with FileLock(state.lock_path):
            with pytest.raises(LockTimeoutError):
                with state.transaction():
                    pytest.fail("body must not run without the lock")

    def test_concurrent_declarations_both_persist(self, project_root: pathlib.Path) -> None:
        specs = [
            RelationSpec(from_entity="Post", to_entity="Comment", kind="one_to_many"),
            RelationSpec(from_entity="Post", to_entity="Tag", kind="many_to_many"),
        ]
        barrier = threading.Barrier(len(specs))
        errors: List[BaseException] = []

        def declare(spec: RelationSpec) -> None:
            try:
                barrier.wait()
                with ProjectState(project_root, lock_timeout=5.0).transaction() as session:
                    # Widen the read-modify-write window
                    time.sleep(0.05)
                    session.graph.add_relation(spec)
            except BaseException as exc:  # noqa: BLE001
                errors.append(exc)

        threads = [threading.Thread(target=declare, args=(s,)) for s in specs]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10)

        assert errors == []
        text = (project_root / ".easydev" / "relations.jsonl").read_text(encoding="utf-8")
        graph = RelationGraph.loads(text)
        assert set(graph.relations()) == set(specs)
        assert all(json.loads(line) for line in text.splitlines())


# ===========================================================================
# Corrupted state
# ===========================================================================


class TestCorruptedState:
    def test_bad_relations_file(self, state: ProjectState) -> None:
        state.state_dir.mkdir()
        state.relations_path.write_text("{oops\n", encoding="utf-8")
        with pytest.raises(StateError):
            state.load()

    @pytest.mark.parametrize("content", ["not json", "[]", '{"artifacts": {"x": {"path": "x"}}}'])
    def test_bad_manifest(self, state: ProjectState, content: str) -> None:
        state.state_dir.mkdir()
        state.manifest_path.write_text(content, encoding="utf-8")
        with pytest.raises(StateError):
            with state.transaction():
                pass
