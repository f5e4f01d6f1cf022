# File: easydev/state.py
"""
EasyDev - Persisted Project State
==================================
Everything the tool remembers between invocations lives in
``<project>/.easydev/``:

    relations.jsonl   declared relations, one JSON object per line
    artifacts.json    manifest of generated files and their hashes
    state.lock        advisory lock file

Every mutating command runs inside ``ProjectState.transaction()``::

    state = ProjectState(root, lock_timeout=10.0)
    with state.transaction() as session:
        session.graph.add_relation(spec)

The transaction holds the lock for the whole read-modify-write, so two
concurrent declarations are serialized and both persist.  On normal exit the
graph and manifest are written back (atomically, each only when it
changed); when the body raises nothing is written.
"""

from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List

from pydantic import ValidationError as PydanticValidationError

from easydev.errors import StateError
from easydev.locking import FileLock
from easydev.models import ArtifactManifest
from easydev.relations import RelationGraph
from easydev.utils import read_file, write_file

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("easydev.state")

# ---------------------------------------------------------------------------
# Layout
# ---------------------------------------------------------------------------

STATE_DIRNAME: str = ".easydev"
RELATIONS_FILENAME: str = "relations.jsonl"
MANIFEST_FILENAME: str = "artifacts.json"
LOCK_FILENAME: str = "state.lock"


@dataclass(frozen=False, slots=True)
class StateSession:
    """Graph and manifest loaded inside one transaction."""

    graph: RelationGraph
    manifest: ArtifactManifest


class ProjectState:
    """
    Locked access to the ``.easydev`` state directory of one project.

    Args:
        project_root: Root of the host project.
        lock_timeout: Seconds to wait for a concurrent easydev process.
    """

    def __init__(self, project_root: Path, lock_timeout: float = 10.0) -> None:
        self.project_root: Path = project_root
        self.lock_timeout: float = lock_timeout

    # -----------------------------------------------------------------
    # Paths
    # -----------------------------------------------------------------

    @property
    def state_dir(self) -> Path:
        return self.project_root / STATE_DIRNAME

    @property
    def relations_path(self) -> Path:
        return self.state_dir / RELATIONS_FILENAME

    @property
    def manifest_path(self) -> Path:
        return self.state_dir / MANIFEST_FILENAME

    @property
    def lock_path(self) -> Path:
        return self.state_dir / LOCK_FILENAME

    # -----------------------------------------------------------------
    # Reading
    # -----------------------------------------------------------------

    def _read_graph(self) -> RelationGraph:
        path: Path = self.relations_path
        if not path.is_file():
            return RelationGraph()
        return RelationGraph.loads(read_file(path), source=str(path))

    def _read_manifest(self) -> ArtifactManifest:
        path: Path = self.manifest_path
        if not path.is_file():
            return ArtifactManifest()
        try:
            data = json.loads(read_file(path))
        except json.JSONDecodeError as exc:
            raise StateError(str(path), f"invalid JSON: {exc.msg}") from exc
        if not isinstance(data, dict):
            raise StateError(str(path), "expected a JSON object at top level")
        try:
            return ArtifactManifest.model_validate(data)
        except PydanticValidationError as exc:
            raise StateError(str(path), f"invalid manifest: {exc}") from exc

    def load(self) -> StateSession:
        """
        Read the current state without taking the lock.  Used by read-only
        commands; writes are atomic renames, so a reader never sees a torn
        file.
        """
        return StateSession(graph=self._read_graph(), manifest=self._read_manifest())

    # -----------------------------------------------------------------
    # Writing
    # -----------------------------------------------------------------

    @staticmethod
    def _dump_manifest(manifest: ArtifactManifest) -> str:
        data = manifest.model_dump(mode="json", by_alias=True)
        return json.dumps(data, indent=2, sort_keys=True) + "\n"

    @contextmanager
    def transaction(self) -> Iterator[StateSession]:
        """
        Lock, load, yield, and persist what changed.

        Raises:
            LockTimeoutError: another process holds the lock too long.
            StateError: persisted state cannot be read.
        """
        with FileLock(self.lock_path, timeout=self.lock_timeout):
            session: StateSession = self.load()
            graph_before: str = session.graph.dumps()
            manifest_before: str = self._dump_manifest(session.manifest)

            yield session

            graph_after: str = session.graph.dumps()
            if graph_after != graph_before:
                write_file(self.relations_path, graph_after)
                logger.info("Saved %d relation(s) to %s", len(session.graph), self.relations_path)

            manifest_after: str = self._dump_manifest(session.manifest)
            if manifest_after != manifest_before:
                write_file(self.manifest_path, manifest_after)
                logger.info(
                    "Saved manifest (%d artifact(s)) to %s",
                    len(session.manifest.artifacts), self.manifest_path,
                )


__all__: List[str] = [
    "STATE_DIRNAME",
    "RELATIONS_FILENAME",
    "MANIFEST_FILENAME",
    "LOCK_FILENAME",
    "StateSession",
    "ProjectState",
]
