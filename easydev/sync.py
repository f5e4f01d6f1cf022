# File: easydev/sync.py
"""
EasyDev - Relation Synchronizer
================================
Rewrites the managed relation block of every generated model so it matches
the relation graph.

A managed block is delimited by two sentinel comment lines::

    # <easydev:relations>
    comments: Mapped[List["Comment"]] = relationship("Comment", back_populates="post")
    # </easydev:relations>

Only the lines between the markers are ever replaced.  Accessors are
emitted in ``RelationGraph.edges_for`` order (related entity name, then
accessor), so running ``sync`` twice without graph changes writes nothing
the second time.  CRLF files are matched on normalised lines and keep
their line endings.

Per-file outcomes are collected in a ``SyncReport``: one broken file never
stops the others from being synchronized.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Set

from easydev.errors import (
    EasyDevError,
    FileConflictError,
    MissingMarkerError,
    RelationConflictError,
    TemplateError,
)
from easydev.models import ArtifactManifest, GeneratedArtifact, RelationKind
from easydev.relations import RelationEdge, RelationGraph
from easydev.templates import TemplateRenderer
from easydev.utils import read_file, sha256_hex, write_file

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("easydev.sync")

# ---------------------------------------------------------------------------
# Managed block markers
# ---------------------------------------------------------------------------

RELATIONS_START: str = "# <easydev:relations>"
RELATIONS_END: str = "# </easydev:relations>"

_MODEL_INDENT: str = "    "


# ---------------------------------------------------------------------------
# Block rendering
# ---------------------------------------------------------------------------


def relation_template_key(edge: RelationEdge) -> str:
    """Template key for one accessor shape."""
    if edge.kind == RelationKind.ONE_TO_ONE and not edge.holds_foreign_key:
        return "relation.one_to_one_owner"
    return f"relation.{edge.kind.value}"


def relation_bindings(edge: RelationEdge) -> Dict[str, str]:
    return {
        "accessor": edge.accessor,
        "related_class": edge.related,
        "related_table": edge.related_table,
        "back_populates": edge.back_populates,
        "foreign_key": edge.foreign_key_column,
        "pivot_table": edge.pivot_table or "",
    }


def render_block_body(
    renderer: TemplateRenderer,
    edges: Sequence[RelationEdge],
    indent: str = _MODEL_INDENT,
) -> List[str]:
    """Indented lines that belong between the markers for *edges*."""
    lines: List[str] = []
    for edge in edges:
        text: str = renderer.render(relation_template_key(edge), relation_bindings(edge))
        lines.extend(indent + line if line.strip() else "" for line in text.strip("\n").split("\n"))
    return lines


def render_relation_block(
    renderer: TemplateRenderer,
    edges: Sequence[RelationEdge],
    indent: str = _MODEL_INDENT,
) -> str:
    """Complete block including both markers."""
    lines: List[str] = [indent + RELATIONS_START]
    lines.extend(render_block_body(renderer, edges, indent))
    lines.append(indent + RELATIONS_END)
    return "\n".join(lines)


def block_hash(body: Sequence[str]) -> str:
    """Hash of the lines between the markers."""
    return sha256_hex("\n".join(body))


@dataclass(frozen=True, slots=True)
class ManagedBlock:
    """Location of a managed block inside a file split on ``\\n``."""

    start: int
    end: int
    indent: str
    body: List[str]


def find_managed_block(content: str) -> Optional[ManagedBlock]:
    """
    Locate the first complete marker pair.  Returns None when either marker
    is missing or they appear out of order.
    """
    lines: List[str] = content.split("\n")
    start: Optional[int] = None
    for idx, line in enumerate(lines):
        stripped: str = line.strip()
        if start is None and stripped == RELATIONS_START:
            start = idx
        elif start is not None and stripped == RELATIONS_END:
            marker: str = lines[start]
            indent: str = marker[: len(marker) - len(marker.lstrip())]
            return ManagedBlock(start=start, end=idx, indent=indent, body=lines[start + 1: idx])
    return None


def replace_block_body(content: str, block: ManagedBlock, body: Sequence[str]) -> str:
    lines: List[str] = content.split("\n")
    return "\n".join(lines[: block.start + 1] + list(body) + lines[block.end:])


# ---------------------------------------------------------------------------
# Report
# ---------------------------------------------------------------------------


@dataclass(frozen=False, slots=True)
class SyncReport:
    """Outcome of one ``RelationSynchronizer.sync`` run."""

    dry_run: bool = False
    updated: List[GeneratedArtifact] = field(default_factory=list)
    unchanged: List[str] = field(default_factory=list)
    skipped_entities: List[str] = field(default_factory=list)
    missing_files: List[str] = field(default_factory=list)
    conflicts: List[FileConflictError] = field(default_factory=list)
    relation_conflicts: List[RelationConflictError] = field(default_factory=list)
    missing_markers: List[MissingMarkerError] = field(default_factory=list)
    template_errors: List[TemplateError] = field(default_factory=list)

    @property
    def errors(self) -> List[EasyDevError]:
        return [
            *self.conflicts,
            *self.relation_conflicts,
            *self.missing_markers,
            *self.template_errors,
        ]

    @property
    def success(self) -> bool:
        return not self.errors

    def raise_for_errors(self) -> None:
        """Raise the first collected error, conflicts first."""
        if self.errors:
            raise self.errors[0]

    def summary(self) -> str:
        """Return a human-readable summary string."""
        status: str = "✅ SUCCESS" if self.success else "❌ FAILED"
        lines: List[str] = [
            f"{'=' * 60}",
            "  easydev — Relation Sync Report" + ("  (dry run)" if self.dry_run else ""),
            f"{'=' * 60}",
            f"  Status:           {status}",
            f"  Updated models:   {len(self.updated)}",
            f"  Unchanged models: {len(self.unchanged)}",
        ]
        for artifact in self.updated:
            lines.append(f"    ✓ {artifact.path}")
        if self.skipped_entities:
            lines.append(f"{'─' * 60}")
            lines.append(f"  Entities without a model ({len(self.skipped_entities)}):")
            lines.extend(f"    ⊘ {name}" for name in self.skipped_entities)
        if self.missing_files:
            lines.append(f"{'─' * 60}")
            lines.append(f"  Missing model files ({len(self.missing_files)}):")
            lines.extend(f"    ⚠ {path}" for path in self.missing_files)
        if self.errors:
            lines.append(f"{'─' * 60}")
            lines.append(f"  Errors ({len(self.errors)}):")
            lines.extend(f"    ✗ {err.kind}: {err}" for err in self.errors)
        lines.append(f"{'=' * 60}")
        return "\n".join(lines)


# ---------------------------------------------------------------------------
# RelationSynchronizer class
# ---------------------------------------------------------------------------


class RelationSynchronizer:
    """
    Applies the relation graph to generated model files.

    Usage::

        syncer = RelationSynchronizer(project_root, manifest, renderer)
        report = syncer.sync(graph)

    The manifest is updated in place for every file written; persisting it
    is the caller's job (see ``ProjectState``).
    """

    def __init__(
        self,
        project_root: Path,
        manifest: ArtifactManifest,
        renderer: TemplateRenderer,
    ) -> None:
        self._root: Path = project_root
        self._manifest: ArtifactManifest = manifest
        self._renderer: TemplateRenderer = renderer

    def sync(
        self,
        graph: RelationGraph,
        *,
        force: bool = False,
        dry_run: bool = False,
        entities: Optional[Iterable[str]] = None,
    ) -> SyncReport:
        """
        Bring every generated model's managed block in line with *graph*.

        Args:
            graph: Current relation graph.
            force: Overwrite managed blocks that were edited by hand.
            dry_run: Compute the outcome without writing anything.
            entities: Restrict the run to these entities.
        """
        report: SyncReport = SyncReport(dry_run=dry_run)
        wanted: Optional[Set[str]] = set(entities) if entities is not None else None

        generated: Set[str] = self._manifest.entities()
        report.skipped_entities = [
            name for name in graph.entities()
            if name not in generated and (wanted is None or name in wanted)
        ]
        for name in report.skipped_entities:
            logger.info("Entity '%s' has relations but no generated model; skipped.", name)

        for artifact in self._manifest.models():
            if wanted is not None and artifact.entity not in wanted:
                continue
            self._sync_model(artifact, graph.edges_for(artifact.entity), force, dry_run, report)

        logger.info(
            "Sync finished: %d updated, %d unchanged, %d error(s).",
            len(report.updated), len(report.unchanged), len(report.errors),
        )
        return report

    def _sync_model(
        self,
        artifact: GeneratedArtifact,
        edges: Sequence[RelationEdge],
        force: bool,
        dry_run: bool,
        report: SyncReport,
    ) -> None:
        path: Path = self._root / artifact.path
        if not path.is_file():
            logger.warning("Model file for '%s' is missing: %s", artifact.entity, artifact.path)
            report.missing_files.append(artifact.path)
            return

        taken: Set[str] = set(artifact.fields)
        for edge in edges:
            clash: List[str] = [name for name in edge.attribute_names if name in taken]
            if clash:
                logger.error("Relation %s redeclares field '%s' of %s", edge.declared, clash[0], artifact.path)
                report.relation_conflicts.append(
                    RelationConflictError(
                        f"relation '{edge.declared}' would give {artifact.entity} a "
                        f"'{clash[0]}' attribute, which is already a field of {artifact.entity}",
                        attempted=edge.declared,
                    )
                )
                return

        raw: str = read_file(path)
        newline: str = "\r\n" if "\r\n" in raw else "\n"
        content: str = raw.replace("\r\n", "\n")
        block: Optional[ManagedBlock] = find_managed_block(content)
        if block is None:
            logger.error("No relation markers in %s", artifact.path)
            report.missing_markers.append(MissingMarkerError(artifact.path, artifact.entity))
            return

        try:
            expected: List[str] = render_block_body(self._renderer, edges, block.indent)
        except TemplateError as exc:
            logger.error("Cannot render relations of %s: %s", artifact.path, exc)
            report.template_errors.append(exc)
            return

        if expected == block.body:
            logger.debug("Relations of '%s' already up to date.", artifact.entity)
            report.unchanged.append(artifact.path)
            return

        if (
            artifact.block_hash is not None
            and block_hash(block.body) != artifact.block_hash
            and not force
        ):
            logger.error("Managed block of %s was edited by hand.", artifact.path)
            report.conflicts.append(
                FileConflictError(artifact.path, "managed relation block modified since last sync")
            )
            return

        new_content: str = replace_block_body(content, block, expected).replace("\n", newline)
        updated: GeneratedArtifact = artifact.model_copy(
            update={"content_hash": sha256_hex(new_content), "block_hash": block_hash(expected)}
        )
        if not dry_run:
            write_file(path, new_content)
            self._manifest.record(updated)
        logger.info("Synchronized relations of '%s' (%d accessor(s)).", artifact.entity, len(edges))
        report.updated.append(updated)


__all__: List[str] = [
    "RELATIONS_START",
    "RELATIONS_END",
    "ManagedBlock",
    "SyncReport",
    "RelationSynchronizer",
    "block_hash",
    "find_managed_block",
    "relation_bindings",
    "relation_template_key",
    "render_block_body",
    "render_relation_block",
    "replace_block_body",
]
