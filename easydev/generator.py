# File: easydev/generator.py
"""
EasyDev - CRUD Code Generator
==============================
Turns a ``SchemaDescriptor`` into four source files:

    model       <models>/<module>.py                 SQLAlchemy 2.0 declarative class
    controller  <controllers>/<module>.py            FastAPI router with CRUD endpoints
    migration   <migrations>/create_<table>_table.py Alembic create-table revision
    validator   <validators>/<module>.py             Pydantic V2 Create/Update/Read schemas

File names contain no timestamps, so the same descriptor always targets the
same paths.  Relations already known for the entity are rendered into the
model's managed block and their foreign-key columns into the migration.

Conflict policy (per file, collected into the ``GenerationReport``):
    - destination exists and ``force`` is off: the file is left untouched and
      a ``FileConflictError`` is reported with one of the reasons
      "unchanged since last generation", "modified since last generation"
      or "not tracked";
    - otherwise the file is written atomically and recorded in the manifest.

Many-to-many relations additionally get a pivot table (``generate_pivot``):
an Alembic migration and a ``Table`` module next to the models.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Set, Tuple

from easydev.config import EasyDevConfig
from easydev.errors import EasyDevError, FileConflictError, InvalidRelationError
from easydev.models import (
    ArtifactKind,
    ArtifactManifest,
    FieldSpec,
    FieldType,
    GeneratedArtifact,
    RelationKind,
    RelationSpec,
    SchemaDescriptor,
)
from easydev.relations import RelationEdge, RelationGraph
from easydev.sync import block_hash, render_block_body, render_relation_block
from easydev.templates import TemplateRenderer
from easydev.utils import (
    Timer,
    build_import_block,
    count_lines,
    entity_to_module,
    entity_to_route_prefix,
    entity_to_route_tag,
    entity_to_table,
    indent_lines,
    pivot_table_name,
    python_literal,
    read_file,
    relative_posix,
    sha256_hex,
    write_file,
)

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("easydev.generator")

# ---------------------------------------------------------------------------
# Type mapping
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class _ColumnType:
    sa_type: str
    sa_import: str
    python_type: str
    python_imports: Tuple[Tuple[str, str], ...] = ()

    @property
    def alembic_type(self) -> str:
        if "(" in self.sa_type:
            return f"sa.{self.sa_type}"
        return f"sa.{self.sa_type}()"


# FieldType -> SQLAlchemy column type and Python annotation
_COLUMN_TYPES: Dict[FieldType, _ColumnType] = {
    FieldType.STRING: _ColumnType("String(255)", "String", "str"),
    FieldType.TEXT: _ColumnType("Text", "Text", "str"),
    FieldType.INTEGER: _ColumnType("Integer", "Integer", "int"),
    FieldType.BIGINTEGER: _ColumnType("BigInteger", "BigInteger", "int"),
    FieldType.FLOAT: _ColumnType("Float", "Float", "float"),
    FieldType.DECIMAL: _ColumnType(
        "Numeric(12, 2)", "Numeric", "Decimal", (("decimal", "Decimal"),)
    ),
    FieldType.BOOLEAN: _ColumnType("Boolean", "Boolean", "bool"),
    FieldType.DATE: _ColumnType("Date", "Date", "date", (("datetime", "date"),)),
    FieldType.DATETIME: _ColumnType("DateTime", "DateTime", "datetime", (("datetime", "datetime"),)),
    FieldType.TIME: _ColumnType("Time", "Time", "time", (("datetime", "time"),)),
    FieldType.JSON: _ColumnType(
        "JSON", "JSON", "Dict[str, Any]", (("typing", "Any"), ("typing", "Dict"))
    ),
    FieldType.UUID: _ColumnType("Uuid", "Uuid", "UUID", (("uuid", "UUID"),)),
}

# Defaults given as text for these types become server defaults
_SERVER_DEFAULT_TYPES: Set[FieldType] = {
    FieldType.DATE, FieldType.DATETIME, FieldType.TIME, FieldType.UUID,
}


def _add_python_imports(imports: Dict[str, Set[str]], fields: Sequence[FieldSpec]) -> None:
    for spec in fields:
        for module, name in _COLUMN_TYPES[spec.type].python_imports:
            imports.setdefault(module, set()).add(name)


def _default_kwarg(spec: FieldSpec) -> Optional[str]:
    if spec.default is None:
        return None
    if spec.type in _SERVER_DEFAULT_TYPES:
        return f"server_default={python_literal(str(spec.default))}"
    return f"default={python_literal(spec.default)}"


# ---------------------------------------------------------------------------
# Generation report
# ---------------------------------------------------------------------------


@dataclass(frozen=False, slots=True)
class GenerationReport:
    """
    Outcome of one ``CodeGenerator`` call: artifacts written (or, in a dry
    run, that would be written) and per-file conflicts.
    """

    entity: str = ""
    dry_run: bool = False
    artifacts: List[GeneratedArtifact] = field(default_factory=list)
    conflicts: List[FileConflictError] = field(default_factory=list)
    total_bytes: int = 0
    total_lines: int = 0
    elapsed_seconds: float = 0.0

    @property
    def success(self) -> bool:
        return not self.conflicts

    @property
    def errors(self) -> List[EasyDevError]:
        return list(self.conflicts)

    def raise_for_errors(self) -> None:
        """Raise the first collected conflict, if any."""
        if self.conflicts:
            raise self.conflicts[0]

    def merge(self, other: "GenerationReport") -> None:
        """Fold *other* (e.g. a pivot generation) into this report."""
        self.artifacts.extend(other.artifacts)
        self.conflicts.extend(other.conflicts)
        self.total_bytes += other.total_bytes
        self.total_lines += other.total_lines
        self.elapsed_seconds += other.elapsed_seconds

    def summary(self) -> str:
        """Return a human-readable summary string."""
        status: str = "✅ SUCCESS" if self.success else "❌ FAILED"
        title: str = "  easydev — Generation Report" + ("  (dry run)" if self.dry_run else "")
        lines: List[str] = [
            f"{'=' * 60}",
            title,
            f"{'=' * 60}",
            f"  Status:           {status}",
            f"  Entity:           {self.entity}",
            f"  Files written:    {len(self.artifacts)}",
            f"  Total lines:      {self.total_lines:,}",
            f"  Total bytes:      {self.total_bytes:,}",
            f"  Total time:       {self.elapsed_seconds:.3f}s",
        ]
        if self.artifacts:
            lines.append(f"{'─' * 60}")
            for artifact in self.artifacts:
                lines.append(f"    ✓ {artifact.kind.value:<11s} {artifact.path}")
        if self.conflicts:
            lines.append(f"{'─' * 60}")
            lines.append(f"  Conflicts ({len(self.conflicts)}):")
            for err in self.conflicts:
                lines.append(f"    ✗ {err}")
        lines.append(f"{'=' * 60}")
        return "\n".join(lines)


# ---------------------------------------------------------------------------
# CodeGenerator class
# ---------------------------------------------------------------------------


class CodeGenerator:
    """
    Renders and writes the artifacts of one entity.

    Usage::

        generator = CodeGenerator(config, project_root, manifest, renderer)
        report = generator.generate(descriptor)
        report.raise_for_errors()

    Written artifacts are recorded in *manifest*; persisting it is the
    caller's job (see ``ProjectState``).
    """

    def __init__(
        self,
        config: EasyDevConfig,
        project_root: Path,
        manifest: ArtifactManifest,
        renderer: TemplateRenderer,
    ) -> None:
        self._config: EasyDevConfig = config
        self._root: Path = project_root
        self._manifest: ArtifactManifest = manifest
        self._renderer: TemplateRenderer = renderer
        logger.debug("CodeGenerator initialised for %s", project_root)

    # ===================================================================
    # Public API
    # ===================================================================

    def generate(
        self,
        descriptor: SchemaDescriptor,
        *,
        force: bool = False,
        dry_run: bool = False,
    ) -> GenerationReport:
        """
        Generate model, controller, migration and validator for *descriptor*.

        Args:
            descriptor: Validated entity description.
            force: Overwrite existing files.
            dry_run: Render and report without touching disk or manifest.

        Raises:
            TemplateError: a template is unknown or misses a binding.  Raised
                before any file is written.
        """
        report: GenerationReport = GenerationReport(entity=descriptor.entity, dry_run=dry_run)
        edges: List[RelationEdge] = RelationGraph(descriptor.relations).edges_for(descriptor.entity)

        with Timer(f"generate {descriptor.entity}") as timer:
            module: str = descriptor.module_name
            model_text, model_block_hash = self.render_model(descriptor, edges)
            planned: List[Tuple[ArtifactKind, Path, str, Optional[str]]] = [
                (
                    ArtifactKind.MODEL,
                    self._output(ArtifactKind.MODEL) / f"{module}.py",
                    model_text,
                    model_block_hash,
                ),
                (
                    ArtifactKind.CONTROLLER,
                    self._output(ArtifactKind.CONTROLLER) / f"{module}.py",
                    self.render_controller(descriptor),
                    None,
                ),
                (
                    ArtifactKind.MIGRATION,
                    self._output(ArtifactKind.MIGRATION) / f"create_{descriptor.table_name}_table.py",
                    self.render_migration(descriptor, edges),
                    None,
                ),
                (
                    ArtifactKind.VALIDATOR,
                    self._output(ArtifactKind.VALIDATOR) / f"{module}.py",
                    self.render_validator(descriptor),
                    None,
                ),
            ]
            for kind, path, content, blk in planned:
                self._emit(
                    report, path, content, kind, descriptor.entity,
                    force=force, dry_run=dry_run, block=blk,
                    fields=descriptor.field_names if kind == ArtifactKind.MODEL else (),
                )

        report.elapsed_seconds = timer.elapsed
        logger.info(
            "Generated %d file(s) for '%s' with %d conflict(s).",
            len(report.artifacts), descriptor.entity, len(report.conflicts),
        )
        return report

    def generate_pivot(
        self,
        spec: RelationSpec,
        *,
        force: bool = False,
        dry_run: bool = False,
    ) -> GenerationReport:
        """
        Generate the pivot table migration and ``Table`` module for a
        many-to-many relation.

        Raises:
            InvalidRelationError: *spec* is not many-to-many.
        """
        if spec.kind != RelationKind.MANY_TO_MANY:
            raise InvalidRelationError(
                f"pivot tables exist only for many_to_many relations, not '{spec}'",
                subject="type",
                value=spec.kind.value,
            )

        first, second = sorted(spec.pair, key=entity_to_module)
        table: str = pivot_table_name(first, second)
        report: GenerationReport = GenerationReport(entity=table, dry_run=dry_run)
        bindings: Dict[str, str] = {
            "table_name": table,
            "revision": self._revision(f"create_{table}_table"),
            "first_class": first,
            "second_class": second,
            "first_key": f"{entity_to_module(first)}_id",
            "first_table": entity_to_table(first),
            "second_key": f"{entity_to_module(second)}_id",
            "second_table": entity_to_table(second),
            "base_package": self._config.base_package,
        }

        with Timer(f"pivot {table}") as timer:
            migration: str = self._renderer.render("pivot_migration", bindings)
            module_text: str = self._renderer.render("pivot_table", bindings)
            self._emit(
                report,
                self._output(ArtifactKind.MIGRATION) / f"create_{table}_table.py",
                migration, ArtifactKind.MIGRATION, table,
                force=force, dry_run=dry_run,
            )
            self._emit(
                report,
                self._output(ArtifactKind.MODEL) / f"{table}.py",
                module_text, ArtifactKind.MODEL, table,
                force=force, dry_run=dry_run, pivot=True,
            )

        report.elapsed_seconds = timer.elapsed
        logger.info("Generated pivot table '%s' for %s", table, spec)
        return report

    # ===================================================================
    # Rendering
    # ===================================================================

    def render_model(
        self,
        descriptor: SchemaDescriptor,
        edges: Sequence[RelationEdge],
    ) -> Tuple[str, str]:
        """Model source and the hash of its managed block."""
        imports: Dict[str, Set[str]] = {
            "typing": {"List", "Optional"},
            "sqlalchemy": {"ForeignKey", "Integer"},
            "sqlalchemy.orm": {"Mapped", "mapped_column", "relationship"},
            f"{self._config.base_package}.database": {"Base"},
        }
        columns: List[str] = []
        for spec in descriptor.fields:
            col: _ColumnType = _COLUMN_TYPES[spec.type]
            imports["sqlalchemy"].add(col.sa_import)
            annotation: str = f"Optional[{col.python_type}]" if spec.nullable else col.python_type
            args: List[str] = [col.sa_type]
            if spec.nullable:
                args.append("nullable=True")
            default: Optional[str] = _default_kwarg(spec)
            if default:
                args.append(default)
            columns.append(
                f"{spec.name}: Mapped[{annotation}] = mapped_column({', '.join(args)})"
            )
        _add_python_imports(imports, descriptor.fields)

        text: str = self._renderer.render("model", {
            "imports": build_import_block(imports),
            "class_name": descriptor.class_name,
            "table_name": descriptor.table_name,
            "columns": "\n".join(indent_lines(columns)),
            "relations_block": render_relation_block(self._renderer, edges),
        })
        return text, block_hash(render_block_body(self._renderer, edges))

    def render_controller(self, descriptor: SchemaDescriptor) -> str:
        return self._renderer.render("controller", {
            "base_package": self._config.base_package,
            "models_package": self._config.import_package(ArtifactKind.MODEL),
            "schemas_package": self._config.import_package(ArtifactKind.VALIDATOR),
            "module_name": descriptor.module_name,
            "class_name": descriptor.class_name,
            "route_prefix": entity_to_route_prefix(descriptor.entity),
            "route_tag": entity_to_route_tag(descriptor.entity),
            "plural_name": descriptor.table_name,
            "singular_name": descriptor.module_name,
        })

    def render_migration(
        self,
        descriptor: SchemaDescriptor,
        edges: Sequence[RelationEdge],
    ) -> str:
        columns: List[str] = []
        for spec in descriptor.fields:
            col: _ColumnType = _COLUMN_TYPES[spec.type]
            args: List[str] = [python_literal(spec.name), col.alembic_type]
            args.append(f"nullable={spec.nullable}")
            if spec.default is not None:
                args.append(f"server_default={python_literal(self._server_default(spec))}")
            columns.append(f"sa.Column({', '.join(args)}),")

        for edge in edges:
            if not edge.holds_foreign_key:
                continue
            args = [
                python_literal(edge.foreign_key_column),
                "sa.Integer()",
                f"sa.ForeignKey({python_literal(edge.related_table + '.id')})",
                "nullable=False",
            ]
            if edge.kind == RelationKind.ONE_TO_ONE:
                args.append("unique=True")
            columns.append(f"sa.Column({', '.join(args)}),")

        return self._renderer.render("migration", {
            "table_name": descriptor.table_name,
            "revision": self._revision(f"create_{descriptor.table_name}_table"),
            "columns": "\n".join(indent_lines(columns, level=2)),
        })

    def render_validator(self, descriptor: SchemaDescriptor) -> str:
        imports: Dict[str, Set[str]] = {
            "typing": {"Optional"},
            "pydantic": {"BaseModel", "ConfigDict"},
        }
        _add_python_imports(imports, descriptor.fields)

        base_fields: List[str] = []
        update_fields: List[str] = []
        for spec in descriptor.fields:
            py_type: str = _COLUMN_TYPES[spec.type].python_type
            if spec.nullable:
                line: str = f"{spec.name}: Optional[{py_type}] = "
                line += python_literal(spec.default) if spec.default is not None else "None"
            elif spec.default is not None and spec.type not in _SERVER_DEFAULT_TYPES:
                line = f"{spec.name}: {py_type} = {python_literal(spec.default)}"
            else:
                line = f"{spec.name}: {py_type}"
            base_fields.append(line)
            update_fields.append(f"{spec.name}: Optional[{py_type}] = None")

        return self._renderer.render("validator", {
            "imports": build_import_block(imports),
            "class_name": descriptor.class_name,
            "base_fields": "\n".join(indent_lines(base_fields or ["pass"])),
            "update_fields": "\n".join(indent_lines(update_fields or ["pass"])),
        })

    # ===================================================================
    # Helpers
    # ===================================================================

    def _output(self, kind: ArtifactKind) -> Path:
        return self._config.output_dir(kind, self._root)

    @staticmethod
    def _revision(name: str) -> str:
        return sha256_hex(name)[:12]

    @staticmethod
    def _server_default(spec: FieldSpec) -> str:
        if isinstance(spec.default, bool):
            return "1" if spec.default else "0"
        return str(spec.default)

    def _relative(self, path: Path) -> str:
        try:
            return relative_posix(path, self._root)
        except ValueError:
            return path.as_posix()

    def _emit(
        self,
        report: GenerationReport,
        path: Path,
        content: str,
        kind: ArtifactKind,
        entity: str,
        *,
        force: bool,
        dry_run: bool,
        block: Optional[str] = None,
        pivot: bool = False,
        fields: Sequence[str] = (),
    ) -> None:
        rel: str = self._relative(path)

        if path.exists() and not force:
            stored: Optional[GeneratedArtifact] = self._manifest.get(rel)
            reason: str
            if stored is None:
                reason = "not tracked"
            elif sha256_hex(read_file(path)) == stored.content_hash:
                reason = "unchanged since last generation"
            else:
                reason = "modified since last generation"
            logger.warning("Skipping %s: %s", rel, reason)
            report.conflicts.append(FileConflictError(rel, reason))
            return

        artifact: GeneratedArtifact = GeneratedArtifact(
            path=rel,
            kind=kind,
            entity=entity,
            content_hash=sha256_hex(content),
            block_hash=block,
            pivot=pivot,
            fields=tuple(fields),
        )
        if dry_run:
            logger.info("[dry-run] would write %s", rel)
        else:
            report.total_bytes += write_file(path, content)
            self._manifest.record(artifact)
            logger.info("Wrote %s", rel)
        report.total_lines += count_lines(content)
        report.artifacts.append(artifact)


__all__: List[str] = [
    "CodeGenerator",
    "GenerationReport",
]

logger.debug("easydev.generator loaded.")
