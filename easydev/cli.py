# File: easydev/cli.py
"""
EasyDev - Command-Line Interface
=================================

Thin ``argparse`` adapter: every subcommand translates its arguments into
calls on the schema builder, relation graph, code generator and relation
synchronizer, inside one locked state transaction.

Usage examples::

    # Scaffold model, router, migration and schemas for an entity
    easydev make:crud Post --fields "title:string,body:text?,views:integer=0"

    # Declare a relation and patch the generated models right away
    easydev make:model-relation Post Comment --type one-to-many --sync

    # Re-apply every declared relation to the generated models
    easydev sync:model-relations

    # Inspect or undo declarations
    easydev relation:list Post
    easydev relation:remove Post Comment --type one-to-many --sync

    # Write the default configuration to easydev.yaml
    easydev config:publish

Exit codes:
    0 — success
    1 — unexpected error
    2 — usage error (argparse)
    3 — ValidationError (bad entity, field, type, default, relation, config)
    4 — RelationConflictError
    5 — FileConflictError
    6 — MissingMarkerError
    7 — LockTimeoutError
    8 — TemplateError
    9 — StateError
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, NoReturn, Optional, Sequence, Tuple, Type

from easydev.config import EasyDevConfig, load_config, publish_config
from easydev.errors import (
    EasyDevError,
    FileConflictError,
    InvalidRelationError,
    LockTimeoutError,
    MissingMarkerError,
    RelationConflictError,
    StateError,
    TemplateError,
    ValidationError,
)
from easydev.generator import CodeGenerator, GenerationReport
from easydev.models import ArtifactManifest, RelationKind, RelationSpec, SchemaDescriptor
from easydev.relations import RelationGraph
from easydev.schema import build_descriptor, parse_relation_list, validate_entity_name
from easydev.state import ProjectState
from easydev.sync import RelationSynchronizer, SyncReport
from easydev.templates import TemplateRenderer

# ---------------------------------------------------------------------------
# Logger (configured in _setup_logging)
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("easydev")


# ---------------------------------------------------------------------------
# Exit codes
# ---------------------------------------------------------------------------

EXIT_SUCCESS: int = 0
EXIT_UNEXPECTED_ERROR: int = 1
EXIT_USAGE_ERROR: int = 2
EXIT_VALIDATION_ERROR: int = 3
EXIT_RELATION_CONFLICT: int = 4
EXIT_FILE_CONFLICT: int = 5
EXIT_MISSING_MARKER: int = 6
EXIT_LOCK_TIMEOUT: int = 7
EXIT_TEMPLATE_ERROR: int = 8
EXIT_STATE_ERROR: int = 9

_EXIT_CODES: Tuple[Tuple[Type[EasyDevError], int], ...] = (
    (ValidationError, EXIT_VALIDATION_ERROR),
    (RelationConflictError, EXIT_RELATION_CONFLICT),
    (FileConflictError, EXIT_FILE_CONFLICT),
    (MissingMarkerError, EXIT_MISSING_MARKER),
    (LockTimeoutError, EXIT_LOCK_TIMEOUT),
    (TemplateError, EXIT_TEMPLATE_ERROR),
    (StateError, EXIT_STATE_ERROR),
)


def exit_code_for(exc: EasyDevError) -> int:
    """Exit code for an error family."""
    for error_type, code in _EXIT_CODES:
        if isinstance(exc, error_type):
            return code
    return EXIT_UNEXPECTED_ERROR


# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------


def _setup_logging(verbosity: int) -> None:
    """
    Configure the root easydev logger based on verbosity level.

    Args:
        verbosity: -1 = silent, 0 = WARNING, 1 = INFO, 2+ = DEBUG.
    """
    if verbosity >= 2:
        level = logging.DEBUG
    elif verbosity >= 1:
        level = logging.INFO
    elif verbosity == 0:
        level = logging.WARNING
    else:
        level = logging.CRITICAL + 10

    handler: logging.StreamHandler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)

    fmt: str = "%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s"
    datefmt: str = "%H:%M:%S"
    handler.setFormatter(logging.Formatter(fmt, datefmt=datefmt))

    root_logger: logging.Logger = logging.getLogger("easydev")
    root_logger.setLevel(level)

    # Remove existing handlers to prevent duplication
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.propagate = False


# ---------------------------------------------------------------------------
# Invocation context
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class _Context:
    """Everything a subcommand needs, resolved once per invocation."""

    root: Path
    config: EasyDevConfig
    state: ProjectState
    renderer: TemplateRenderer
    quiet: bool

    def generator(self, manifest: ArtifactManifest) -> CodeGenerator:
        return CodeGenerator(self.config, self.root, manifest, self.renderer)

    def synchronizer(self, manifest: ArtifactManifest) -> RelationSynchronizer:
        return RelationSynchronizer(self.root, manifest, self.renderer)

    def echo(self, text: str) -> None:
        if not self.quiet:
            print(text)


def _build_context(args: argparse.Namespace) -> _Context:
    root: Path = Path(args.project_root).resolve()
    config_path: Optional[Path] = Path(args.config).resolve() if args.config else None
    config: EasyDevConfig = load_config(root, config_path)
    timeout: float = args.lock_timeout if args.lock_timeout is not None else config.lock_timeout
    return _Context(
        root=root,
        config=config,
        state=ProjectState(root, lock_timeout=timeout),
        renderer=TemplateRenderer(config.templates_dir(root)),
        quiet=args.quiet,
    )


def _parse_relation(first: str, second: str, kind: str) -> RelationSpec:
    return RelationSpec(
        from_entity=validate_entity_name(first),
        to_entity=validate_entity_name(second),
        kind=RelationKind.parse(kind),
    )


def _raise_first(errors: Sequence[EasyDevError]) -> None:
    if errors:
        for extra in errors[1:]:
            logger.error("%s: %s", extra.kind, extra)
        raise errors[0]


# ---------------------------------------------------------------------------
# Subcommands
# ---------------------------------------------------------------------------


def _cmd_make_crud(args: argparse.Namespace, ctx: _Context) -> int:
    """Declare --relations, then generate the entity's artifacts."""
    errors: List[EasyDevError] = []

    with ctx.state.transaction() as session:
        entity: str = validate_entity_name(args.entity)
        declared: List[RelationSpec] = parse_relation_list(entity, args.relations)
        before: List[RelationSpec] = session.graph.relations()
        # The entity's own fields are checked by build_descriptor
        taken: Dict[str, Tuple[str, ...]] = {
            name: names for name, names in session.manifest.field_names().items() if name != entity
        }
        for spec in declared:
            session.graph.add_relation(spec, taken)

        descriptor: SchemaDescriptor = build_descriptor(
            entity,
            args.fields,
            known_entities=session.manifest.entities(),
            relations=session.graph.relations_for(entity),
            field_types=ctx.config.field_types,
        )

        generator: CodeGenerator = ctx.generator(session.manifest)
        report: GenerationReport = generator.generate(
            descriptor, force=args.force, dry_run=args.dry_run
        )
        for spec in declared:
            if spec.kind == RelationKind.MANY_TO_MANY:
                try:
                    report.merge(generator.generate_pivot(spec, force=args.force, dry_run=args.dry_run))
                except TemplateError as exc:
                    # Files above are already written and must stay tracked
                    logger.error("Cannot generate pivot for %s: %s", spec, exc)
                    errors.append(exc)
        ctx.echo(report.summary())
        errors.extend(report.errors)

        # Models generated earlier gain the inverse accessors
        others: List[str] = sorted({s.to_entity for s in declared})
        if others:
            sync_report: SyncReport = ctx.synchronizer(session.manifest).sync(
                session.graph, force=args.force, dry_run=args.dry_run, entities=others
            )
            if sync_report.updated or sync_report.errors:
                ctx.echo(sync_report.summary())
            errors.extend(sync_report.errors)

        if args.dry_run:
            session.graph = RelationGraph(before)

    _raise_first(errors)
    return EXIT_SUCCESS


def _cmd_make_model_relation(args: argparse.Namespace, ctx: _Context) -> int:
    """Add one relation, its pivot table if many-to-many, optionally sync."""
    errors: List[EasyDevError] = []

    with ctx.state.transaction() as session:
        spec: RelationSpec = _parse_relation(args.first, args.second, args.type)
        session.graph.add_relation(spec, session.manifest.field_names())
        ctx.echo(f"Declared relation: {spec}")

        if spec.kind == RelationKind.MANY_TO_MANY:
            pivot: GenerationReport = ctx.generator(session.manifest).generate_pivot(
                spec, force=args.force
            )
            ctx.echo(pivot.summary())
            errors.extend(pivot.errors)

        if args.sync:
            report: SyncReport = ctx.synchronizer(session.manifest).sync(
                session.graph, force=args.force
            )
            ctx.echo(report.summary())
            errors.extend(report.errors)

    _raise_first(errors)
    return EXIT_SUCCESS


def _cmd_sync(args: argparse.Namespace, ctx: _Context) -> int:
    """Rewrite every managed relation block from the graph."""
    with ctx.state.transaction() as session:
        report: SyncReport = ctx.synchronizer(session.manifest).sync(
            session.graph, force=args.force, dry_run=args.dry_run
        )
        ctx.echo(report.summary())

    report.raise_for_errors()
    return EXIT_SUCCESS


def _cmd_relation_remove(args: argparse.Namespace, ctx: _Context) -> int:
    """Remove one relation (either direction), optionally sync."""
    errors: List[EasyDevError] = []

    with ctx.state.transaction() as session:
        spec: RelationSpec = _parse_relation(args.first, args.second, args.type)
        removed: Optional[RelationSpec] = session.graph.remove_relation(spec)
        if removed is None:
            raise InvalidRelationError(
                f"relation '{spec}' is not declared",
                subject="relation",
                value=str(spec),
            )
        ctx.echo(f"Removed relation: {removed}")

        if args.sync:
            report: SyncReport = ctx.synchronizer(session.manifest).sync(
                session.graph, force=args.force
            )
            ctx.echo(report.summary())
            errors.extend(report.errors)

    _raise_first(errors)
    return EXIT_SUCCESS


def _cmd_relation_list(args: argparse.Namespace, ctx: _Context) -> int:
    """Print declared relations, optionally only those touching one entity."""
    graph: RelationGraph = ctx.state.load().graph
    specs: List[RelationSpec]
    if args.entity:
        entity: str = validate_entity_name(args.entity)
        specs = sorted(graph.relations_for(entity), key=RelationSpec.sort_key)
    else:
        specs = graph.relations()

    for spec in specs:
        print(str(spec))
    if not specs:
        logger.info("No relations declared.")
    return EXIT_SUCCESS


def _cmd_config_publish(args: argparse.Namespace, ctx: _Context) -> int:
    """Materialise the default configuration."""
    target: Path = publish_config(ctx.root, force=args.force)
    ctx.echo(f"Configuration published to {target}")
    return EXIT_SUCCESS


Handler = Callable[[argparse.Namespace, _Context], int]


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


def _add_relation_arguments(sub: argparse.ArgumentParser) -> None:
    sub.add_argument("first", metavar="ENTITY_A", help="Declaring entity.")
    sub.add_argument("second", metavar="ENTITY_B", help="Related entity.")
    sub.add_argument(
        "--type",
        required=True,
        metavar="KIND",
        help="one-to-one, one-to-many, many-to-one or many-to-many "
             "(hasOne, hasMany, belongsTo, belongsToMany also accepted).",
    )
    sub.add_argument(
        "--sync",
        action="store_true",
        default=False,
        help="Synchronize generated models afterwards.",
    )
    sub.add_argument(
        "--force",
        action="store_true",
        default=False,
        help="Overwrite conflicting files and hand-edited relation blocks.",
    )


def _build_parser() -> argparse.ArgumentParser:
    """Build and return the argument parser."""
    from easydev import __version__

    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        prog="easydev",
        description=(
            "easydev — CRUD scaffolding and model relation synchronization "
            "for FastAPI + SQLAlchemy 2.0 projects."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  %(prog)s make:crud Post --fields title:string,body:text\n"
            "  %(prog)s make:model-relation Post Comment --type one-to-many --sync\n"
            "  %(prog)s sync:model-relations\n"
        ),
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"easydev v{__version__}",
    )

    # --- Project ---
    project_group = parser.add_argument_group("project")
    project_group.add_argument(
        "--project-root",
        default=".",
        metavar="DIR",
        help="Root of the host project (default: current directory).",
    )
    project_group.add_argument(
        "--config",
        default=None,
        metavar="PATH",
        help="Configuration file (default: easydev.yaml/.yml/.json in the project root).",
    )
    project_group.add_argument(
        "--lock-timeout",
        type=float,
        default=None,
        metavar="SECONDS",
        help="Seconds to wait for another easydev process (overrides lockTimeout).",
    )

    # --- Verbosity ---
    verbosity_group = parser.add_argument_group("verbosity")
    verbosity_group.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v for INFO, -vv for DEBUG).",
    )
    verbosity_group.add_argument(
        "-q", "--quiet",
        action="store_true",
        default=False,
        help="Suppress all output except errors.",
    )

    commands = parser.add_subparsers(dest="command", metavar="COMMAND", required=True)

    crud = commands.add_parser("make:crud", help="Generate model, router, migration and schemas.")
    crud.add_argument("entity", metavar="ENTITY", help="Entity name, e.g. Post.")
    crud.add_argument(
        "--fields",
        default=None,
        metavar="SPEC",
        help="Comma separated name:type[?][:nullable][=default] list.",
    )
    crud.add_argument(
        "--relations",
        default=None,
        metavar="SPEC",
        help="Comma separated Entity:kind list declared from ENTITY.",
    )
    crud.add_argument("--force", action="store_true", default=False, help="Overwrite existing files.")
    crud.add_argument("--dry-run", action="store_true", default=False, help="Do not write anything.")
    crud.set_defaults(handler=_cmd_make_crud)

    relation = commands.add_parser("make:model-relation", help="Declare a relation between two entities.")
    _add_relation_arguments(relation)
    relation.set_defaults(handler=_cmd_make_model_relation)

    sync = commands.add_parser("sync:model-relations", help="Apply declared relations to generated models.")
    sync.add_argument("--force", action="store_true", default=False, help="Overwrite hand-edited relation blocks.")
    sync.add_argument("--dry-run", action="store_true", default=False, help="Do not write anything.")
    sync.set_defaults(handler=_cmd_sync)

    remove = commands.add_parser("relation:remove", help="Remove a declared relation.")
    _add_relation_arguments(remove)
    remove.set_defaults(handler=_cmd_relation_remove)

    listing = commands.add_parser("relation:list", help="List declared relations.")
    listing.add_argument("entity", metavar="ENTITY", nargs="?", default=None, help="Only relations of ENTITY.")
    listing.set_defaults(handler=_cmd_relation_list)

    publish = commands.add_parser("config:publish", help="Write the default configuration to easydev.yaml.")
    publish.add_argument("--force", action="store_true", default=False, help="Overwrite an existing file.")
    publish.set_defaults(handler=_cmd_config_publish)

    return parser


# ---------------------------------------------------------------------------
# Main entry point
# ---------------------------------------------------------------------------


def run(argv: Optional[Sequence[str]] = None) -> int:
    """
    Parse *argv*, run the subcommand and return its exit code.

    Usage errors exit through argparse (code 2).
    """
    parser: argparse.ArgumentParser = _build_parser()
    args: argparse.Namespace = parser.parse_args(argv)

    _setup_logging(-1 if args.quiet else args.verbose)

    handler: Handler = args.handler
    try:
        ctx: _Context = _build_context(args)
        logger.info("Running %s in %s", args.command, ctx.root)
        return handler(args, ctx)
    except EasyDevError as exc:
        print(f"error: {exc.kind}: {exc}", file=sys.stderr)
        code: int = exit_code_for(exc)
        logger.debug("%s failed with exit code %d", args.command, code)
        return code
    except Exception as exc:  # noqa: BLE001 - last-resort boundary
        logger.exception("Unexpected failure in %s", args.command)
        print(f"error: {type(exc).__name__}: {exc}", file=sys.stderr)
        return EXIT_UNEXPECTED_ERROR


def cli_main(argv: Optional[Sequence[str]] = None) -> NoReturn:
    """
    Main CLI entry point.

    Can be called from ``__main__.py`` or directly for testing.

    Args:
        argv: Optional argument list (defaults to sys.argv[1:]).
    """
    sys.exit(run(argv))


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "cli_main",
    "run",
    "exit_code_for",
    "EXIT_SUCCESS",
    "EXIT_UNEXPECTED_ERROR",
    "EXIT_USAGE_ERROR",
    "EXIT_VALIDATION_ERROR",
    "EXIT_RELATION_CONFLICT",
    "EXIT_FILE_CONFLICT",
    "EXIT_MISSING_MARKER",
    "EXIT_LOCK_TIMEOUT",
    "EXIT_TEMPLATE_ERROR",
    "EXIT_STATE_ERROR",
]

logger.debug("easydev.cli loaded.")
