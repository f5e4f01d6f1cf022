# File: easydev/__init__.py
"""
easydev — CRUD Scaffolding & Model Relation Synchronizer
=========================================================

A code-generation CLI for FastAPI + SQLAlchemy 2.0 projects.  It scaffolds
the model, router, Alembic migration and Pydantic V2 schemas of an entity,
and keeps declared model relationships in sync across the generated model
files.

Architecture overview::

    ┌──────────────┐     ┌───────────────┐     ┌──────────────────┐
    │  CLI / Entry │────▶│ CodeGenerator │────▶│ TemplateRenderer │
    │   (cli.py)   │     │ (generator.py)│     │  (templates.py)  │
    └──────┬───────┘     └───────────────┘     └──────────────────┘
           │                                            ▲
           ▼                                            │
    ┌──────────────┐     ┌───────────────┐     ┌──────────────────┐
    │ ProjectState │────▶│ RelationGraph │────▶│RelationSynchroni-│
    │  (state.py)  │     │ (relations.py)│     │  zer  (sync.py)  │
    └──────────────┘     └───────────────┘     └──────────────────┘

Usage::

    # As a library
    from easydev import build_descriptor, CodeGenerator, EasyDevConfig
    descriptor = build_descriptor("Post", "title:string,body:text")

    # From the command line
    easydev make:crud Post --fields title:string,body:text
    easydev make:model-relation Post Comment --type one-to-many --sync

Public API:
    - build_descriptor      — Validated SchemaDescriptor from raw input
    - RelationGraph         — Consistency-checked relation declarations
    - CodeGenerator         — Renders and writes CRUD artifacts
    - RelationSynchronizer  — Rewrites managed relation blocks
    - TemplateRenderer      — ``{{ placeholder }}`` templates with overrides
    - ProjectState          — Locked ``.easydev`` state transactions
"""

from __future__ import annotations

__version__: str = "1.0.0"
__license__: str = "MIT"

from easydev.config import EasyDevConfig, load_config, publish_config
from easydev.errors import (
    EasyDevError,
    FileConflictError,
    LockTimeoutError,
    MissingMarkerError,
    RelationConflictError,
    StateError,
    TemplateError,
    ValidationError,
)
from easydev.generator import CodeGenerator, GenerationReport
from easydev.locking import FileLock
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
from easydev.schema import build_descriptor, parse_fields, parse_relation_list
from easydev.state import ProjectState
from easydev.sync import RelationSynchronizer, SyncReport
from easydev.templates import TemplateRenderer

# ---------------------------------------------------------------------------
# Public API surface
# ---------------------------------------------------------------------------

__all__: list[str] = [
    # Version info
    "__version__",
    "__license__",
    # Configuration
    "EasyDevConfig",
    "load_config",
    "publish_config",
    # Errors
    "EasyDevError",
    "ValidationError",
    "RelationConflictError",
    "FileConflictError",
    "MissingMarkerError",
    "LockTimeoutError",
    "TemplateError",
    "StateError",
    # Models
    "ArtifactKind",
    "ArtifactManifest",
    "FieldSpec",
    "FieldType",
    "GeneratedArtifact",
    "RelationKind",
    "RelationSpec",
    "SchemaDescriptor",
    # Schema
    "build_descriptor",
    "parse_fields",
    "parse_relation_list",
    # Relations & sync
    "RelationEdge",
    "RelationGraph",
    "RelationSynchronizer",
    "SyncReport",
    # Generation
    "CodeGenerator",
    "GenerationReport",
    "TemplateRenderer",
    # State
    "FileLock",
    "ProjectState",
]
