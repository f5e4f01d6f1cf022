"""
tests/conftest.py
Shared fixtures for the easydev test suite.

No external mocking libraries are used; real file I/O is performed
inside temporary directories managed by pytest's tmp_path fixtures.
"""

from __future__ import annotations

import logging
import pathlib
from typing import Iterator, List

import pytest

from easydev.config import EasyDevConfig
from easydev.generator import CodeGenerator
from easydev.models import ArtifactManifest, RelationSpec, SchemaDescriptor
from easydev.relations import RelationGraph
from easydev.schema import build_descriptor
from easydev.state import ProjectState
from easydev.sync import RelationSynchronizer
from easydev.templates import TemplateRenderer


# ---------------------------------------------------------------------------
# Logging isolation
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_easydev_logger() -> Iterator[None]:
    """The CLI reconfigures the 'easydev' logger; undo it after each test."""
    root_logger = logging.getLogger("easydev")
    handlers = list(root_logger.handlers)
    level = root_logger.level
    propagate = root_logger.propagate
    yield
    root_logger.handlers[:] = handlers
    root_logger.setLevel(level)
    root_logger.propagate = propagate


# ---------------------------------------------------------------------------
# Project fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def project_root(tmp_path: pathlib.Path) -> pathlib.Path:
    """Empty host project directory."""
    root = tmp_path / "project"
    root.mkdir()
    return root


@pytest.fixture()
def config() -> EasyDevConfig:
    return EasyDevConfig()


@pytest.fixture()
def renderer() -> TemplateRenderer:
    return TemplateRenderer()


@pytest.fixture()
def manifest() -> ArtifactManifest:
    return ArtifactManifest()


@pytest.fixture()
def generator(
    config: EasyDevConfig,
    project_root: pathlib.Path,
    manifest: ArtifactManifest,
    renderer: TemplateRenderer,
) -> CodeGenerator:
    return CodeGenerator(config, project_root, manifest, renderer)


@pytest.fixture()
def synchronizer(
    project_root: pathlib.Path,
    manifest: ArtifactManifest,
    renderer: TemplateRenderer,
) -> RelationSynchronizer:
    return RelationSynchronizer(project_root, manifest, renderer)


@pytest.fixture()
def state(project_root: pathlib.Path) -> ProjectState:
    return ProjectState(project_root, lock_timeout=2.0)


# ---------------------------------------------------------------------------
# Descriptor & relation fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def post_descriptor() -> SchemaDescriptor:
    """Post entity with a mix of field shapes."""
    return build_descriptor(
        "Post",
        "title:string,body:text?,views:integer=0,published:boolean=false",
    )


@pytest.fixture()
def comment_descriptor() -> SchemaDescriptor:
    return build_descriptor("Comment", "body:text")


@pytest.fixture()
def post_comment() -> RelationSpec:
    return RelationSpec(from_entity="Post", to_entity="Comment", kind="one_to_many")


@pytest.fixture()
def blog_relations() -> List[RelationSpec]:
    """A small consistent graph around Post."""
    return [
        RelationSpec(from_entity="Post", to_entity="Comment", kind="one_to_many"),
        RelationSpec(from_entity="Post", to_entity="Tag", kind="many_to_many"),
        RelationSpec(from_entity="User", to_entity="Post", kind="one_to_many"),
        RelationSpec(from_entity="User", to_entity="Profile", kind="one_to_one"),
    ]


@pytest.fixture()
def blog_graph(blog_relations: List[RelationSpec]) -> RelationGraph:
    return RelationGraph(blog_relations)

