"""
tests/test_cli.py
End-to-end tests for easydev.cli, driving ``run()`` against a temporary
project directory.

Tests cover:
- The Post/Comment scaffold-declare-sync scenario
- Exit codes for every error family
- relation:list, relation:remove and config:publish
- --version and argparse usage errors
"""

from __future__ import annotations

import ast
import pathlib
from typing import List

import pytest

from easydev import __version__
from easydev.cli import (
    EXIT_FILE_CONFLICT,
    EXIT_LOCK_TIMEOUT,
    EXIT_MISSING_MARKER,
    EXIT_RELATION_CONFLICT,
    EXIT_STATE_ERROR,
    EXIT_SUCCESS,
    EXIT_TEMPLATE_ERROR,
    EXIT_VALIDATION_ERROR,
    cli_main,
    run,
)
from easydev.locking import FileLock
from easydev.relations import RelationGraph
from easydev.state import ProjectState
from easydev.sync import RELATIONS_END, find_managed_block
from easydev.utils import sha256_hex

POST_MODEL = "app/models/post.py"
COMMENT_MODEL = "app/models/comment.py"


def _run(root: pathlib.Path, *argv: str) -> int:
    return run(["--project-root", str(root), "-q", *argv])


def _block(root: pathlib.Path, rel: str) -> List[str]:
    block = find_managed_block((root / rel).read_text(encoding="utf-8"))
    assert block is not None
    return [line.strip() for line in block.body]


@pytest.fixture()
def blog(project_root: pathlib.Path) -> pathlib.Path:
    """Project with Post and Comment scaffolded, no relations yet."""
    assert _run(project_root, "make:crud", "Post", "--fields", "title:string,body:text?") == EXIT_SUCCESS
    assert _run(project_root, "make:crud", "Comment", "--fields", "body:text") == EXIT_SUCCESS
    return project_root


# ===========================================================================
# Scenario
# ===========================================================================


class TestScaffoldAndSync:
    def test_post_comment_scenario(self, blog: pathlib.Path) -> None:
        assert _run(blog, "make:model-relation", "Post", "Comment", "--type", "one-to-many") == EXIT_SUCCESS
        # Declaring alone leaves the models untouched
        assert _block(blog, POST_MODEL) == []

        assert _run(blog, "sync:model-relations") == EXIT_SUCCESS

        post_text = (blog / POST_MODEL).read_text(encoding="utf-8")
        comment_text = (blog / COMMENT_MODEL).read_text(encoding="utf-8")
        assert "comments: Mapped[List[\"Comment\"]]" in post_text
        assert "post: Mapped[\"Post\"]" in comment_text
        assert "post_id: Mapped[int]" in comment_text

        before = (blog / POST_MODEL).read_bytes()
        assert _run(blog, "sync:model-relations") == EXIT_SUCCESS
        assert (blog / POST_MODEL).read_bytes() == before

    def test_relation_persisted_as_json_lines(self, blog: pathlib.Path) -> None:
        _run(blog, "make:model-relation", "Post", "Comment", "--type", "hasMany")
        text = (blog / ".easydev" / "relations.jsonl").read_text(encoding="utf-8")
        assert text == '{"from": "Post", "kind": "one_to_many", "to": "Comment"}\n'

    def test_relation_with_sync_flag(self, blog: pathlib.Path) -> None:
        code = _run(blog, "make:model-relation", "Comment", "Post", "--type", "belongsTo", "--sync")
        assert code == EXIT_SUCCESS
        assert _block(blog, COMMENT_MODEL)[1].startswith("post: Mapped")
        assert _block(blog, POST_MODEL)[0].startswith("comments: Mapped")

    def test_make_crud_with_relations(self, project_root: pathlib.Path) -> None:
        assert _run(project_root, "make:crud", "Post", "--fields", "title:string") == EXIT_SUCCESS
        code = _run(
            project_root, "make:crud", "Comment", "--fields", "body:text", "--relations", "Post:belongsTo"
        )
        assert code == EXIT_SUCCESS
        assert _block(project_root, COMMENT_MODEL)[0].startswith("post_id: Mapped[int]")
        # The earlier model gains the inverse accessor
        assert _block(project_root, POST_MODEL)[0].startswith("comments: Mapped")
        migration = (project_root / "migrations/versions/create_comments_table.py").read_text(encoding="utf-8")
        assert 'sa.ForeignKey("posts.id")' in migration

    def test_many_to_many_creates_pivot(self, blog: pathlib.Path) -> None:
        assert _run(blog, "make:crud", "Tag", "--fields", "name:string") == EXIT_SUCCESS
        assert _run(blog, "make:model-relation", "Post", "Tag", "--type", "many-to-many", "--sync") == EXIT_SUCCESS
        assert (blog / "migrations/versions/create_post_tag_table.py").is_file()
        assert (blog / "app/models/post_tag.py").is_file()
        assert 'secondary="post_tag"' in (blog / POST_MODEL).read_text(encoding="utf-8")

    def test_dry_run_leaves_no_trace(self, project_root: pathlib.Path) -> None:
        code = _run(project_root, "make:crud", "Post", "--fields", "title:string", "--relations", "Tag:hasMany", "--dry-run")
        assert code == EXIT_SUCCESS
        assert not (project_root / POST_MODEL).exists()
        session = ProjectState(project_root).load()
        assert len(session.graph) == 0
        assert session.manifest.artifacts == {}


# ===========================================================================
# Error exit codes
# ===========================================================================


class TestExitCodes:
    def test_regenerate_is_a_file_conflict(
        self, blog: pathlib.Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        digest = sha256_hex((blog / POST_MODEL).read_text(encoding="utf-8"))
        assert _run(blog, "make:crud", "Post", "--fields", "title:string,body:text?") == EXIT_FILE_CONFLICT
        assert sha256_hex((blog / POST_MODEL).read_text(encoding="utf-8")) == digest
        assert "FileConflictError" in capsys.readouterr().err

    def test_force_regenerates(self, blog: pathlib.Path) -> None:
        code = _run(blog, "make:crud", "Post", "--fields", "title:string,views:integer", "--force")
        assert code == EXIT_SUCCESS
        assert "views: Mapped[int]" in (blog / POST_MODEL).read_text(encoding="utf-8")

    def test_contradicting_relation(self, blog: pathlib.Path) -> None:
        _run(blog, "make:model-relation", "Post", "Comment", "--type", "one-to-many")
        code = _run(blog, "make:model-relation", "Comment", "Post", "--type", "one-to-many")
        assert code == EXIT_RELATION_CONFLICT
        graph = ProjectState(blog).load().graph
        assert len(graph) == 1

    @pytest.mark.parametrize(
        "argv",
        [
            ["make:crud", "9Post"],
            ["make:crud", "Base"],
            ["make:crud", "Post", "--fields", "title:string,title:text"],
            ["make:crud", "Post", "--fields", "data:blob"],
            ["make:crud", "Post", "--fields", "views:integer=many"],
            ["make:model-relation", "Post", "Comment", "--type", "siblings"],
            ["make:model-relation", "Post", "Post", "--type", "one-to-many"],
            ["make:model-relation", "Post", "Metadata", "--type", "many-to-one"],
            ["make:crud", "Registry", "--fields", "name:string"],
            ["make:crud", "Post", "--fields", "comments:text", "--relations", "Comment:one-to-many"],
        ],
    )
    def test_validation_errors(self, project_root: pathlib.Path, argv: List[str]) -> None:
        assert _run(project_root, *argv) == EXIT_VALIDATION_ERROR
        assert not (project_root / "app").exists()

    def test_missing_marker(self, blog: pathlib.Path, capsys: pytest.CaptureFixture[str]) -> None:
        model = blog / POST_MODEL
        model.write_text(model.read_text(encoding="utf-8").replace(RELATIONS_END, ""), encoding="utf-8")
        _run(blog, "make:model-relation", "Post", "Comment", "--type", "one-to-many")

        assert _run(blog, "sync:model-relations") == EXIT_MISSING_MARKER
        assert "MissingMarkerError" in capsys.readouterr().err
        # The other model was still synchronized and recorded
        assert _block(blog, COMMENT_MODEL)
        assert ProjectState(blog).load().manifest.get(COMMENT_MODEL).content_hash == sha256_hex(
            (blog / COMMENT_MODEL).read_text(encoding="utf-8")
        )

    def test_hand_edited_block(self, blog: pathlib.Path) -> None:
        _run(blog, "make:model-relation", "Post", "Comment", "--type", "one-to-many", "--sync")
        model = blog / POST_MODEL
        model.write_text(
            model.read_text(encoding="utf-8").replace('back_populates="post"', 'back_populates="article"'),
            encoding="utf-8",
        )
        assert _run(blog, "sync:model-relations") == EXIT_FILE_CONFLICT
        assert _run(blog, "sync:model-relations", "--force") == EXIT_SUCCESS
        assert 'back_populates="post"' in model.read_text(encoding="utf-8")

    def test_lock_timeout(self, blog: pathlib.Path) -> None:
        with FileLock(blog / ".easydev" / "state.lock"):
            code = run(["--project-root", str(blog), "-q", "--lock-timeout", "0.1", "sync:model-relations"])
        assert code == EXIT_LOCK_TIMEOUT

    def test_corrupted_state(self, blog: pathlib.Path) -> None:
        (blog / ".easydev" / "relations.jsonl").write_text("{broken\n", encoding="utf-8")
        assert _run(blog, "sync:model-relations") == EXIT_STATE_ERROR

    def test_invalid_config(self, project_root: pathlib.Path) -> None:
        (project_root / "easydev.yaml").write_text("basePackage: 'not a package'\n", encoding="utf-8")
        assert _run(project_root, "sync:model-relations") == EXIT_VALIDATION_ERROR

    def test_relation_over_declared_foreign_key(self, project_root: pathlib.Path) -> None:
        assert _run(project_root, "make:crud", "Post", "--fields", "title:string") == EXIT_SUCCESS
        assert _run(project_root, "make:crud", "Comment", "--fields", "body:text,post_id:integer") == EXIT_SUCCESS

        code = _run(project_root, "make:model-relation", "Post", "Comment", "--type", "one-to-many", "--sync")

        assert code == EXIT_RELATION_CONFLICT
        assert len(ProjectState(project_root).load().graph) == 0
        tree = ast.parse((project_root / COMMENT_MODEL).read_text(encoding="utf-8"))
        targets = [
            node.target.id
            for node in ast.walk(tree)
            if isinstance(node, ast.AnnAssign) and isinstance(node.target, ast.Name)
        ]
        assert targets.count("post_id") == 1

    def test_field_over_declared_relation(self, blog: pathlib.Path) -> None:
        _run(blog, "make:model-relation", "Post", "Comment", "--type", "one-to-many", "--sync")
        migration = blog / "migrations/versions/create_comments_table.py"
        before = {path: path.read_bytes() for path in (blog / COMMENT_MODEL, migration)}

        code = _run(blog, "make:crud", "Comment", "--fields", "body:text,post_id:integer", "--force")

        assert code == EXIT_VALIDATION_ERROR
        for path, data in before.items():
            assert path.read_bytes() == data

    def test_broken_stub_keeps_written_files_tracked(self, project_root: pathlib.Path) -> None:
        stubs = project_root / "stubs"
        stubs.mkdir()
        broken = stubs / "relation.one_to_many.stub"
        broken.write_text("{{ nope }}\n", encoding="utf-8")
        (project_root / "easydev.yaml").write_text("templatesPath: stubs\n", encoding="utf-8")
        assert _run(project_root, "make:crud", "Post", "--fields", "title:string") == EXIT_SUCCESS

        code = _run(
            project_root, "make:crud", "Comment", "--fields", "body:text", "--relations", "Post:belongsTo"
        )

        assert code == EXIT_TEMPLATE_ERROR
        session = ProjectState(project_root).load()
        assert session.manifest.get(COMMENT_MODEL).content_hash == sha256_hex(
            (project_root / COMMENT_MODEL).read_text(encoding="utf-8")
        )
        assert len(session.graph) == 1

        broken.unlink()
        assert _run(project_root, "sync:model-relations") == EXIT_SUCCESS
        assert _block(project_root, POST_MODEL)[0].startswith("comments: Mapped")


# ===========================================================================
# Relation management
# ===========================================================================


class TestRelationCommands:
    def test_list(self, blog: pathlib.Path, capsys: pytest.CaptureFixture[str]) -> None:
        _run(blog, "make:model-relation", "Post", "Comment", "--type", "one-to-many")
        _run(blog, "make:model-relation", "User", "Post", "--type", "hasMany")
        capsys.readouterr()

        assert run(["--project-root", str(blog), "relation:list"]) == EXIT_SUCCESS
        assert capsys.readouterr().out.splitlines() == [
            "Post one_to_many Comment",
            "User one_to_many Post",
        ]

        assert run(["--project-root", str(blog), "relation:list", "comment"]) == EXIT_SUCCESS
        assert capsys.readouterr().out.splitlines() == ["Post one_to_many Comment"]

    def test_remove_by_inverse_and_sync(self, blog: pathlib.Path) -> None:
        _run(blog, "make:model-relation", "Post", "Comment", "--type", "one-to-many", "--sync")
        code = _run(blog, "relation:remove", "Comment", "Post", "--type", "many-to-one", "--sync")
        assert code == EXIT_SUCCESS
        assert len(RelationGraph.loads((blog / ".easydev" / "relations.jsonl").read_text(encoding="utf-8"))) == 0
        assert _block(blog, POST_MODEL) == []
        assert _block(blog, COMMENT_MODEL) == []

    def test_remove_undeclared(self, blog: pathlib.Path) -> None:
        assert _run(blog, "relation:remove", "Post", "Comment", "--type", "one-to-many") == EXIT_VALIDATION_ERROR


# ===========================================================================
# Configuration
# ===========================================================================


class TestConfigCommands:
    def test_publish(self, project_root: pathlib.Path) -> None:
        assert _run(project_root, "config:publish") == EXIT_SUCCESS
        assert "outputPaths:" in (project_root / "easydev.yaml").read_text(encoding="utf-8")
        assert _run(project_root, "config:publish") == EXIT_FILE_CONFLICT
        assert _run(project_root, "config:publish", "--force") == EXIT_SUCCESS

    def test_output_paths_respected(self, project_root: pathlib.Path) -> None:
        (project_root / "easydev.yaml").write_text(
            "outputPaths:\n  model: src/blog/models\n", encoding="utf-8"
        )
        assert _run(project_root, "make:crud", "Post", "--fields", "title:string") == EXIT_SUCCESS
        assert (project_root / "src/blog/models/post.py").is_file()
        assert (project_root / "app/routers/post.py").is_file()

    def test_template_override(self, project_root: pathlib.Path) -> None:
        stubs = project_root / "stubs"
        stubs.mkdir()
        (stubs / "relation.one_to_many.stub").write_text(
            "{{ accessor }} = relationship(\"{{ related_class }}\")", encoding="utf-8"
        )
        (project_root / "easydev.yaml").write_text("templatesPath: stubs\n", encoding="utf-8")
        _run(project_root, "make:crud", "Post")
        _run(project_root, "make:crud", "Comment")
        _run(project_root, "make:model-relation", "Post", "Comment", "--type", "one-to-many", "--sync")
        assert _block(project_root, POST_MODEL) == ['comments = relationship("Comment")']


# ===========================================================================
# Argument parsing
# ===========================================================================


class TestArgumentParsing:
    def test_version(self, capsys: pytest.CaptureFixture[str]) -> None:
        with pytest.raises(SystemExit) as exc_info:
            run(["--version"])
        assert exc_info.value.code == 0
        assert __version__ in capsys.readouterr().out

    @pytest.mark.parametrize(
        "argv",
        [
            [],
            ["make:crud"],
            ["make:model-relation", "Post", "Comment"],
            ["unknown:command"],
        ],
    )
    def test_usage_errors(self, argv: List[str]) -> None:
        with pytest.raises(SystemExit) as exc_info:
            run(argv)
        assert exc_info.value.code == 2

    def test_cli_main_exits_with_code(self, project_root: pathlib.Path) -> None:
        with pytest.raises(SystemExit) as exc_info:
            cli_main(["--project-root", str(project_root), "-q", "relation:list"])
        assert exc_info.value.code == EXIT_SUCCESS
