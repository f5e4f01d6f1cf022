"""
tests/test_config.py
Unit tests for easydev.config (EasyDevConfig, load_config, publish_config).
"""

from __future__ import annotations

import json
import pathlib

import pytest
import yaml

from easydev.config import (
    DEFAULT_OUTPUT_PATHS,
    EasyDevConfig,
    find_config_file,
    load_config,
    publish_config,
)
from easydev.errors import ConfigError, FileConflictError, ValidationError
from easydev.models import ArtifactKind


class TestDefaults:
    def test_defaults(self, project_root: pathlib.Path) -> None:
        config = load_config(project_root)
        assert config.output_paths == DEFAULT_OUTPUT_PATHS
        assert config.base_package == "app"
        assert config.templates_dir(project_root) is None
        assert "uuid" in config.field_types
        assert config.lock_timeout == 10.0

    def test_output_dir(self, project_root: pathlib.Path) -> None:
        config = EasyDevConfig()
        assert config.output_dir(ArtifactKind.MIGRATION, project_root) == (
            project_root / "migrations" / "versions"
        )

    @pytest.mark.parametrize(
        "path,expected",
        [
            ("app/models", "app.models"),
            ("src/blog/models", "blog.models"),
            ("./app/models", "app.models"),
            ("my-app/models", "app.models"),
        ],
    )
    def test_import_package(self, path: str, expected: str) -> None:
        config = EasyDevConfig(outputPaths={"model": path})
        assert config.import_package(ArtifactKind.MODEL) == expected


class TestLoading:
    def test_yaml_merges_output_paths(self, project_root: pathlib.Path) -> None:
        (project_root / "easydev.yaml").write_text(
            "outputPaths:\n  model: src/app/models\nbasePackage: blog\n", encoding="utf-8"
        )
        config = load_config(project_root)
        assert config.output_paths[ArtifactKind.MODEL] == "src/app/models"
        assert config.output_paths[ArtifactKind.CONTROLLER] == "app/routers"
        assert config.base_package == "blog"

    def test_json_file(self, project_root: pathlib.Path) -> None:
        (project_root / "easydev.json").write_text(
            json.dumps({"fieldTypes": ["String", "integer", "string"], "templatesPath": "stubs"}),
            encoding="utf-8",
        )
        config = load_config(project_root)
        assert config.field_types == ["string", "integer"]
        assert config.templates_dir(project_root) == project_root / "stubs"

    def test_yaml_preferred_over_json(self, project_root: pathlib.Path) -> None:
        (project_root / "easydev.json").write_text("{}", encoding="utf-8")
        (project_root / "easydev.yaml").write_text("lockTimeout: 3\n", encoding="utf-8")
        assert find_config_file(project_root) == project_root / "easydev.yaml"
        assert load_config(project_root).lock_timeout == 3.0

    def test_explicit_path(self, project_root: pathlib.Path, tmp_path: pathlib.Path) -> None:
        custom = tmp_path / "custom.yml"
        custom.write_text("basePackage: service.core\n", encoding="utf-8")
        assert load_config(project_root, custom).base_package == "service.core"

    def test_missing_explicit_path(self, project_root: pathlib.Path) -> None:
        with pytest.raises(ConfigError):
            load_config(project_root, project_root / "nope.yaml")

    @pytest.mark.parametrize(
        "content",
        [
            "outputPaths:\n  serializer: app/serializers\n",
            "outputPaths:\n  model: ''\n",
            "fieldTypes: [blob]\n",
            "fieldTypes: []\n",
            "basePackage: 'not valid'\n",
            "lockTimeout: -1\n",
            "unknownKey: 1\n",
            "- a list\n",
            "outputPaths: [\n",
        ],
    )
    def test_invalid_values(self, project_root: pathlib.Path, content: str) -> None:
        (project_root / "easydev.yaml").write_text(content, encoding="utf-8")
        with pytest.raises(ConfigError) as exc_info:
            load_config(project_root)
        assert isinstance(exc_info.value, ValidationError)

    def test_empty_file_means_defaults(self, project_root: pathlib.Path) -> None:
        (project_root / "easydev.yaml").write_text("", encoding="utf-8")
        assert load_config(project_root) == EasyDevConfig()


class TestPublish:
    def test_publish_round_trips(self, project_root: pathlib.Path) -> None:
        target = publish_config(project_root)
        assert target == project_root / "easydev.yaml"
        text = target.read_text(encoding="utf-8")
        assert text.startswith("# easydev configuration")
        data = yaml.safe_load(text)
        assert data["outputPaths"]["model"] == "app/models"
        assert load_config(project_root) == EasyDevConfig()

    def test_publish_refuses_overwrite(self, project_root: pathlib.Path) -> None:
        (project_root / "easydev.yaml").write_text("basePackage: mine\n", encoding="utf-8")
        with pytest.raises(FileConflictError):
            publish_config(project_root)
        assert load_config(project_root).base_package == "mine"
        publish_config(project_root, force=True)
        assert load_config(project_root).base_package == "app"
