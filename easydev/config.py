# File: easydev/config.py
"""
EasyDev - Configuration
========================
Project configuration: where templates come from, where each artifact kind
is written, which field types entities may use.

Resolution order:
    1. Built-in defaults (``EasyDevConfig()``).
    2. A single override file: ``--config PATH`` or the first of
       ``easydev.yaml`` / ``easydev.yml`` / ``easydev.json`` found in the
       project root.  Keys are merged over the defaults; ``outputPaths``
       is merged per artifact kind.

``publish_config`` writes the defaults to ``easydev.yaml`` so a project can
edit them.

Example ``easydev.yaml``::

    templatesPath: stubs
    outputPaths:
      model: src/app/models
    fieldTypes: [string, text, integer, boolean]
    basePackage: app
    lockTimeout: 10
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from easydev.errors import ConfigError, FileConflictError
from easydev.models import ArtifactKind, FieldType
from easydev.utils import write_file

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("easydev.config")

# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

CONFIG_FILENAMES: Tuple[str, ...] = ("easydev.yaml", "easydev.yml", "easydev.json")
PUBLISHED_CONFIG_NAME: str = "easydev.yaml"

DEFAULT_OUTPUT_PATHS: Dict[ArtifactKind, str] = {
    ArtifactKind.MODEL: "app/models",
    ArtifactKind.CONTROLLER: "app/routers",
    ArtifactKind.MIGRATION: "migrations/versions",
    ArtifactKind.VALIDATOR: "app/schemas",
}

_PACKAGE_RE: re.Pattern[str] = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)*$")

_PUBLISHED_HEADER: str = (
    "# easydev configuration\n"
    "#\n"
    "# templatesPath: directory of <key>.stub files overriding built-in templates\n"
    "# outputPaths:   destination directory per artifact kind (project relative)\n"
    "# fieldTypes:    field types accepted by make:crud --fields\n"
    "# basePackage:   import root used by generated modules\n"
    "# lockTimeout:   seconds to wait for another easydev process\n"
    "\n"
)


class EasyDevConfig(BaseModel):
    """Validated project configuration (camelCase keys in files)."""

    model_config = ConfigDict(
        populate_by_name=True,
        extra="forbid",
        validate_assignment=True,
    )

    templates_path: Optional[str] = Field(
        default=None,
        alias="templatesPath",
        description="Directory of template overrides, relative to the project root.",
    )
    output_paths: Dict[ArtifactKind, str] = Field(
        default_factory=lambda: dict(DEFAULT_OUTPUT_PATHS),
        alias="outputPaths",
        description="Destination root per artifact kind.",
    )
    field_types: List[str] = Field(
        default_factory=lambda: [t.value for t in FieldType],
        alias="fieldTypes",
        description="Allowed field types.",
    )
    base_package: str = Field(
        default="app",
        alias="basePackage",
        description="Python package the generated modules live in.",
    )
    lock_timeout: float = Field(
        default=10.0,
        ge=0,
        alias="lockTimeout",
        description="Seconds to wait for the state lock.",
    )

    # -- Validators ---------------------------------------------------------

    @field_validator("output_paths", mode="before")
    @classmethod
    def _merge_output_paths(cls, v: Any) -> Dict[ArtifactKind, str]:
        if v is None:
            return dict(DEFAULT_OUTPUT_PATHS)
        if not isinstance(v, dict):
            raise ValueError("outputPaths must be a mapping of artifact kind to directory")
        merged: Dict[ArtifactKind, str] = dict(DEFAULT_OUTPUT_PATHS)
        for key, path in v.items():
            try:
                kind: ArtifactKind = ArtifactKind(str(getattr(key, "value", key)).lower())
            except ValueError:
                raise ValueError(
                    f"unknown artifact kind '{key}' "
                    f"(expected one of: {', '.join(k.value for k in ArtifactKind)})"
                ) from None
            if not isinstance(path, str) or not path.strip():
                raise ValueError(f"outputPaths.{kind.value} must be a non-empty string")
            merged[kind] = path.strip()
        return merged

    @field_validator("field_types")
    @classmethod
    def _known_field_types(cls, v: List[str]) -> List[str]:
        known: List[str] = [t.value for t in FieldType]
        cleaned: List[str] = []
        for name in v:
            key: str = str(name).strip().lower()
            if key not in known:
                raise ValueError(f"unsupported field type '{name}' (supported: {', '.join(known)})")
            if key not in cleaned:
                cleaned.append(key)
        if not cleaned:
            raise ValueError("fieldTypes must list at least one type")
        return cleaned

    @field_validator("base_package")
    @classmethod
    def _dotted_package(cls, v: str) -> str:
        if not _PACKAGE_RE.match(v):
            raise ValueError(f"basePackage '{v}' is not a dotted Python package name")
        return v

    # -- Helpers ------------------------------------------------------------

    def output_dir(self, kind: ArtifactKind, project_root: Path) -> Path:
        """Absolute destination directory for *kind*."""
        return project_root / self.output_paths[kind]

    def import_package(self, kind: ArtifactKind) -> str:
        """
        Dotted package that generated modules of *kind* are imported from,
        derived from the output path (``app/models`` -> ``app.models``).
        Paths that are not importable fall back to ``<basePackage>.<leaf>``.
        """
        parts: List[str] = [p for p in Path(self.output_paths[kind]).parts if p not in ("", ".")]
        if parts and parts[0] == "src":
            parts = parts[1:]
        dotted: str = ".".join(parts)
        if dotted and _PACKAGE_RE.match(dotted):
            return dotted
        return f"{self.base_package}.{Path(DEFAULT_OUTPUT_PATHS[kind]).name}"

    def templates_dir(self, project_root: Path) -> Optional[Path]:
        if not self.templates_path:
            return None
        return project_root / self.templates_path

    def to_file_dict(self) -> Dict[str, Any]:
        """Serialisable mapping with the camelCase file keys."""
        return self.model_dump(mode="json", by_alias=True)


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def _load_json_file(path: Path) -> Dict[str, Any]:
    """Load and parse a JSON mapping. Raises ConfigError on parse errors."""
    try:
        data: Any = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigError(f"invalid JSON in {path}: {exc}", subject=str(path)) from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(
            f"expected a JSON object at top level of {path}, got {type(data).__name__}",
            subject=str(path),
        )
    return data


def _load_yaml_file(path: Path) -> Dict[str, Any]:
    """Load and parse a YAML mapping. Raises ConfigError on parse errors."""
    try:
        data: Any = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ConfigError(f"invalid YAML in {path}: {exc}", subject=str(path)) from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(
            f"expected a YAML mapping at top level of {path}, got {type(data).__name__}",
            subject=str(path),
        )
    return data


def find_config_file(project_root: Path) -> Optional[Path]:
    """First default-named config file present in *project_root*."""
    for name in CONFIG_FILENAMES:
        candidate: Path = project_root / name
        if candidate.is_file():
            return candidate
    return None


def load_config(project_root: Path, config_path: Optional[Path] = None) -> EasyDevConfig:
    """
    Load the project configuration.

    Args:
        project_root: Directory searched for a default-named config file.
        config_path: Explicit file; must exist.

    Raises:
        ConfigError: missing explicit file, parse error or invalid values.
    """
    path: Optional[Path] = config_path
    if path is not None:
        if not path.is_file():
            raise ConfigError(f"config file not found: {path}", subject=str(path))
    else:
        path = find_config_file(project_root)

    if path is None:
        logger.info("No config file in %s — using defaults.", project_root)
        return EasyDevConfig()

    raw: Dict[str, Any]
    if path.suffix.lower() == ".json":
        raw = _load_json_file(path)
    else:
        raw = _load_yaml_file(path)

    try:
        config: EasyDevConfig = EasyDevConfig.model_validate(raw)
    except PydanticValidationError as exc:
        raise ConfigError(f"invalid configuration in {path}: {exc}", subject=str(path)) from exc

    logger.info("Loaded configuration from %s", path)
    return config


def publish_config(project_root: Path, *, force: bool = False) -> Path:
    """
    Write the default configuration to ``<project_root>/easydev.yaml``.

    Raises:
        FileConflictError: the file exists and *force* is False.
    """
    target: Path = project_root / PUBLISHED_CONFIG_NAME
    if target.exists() and not force:
        raise FileConflictError(PUBLISHED_CONFIG_NAME, "config file already exists")

    body: str = yaml.safe_dump(EasyDevConfig().to_file_dict(), sort_keys=False)
    write_file(target, _PUBLISHED_HEADER + body)
    logger.info("Published default configuration to %s", target)
    return target


__all__: List[str] = [
    "CONFIG_FILENAMES",
    "DEFAULT_OUTPUT_PATHS",
    "EasyDevConfig",
    "find_config_file",
    "load_config",
    "publish_config",
]
