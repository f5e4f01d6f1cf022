# File: easydev/models.py
"""
EasyDev - Core Data Models
===========================
Pydantic V2 models for everything the tool reasons about: entity fields,
relation declarations, schema descriptors and the records of generated
artifacts.  These models are the single source of truth for the pipeline:

    CLI input → SchemaDescriptor → CodeGenerator → GeneratedArtifact
    CLI input → RelationSpec → RelationGraph → RelationSynchronizer

All descriptor-side models are frozen: once validated they are never
mutated, only replaced.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Set, Tuple, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictFloat,
    StrictInt,
    StrictStr,
    field_validator,
)

from easydev.errors import InvalidRelationError
from easydev.utils import entity_to_module, entity_to_table

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("easydev.models")

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class FieldType(str, Enum):
    """Primitive field types an entity may declare."""

    STRING = "string"
    TEXT = "text"
    INTEGER = "integer"
    BIGINTEGER = "biginteger"
    FLOAT = "float"
    DECIMAL = "decimal"
    BOOLEAN = "boolean"
    DATE = "date"
    DATETIME = "datetime"
    TIME = "time"
    JSON = "json"
    UUID = "uuid"


class ArtifactKind(str, Enum):
    """Kinds of source file produced for an entity."""

    MODEL = "model"
    CONTROLLER = "controller"
    MIGRATION = "migration"
    VALIDATOR = "validator"


class RelationKind(str, Enum):
    """Relationship cardinalities, read from the declaring entity's side."""

    ONE_TO_ONE = "one_to_one"
    ONE_TO_MANY = "one_to_many"
    MANY_TO_ONE = "many_to_one"
    MANY_TO_MANY = "many_to_many"

    @property
    def inverse(self) -> "RelationKind":
        """The same relation seen from the other entity."""
        return _INVERSE_KINDS[self]

    @classmethod
    def parse(cls, value: Union[str, "RelationKind"]) -> "RelationKind":
        """
        Parse a user-supplied kind.

        Accepts the enum values, dashed/camel spellings (``one-to-many``,
        ``OneToMany``) and the Eloquent verbs (``hasOne``, ``hasMany``,
        ``belongsTo``, ``belongsToMany``).
        """
        if isinstance(value, cls):
            return value
        key: str = str(value).strip().lower().replace("-", "").replace("_", "").replace(" ", "")
        try:
            return _KIND_ALIASES[key]
        except KeyError:
            raise InvalidRelationError(
                f"unknown relation type '{value}' "
                "(expected one-to-one, one-to-many, many-to-one or many-to-many)",
                subject="type",
                value=value,
            ) from None


_INVERSE_KINDS: Dict[RelationKind, RelationKind] = {
    RelationKind.ONE_TO_ONE: RelationKind.ONE_TO_ONE,
    RelationKind.ONE_TO_MANY: RelationKind.MANY_TO_ONE,
    RelationKind.MANY_TO_ONE: RelationKind.ONE_TO_MANY,
    RelationKind.MANY_TO_MANY: RelationKind.MANY_TO_MANY,
}

_KIND_ALIASES: Dict[str, RelationKind] = {
    "onetoone": RelationKind.ONE_TO_ONE,
    "hasone": RelationKind.ONE_TO_ONE,
    "onetomany": RelationKind.ONE_TO_MANY,
    "hasmany": RelationKind.ONE_TO_MANY,
    "manytoone": RelationKind.MANY_TO_ONE,
    "belongsto": RelationKind.MANY_TO_ONE,
    "manytomany": RelationKind.MANY_TO_MANY,
    "belongstomany": RelationKind.MANY_TO_MANY,
}


# ---------------------------------------------------------------------------
# Shared model configuration
# ---------------------------------------------------------------------------

_FROZEN_CONFIG: ConfigDict = ConfigDict(
    frozen=True,
    populate_by_name=True,
    extra="forbid",
)

# Persisted records tolerate keys written by newer versions
_RECORD_CONFIG: ConfigDict = ConfigDict(
    frozen=True,
    populate_by_name=True,
    extra="ignore",
)

DefaultValue = Union[StrictBool, StrictInt, StrictFloat, StrictStr]


# ---------------------------------------------------------------------------
# Entity description
# ---------------------------------------------------------------------------


class FieldSpec(BaseModel):
    """A single declared field of an entity."""

    model_config = _FROZEN_CONFIG

    name: str = Field(..., min_length=1, description="snake_case attribute name.")
    type: FieldType = Field(..., description="Primitive field type.")
    nullable: bool = Field(default=False, description="Whether NULL is allowed.")
    default: Optional[DefaultValue] = Field(
        default=None, description="Default value, already coerced to the type."
    )

    def __repr__(self) -> str:
        flag: str = "?" if self.nullable else ""
        dflt: str = f"={self.default!r}" if self.default is not None else ""
        return f"<FieldSpec {self.name}:{self.type.value}{flag}{dflt}>"


class RelationSpec(BaseModel):
    """
    One declared relationship between two entities.

    Serialised with the keys ``from``, ``to`` and ``kind``; unknown keys in
    persisted records are ignored so newer files stay readable.
    """

    model_config = _RECORD_CONFIG

    from_entity: str = Field(..., alias="from", min_length=1)
    to_entity: str = Field(..., alias="to", min_length=1)
    kind: RelationKind

    @field_validator("kind", mode="before")
    @classmethod
    def _parse_kind(cls, v: Any) -> RelationKind:
        return RelationKind.parse(v)

    @property
    def pair(self) -> Tuple[str, str]:
        return (self.from_entity, self.to_entity)

    @property
    def entities(self) -> FrozenSet[str]:
        return frozenset(self.pair)

    def inverse(self) -> "RelationSpec":
        """The implied declaration from the other side."""
        return RelationSpec(
            from_entity=self.to_entity,
            to_entity=self.from_entity,
            kind=self.kind.inverse,
        )

    def sort_key(self) -> Tuple[str, str, str]:
        return (self.from_entity, self.to_entity, self.kind.value)

    def to_record(self) -> Dict[str, str]:
        return {"from": self.from_entity, "to": self.to_entity, "kind": self.kind.value}

    def __str__(self) -> str:
        return f"{self.from_entity} {self.kind.value} {self.to_entity}"

    def __repr__(self) -> str:
        return f"<RelationSpec {self}>"


class SchemaDescriptor(BaseModel):
    """
    Normalised description of one CRUD generation request.

    Built only by ``easydev.schema.build_descriptor`` after every field has
    been validated.
    """

    model_config = _FROZEN_CONFIG

    entity: str = Field(..., min_length=1, description="PascalCase entity name.")
    fields: Tuple[FieldSpec, ...] = Field(default=(), description="Fields in declaration order.")
    relations: FrozenSet[RelationSpec] = Field(
        default=frozenset(), description="Declarations touching this entity."
    )

    @property
    def class_name(self) -> str:
        return self.entity

    @property
    def module_name(self) -> str:
        return entity_to_module(self.entity)

    @property
    def table_name(self) -> str:
        return entity_to_table(self.entity)

    @property
    def field_names(self) -> List[str]:
        return [f.name for f in self.fields]

    def __repr__(self) -> str:
        return (
            f"<SchemaDescriptor {self.entity} fields={len(self.fields)} "
            f"relations={len(self.relations)}>"
        )


# ---------------------------------------------------------------------------
# Generated artifacts
# ---------------------------------------------------------------------------


class GeneratedArtifact(BaseModel):
    """
    Record of a file last written by the tool.

    ``content_hash`` covers the whole file; ``block_hash`` (models only)
    covers the managed relation block so hand edits elsewhere in the file
    do not block a sync.
    """

    model_config = _RECORD_CONFIG

    path: str = Field(..., min_length=1, description="Project-relative POSIX path.")
    kind: ArtifactKind
    entity: str = Field(..., min_length=1)
    content_hash: str = Field(..., alias="contentHash")
    block_hash: Optional[str] = Field(default=None, alias="blockHash")
    pivot: bool = Field(default=False, description="Pivot table module of a many-to-many pair.")
    fields: Tuple[str, ...] = Field(
        default=(), description="Field names declared on a model, in order."
    )

    def __repr__(self) -> str:
        return f"<GeneratedArtifact {self.kind.value} {self.path} {self.content_hash[:8]}>"


class ArtifactManifest(BaseModel):
    """All generated artifacts of a project, keyed by path."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    version: int = 1
    artifacts: Dict[str, GeneratedArtifact] = Field(default_factory=dict)

    def get(self, path: str) -> Optional[GeneratedArtifact]:
        return self.artifacts.get(path)

    def record(self, artifact: GeneratedArtifact) -> None:
        self.artifacts[artifact.path] = artifact

    def models(self) -> List[GeneratedArtifact]:
        """Entity model artifacts (pivot tables excluded) ordered by entity name."""
        found: List[GeneratedArtifact] = [
            a for a in self.artifacts.values() if a.kind == ArtifactKind.MODEL and not a.pivot
        ]
        return sorted(found, key=lambda a: (a.entity, a.path))

    def entities(self) -> Set[str]:
        """Entities that have a generated model."""
        return {a.entity for a in self.models()}

    def field_names(self) -> Dict[str, Tuple[str, ...]]:
        """Declared field names per generated entity."""
        return {a.entity: a.fields for a in self.models()}


__all__: List[str] = [
    "FieldType",
    "ArtifactKind",
    "RelationKind",
    "DefaultValue",
    "FieldSpec",
    "RelationSpec",
    "SchemaDescriptor",
    "GeneratedArtifact",
    "ArtifactManifest",
]

logger.debug("easydev.models loaded.")
