# File: easydev/schema.py
"""
EasyDev - Schema Descriptor Builder
====================================
Turns a raw CRUD request (entity name + field list) into a validated,
immutable ``SchemaDescriptor``.

Field list grammar (comma separated)::

    name:type[?][:nullable][=default]

    title:string,body:text?,views:integer=0,published:boolean=false

Every check runs before the descriptor is constructed, so a failing request
never yields a partial descriptor and never mutates project state.

Usage by downstream modules:
    from easydev.schema import build_descriptor
    descriptor = build_descriptor("Post", "title:string,body:text")
"""

from __future__ import annotations

import logging
import re
from typing import (
    Any,
    Collection,
    FrozenSet,
    Iterable,
    List,
    Mapping,
    Optional,
    Sequence,
    Set,
    Union,
)

from easydev.errors import (
    DuplicateEntityError,
    DuplicateFieldError,
    InvalidDefaultError,
    InvalidNameError,
    InvalidRelationError,
    InvalidTypeError,
    ReservedNameError,
)
from easydev.models import (
    DefaultValue,
    FieldSpec,
    FieldType,
    RelationKind,
    RelationSpec,
    SchemaDescriptor,
)
from easydev.relations import RelationGraph
from easydev.utils import PYTHON_KEYWORDS, entity_to_module, entity_to_table

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("easydev.schema")

# ---------------------------------------------------------------------------
# Naming rules
# ---------------------------------------------------------------------------

_ENTITY_RE: re.Pattern[str] = re.compile(r"^[A-Za-z][A-Za-z0-9]*$")
_FIELD_RE: re.Pattern[str] = re.compile(r"^[a-z_][a-z0-9_]*$")

# Names imported or defined by every generated file
_RESERVED_CLASS_NAMES: FrozenSet[str] = frozenset({
    "APIRouter", "Any", "Base", "BaseModel", "ConfigDict", "Depends",
    "Dict", "ForeignKey", "HTTPException", "List", "Mapped", "Optional",
    "Session", "Table",
})

# Attribute names taken by the generated model or by SQLAlchemy declarative
_RESERVED_FIELD_NAMES: FrozenSet[str] = frozenset({
    "id", "metadata", "registry", "query",
})

_TRUE_WORDS: FrozenSet[str] = frozenset({"true", "1", "yes", "on"})
_FALSE_WORDS: FrozenSet[str] = frozenset({"false", "0", "no", "off"})

RawFields = Union[None, str, Sequence[Union[str, Mapping[str, Any]]]]


# ---------------------------------------------------------------------------
# Entity names
# ---------------------------------------------------------------------------


def validate_entity_name(name: str) -> str:
    """
    Validate an entity name and return its canonical form.

    The first letter is upper-cased (``post`` -> ``Post``); everything else
    is kept as typed.

    Raises:
        InvalidNameError: not alphanumeric / does not start with a letter.
        ReservedNameError: clashes with a keyword or a generated-code name.
    """
    raw: str = (name or "").strip()
    if not _ENTITY_RE.match(raw):
        raise InvalidNameError(
            f"invalid entity name '{name}': use letters and digits, starting with a letter",
            subject="entity",
            value=name,
        )

    canonical: str = raw[0].upper() + raw[1:]

    if canonical in _RESERVED_CLASS_NAMES:
        raise ReservedNameError(
            f"entity name '{canonical}' is reserved by the generated code",
            subject="entity",
            value=canonical,
        )
    for derived in (entity_to_module(canonical), entity_to_table(canonical)):
        if derived in PYTHON_KEYWORDS:
            raise ReservedNameError(
                f"entity name '{canonical}' maps to the Python keyword '{derived}'",
                subject="entity",
                value=canonical,
            )
        # Module and table names become accessors on related models
        if derived in _RESERVED_FIELD_NAMES:
            raise ReservedNameError(
                f"entity name '{canonical}' maps to '{derived}', "
                f"an attribute name reserved on generated models",
                subject="entity",
                value=canonical,
            )
    return canonical


def check_entity_unique(entity: str, known_entities: Iterable[str]) -> None:
    """
    Reject *entity* when a different generated entity owns the same module
    or table name (``Post`` vs ``POST``).  The same name is a regeneration
    and is allowed here; file conflicts are handled by the generator.
    """
    module: str = entity_to_module(entity)
    table: str = entity_to_table(entity)
    for other in known_entities:
        if other == entity:
            continue
        if entity_to_module(other) == module or entity_to_table(other) == table:
            raise DuplicateEntityError(
                f"entity '{entity}' collides with already generated entity '{other}'",
                subject="entity",
                value=entity,
            )


# ---------------------------------------------------------------------------
# Fields
# ---------------------------------------------------------------------------


def _coerce_default(field_name: str, field_type: FieldType, raw: Any) -> DefaultValue:
    """Coerce a raw default to the Python type matching *field_type*."""
    text: str = str(raw).strip()
    try:
        if field_type in (FieldType.INTEGER, FieldType.BIGINTEGER):
            if isinstance(raw, bool):
                raise ValueError("boolean given")
            return int(text)
        if field_type in (FieldType.FLOAT, FieldType.DECIMAL):
            if isinstance(raw, bool):
                raise ValueError("boolean given")
            return float(text)
        if field_type == FieldType.BOOLEAN:
            if isinstance(raw, bool):
                return raw
            lowered: str = text.lower()
            if lowered in _TRUE_WORDS:
                return True
            if lowered in _FALSE_WORDS:
                return False
            raise ValueError("not a boolean")
        if field_type == FieldType.JSON:
            raise ValueError("json fields take no default")
    except ValueError as exc:
        raise InvalidDefaultError(
            f"field '{field_name}': default {raw!r} is not a valid {field_type.value} ({exc})",
            subject=field_name,
            value=raw,
        ) from exc
    return text if not isinstance(raw, str) else raw


def _validate_field_name(name: str) -> str:
    if not _FIELD_RE.match(name):
        raise InvalidNameError(
            f"invalid field name '{name}': use lowercase snake_case",
            subject=name,
            value=name,
        )
    if name in PYTHON_KEYWORDS or name in _RESERVED_FIELD_NAMES:
        raise ReservedNameError(
            f"field name '{name}' is reserved",
            subject=name,
            value=name,
        )
    return name


def _resolve_type(
    field_name: str,
    raw_type: str,
    allowed: Collection[str],
) -> FieldType:
    key: str = raw_type.strip().lower()
    if key not in allowed:
        raise InvalidTypeError(
            f"field '{field_name}': unknown type '{raw_type}' "
            f"(allowed: {', '.join(sorted(allowed))})",
            subject=field_name,
            value=raw_type,
        )
    try:
        return FieldType(key)
    except ValueError:
        raise InvalidTypeError(
            f"field '{field_name}': type '{raw_type}' is not supported by the generator",
            subject=field_name,
            value=raw_type,
        ) from None


def parse_field_token(token: str, allowed: Collection[str]) -> FieldSpec:
    """
    Parse one ``name:type[?][:nullable][=default]`` token.

    Examples:
        >>> parse_field_token("views:integer=0", ["integer"]).default
        0
    """
    raw: str = token.strip()
    default_raw: Optional[str] = None
    if "=" in raw:
        raw, default_raw = raw.split("=", 1)

    parts: List[str] = [p.strip() for p in raw.split(":")]
    if len(parts) < 2 or not parts[0] or not parts[1]:
        raise InvalidNameError(
            f"malformed field '{token}': expected name:type",
            subject=token,
            value=token,
        )

    name: str = _validate_field_name(parts[0])
    type_text: str = parts[1]
    nullable: bool = False
    if type_text.endswith("?"):
        nullable = True
        type_text = type_text[:-1]

    for modifier in parts[2:]:
        if modifier.lower() == "nullable":
            nullable = True
        else:
            raise InvalidNameError(
                f"field '{name}': unknown modifier '{modifier}'",
                subject=name,
                value=modifier,
            )

    field_type: FieldType = _resolve_type(name, type_text, allowed)
    default: Optional[DefaultValue] = None
    if default_raw is not None:
        default = _coerce_default(name, field_type, default_raw)

    return FieldSpec(name=name, type=field_type, nullable=nullable, default=default)


def _field_from_mapping(item: Mapping[str, Any], allowed: Collection[str]) -> FieldSpec:
    name: str = _validate_field_name(str(item.get("name", "")).strip())
    field_type: FieldType = _resolve_type(name, str(item.get("type", "")), allowed)
    default: Optional[DefaultValue] = None
    if item.get("default") is not None:
        default = _coerce_default(name, field_type, item["default"])
    return FieldSpec(
        name=name,
        type=field_type,
        nullable=bool(item.get("nullable", False)),
        default=default,
    )


def parse_fields(raw_fields: RawFields, allowed: Optional[Collection[str]] = None) -> List[FieldSpec]:
    """
    Parse a field list in any accepted shape into ``FieldSpec`` objects,
    rejecting duplicates.  Order is preserved.
    """
    allowed_types: Collection[str] = (
        allowed if allowed is not None else [t.value for t in FieldType]
    )

    items: List[Union[str, Mapping[str, Any]]]
    if raw_fields is None:
        items = []
    elif isinstance(raw_fields, str):
        items = [t for t in raw_fields.split(",") if t.strip()]
    else:
        items = list(raw_fields)

    specs: List[FieldSpec] = []
    seen: Set[str] = set()
    for item in items:
        spec: FieldSpec = (
            _field_from_mapping(item, allowed_types)
            if isinstance(item, Mapping)
            else parse_field_token(str(item), allowed_types)
        )
        if spec.name in seen:
            raise DuplicateFieldError(
                f"field '{spec.name}' is declared more than once",
                subject=spec.name,
                value=spec.name,
            )
        seen.add(spec.name)
        specs.append(spec)
    return specs


# ---------------------------------------------------------------------------
# Relations given on the make:crud command line
# ---------------------------------------------------------------------------


def parse_relation_list(entity: str, text: Optional[str]) -> List[RelationSpec]:
    """
    Parse ``Comment:one-to-many,User:belongs-to`` into relations declared
    from *entity*.
    """
    if not text:
        return []
    specs: List[RelationSpec] = []
    for token in (t.strip() for t in text.split(",")):
        if not token:
            continue
        target, sep, kind = token.partition(":")
        if not sep or not target.strip() or not kind.strip():
            raise InvalidRelationError(
                f"malformed relation '{token}': expected Entity:type",
                subject="relations",
                value=token,
            )
        specs.append(
            RelationSpec(
                from_entity=entity,
                to_entity=validate_entity_name(target),
                kind=RelationKind.parse(kind),
            )
        )
    return specs


# ---------------------------------------------------------------------------
# Descriptor
# ---------------------------------------------------------------------------


def _check_relation_attributes(
    entity: str,
    fields: Sequence[FieldSpec],
    relations: Iterable[RelationSpec],
) -> None:
    """Reject fields that a relation accessor or foreign key would redeclare."""
    names: Set[str] = {f.name for f in fields}
    for edge in RelationGraph(relations).edges_for(entity):
        for attr in edge.attribute_names:
            if attr in names:
                raise DuplicateFieldError(
                    f"field '{attr}' of {entity} is also declared by the relation "
                    f"'{edge.declared}'",
                    subject=attr,
                    value=str(edge.declared),
                )


def build_descriptor(
    entity_name: str,
    raw_fields: RawFields = None,
    *,
    known_entities: Iterable[str] = (),
    relations: Iterable[RelationSpec] = (),
    field_types: Optional[Collection[str]] = None,
) -> SchemaDescriptor:
    """
    Validate a CRUD request and build its ``SchemaDescriptor``.

    Args:
        entity_name: Entity as typed by the user.
        raw_fields: Field string, token list or list of mappings.
        known_entities: Entities that already have generated models.
        relations: Relation declarations; only those touching the entity
            are kept.
        field_types: Allowed type names (defaults to every ``FieldType``).

    Raises:
        ValidationError: any subclass, before anything is constructed.
    """
    entity: str = validate_entity_name(entity_name)
    check_entity_unique(entity, known_entities)
    fields: List[FieldSpec] = parse_fields(raw_fields, field_types)
    touching: FrozenSet[RelationSpec] = frozenset(
        r for r in relations if entity in r.entities
    )
    _check_relation_attributes(entity, fields, touching)

    descriptor: SchemaDescriptor = SchemaDescriptor(
        entity=entity,
        fields=tuple(fields),
        relations=touching,
    )
    logger.debug("Built descriptor %r", descriptor)
    return descriptor


__all__: List[str] = [
    "validate_entity_name",
    "check_entity_unique",
    "parse_field_token",
    "parse_fields",
    "parse_relation_list",
    "build_descriptor",
]
