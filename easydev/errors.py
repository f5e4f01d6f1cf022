# File: easydev/errors.py
"""
EasyDev - Error Taxonomy
=========================

Every failure the tool can report to a user is an ``EasyDevError``.  The
CLI maps each family to its own exit code (see ``easydev.cli``), so the
hierarchy below is part of the public contract:

    EasyDevError
    ├── ValidationError          bad user input, nothing mutated
    │   ├── InvalidNameError
    │   ├── ReservedNameError
    │   ├── DuplicateEntityError
    │   ├── DuplicateFieldError
    │   ├── InvalidTypeError
    │   ├── InvalidDefaultError
    │   ├── InvalidRelationError
    │   └── ConfigError
    ├── RelationConflictError    graph invariant violation, graph unchanged
    ├── FileConflictError        on-disk drift, file unchanged
    ├── MissingMarkerError       sync target has no managed block
    ├── LockTimeoutError         state lock contention
    ├── TemplateError
    │   ├── UnknownTemplateError
    │   └── MissingBindingError
    └── StateError               persisted state unreadable
"""

from __future__ import annotations

from typing import Any, List, Optional, Sequence


class EasyDevError(Exception):
    """Base class for all errors surfaced to the CLI boundary."""

    @property
    def kind(self) -> str:
        """Error kind shown to users (the class name)."""
        return type(self).__name__


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class ValidationError(EasyDevError):
    """
    Invalid user input.

    ``subject`` names the entity, field or option at fault and ``value`` the
    offending value, when there is one.
    """

    def __init__(
        self,
        message: str,
        *,
        subject: Optional[str] = None,
        value: Any = None,
    ) -> None:
        super().__init__(message)
        self.subject: Optional[str] = subject
        self.value: Any = value


class InvalidNameError(ValidationError):
    """Entity or field name is not a usable identifier."""


class ReservedNameError(ValidationError):
    """Name collides with a reserved word of the generated code."""


class DuplicateEntityError(ValidationError):
    """Entity maps to the same module/table as an already generated one."""


class DuplicateFieldError(ValidationError):
    """Field declared twice within one entity."""


class InvalidTypeError(ValidationError):
    """Field type outside the configured set."""


class InvalidDefaultError(ValidationError):
    """Default value cannot be coerced to the field type."""


class InvalidRelationError(ValidationError):
    """Relation declaration is malformed (unknown kind, self-reference)."""


class ConfigError(ValidationError):
    """Configuration file is unreadable or invalid."""


# ---------------------------------------------------------------------------
# Relation graph
# ---------------------------------------------------------------------------


class RelationConflictError(EasyDevError):
    """A relation duplicates or contradicts one already in the graph."""

    def __init__(self, message: str, *, attempted: Any = None, existing: Any = None) -> None:
        super().__init__(message)
        self.attempted: Any = attempted
        self.existing: Any = existing


# ---------------------------------------------------------------------------
# Files
# ---------------------------------------------------------------------------


class FileConflictError(EasyDevError):
    """Destination file exists or drifted; it was left untouched."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"{path}: {reason} (use --force to overwrite)")
        self.path: str = path
        self.reason: str = reason


class MissingMarkerError(EasyDevError):
    """Model file has no managed relation block."""

    def __init__(self, path: str, entity: Optional[str] = None) -> None:
        who: str = f" for entity '{entity}'" if entity else ""
        super().__init__(
            f"{path}: relation markers not found{who}; "
            "the file is not managed by easydev"
        )
        self.path: str = path
        self.entity: Optional[str] = entity


class LockTimeoutError(EasyDevError):
    """The state lock could not be acquired in time."""

    def __init__(self, path: str, timeout: float) -> None:
        super().__init__(
            f"{path}: could not acquire lock within {timeout:.1f}s; "
            "another easydev process is running"
        )
        self.path: str = path
        self.timeout: float = timeout


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------


class TemplateError(EasyDevError):
    """Base class for template rendering failures."""


class UnknownTemplateError(TemplateError):
    """No template registered under the requested key."""

    def __init__(self, key: str, known: Sequence[str] = ()) -> None:
        hint: str = f" (known: {', '.join(sorted(known))})" if known else ""
        super().__init__(f"unknown template '{key}'{hint}")
        self.key: str = key


class MissingBindingError(TemplateError):
    """Template placeholders without a binding."""

    def __init__(self, key: str, missing: Sequence[str]) -> None:
        super().__init__(
            f"template '{key}' has unbound placeholder(s): {', '.join(missing)}"
        )
        self.key: str = key
        self.missing: List[str] = list(missing)


# ---------------------------------------------------------------------------
# Persisted state
# ---------------------------------------------------------------------------


class StateError(EasyDevError):
    """Persisted relation graph or manifest cannot be read."""

    def __init__(self, path: str, detail: str) -> None:
        super().__init__(f"{path}: {detail}")
        self.path: str = path
        self.detail: str = detail


__all__: List[str] = [
    "EasyDevError",
    "ValidationError",
    "InvalidNameError",
    "ReservedNameError",
    "DuplicateEntityError",
    "DuplicateFieldError",
    "InvalidTypeError",
    "InvalidDefaultError",
    "InvalidRelationError",
    "ConfigError",
    "RelationConflictError",
    "FileConflictError",
    "MissingMarkerError",
    "LockTimeoutError",
    "TemplateError",
    "UnknownTemplateError",
    "MissingBindingError",
    "StateError",
]
