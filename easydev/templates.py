# File: easydev/templates.py
"""
EasyDev - Template Renderer
============================
Fills ``{{ name }}`` placeholders in source templates.

Templates are looked up by key.  Built-in templates cover every artifact the
generator writes (SQLAlchemy 2.0 model, FastAPI router, Pydantic V2 schemas,
Alembic migration) plus one small template per relation accessor shape.  A
project may override or add keys by placing ``<key>.stub`` files in its
``templatesPath`` directory.

**Contract:**
    - ``render`` is pure: the same key and bindings always give the same
      text, which the synchronizer relies on for idempotence.
    - Every placeholder must be bound (``MissingBindingError``); extra
      bindings are ignored.
    - Unknown keys raise ``UnknownTemplateError``.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Dict, List, Mapping, Optional

from easydev.errors import MissingBindingError, UnknownTemplateError

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("easydev.templates")

_PLACEHOLDER_RE: re.Pattern[str] = re.compile(r"\{\{\s*([A-Za-z_][A-Za-z0-9_]*)\s*\}\}")

STUB_SUFFIX: str = ".stub"

# ---------------------------------------------------------------------------
# Built-in templates
# ---------------------------------------------------------------------------

_MODEL_TEMPLATE: str = '''"""
SQLAlchemy model for {{ class_name }}.

Generated by easydev. The block between the relation markers is rewritten by
``easydev sync:model-relations``; everything else may be edited freely.
"""

from __future__ import annotations

{{ imports }}


class {{ class_name }}(Base):
    __tablename__ = "{{ table_name }}"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
{{ columns }}

{{ relations_block }}

    def __repr__(self) -> str:
        return f"<{{ class_name }} id={self.id!r}>"
'''

_CONTROLLER_TEMPLATE: str = '''"""
FastAPI router with CRUD endpoints for {{ class_name }}.

Generated by easydev.
"""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from {{ base_package }}.database import get_db
from {{ models_package }}.{{ module_name }} import {{ class_name }}
from {{ schemas_package }}.{{ module_name }} import (
    {{ class_name }}Create,
    {{ class_name }}Read,
    {{ class_name }}Update,
)

router = APIRouter(prefix="/{{ route_prefix }}", tags=["{{ route_tag }}"])


def _get_or_404(db: Session, item_id: int) -> {{ class_name }}:
    item = db.get({{ class_name }}, item_id)
    if item is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="{{ class_name }} not found",
        )
    return item


@router.get("/", response_model=List[{{ class_name }}Read])
def list_{{ plural_name }}(
    skip: int = 0,
    limit: int = 50,
    db: Session = Depends(get_db),
) -> List[{{ class_name }}]:
    stmt = select({{ class_name }}).order_by({{ class_name }}.id).offset(skip).limit(limit)
    return list(db.scalars(stmt))


@router.post("/", response_model={{ class_name }}Read, status_code=status.HTTP_201_CREATED)
def create_{{ singular_name }}(
    payload: {{ class_name }}Create,
    db: Session = Depends(get_db),
) -> {{ class_name }}:
    item = {{ class_name }}(**payload.model_dump())
    db.add(item)
    db.commit()
    db.refresh(item)
    return item


@router.get("/{item_id}", response_model={{ class_name }}Read)
def read_{{ singular_name }}(item_id: int, db: Session = Depends(get_db)) -> {{ class_name }}:
    return _get_or_404(db, item_id)


@router.patch("/{item_id}", response_model={{ class_name }}Read)
def update_{{ singular_name }}(
    item_id: int,
    payload: {{ class_name }}Update,
    db: Session = Depends(get_db),
) -> {{ class_name }}:
    item = _get_or_404(db, item_id)
    for key, value in payload.model_dump(exclude_unset=True).items():
        setattr(item, key, value)
    db.commit()
    db.refresh(item)
    return item


@router.delete("/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_{{ singular_name }}(item_id: int, db: Session = Depends(get_db)) -> Response:
    item = _get_or_404(db, item_id)
    db.delete(item)
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
'''

_VALIDATOR_TEMPLATE: str = '''"""
Pydantic schemas validating {{ class_name }} payloads.

Generated by easydev.
"""

from __future__ import annotations

{{ imports }}


class {{ class_name }}Base(BaseModel):
{{ base_fields }}


class {{ class_name }}Create({{ class_name }}Base):
    pass


class {{ class_name }}Update(BaseModel):
{{ update_fields }}


class {{ class_name }}Read({{ class_name }}Base):
    model_config = ConfigDict(from_attributes=True)

    id: int
'''

_MIGRATION_TEMPLATE: str = '''"""create {{ table_name }} table

Revision ID: {{ revision }}
Generated by easydev.
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "{{ revision }}"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "{{ table_name }}",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
{{ columns }}
    )


def downgrade() -> None:
    op.drop_table("{{ table_name }}")
'''

_PIVOT_MIGRATION_TEMPLATE: str = '''"""create {{ table_name }} pivot table

Revision ID: {{ revision }}
Generated by easydev.
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "{{ revision }}"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "{{ table_name }}",
        sa.Column("{{ first_key }}", sa.Integer(), sa.ForeignKey("{{ first_table }}.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("{{ second_key }}", sa.Integer(), sa.ForeignKey("{{ second_table }}.id", ondelete="CASCADE"), primary_key=True),
    )


def downgrade() -> None:
    op.drop_table("{{ table_name }}")
'''

_PIVOT_TABLE_TEMPLATE: str = '''"""
Association table between {{ first_class }} and {{ second_class }}.

Generated by easydev.
"""

from __future__ import annotations

from sqlalchemy import Column, ForeignKey, Table

from {{ base_package }}.database import Base

{{ table_name }} = Table(
    "{{ table_name }}",
    Base.metadata,
    Column("{{ first_key }}", ForeignKey("{{ first_table }}.id", ondelete="CASCADE"), primary_key=True),
    Column("{{ second_key }}", ForeignKey("{{ second_table }}.id", ondelete="CASCADE"), primary_key=True),
)
'''

_RELATION_TEMPLATES: Dict[str, str] = {
    "relation.one_to_many": (
        '{{ accessor }}: Mapped[List["{{ related_class }}"]] = relationship('
        '"{{ related_class }}", back_populates="{{ back_populates }}")'
    ),
    "relation.many_to_one": (
        '{{ foreign_key }}: Mapped[int] = mapped_column(ForeignKey("{{ related_table }}.id"))\n'
        '{{ accessor }}: Mapped["{{ related_class }}"] = relationship('
        '"{{ related_class }}", back_populates="{{ back_populates }}")'
    ),
    "relation.one_to_one": (
        '{{ foreign_key }}: Mapped[int] = mapped_column('
        'ForeignKey("{{ related_table }}.id"), unique=True)\n'
        '{{ accessor }}: Mapped["{{ related_class }}"] = relationship('
        '"{{ related_class }}", back_populates="{{ back_populates }}")'
    ),
    "relation.one_to_one_owner": (
        '{{ accessor }}: Mapped[Optional["{{ related_class }}"]] = relationship('
        '"{{ related_class }}", back_populates="{{ back_populates }}", uselist=False)'
    ),
    "relation.many_to_many": (
        '{{ accessor }}: Mapped[List["{{ related_class }}"]] = relationship('
        '"{{ related_class }}", secondary="{{ pivot_table }}", '
        'back_populates="{{ back_populates }}")'
    ),
}

BUILTIN_TEMPLATES: Dict[str, str] = {
    "model": _MODEL_TEMPLATE,
    "controller": _CONTROLLER_TEMPLATE,
    "validator": _VALIDATOR_TEMPLATE,
    "migration": _MIGRATION_TEMPLATE,
    "pivot_migration": _PIVOT_MIGRATION_TEMPLATE,
    "pivot_table": _PIVOT_TABLE_TEMPLATE,
    **_RELATION_TEMPLATES,
}


# ---------------------------------------------------------------------------
# TemplateRenderer class
# ---------------------------------------------------------------------------


class TemplateRenderer:
    """
    Placeholder template engine with per-project overrides.

    Usage::

        renderer = TemplateRenderer(Path("stubs"))
        text = renderer.render("model", {"class_name": "Post", ...})

    Override files are read once per renderer instance.
    """

    def __init__(self, templates_path: Optional[Path] = None) -> None:
        self._templates_path: Optional[Path] = templates_path
        self._overrides: Optional[Dict[str, str]] = None
        logger.debug("TemplateRenderer initialised (overrides=%s).", templates_path)

    # -----------------------------------------------------------------
    # Lookup
    # -----------------------------------------------------------------

    def _load_overrides(self) -> Dict[str, str]:
        if self._overrides is not None:
            return self._overrides

        found: Dict[str, str] = {}
        root: Optional[Path] = self._templates_path
        if root is not None:
            if root.is_dir():
                for stub in sorted(root.glob(f"*{STUB_SUFFIX}")):
                    key: str = stub.name[: -len(STUB_SUFFIX)]
                    found[key] = stub.read_text(encoding="utf-8")
                    logger.info("Template '%s' overridden by %s", key, stub)
            else:
                logger.warning("Templates path %s is not a directory; using built-ins.", root)
        self._overrides = found
        return found

    def keys(self) -> List[str]:
        """Every registered template key."""
        return sorted(set(BUILTIN_TEMPLATES) | set(self._load_overrides()))

    def has(self, key: str) -> bool:
        return key in self._load_overrides() or key in BUILTIN_TEMPLATES

    def source(self, key: str) -> str:
        """Raw template text for *key*."""
        overrides: Dict[str, str] = self._load_overrides()
        if key in overrides:
            return overrides[key]
        if key in BUILTIN_TEMPLATES:
            return BUILTIN_TEMPLATES[key]
        raise UnknownTemplateError(key, self.keys())

    def placeholders(self, key: str) -> List[str]:
        """Placeholder names of *key* in order of first appearance."""
        seen: List[str] = []
        for name in _PLACEHOLDER_RE.findall(self.source(key)):
            if name not in seen:
                seen.append(name)
        return seen

    # -----------------------------------------------------------------
    # Rendering
    # -----------------------------------------------------------------

    def render(self, key: str, bindings: Mapping[str, object]) -> str:
        """
        Render template *key* with *bindings*.

        Raises:
            UnknownTemplateError: *key* is not registered.
            MissingBindingError: a placeholder has no binding.
        """
        text: str = self.source(key)
        missing: List[str] = [p for p in self.placeholders(key) if p not in bindings]
        if missing:
            raise MissingBindingError(key, missing)

        rendered: str = _PLACEHOLDER_RE.sub(lambda m: str(bindings[m.group(1)]), text)
        logger.debug("Rendered template '%s' (%d chars).", key, len(rendered))
        return rendered


__all__: List[str] = [
    "BUILTIN_TEMPLATES",
    "STUB_SUFFIX",
    "TemplateRenderer",
]
