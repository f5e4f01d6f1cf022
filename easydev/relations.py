# File: easydev/relations.py
"""
EasyDev - Relation Graph
=========================
In-memory set of declared relationships between entities, with the
consistency rules every mutation must respect:

* Each declaration is also visible from the other side under the inverse
  kind: ``one_to_many(Post, Comment)`` implies ``many_to_one(Comment, Post)``.
* An ordered entity pair carries at most one kind.  A new declaration whose
  view (or inverse view) already exists is rejected: same kind means a
  duplicate, a different kind a contradiction.  ``many_to_many`` is thereby
  stored exactly once per unordered pair.
* No two relations may give an entity the same accessor or foreign key
  attribute, and none may land on a field the entity already declares.

Rejected mutations leave the graph untouched.

The graph also computes ``RelationEdge`` views: what each model must
declare (accessor name, ``back_populates``, foreign key, pivot table) for
its side of every relation.  Edges are sorted by related entity name so
rendered blocks are stable across runs.

Persistence format (``dumps`` / ``loads``): one JSON object per line::

    {"from": "Post", "kind": "one_to_many", "to": "Comment"}
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, Iterable, Iterator, List, Mapping, Optional, Set, Tuple

from pydantic import ValidationError as PydanticValidationError

from easydev.errors import EasyDevError, InvalidRelationError, RelationConflictError, StateError
from easydev.models import RelationKind, RelationSpec
from easydev.utils import accessor_name, entity_to_table, pivot_table_name

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("easydev.relations")


# ---------------------------------------------------------------------------
# Directed views
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class RelationEdge:
    """One model's side of a relation."""

    owner: str
    related: str
    kind: RelationKind
    accessor: str
    back_populates: str
    holds_foreign_key: bool
    declared: RelationSpec

    @property
    def foreign_key_column(self) -> str:
        return f"{accessor_name(self.related, many=False)}_id"

    @property
    def related_table(self) -> str:
        return entity_to_table(self.related)

    @property
    def pivot_table(self) -> Optional[str]:
        if self.kind != RelationKind.MANY_TO_MANY:
            return None
        return pivot_table_name(self.owner, self.related)

    @property
    def attribute_names(self) -> Tuple[str, ...]:
        """Class attributes this edge adds to the owner model."""
        if self.holds_foreign_key:
            return (self.foreign_key_column, self.accessor)
        return (self.accessor,)

    def sort_key(self) -> Tuple[str, str]:
        return (self.related, self.accessor)


def _edge_pair(spec: RelationSpec) -> Tuple[RelationEdge, RelationEdge]:
    """Both sides of *spec*: (declaring side, other side)."""
    a: str = spec.from_entity
    b: str = spec.to_entity
    kind: RelationKind = spec.kind

    a_many: bool = kind in (RelationKind.MANY_TO_ONE, RelationKind.MANY_TO_MANY)
    b_many: bool = kind in (RelationKind.ONE_TO_MANY, RelationKind.MANY_TO_MANY)
    a_accessor: str = accessor_name(b, many=b_many)
    b_accessor: str = accessor_name(a, many=a_many)

    # The "one" side of one_to_many never holds the key; for one_to_one the
    # declaring side owns the related row, so the key lives on the other side
    a_fk: bool = kind == RelationKind.MANY_TO_ONE
    b_fk: bool = kind in (RelationKind.ONE_TO_MANY, RelationKind.ONE_TO_ONE)

    a_edge = RelationEdge(
        owner=a,
        related=b,
        kind=kind,
        accessor=a_accessor,
        back_populates=b_accessor,
        holds_foreign_key=a_fk,
        declared=spec,
    )
    b_edge = RelationEdge(
        owner=b,
        related=a,
        kind=kind.inverse,
        accessor=b_accessor,
        back_populates=a_accessor,
        holds_foreign_key=b_fk,
        declared=spec,
    )
    return a_edge, b_edge


# ---------------------------------------------------------------------------
# Graph
# ---------------------------------------------------------------------------


class RelationGraph:
    """
    Mutable set of relation declarations with consistency checks.

    Usage::

        graph = RelationGraph()
        graph.add_relation(RelationSpec(from_entity="Post", to_entity="Comment",
                                        kind="one_to_many"))
        graph.edges_for("Comment")[0].accessor   # "post"

    Not thread-safe; cross-process safety comes from ``ProjectState``.
    """

    def __init__(self, relations: Iterable[RelationSpec] = ()) -> None:
        self._declared: Set[RelationSpec] = set()
        # (owner, related) -> edge, covers both sides of every declaration
        self._views: Dict[Tuple[str, str], RelationEdge] = {}
        for spec in relations:
            self.add_relation(spec)

    # -----------------------------------------------------------------
    # Mutation
    # -----------------------------------------------------------------

    def add_relation(
        self,
        spec: RelationSpec,
        fields: Optional[Mapping[str, Iterable[str]]] = None,
    ) -> None:
        """
        Add a declaration.

        Args:
            spec: The declaration.
            fields: Field names of already generated entities; an accessor or
                foreign key landing on one of them is a clash.

        Raises:
            InvalidRelationError: self-referential declaration.
            RelationConflictError: duplicate, contradiction, accessor clash
                or clash with a declared field.
        """
        if spec.from_entity == spec.to_entity:
            raise InvalidRelationError(
                f"self-referential relation on '{spec.from_entity}' is not supported",
                subject=spec.from_entity,
                value=str(spec),
            )

        for edge in _edge_pair(spec):
            existing: Optional[RelationEdge] = self._views.get((edge.owner, edge.related))
            if existing is None:
                continue
            if existing.kind == edge.kind:
                raise RelationConflictError(
                    f"relation '{spec}' duplicates existing '{existing.declared}'",
                    attempted=spec,
                    existing=existing.declared,
                )
            raise RelationConflictError(
                f"relation '{spec}' contradicts existing '{existing.declared}' "
                f"({edge.owner} -> {edge.related} is already {existing.kind.value})",
                attempted=spec,
                existing=existing.declared,
            )

        for edge in _edge_pair(spec):
            for other in self._edges_owned_by(edge.owner):
                shared: Set[str] = set(other.attribute_names) & set(edge.attribute_names)
                if shared:
                    raise RelationConflictError(
                        f"relation '{spec}' would give {edge.owner} a second "
                        f"'{min(shared)}' attribute (from '{other.declared}')",
                        attempted=spec,
                        existing=other.declared,
                    )
            taken: Set[str] = set(fields.get(edge.owner, ())) if fields else set()
            clash: List[str] = [name for name in edge.attribute_names if name in taken]
            if clash:
                raise RelationConflictError(
                    f"relation '{spec}' would give {edge.owner} a '{clash[0]}' "
                    f"attribute, which is already a field of {edge.owner}",
                    attempted=spec,
                )

        self._declared.add(spec)
        for edge in _edge_pair(spec):
            self._views[(edge.owner, edge.related)] = edge
        logger.debug("Added relation %s", spec)

    def remove_relation(self, spec: RelationSpec) -> Optional[RelationSpec]:
        """
        Remove the declaration matching *spec* in its declared or inverse
        form.  Returns the removed declaration, or None if absent.
        """
        target: Optional[RelationSpec] = None
        if spec in self._declared:
            target = spec
        elif spec.inverse() in self._declared:
            target = spec.inverse()
        if target is None:
            return None

        self._declared.discard(target)
        for edge in _edge_pair(target):
            self._views.pop((edge.owner, edge.related), None)
        logger.debug("Removed relation %s", target)
        return target

    # -----------------------------------------------------------------
    # Queries
    # -----------------------------------------------------------------

    def relations(self) -> List[RelationSpec]:
        """All declarations in stable order."""
        return sorted(self._declared, key=RelationSpec.sort_key)

    def relations_for(self, entity: str) -> FrozenSet[RelationSpec]:
        """Declarations in which *entity* takes part (either side)."""
        return frozenset(r for r in self._declared if entity in r.entities)

    def entities(self) -> List[str]:
        found: Set[str] = set()
        for spec in self._declared:
            found.update(spec.pair)
        return sorted(found)

    def edges_for(self, entity: str) -> List[RelationEdge]:
        """*entity*'s side of each of its relations, sorted by related name."""
        return sorted(self._edges_owned_by(entity), key=RelationEdge.sort_key)

    def _edges_owned_by(self, entity: str) -> Iterator[RelationEdge]:
        return (edge for (owner, _), edge in self._views.items() if owner == entity)

    def __len__(self) -> int:
        return len(self._declared)

    def __contains__(self, spec: object) -> bool:
        return spec in self._declared

    def __iter__(self) -> Iterator[RelationSpec]:
        return iter(self.relations())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RelationGraph):
            return NotImplemented
        return self._declared == other._declared

    def __repr__(self) -> str:
        return f"<RelationGraph relations={len(self._declared)}>"

    # -----------------------------------------------------------------
    # Serialization
    # -----------------------------------------------------------------

    def to_records(self) -> List[Dict[str, str]]:
        return [spec.to_record() for spec in self.relations()]

    @classmethod
    def from_records(cls, records: Iterable[Dict[str, Any]]) -> "RelationGraph":
        return cls(RelationSpec.model_validate(r) for r in records)

    def dumps(self) -> str:
        """JSON-lines text, one sorted record per line."""
        lines: List[str] = [json.dumps(r, sort_keys=True) for r in self.to_records()]
        return "".join(line + "\n" for line in lines)

    @classmethod
    def loads(cls, text: str, source: str = "<relations>") -> "RelationGraph":
        """
        Parse JSON-lines text.  Blank lines and ``#`` comments are skipped,
        unknown keys ignored.

        Raises:
            StateError: malformed line, unknown kind, or a record that
                conflicts with an earlier one.
        """
        graph: RelationGraph = cls()
        for lineno, line in enumerate(text.splitlines(), start=1):
            stripped: str = line.strip()
            if not stripped or stripped.startswith("#"):
                continue
            where: str = f"{source}:{lineno}"
            try:
                record: Any = json.loads(stripped)
                if not isinstance(record, dict):
                    raise StateError(where, "expected a JSON object")
                graph.add_relation(RelationSpec.model_validate(record))
            except json.JSONDecodeError as exc:
                raise StateError(where, f"invalid JSON: {exc.msg}") from exc
            except PydanticValidationError as exc:
                raise StateError(where, f"invalid relation record: {exc}") from exc
            except StateError:
                raise
            except EasyDevError as exc:
                raise StateError(where, str(exc)) from exc
        return graph


__all__: List[str] = [
    "RelationEdge",
    "RelationGraph",
]
