"""Dependency tracking between determinant fields and the entities they guard.

Edges are discovered while hide-expressions are evaluated: every field
referenced by an expression becomes a determinant of the entity that owns
the expression. The tracker owns the adjacency map so field models never
hold references to each other.
"""

from __future__ import annotations

from enum import StrEnum

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field


class EntityKind(StrEnum):
    """Kind of entity a hide-expression is attached to."""

    FIELD = "field"
    PAGE = "page"
    SECTION = "section"


class EntityRef(BaseModel):
    """Stable reference to a field (by id) or a page/section (by label)."""

    model_config = ConfigDict(frozen=True)

    kind: EntityKind
    key: str

    @classmethod
    def field(cls, field_id: str) -> EntityRef:
        return cls(kind=EntityKind.FIELD, key=field_id)

    @classmethod
    def page(cls, label: str) -> EntityRef:
        return cls(kind=EntityKind.PAGE, key=label)

    @classmethod
    def section(cls, label: str) -> EntityRef:
        return cls(kind=EntityKind.SECTION, key=label)


class Dependants(BaseModel):
    """Entities whose visibility depends on one determinant field."""

    fields: set[str] = Field(default_factory=set)
    pages: set[str] = Field(default_factory=set)
    sections: set[str] = Field(default_factory=set)

    def add(self, target: EntityRef) -> bool:
        """Add a dependant; return True if the edge is new."""
        bucket = {
            EntityKind.FIELD: self.fields,
            EntityKind.PAGE: self.pages,
            EntityKind.SECTION: self.sections,
        }[target.kind]
        if target.key in bucket:
            return False
        bucket.add(target.key)
        return True

    def refs(self) -> list[EntityRef]:
        """All dependants as EntityRefs, fields first, each group sorted."""
        return (
            [EntityRef.field(k) for k in sorted(self.fields)]
            + [EntityRef.section(k) for k in sorted(self.sections)]
            + [EntityRef.page(k) for k in sorted(self.pages)]
        )

    def __len__(self) -> int:
        return len(self.fields) + len(self.pages) + len(self.sections)


class DependencyTracker:
    """Cumulative determinant -> dependants adjacency map.

    Edges are only ever added. Re-evaluating an entity never drops edges
    previously recorded from other determinants.
    """

    def __init__(self) -> None:
        self._edges: dict[str, Dependants] = {}

    def record(self, determinant: str, target: EntityRef) -> None:
        """Record that ``target``'s visibility depends on ``determinant``."""
        dependants = self._edges.setdefault(determinant, Dependants())
        if dependants.add(target):
            logger.debug("Recorded dependency {} -> {} {}", determinant, target.kind, target.key)

    def dependants_of(self, field_id: str) -> Dependants:
        """Return a copy of the dependants recorded for a field."""
        dependants = self._edges.get(field_id)
        if dependants is None:
            return Dependants()
        return dependants.model_copy(deep=True)

    def determinants(self) -> list[str]:
        """Ids of all fields that guard at least one entity."""
        return sorted(self._edges)

    def as_dict(self) -> dict[str, dict[str, list[str]]]:
        """Plain-data snapshot of the graph, for display and debugging."""
        return {
            determinant: {
                "fields": sorted(d.fields),
                "pages": sorted(d.pages),
                "sections": sorted(d.sections),
            }
            for determinant, d in sorted(self._edges.items())
        }

    def __contains__(self, field_id: object) -> bool:
        return field_id in self._edges
