"""Typed partial updates.

Update requests distinguish "field not supplied" from "field set to an
empty value" with the ``UNSET`` sentinel. ``build_set_clause`` turns the
supplied fields into a SET clause with one bound parameter per property,
so an update only ever touches what the caller provided.

Example:
    >>> update = NodeUpdate(title="Renamed")
    >>> clause = build_set_clause(update.provided(), now="2024-01-01T00:00:00Z")
    >>> clause.text
    'SET n.title = $set_title, n.updatedAt = $set_updatedAt'
"""

from __future__ import annotations

import re
from dataclasses import dataclass, fields
from typing import Any

from graphdone.engine.queries import CypherQuery

_PROPERTY_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class _Unset:
    """Marker for a field the caller did not supply."""

    _instance: "_Unset | None" = None

    def __new__(cls) -> "_Unset":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


@dataclass
class PartialUpdate:
    """Base for update requests whose fields default to UNSET."""

    @classmethod
    def from_request(cls, request: dict[str, Any]):
        """Build an update from a request dict; absent keys stay UNSET."""
        names = {f.name for f in fields(cls)}
        return cls(**{key: value for key, value in request.items() if key in names})

    def provided(self) -> dict[str, Any]:
        """Fields the caller supplied, in declaration order."""
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not UNSET
        }

    def is_empty(self) -> bool:
        return not self.provided()


@dataclass
class NodeUpdate(PartialUpdate):
    """Field-level update for a WorkItem."""

    title: Any = UNSET
    description: Any = UNSET
    type: Any = UNSET
    status: Any = UNSET
    metadata: Any = UNSET
    contributor_ids: Any = UNSET


@dataclass
class GraphUpdate(PartialUpdate):
    """Field-level update for a Graph container."""

    name: Any = UNSET
    description: Any = UNSET
    status: Any = UNSET
    settings: Any = UNSET
    parent_graph_id: Any = UNSET


def build_set_clause(
    properties: dict[str, Any],
    alias: str = "n",
    now: str | None = None,
    timestamp_property: str = "updatedAt",
) -> CypherQuery:
    """Build ``SET alias.prop = $set_prop, ...`` for the given properties.

    Args:
        properties: Storage property name -> value, already sanitized.
        alias: Variable the SET applies to.
        now: When given, ``timestamp_property`` is always refreshed.
        timestamp_property: Property holding the last-modified time.

    Raises:
        ValueError: If a property name is not a plain identifier.
    """
    assignments: list[str] = []
    parameters: dict[str, Any] = {}
    items = dict(properties)
    if now is not None:
        items[timestamp_property] = now

    for prop, value in items.items():
        if not _PROPERTY_NAME.match(prop):
            raise ValueError(f"Invalid property name: {prop!r}")
        param = f"set_{prop}"
        assignments.append(f"{alias}.{prop} = ${param}")
        parameters[param] = value

    if not assignments:
        return CypherQuery(text="", parameters={})
    return CypherQuery(text="SET " + ", ".join(assignments), parameters=parameters)
