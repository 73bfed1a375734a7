# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Copilot-for-Consensus contributors

"""Equality queries and the builder that composes them from field maps."""

from __future__ import annotations

from dataclasses import dataclass, replace
from functools import reduce
from typing import Any, Mapping

# Field values accepted in an equality constraint
QueryValue = str | int | float | bool


@dataclass(frozen=True)
class Query:
    """Conjunction of ``field == value`` constraints over one collection.

    Queries are immutable; ``where`` returns a new query with one more
    constraint, so a query can be threaded through a fold.
    """

    collection: str
    filters: tuple[tuple[str, Any], ...] = ()

    def where(self, field: str, value: QueryValue) -> Query:
        """Return a copy of this query with an extra equality constraint."""
        return replace(self, filters=self.filters + ((field, value),))

    def as_filter(self) -> dict[str, Any]:
        """Return the constraints as a ``{field: value}`` mapping."""
        return dict(self.filters)

    def matches(self, data: Mapping[str, Any]) -> bool:
        """Check whether a document's fields satisfy every constraint."""
        return all(
            field in data and _values_equal(data[field], value)
            for field, value in self.filters
        )


def _values_equal(stored: Any, expected: Any) -> bool:
    # Booleans never equal numbers, unlike plain Python comparison
    if isinstance(stored, bool) != isinstance(expected, bool):
        return False
    return stored == expected


def build_query(base: Query, fields: Mapping[str, QueryValue] | None) -> Query:
    """Fold a flat field map into ``base`` as equality constraints.

    An empty or missing field map returns ``base`` unchanged, i.e. a query
    over the whole collection. No implicit limit is applied.

    Args:
        base: Query to extend (usually the bare collection query)
        fields: Mapping of field name to required value

    Returns:
        Query carrying one equality constraint per field
    """
    if not fields:
        return base
    return reduce(lambda query, item: query.where(*item), fields.items(), base)
