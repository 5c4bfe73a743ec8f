"""Composable row predicates for media queries.

Predicates are small immutable trees of equality tests joined by AND/OR.
Column names come from a fixed whitelist and are the only text ever placed
into SQL; every value is carried separately and bound as a ``?`` parameter.
The same tree can be evaluated directly against a ``MediaRecord`` so the
in-memory store answers exactly the queries the SQLite store does.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union

from picshare.metadata.models import MediaRecord

MEDIA_COLUMNS = frozenset({"id", "owner_id", "title", "encoding", "shareable"})


@dataclass(frozen=True)
class Eq:
    """``column = value``."""

    column: str
    value: Any

    def __post_init__(self) -> None:
        if self.column not in MEDIA_COLUMNS:
            raise ValueError(f"Unknown media column: {self.column!r}")

    def to_sql(self) -> tuple[str, list[Any]]:
        value = int(self.value) if isinstance(self.value, bool) else self.value
        return f"{self.column} = ?", [value]

    def matches(self, record: MediaRecord) -> bool:
        return getattr(record, self.column) == self.value


@dataclass(frozen=True)
class AnyOf:
    """Disjunction of clauses. Empty matches nothing."""

    clauses: tuple[Predicate, ...]

    def to_sql(self) -> tuple[str, list[Any]]:
        if not self.clauses:
            return "0 = 1", []
        return _join(self.clauses, " OR ")

    def matches(self, record: MediaRecord) -> bool:
        return any(c.matches(record) for c in self.clauses)


@dataclass(frozen=True)
class AllOf:
    """Conjunction of clauses. Empty matches everything."""

    clauses: tuple[Predicate, ...]

    def to_sql(self) -> tuple[str, list[Any]]:
        if not self.clauses:
            return "1 = 1", []
        return _join(self.clauses, " AND ")

    def matches(self, record: MediaRecord) -> bool:
        return all(c.matches(record) for c in self.clauses)


Predicate = Union[Eq, AnyOf, AllOf]


def _join(clauses: tuple[Predicate, ...], sep: str) -> tuple[str, list[Any]]:
    parts: list[str] = []
    params: list[Any] = []
    for clause in clauses:
        sql, clause_params = clause.to_sql()
        parts.append(sql)
        params.extend(clause_params)
    return "(" + sep.join(parts) + ")", params


def eq(column: str, value: Any) -> Eq:
    return Eq(column, value)


def any_of(*clauses: Predicate) -> AnyOf:
    return AnyOf(tuple(clauses))


def all_of(*clauses: Predicate) -> AllOf:
    return AllOf(tuple(clauses))
