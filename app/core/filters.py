"""
Typed filter builder for list endpoints.

A FilterSet maps query parameter names to functions that turn a value into a
SQLAlchemy predicate. Values always travel as bound parameters; the only
thing callers compose is the list of predicates.
"""
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from sqlalchemy.sql.elements import ColumnElement


@dataclass(frozen=True)
class FilterField:
    name: str
    build: Callable[[Any], Optional[ColumnElement]]
    # Converts the raw parameter before ``build``; raising ValueError rejects it
    parse: Optional[Callable[[Any], Any]] = None


class InvalidFilter(ValueError):
    def __init__(self, name: str, value: Any, reason: str):
        self.name = name
        self.value = value
        super().__init__(f"Invalid value for filter '{name}': {reason}")


class FilterSet:
    def __init__(self, fields: Iterable[FilterField]):
        self.fields: Dict[str, FilterField] = {f.name: f for f in fields}

    def predicates(self, params: Mapping[str, Any]) -> List[ColumnElement]:
        clauses = []
        for name, field in self.fields.items():
            value = params.get(name)
            if value is None or value == "":
                continue
            if field.parse is not None:
                try:
                    value = field.parse(value)
                except ValueError as e:
                    raise InvalidFilter(name, value, str(e)) from e
            clause = field.build(value)
            if clause is not None:
                clauses.append(clause)
        return clauses

    def apply(self, query, params: Mapping[str, Any]):
        clauses = self.predicates(params)
        return query.filter(*clauses) if clauses else query
