"""
Income Records Backend: List Query Builder
=============================================

What:  Turns the flat query-string of GET /api/records into typed filter
       predicates and sort keys, then into SQLAlchemy clauses.
How:   Two explicit stages, each unit-tested on its own:
         1. parse_filters() / parse_sort(): strings → FilterPredicate / SortKey
            (field whitelist, operator whitelist, value coercion)
         2. build_where() / build_order_by(): typed values → SQL expressions
       No client-supplied string is ever spliced into a query; every value
       is a bound parameter.

Filter syntax (all predicates are ANDed):
    category=Freelance           exact match
    amount[gte]=100              range, bracket form
    amount__lt=500               range, double-underscore form
    date[gte]=2024-01-01         dates accept ISO 8601

Reserved keys (never treated as filters): page, sort, limit, fields

Edge cases:
    unknown field             → predicate that matches nothing (empty page, total 0)
    key that is no field name → same as an unknown field (e.g. "utm-source")
    unknown operator          → ValidationError
    range op on text field    → ValidationError
    uncoercible value         → ValidationError (an `id` that is not a UUID matches nothing)
"""

import operator
import re
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import ColumnElement, and_, false

from app.exceptions import ValidationError
from app.models.record import IncomeRecord

RESERVED_PARAMS = frozenset({"page", "sort", "limit", "fields"})

RANGE_OPERATORS = ("gte", "gt", "lte", "lt")

DEFAULT_SORT = "-date"

_COMPARATORS = {
    "eq": operator.eq,
    "gte": operator.ge,
    "gt": operator.gt,
    "lte": operator.le,
    "lt": operator.lt,
}

# key, key[op] or key__op
_KEY_PATTERN = re.compile(r"^(?P<field>[A-Za-z_][A-Za-z0-9_]*?)(?:\[(?P<bracket>[^\]]*)\]|__(?P<suffix>[A-Za-z]+))?$")


def _to_float(raw: str) -> float:
    value = float(raw)
    if value != value or value in (float("inf"), float("-inf")):
        raise ValueError("not a finite number")
    return value


def _to_datetime(raw: str) -> datetime:
    value = datetime.fromisoformat(raw.strip().replace("Z", "+00:00"))
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _to_text(raw: str) -> str:
    return raw


@dataclass(frozen=True)
class FieldSpec:
    """A filterable/sortable record field as exposed by the API."""

    column: str
    coerce: Callable[[str], Any]
    supports_range: bool


# Public (JSON) field name → column, coercion, range support
FIELDS: Dict[str, FieldSpec] = {
    "id": FieldSpec("id", uuid.UUID, supports_range=False),
    "description": FieldSpec("description", _to_text, supports_range=False),
    "category": FieldSpec("category", _to_text, supports_range=False),
    "amount": FieldSpec("amount", _to_float, supports_range=True),
    "date": FieldSpec("date", _to_datetime, supports_range=True),
    "createdAt": FieldSpec("created_at", _to_datetime, supports_range=True),
    "updatedAt": FieldSpec("updated_at", _to_datetime, supports_range=True),
}


@dataclass(frozen=True)
class FilterPredicate:
    """
    One typed condition of the list query.

    op is "eq" or one of RANGE_OPERATORS. `matches_nothing` marks a
    predicate on a field no record has (or an impossible id), which makes
    the whole AND false.
    """

    field: str
    op: str
    value: Any = None
    matches_nothing: bool = False


@dataclass(frozen=True)
class SortKey:
    field: str
    descending: bool


# ══════════════════════════════════════════════════════════════════════════
# Stage 1: strings → typed predicates
# ══════════════════════════════════════════════════════════════════════════


def _split_key(key: str) -> Tuple[str, str]:
    match = _KEY_PATTERN.match(key)
    if match is None:
        # Not a field name any record could have (e.g. "utm-source", "meta.tag")
        return key, "eq"
    op = match.group("bracket")
    if op is None:
        op = match.group("suffix")
    if op is None:
        return match.group("field"), "eq"
    if op not in RANGE_OPERATORS:
        raise ValidationError(
            message=(
                f"Unsupported filter operator '{op}' in '{key}'. "
                f"Allowed: {', '.join(RANGE_OPERATORS)}"
            ),
            field=key,
        )
    return match.group("field"), op


def parse_filters(params: Iterable[Tuple[str, str]]) -> List[FilterPredicate]:
    """
    Translate query-string pairs into a list of FilterPredicate.

    Args:
        params: (key, value) pairs, e.g. `request.query_params.multi_items()`.
                Reserved keys are skipped.

    Raises:
        ValidationError: unknown operator, range on a non-range field,
                         or a value that cannot be coerced to the field type.
    """
    predicates: List[FilterPredicate] = []
    for key, raw in params:
        if key in RESERVED_PARAMS:
            continue

        field, op = _split_key(key)
        spec = FIELDS.get(field)
        if spec is None:
            predicates.append(FilterPredicate(field=field, op=op, matches_nothing=True))
            continue

        if op != "eq" and not spec.supports_range:
            raise ValidationError(
                message=f"Field '{field}' does not support range operator '{op}'",
                field=key,
            )

        try:
            value = spec.coerce(raw)
        except ValueError:
            if field == "id":
                predicates.append(FilterPredicate(field=field, op=op, matches_nothing=True))
                continue
            raise ValidationError(
                message=f"Invalid value '{raw}' for filter '{key}'",
                field=key,
            )
        predicates.append(FilterPredicate(field=field, op=op, value=value))
    return predicates


def parse_sort(sort: Optional[str]) -> List[SortKey]:
    """
    Parse "-date,amount" style sort specs. Empty or missing → newest first.

    Raises:
        ValidationError: a listed field is not sortable.
    """
    spec = sort if sort and sort.strip() else DEFAULT_SORT
    keys: List[SortKey] = []
    for part in spec.split(","):
        part = part.strip()
        if not part:
            continue
        descending = part.startswith("-")
        name = part.lstrip("+-")
        if name not in FIELDS:
            raise ValidationError(
                message=f"Cannot sort by '{name}'. Allowed: {', '.join(FIELDS)}",
                field="sort",
            )
        keys.append(SortKey(field=name, descending=descending))
    if not keys:
        return parse_sort(DEFAULT_SORT)
    return keys


# ══════════════════════════════════════════════════════════════════════════
# Stage 2: typed predicates → SQLAlchemy clauses
# ══════════════════════════════════════════════════════════════════════════


def _column(field: str):
    return getattr(IncomeRecord, FIELDS[field].column)


def predicate_clause(predicate: FilterPredicate) -> ColumnElement[bool]:
    if predicate.matches_nothing:
        return false()
    return _COMPARATORS[predicate.op](_column(predicate.field), predicate.value)


def build_where(predicates: List[FilterPredicate]) -> Optional[ColumnElement[bool]]:
    """AND of all predicates, or None when there is nothing to filter on."""
    if not predicates:
        return None
    return and_(*(predicate_clause(p) for p in predicates))


def build_order_by(keys: List[SortKey]) -> list:
    """ORDER BY clauses for `keys`, with `id` appended as a stable tie-breaker."""
    clauses = []
    for key in keys:
        column = _column(key.field)
        clauses.append(column.desc() if key.descending else column.asc())
    if not any(key.field == "id" for key in keys):
        clauses.append(IncomeRecord.id.asc())
    return clauses
