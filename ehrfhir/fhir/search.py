"""FHIR search-query builder.

Translates a request's parameter map and a static per-resource schema
(paramName -> SearchParamConfig) into a COUNT statement and a paginated SELECT
statement that share one WHERE clause.

Security invariant: only column identifiers taken from the static schema (or
the caller's column list) are placed in SQL text. Every user-supplied value,
including string search patterns, travels as a bound parameter. Bound
parameters are named p1, p2, ... in the order they are created, and limit /
offset are always the last two.

Unknown parameters, unknown modifiers and unparseable control values are
ignored: FHIR servers are lenient about what they do not support.

Deterministic and stateless between queries.
"""

import logging
import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from enum import StrEnum
from typing import Any

from sqlalchemy import (
    ColumnElement,
    Select,
    String,
    and_,
    bindparam,
    cast,
    column,
    false,
    func,
    not_,
    or_,
    select,
    table,
)
from sqlalchemy.sql.expression import BindParameter, ColumnClause, TableClause

logger = logging.getLogger(__name__)

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# Escape character for LIKE patterns; "!" avoids backslash quoting differences between dialects
_LIKE_ESCAPE = "!"


class SearchParamType(StrEnum):
    TOKEN = "token"
    REFERENCE = "reference"
    DATE = "date"
    STRING = "string"
    NUMBER = "number"


class SearchPrefix(StrEnum):
    """Comparison prefixes for date and number parameters."""

    EQ = "eq"
    NE = "ne"
    GT = "gt"
    LT = "lt"
    GE = "ge"
    LE = "le"
    SA = "sa"
    EB = "eb"
    AP = "ap"


_PREFIXES = frozenset(prefix.value for prefix in SearchPrefix)


class SearchModifier(StrEnum):
    EXACT = "exact"
    CONTAINS = "contains"
    TEXT = "text"
    MISSING = "missing"
    NOT = "not"


@dataclass(frozen=True)
class SearchParamConfig:
    """Static definition of one search parameter for one resource type.

    column (and system_column) are the only identifiers ever interpolated
    into SQL; they are checked to be plain identifiers at definition time.
    """

    type: SearchParamType
    column: str
    reference_table: str | None = None
    system_column: str | None = None

    def __post_init__(self) -> None:
        for name in (self.column, self.system_column, self.reference_table):
            if name is not None and not _IDENTIFIER_RE.match(name):
                raise ValueError(f"Search parameter identifier {name!r} is not a plain SQL identifier")


@dataclass(frozen=True)
class SearchValue:
    prefix: SearchPrefix
    value: str


@dataclass(frozen=True)
class FlexDate:
    """A parsed date or datetime. end is exclusive; a full datetime has start == end."""

    start: datetime
    end: datetime

    @property
    def is_point(self) -> bool:
        return self.start == self.end


def parse_search_value(raw: str) -> SearchValue:
    """Split an optional two-letter comparison prefix (case-insensitive) off *raw*."""
    if len(raw) > 2:
        candidate = raw[:2].lower()
        if candidate in _PREFIXES:
            return SearchValue(SearchPrefix(candidate), raw[2:])
    return SearchValue(SearchPrefix.EQ, raw)


def parse_param_modifier(name: str) -> tuple[str, str | None]:
    """Split "name:modifier" into its parts; everything after the first colon is the modifier."""
    base, sep, modifier = name.partition(":")
    return base, (modifier if sep else None)


_YEAR_RE = re.compile(r"^\d{4}$")
_MONTH_RE = re.compile(r"^\d{4}-\d{2}$")
_DAY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def parse_flex_date(value: str) -> FlexDate:
    """Parse YYYY, YYYY-MM, YYYY-MM-DD or an ISO-8601 datetime.

    Partial dates cover their whole period. Naive datetimes are taken as UTC.
    Raises ValueError when *value* is none of these.
    """
    if _YEAR_RE.match(value):
        start = datetime(int(value), 1, 1, tzinfo=timezone.utc)
        return FlexDate(start, start.replace(year=start.year + 1))
    if _MONTH_RE.match(value):
        year, month = int(value[:4]), int(value[5:7])
        start = datetime(year, month, 1, tzinfo=timezone.utc)
        if month == 12:
            end = start.replace(year=year + 1, month=1)
        else:
            end = start.replace(month=month + 1)
        return FlexDate(start, end)
    if _DAY_RE.match(value):
        start = datetime.strptime(value, "%Y-%m-%d").replace(tzinfo=timezone.utc)
        return FlexDate(start, start + timedelta(days=1))
    if "T" not in value:
        raise ValueError(f"not a FHIR date or dateTime: {value!r}")
    moment = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return FlexDate(moment, moment)


def parse_count(raw: str | None, default: int, maximum: int) -> int:
    """Interpret _count: missing or invalid -> default, clamped to [1, maximum]."""
    try:
        count = int(raw) if raw is not None else default
    except ValueError:
        return default
    if count < 1:
        return default
    return min(count, maximum)


def parse_offset(raw: str | None) -> int:
    """Interpret _offset: missing, invalid or negative -> 0."""
    try:
        offset = int(raw) if raw is not None else 0
    except ValueError:
        return 0
    return max(offset, 0)


class SearchQuery:
    """Builds COUNT and paginated SELECT statements over one table.

    Usage:
        q = SearchQuery("organizations", ORG_COLUMNS, sort_key="name")
        q.apply_params(params, ORGANIZATION_SEARCH_PARAMS)
        total = (await session.execute(q.count_statement())).scalar_one()
        rows = (await session.execute(q.data_statement(limit, offset))).all()
    """

    def __init__(
        self,
        table_name: str,
        columns: Sequence[str],
        *,
        sort_key: str = "id",
        descending: bool = False,
        tie_breaker: str = "id",
    ) -> None:
        for name in (table_name, sort_key, tie_breaker, *columns):
            if not _IDENTIFIER_RE.match(name):
                raise ValueError(f"{name!r} is not a plain SQL identifier")
        self._table: TableClause = table(table_name, *(column(name) for name in columns))
        self._columns = list(columns)
        self._clauses: list[ColumnElement[bool]] = []
        self._args: list[Any] = []
        self._sort_key = sort_key
        self._descending = descending
        self._tie_breaker = tie_breaker

    # --- bound arguments ---

    @property
    def args(self) -> list[Any]:
        """Bound WHERE-clause values, in placeholder order."""
        return list(self._args)

    def data_args(self, limit: int, offset: int) -> list[Any]:
        return [*self._args, limit, offset]

    def _bind(self, value: Any) -> BindParameter:
        self._args.append(value)
        return bindparam(f"p{len(self._args)}", value)

    def _col(self, name: str) -> ColumnClause:
        if name in self._table.c:
            return self._table.c[name]
        return column(name)

    # --- building ---

    def add(self, clause: ColumnElement[bool]) -> None:
        """Append a predicate; all predicates are ANDed."""
        self._clauses.append(clause)

    def order_by(self, sort_key: str, descending: bool = False) -> None:
        if not _IDENTIFIER_RE.match(sort_key):
            raise ValueError(f"{sort_key!r} is not a plain SQL identifier")
        self._sort_key = sort_key
        self._descending = descending

    def apply_sort(self, raw: str | None, schema: Mapping[str, SearchParamConfig]) -> None:
        """Apply a FHIR _sort value ("name" or "-name"); the first known parameter wins."""
        if not raw:
            return
        for key in raw.split(","):
            key = key.strip()
            descending = key.startswith("-")
            config = schema.get(key.lstrip("-"))
            if config is not None:
                self.order_by(config.column, descending)
                return

    def apply_params(
        self,
        params: Mapping[str, str | Sequence[str]],
        schema: Mapping[str, SearchParamConfig],
    ) -> list[str]:
        """Add a predicate for every parameter the schema knows. Returns the applied names.

        A sequence value adds one predicate per element (AND). Parameters not in
        the schema (including _count, _offset, _sort) are skipped silently.
        """
        applied: list[str] = []
        for name, raw in params.items():
            base, modifier = parse_param_modifier(name)
            config = schema.get(base)
            if config is None:
                continue
            values: Iterable[str] = [raw] if isinstance(raw, str) else raw
            used = False
            for value in values:
                clause = self._clause_for(config, value, modifier)
                if clause is not None:
                    self.add(clause)
                    used = True
            if used:
                applied.append(name)
            else:
                logger.debug("Search parameter %s ignored (modifier %s)", name, modifier)
        return applied

    def _clause_for(
        self, config: SearchParamConfig, value: str, modifier: str | None,
    ) -> ColumnElement[bool] | None:
        col = self._col(config.column)

        if modifier == SearchModifier.MISSING:
            missing = value.strip().lower() == "true"
            return col.is_(None) if missing else col.is_not(None)

        if config.type == SearchParamType.TOKEN:
            if modifier is None:
                return self._any_of(value, lambda v: self._token_clause(config, v))
            if modifier == SearchModifier.NOT:
                return not_(self._token_clause(config, value))
            return None

        if config.type == SearchParamType.REFERENCE:
            # subject:Patient=123 style type modifiers are accepted; the target table is fixed
            if modifier is None or modifier[:1].isupper():
                return self._any_of(value, lambda v: self._reference_clause(col, v))
            return None

        if config.type == SearchParamType.STRING:
            if modifier == SearchModifier.EXACT:
                return col == self._bind(value)
            if modifier in (None, SearchModifier.CONTAINS, SearchModifier.TEXT):
                return self._contains_clause(col, value)
            return None

        if modifier is not None:
            return None
        if config.type == SearchParamType.DATE:
            return self._date_clause(col, value)
        if config.type == SearchParamType.NUMBER:
            return self._number_clause(col, value)
        return None

    def _any_of(self, value: str, build) -> ColumnElement[bool]:
        """Comma-separated values are alternatives (OR)."""
        parts = [part for part in value.split(",") if part] or [value]
        clauses = [build(part) for part in parts]
        return clauses[0] if len(clauses) == 1 else or_(*clauses)

    # --- clause builders ---

    def _token_clause(self, config: SearchParamConfig, value: str) -> ColumnElement[bool]:
        code_col = self._col(config.column)
        if "|" in value and config.system_column is not None:
            system, _, code = value.partition("|")
            sys_col = self._col(config.system_column)
            if system and code:
                return and_(sys_col == self._bind(system), code_col == self._bind(code))
            if system:
                return sys_col == self._bind(system)
            if code:
                return code_col == self._bind(code)
        elif "|" in value:
            _, _, code = value.partition("|")
            if code:
                return code_col == self._bind(code)
        return code_col == self._bind(value)

    def _reference_clause(self, col: ColumnClause, value: str) -> ColumnElement[bool]:
        # "Patient/123" and "http://host/fhir/Patient/123" both compare "123"
        ref_id = value.rsplit("/", 1)[-1] or value
        return col == self._bind(ref_id)

    def _contains_clause(self, col: ColumnClause, value: str) -> ColumnElement[bool]:
        escaped = (
            value.replace(_LIKE_ESCAPE, _LIKE_ESCAPE * 2)
            .replace("%", _LIKE_ESCAPE + "%")
            .replace("_", _LIKE_ESCAPE + "_")
        )
        return col.ilike(self._bind(f"%{escaped}%"), escape=_LIKE_ESCAPE)

    def _date_clause(self, col: ColumnClause, raw: str) -> ColumnElement[bool]:
        search = parse_search_value(raw)
        try:
            when = parse_flex_date(search.value)
        except ValueError:
            return cast(col, String) == self._bind(raw)

        prefix = search.prefix
        if prefix == SearchPrefix.EQ:
            if when.is_point:
                return col == self._bind(when.start)
            return and_(col >= self._bind(when.start), col < self._bind(when.end))
        if prefix == SearchPrefix.NE:
            if when.is_point:
                return col != self._bind(when.start)
            return or_(col < self._bind(when.start), col >= self._bind(when.end))
        if prefix in (SearchPrefix.GT, SearchPrefix.SA):
            if when.is_point:
                return col > self._bind(when.start)
            return col >= self._bind(when.end)
        if prefix in (SearchPrefix.LT, SearchPrefix.EB):
            return col < self._bind(when.start)
        if prefix == SearchPrefix.GE:
            return col >= self._bind(when.start)
        if prefix == SearchPrefix.LE:
            if when.is_point:
                return col <= self._bind(when.start)
            return col < self._bind(when.end)
        # ap: one day either side of the period
        low = when.start - timedelta(days=1)
        high = (when.end if not when.is_point else when.start) + timedelta(days=1)
        return and_(col >= self._bind(low), col <= self._bind(high))

    def _number_clause(self, col: ColumnClause, raw: str) -> ColumnElement[bool]:
        search = parse_search_value(raw)
        try:
            number = Decimal(search.value)
        except InvalidOperation:
            return false()
        if not number.is_finite():
            return false()

        prefix = search.prefix
        if prefix == SearchPrefix.EQ:
            return col == self._bind(number)
        if prefix == SearchPrefix.NE:
            return col != self._bind(number)
        if prefix in (SearchPrefix.GT, SearchPrefix.SA):
            return col > self._bind(number)
        if prefix in (SearchPrefix.LT, SearchPrefix.EB):
            return col < self._bind(number)
        if prefix == SearchPrefix.GE:
            return col >= self._bind(number)
        if prefix == SearchPrefix.LE:
            return col <= self._bind(number)
        # ap: within 10%
        delta = abs(number) / 10
        return and_(col >= self._bind(number - delta), col <= self._bind(number + delta))

    # --- statements ---

    def _where(self, stmt: Select) -> Select:
        return stmt.where(*self._clauses) if self._clauses else stmt

    def count_statement(self) -> Select:
        return self._where(select(func.count()).select_from(self._table))

    def data_statement(self, limit: int, offset: int) -> Select:
        sort_col = self._col(self._sort_key)
        order = [sort_col.desc() if self._descending else sort_col.asc()]
        if self._tie_breaker != self._sort_key:
            order.append(self._col(self._tie_breaker).asc())
        stmt = self._where(select(*(self._table.c[name] for name in self._columns)))
        return (
            stmt.order_by(*order)
            .limit(bindparam("limit", limit))
            .offset(bindparam("offset", offset))
        )
