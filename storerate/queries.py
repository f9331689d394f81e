"""Parameterised list queries over users and stores.

Every column that can appear in a WHERE or ORDER BY clause is named by an
enum member below.  Caller-supplied keys are only ever used to *look up*
a member; the SQL text is assembled exclusively from the fixed fragments
attached to those members, and every caller-supplied value travels as a
bound parameter.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple, Type

from .errors import ValidationError


class Entity(str, Enum):
    USERS = "users"
    STORES = "stores"


class SortOrder(str, Enum):
    ASC = "ASC"
    DESC = "DESC"

    @classmethod
    def resolve(cls, value: Optional[str]) -> "SortOrder":
        if isinstance(value, str):
            normalized = value.strip().upper()
            if normalized in cls.__members__:
                return cls[normalized]
        return cls.ASC


class StoreSortField(str, Enum):
    NAME = "name"
    ADDRESS = "address"
    OVERALL_RATING = "overallRating"


class UserSortField(str, Enum):
    NAME = "name"
    EMAIL = "email"
    ADDRESS = "address"
    ROLE = "role"
    CREATED_AT = "created_at"


class MatchMode(Enum):
    CONTAINS = "contains"
    EXACT = "exact"


@dataclass(frozen=True)
class FilterColumn:
    expression: str
    mode: MatchMode


@dataclass(frozen=True)
class SortSpec:
    sort_by: Optional[str] = None
    sort_order: Optional[str] = None


@dataclass(frozen=True)
class PageRequest:
    page: int = 1
    limit: int = 10

    def __post_init__(self) -> None:
        if int(self.page) < 1:
            raise ValidationError("page must be at least 1")
        if int(self.limit) < 1:
            raise ValidationError("limit must be at least 1")

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


@dataclass(frozen=True)
class ListQuery:
    """A fully bound query plan; nothing in ``sql`` came from the caller."""

    entity: Entity
    sql: str
    params: Tuple[Any, ...]
    count_sql: Optional[str]
    count_params: Tuple[Any, ...]
    sort_by: Enum
    sort_order: SortOrder
    limit: Optional[int] = None
    offset: Optional[int] = None


@dataclass(frozen=True)
class _EntityPlan:
    select: str
    count_from: Optional[str]
    group_by: str
    tiebreak: str
    filters: Mapping[str, FilterColumn]
    sort_enum: Type[Enum]
    sort_columns: Mapping[Enum, str]
    default_sort: Enum
    paginated: bool


_STORE_PLAN = _EntityPlan(
    select=(
        "SELECT s.id, s.name, s.email, s.address, "
        "AVG(r.rating) AS overall_rating, "
        "(SELECT own.rating FROM ratings own "
        "WHERE own.user_id = ? AND own.store_id = s.id) AS user_submitted_rating "
        "FROM stores s LEFT JOIN ratings r ON r.store_id = s.id"
    ),
    count_from=None,
    group_by="s.id",
    tiebreak="s.id ASC",
    filters={
        "name": FilterColumn("s.name", MatchMode.CONTAINS),
        "address": FilterColumn("s.address", MatchMode.CONTAINS),
    },
    sort_enum=StoreSortField,
    sort_columns={
        StoreSortField.NAME: "s.name",
        StoreSortField.ADDRESS: "s.address",
        StoreSortField.OVERALL_RATING: "overall_rating",
    },
    default_sort=StoreSortField.NAME,
    paginated=False,
)

_USER_PLAN = _EntityPlan(
    select=(
        "SELECT u.id, u.name, u.email, u.address, u.role, u.created_at, "
        "AVG(r.rating) AS store_rating "
        "FROM users u "
        "LEFT JOIN stores s ON s.owner_id = u.id "
        "LEFT JOIN ratings r ON r.store_id = s.id"
    ),
    count_from="SELECT COUNT(*) AS total FROM users u",
    group_by="u.id",
    tiebreak="u.id ASC",
    filters={
        "name": FilterColumn("u.name", MatchMode.CONTAINS),
        "email": FilterColumn("u.email", MatchMode.CONTAINS),
        "address": FilterColumn("u.address", MatchMode.CONTAINS),
        "role": FilterColumn("u.role", MatchMode.EXACT),
    },
    sort_enum=UserSortField,
    sort_columns={
        UserSortField.NAME: "u.name",
        UserSortField.EMAIL: "u.email",
        UserSortField.ADDRESS: "u.address",
        UserSortField.ROLE: "u.role",
        UserSortField.CREATED_AT: "u.created_at",
    },
    default_sort=UserSortField.NAME,
    paginated=True,
)

_PLANS: Dict[Entity, _EntityPlan] = {
    Entity.STORES: _STORE_PLAN,
    Entity.USERS: _USER_PLAN,
}


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def resolve_sort_field(entity: Entity, sort_by: Optional[str]) -> Enum:
    """Map ``sort_by`` onto the entity's allow-list, falling back to ``name``."""

    plan = _PLANS[entity]
    if isinstance(sort_by, str):
        for member in plan.sort_enum:
            if member.value == sort_by:
                return member
    return plan.default_sort


def build_predicate(entity: Entity, filters: Optional[Mapping[str, Any]]) -> Tuple[str, Tuple[Any, ...]]:
    """Return the WHERE clause (possibly empty) and its bound values.

    Keys outside the allow-list and blank values are ignored.
    """

    plan = _PLANS[entity]
    clauses = []
    params = []
    for key, column in plan.filters.items():
        if not filters or key not in filters:
            continue
        raw = filters[key]
        if raw is None:
            continue
        value = str(raw).strip()
        if not value:
            continue
        if column.mode is MatchMode.EXACT:
            clauses.append(f"{column.expression} = ?")
            params.append(value.upper())
        else:
            clauses.append(f"{column.expression} LIKE ? ESCAPE '\\'")
            params.append(f"%{_escape_like(value)}%")

    if not clauses:
        return "", ()
    return " WHERE " + " AND ".join(clauses), tuple(params)


def build_list_query(
    entity: Entity,
    filters: Optional[Mapping[str, Any]] = None,
    sort: Optional[SortSpec] = None,
    pagination: Optional[PageRequest] = None,
    *,
    viewer_id: Optional[int] = None,
) -> ListQuery:
    """Construct the data query (and, for paginated entities, the count query)."""

    plan = _PLANS[entity]
    sort = sort or SortSpec()
    sort_field = resolve_sort_field(entity, sort.sort_by)
    sort_order = SortOrder.resolve(sort.sort_order)
    where, where_params = build_predicate(entity, filters)

    params: Tuple[Any, ...] = ()
    if entity is Entity.STORES:
        params += (viewer_id,)
    params += where_params

    sql = (
        f"{plan.select}{where} GROUP BY {plan.group_by} "
        f"ORDER BY {plan.sort_columns[sort_field]} {sort_order.value}, {plan.tiebreak}"
    )

    limit: Optional[int] = None
    offset: Optional[int] = None
    count_sql: Optional[str] = None
    count_params: Tuple[Any, ...] = ()
    if plan.paginated:
        page = pagination or PageRequest()
        limit, offset = page.limit, page.offset
        sql += " LIMIT ? OFFSET ?"
        params += (limit, offset)
        count_sql = f"{plan.count_from}{where}"
        count_params = where_params

    return ListQuery(
        entity=entity,
        sql=sql,
        params=params,
        count_sql=count_sql,
        count_params=count_params,
        sort_by=sort_field,
        sort_order=sort_order,
        limit=limit,
        offset=offset,
    )


def total_pages(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit > 0 else 0


__all__ = [
    "Entity",
    "ListQuery",
    "PageRequest",
    "SortOrder",
    "SortSpec",
    "StoreSortField",
    "UserSortField",
    "build_list_query",
    "build_predicate",
    "resolve_sort_field",
    "total_pages",
]
