from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from storerate.errors import ValidationError  # noqa: E402
from storerate.queries import (  # noqa: E402
    Entity,
    PageRequest,
    SortOrder,
    SortSpec,
    StoreSortField,
    UserSortField,
    build_list_query,
    total_pages,
)


def test_unknown_sort_field_matches_omitted_sort() -> None:
    hostile = build_list_query(Entity.STORES, sort=SortSpec(sort_by="dropTable"))
    omitted = build_list_query(Entity.STORES)

    assert hostile == omitted
    assert hostile.sort_by is StoreSortField.NAME
    assert hostile.sort_order is SortOrder.ASC
    assert "dropTable" not in hostile.sql


def test_sort_field_is_resolved_per_entity() -> None:
    stores = build_list_query(Entity.STORES, sort=SortSpec(sort_by="overallRating", sort_order="desc"))
    assert stores.sort_by is StoreSortField.OVERALL_RATING
    assert "ORDER BY overall_rating DESC" in stores.sql

    # created_at is sortable for users but not for stores.
    users = build_list_query(Entity.USERS, sort=SortSpec(sort_by="created_at"))
    assert users.sort_by is UserSortField.CREATED_AT
    store_fallback = build_list_query(Entity.STORES, sort=SortSpec(sort_by="created_at"))
    assert store_fallback.sort_by is StoreSortField.NAME


@pytest.mark.parametrize(
    "raw, expected",
    [("desc", SortOrder.DESC), (" DeSc ", SortOrder.DESC), ("asc", SortOrder.ASC), ("sideways", SortOrder.ASC), (None, SortOrder.ASC)],
)
def test_sort_order_is_normalised(raw, expected) -> None:
    query = build_list_query(Entity.USERS, sort=SortSpec(sort_order=raw))
    assert query.sort_order is expected


def test_unknown_filter_keys_are_ignored() -> None:
    query = build_list_query(
        Entity.STORES,
        {"name": "acme", "owner_id": "1 OR 1=1", "email": "x"},
        viewer_id=7,
    )

    assert query.params == (7, "%acme%")
    assert "owner_id" not in query.sql
    assert "s.email LIKE" not in query.sql


def test_blank_filters_add_no_predicate() -> None:
    query = build_list_query(Entity.USERS, {"name": "   ", "email": None})
    assert " WHERE " not in query.sql
    assert query.count_params == ()


def test_filter_values_are_bound_not_interpolated() -> None:
    payload = "'; DROP TABLE users; --"
    query = build_list_query(Entity.USERS, {"name": payload})

    assert payload not in query.sql
    assert f"%{payload}%" in query.params
    assert "u.name LIKE ? ESCAPE" in query.sql


def test_like_wildcards_in_filters_are_escaped() -> None:
    query = build_list_query(Entity.STORES, {"address": "50%_off"})
    assert query.params[1] == "%50\\%\\_off%"


def test_role_filter_is_exact_and_case_insensitive() -> None:
    query = build_list_query(Entity.USERS, {"role": "store_owner"})
    assert "u.role = ?" in query.sql
    assert query.count_params == ("STORE_OWNER",)


def test_user_pagination_and_count_share_predicate() -> None:
    query = build_list_query(
        Entity.USERS,
        {"email": "example.com"},
        SortSpec(sort_by="email"),
        PageRequest(page=3, limit=10),
    )

    assert query.limit == 10
    assert query.offset == 20
    assert query.params == ("%example.com%", 10, 20)
    assert query.count_sql is not None
    assert query.count_sql.endswith("WHERE u.email LIKE ? ESCAPE '\\'")
    assert "ORDER BY" not in query.count_sql
    assert query.count_params == ("%example.com%",)


def test_store_listing_is_not_paginated() -> None:
    query = build_list_query(Entity.STORES, pagination=PageRequest(page=2, limit=5))
    assert query.count_sql is None
    assert query.limit is None
    assert "LIMIT" not in query.sql


@pytest.mark.parametrize("page, limit", [(0, 10), (1, 0), (-1, 5)])
def test_page_request_rejects_non_positive_values(page: int, limit: int) -> None:
    with pytest.raises(ValidationError):
        PageRequest(page=page, limit=limit)


def test_total_pages_rounds_up() -> None:
    assert total_pages(25, 10) == 3
    assert total_pages(20, 10) == 2
    assert total_pages(0, 10) == 0
