"""Domain models for the store rating directory."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional


class Role(str, Enum):
    ADMIN = "ADMIN"
    USER = "USER"
    STORE_OWNER = "STORE_OWNER"

    @classmethod
    def parse(cls, value: str) -> "Role":
        try:
            return cls(value.strip().upper())
        except ValueError as exc:
            raise ValueError(f"Unknown role '{value}'") from exc


@dataclass(frozen=True)
class User:
    """A directory account. The password hash never leaves the database layer."""

    id: int
    name: str
    email: str
    address: Optional[str]
    role: Role
    created_at: datetime


@dataclass(frozen=True)
class Store:
    id: int
    name: str
    email: str
    address: Optional[str]
    owner_id: Optional[int]
    created_at: datetime


@dataclass(frozen=True)
class Rating:
    user_id: int
    store_id: int
    value: int
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class StoreListing:
    """One row of the store browser, aggregates already formatted."""

    id: int
    name: str
    email: str
    address: Optional[str]
    overall_rating: str
    user_submitted_rating: Optional[int]


@dataclass(frozen=True)
class UserListing:
    id: int
    name: str
    email: str
    address: Optional[str]
    role: Role
    created_at: datetime
    store_rating: Optional[str]


@dataclass(frozen=True)
class Pagination:
    page: int
    limit: int
    total: int
    total_pages: int


@dataclass(frozen=True)
class UserPage:
    users: List[UserListing]
    pagination: Pagination


@dataclass(frozen=True)
class Rater:
    name: str
    email: str
    rating: int
    updated_at: datetime


@dataclass(frozen=True)
class OwnerDashboard:
    store_id: int
    average_rating: str
    raters: List[Rater] = field(default_factory=list)


@dataclass(frozen=True)
class GlobalStats:
    total_users: int
    total_stores: int
    total_ratings: int


__all__ = [
    "GlobalStats",
    "OwnerDashboard",
    "Pagination",
    "Rater",
    "Rating",
    "Role",
    "Store",
    "StoreListing",
    "User",
    "UserListing",
    "UserPage",
]
