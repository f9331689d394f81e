"""Read-time aggregates: store averages, owner dashboards and global counts.

Nothing computed here is persisted; each call reads the current rating
rows.  Averages share a single formatting rule (``format_average``).
"""
from __future__ import annotations

from typing import List, Optional

from .database import Database, parse_datetime
from .errors import NotFoundError
from .models import GlobalStats, OwnerDashboard, Rater, Role, StoreListing, UserListing
from .queries import ListQuery

NO_RATINGS = "N/A"


def format_average(value: Optional[float]) -> str:
    """Two-decimal string for an average, ``"N/A"`` when there were no rows."""

    if value is None:
        return NO_RATINGS
    return f"{float(value):.2f}"


def format_optional_average(value: Optional[float]) -> Optional[str]:
    return None if value is None else format_average(value)


class AggregationEngine:
    def __init__(self, database: Database) -> None:
        self._database = database

    def store_overall_rating(self, store_id: int) -> str:
        row = self._database.fetch_one(
            "SELECT AVG(rating) AS average FROM ratings WHERE store_id = ?",
            (store_id,),
        )
        return format_average(row["average"] if row is not None else None)

    def user_submitted_rating(self, user_id: int, store_id: int) -> Optional[int]:
        """The caller's own rating, or ``None`` if this caller has not rated the store."""

        row = self._database.fetch_one(
            "SELECT rating FROM ratings WHERE user_id = ? AND store_id = ?",
            (user_id, store_id),
        )
        return int(row["rating"]) if row is not None else None

    def list_stores(self, query: ListQuery) -> List[StoreListing]:
        """Execute a store listing plan; averages come from the same grouped query."""

        rows = self._database.fetch_all(query.sql, query.params)
        return [
            StoreListing(
                id=int(row["id"]),
                name=str(row["name"]),
                email=str(row["email"]),
                address=row["address"],
                overall_rating=format_average(row["overall_rating"]),
                user_submitted_rating=(
                    int(row["user_submitted_rating"]) if row["user_submitted_rating"] is not None else None
                ),
            )
            for row in rows
        ]

    def list_users(self, query: ListQuery) -> List[UserListing]:
        rows = self._database.fetch_all(query.sql, query.params)
        return [
            UserListing(
                id=int(row["id"]),
                name=str(row["name"]),
                email=str(row["email"]),
                address=row["address"],
                role=Role(row["role"]),
                created_at=parse_datetime(str(row["created_at"])),
                store_rating=format_optional_average(row["store_rating"]),
            )
            for row in rows
        ]

    def count(self, query: ListQuery) -> int:
        if query.count_sql is None:
            raise ValueError(f"{query.entity.value} listings are not paginated")
        row = self._database.fetch_one(query.count_sql, query.count_params)
        return int(row["total"]) if row is not None else 0

    def owner_store_rating(self, owner_id: int) -> Optional[str]:
        """Average across the stores owned by ``owner_id``; ``None`` when unrated or storeless."""

        row = self._database.fetch_one(
            """
            SELECT AVG(r.rating) AS average
              FROM stores s
              JOIN ratings r ON r.store_id = s.id
             WHERE s.owner_id = ?
            """,
            (owner_id,),
        )
        return format_optional_average(row["average"] if row is not None else None)

    def owner_dashboard(self, owner_id: int) -> OwnerDashboard:
        store = self._database.find_store_by_owner(owner_id)
        if store is None:
            raise NotFoundError("Store owned by this user")

        rows = self._database.fetch_all(
            """
            SELECT u.name, u.email, r.rating, r.updated_at
              FROM ratings r
              JOIN users u ON u.id = r.user_id
             WHERE r.store_id = ?
             ORDER BY r.updated_at DESC, r.id DESC
            """,
            (store.id,),
        )
        raters = [
            Rater(
                name=str(row["name"]),
                email=str(row["email"]),
                rating=int(row["rating"]),
                updated_at=parse_datetime(str(row["updated_at"])),
            )
            for row in rows
        ]
        return OwnerDashboard(
            store_id=store.id,
            average_rating=self.store_overall_rating(store.id),
            raters=raters,
        )

    def global_stats(self) -> GlobalStats:
        return GlobalStats(
            total_users=self._database.count_rows("users"),
            total_stores=self._database.count_rows("stores"),
            total_ratings=self._database.count_rows("ratings"),
        )


__all__ = ["AggregationEngine", "NO_RATINGS", "format_average", "format_optional_average"]
