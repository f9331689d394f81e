"""Insert-or-replace handling for the one-rating-per-user-per-store rule."""
from __future__ import annotations

import logging
import sqlite3
from typing import Any

from .database import Database, current_timestamp, parse_datetime, serialize_datetime
from .errors import NotFoundError, ValidationError
from .models import Rating

logger = logging.getLogger("storerate.ratings")

MIN_RATING = 1
MAX_RATING = 5


def validate_rating_value(value: Any) -> int:
    """Return ``value`` if it is an integer in [1, 5], else raise ValidationError."""

    # bool is an int subclass; True must not be accepted as a rating of 1.
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError("Rating must be an integer between 1 and 5")
    if not MIN_RATING <= value <= MAX_RATING:
        raise ValidationError("Rating must be an integer between 1 and 5")
    return value


class RatingEngine:
    """Create a rating on first submission and overwrite it on every later one."""

    def __init__(self, database: Database) -> None:
        self._database = database

    def submit_rating(self, user_id: int, store_id: int, value: int) -> Rating:
        """Atomically upsert the (user, store) rating and return the stored row.

        The insert is attempted first; a clash on the (user_id, store_id)
        unique key is resolved by updating that row inside the same
        write transaction, so concurrent submissions serialize into one
        final value.
        """

        value = validate_rating_value(value)
        now = serialize_datetime(current_timestamp())

        with self._database.transaction(immediate=True) as conn:
            store = conn.execute("SELECT id FROM stores WHERE id = ?", (store_id,)).fetchone()
            if store is None:
                raise NotFoundError("Store")

            try:
                conn.execute(
                    """
                    INSERT INTO ratings (user_id, store_id, rating, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (user_id, store_id, value, now, now),
                )
            except sqlite3.IntegrityError:
                cursor = conn.execute(
                    "UPDATE ratings SET rating = ?, updated_at = ? WHERE user_id = ? AND store_id = ?",
                    (value, now, user_id, store_id),
                )
                if cursor.rowcount == 0:
                    # Nothing to update means the clash was the user foreign key.
                    raise NotFoundError("User")

            row = conn.execute(
                """
                SELECT user_id, store_id, rating, created_at, updated_at
                  FROM ratings
                 WHERE user_id = ? AND store_id = ?
                """,
                (user_id, store_id),
            ).fetchone()

        logger.info("Rating %s stored for store %s by user %s", value, store_id, user_id)
        return Rating(
            user_id=int(row["user_id"]),
            store_id=int(row["store_id"]),
            value=int(row["rating"]),
            created_at=parse_datetime(str(row["created_at"])),
            updated_at=parse_datetime(str(row["updated_at"])),
        )


__all__ = ["MAX_RATING", "MIN_RATING", "RatingEngine", "validate_rating_value"]
