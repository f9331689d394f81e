"""SQLite-backed persistence for users, stores and ratings."""
from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator, List, Optional, Sequence

from passlib.context import CryptContext

from .errors import ConflictError, DatabaseError, ValidationError
from .models import Role, Store, User

logger = logging.getLogger("storerate.database")

_BUSY_TIMEOUT_SECONDS = 5.0

_COUNTABLE_TABLES = frozenset({"users", "stores", "ratings"})

_pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def _ensure_directory(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def resolve_database_path(env_value: Optional[str]) -> Path:
    """Resolve the on-disk path for the application database."""

    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    base_dir = Path(__file__).resolve().parent.parent / "data"
    return (base_dir / "storerate.sqlite3").resolve(strict=False)


def current_timestamp() -> datetime:
    return datetime.now(timezone.utc)


def serialize_datetime(value: datetime) -> str:
    return value.isoformat(timespec="microseconds")


def parse_datetime(value: str) -> datetime:
    return datetime.fromisoformat(value)


def normalize_email(email: str) -> str:
    return email.strip().lower()


def hash_password(password: str) -> str:
    return _pwd_context.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    try:
        return _pwd_context.verify(password, hashed)
    except ValueError:
        return False


class Database:
    """Thin wrapper around SQLite; one connection per unit of work."""

    def __init__(self, path: Path, *, timeout: float = _BUSY_TIMEOUT_SECONDS) -> None:
        _ensure_directory(path)
        self._path = path
        self._timeout = timeout

    @property
    def path(self) -> Path:
        return self._path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._path, timeout=self._timeout, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        # Transactions are managed explicitly in ``transaction``.
        conn.isolation_level = None
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextmanager
    def transaction(self, *, immediate: bool = False) -> Iterator[sqlite3.Connection]:
        """Run the enclosed statements as one atomic unit.

        ``immediate`` takes SQLite's write lock up front so that concurrent
        writers serialize instead of failing on lock upgrade. Engine
        failures leave the block as :class:`DatabaseError`; a UNIQUE
        violation that the caller did not handle becomes
        :class:`ConflictError`.
        """

        try:
            conn = self._connect()
        except sqlite3.Error as exc:
            logger.error("Unable to open database %s", self._path, exc_info=True)
            raise DatabaseError() from exc

        try:
            conn.execute("BEGIN IMMEDIATE" if immediate else "BEGIN")
            try:
                yield conn
            except BaseException:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")
        except sqlite3.IntegrityError as exc:
            if "UNIQUE" in str(exc).upper():
                raise ConflictError() from exc
            logger.error("Integrity failure", exc_info=True)
            raise DatabaseError() from exc
        except sqlite3.Error as exc:
            logger.error("Database operation failed", exc_info=True)
            raise DatabaseError() from exc
        finally:
            conn.close()

    def initialize(self) -> None:
        """Create the required tables if they do not already exist."""

        with self.transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    email TEXT NOT NULL UNIQUE,
                    address TEXT,
                    password_hash TEXT NOT NULL,
                    role TEXT NOT NULL DEFAULT 'USER'
                        CHECK (role IN ('ADMIN', 'USER', 'STORE_OWNER')),
                    created_at TEXT NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS stores (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    email TEXT NOT NULL UNIQUE,
                    address TEXT,
                    owner_id INTEGER REFERENCES users(id) ON DELETE SET NULL,
                    created_at TEXT NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS ratings (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                    store_id INTEGER NOT NULL REFERENCES stores(id) ON DELETE CASCADE,
                    rating INTEGER NOT NULL CHECK (rating BETWEEN 1 AND 5),
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    UNIQUE (user_id, store_id)
                )
                """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_stores_owner_id ON stores(owner_id)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_ratings_store_id ON ratings(store_id)")

    # ------------------------------------------------------------------
    # Generic reads
    # ------------------------------------------------------------------
    def fetch_all(self, sql: str, params: Sequence[Any] = ()) -> List[sqlite3.Row]:
        with self.transaction() as conn:
            return conn.execute(sql, tuple(params)).fetchall()

    def fetch_one(self, sql: str, params: Sequence[Any] = ()) -> Optional[sqlite3.Row]:
        with self.transaction() as conn:
            return conn.execute(sql, tuple(params)).fetchone()

    def count_rows(self, table: str) -> int:
        if table not in _COUNTABLE_TABLES:
            raise ValueError(f"Refusing to count unknown table '{table}'")
        row = self.fetch_one(f"SELECT COUNT(*) AS total FROM {table}")
        return int(row["total"]) if row is not None else 0

    # ------------------------------------------------------------------
    # User management
    # ------------------------------------------------------------------
    def create_user(
        self,
        name: str,
        email: str,
        password: str,
        *,
        address: Optional[str] = None,
        role: Role = Role.USER,
    ) -> User:
        """Create a new user with a hashed password."""

        if not password:
            raise ValidationError("Password must not be empty")

        created_at = current_timestamp()
        normalized_email = normalize_email(email)
        password_hash = hash_password(password)

        with self.transaction() as conn:
            try:
                cursor = conn.execute(
                    """
                    INSERT INTO users (name, email, address, password_hash, role, created_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        name.strip(),
                        normalized_email,
                        address,
                        password_hash,
                        role.value,
                        serialize_datetime(created_at),
                    ),
                )
            except sqlite3.IntegrityError as exc:
                raise ConflictError("User with this email already exists") from exc
            user_id = cursor.lastrowid

        logger.info("User created: %s (%s)", normalized_email, role.value)
        return User(
            id=int(user_id),
            name=name.strip(),
            email=normalized_email,
            address=address,
            role=role,
            created_at=created_at,
        )

    def get_user(self, user_id: int) -> Optional[User]:
        row = self.fetch_one("SELECT * FROM users WHERE id = ?", (user_id,))
        if row is None:
            return None
        return self._row_to_user(row)

    def get_user_by_email(self, email: str) -> Optional[User]:
        row = self.fetch_one("SELECT * FROM users WHERE email = ?", (normalize_email(email),))
        if row is None:
            return None
        return self._row_to_user(row)

    def authenticate_user(self, email: str, password: str) -> Optional[User]:
        row = self.fetch_one("SELECT * FROM users WHERE email = ?", (normalize_email(email),))
        if row is None:
            return None
        stored_hash = row["password_hash"]
        if not stored_hash or not verify_password(password, stored_hash):
            return None
        return self._row_to_user(row)

    def verify_user_password(self, user_id: int, password: str) -> bool:
        """Return ``True`` if the supplied password matches the stored hash."""

        row = self.fetch_one("SELECT password_hash FROM users WHERE id = ?", (user_id,))
        if row is None:
            return False

        stored_hash = row["password_hash"]
        if not stored_hash:
            return False

        return verify_password(password, stored_hash)

    def set_user_password(self, user_id: int, password: str) -> None:
        if not password:
            raise ValidationError("Password must not be empty")
        password_hash = hash_password(password)
        with self.transaction() as conn:
            conn.execute(
                "UPDATE users SET password_hash = ? WHERE id = ?",
                (password_hash, user_id),
            )

    # ------------------------------------------------------------------
    # Store management
    # ------------------------------------------------------------------
    def create_store(
        self,
        name: str,
        email: str,
        address: Optional[str],
        owner_id: Optional[int] = None,
    ) -> Store:
        """Insert a store. The owner, when given, must currently be a store owner."""

        created_at = current_timestamp()
        normalized_email = normalize_email(email)

        with self.transaction() as conn:
            if owner_id is not None:
                owner = conn.execute("SELECT role FROM users WHERE id = ?", (owner_id,)).fetchone()
                if owner is None or owner["role"] != Role.STORE_OWNER.value:
                    raise ValidationError("Invalid owner ID or the user is not a Store Owner")
            try:
                cursor = conn.execute(
                    """
                    INSERT INTO stores (name, email, address, owner_id, created_at)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (name.strip(), normalized_email, address, owner_id, serialize_datetime(created_at)),
                )
            except sqlite3.IntegrityError as exc:
                raise ConflictError("A store with this email already exists") from exc
            store_id = cursor.lastrowid

        return Store(
            id=int(store_id),
            name=name.strip(),
            email=normalized_email,
            address=address,
            owner_id=owner_id,
            created_at=created_at,
        )

    def get_store(self, store_id: int) -> Optional[Store]:
        row = self.fetch_one("SELECT * FROM stores WHERE id = ?", (store_id,))
        if row is None:
            return None
        return self._row_to_store(row)

    def find_store_by_owner(self, owner_id: int) -> Optional[Store]:
        row = self.fetch_one(
            "SELECT * FROM stores WHERE owner_id = ? ORDER BY id LIMIT 1",
            (owner_id,),
        )
        if row is None:
            return None
        return self._row_to_store(row)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _row_to_user(self, row: sqlite3.Row) -> User:
        return User(
            id=int(row["id"]),
            name=str(row["name"]),
            email=str(row["email"]),
            address=row["address"],
            role=Role(row["role"]),
            created_at=parse_datetime(str(row["created_at"])),
        )

    def _row_to_store(self, row: sqlite3.Row) -> Store:
        owner_id = row["owner_id"]
        return Store(
            id=int(row["id"]),
            name=str(row["name"]),
            email=str(row["email"]),
            address=row["address"],
            owner_id=int(owner_id) if owner_id is not None else None,
            created_at=parse_datetime(str(row["created_at"])),
        )


__all__ = [
    "Database",
    "current_timestamp",
    "hash_password",
    "normalize_email",
    "parse_datetime",
    "resolve_database_path",
    "serialize_datetime",
    "verify_password",
]
