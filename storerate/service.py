"""Directory service: the single entry point request handlers talk to.

The service is constructed once with a :class:`Database` and holds no
other state.  It does not know who is calling; access control happens
before any method here is invoked.
"""
from __future__ import annotations

import logging
from typing import Any, List, Mapping, Optional

from .aggregates import AggregationEngine
from .database import Database
from .errors import NotFoundError, UnauthorizedError, ValidationError
from .models import GlobalStats, OwnerDashboard, Pagination, Rating, Role, Store, StoreListing, User, UserPage
from .queries import Entity, PageRequest, SortSpec, build_list_query, total_pages
from .ratings import RatingEngine

logger = logging.getLogger("storerate.service")


class DirectoryService:
    def __init__(self, database: Database) -> None:
        self._database = database
        self._ratings = RatingEngine(database)
        self._aggregates = AggregationEngine(database)

    @property
    def database(self) -> Database:
        return self._database

    # ------------------------------------------------------------------
    # Stores
    # ------------------------------------------------------------------
    def create_store(
        self,
        *,
        name: str,
        email: str,
        address: Optional[str],
        owner_id: Optional[int] = None,
    ) -> Store:
        logger.info("Creating store: %s", name)
        store = self._database.create_store(name, email, address, owner_id)
        logger.info("Store created successfully: %s (#%s)", store.name, store.id)
        return store

    def list_stores(
        self,
        filters: Optional[Mapping[str, Any]] = None,
        sort: Optional[SortSpec] = None,
        *,
        viewer_id: Optional[int] = None,
    ) -> List[StoreListing]:
        query = build_list_query(Entity.STORES, filters, sort, viewer_id=viewer_id)
        return self._aggregates.list_stores(query)

    def submit_or_update_rating(self, *, user_id: int, store_id: int, value: int) -> Rating:
        logger.info("Submitting rating for store %s by user %s", store_id, user_id)
        return self._ratings.submit_rating(user_id, store_id, value)

    def get_owner_dashboard(self, owner_id: int) -> OwnerDashboard:
        return self._aggregates.owner_dashboard(owner_id)

    def get_global_stats(self) -> GlobalStats:
        return self._aggregates.global_stats()

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------
    def list_users(
        self,
        filters: Optional[Mapping[str, Any]] = None,
        sort: Optional[SortSpec] = None,
        pagination: Optional[PageRequest] = None,
    ) -> UserPage:
        page = pagination or PageRequest()
        query = build_list_query(Entity.USERS, filters, sort, page)
        users = self._aggregates.list_users(query)
        total = self._aggregates.count(query)
        return UserPage(
            users=users,
            pagination=Pagination(
                page=page.page,
                limit=page.limit,
                total=total,
                total_pages=total_pages(total, page.limit),
            ),
        )

    def get_user(self, user_id: int) -> User:
        user = self._database.get_user(user_id)
        if user is None:
            raise NotFoundError("User")
        return user

    def get_owner_store_rating(self, owner_id: int) -> Optional[str]:
        return self._aggregates.owner_store_rating(owner_id)

    def create_user(
        self,
        *,
        name: str,
        email: str,
        password: str,
        address: Optional[str] = None,
        role: Role = Role.USER,
    ) -> User:
        logger.info("Creating user: %s", email)
        return self._database.create_user(name, email, password, address=address, role=role)

    def authenticate(self, email: str, password: str) -> User:
        user = self._database.authenticate_user(email, password)
        if user is None:
            raise UnauthorizedError("Invalid credentials")
        return user

    def update_password(self, user_id: int, old_password: str, new_password: str) -> None:
        if self._database.get_user(user_id) is None:
            raise NotFoundError("User")
        if not self._database.verify_user_password(user_id, old_password):
            raise ValidationError("Incorrect old password")
        self._database.set_user_password(user_id, new_password)
        logger.info("Password updated for user ID: %s", user_id)

    def ensure_admin(self, *, name: str, email: str, password: str) -> User:
        """Create the bootstrap administrator unless the account already exists."""

        existing = self._database.get_user_by_email(email)
        if existing is not None:
            return existing
        user = self.create_user(name=name, email=email, password=password, role=Role.ADMIN)
        logger.info("Default admin account created: %s", user.email)
        return user


__all__ = ["DirectoryService"]
