"""FastAPI application exposing the store rating directory."""

import logging
import re
import time
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, EmailStr, Field, field_validator
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import Settings, load_settings
from .database import Database
from .errors import StoreRateError
from .models import GlobalStats, OwnerDashboard, Role, Store, StoreListing, User, UserListing
from .queries import PageRequest, SortSpec
from .security import Principal, TokenCodec, build_auth_dependency, require_roles
from .service import DirectoryService

logger = logging.getLogger("storerate.api")

API_LIMIT = "100 per 15 minutes"
AUTH_LIMIT = "5 per 15 minutes"
RATING_LIMIT = "10 per minute"

_SPECIAL_CHARACTER = re.compile(r"[^A-Za-z0-9]")

_SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
    "Cross-Origin-Opener-Policy": "same-origin",
    "Cross-Origin-Resource-Policy": "same-origin",
    "X-DNS-Prefetch-Control": "off",
}


# ----------------------------------------------------------------------
# Request models
# ----------------------------------------------------------------------
def _check_name(value: str) -> str:
    stripped = value.strip()
    if not 2 <= len(stripped) <= 60:
        raise ValueError("name must be between 2 and 60 characters")
    return stripped


def _check_password(value: str) -> str:
    if not 8 <= len(value) <= 16:
        raise ValueError("password must be between 8 and 16 characters")
    if not any(char.isupper() for char in value):
        raise ValueError("password must contain at least one uppercase letter")
    if not _SPECIAL_CHARACTER.search(value):
        raise ValueError("password must contain at least one special character")
    return value


class RegisterRequest(BaseModel):
    name: str
    email: EmailStr
    password: str
    address: Optional[str] = Field(default=None, max_length=400)

    @field_validator("name")
    @classmethod
    def _validate_name(cls, value: str) -> str:
        return _check_name(value)

    @field_validator("password")
    @classmethod
    def _validate_password(cls, value: str) -> str:
        return _check_password(value)


class CreateUserRequest(RegisterRequest):
    role: Role = Role.USER

    @field_validator("role", mode="before")
    @classmethod
    def _normalize_role(cls, value: object) -> object:
        if isinstance(value, str):
            return Role.parse(value)
        return value


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class UpdatePasswordRequest(BaseModel):
    oldPassword: str = Field(..., min_length=1)
    newPassword: str

    @field_validator("newPassword")
    @classmethod
    def _validate_new_password(cls, value: str) -> str:
        return _check_password(value)


class CreateStoreRequest(BaseModel):
    name: str
    email: EmailStr
    address: Optional[str] = Field(default=None, max_length=400)
    owner_id: Optional[int] = Field(default=None, ge=1)

    @field_validator("name")
    @classmethod
    def _validate_name(cls, value: str) -> str:
        return _check_name(value)


class RatingRequest(BaseModel):
    rating: int = Field(..., ge=1, le=5)


# ----------------------------------------------------------------------
# Response models
# ----------------------------------------------------------------------
class UserResponse(BaseModel):
    id: int
    name: str
    email: str
    address: Optional[str]
    role: Role
    created_at: datetime


class UserDetailResponse(UserResponse):
    storeRating: Optional[str] = None


class UserListEntry(UserResponse):
    storeRating: Optional[str]


class PaginationResponse(BaseModel):
    page: int
    limit: int
    total: int
    totalPages: int


class UserListResponse(BaseModel):
    users: List[UserListEntry]
    pagination: PaginationResponse


class AuthResponse(BaseModel):
    token: str
    user: UserResponse


class StoreResponse(BaseModel):
    id: int
    name: str
    email: str
    address: Optional[str]
    owner_id: Optional[int]


class StoreListEntry(BaseModel):
    id: int
    name: str
    email: str
    address: Optional[str]
    overallRating: str
    userSubmittedRating: Optional[int]


class RatingResponse(BaseModel):
    message: str
    store_id: int
    rating: int
    created_at: datetime
    updated_at: datetime


class RaterResponse(BaseModel):
    name: str
    email: str
    rating: int
    updated_at: datetime


class OwnerDashboardResponse(BaseModel):
    averageRating: str
    raters: List[RaterResponse]


class DashboardStatsResponse(BaseModel):
    totalUsers: int
    totalStores: int
    totalRatings: int


class MessageResponse(BaseModel):
    message: str


def user_to_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        name=user.name,
        email=user.email,
        address=user.address,
        role=user.role,
        created_at=user.created_at,
    )


def user_listing_to_response(user: UserListing) -> UserListEntry:
    return UserListEntry(
        id=user.id,
        name=user.name,
        email=user.email,
        address=user.address,
        role=user.role,
        created_at=user.created_at,
        storeRating=user.store_rating,
    )


def store_to_response(store: Store) -> StoreResponse:
    return StoreResponse(
        id=store.id,
        name=store.name,
        email=store.email,
        address=store.address,
        owner_id=store.owner_id,
    )


def store_listing_to_response(store: StoreListing) -> StoreListEntry:
    return StoreListEntry(
        id=store.id,
        name=store.name,
        email=store.email,
        address=store.address,
        overallRating=store.overall_rating,
        userSubmittedRating=store.user_submitted_rating,
    )


def dashboard_to_response(dashboard: OwnerDashboard) -> OwnerDashboardResponse:
    return OwnerDashboardResponse(
        averageRating=dashboard.average_rating,
        raters=[
            RaterResponse(name=rater.name, email=rater.email, rating=rater.rating, updated_at=rater.updated_at)
            for rater in dashboard.raters
        ],
    )


def stats_to_response(stats: GlobalStats) -> DashboardStatsResponse:
    return DashboardStatsResponse(
        totalUsers=stats.total_users,
        totalStores=stats.total_stores,
        totalRatings=stats.total_ratings,
    )


def _validation_errors(exc: RequestValidationError) -> List[Dict[str, Any]]:
    errors: List[Dict[str, Any]] = []
    for error in exc.errors():
        location = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        errors.append({"field": ".".join(location), "message": str(error.get("msg", "Invalid value"))})
    return errors


def create_app(
    *,
    database: Optional[Database] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    if settings is None:
        settings = load_settings()
    if database is None:
        database = Database(settings.database_path)
    database.initialize()

    service = DirectoryService(database)
    service.ensure_admin(
        name=settings.admin_name,
        email=settings.admin_email,
        password=settings.admin_password,
    )

    codec = TokenCodec(settings)
    current_user = build_auth_dependency(database, codec)
    admin_only = require_roles(current_user, Role.ADMIN)
    owner_only = require_roles(current_user, Role.STORE_OWNER)

    limiter = Limiter(key_func=get_remote_address, enabled=settings.rate_limits_enabled)

    app = FastAPI(
        title="Store Rating API",
        description="Directory of stores with per-user ratings and aggregate statistics",
        version="1.0.0",
    )
    app.state.settings = settings
    app.state.database = database
    app.state.service = service
    app.state.limiter = limiter
    app.state.tokens = codec

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_url],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_and_harden(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000
        for header, value in _SECURITY_HEADERS.items():
            response.headers.setdefault(header, value)
        logger.info("%s %s -> %s (%.1f ms)", request.method, request.url.path, response.status_code, elapsed_ms)
        return response

    def get_service() -> DirectoryService:
        return service

    def _auth_response(user: User) -> AuthResponse:
        return AuthResponse(token=codec.issue(user), user=user_to_response(user))

    @app.get("/", response_model=MessageResponse)
    async def welcome() -> MessageResponse:
        return MessageResponse(message="Welcome to the Store Rating API!")

    @app.get("/api", response_model=MessageResponse)
    async def api_welcome() -> MessageResponse:
        return MessageResponse(message="Welcome to the Store Rating API!")

    @app.get("/api/health")
    async def healthcheck() -> Dict[str, str]:
        return {"status": "ok"}

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------
    auth_router = APIRouter()

    @auth_router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
    @limiter.shared_limit(AUTH_LIMIT, scope="auth", error_message="Too many authentication attempts, please try again later.")
    def register(
        request: Request,
        payload: RegisterRequest,
        svc: DirectoryService = Depends(get_service),
    ) -> AuthResponse:
        user = svc.create_user(
            name=payload.name,
            email=payload.email,
            password=payload.password,
            address=payload.address,
            role=Role.USER,
        )
        return _auth_response(user)

    @auth_router.post("/register-owner", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
    @limiter.shared_limit(AUTH_LIMIT, scope="auth", error_message="Too many authentication attempts, please try again later.")
    def register_owner(
        request: Request,
        payload: RegisterRequest,
        svc: DirectoryService = Depends(get_service),
    ) -> AuthResponse:
        user = svc.create_user(
            name=payload.name,
            email=payload.email,
            password=payload.password,
            address=payload.address,
            role=Role.STORE_OWNER,
        )
        return _auth_response(user)

    @auth_router.post("/login", response_model=AuthResponse)
    @limiter.shared_limit(AUTH_LIMIT, scope="auth", error_message="Too many authentication attempts, please try again later.")
    def login(
        request: Request,
        payload: LoginRequest,
        svc: DirectoryService = Depends(get_service),
    ) -> AuthResponse:
        user = svc.authenticate(payload.email, payload.password)
        logger.info("User %s logged in", user.id)
        return _auth_response(user)

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------
    users_router = APIRouter()

    @users_router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
    @limiter.shared_limit(API_LIMIT, scope="api", error_message="Too many requests from this IP, please try again later.")
    def create_user(
        request: Request,
        payload: CreateUserRequest,
        _: Principal = Depends(admin_only),
        svc: DirectoryService = Depends(get_service),
    ) -> UserResponse:
        user = svc.create_user(
            name=payload.name,
            email=payload.email,
            password=payload.password,
            address=payload.address,
            role=payload.role,
        )
        return user_to_response(user)

    @users_router.get("", response_model=UserListResponse)
    @limiter.shared_limit(API_LIMIT, scope="api", error_message="Too many requests from this IP, please try again later.")
    def list_users(
        request: Request,
        name: Optional[str] = None,
        email: Optional[str] = None,
        address: Optional[str] = None,
        role: Optional[str] = None,
        sort_by: Optional[str] = Query(default=None, alias="sortBy"),
        sort_order: Optional[str] = Query(default=None, alias="sortOrder"),
        page: int = Query(default=1, ge=1),
        limit: int = Query(default=10, ge=1),
        _: Principal = Depends(admin_only),
        svc: DirectoryService = Depends(get_service),
    ) -> UserListResponse:
        result = svc.list_users(
            {"name": name, "email": email, "address": address, "role": role},
            SortSpec(sort_by=sort_by, sort_order=sort_order),
            PageRequest(page=page, limit=limit),
        )
        return UserListResponse(
            users=[user_listing_to_response(user) for user in result.users],
            pagination=PaginationResponse(
                page=result.pagination.page,
                limit=result.pagination.limit,
                total=result.pagination.total,
                totalPages=result.pagination.total_pages,
            ),
        )

    @users_router.put("/update-password", response_model=MessageResponse)
    @limiter.shared_limit(API_LIMIT, scope="api", error_message="Too many requests from this IP, please try again later.")
    def update_password(
        request: Request,
        payload: UpdatePasswordRequest,
        principal: Principal = Depends(current_user),
        svc: DirectoryService = Depends(get_service),
    ) -> MessageResponse:
        svc.update_password(principal.user_id, payload.oldPassword, payload.newPassword)
        return MessageResponse(message="Password updated successfully")

    @users_router.get("/{user_id}", response_model=UserDetailResponse)
    @limiter.shared_limit(API_LIMIT, scope="api", error_message="Too many requests from this IP, please try again later.")
    def read_user(
        request: Request,
        user_id: int,
        _: Principal = Depends(admin_only),
        svc: DirectoryService = Depends(get_service),
    ) -> UserDetailResponse:
        user = svc.get_user(user_id)
        store_rating = svc.get_owner_store_rating(user.id) if user.role is Role.STORE_OWNER else None
        return UserDetailResponse(
            **user_to_response(user).model_dump(),
            storeRating=store_rating,
        )

    # ------------------------------------------------------------------
    # Stores
    # ------------------------------------------------------------------
    stores_router = APIRouter()

    @stores_router.post("", response_model=StoreResponse, status_code=status.HTTP_201_CREATED)
    @limiter.shared_limit(API_LIMIT, scope="api", error_message="Too many requests from this IP, please try again later.")
    def create_store(
        request: Request,
        payload: CreateStoreRequest,
        _: Principal = Depends(admin_only),
        svc: DirectoryService = Depends(get_service),
    ) -> StoreResponse:
        store = svc.create_store(
            name=payload.name,
            email=payload.email,
            address=payload.address,
            owner_id=payload.owner_id,
        )
        return store_to_response(store)

    @stores_router.get("", response_model=List[StoreListEntry])
    @limiter.shared_limit(API_LIMIT, scope="api", error_message="Too many requests from this IP, please try again later.")
    def list_stores(
        request: Request,
        name: Optional[str] = None,
        address: Optional[str] = None,
        sort_by: Optional[str] = Query(default=None, alias="sortBy"),
        sort_order: Optional[str] = Query(default=None, alias="sortOrder"),
        principal: Principal = Depends(current_user),
        svc: DirectoryService = Depends(get_service),
    ) -> List[StoreListEntry]:
        stores = svc.list_stores(
            {"name": name, "address": address},
            SortSpec(sort_by=sort_by, sort_order=sort_order),
            viewer_id=principal.user_id,
        )
        return [store_listing_to_response(store) for store in stores]

    @stores_router.get("/dashboard-stats", response_model=DashboardStatsResponse)
    @limiter.shared_limit(API_LIMIT, scope="api", error_message="Too many requests from this IP, please try again later.")
    def dashboard_stats(
        request: Request,
        _: Principal = Depends(admin_only),
        svc: DirectoryService = Depends(get_service),
    ) -> DashboardStatsResponse:
        return stats_to_response(svc.get_global_stats())

    @stores_router.get("/my-store", response_model=OwnerDashboardResponse)
    @limiter.shared_limit(API_LIMIT, scope="api", error_message="Too many requests from this IP, please try again later.")
    def my_store(
        request: Request,
        principal: Principal = Depends(owner_only),
        svc: DirectoryService = Depends(get_service),
    ) -> OwnerDashboardResponse:
        return dashboard_to_response(svc.get_owner_dashboard(principal.user_id))

    @stores_router.post("/{store_id}/ratings", response_model=RatingResponse)
    @limiter.shared_limit(API_LIMIT, scope="api", error_message="Too many requests from this IP, please try again later.")
    @limiter.limit(RATING_LIMIT, error_message="Too many rating submissions, please slow down.")
    def submit_rating(
        request: Request,
        store_id: int,
        payload: RatingRequest,
        principal: Principal = Depends(current_user),
        svc: DirectoryService = Depends(get_service),
    ) -> RatingResponse:
        rating = svc.submit_or_update_rating(user_id=principal.user_id, store_id=store_id, value=payload.rating)
        return RatingResponse(
            message="Rating submitted successfully",
            store_id=rating.store_id,
            rating=rating.value,
            created_at=rating.created_at,
            updated_at=rating.updated_at,
        )

    app.include_router(auth_router, prefix="/api/auth", tags=["auth"])
    app.include_router(users_router, prefix="/api/users", tags=["users"])
    app.include_router(stores_router, prefix="/api/stores", tags=["stores"])

    # ------------------------------------------------------------------
    # Error mapping
    # ------------------------------------------------------------------
    @app.exception_handler(StoreRateError)
    async def handle_store_rate_error(_: Request, exc: StoreRateError):
        payload: Dict[str, Any] = {"message": exc.message}
        if settings.debug and exc.__cause__ is not None:
            payload["detail"] = repr(exc.__cause__)
        if exc.status_code >= 500:
            logger.error("Request failed: %s", exc.message, exc_info=exc)
        return JSONResponse(status_code=exc.status_code, content=payload)

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_error(_: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"message": str(exc.detail)},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(_: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"message": "Validation Error", "errors": _validation_errors(exc)},
        )

    @app.exception_handler(RateLimitExceeded)
    async def handle_rate_limit(_: Request, exc: RateLimitExceeded):
        return JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content={"error": exc.detail},
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
        payload: Dict[str, Any] = {"message": "Something went wrong on the server!"}
        if settings.debug:
            payload["detail"] = repr(exc)
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=payload)

    return app


__all__ = ["create_app"]
