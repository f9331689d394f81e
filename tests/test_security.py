from __future__ import annotations

import sys
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from jose import jwt

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from storerate.config import Settings  # noqa: E402
from storerate.models import Role, User  # noqa: E402
from storerate.security import TokenCodec  # noqa: E402


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return Settings(database_path=tmp_path / "tokens.sqlite3", secret_key="unit-test-secret")


@pytest.fixture()
def owner() -> User:
    return User(
        id=42,
        name="Token Owner",
        email="token-owner@example.com",
        address=None,
        role=Role.STORE_OWNER,
        created_at=datetime.now(timezone.utc),
    )


def test_issued_token_round_trips(settings: Settings, owner: User) -> None:
    codec = TokenCodec(settings)

    principal = codec.verify(codec.issue(owner))

    assert principal is not None
    assert principal.user_id == 42
    assert principal.role is Role.STORE_OWNER


def test_token_claims(settings: Settings, owner: User) -> None:
    issued_at = datetime(2026, 1, 1, tzinfo=timezone.utc)
    token = TokenCodec(settings).issue(owner, now=issued_at)

    claims = jwt.get_unverified_claims(token)

    assert claims["sub"] == "42"
    assert claims["role"] == "STORE_OWNER"
    assert claims["exp"] - claims["iat"] == int(timedelta(days=7).total_seconds())


def test_expired_token_is_rejected(settings: Settings, owner: User) -> None:
    codec = TokenCodec(settings)
    token = codec.issue(owner, now=datetime.now(timezone.utc) - timedelta(days=8))

    assert codec.verify(token) is None


def test_token_signed_with_other_secret_is_rejected(settings: Settings, owner: User) -> None:
    foreign = TokenCodec(replace(settings, secret_key="someone-else"))
    assert TokenCodec(settings).verify(foreign.issue(owner)) is None


def test_tampered_token_is_rejected(settings: Settings, owner: User) -> None:
    codec = TokenCodec(settings)
    header, payload, signature = codec.issue(owner).split(".")
    forged = jwt.encode({"sub": "1", "role": "ADMIN"}, "guess", algorithm="HS256").split(".")[1]

    assert codec.verify(f"{header}.{forged}.{signature}") is None
    assert codec.verify("garbage") is None


def test_empty_secret_is_refused(settings: Settings) -> None:
    with pytest.raises(ValueError):
        TokenCodec(replace(settings, secret_key=""))
