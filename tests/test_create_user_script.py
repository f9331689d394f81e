"""Tests for the standalone user creation script."""

from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from scripts import create_user  # noqa: E402
from storerate.database import Database  # noqa: E402
from storerate.models import Role  # noqa: E402


def _run(monkeypatch, argv, passwords):
    answers = iter(passwords)
    monkeypatch.setattr(create_user.getpass, "getpass", lambda prompt="": next(answers))
    monkeypatch.setattr(sys, "argv", ["create_user.py", *argv])
    return create_user.main()


def test_creates_store_owner(tmp_path, monkeypatch, capsys):
    db_path = tmp_path / "script.sqlite3"

    result = _run(
        monkeypatch,
        ["Shop Keeper", "Keeper@Example.com", "--role", "STORE_OWNER", "--db", str(db_path)],
        ["Keeper#Pass1", "Keeper#Pass1"],
    )

    assert result == 0
    assert "Created STORE_OWNER" in capsys.readouterr().out
    user = Database(db_path).get_user_by_email("keeper@example.com")
    assert user is not None
    assert user.role is Role.STORE_OWNER


def test_duplicate_email_reports_error(tmp_path, monkeypatch, capsys):
    db_path = tmp_path / "script.sqlite3"
    argv = ["Repeat Person", "repeat@example.com", "--db", str(db_path)]

    assert _run(monkeypatch, argv, ["Repeat#Pass1", "Repeat#Pass1"]) == 0
    assert _run(monkeypatch, argv, ["Repeat#Pass1", "Repeat#Pass1"]) == 1
    assert "already exists" in capsys.readouterr().err


def test_mismatched_password_is_retried(tmp_path, monkeypatch):
    db_path = tmp_path / "script.sqlite3"

    result = _run(
        monkeypatch,
        ["Retry Person", "retry@example.com", "--db", str(db_path)],
        ["Retry#Pass1", "Different#1", "Retry#Pass1", "Retry#Pass1"],
    )

    assert result == 0
