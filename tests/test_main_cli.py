import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from main import _parse_args, main  # noqa: E402


def test_default_command_invokes_serve() -> None:
    args = _parse_args([])
    assert args.command == "serve"
    assert args.port == 5000


def test_default_command_accepts_options_without_subcommand() -> None:
    args = _parse_args(["--host", "127.0.0.1", "--port", "8080"])
    assert args.command == "serve"
    assert args.host == "127.0.0.1"
    assert args.port == 8080


def test_config_flag_precedes_implicit_serve() -> None:
    args = _parse_args(["--config", "storerate.yaml", "--port", "9000"])
    assert args.config == "storerate.yaml"
    assert args.command == "serve"
    assert args.port == 9000


def test_create_admin_subcommand_still_available() -> None:
    args = _parse_args(["create-admin", "--email", "root@example.com"])
    assert args.command == "create-admin"
    assert args.email == "root@example.com"
    assert args.name is None


def test_init_db_creates_database(tmp_path: Path, monkeypatch) -> None:
    db_path = tmp_path / "cli.sqlite3"
    monkeypatch.delenv("STORERATE_CONFIG", raising=False)
    monkeypatch.setenv("STORERATE_DB_PATH", str(db_path))

    assert main(["init-db"]) == 0
    assert db_path.exists()


def test_create_admin_uses_configured_defaults(tmp_path: Path, monkeypatch, capsys) -> None:
    monkeypatch.delenv("STORERATE_CONFIG", raising=False)
    monkeypatch.setenv("STORERATE_DB_PATH", str(tmp_path / "admin.sqlite3"))
    monkeypatch.setenv("STORERATE_ADMIN_EMAIL", "boss@example.com")

    assert main(["create-admin"]) == 0
    assert main(["create-admin"]) == 0

    output = capsys.readouterr().out
    assert output.count("<boss@example.com>") == 2
