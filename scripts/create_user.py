import argparse
import getpass
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from storerate.database import Database, resolve_database_path
from storerate.errors import ConflictError
from storerate.models import Role


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create a store rating user")
    parser.add_argument("name", help="Display name for the user")
    parser.add_argument("email", help="Unique email address for login")
    parser.add_argument("--address", default=None, help="Postal address")
    parser.add_argument(
        "--role",
        default=Role.USER.value,
        choices=[role.value for role in Role],
        help="Account role (default: USER)",
    )
    parser.add_argument(
        "--db",
        dest="db_path",
        default=None,
        help="Path to the SQLite database (defaults to STORERATE_DB_PATH or data/storerate.sqlite3)",
    )
    return parser.parse_args()


def prompt_for_password() -> str:
    for _ in range(3):
        password = getpass.getpass("Password: ")
        confirm = getpass.getpass("Confirm password: ")
        if password != confirm:
            print("Passwords do not match. Try again.", file=sys.stderr)
            continue
        if not 8 <= len(password) <= 16:
            print("Password must be between 8 and 16 characters long.", file=sys.stderr)
            continue
        return password
    raise SystemExit("Failed to set password after three attempts.")


def main() -> int:
    args = parse_args()
    password = prompt_for_password()

    db_path = resolve_database_path(args.db_path or os.getenv("STORERATE_DB_PATH"))

    database = Database(db_path)
    database.initialize()

    try:
        user = database.create_user(
            args.name.strip(),
            args.email,
            password,
            address=args.address,
            role=Role.parse(args.role),
        )
    except ConflictError as exc:
        print(f"Error: {exc.message}", file=sys.stderr)
        return 1

    print(f"Created {user.role.value} #{user.id}: {user.name} <{user.email}>")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
