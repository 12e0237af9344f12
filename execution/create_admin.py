"""Create the first super admin account on an empty database."""

import getpass
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from autoshop.config import Config
from autoshop.database.connection import DatabaseConnection
from autoshop.database.repository import Repository
from autoshop.database.schema import initialize_database
from autoshop.engine.errors import ValidationError
from autoshop.security.auth import ensure_super_admin


def main():
    if len(sys.argv) < 2:
        print("Usage: python create_admin.py <username> [display name]")
        sys.exit(1)

    username = sys.argv[1]
    name = " ".join(sys.argv[2:]) or "Administrator"
    password = getpass.getpass("Password: ")
    if password != getpass.getpass("Confirm password: "):
        print("Passwords do not match")
        sys.exit(1)

    db = DatabaseConnection(Config.DATABASE_PATH)
    initialize_database(db)
    try:
        user_id = ensure_super_admin(
            Repository(db), username, password, name,
            min_length=Config.PASSWORD_MIN_LENGTH,
        )
    except ValidationError as e:
        print("; ".join(e.details or [e.message]))
        sys.exit(1)

    if user_id is None:
        print("Users already exist; nothing created")
    else:
        print(f"Created super admin '{username}' (id {user_id})")


if __name__ == "__main__":
    main()
