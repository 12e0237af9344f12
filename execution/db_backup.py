"""Database backup script: creates a timestamped SQLite backup."""

import sqlite3
import sys
from datetime import datetime
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from autoshop.config import Config


def backup_database(db_path: Path = None, backup_dir: Path = None,
                    keep: int = None) -> Path | None:
    """Copy the live database into the backup directory.

    Uses SQLite's online backup API, so a backup taken while the shop
    is writing is still consistent. Only the newest ``keep`` backups
    are retained. Returns the backup path, or None if there is no
    database yet.
    """
    db_path = Path(db_path or Config.DATABASE_PATH)
    backup_dir = Path(backup_dir or Config.BACKUP_PATH)
    keep = keep if keep is not None else Config.BACKUP_KEEP
    backup_dir.mkdir(parents=True, exist_ok=True)

    if not db_path.exists():
        print(f"Database not found at {db_path}")
        return None

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
    backup_file = backup_dir / f"autoshop_{timestamp}.db"
    source = sqlite3.connect(str(db_path))
    target = sqlite3.connect(str(backup_file))
    try:
        source.backup(target)
    finally:
        target.close()
        source.close()
    print(f"Backup created: {backup_file}")

    backups = sorted(backup_dir.glob("autoshop_*.db"), reverse=True)
    for old in backups[keep:]:
        old.unlink()
        print(f"Removed old backup: {old.name}")
    return backup_file


if __name__ == "__main__":
    backup_database()
