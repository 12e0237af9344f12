"""Standalone CSV import script: load inventory items from the command line."""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from autoshop.config import Config
from autoshop.database.connection import DatabaseConnection
from autoshop.database.repository import Repository
from autoshop.database.schema import initialize_database
from autoshop.engine.stock import StockLedger
from autoshop.io.csv_handler import import_inventory_csv


def main():
    if len(sys.argv) < 2:
        print("Usage: python import_csv.py <filepath.csv> [--update]")
        sys.exit(1)

    filepath = sys.argv[1]
    update = "--update" in sys.argv

    db = DatabaseConnection(Config.DATABASE_PATH)
    initialize_database(db)
    repo = Repository(db)
    stock = StockLedger(db, repo.audit)

    print(f"Importing inventory from: {filepath}")
    if update:
        print("Mode: Update items whose SKU already exists")

    results = import_inventory_csv(repo, stock, filepath,
                                   update_existing=update)

    print("\nResults:")
    print(f"  Imported: {results['imported']}")
    print(f"  Updated:  {results['updated']}")
    print(f"  Skipped:  {results['skipped']}")

    if results["errors"]:
        print(f"\nErrors ({len(results['errors'])}):")
        for err in results["errors"]:
            print(f"  - {err}")


if __name__ == "__main__":
    main()
