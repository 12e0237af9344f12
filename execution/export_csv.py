"""Standalone export script: inventory, jobs or invoices to CSV or Excel."""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from autoshop.config import Config
from autoshop.database.connection import DatabaseConnection
from autoshop.database.repository import Repository
from autoshop.database.schema import initialize_database
from autoshop.io.csv_handler import (
    export_inventory_csv,
    export_invoices_csv,
    export_jobs_csv,
)
from autoshop.io.excel_handler import (
    export_inventory_excel,
    export_invoices_excel,
    export_jobs_excel,
)

EXPORTERS = {
    ("inventory", ".csv"): export_inventory_csv,
    ("jobs", ".csv"): export_jobs_csv,
    ("invoices", ".csv"): export_invoices_csv,
    ("inventory", ".xlsx"): export_inventory_excel,
    ("jobs", ".xlsx"): export_jobs_excel,
    ("invoices", ".xlsx"): export_invoices_excel,
}


def main():
    if len(sys.argv) < 3:
        print("Usage: python export_csv.py <inventory|jobs|invoices> "
              "<output.csv|output.xlsx>")
        sys.exit(1)

    data_type = sys.argv[1].lower()
    filepath = sys.argv[2]
    exporter = EXPORTERS.get((data_type, Path(filepath).suffix.lower()))
    if exporter is None:
        print(f"Cannot export '{data_type}' to {filepath}. Use inventory, "
              "jobs or invoices with a .csv or .xlsx file.")
        sys.exit(1)

    db = DatabaseConnection(Config.DATABASE_PATH)
    initialize_database(db)
    count = exporter(Repository(db), filepath)
    print(f"Exported {count} {data_type} to {filepath}")


if __name__ == "__main__":
    main()
