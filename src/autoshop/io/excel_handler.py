"""Excel (XLSX) export for inventory, jobs and invoices."""

from pathlib import Path

from openpyxl import Workbook

from autoshop.database.repository import Repository
from autoshop.io.csv_handler import (
    INVENTORY_CSV_COLUMNS,
    INVOICE_CSV_COLUMNS,
    JOB_CSV_COLUMNS,
    inventory_row,
    invoice_row,
    job_row,
)


def _heading(column: str) -> str:
    return column.replace("_", " ").title()


def _save_sheet(filepath: str | Path, title: str, columns: list[str],
                rows: list[dict]) -> int:
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)

    wb = Workbook()
    ws = wb.active
    ws.title = title
    ws.append([_heading(c) for c in columns])
    for row in rows:
        # openpyxl only writes plain scalars
        ws.append([
            row[c] if isinstance(row[c], (int, float, type(None))) else str(row[c])
            for c in columns
        ])

    # Auto-fit column widths (approximate)
    for col in ws.columns:
        max_len = max(len(str(cell.value or "")) for cell in col)
        ws.column_dimensions[col[0].column_letter].width = min(max_len + 2, 40)

    wb.save(filepath)
    return len(rows)


def export_inventory_excel(repo: Repository, filepath: str | Path) -> int:
    """Export all inventory items to an Excel workbook. Returns row count."""
    items = repo.get_all_items()
    return _save_sheet(filepath, "Inventory", INVENTORY_CSV_COLUMNS,
                       [inventory_row(i) for i in items])


def export_jobs_excel(repo: Repository, filepath: str | Path,
                      status: str = None) -> int:
    """Export jobs to an Excel workbook. Returns row count."""
    jobs = repo.list_jobs(status=status)
    return _save_sheet(filepath, "Jobs", JOB_CSV_COLUMNS,
                       [job_row(j) for j in jobs])


def export_invoices_excel(repo: Repository, filepath: str | Path,
                          status: str = None) -> int:
    invoices = repo.list_invoices(status=status)
    return _save_sheet(filepath, "Invoices", INVOICE_CSV_COLUMNS,
                       [invoice_row(i) for i in invoices])
