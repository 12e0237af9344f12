"""CSV export for inventory, jobs and invoices; CSV import for inventory."""

import csv
import logging
from pathlib import Path

from autoshop.database.models import InventoryItem
from autoshop.database.repository import Repository
from autoshop.engine.errors import ShopError
from autoshop.engine.stock import StockLedger
from autoshop.io.validators import SCHEMAS, validate

logger = logging.getLogger(__name__)

INVENTORY_CSV_COLUMNS = [
    "sku", "name", "description", "category", "quantity", "min_stock",
    "cost_price", "sell_price", "supplier", "location",
]

JOB_CSV_COLUMNS = [
    "job_number", "status", "priority", "plate_number", "customer",
    "technician", "labor_hours", "labor_cost", "parts_cost", "total_cost",
    "created_at", "completed_at",
]

INVOICE_CSV_COLUMNS = [
    "invoice_number", "job_number", "customer", "subtotal", "tax_amount",
    "discount", "total", "amount_paid", "balance", "status", "due_date",
    "created_at",
]


def inventory_row(item: InventoryItem) -> dict:
    return {
        "sku": item.sku,
        "name": item.name,
        "description": item.description,
        "category": item.category,
        "quantity": item.quantity,
        "min_stock": item.min_stock,
        "cost_price": item.cost_price,
        "sell_price": item.sell_price,
        "supplier": item.supplier_name,
        "location": item.location,
    }


def job_row(job) -> dict:
    return {
        "job_number": job.job_number,
        "status": job.status,
        "priority": job.priority,
        "plate_number": job.plate_number,
        "customer": job.customer_name,
        "technician": job.technician,
        "labor_hours": job.labor_hours,
        "labor_cost": job.labor_cost,
        "parts_cost": job.parts_cost,
        "total_cost": job.total_cost,
        "created_at": job.created_at,
        "completed_at": job.completed_at,
    }


def invoice_row(invoice) -> dict:
    return {
        "invoice_number": invoice.invoice_number,
        "job_number": invoice.job_number,
        "customer": invoice.customer_name,
        "subtotal": invoice.subtotal,
        "tax_amount": invoice.tax_amount,
        "discount": invoice.discount,
        "total": invoice.total,
        "amount_paid": invoice.amount_paid,
        "balance": invoice.balance,
        "status": invoice.status,
        "due_date": invoice.due_date,
        "created_at": invoice.created_at,
    }


def _write_csv(filepath: str | Path, columns: list[str], rows: list[dict]) -> int:
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)
    with open(filepath, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=columns)
        writer.writeheader()
        writer.writerows(rows)
    return len(rows)


def export_inventory_csv(repo: Repository, filepath: str | Path) -> int:
    """Export all inventory items to CSV. Returns the number of rows written."""
    items = repo.get_all_items()
    return _write_csv(filepath, INVENTORY_CSV_COLUMNS,
                      [inventory_row(i) for i in items])


def export_jobs_csv(repo: Repository, filepath: str | Path,
                    status: str = None) -> int:
    """Export jobs (optionally one status) to CSV. Returns row count."""
    jobs = repo.list_jobs(status=status)
    return _write_csv(filepath, JOB_CSV_COLUMNS, [job_row(j) for j in jobs])


def export_invoices_csv(repo: Repository, filepath: str | Path,
                        status: str = None) -> int:
    invoices = repo.list_invoices(status=status)
    return _write_csv(filepath, INVOICE_CSV_COLUMNS,
                      [invoice_row(i) for i in invoices])


def import_inventory_csv(
    repo: Repository,
    stock: StockLedger,
    filepath: str | Path,
    update_existing: bool = False,
) -> dict:
    """Import inventory items from CSV. Returns results dict with counts and errors.

    Opening quantities are booked through the stock ledger, so every
    imported unit has a matching movement.
    """
    filepath = Path(filepath)
    results = {"imported": 0, "updated": 0, "skipped": 0, "errors": []}

    suppliers = {s.name: s.id for s in repo.get_all_suppliers()}

    try:
        with open(filepath, "r", encoding="utf-8", newline="") as f:
            reader = csv.DictReader(f)
            for row_num, row in enumerate(reader, start=2):
                row = {k: (v or "").strip() for k, v in row.items() if k}
                errors = validate(row, SCHEMAS["inventory"])
                if errors:
                    results["errors"].extend(
                        f"Row {row_num}: {e}" for e in errors
                    )
                    results["skipped"] += 1
                    continue

                sku = row.get("sku") or None
                existing = repo.get_item_by_sku(sku) if sku else None
                if existing and not update_existing:
                    results["skipped"] += 1
                    continue

                quantity = row.get("quantity")
                item = InventoryItem(
                    id=existing.id if existing else None,
                    sku=sku,
                    name=row["name"],
                    description=row.get("description") or None,
                    category=row.get("category") or None,
                    # a blank quantity leaves existing stock alone
                    quantity=(int(float(quantity)) if quantity
                              else existing.quantity if existing else 0),
                    min_stock=int(float(row.get("min_stock") or 5)),
                    cost_price=float(row.get("cost_price") or 0),
                    sell_price=float(row.get("sell_price") or 0),
                    supplier_id=suppliers.get(row.get("supplier", "")),
                    location=row.get("location") or None,
                )
                try:
                    if existing:
                        stock.update_item(item)
                        results["updated"] += 1
                    else:
                        stock.create_item(item)
                        results["imported"] += 1
                except ShopError as e:
                    results["errors"].append(f"Row {row_num}: {e.message}")
                    results["skipped"] += 1

    except (OSError, UnicodeDecodeError, csv.Error) as e:
        logger.warning("Inventory import from %s failed: %s", filepath, e)
        results["errors"].append(f"File error: {e}")

    return results
