"""Tests for CSV and Excel import/export."""

import csv

import pytest
from openpyxl import load_workbook

from autoshop.engine.commands import CreateJobCommand, PaymentCommand
from autoshop.io.csv_handler import (
    INVENTORY_CSV_COLUMNS,
    export_inventory_csv,
    export_invoices_csv,
    export_jobs_csv,
    import_inventory_csv,
)
from autoshop.io.excel_handler import (
    export_inventory_excel,
    export_invoices_excel,
    export_jobs_excel,
)


@pytest.fixture
def activity(costing, invoicing, shop):
    """One job billed and partly paid, one job still open."""
    billed = costing.create_job(CreateJobCommand(
        vehicle_id=shop["vehicle"], labor_hours=1, technician="Kamal",
    ))
    costing.create_job(CreateJobCommand(vehicle_id=shop["european_vehicle"]))
    invoice_id = invoicing.create_from_job(billed)
    invoicing.apply_payment(invoice_id, PaymentCommand(amount=500))
    return {"billed_job": billed, "invoice": invoice_id}


def _read_csv(path):
    with open(path, newline="", encoding="utf-8") as f:
        return list(csv.DictReader(f))


class TestCsvExport:
    def test_inventory(self, repo, shop, tmp_path):
        path = tmp_path / "out" / "inventory.csv"
        assert export_inventory_csv(repo, path) == 1
        rows = _read_csv(path)
        assert list(rows[0].keys()) == INVENTORY_CSV_COLUMNS
        assert rows[0]["sku"] == "BRK-001"
        assert rows[0]["quantity"] == "10"

    def test_jobs(self, repo, activity, tmp_path):
        path = tmp_path / "jobs.csv"
        assert export_jobs_csv(repo, path) == 2
        statuses = sorted(r["status"] for r in _read_csv(path))
        assert statuses == ["invoiced", "pending"]

    def test_jobs_by_status(self, repo, activity, tmp_path):
        path = tmp_path / "open.csv"
        assert export_jobs_csv(repo, path, status="pending") == 1

    def test_invoices(self, repo, activity, tmp_path):
        path = tmp_path / "invoices.csv"
        assert export_invoices_csv(repo, path) == 1
        row = _read_csv(path)[0]
        assert row["invoice_number"] == "INV-2025-0001"
        assert row["status"] == "partial"
        assert row["customer"] == "Nimal Perera"


class TestExcelExport:
    def test_inventory(self, repo, shop, tmp_path):
        path = tmp_path / "inventory.xlsx"
        assert export_inventory_excel(repo, path) == 1
        ws = load_workbook(path).active
        assert ws.title == "Inventory"
        assert ws["A1"].value == "Sku"
        assert ws["B2"].value == "Brake pad set"
        assert ws["E2"].value == 10

    def test_jobs_and_invoices(self, repo, activity, tmp_path):
        assert export_jobs_excel(repo, tmp_path / "jobs.xlsx") == 2
        assert export_invoices_excel(repo, tmp_path / "inv.xlsx") == 1
        ws = load_workbook(tmp_path / "inv.xlsx").active
        assert ws.title == "Invoices"
        assert ws.max_row == 2


class TestCsvImport:
    def _write(self, path, rows):
        with open(path, "w", newline="", encoding="utf-8") as f:
            writer = csv.DictWriter(f, fieldnames=INVENTORY_CSV_COLUMNS)
            writer.writeheader()
            for row in rows:
                writer.writerow(row)

    def test_new_items_booked_through_ledger(self, repo, stock, tmp_path):
        path = tmp_path / "import.csv"
        self._write(path, [
            {"sku": "OIL-5W30", "name": "Engine oil 4L", "quantity": "12",
             "cost_price": "4200", "sell_price": "5200"},
            {"sku": "FLT-010", "name": "Oil filter", "quantity": "0"},
        ])
        results = import_inventory_csv(repo, stock, path)
        assert results == {"imported": 2, "updated": 0, "skipped": 0,
                           "errors": []}
        oil = repo.get_item_by_sku("OIL-5W30")
        assert oil.quantity == 12
        assert stock.get_movements(oil.id)[0].notes == "Initial stock"

    def test_invalid_rows_reported(self, repo, stock, tmp_path):
        path = tmp_path / "bad.csv"
        self._write(path, [{"sku": "X-1", "name": "", "quantity": "abc"}])
        results = import_inventory_csv(repo, stock, path)
        assert results["skipped"] == 1
        assert "Row 2: Name is required" in results["errors"]

    def test_existing_sku_skipped_or_updated(self, repo, stock, shop,
                                             tmp_path):
        path = tmp_path / "update.csv"
        self._write(path, [{"sku": "BRK-001", "name": "Brake pad set",
                            "quantity": "6", "min_stock": "3"}])
        assert import_inventory_csv(repo, stock, path)["skipped"] == 1
        assert repo.get_item_by_id(shop["item"]).quantity == 10

        results = import_inventory_csv(repo, stock, path,
                                       update_existing=True)
        assert results["updated"] == 1
        assert repo.get_item_by_id(shop["item"]).quantity == 6

    def test_blank_quantity_keeps_stock(self, repo, stock, shop, tmp_path):
        path = tmp_path / "prices.csv"
        self._write(path, [{"sku": "BRK-001", "name": "Brake pad set",
                            "sell_price": "550"}])
        results = import_inventory_csv(repo, stock, path,
                                       update_existing=True)
        assert results["updated"] == 1
        item = repo.get_item_by_id(shop["item"])
        assert item.sell_price == 550.0
        assert item.quantity == 10

    def test_missing_file(self, repo, stock, tmp_path):
        results = import_inventory_csv(repo, stock, tmp_path / "nope.csv")
        assert results["errors"][0].startswith("File error")
