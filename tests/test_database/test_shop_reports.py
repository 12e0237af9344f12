"""Tests for dashboard statistics, reports and the audit log."""

from datetime import datetime, timezone

import pytest

from autoshop.database.models import Expense
from autoshop.engine.commands import (
    CreateJobCommand,
    PaymentCommand,
    UpdateJobCommand,
)
from autoshop.engine.errors import ValidationError


def _today():
    return datetime.now(timezone.utc).date().isoformat()


@pytest.fixture
def billed_job(repo, costing, invoicing, shop):
    """A two-hour job, completed, invoiced at 3300 and paid 1000."""
    job_id = costing.create_job(CreateJobCommand(
        vehicle_id=shop["vehicle"], labor_hours=2, technician="Kamal",
    ))
    costing.update_job(job_id, UpdateJobCommand(status="in_progress"))
    costing.update_job(job_id, UpdateJobCommand(status="completed"))
    invoice_id = invoicing.create_from_job(job_id)
    invoicing.apply_payment(invoice_id, PaymentCommand(amount=1000))
    repo.create_expense(Expense(category="Rent", amount=300))
    return {"job": job_id, "invoice": invoice_id}


class TestDashboard:
    def test_empty_shop(self, repo):
        stats = repo.get_dashboard_stats()
        assert stats["jobs_today"] == 0
        assert stats["revenue_today"] == 0
        assert stats["recent_jobs"] == []

    def test_counts_and_money(self, repo, shop, billed_job):
        stats = repo.get_dashboard_stats()
        assert stats["jobs_today"] == 1
        assert stats["total_customers"] == 1
        assert stats["total_vehicles"] == 2
        assert stats["low_stock_items"] == 0
        assert stats["revenue_today"] == 1000.0
        assert stats["revenue_this_month"] == 1000.0
        assert stats["unpaid_invoices"] == 1
        assert stats["unpaid_balance"] == 2300.0
        assert [j.id for j in stats["recent_jobs"]] == [billed_job["job"]]


class TestRevenueReport:
    def test_daily(self, repo, billed_job):
        assert repo.get_revenue_report("daily") == [
            {"period": _today(), "total": 1000.0}
        ]

    def test_monthly_groups_payments(self, repo, invoicing, billed_job):
        invoicing.apply_payment(billed_job["invoice"],
                                PaymentCommand(amount=500))
        report = repo.get_revenue_report()
        assert len(report) == 1
        assert report[0]["period"] == _today()[:7]
        assert report[0]["total"] == 1500.0

    def test_unknown_period(self, repo):
        with pytest.raises(ValidationError):
            repo.get_revenue_report("hourly")


class TestSummaryReport:
    def test_current_month(self, repo, billed_job):
        summary = repo.get_summary_report()
        assert summary["revenue"] == 1000.0
        assert summary["expenses"] == 300.0
        assert summary["profit"] == 700.0
        assert summary["jobs_completed"] == 1
        assert summary["new_customers"] == 1
        assert summary["period"]["end"] == _today()

    def test_explicit_range_outside_activity(self, repo, billed_job):
        summary = repo.get_summary_report("2001-01-01", "2001-12-31")
        assert summary["revenue"] == 0
        assert summary["profit"] == 0
        assert summary["period"] == {"start": "2001-01-01",
                                     "end": "2001-12-31"}


class TestTechnicianReport:
    def test_per_technician(self, repo, costing, shop, billed_job):
        costing.create_job(CreateJobCommand(vehicle_id=shop["vehicle"]))
        report = repo.get_technician_report()
        assert len(report["technicians"]) == 1
        kamal = report["technicians"][0]
        assert kamal["technician"] == "Kamal"
        assert kamal["total_jobs"] == 1
        assert kamal["completed_jobs"] == 1
        assert kamal["total_hours"] == 2.0
        assert kamal["total_labor_revenue"] == 3000.0


class TestAuditLog:
    def test_filters_and_limit(self, repo, shop, billed_job):
        assert repo.get_audit_log("jobs", billed_job["job"])
        assert all(e.table_name == "payments"
                   for e in repo.get_audit_log("payments"))
        assert len(repo.get_audit_log(limit=2)) == 2

    def test_newest_first(self, repo, shop, billed_job):
        ids = [e.id for e in repo.get_audit_log()]
        assert ids == sorted(ids, reverse=True)
