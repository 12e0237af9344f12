"""Tests for the job costing engine."""

import pytest

from autoshop.engine.commands import (
    CreateJobCommand,
    JobItemCommand,
    JobPartCommand,
    UpdateJobCommand,
)
from autoshop.engine.errors import (
    BusinessRuleError,
    InvalidTransitionError,
    NotFoundError,
)


@pytest.fixture
def job_id(costing, shop):
    return costing.create_job(CreateJobCommand.from_dict({
        "vehicle_id": shop["vehicle"],
        "description": "Brake service",
        "technician": "Kamal",
    }))


def _assert_costs_consistent(repo, job_id):
    job = repo.get_job(job_id)
    parts = repo.get_job_parts(job_id)
    assert job.labor_cost == round(job.labor_hours * job.labor_rate, 2)
    assert job.parts_cost == round(sum(p.total for p in parts), 2)
    assert job.total_cost == round(job.labor_cost + job.parts_cost, 2)
    return job


class TestCreateJob:
    def test_new_job_is_pending_with_number(self, repo, job_id):
        job = repo.get_job(job_id)
        assert job.status == "pending"
        assert job.job_number == "KAW-2025-0001"
        assert job.customer_name == "Nimal Perera"

    def test_numbers_increase(self, repo, costing, shop, job_id):
        second = costing.create_job(
            CreateJobCommand(vehicle_id=shop["vehicle"])
        )
        assert repo.get_job(second).job_number == "KAW-2025-0002"

    def test_category_labor_rate_used(self, repo, costing, shop):
        job_id = costing.create_job(CreateJobCommand(
            vehicle_id=shop["european_vehicle"], labor_hours=2,
        ))
        job = repo.get_job(job_id)
        assert job.labor_rate == 2500.0
        assert job.labor_cost == 5000.0
        assert job.total_cost == 5000.0

    def test_explicit_rate_wins(self, repo, costing, shop):
        job_id = costing.create_job(CreateJobCommand(
            vehicle_id=shop["european_vehicle"], labor_hours=1,
            labor_rate=1800,
        ))
        assert repo.get_job(job_id).labor_rate == 1800.0

    def test_unknown_vehicle(self, costing):
        with pytest.raises(NotFoundError):
            costing.create_job(CreateJobCommand(vehicle_id=9999))

    def test_creation_audited(self, repo, job_id):
        entries = repo.get_audit_log("jobs", job_id)
        assert [e.action for e in entries] == ["create"]


class TestParts:
    def test_part_from_stock_scenario(self, repo, costing, shop, job_id):
        costing.add_part(job_id, JobPartCommand(
            part_name="Brake pad set", quantity=2, unit_price=500,
            inventory_id=shop["item"],
        ))
        job = _assert_costs_consistent(repo, job_id)
        assert job.parts_cost == 1000.0
        assert repo.get_item_by_id(shop["item"]).quantity == 8

    def test_part_debit_is_a_job_movement(self, stock, costing, shop, job_id):
        costing.add_part(job_id, JobPartCommand(
            part_name="Brake pad set", quantity=2, unit_price=500,
            inventory_id=shop["item"],
        ))
        latest = stock.get_movements(shop["item"])[0]
        assert latest.movement_type == "out"
        assert latest.quantity == 2
        assert latest.reference_type == "job"
        assert latest.reference_id == job_id
        assert latest.notes == "Used in job KAW-2025-0001"

    def test_free_text_part_leaves_stock_alone(self, repo, costing, shop,
                                               job_id):
        costing.add_part(job_id, JobPartCommand(
            part_name="Customer supplied bulb", quantity=1, unit_price=0,
        ))
        assert repo.get_item_by_id(shop["item"]).quantity == 10
        _assert_costs_consistent(repo, job_id)

    def test_add_then_remove_restores_stock(self, repo, costing, shop,
                                            job_id):
        part_id = costing.add_part(job_id, JobPartCommand(
            part_name="Brake pad set", quantity=3, unit_price=500,
            inventory_id=shop["item"],
        ))
        costing.remove_part(job_id, part_id)
        assert repo.get_item_by_id(shop["item"]).quantity == 10
        job = _assert_costs_consistent(repo, job_id)
        assert job.parts_cost == 0.0

    def test_costs_hold_across_mutations(self, repo, costing, shop, job_id):
        costing.update_job(job_id, UpdateJobCommand(labor_hours=1.5))
        first = costing.add_part(job_id, JobPartCommand(
            part_name="Brake pad set", quantity=1, unit_price=500,
            inventory_id=shop["item"],
        ))
        _assert_costs_consistent(repo, job_id)
        costing.add_part(job_id, JobPartCommand(
            part_name="Brake fluid", quantity=2, unit_price=1250.5,
        ))
        _assert_costs_consistent(repo, job_id)
        costing.remove_part(job_id, first)
        job = _assert_costs_consistent(repo, job_id)
        assert job.parts_cost == 2501.0
        assert job.labor_cost == 2250.0
        assert job.total_cost == 4751.0

    def test_oversell_allowed(self, repo, costing, shop, job_id):
        costing.add_part(job_id, JobPartCommand(
            part_name="Brake pad set", quantity=12, unit_price=500,
            inventory_id=shop["item"],
        ))
        assert repo.get_item_by_id(shop["item"]).quantity == -2

    def test_unknown_inventory_rolls_back(self, repo, costing, job_id):
        with pytest.raises(NotFoundError):
            costing.add_part(job_id, JobPartCommand(
                part_name="Ghost", quantity=1, unit_price=10,
                inventory_id=9999,
            ))
        assert repo.get_job_parts(job_id) == []
        assert repo.get_job(job_id).parts_cost == 0.0

    def test_remove_unknown_part(self, costing, job_id):
        with pytest.raises(NotFoundError):
            costing.remove_part(job_id, 9999)

    def test_part_on_missing_job(self, costing):
        with pytest.raises(NotFoundError):
            costing.add_part(9999, JobPartCommand(part_name="X"))


class TestServiceItems:
    def test_percent_discount_scenario(self, repo, costing, job_id):
        costing.add_service_item(job_id, JobItemCommand(
            description="Wheel alignment", quantity=2, unit_price=100,
            discount=10, discount_type="percent",
        ))
        items = repo.get_job_items(job_id)
        assert items[0].total == 180.0

    def test_service_items_do_not_change_job_totals(self, repo, costing,
                                                    job_id):
        costing.add_service_item(job_id, JobItemCommand(
            description="Wash", quantity=1, unit_price=800,
        ))
        job = _assert_costs_consistent(repo, job_id)
        assert job.total_cost == 0.0

    def test_remove_service_item(self, repo, costing, job_id):
        item_id = costing.add_service_item(job_id, JobItemCommand(
            description="Wash", quantity=1, unit_price=800,
        ))
        costing.remove_service_item(job_id, item_id)
        assert repo.get_job_items(job_id) == []


class TestUpdateJob:
    def test_labor_recomputed(self, repo, costing, job_id):
        job = costing.update_job(job_id, UpdateJobCommand(labor_hours=2))
        assert job.labor_cost == 3000.0
        job = costing.update_job(job_id, UpdateJobCommand(labor_rate=2000))
        assert job.labor_hours == 2.0
        assert job.labor_cost == 4000.0
        assert job.total_cost == 4000.0

    def test_started_and_completed_stamped_once(self, costing, job_id):
        job = costing.update_job(job_id,
                                 UpdateJobCommand(status="in_progress"))
        started = job.started_at
        assert started is not None
        assert job.completed_at is None

        job = costing.update_job(job_id, UpdateJobCommand(status="completed"))
        completed = job.completed_at
        assert completed is not None

        costing.update_job(job_id, UpdateJobCommand(status="in_progress"))
        job = costing.update_job(job_id, UpdateJobCommand(status="completed"))
        assert job.started_at == started
        assert job.completed_at == completed

    def test_pending_to_invoiced_rejected(self, costing, job_id):
        with pytest.raises(InvalidTransitionError) as excinfo:
            costing.update_job(job_id, UpdateJobCommand(status="invoiced"))
        assert excinfo.value.details == {"from": "pending", "to": "invoiced"}

    def test_completed_to_invoiced_allowed(self, costing, job_id):
        costing.update_job(job_id, UpdateJobCommand(status="in_progress"))
        costing.update_job(job_id, UpdateJobCommand(status="completed"))
        job = costing.update_job(job_id, UpdateJobCommand(status="invoiced"))
        assert job.status == "invoiced"

    def test_invoiced_is_terminal(self, costing, job_id):
        for status in ("in_progress", "completed", "invoiced"):
            costing.update_job(job_id, UpdateJobCommand(status=status))
        for status in ("pending", "in_progress", "completed", "cancelled"):
            with pytest.raises(InvalidTransitionError):
                costing.update_job(job_id, UpdateJobCommand(status=status))

    def test_rejected_transition_writes_nothing(self, repo, costing, job_id):
        with pytest.raises(InvalidTransitionError):
            costing.update_job(job_id, UpdateJobCommand(
                status="completed", labor_hours=5,
            ))
        job = repo.get_job(job_id)
        assert job.status == "pending"
        assert job.labor_hours == 0.0

    def test_invoiced_job_lines_frozen(self, costing, job_id):
        for status in ("in_progress", "completed", "invoiced"):
            costing.update_job(job_id, UpdateJobCommand(status=status))
        with pytest.raises(BusinessRuleError):
            costing.add_part(job_id, JobPartCommand(part_name="Late part"))
        with pytest.raises(BusinessRuleError):
            costing.add_service_item(
                job_id, JobItemCommand(description="Late work"),
            )

    def test_invoiced_job_labor_frozen(self, repo, costing, invoicing, job_id):
        costing.update_job(job_id, UpdateJobCommand(labor_hours=1,
                                                    labor_rate=100))
        invoice_id = invoicing.create_from_job(job_id)
        for changes in ({"labor_hours": 10}, {"labor_rate": 500}):
            with pytest.raises(BusinessRuleError, match="labor"):
                costing.update_job(job_id, UpdateJobCommand(**changes))
        assert repo.get_job(job_id).total_cost == 100.0
        assert repo.get_invoice_by_id(invoice_id).subtotal == 100.0

    def test_invoiced_job_keeps_warranty_editable(self, costing, invoicing,
                                                  job_id):
        invoicing.create_from_job(job_id)
        job = costing.update_job(job_id, UpdateJobCommand(
            warranty_until="2026-01-31", warranty_notes="Pads 12 months",
        ))
        assert job.warranty_until == "2026-01-31"


class TestDeleteJob:
    def test_delete_returns_parts_to_stock(self, repo, costing, shop,
                                           job_id):
        costing.add_part(job_id, JobPartCommand(
            part_name="Brake pad set", quantity=4, unit_price=500,
            inventory_id=shop["item"],
        ))
        costing.delete_job(job_id)
        assert repo.get_job(job_id) is None
        assert repo.get_item_by_id(shop["item"]).quantity == 10

    def test_invoiced_job_cannot_be_deleted(self, costing, invoicing,
                                            job_id):
        invoicing.create_from_job(job_id)
        with pytest.raises(BusinessRuleError):
            costing.delete_job(job_id)

    def test_delete_missing_job(self, costing):
        with pytest.raises(NotFoundError):
            costing.delete_job(9999)
