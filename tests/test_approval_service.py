"""
Tests for the two-stage approval workflow.

Validates:
- fetch_pending: stage filtering, approver scoping, grouping
- approve / reject transitions and approval history
- approve_batch: partial success with per-group failures
- edit_quantity: validation, amount recalculation, modification history
"""

from datetime import date
from decimal import Decimal

import pytest

from app.models.timesheet import ApprovalHistory, ItemModificationHistory
from app.schemas.timesheet import ApproverType, InvalidTransitionError, WorkflowStatus
from app.services.approval_service import ApprovalService, ProcessCache, compute_amount
from app.utils.validators import ValidationError


@pytest.fixture
def service(db):
    return ApprovalService(db)


class TestComputeAmount:

    def test_rounds_to_cents(self):
        assert compute_amount(Decimal("3"), Decimal("1.005")) == Decimal("3.02")
        assert compute_amount(10, Decimal("2.50")) == Decimal("25.00")
        assert compute_amount(1, Decimal("0.125")) == Decimal("0.13")

    def test_missing_price_counts_as_zero(self):
        assert compute_amount(5, None) == Decimal("0.00")


class TestProcessCache:

    def test_loads_each_process_once(self, db, production_process, non_production_process):
        cache = ProcessCache(db)
        cache.load([production_process.id, non_production_process.id, None])

        assert len(cache) == 2
        assert cache.get(production_process.id)["product_name"] == "产品A"
        assert cache.get(None) == {}
        assert cache.get(9999) == {}


class TestFetchPending:

    def test_supervisor_sees_assigned_pending_records_grouped(self, service, make_record, supervisor,
                                                              employee, production_process):
        make_record(items=[(production_process, 10)])
        make_record(items=[(production_process, 5)])
        make_record(work_date=date(2024, 3, 2))
        make_record(status="approved")

        groups = service.fetch_pending(supervisor, ApproverType.SUPERVISOR)

        assert len(groups) == 2
        first_day = next(g for g in groups if g.work_date == date(2024, 3, 1))
        assert first_day.key == f"{employee.id}_2024-03-01"
        assert first_day.total_items == 2
        assert first_day.user_name == "王五"
        assert first_day.all_items[0].product == "产品A"

    def test_section_chief_sees_supervisor_approved_records(self, service, make_record, section_chief):
        make_record(status="pending")
        approved = make_record(status="approved")

        groups = service.fetch_pending(section_chief, ApproverType.SECTION_CHIEF)

        assert [g.record_ids for g in groups] == [[approved.id]]

    def test_other_supervisor_sees_nothing(self, service, make_record, other_supervisor):
        make_record()

        assert service.fetch_pending(other_supervisor, ApproverType.SUPERVISOR) == []

    def test_super_admin_sees_all(self, service, make_record, super_admin):
        make_record()

        assert len(service.fetch_pending(super_admin, ApproverType.SUPERVISOR)) == 1

    def test_records_without_items_are_not_shown(self, service, make_record, supervisor):
        make_record(items=[])

        assert service.fetch_pending(supervisor, ApproverType.SUPERVISOR) == []

    def test_missing_process_uses_placeholders(self, db, service, make_record, supervisor, production_process):
        record = make_record()
        record.items[0].process_id = 9999
        db.commit()

        item = service.fetch_pending(supervisor, ApproverType.SUPERVISOR)[0].all_items[0]

        assert item.product == "未知产品"
        assert item.process == "未知工序"


class TestApprovalWorkflow:

    def test_two_stage_approval_end_to_end(self, db, service, make_record, employee, supervisor,
                                          section_chief, production_process):
        record = make_record(items=[(production_process, 10)])

        groups = service.fetch_pending(supervisor, ApproverType.SUPERVISOR)
        assert len(groups) == 1
        assert groups[0].user_name == "王五"
        assert groups[0].work_date == date(2024, 3, 1)
        assert groups[0].all_items[0].amount == 25.0

        service.approve_single(record.id, supervisor, ApproverType.SUPERVISOR, "ok")
        db.refresh(record)
        assert record.status == WorkflowStatus.APPROVED.value

        groups = service.fetch_pending(section_chief, ApproverType.SECTION_CHIEF)
        assert groups[0].record_ids == [record.id]

        service.approve_single(record.id, section_chief, ApproverType.SECTION_CHIEF)
        db.refresh(record)
        assert record.status == WorkflowStatus.SECTION_CHIEF_APPROVED.value

        history = service.get_approval_history(record.id)
        assert [(h["approver_type"], h["action"]) for h in history] == [
            ("section_chief", "approved"),
            ("supervisor", "approved"),
        ]
        assert history[1]["comment"] == "ok"

    def test_grouped_approval_updates_every_record(self, db, service, make_record, supervisor):
        records = [make_record(), make_record()]

        service.approve_grouped([r.id for r in records], supervisor, ApproverType.SUPERVISOR)

        for record in records:
            db.refresh(record)
            assert record.status == "approved"
        assert db.query(ApprovalHistory).count() == 2

    def test_wrong_stage_is_rejected(self, service, make_record, section_chief):
        record = make_record(status="pending")

        with pytest.raises(InvalidTransitionError):
            service.approve_single(record.id, section_chief, ApproverType.SECTION_CHIEF)

    def test_terminal_status_cannot_be_approved_again(self, service, make_record, supervisor):
        record = make_record(status="section_chief_approved")

        with pytest.raises(InvalidTransitionError):
            service.approve_single(record.id, supervisor, ApproverType.SUPERVISOR)

    def test_unassigned_approver_is_refused(self, service, make_record, other_supervisor):
        record = make_record()

        with pytest.raises(PermissionError):
            service.approve_single(record.id, other_supervisor, ApproverType.SUPERVISOR)

    def test_group_fails_as_a_whole(self, db, service, make_record, supervisor):
        ok = make_record()
        done = make_record(status="approved")

        with pytest.raises(InvalidTransitionError):
            service.approve_grouped([ok.id, done.id], supervisor, ApproverType.SUPERVISOR)

        db.refresh(ok)
        assert ok.status == "pending"
        assert db.query(ApprovalHistory).count() == 0

    def test_missing_record(self, service, supervisor):
        with pytest.raises(ValueError, match="不存在"):
            service.approve_single(9999, supervisor, ApproverType.SUPERVISOR)

    def test_reject(self, db, service, make_record, section_chief):
        record = make_record(status="approved")

        service.reject_records([record.id], section_chief, ApproverType.SECTION_CHIEF, "数量不对")

        db.refresh(record)
        assert record.status == "rejected"
        assert service.get_approval_history(record.id)[0]["comment"] == "数量不对"


class TestBatchApproval:

    def test_partial_success_reports_failures(self, db, service, make_record, employee, supervisor):
        good = make_record(work_date=date(2024, 3, 1))
        other = make_record(work_date=date(2024, 3, 2))

        result = service.approve_batch(
            [f"{employee.id}_2024-03-01", "missing_key", f"{employee.id}_2024-03-02"],
            supervisor, ApproverType.SUPERVISOR
        )

        assert result.success_count == 2
        assert result.failed_count == 1
        assert result.failures[0].key == "missing_key"
        assert sorted(result.approved_record_ids) == sorted([good.id, other.id])

    def test_failed_group_does_not_roll_back_earlier_groups(self, db, service, make_record, employee,
                                                            supervisor, monkeypatch):
        first = make_record(work_date=date(2024, 3, 1))
        make_record(work_date=date(2024, 3, 2))

        original = service.approve_grouped
        calls = []

        def flaky(record_ids, *args, **kwargs):
            calls.append(record_ids)
            if len(calls) == 2:
                raise ValueError("Failed to update record status: boom")
            return original(record_ids, *args, **kwargs)

        monkeypatch.setattr(service, "approve_grouped", flaky)

        result = service.approve_batch(
            [f"{employee.id}_2024-03-01", f"{employee.id}_2024-03-02"],
            supervisor, ApproverType.SUPERVISOR
        )

        assert result.success_count == 1
        assert result.failed_count == 1
        db.refresh(first)
        assert first.status == "approved"


class TestEditQuantity:

    def test_updates_amount_and_writes_history(self, db, service, make_record, supervisor):
        record = make_record()
        item = record.items[0]

        service.edit_quantity(item.id, 12, supervisor, "复核")

        db.refresh(item)
        assert item.quantity == Decimal("12")
        assert item.amount == Decimal("30.00")
        history = service.get_modification_history(record.id)
        assert len(history) == 1
        assert history[0].old_quantity == Decimal("10")
        assert history[0].new_quantity == Decimal("12")
        assert history[0].old_amount == Decimal("25.00")
        assert history[0].new_amount == Decimal("30.00")
        assert history[0].modification_reason == "复核"

    def test_production_quantity_must_be_integer(self, service, make_record, supervisor):
        record = make_record()

        with pytest.raises(ValidationError):
            service.edit_quantity(record.items[0].id, 1.5, supervisor)

    def test_non_production_allows_zero(self, db, service, make_record, supervisor, non_production_process):
        record = make_record(items=[(non_production_process, 2)])

        item = service.edit_quantity(record.items[0].id, 0, supervisor)

        assert item.amount == Decimal("0.00")

    def test_unrelated_user_cannot_edit(self, service, make_record, other_supervisor):
        record = make_record()

        with pytest.raises(PermissionError):
            service.edit_quantity(record.items[0].id, 3, other_supervisor)

    def test_finished_record_cannot_be_edited(self, db, service, make_record, admin):
        record = make_record(status="rejected")

        with pytest.raises(InvalidTransitionError):
            service.edit_quantity(record.items[0].id, 3, admin)
        assert db.query(ItemModificationHistory).count() == 0
