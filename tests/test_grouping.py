"""
Tests for folding timesheet records into per-employee, per-day groups.
"""

from datetime import date, datetime, timedelta

import pytz

from app.schemas.timesheet import ItemView, RecordView, WorkflowStatus
from app.services.grouping_service import group_key, group_records

BASE_TIME = datetime(2024, 3, 1, 8, 0, tzinfo=pytz.UTC)


def make_item(item_id, record_id, quantity=10, unit_price=2.5):
    return ItemView(
        id=item_id,
        record_id=record_id,
        process_id=1,
        work_type="生产工时",
        product="产品A",
        process="组装",
        production_line="一号线",
        quantity=quantity,
        unit_price=unit_price,
        amount=quantity * unit_price,
    )


def make_view(record_id, user_id=1, work_date=date(2024, 3, 1), created_offset=0,
              updated_offset=0, items=None, supervisor_name="张班长"):
    return RecordView(
        id=record_id,
        user_id=user_id,
        user_name=f"员工{user_id}",
        work_date=work_date,
        shift_type="白班",
        status=WorkflowStatus.PENDING,
        supervisor_id=10,
        supervisor_name=supervisor_name,
        section_chief_id=20,
        section_chief_name="李段长",
        production_line="一号线",
        created_at=BASE_TIME + timedelta(minutes=created_offset),
        updated_at=BASE_TIME + timedelta(minutes=updated_offset),
        items=[make_item(record_id * 10, record_id)] if items is None else items,
    )


class TestGroupKey:

    def test_key_combines_user_and_date(self):
        assert group_key(7, date(2024, 3, 1)) == "7_2024-03-01"


class TestGroupRecords:
    """Grouping by (user, work date)."""

    def test_records_for_same_user_and_day_are_merged(self):
        views = [make_view(1), make_view(2, created_offset=5), make_view(3, user_id=2)]

        groups = group_records(views)

        assert len(groups) == 2
        merged = next(g for g in groups if g.user_id == 1)
        assert merged.record_ids == [1, 2]
        assert merged.total_items == 2
        assert [item.id for item in merged.all_items] == [10, 20]

    def test_group_count_equals_distinct_keys(self):
        views = [
            make_view(1, user_id=1, work_date=date(2024, 3, 1)),
            make_view(2, user_id=1, work_date=date(2024, 3, 2)),
            make_view(3, user_id=2, work_date=date(2024, 3, 1)),
            make_view(4, user_id=2, work_date=date(2024, 3, 1)),
        ]

        groups = group_records(views)

        assert len(groups) == len({group_key(v.user_id, v.work_date) for v in views})

    def test_key_integrity(self):
        views = [make_view(i, user_id=i % 3, work_date=date(2024, 3, 1 + i % 2)) for i in range(1, 10)]

        for group in group_records(views):
            for record in group.original_records:
                assert group_key(record.user_id, record.work_date) == group.key
            assert group.total_items == len(group.all_items)
            assert group.total_items == sum(len(r.items) for r in group.original_records)

    def test_records_without_items_are_skipped(self):
        views = [make_view(1, items=[]), make_view(2, user_id=2)]

        groups = group_records(views)

        assert [g.user_id for g in groups] == [2]

    def test_first_record_supplies_group_fields(self):
        views = [
            make_view(1, supervisor_name="张班长"),
            make_view(2, supervisor_name="赵班长", created_offset=30),
        ]

        group = group_records(views)[0]

        assert group.supervisor_name == "张班长"
        assert group.created_at == views[0].created_at

    def test_updated_at_is_latest_of_group(self):
        views = [make_view(1, updated_offset=10), make_view(2, updated_offset=90), make_view(3, updated_offset=30)]

        group = group_records(views)[0]

        assert group.updated_at == BASE_TIME + timedelta(minutes=90)

    def test_groups_sorted_newest_first(self):
        views = [
            make_view(1, user_id=1, created_offset=0),
            make_view(2, user_id=2, created_offset=60),
            make_view(3, user_id=3, created_offset=30),
        ]

        groups = group_records(views)

        assert [g.user_id for g in groups] == [2, 3, 1]

    def test_missing_created_at_sorts_last(self):
        undated = make_view(1, user_id=1)
        undated.created_at = None
        views = [undated, make_view(2, user_id=2)]

        groups = group_records(views)

        assert [g.user_id for g in groups] == [2, 1]

    def test_grouping_is_idempotent_and_does_not_mutate_input(self):
        views = [make_view(1), make_view(2, created_offset=5), make_view(3, user_id=2)]
        before = [v.model_dump() for v in views]

        first = group_records(views)
        second = group_records(views)

        assert [g.model_dump() for g in first] == [g.model_dump() for g in second]
        assert [v.model_dump() for v in views] == before

    def test_group_items_are_copies(self):
        views = [make_view(1)]

        group = group_records(views)[0]
        group.all_items[0].quantity = 999

        assert views[0].items[0].quantity == 10
