"""
Tests for quantity rules, role permissions and time helpers.
"""

from datetime import datetime, timedelta
from decimal import Decimal
from types import SimpleNamespace

import pytest
import pytz

from app.utils.datetime_utils import format_relative_time, remaining_days, is_expired, month_start, expiry_from
from app.utils.permissions import (
    resolve_permissions, has_permission, normalize_role, is_super_admin, is_admin,
    ALL_MODULES, TIMESHEET_RECORD, SUPERVISOR_APPROVAL, SECTION_CHIEF_APPROVAL, PROCESS_MANAGEMENT,
)
from app.utils.validators import (
    ValidationError, validate_item_quantity, is_production_category, validate_unit_price, validate_phone
)

NOW = datetime(2024, 3, 10, 12, 0, tzinfo=pytz.UTC)


class TestQuantityValidation:
    """Production quantities are positive integers; non-production ones are non-negative."""

    @pytest.mark.parametrize("quantity", [1, 10, "25", Decimal("3")])
    def test_production_accepts_positive_integers(self, quantity):
        assert validate_item_quantity("生产工时", quantity) == Decimal(str(quantity))

    @pytest.mark.parametrize("quantity,message", [
        (0, "数量必须大于0"),
        (-1, "数量必须大于0"),
        (2.5, "生产工时数量必须为整数"),
        ("abc", "请输入有效的数量"),
        (None, "数量必须大于0"),
        ("", "数量必须大于0"),
    ])
    def test_production_rejects_invalid(self, quantity, message):
        with pytest.raises(ValidationError) as exc_info:
            validate_item_quantity("生产工时", quantity)
        assert exc_info.value.message == message

    @pytest.mark.parametrize("quantity", [0, 0.5, 1.25, 8])
    def test_non_production_accepts_zero_and_decimals(self, quantity):
        assert validate_item_quantity("非生产工时", quantity) == Decimal(str(quantity))

    def test_non_production_rejects_negative(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_item_quantity("非生产工时", -0.5)
        assert exc_info.value.message == "非生产工时数量不能为负数"

    def test_unknown_category_follows_non_production_rule(self):
        assert validate_item_quantity(None, "1.5") == Decimal("1.5")

    def test_category_detection(self):
        assert is_production_category("生产工时")
        assert not is_production_category("非生产工时")
        assert not is_production_category("")


class TestFieldValidators:

    def test_unit_price(self):
        assert validate_unit_price(None) is None
        assert validate_unit_price("2.50") == Decimal("2.50")
        with pytest.raises(ValidationError):
            validate_unit_price("-1")

    def test_phone(self):
        assert validate_phone("13800000000")
        assert not validate_phone("23800000000")
        assert not validate_phone("1380000")


def make_role(name, permissions=None):
    return SimpleNamespace(name=name, permissions=permissions)


def make_user(role):
    return SimpleNamespace(role=role, role_name=role.name if role else "")


class TestPermissions:

    def test_super_admin_gets_every_module(self):
        assert resolve_permissions(make_role("超级管理员", permissions=[])) == ALL_MODULES

    def test_custom_permission_list_wins_over_defaults(self):
        role = make_role("班长", permissions=[TIMESHEET_RECORD, "unknown_module"])
        assert resolve_permissions(role) == {TIMESHEET_RECORD}

    def test_defaults_by_role(self):
        assert SUPERVISOR_APPROVAL in resolve_permissions(make_role("班长"))
        assert SECTION_CHIEF_APPROVAL in resolve_permissions(make_role("段长"))
        assert PROCESS_MANAGEMENT not in resolve_permissions(make_role("员工"))

    def test_missing_role_is_employee(self):
        assert resolve_permissions(None) == {TIMESHEET_RECORD, "history"}

    def test_aliases_and_codes_normalize(self):
        assert normalize_role("班長") == "supervisor"
        assert normalize_role("Admin") == "admin"
        assert normalize_role(None) == "employee"

    def test_admin_checks(self):
        super_admin = make_user(make_role("超级管理员"))
        admin = make_user(make_role("管理员"))
        employee = make_user(make_role("员工"))

        assert is_super_admin(super_admin) and is_admin(super_admin)
        assert is_admin(admin) and not is_super_admin(admin)
        assert not is_admin(employee)
        assert has_permission(admin, PROCESS_MANAGEMENT)
        assert not has_permission(employee, PROCESS_MANAGEMENT)


class TestTimeHelpers:

    @pytest.mark.parametrize("delta,expected", [
        (timedelta(seconds=30), "刚刚"),
        (timedelta(minutes=5), "5分钟前"),
        (timedelta(hours=3), "3小时前"),
        (timedelta(days=2), "2天前"),
    ])
    def test_relative_time(self, delta, expected):
        assert format_relative_time(NOW - delta, NOW) == expected

    def test_relative_time_falls_back_to_full_date(self):
        # UTC 00:00 顯示為上海時間 08:00
        assert format_relative_time(datetime(2024, 1, 1, tzinfo=pytz.UTC), NOW) == "2024-01-01 08:00"

    def test_naive_datetimes_are_treated_as_utc(self):
        assert format_relative_time(datetime(2024, 3, 10, 11, 0), NOW) == "1小时前"

    def test_remaining_days_rounds_up_and_floors_at_zero(self):
        assert remaining_days(NOW + timedelta(days=2, hours=1), NOW) == 3
        assert remaining_days(NOW + timedelta(hours=1), NOW) == 1
        assert remaining_days(NOW - timedelta(days=1), NOW) == 0

    def test_expiry(self):
        expires_at = expiry_from(NOW, 100)
        assert expires_at == NOW + timedelta(days=100)
        assert not is_expired(expires_at, NOW)
        assert is_expired(expires_at, NOW + timedelta(days=101))

    def test_month_start(self):
        assert month_start("2024-03").isoformat() == "2024-03-01"
        assert month_start("2024-13") is None
