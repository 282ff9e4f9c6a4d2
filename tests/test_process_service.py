"""
Tests for process management.
"""

from decimal import Decimal

import pytest

from app.schemas.process import ProcessCreate, ProcessUpdate, WorkCategory
from app.services.process_service import ProcessService, DUPLICATE_PROCESS_MESSAGE
from app.utils.validators import ValidationError


@pytest.fixture
def service(db):
    return ProcessService(db)


def process_data(company_id, **overrides):
    data = {
        "company_id": company_id,
        "production_line": "一号线",
        "production_category": WorkCategory.PRODUCTION,
        "product_name": "产品B",
        "product_process": "焊接",
        "unit_price": 1.2,
    }
    data.update(overrides)
    return ProcessCreate(**data)


class TestCreateProcess:

    def test_create(self, service, admin, company):
        process = service.create_process(process_data(company.id, product_name="  产品B  "), admin)

        assert process.id is not None
        assert process.product_name == "产品B"
        assert process.production_category == "生产工时"
        assert process.unit_price == Decimal("1.20")
        assert process.is_active

    def test_duplicate_is_rejected(self, service, admin, company, production_process):
        with pytest.raises(ValidationError) as exc_info:
            service.create_process(
                process_data(company.id, product_name="产品A", product_process="组装"), admin
            )
        assert exc_info.value.message == DUPLICATE_PROCESS_MESSAGE

    def test_inactive_process_is_not_a_duplicate(self, service, admin, company, production_process):
        service.deactivate_process(production_process.id, admin)

        process = service.create_process(
            process_data(company.id, product_name="产品A", product_process="组装"), admin
        )

        assert process.id != production_process.id

    def test_blank_fields_are_rejected(self, service, admin, company):
        with pytest.raises(ValidationError, match="产品名称不能为空"):
            service.create_process(process_data(company.id, product_name="   "), admin)

    def test_other_company_is_refused(self, service, admin, other_company):
        with pytest.raises(PermissionError):
            service.create_process(process_data(other_company.id), admin)

    def test_super_admin_can_create_for_any_company(self, service, super_admin, other_company):
        process = service.create_process(process_data(other_company.id), super_admin)

        assert process.company_id == other_company.id


class TestUpdateProcess:

    def test_update_price(self, service, admin, production_process):
        process = service.update_process(production_process.id, ProcessUpdate(unit_price=3), admin)

        assert process.unit_price == Decimal("3.00")
        assert process.product_name == "产品A"

    def test_update_into_duplicate_is_rejected(self, service, admin, company, production_process):
        other = service.create_process(process_data(company.id), admin)

        with pytest.raises(ValidationError, match=DUPLICATE_PROCESS_MESSAGE):
            service.update_process(
                other.id, ProcessUpdate(product_name="产品A", product_process="组装"), admin
            )

    def test_missing_process(self, service, admin):
        with pytest.raises(ValueError, match="工序不存在"):
            service.update_process(9999, ProcessUpdate(unit_price=1), admin)


class TestListProcesses:

    def test_filters_and_company_scope(self, service, admin, super_admin, other_company,
                                       production_process, non_production_process):
        service.create_process(process_data(other_company.id), super_admin)
        service.deactivate_process(non_production_process.id, admin)

        assert [p.id for p in service.list_processes(admin)] == [production_process.id]
        assert len(service.list_processes(admin, include_inactive=True)) == 2
        assert len(service.list_processes(super_admin, include_inactive=True)) == 3
        assert len(service.list_processes(super_admin, company_id=other_company.id)) == 1
        assert service.list_processes(admin, production_category="非生产工时") == []
