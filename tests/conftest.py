"""
Pytest fixtures for the timesheet approval test suite.

Provides:
- In-memory SQLite sessions, tables recreated for every test
- Seeded company, roles, users and processes
- A record factory and bearer-token helpers
- A FastAPI TestClient bound to the test session
"""

import io
import os

# 測試一律使用記憶體資料庫，必須在匯入 app 前設定
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENABLE_RECYCLE_BIN_CLEANUP"] = "false"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["READ_RETRY_BASE_DELAY"] = "0"

import pytest
from datetime import date
from decimal import Decimal

import openpyxl
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.database import Base, get_db
from app.main import app
from app.models import Company, Role, User, Process, TimesheetRecord, TimesheetRecordItem
from app.services.approval_service import compute_amount
from app.utils.auth import create_user_token, get_password_hash
from app.utils.datetime_utils import utc_now

TEST_PASSWORD = "secret123"


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def company(db):
    company = Company(name="测试公司", is_active=True)
    db.add(company)
    db.commit()
    return company


@pytest.fixture
def other_company(db):
    company = Company(name="其他公司", is_active=True)
    db.add(company)
    db.commit()
    return company


@pytest.fixture
def roles(db):
    roles = {
        code: Role(name=name)
        for code, name in (
            ("super_admin", "超级管理员"),
            ("admin", "管理员"),
            ("section_chief", "段长"),
            ("supervisor", "班长"),
            ("employee", "员工"),
        )
    }
    db.add_all(roles.values())
    db.commit()
    return roles


def _make_user(db, phone, name, role, company):
    user = User(
        phone=phone,
        name=name,
        password_hash=get_password_hash(TEST_PASSWORD),
        company_id=company.id if company else None,
        role_id=role.id if role else None,
        is_active=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def super_admin(db, roles, company):
    return _make_user(db, "13800000000", "超管", roles["super_admin"], company)


@pytest.fixture
def admin(db, roles, company):
    return _make_user(db, "13800000001", "管理员甲", roles["admin"], company)


@pytest.fixture
def supervisor(db, roles, company):
    return _make_user(db, "13800000002", "张班长", roles["supervisor"], company)


@pytest.fixture
def section_chief(db, roles, company):
    return _make_user(db, "13800000003", "李段长", roles["section_chief"], company)


@pytest.fixture
def employee(db, roles, company):
    return _make_user(db, "13800000004", "王五", roles["employee"], company)


@pytest.fixture
def other_supervisor(db, roles, company):
    return _make_user(db, "13800000005", "赵班长", roles["supervisor"], company)


@pytest.fixture
def production_process(db, company):
    process = Process(
        company_id=company.id,
        production_line="一号线",
        production_category="生产工时",
        product_name="产品A",
        product_process="组装",
        unit_price=Decimal("2.50"),
        unit="件",
        effective_date=date(2024, 3, 1),
        is_active=True,
    )
    db.add(process)
    db.commit()
    db.refresh(process)
    return process


@pytest.fixture
def non_production_process(db, company):
    process = Process(
        company_id=company.id,
        production_line="一号线",
        production_category="非生产工时",
        product_name="通用",
        product_process="培训",
        unit_price=Decimal("20.00"),
        unit="小时",
        effective_date=date(2024, 3, 1),
        is_active=True,
    )
    db.add(process)
    db.commit()
    db.refresh(process)
    return process


@pytest.fixture
def make_record(db, employee, supervisor, section_chief, production_process):
    """建立工時記錄，items 為 (工序, 數量) 列表"""

    def factory(work_date=date(2024, 3, 1), items=None, status="pending", user=None,
                created_at=None):
        owner = user or employee
        record = TimesheetRecord(
            user_id=owner.id,
            company_id=owner.company_id,
            work_date=work_date,
            shift_type="白班",
            supervisor_id=supervisor.id,
            section_chief_id=section_chief.id,
            status=status,
            user_name=owner.name,
            supervisor_name=supervisor.name,
            section_chief_name=section_chief.name,
            created_at=created_at or utc_now(),
        )
        for process, quantity in (items if items is not None else [(production_process, 10)]):
            quantity = Decimal(str(quantity))
            record.items.append(TimesheetRecordItem(
                process_id=process.id,
                quantity=quantity,
                unit=process.unit,
                unit_price=process.unit_price,
                amount=compute_amount(quantity, process.unit_price),
            ))
        db.add(record)
        db.commit()
        db.refresh(record)
        return record

    return factory


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def _auth_headers(user, login_at=None) -> dict:
    token = create_user_token(user, login_at or utc_now())
    return {"Authorization": f"Bearer {token}"}


def _build_workbook(rows, headers=None) -> bytes:
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.append(headers or ["公司名称", "生产线", "工时类型", "产品名称", "产品工序", "单价", "生效年月"])
    for row in rows:
        ws.append(row)
    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


@pytest.fixture
def auth_headers():
    return _auth_headers


@pytest.fixture
def build_workbook():
    """產生工序匯入用的 xlsx 內容"""
    return _build_workbook
