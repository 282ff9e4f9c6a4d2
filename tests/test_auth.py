"""
Tests for login, registration and session checks.
"""

import time
from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError

from app.config import settings
from app.schemas.user import RegisterRequest
from app.services.auth_service import AuthService
from app.utils.auth import verify_token
from app.utils.datetime_utils import utc_now
from app.utils.validators import ValidationError

TEST_PASSWORD = "secret123"


@pytest.fixture
def service(db):
    return AuthService(db)


def session_payload(user, hours_ago=0):
    return {"sub": str(user.id), "login_at": int((utc_now() - timedelta(hours=hours_ago)).timestamp())}


class TestLogin:

    def test_login_returns_token_with_login_time(self, service, employee):
        result = service.login("13800000004", TEST_PASSWORD)

        payload = verify_token(result["access_token"])
        assert payload["sub"] == str(employee.id)
        assert payload["role"] == "员工"
        assert "login_at" in payload
        assert result["user"].last_login_at is not None

    def test_wrong_password(self, service, employee):
        with pytest.raises(ValueError, match="手机号或密码错误"):
            service.login("13800000004", "wrong-password")

    def test_unknown_phone(self, service):
        with pytest.raises(ValueError, match="手机号或密码错误"):
            service.login("13999999999", TEST_PASSWORD)

    def test_inactive_account(self, db, service, employee):
        employee.is_active = False
        db.commit()

        with pytest.raises(ValueError, match="账号已被停用"):
            service.login("13800000004", TEST_PASSWORD)

    def test_slow_lookup_times_out(self, service, employee, monkeypatch):
        monkeypatch.setattr(settings, "LOGIN_TIMEOUT_SECONDS", 0.05)
        monkeypatch.setattr(service, "_lookup_user_id", lambda phone: time.sleep(0.5))

        with pytest.raises(ValueError, match="登录超时"):
            service.login("13800000004", TEST_PASSWORD)


class TestRegister:

    def test_new_user_gets_employee_role(self, service, roles, company):
        user = service.register(RegisterRequest(
            phone="13900000001", name=" 新员工 ", password="abcdef", company_id=company.id
        ))

        assert user.name == "新员工"
        assert user.role_id == roles["employee"].id

    def test_phone_must_be_unique(self, service, employee):
        with pytest.raises(ValidationError, match="该手机号已被注册"):
            service.register(RegisterRequest(phone="13800000004", name="重复", password="abcdef"))

    def test_invalid_data(self, service, roles):
        with pytest.raises(ValidationError) as exc_info:
            service.register(RegisterRequest(phone="12345", name="坏数据", password="abc"))

        assert "手机号格式错误" in exc_info.value.message
        assert "密码长度至少需要6个字符" in exc_info.value.message

    def test_change_password(self, service, employee):
        with pytest.raises(ValidationError, match="原密码错误"):
            service.change_password(employee, "nope", "newpass1")

        service.change_password(employee, TEST_PASSWORD, "newpass1")

        assert service.login("13800000004", "newpass1")["user"].id == employee.id


class TestCheckSession:

    def test_fresh_session_is_verified(self, service, employee):
        result = service.check_session(session_payload(employee, hours_ago=1))

        assert result["valid"]
        assert result["verified"]
        assert not result["expired"]

    def test_session_older_than_a_day_expires(self, service, employee):
        result = service.check_session(session_payload(employee, hours_ago=25))

        assert result["expired"]
        assert not result["valid"]
        assert result["message"] == "登录已过期，请重新登录"

    def test_missing_login_time_expires(self, service, employee):
        assert service.check_session({"sub": str(employee.id)})["expired"]

    def test_deactivated_user_is_invalid(self, db, service, employee):
        employee.is_active = False
        db.commit()

        result = service.check_session(session_payload(employee))

        assert not result["valid"]
        assert result["verified"]
        assert result["message"] == "账号已被停用"

    def test_deleted_user_is_invalid(self, service):
        result = service.check_session({"sub": "9999", "login_at": int(utc_now().timestamp())})

        assert not result["valid"]
        assert result["message"] == "用户不存在"

    def test_unreachable_database_keeps_local_session(self, service, employee, monkeypatch):
        def unreachable(user_id):
            raise OperationalError("SELECT", {}, Exception("could not connect"))

        monkeypatch.setattr(service, "_load_user_state", unreachable)

        result = service.check_session(session_payload(employee))

        assert result["valid"]
        assert not result["verified"]


class TestAuthApi:

    def test_login_and_me(self, client, supervisor):
        response = client.post("/api/v1/auth/login", json={"phone": "13800000002", "password": TEST_PASSWORD})

        assert response.status_code == 200
        body = response.json()
        assert body["token_type"] == "bearer"
        assert body["user"]["name"] == "张班长"
        assert "supervisor_approval" in body["permissions"]

        me = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {body['access_token']}"})

        assert me.status_code == 200
        assert me.json()["user"]["id"] == supervisor.id
        assert not me.json()["is_super_admin"]

    def test_bad_credentials(self, client, supervisor):
        response = client.post("/api/v1/auth/login", json={"phone": "13800000002", "password": "wrong"})

        assert response.status_code == 401
        assert response.json()["detail"] == "手机号或密码错误"

    def test_missing_token(self, client):
        assert client.get("/api/v1/auth/me").status_code in (401, 403)

    def test_stale_token_is_refused(self, client, employee, auth_headers):
        headers = auth_headers(employee, login_at=utc_now() - timedelta(days=8))

        response = client.get("/api/v1/auth/me", headers=headers)

        assert response.status_code == 401

    def test_session_endpoint(self, client, employee, auth_headers):
        response = client.get(
            "/api/v1/auth/session", headers=auth_headers(employee, login_at=utc_now() - timedelta(hours=30))
        )

        assert response.status_code == 200
        assert response.json()["expired"]

    def test_register_endpoint(self, client, roles, company):
        response = client.post("/api/v1/auth/register", json={
            "phone": "13900000002", "name": "新人", "password": "abcdef", "company_id": company.id
        })

        assert response.status_code == 201
        assert response.json()["role_name"] == "员工"

    def test_change_password_endpoint(self, client, employee, auth_headers):
        response = client.post(
            "/api/v1/auth/change-password",
            json={"old_password": "bad", "new_password": "newpass1"},
            headers=auth_headers(employee)
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "原密码错误"
