"""
Login, registration and session revalidation.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from app.config import settings
from app.models.user import User, Role
from app.schemas.user import RegisterRequest
from app.utils.auth import create_user_token, get_password_hash, verify_password, is_session_expired
from app.utils.datetime_utils import utc_now
from app.utils.permissions import EMPLOYEE, normalize_role
from app.utils.retry import with_retry, run_with_timeout, is_transient_error
from app.utils.validators import ValidationError, DataValidator, sanitize_input

logger = logging.getLogger(__name__)


@dataclass
class RevalidationResult:
    valid: bool
    verified: bool
    user: Optional[User] = None
    message: str = ""


class AuthService:
    """認證與會話業務邏輯服務"""

    def __init__(self, db: Session):
        self.db = db
        self.validator = DataValidator()

    @with_retry()
    def _find_by_phone(self, phone: str) -> Optional[User]:
        return self.db.query(User).filter(User.phone == phone).first()

    def _lookup_user_id(self, phone: str) -> Optional[int]:
        # 在獨立連線中執行，超時後背景查詢不會佔用請求的 session
        session = Session(bind=self.db.get_bind())
        try:
            row = session.query(User.id).filter(User.phone == phone).first()
            return row.id if row else None
        finally:
            session.close()

    def login(self, phone: str, password: str) -> dict:
        """
        手機號碼 + 密碼登入。

        Returns:
            包含 access_token 與用戶的字典

        Raises:
            ValueError: 帳號或密碼錯誤、帳號停用
        """
        phone = sanitize_input(phone)
        try:
            user_id = run_with_timeout(self._lookup_user_id, settings.LOGIN_TIMEOUT_SECONDS, phone)
        except TimeoutError:
            logger.warning(f"手機號 {phone} 登入查詢超過 {settings.LOGIN_TIMEOUT_SECONDS} 秒")
            raise ValueError("登录超时，请检查网络后重试")

        user = self.db.query(User).filter(User.id == user_id).first() if user_id else None
        if not user or not verify_password(password, user.password_hash):
            raise ValueError("手机号或密码错误")
        if not user.is_active:
            raise ValueError("账号已被停用，请联系管理员")

        login_at = utc_now()
        try:
            user.last_login_at = login_at
            self.db.commit()
            self.db.refresh(user)
        except Exception as e:
            self.db.rollback()
            raise ValueError(f"Failed to record login: {str(e)}")

        logger.info(f"用戶 {user.id} 登入")
        return {
            "access_token": create_user_token(user, login_at),
            "expires_in": settings.SESSION_MAX_AGE_DAYS * 86400,
            "user": user,
        }

    def _default_role(self) -> Optional[Role]:
        for role in self.db.query(Role).all():
            if normalize_role(role.name) == EMPLOYEE:
                return role
        return None

    def register(self, data: RegisterRequest) -> User:
        """註冊新用戶，預設為員工角色"""
        is_valid, errors = self.validator.validate_user_data(data.model_dump())
        if not is_valid:
            raise ValidationError("；".join(errors))

        if self._find_by_phone(data.phone):
            raise ValidationError("该手机号已被注册", field="phone")

        try:
            role = self._default_role()
            user = User(
                phone=data.phone,
                name=sanitize_input(data.name),
                password_hash=get_password_hash(data.password),
                company_id=data.company_id,
                role_id=role.id if role else None,
                is_active=True,
            )
            self.db.add(user)
            self.db.commit()
            self.db.refresh(user)

            logger.info(f"新用戶註冊 {user.id}")
            return user

        except Exception as e:
            self.db.rollback()
            raise ValueError(f"Failed to register user: {str(e)}")

    def change_password(self, user: User, old_password: str, new_password: str) -> None:
        if not verify_password(old_password, user.password_hash):
            raise ValidationError("原密码错误", field="old_password")

        is_valid, errors = self.validator.validate_user_data({"password": new_password})
        if not is_valid:
            raise ValidationError("；".join(errors), field="new_password")

        try:
            user.password_hash = get_password_hash(new_password)
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            raise ValueError(f"Failed to change password: {str(e)}")

    def _load_user_state(self, user_id: int) -> Optional[tuple]:
        # 在獨立連線中執行，避免與請求的 session 共用
        session = Session(bind=self.db.get_bind())
        try:
            user = session.query(User).filter(User.id == user_id).first()
            return (user.id, user.is_active) if user else None
        finally:
            session.close()

    def revalidate_user(self, user_id: int) -> RevalidationResult:
        """
        重新確認用戶仍存在且為啟用狀態。

        查詢超時或遇到暫時性錯誤時沿用登入時的資料（離線容錯），
        並回傳 verified=False。
        """
        try:
            state = run_with_timeout(self._load_user_state, settings.AUTH_QUERY_TIMEOUT_SECONDS, user_id)
        except Exception as e:
            if not is_transient_error(e):
                raise
            logger.warning(f"用戶 {user_id} 驗證查詢失敗，暫時沿用登入資料: {e}")
            return RevalidationResult(valid=True, verified=False, message="无法连接服务器，暂时使用本地登录信息")

        if state is None:
            return RevalidationResult(valid=False, verified=True, message="用户不存在")
        if not state[1]:
            return RevalidationResult(valid=False, verified=True, message="账号已被停用")

        user = self.db.query(User).filter(User.id == user_id).first()
        return RevalidationResult(valid=True, verified=True, user=user)

    def check_session(self, payload: dict, now: Optional[datetime] = None) -> dict:
        """定期檢查會話：超過 SESSION_REVALIDATE_HOURS 視為過期，否則重新驗證用戶"""
        login_at = None
        if payload.get("login_at") is not None:
            login_at = datetime.fromtimestamp(payload["login_at"], tz=utc_now().tzinfo)

        if is_session_expired(login_at, now, timedelta(hours=settings.SESSION_REVALIDATE_HOURS)):
            return {
                "valid": False,
                "expired": True,
                "verified": True,
                "login_at": login_at,
                "message": "登录已过期，请重新登录",
            }

        result = self.revalidate_user(int(payload["sub"]))
        return {
            "valid": result.valid,
            "expired": False,
            "verified": result.verified,
            "login_at": login_at,
            "message": result.message,
        }
