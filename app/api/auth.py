"""
Authentication API routes: login, registration and session checks.
"""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.database import get_db
from app.models.user import User
from app.schemas.user import (
    LoginRequest,
    RegisterRequest,
    ChangePasswordRequest,
    Token,
    UserResponse,
    CurrentUserResponse,
    SessionStatus
)
from app.services.auth_service import AuthService
from app.utils.auth import get_current_active_user, get_token_payload
from app.utils.permissions import resolve_permissions, is_super_admin
from app.utils.validators import ValidationError

router = APIRouter(prefix="/auth", tags=["authentication"])

@router.post("/login", response_model=Token, summary="手機號碼登入")
async def login(
    login_request: LoginRequest,
    db: Session = Depends(get_db)
):
    """
    手機號碼 + 密碼登入。

    - 返回 JWT access token 與可使用的模組
    - token 內含登入時間，超過會話期限需重新登入
    """
    try:
        result = AuthService(db).login(login_request.phone, login_request.password)
        user = result["user"]

        return Token(
            access_token=result["access_token"],
            token_type="bearer",
            expires_in=result["expires_in"],
            user=UserResponse.model_validate(user),
            permissions=sorted(resolve_permissions(user.role))
        )

    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e)
        )
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Login failed: {str(e)}"
        )

@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED, summary="註冊")
async def register(
    register_request: RegisterRequest,
    db: Session = Depends(get_db)
):
    try:
        user = AuthService(db).register(register_request)
        return UserResponse.model_validate(user)

    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Registration failed: {str(e)}"
        )

@router.get("/me", response_model=CurrentUserResponse, summary="取得當前用戶")
async def get_me(
    current_user: User = Depends(get_current_active_user)
):
    return CurrentUserResponse(
        user=UserResponse.model_validate(current_user),
        permissions=sorted(resolve_permissions(current_user.role)),
        is_super_admin=is_super_admin(current_user)
    )

@router.get("/session", response_model=SessionStatus, summary="會話檢查")
async def check_session(
    payload: dict = Depends(get_token_payload),
    db: Session = Depends(get_db)
):
    """
    定期會話檢查。

    - 登入超過 24 小時視為過期
    - 用戶被刪除或停用時會話失效
    - 資料庫暫時無法連線時沿用登入資料，verified 為 false
    """
    try:
        return SessionStatus(**AuthService(db).check_session(payload))

    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Session check failed: {str(e)}"
        )

@router.post("/change-password", summary="修改密碼")
async def change_password(
    request: ChangePasswordRequest,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db)
):
    try:
        AuthService(db).change_password(current_user, request.old_password, request.new_password)
        return {"message": "密码修改成功"}

    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to change password: {str(e)}"
        )
