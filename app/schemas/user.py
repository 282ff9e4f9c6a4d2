from pydantic import BaseModel
from typing import Optional, List
from datetime import datetime

class CompanyResponse(BaseModel):
    id: int
    name: str
    is_active: bool = True

    class Config:
        from_attributes = True

class UserBase(BaseModel):
    phone: str
    name: str
    company_id: Optional[int] = None
    role_id: Optional[int] = None
    is_active: bool = True

class UserCreate(UserBase):
    password: str

class UserUpdate(BaseModel):
    name: Optional[str] = None
    company_id: Optional[int] = None
    role_id: Optional[int] = None
    is_active: Optional[bool] = None

class UserResponse(UserBase):
    id: int
    role_name: str = ""
    last_login_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class LoginRequest(BaseModel):
    phone: str
    password: str

class RegisterRequest(BaseModel):
    phone: str
    name: str
    password: str
    company_id: Optional[int] = None

class ChangePasswordRequest(BaseModel):
    old_password: str
    new_password: str

class Token(BaseModel):
    """登入回應"""
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserResponse
    permissions: List[str]

class CurrentUserResponse(BaseModel):
    user: UserResponse
    permissions: List[str]
    is_super_admin: bool

class SessionStatus(BaseModel):
    """會話檢查結果"""
    valid: bool
    expired: bool
    verified: bool
    login_at: Optional[datetime] = None
    message: str = ""
