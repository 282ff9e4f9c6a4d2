"""
Authentication utilities for JWT token handling and role based access.
"""

from datetime import datetime, timedelta
from typing import Optional
from jose import JWTError, jwt
from passlib.context import CryptContext
from fastapi import HTTPException, status, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from app.database import get_db
from app.models.user import User
from app.config import settings
from app.utils.datetime_utils import utc_now, ensure_utc
from app.utils.permissions import has_permission, is_admin

# Password hashing context
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# HTTP Bearer token scheme
security = HTTPBearer()

class AuthError(Exception):
    """Custom authentication error"""
    pass

def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a JWT access token.

    Args:
        data: Data to encode in the token
        expires_delta: Token expiration time delta

    Returns:
        Encoded JWT token string
    """
    to_encode = data.copy()

    if expires_delta:
        expire = utc_now() + expires_delta
    else:
        expire = utc_now() + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
    return encoded_jwt

def create_user_token(user: User, login_at: datetime) -> str:
    """Issue a token carrying the login timestamp used for session expiry."""
    return create_access_token(
        data={
            "sub": str(user.id),
            "role": user.role_name,
            "company_id": user.company_id,
            "name": user.name,
            "login_at": int(login_at.timestamp()),
        },
        expires_delta=timedelta(days=settings.SESSION_MAX_AGE_DAYS)
    )

def is_session_expired(login_at: Optional[datetime], now: Optional[datetime] = None,
                       max_age: Optional[timedelta] = None) -> bool:
    """Check whether a session started at login_at is older than max_age."""
    if login_at is None:
        return True
    now = ensure_utc(now) if now else utc_now()
    max_age = max_age or timedelta(days=settings.SESSION_MAX_AGE_DAYS)
    return now - ensure_utc(login_at) > max_age

def verify_token(token: str) -> dict:
    """
    Verify and decode a JWT token.

    Raises:
        AuthError: If token is invalid or expired
    """
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        return payload
    except JWTError:
        raise AuthError("Could not validate credentials")

def get_password_hash(password: str) -> str:
    """Hash a password."""
    return pwd_context.hash(password)

def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash."""
    return pwd_context.verify(plain_password, hashed_password)

async def get_token_payload(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> dict:
    """Decode the bearer token or fail with 401."""
    try:
        return verify_token(credentials.credentials)
    except AuthError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

async def get_current_user(
    payload: dict = Depends(get_token_payload),
    db: Session = Depends(get_db)
) -> User:
    """
    Get the current authenticated user from JWT token.

    Raises:
        HTTPException: If authentication fails or the session is older than
            SESSION_MAX_AGE_DAYS
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    user_id = payload.get("sub")
    if user_id is None:
        raise credentials_exception

    login_at = payload.get("login_at")
    if login_at is None or is_session_expired(
        datetime.fromtimestamp(login_at, tz=utc_now().tzinfo),
        max_age=timedelta(days=settings.SESSION_MAX_AGE_DAYS)
    ):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Session expired",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = db.query(User).filter(User.id == int(user_id)).first()
    if user is None:
        raise credentials_exception

    return user

async def get_current_active_user(
    current_user: User = Depends(get_current_user)
) -> User:
    """
    Get the current active user.

    Raises:
        HTTPException: If user is inactive
    """
    if not current_user.is_active:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Inactive user"
        )
    return current_user

async def get_current_admin_user(
    current_user: User = Depends(get_current_active_user)
) -> User:
    """
    Get the current admin user.

    Raises:
        HTTPException: If user is neither admin nor super admin
    """
    if not is_admin(current_user):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not enough permissions"
        )
    return current_user

def require_module(module: str):
    """Build a dependency that requires access to the given module."""
    async def dependency(current_user: User = Depends(get_current_active_user)) -> User:
        if not has_permission(current_user, module):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"No access to module: {module}"
            )
        return current_user
    return dependency
