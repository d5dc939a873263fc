"""
安全相关工具 - 密码哈希与 JWT 认证
"""
from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import JWTError, jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
import hashlib
import hmac
import secrets

from worktrack.core.config import settings
from worktrack.core.database import get_db
from worktrack.models.user import User

# Bearer Token 认证，缺少令牌时由 get_current_user 返回 401
security = HTTPBearer(auto_error=False)

PBKDF2_PREFIX = "$pbkdf2-sha256$"
PBKDF2_ITERATIONS = 120000


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """验证密码"""
    if not hashed_password or not hashed_password.startswith(PBKDF2_PREFIX):
        return False
    try:
        iterations, salt, expected = hashed_password[len(PBKDF2_PREFIX):].split("$")
        digest = hashlib.pbkdf2_hmac(
            "sha256", plain_password.encode(), bytes.fromhex(salt), int(iterations)
        ).hex()
    except ValueError:
        return False
    return hmac.compare_digest(digest, expected)


def get_password_hash(password: str) -> str:
    """生成密码哈希"""
    salt = secrets.token_bytes(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt, PBKDF2_ITERATIONS).hex()
    return f"{PBKDF2_PREFIX}{PBKDF2_ITERATIONS}${salt.hex()}${digest}"


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """创建访问令牌"""
    to_encode = data.copy()
    now = datetime.now(timezone.utc)
    if expires_delta:
        expire = now + expires_delta
    else:
        expire = now + timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)
    return encoded_jwt


def create_user_token(user: User) -> str:
    """为用户签发令牌"""
    return create_access_token(
        data={"sub": str(user.id), "username": user.username, "role": user.role}
    )


def decode_access_token(token: str) -> Optional[dict]:
    """解码访问令牌，无效或过期返回 None"""
    try:
        payload = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
        return payload
    except JWTError:
        return None


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db)
) -> User:
    """获取当前用户"""
    if credentials is None:
        raise _unauthorized("未提供认证令牌")

    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise _unauthorized("无效的认证令牌")

    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        raise _unauthorized("无效的认证令牌")

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None:
        raise _unauthorized("用户不存在")

    return user
