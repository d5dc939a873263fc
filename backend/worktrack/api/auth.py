"""
认证 API
"""
import logging
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator
from typing import Optional
from datetime import datetime, timezone

from worktrack.core.database import get_db
from worktrack.core.security import (
    verify_password,
    get_password_hash,
    create_user_token,
    get_current_user
)
from worktrack.models.user import User, UserRole, UserStatus, Brand
from worktrack.api.forms import blank_to_none
from worktrack.api.schemas import UserResponse

logger = logging.getLogger(__name__)

router = APIRouter()


# ========== Schemas ==========

class UserRegister(BaseModel):
    username: str = Field(..., min_length=1, max_length=50)
    password: str = Field(..., min_length=6)
    confirm_password: str
    phone: str = Field(..., min_length=1, max_length=20)
    email: Optional[EmailStr] = None
    brand: Brand

    class Config:
        use_enum_values = True

    @field_validator("email", mode="before")
    @classmethod
    def _blank_to_none(cls, value):
        return blank_to_none(value)

    @field_validator("username", "phone")
    @classmethod
    def _strip(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("不能为空")
        return value.strip()

    @model_validator(mode="after")
    def _passwords_match(self):
        if self.password != self.confirm_password:
            raise ValueError("两次输入的密码不一致")
        return self


class UserLogin(BaseModel):
    username: str
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse


# ========== Routes ==========

@router.get("/ping")
async def ping():
    """认证服务连通性检查"""
    return {
        "status": "ok",
        "message": "API服务器正常运行",
        "server_time": datetime.now(timezone.utc).isoformat()
    }


@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
async def register(user_data: UserRegister, db: AsyncSession = Depends(get_db)):
    """用户注册，注册后账户处于待审核状态"""
    result = await db.execute(select(User).where(User.username == user_data.username))
    if result.scalar_one_or_none():
        raise HTTPException(status_code=400, detail="用户名已存在")

    result = await db.execute(select(User).where(User.phone == user_data.phone))
    if result.scalar_one_or_none():
        raise HTTPException(status_code=400, detail="手机号已被注册")

    user = User(
        username=user_data.username,
        hashed_password=get_password_hash(user_data.password),
        phone=user_data.phone,
        email=user_data.email,
        brand=user_data.brand,
        role=UserRole.USER.value,
        status=UserStatus.PENDING.value
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)

    logger.info("新用户注册: %s (id=%s)", user.username, user.id)
    return TokenResponse(
        access_token=create_user_token(user),
        user=UserResponse.model_validate(user)
    )


@router.post("/login", response_model=TokenResponse)
async def login(login_data: UserLogin, db: AsyncSession = Depends(get_db)):
    """用户登录"""
    result = await db.execute(select(User).where(User.username == login_data.username))
    user = result.scalar_one_or_none()

    if not user or not verify_password(login_data.password, user.hashed_password):
        logger.info("登录失败: %s", login_data.username)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="用户名或密码错误"
        )

    if user.status == UserStatus.DISABLED.value:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="账户已被禁用")

    return TokenResponse(
        access_token=create_user_token(user),
        user=UserResponse.model_validate(user)
    )


@router.get("/me", response_model=UserResponse)
async def get_me(current_user: User = Depends(get_current_user)):
    """获取当前用户信息"""
    return current_user
