"""
用户管理 API
"""
import logging
from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator
from typing import Optional, List

from worktrack.core.database import get_db
from worktrack.core.permissions import is_admin, is_super_admin, require_admin, require_super_admin
from worktrack.core.security import get_current_user, get_password_hash, verify_password
from worktrack.models.user import User, UserRole, UserStatus, Brand
from worktrack.api.forms import blank_to_none, read_payload
from worktrack.api.schemas import UserBrief, UserResponse, MessageResponse
from worktrack.services.uploads import discard_uploads, save_avatar

logger = logging.getLogger(__name__)

router = APIRouter()


# ========== Schemas ==========

class UserUpdate(BaseModel):
    phone: Optional[str] = Field(None, max_length=20)
    email: Optional[EmailStr] = None
    brand: Optional[Brand] = None
    role: Optional[UserRole] = None
    status: Optional[UserStatus] = None

    class Config:
        use_enum_values = True

    @field_validator("phone", "email", "brand", "role", "status", mode="before")
    @classmethod
    def _blank_to_none(cls, value):
        return blank_to_none(value)


class PasswordChange(BaseModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=6)
    confirm_password: str

    @model_validator(mode="after")
    def _passwords_match(self):
        if self.new_password != self.confirm_password:
            raise ValueError("新密码和确认密码不匹配")
        return self


class UserUpdateResponse(BaseModel):
    message: str
    user: UserResponse


# ========== Helpers ==========

async def _get_user(db: AsyncSession, user_id: int) -> User:
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if not user:
        raise HTTPException(status_code=404, detail="用户不存在")

    return user


def _ensure_self_or_admin(current_user: User, user_id: int, detail: str) -> None:
    if current_user.id != user_id and not is_admin(current_user):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


async def _set_status(db: AsyncSession, user_id: int, new_status: UserStatus, operator: User) -> User:
    user = await _get_user(db, user_id)
    user.status = new_status.value
    await db.commit()
    await db.refresh(user)

    logger.info("管理员 %s 将用户 %s 的状态设置为 %s", operator.id, user_id, new_status.value)
    return user


# ========== Routes ==========

@router.get("", response_model=List[UserResponse])
@router.get("/", response_model=List[UserResponse])
async def list_users(
    role: Optional[UserRole] = None,
    status: Optional[UserStatus] = None,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """获取用户列表（管理员）"""
    query = select(User)
    if role:
        query = query.where(User.role == role.value)
    if status:
        query = query.where(User.status == status.value)

    result = await db.execute(query.order_by(User.id))
    return result.scalars().all()


@router.get("/admins", response_model=List[UserBrief])
async def list_admins(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """获取管理员列表（用于分配负责人）"""
    query = select(User).where(
        User.role.in_([UserRole.ADMIN.value, UserRole.SUPER_ADMIN.value])
    ).order_by(User.id)
    result = await db.execute(query)
    return result.scalars().all()


@router.get("/pending", response_model=List[UserResponse])
async def list_pending_users(
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """获取待审核用户"""
    query = select(User).where(User.status == UserStatus.PENDING.value).order_by(User.created_at, User.id)
    result = await db.execute(query)
    return result.scalars().all()


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """获取用户信息（本人或管理员）"""
    _ensure_self_or_admin(current_user, user_id, "没有权限查看其他用户信息")
    return await _get_user(db, user_id)


@router.put("/{user_id}", response_model=UserUpdateResponse)
async def update_user(
    user_id: int,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    更新用户信息（JSON 或带 avatar 的 multipart 表单）

    只有管理员可以修改角色和状态，只有超级管理员可以授予超级管理员角色。
    """
    _ensure_self_or_admin(current_user, user_id, "没有权限修改其他用户信息")
    user = await _get_user(db, user_id)

    data, files = await read_payload(request, "avatar")
    payload = UserUpdate.model_validate(data)
    update_data = {
        field: value
        for field, value in payload.model_dump(exclude_unset=True).items()
        if value is not None
    }

    if ("role" in update_data or "status" in update_data) and not is_admin(current_user):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="只有管理员可以修改角色和状态")
    if update_data.get("role") == UserRole.SUPER_ADMIN.value and not is_super_admin(current_user):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="只有超级管理员可以设置超级管理员")

    if "phone" in update_data and update_data["phone"] != user.phone:
        result = await db.execute(
            select(User.id).where(User.phone == update_data["phone"]).where(User.id != user_id)
        )
        if result.scalar_one_or_none() is not None:
            raise HTTPException(status_code=400, detail="手机号已被注册")

    avatar = None
    if files:
        avatar = await save_avatar(files[0])
        update_data["avatar"] = avatar.path

    try:
        for field, value in update_data.items():
            setattr(user, field, value)
        await db.commit()
    except Exception:
        if avatar is not None:
            discard_uploads([avatar])
        raise
    await db.refresh(user)

    logger.info("用户 %s 更新了用户 %s 的信息: %s", current_user.id, user_id, sorted(update_data))
    return UserUpdateResponse(message="用户信息更新成功", user=UserResponse.model_validate(user))


@router.put("/{user_id}/password", response_model=MessageResponse)
async def change_password(
    user_id: int,
    password_data: PasswordChange,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """修改密码（只能修改自己的密码）"""
    if current_user.id != user_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="只能修改自己的密码")

    if not verify_password(password_data.current_password, current_user.hashed_password):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="当前密码错误")

    current_user.hashed_password = get_password_hash(password_data.new_password)
    await db.commit()

    return MessageResponse(message="密码修改成功")


@router.put("/{user_id}/approve", response_model=UserResponse)
async def approve_user(
    user_id: int,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """审核通过（管理员）"""
    return await _set_status(db, user_id, UserStatus.ACTIVE, current_user)


@router.put("/{user_id}/disable", response_model=UserResponse)
async def disable_user(
    user_id: int,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """禁用账户（管理员）"""
    if current_user.id == user_id:
        raise HTTPException(status_code=400, detail="不能禁用自己的账户")
    return await _set_status(db, user_id, UserStatus.DISABLED, current_user)


@router.delete("/{user_id}", response_model=MessageResponse)
async def delete_user(
    user_id: int,
    current_user: User = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db)
):
    """删除用户（仅超级管理员，不能删除自己）"""
    if current_user.id == user_id:
        raise HTTPException(status_code=400, detail="不能删除自己的账户")

    user = await _get_user(db, user_id)
    await db.delete(user)
    await db.commit()

    logger.info("超级管理员 %s 删除用户 %s", current_user.id, user_id)
    return MessageResponse(message="用户删除成功")
