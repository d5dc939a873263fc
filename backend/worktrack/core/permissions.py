"""
角色与归属权限检查

所有 ensure_* 函数在修改数据之前调用，失败时抛出 403，不产生任何副作用。
"""
from typing import Any, Optional

from fastapi import Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from worktrack.core.security import get_current_user
from worktrack.models.user import User, UserRole


def _role_of(user: Any) -> UserRole:
    return UserRole(user.role)


def is_admin(user: Any) -> bool:
    """管理员或超级管理员"""
    return user is not None and _role_of(user).is_admin


def is_super_admin(user: Any) -> bool:
    return user is not None and _role_of(user).is_super_admin


def is_creator_or_admin(user: Any, resource: Any) -> bool:
    """资源创建者或管理员"""
    if user is None or resource is None:
        return False
    return resource.created_by_id == user.id or is_admin(user)


def ensure_admin(user: Any) -> None:
    if not is_admin(user):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="需要管理员权限")


def ensure_super_admin(user: Any) -> None:
    if not is_super_admin(user):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="需要超级管理员权限")


def ensure_creator_or_admin(user: Any, resource: Any, detail: str = "没有权限修改此资源") -> None:
    if not is_creator_or_admin(user, resource):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


async def require_admin(current_user: User = Depends(get_current_user)) -> User:
    """依赖：要求管理员"""
    ensure_admin(current_user)
    return current_user


async def require_super_admin(current_user: User = Depends(get_current_user)) -> User:
    """依赖：要求超级管理员"""
    ensure_super_admin(current_user)
    return current_user


async def check_assignee(db: AsyncSession, assignee_id: Optional[int]) -> Optional[User]:
    """负责人必须是管理员或超级管理员，不存在时 404，角色不符时 400"""
    if assignee_id is None:
        return None
    result = await db.execute(select(User).where(User.id == assignee_id))
    assignee = result.scalar_one_or_none()
    if not assignee:
        raise HTTPException(status_code=404, detail="指定的负责人不存在")
    if not is_admin(assignee):
        raise HTTPException(status_code=400, detail="负责人必须是管理员或超级管理员")
    return assignee
