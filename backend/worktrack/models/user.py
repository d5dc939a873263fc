"""
用户模型
"""
from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.sql import func
from enum import Enum as PyEnum

from worktrack.core.database import Base


class UserRole(str, PyEnum):
    """用户角色"""
    USER = "user"                # 普通用户
    ADMIN = "admin"              # 管理员
    SUPER_ADMIN = "super_admin"  # 超级管理员

    @property
    def is_admin(self) -> bool:
        return self in (UserRole.ADMIN, UserRole.SUPER_ADMIN)

    @property
    def is_super_admin(self) -> bool:
        return self is UserRole.SUPER_ADMIN


class UserStatus(str, PyEnum):
    """账户状态"""
    ACTIVE = "active"
    DISABLED = "disabled"
    PENDING = "pending"  # 注册后待审核


class Brand(str, PyEnum):
    """所属品牌"""
    EL = "EL"
    CL = "CL"
    MAC = "MAC"
    DA = "DA"
    LAB = "LAB"
    OR = "OR"
    DR_JART = "Dr.jart+"
    IT = "IT"


class User(Base):
    """用户表"""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(50), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)
    phone = Column(String(20), unique=True, nullable=False)
    email = Column(String(100))
    brand = Column(String(20), nullable=False)
    role = Column(String(20), default=UserRole.USER.value, nullable=False)  # SQLite 兼容
    status = Column(String(20), default=UserStatus.PENDING.value, nullable=False)
    avatar = Column(String(255))
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, onupdate=func.now())
