"""
工作项活动记录模型
"""
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from enum import Enum as PyEnum

from worktrack.core.database import Base


class ActivityType(str, PyEnum):
    """活动类型"""
    CREATE = "create"                        # 创建工作项
    UPDATE = "update"                        # 更新字段
    STATUS_CHANGE = "status_change"          # 状态变更
    ASSIGNEE_CHANGE = "assignee_change"      # 负责人变更
    COMMENT = "comment"                      # 添加评论
    ATTACHMENT_ADD = "attachment_add"        # 添加附件
    ATTACHMENT_DELETE = "attachment_delete"  # 删除附件


class WorkItemActivity(Base):
    """工作项活动表，只追加不修改"""
    __tablename__ = "work_item_activities"

    id = Column(Integer, primary_key=True, index=True)
    work_item_id = Column(Integer, ForeignKey("work_items.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(String(30), nullable=False, index=True)
    field = Column(String(50))
    old_value = Column(Text)
    new_value = Column(Text)
    description = Column(Text, nullable=False)
    created_at = Column(DateTime, server_default=func.now(), index=True)

    user = relationship("User", foreign_keys=[user_id], lazy="selectin")
