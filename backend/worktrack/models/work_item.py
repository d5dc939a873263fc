"""
工作项模型
"""
from sqlalchemy import Column, Integer, String, Text, Float, Date, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from enum import Enum as PyEnum

from worktrack.core.database import Base


class WorkItemType(str, PyEnum):
    """工作项类型"""
    PLANNING = "规划"
    REQUIREMENT = "需求"
    TASK = "事务"
    DEFECT = "缺陷"


class WorkStatus(str, PyEnum):
    """状态（项目、工作项、工单共用）"""
    PENDING = "待处理"
    IN_PROGRESS = "进行中"
    COMPLETED = "已完成"
    CLOSED = "关闭"


class Priority(str, PyEnum):
    """优先级"""
    URGENT = "紧急"
    HIGH = "高"
    MEDIUM = "中"
    LOW = "低"


class WorkItemSource(str, PyEnum):
    """需求来源"""
    INTERNAL = "内部需求"
    BRAND = "品牌需求"


# 未完成的状态
OPEN_STATUSES = [WorkStatus.PENDING.value, WorkStatus.IN_PROGRESS.value]


class WorkItem(Base):
    """工作项表"""
    __tablename__ = "work_items"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, default="")
    type = Column(String(20), nullable=False)  # SQLite 兼容
    status = Column(String(20), default=WorkStatus.PENDING.value, nullable=False)
    priority = Column(String(20), default=Priority.MEDIUM.value, nullable=False)
    source = Column(String(20))

    # 工时
    estimated_hours = Column(Float)
    actual_hours = Column(Float)

    # 排期与完成
    scheduled_start_date = Column(Date)
    scheduled_end_date = Column(Date)
    expected_completion_date = Column(Date)
    completion_date = Column(Date)

    project_id = Column(Integer, ForeignKey("projects.id", ondelete="SET NULL"), index=True)
    assignee_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), index=True)
    created_by_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    # [{filename, original_name, path, mimetype, size}]
    attachments = Column(JSON, default=list)
    # [{id, user_id, username, content, created_at}]
    comments = Column(JSON, default=list)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    assignee = relationship("User", foreign_keys=[assignee_id], lazy="selectin")
    creator = relationship("User", foreign_keys=[created_by_id], lazy="selectin")
    project = relationship("Project", foreign_keys=[project_id], lazy="selectin")
