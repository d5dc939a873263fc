"""
项目模型
"""
from sqlalchemy import Column, Integer, String, Text, Date, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from worktrack.core.database import Base
from worktrack.models.work_item import WorkStatus


class Project(Base):
    """项目表"""
    __tablename__ = "projects"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    description = Column(Text)
    start_date = Column(Date)
    end_date = Column(Date)
    status = Column(String(20), default=WorkStatus.PENDING.value, nullable=False)
    created_by_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    creator = relationship("User", foreign_keys=[created_by_id], lazy="selectin")
    # 仅在项目详情中显式加载
    work_items = relationship(
        "WorkItem",
        primaryjoin="Project.id == WorkItem.project_id",
        order_by="WorkItem.created_at.desc()",
        viewonly=True,
        lazy="raise",
    )
