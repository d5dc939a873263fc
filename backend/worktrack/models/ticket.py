"""
工单模型
"""
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from worktrack.core.database import Base
from worktrack.models.work_item import WorkStatus, Priority


class Ticket(Base):
    """工单表"""
    __tablename__ = "tickets"

    id = Column(Integer, primary_key=True, index=True)
    # TK-年月日-序号，创建后不可修改
    ticket_number = Column(String(32), unique=True, nullable=False, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, default="")
    priority = Column(String(20), default=Priority.MEDIUM.value, nullable=False)
    status = Column(String(20), default=WorkStatus.PENDING.value, nullable=False)
    assignee_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), index=True)
    created_by_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    comments = Column(JSON, default=list)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    assignee = relationship("User", foreign_keys=[assignee_id], lazy="selectin")
    creator = relationship("User", foreign_keys=[created_by_id], lazy="selectin")
