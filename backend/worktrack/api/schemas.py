"""
多个路由共用的响应模型
"""
from pydantic import BaseModel, field_validator
from typing import Optional, List
from datetime import date, datetime

from worktrack.services.attachments import Attachment, parse_attachments
from worktrack.services.comments import Comment, parse_comments


class UserBrief(BaseModel):
    id: int
    username: str
    avatar: Optional[str] = None
    role: str

    class Config:
        from_attributes = True


class ProjectBrief(BaseModel):
    id: int
    name: str
    status: str

    class Config:
        from_attributes = True


class WorkItemResponse(BaseModel):
    id: int
    title: str
    description: Optional[str] = ""
    type: str  # SQLite 兼容
    status: str
    priority: str
    source: Optional[str] = None
    estimated_hours: Optional[float] = None
    actual_hours: Optional[float] = None
    scheduled_start_date: Optional[date] = None
    scheduled_end_date: Optional[date] = None
    expected_completion_date: Optional[date] = None
    completion_date: Optional[date] = None
    project_id: Optional[int] = None
    assignee_id: Optional[int] = None
    created_by_id: int
    attachments: List[Attachment] = []
    comments: List[Comment] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    assignee: Optional[UserBrief] = None
    creator: Optional[UserBrief] = None
    project: Optional[ProjectBrief] = None

    class Config:
        from_attributes = True

    @field_validator("attachments", mode="before")
    @classmethod
    def _load_attachments(cls, value):
        return parse_attachments(value)

    @field_validator("comments", mode="before")
    @classmethod
    def _load_comments(cls, value):
        return parse_comments(value)


class MessageResponse(BaseModel):
    message: str


class UserResponse(BaseModel):
    id: int
    username: str
    phone: str
    email: Optional[str] = None
    brand: str
    role: str
    status: str
    avatar: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
