"""
模型导出
"""
from worktrack.models.user import User, UserRole, UserStatus, Brand
from worktrack.models.work_item import (
    WorkItem,
    WorkItemType,
    WorkStatus,
    Priority,
    WorkItemSource,
    OPEN_STATUSES
)
from worktrack.models.project import Project
from worktrack.models.ticket import Ticket
from worktrack.models.activity import WorkItemActivity, ActivityType

__all__ = [
    "User",
    "UserRole",
    "UserStatus",
    "Brand",
    "WorkItem",
    "WorkItemType",
    "WorkStatus",
    "Priority",
    "WorkItemSource",
    "OPEN_STATUSES",
    "Project",
    "Ticket",
    "WorkItemActivity",
    "ActivityType"
]
