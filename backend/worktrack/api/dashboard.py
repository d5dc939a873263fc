"""
仪表盘 API
"""
import math
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, case, and_, or_
from pydantic import BaseModel
from typing import Optional, List
from datetime import date, datetime, timedelta, timezone

from worktrack.core.database import get_db
from worktrack.core.security import get_current_user
from worktrack.models.project import Project
from worktrack.models.user import User, UserRole
from worktrack.models.work_item import (
    WorkItem,
    WorkItemType,
    WorkStatus,
    Priority,
    WorkItemSource,
    OPEN_STATUSES
)
from worktrack.api.schemas import WorkItemResponse

router = APIRouter()

AVERAGE_WINDOW_DAYS = 30

PRIORITY_ORDER = case(
    {
        Priority.URGENT.value: 0,
        Priority.HIGH.value: 1,
        Priority.MEDIUM.value: 2,
        Priority.LOW.value: 3,
    },
    value=WorkItem.priority,
    else_=4
)

STATUS_PROGRESS = {
    WorkStatus.COMPLETED.value: 100,
    WorkStatus.IN_PROGRESS.value: 50,
}


# ========== Schemas ==========

class DashboardStats(BaseModel):
    completed_count: int
    pending_count: int
    daily_average: float


class PendingWorkItem(WorkItemResponse):
    days_from_creation: int = 0


class GanttItem(BaseModel):
    id: int
    title: str
    start: date
    end: date
    progress: int
    type: str
    priority: str
    status: str
    project: Optional[str] = None
    assignee: Optional[str] = None


class GanttProject(BaseModel):
    id: int
    name: str

    class Config:
        from_attributes = True


class GanttResponse(BaseModel):
    gantt_data: List[GanttItem]
    projects: List[GanttProject]


# ========== Helpers ==========

def _scope(query, current_user: User):
    # 普通用户只统计自己创建的工作项
    if current_user.role == UserRole.USER.value:
        query = query.where(WorkItem.created_by_id == current_user.id)
    return query


def days_since(created_at: Optional[datetime], now: Optional[datetime] = None) -> int:
    """创建至今的天数，不足一天按一天计"""
    if created_at is None:
        return 0
    # created_at 由数据库按 UTC 写入
    now = now or datetime.now(timezone.utc).replace(tzinfo=None)
    seconds = abs((now - created_at).total_seconds())
    return math.ceil(seconds / 86400)


# ========== Routes ==========

@router.get("/stats", response_model=DashboardStats)
async def get_stats(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    统计数据

    daily_average 为最近 30 天内每个有完成记录的日期平均完成的工作项数。
    """
    completed = await db.execute(
        _scope(select(func.count(WorkItem.id)), current_user)
        .where(WorkItem.status == WorkStatus.COMPLETED.value)
    )
    pending = await db.execute(
        _scope(select(func.count(WorkItem.id)), current_user)
        .where(WorkItem.status.in_(OPEN_STATUSES))
    )

    since = date.today() - timedelta(days=AVERAGE_WINDOW_DAYS)
    per_day = await db.execute(
        _scope(
            select(WorkItem.completion_date, func.count(WorkItem.id)),
            current_user
        )
        .where(WorkItem.status == WorkStatus.COMPLETED.value)
        .where(WorkItem.completion_date >= since)
        .group_by(WorkItem.completion_date)
    )
    counts = [count for _, count in per_day.all()]
    daily_average = round(sum(counts) / (len(counts) or 1), 1)

    return DashboardStats(
        completed_count=completed.scalar() or 0,
        pending_count=pending.scalar() or 0,
        daily_average=daily_average
    )


@router.get("/pending-items", response_model=List[PendingWorkItem])
async def get_pending_items(
    title: Optional[str] = None,
    type: Optional[WorkItemType] = None,
    status: Optional[WorkStatus] = None,
    priority: Optional[Priority] = None,
    assignee_id: Optional[int] = None,
    source: Optional[WorkItemSource] = None,
    created_by_id: Optional[int] = None,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """未完成的工作项，按优先级和创建时间排序"""
    query = select(WorkItem).where(WorkItem.status.in_(OPEN_STATUSES))

    if title:
        query = query.where(WorkItem.title.contains(title))
    if type:
        query = query.where(WorkItem.type == type.value)
    if status and status.value in OPEN_STATUSES:
        query = query.where(WorkItem.status == status.value)
    if priority:
        query = query.where(WorkItem.priority == priority.value)
    if assignee_id:
        query = query.where(WorkItem.assignee_id == assignee_id)
    if source:
        query = query.where(WorkItem.source == source.value)
    if created_by_id:
        query = query.where(WorkItem.created_by_id == created_by_id)

    query = _scope(query, current_user).order_by(PRIORITY_ORDER, WorkItem.created_at.desc(), WorkItem.id.desc())
    result = await db.execute(query)

    now = datetime.now(timezone.utc).replace(tzinfo=None)
    items = []
    for work_item in result.scalars().all():
        item = PendingWorkItem.model_validate(work_item)
        item.days_from_creation = days_since(work_item.created_at, now)
        items.append(item)
    return items


@router.get("/gantt", response_model=GanttResponse)
async def get_gantt(
    project_id: Optional[int] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """甘特图数据：已排期的工作项及项目列表"""
    query = select(WorkItem).where(
        WorkItem.scheduled_start_date.is_not(None),
        WorkItem.scheduled_end_date.is_not(None)
    )

    if project_id:
        query = query.where(WorkItem.project_id == project_id)
    if start_date and end_date:
        query = query.where(or_(
            WorkItem.scheduled_start_date.between(start_date, end_date),
            WorkItem.scheduled_end_date.between(start_date, end_date),
            and_(
                WorkItem.scheduled_start_date <= start_date,
                WorkItem.scheduled_end_date >= end_date
            )
        ))

    query = _scope(query, current_user).order_by(WorkItem.scheduled_start_date, WorkItem.id)
    result = await db.execute(query)

    gantt_data = [
        GanttItem(
            id=item.id,
            title=item.title,
            start=item.scheduled_start_date,
            end=item.scheduled_end_date,
            progress=STATUS_PROGRESS.get(item.status, 0),
            type=item.type,
            priority=item.priority,
            status=item.status,
            project=item.project.name if item.project else None,
            assignee=item.assignee.username if item.assignee else None
        )
        for item in result.scalars().all()
    ]

    projects = await db.execute(select(Project).order_by(Project.name))

    return GanttResponse(
        gantt_data=gantt_data,
        projects=[GanttProject.model_validate(project) for project in projects.scalars().all()]
    )
