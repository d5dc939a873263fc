"""
项目管理 API
"""
import logging
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from sqlalchemy.orm import selectinload
from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Optional, List
from datetime import date, datetime

from worktrack.core.database import get_db
from worktrack.core.permissions import ensure_creator_or_admin, require_admin
from worktrack.core.security import get_current_user
from worktrack.models.project import Project
from worktrack.models.user import User
from worktrack.models.work_item import WorkItem, WorkStatus
from worktrack.api.forms import blank_to_none
from worktrack.api.schemas import UserBrief, WorkItemResponse

logger = logging.getLogger(__name__)

router = APIRouter()


# ========== Schemas ==========

def _check_date_range(start_date: Optional[date], end_date: Optional[date]) -> None:
    if start_date and end_date and end_date < start_date:
        raise ValueError("结束日期不能早于开始日期")


class ProjectCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    status: WorkStatus = WorkStatus.PENDING.value

    class Config:
        use_enum_values = True

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def _blank_to_none(cls, value):
        return blank_to_none(value)

    @model_validator(mode="after")
    def _validate_range(self):
        _check_date_range(self.start_date, self.end_date)
        return self


class ProjectUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    status: Optional[WorkStatus] = None

    class Config:
        use_enum_values = True

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def _blank_to_none(cls, value):
        return blank_to_none(value)

    @model_validator(mode="after")
    def _validate_range(self):
        _check_date_range(self.start_date, self.end_date)
        return self


class ProjectResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    status: str  # SQLite 兼容
    created_by_id: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    creator: Optional[UserBrief] = None

    class Config:
        from_attributes = True


class ProjectDetailResponse(ProjectResponse):
    work_items: List[WorkItemResponse] = []


# ========== Routes ==========

async def _get_project(db: AsyncSession, project_id: int, with_items: bool = False) -> Project:
    query = select(Project).where(Project.id == project_id).execution_options(populate_existing=True)
    if with_items:
        query = query.options(selectinload(Project.work_items))
    result = await db.execute(query)
    project = result.scalar_one_or_none()

    if not project:
        raise HTTPException(status_code=404, detail="项目不存在")

    return project


@router.get("", response_model=List[ProjectResponse])
@router.get("/", response_model=List[ProjectResponse])
async def list_projects(
    status: Optional[WorkStatus] = None,
    search: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """获取项目列表"""
    query = select(Project)

    if status:
        query = query.where(Project.status == status.value)
    if search:
        query = query.where(Project.name.contains(search))

    query = query.order_by(Project.created_at.desc(), Project.id.desc())
    result = await db.execute(query)

    return result.scalars().all()


@router.post("", response_model=ProjectResponse, status_code=status.HTTP_201_CREATED)
@router.post("/", response_model=ProjectResponse, status_code=status.HTTP_201_CREATED)
async def create_project(
    project_data: ProjectCreate,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """创建项目（仅管理员）"""
    project = Project(
        **project_data.model_dump(),
        created_by_id=current_user.id
    )
    db.add(project)
    await db.commit()

    logger.info("用户 %s 创建项目 %s", current_user.id, project.id)
    return await _get_project(db, project.id)


@router.get("/{project_id}", response_model=ProjectDetailResponse)
async def get_project(
    project_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """获取项目详情（包含工作项）"""
    return await _get_project(db, project_id, with_items=True)


@router.put("/{project_id}", response_model=ProjectResponse)
async def update_project(
    project_id: int,
    project_data: ProjectUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """更新项目（创建者或管理员）"""
    project = await _get_project(db, project_id)
    ensure_creator_or_admin(current_user, project, "没有权限修改此项目")

    update_data = project_data.model_dump(exclude_unset=True)
    for field in ("name", "status"):
        if update_data.get(field) is None:
            update_data.pop(field, None)

    start_date = update_data.get("start_date", project.start_date)
    end_date = update_data.get("end_date", project.end_date)
    if start_date and end_date and end_date < start_date:
        raise HTTPException(status_code=400, detail="结束日期不能早于开始日期")

    for field, value in update_data.items():
        setattr(project, field, value)

    await db.commit()
    return await _get_project(db, project_id)


@router.delete("/{project_id}")
async def delete_project(
    project_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """删除项目（创建者或管理员），项目下仍有工作项时拒绝"""
    project = await _get_project(db, project_id)
    ensure_creator_or_admin(current_user, project, "没有权限删除此项目")

    result = await db.execute(
        select(func.count(WorkItem.id)).where(WorkItem.project_id == project_id)
    )
    work_item_count = result.scalar() or 0

    if work_item_count > 0:
        return JSONResponse(
            status_code=400,
            content={
                "detail": "无法删除项目，请先删除或转移项目中的工作项",
                "work_item_count": work_item_count
            }
        )

    await db.delete(project)
    await db.commit()

    logger.info("用户 %s 删除项目 %s", current_user.id, project_id)
    return {"message": "项目删除成功"}
