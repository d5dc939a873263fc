"""
工作项 API
"""
import logging
from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, or_
from pydantic import BaseModel, Field, field_validator
from typing import Optional, List, Any
from datetime import date, datetime, time

from worktrack.core.database import get_db
from worktrack.core.permissions import check_assignee, ensure_creator_or_admin, require_admin
from worktrack.core.security import get_current_user
from worktrack.models.activity import ActivityType, WorkItemActivity
from worktrack.models.project import Project
from worktrack.models.user import User, UserRole
from worktrack.models.work_item import (
    WorkItem,
    WorkItemType,
    WorkStatus,
    Priority,
    WorkItemSource
)
from worktrack.api.forms import blank_to_none, read_payload
from worktrack.api.schemas import UserBrief, WorkItemResponse
from worktrack.services.activity import record_activity, record_drafts
from worktrack.services.attachments import (
    dump_attachments,
    merge_attachments,
    parse_attachments,
    remove_attachment
)
from worktrack.services.comments import Comment, append_comment, new_comment
from worktrack.services.export import export_file_path, export_work_items
from worktrack.services.uploads import discard_uploads, save_attachments
from worktrack.services.work_item_changes import normalize_date, plan_work_item_update

logger = logging.getLogger(__name__)

router = APIRouter()

CREATE_NULLABLE_FIELDS = (
    "source",
    "estimated_hours",
    "scheduled_start_date",
    "scheduled_end_date",
    "expected_completion_date",
    "project_id",
    "assignee_id",
)
UPDATE_NULLABLE_FIELDS = CREATE_NULLABLE_FIELDS + ("actual_hours", "completion_date")
CREATE_DATE_FIELDS = ("scheduled_start_date", "scheduled_end_date", "expected_completion_date")
UPDATE_DATE_FIELDS = CREATE_DATE_FIELDS + ("completion_date",)


# ========== Schemas ==========

class WorkItemCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    type: WorkItemType
    description: Optional[str] = ""
    status: WorkStatus = WorkStatus.PENDING.value
    priority: Priority = Priority.MEDIUM.value
    source: Optional[WorkItemSource] = None
    expected_completion_date: Optional[date] = None
    scheduled_start_date: Optional[date] = None
    scheduled_end_date: Optional[date] = None
    estimated_hours: Optional[float] = Field(None, ge=0)
    project_id: Optional[int] = None
    assignee_id: Optional[int] = None

    class Config:
        use_enum_values = True

    @field_validator(*CREATE_NULLABLE_FIELDS, mode="before")
    @classmethod
    def _blank_to_none(cls, value):
        return blank_to_none(value)

    @field_validator(*CREATE_DATE_FIELDS, mode="before")
    @classmethod
    def _parse_date(cls, value):
        return normalize_date(value)

    @field_validator("title")
    @classmethod
    def _strip_title(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("标题不能为空")
        return value.strip()


class WorkItemUpdate(BaseModel):
    title: Optional[str] = Field(None, max_length=200)
    type: Optional[WorkItemType] = None
    description: Optional[str] = None
    status: Optional[WorkStatus] = None
    priority: Optional[Priority] = None
    source: Optional[WorkItemSource] = None
    expected_completion_date: Optional[date] = None
    scheduled_start_date: Optional[date] = None
    scheduled_end_date: Optional[date] = None
    completion_date: Optional[date] = None
    project_id: Optional[int] = None
    assignee_id: Optional[int] = None
    estimated_hours: Optional[float] = Field(None, ge=0)
    actual_hours: Optional[float] = Field(None, ge=0)

    class Config:
        use_enum_values = True

    @field_validator(*UPDATE_NULLABLE_FIELDS, mode="before")
    @classmethod
    def _blank_to_none(cls, value):
        return blank_to_none(value)

    @field_validator(*UPDATE_DATE_FIELDS, mode="before")
    @classmethod
    def _parse_date(cls, value):
        return normalize_date(value)

    @field_validator("title", "type", "status", "priority")
    @classmethod
    def _not_null(cls, value, info):
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ValueError(f"{info.field_name} 不能为空")
        return value.strip() if isinstance(value, str) else value


class CommentCreate(BaseModel):
    content: str = Field(..., min_length=1)

    @field_validator("content")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("评论内容不能为空")
        return value


class ActivityResponse(BaseModel):
    id: int
    work_item_id: int
    user_id: int
    type: str
    field: Optional[str] = None
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    description: str
    created_at: Optional[datetime] = None
    user: Optional[UserBrief] = None

    class Config:
        from_attributes = True


class AttachmentDeleteResponse(BaseModel):
    message: str
    attachments: List[Any]


class ExportResponse(BaseModel):
    message: str
    count: int
    success: bool = True
    download_url: str
    filename: str


# ========== Helpers ==========

async def _get_work_item(db: AsyncSession, work_item_id: int, refresh: bool = False) -> WorkItem:
    stmt = select(WorkItem).where(WorkItem.id == work_item_id)
    if refresh:
        stmt = stmt.execution_options(populate_existing=True)
    result = await db.execute(stmt)
    work_item = result.scalar_one_or_none()

    if not work_item:
        raise HTTPException(status_code=404, detail="工作项不存在")

    return work_item


async def _check_project(db: AsyncSession, project_id: Optional[int]) -> None:
    if project_id is None:
        return
    result = await db.execute(select(Project.id).where(Project.id == project_id))
    if result.scalar_one_or_none() is None:
        raise HTTPException(status_code=404, detail="指定的项目不存在")


def _visible_to(query, current_user: User):
    # 普通用户只能查看自己创建的工作项
    if current_user.role == UserRole.USER.value:
        query = query.where(WorkItem.created_by_id == current_user.id)
    return query


# ========== Routes ==========

@router.get("", response_model=List[WorkItemResponse])
@router.get("/", response_model=List[WorkItemResponse])
async def list_work_items(
    title: Optional[str] = None,
    project_id: Optional[int] = None,
    type: Optional[WorkItemType] = None,
    status: Optional[WorkStatus] = None,
    priority: Optional[Priority] = None,
    assignee_id: Optional[int] = None,
    source: Optional[WorkItemSource] = None,
    created_by_id: Optional[int] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """获取工作项列表（支持筛选）"""
    query = select(WorkItem)

    if title:
        query = query.where(WorkItem.title.contains(title))
    if project_id:
        query = query.where(WorkItem.project_id == project_id)
    if type:
        query = query.where(WorkItem.type == type.value)
    if status:
        query = query.where(WorkItem.status == status.value)
    if priority:
        query = query.where(WorkItem.priority == priority.value)
    if assignee_id:
        query = query.where(WorkItem.assignee_id == assignee_id)
    if source:
        query = query.where(WorkItem.source == source.value)
    if created_by_id:
        query = query.where(WorkItem.created_by_id == created_by_id)
    if start_date:
        query = query.where(WorkItem.created_at >= datetime.combine(start_date, time.min))
    if end_date:
        query = query.where(WorkItem.created_at <= datetime.combine(end_date, time.max))

    query = _visible_to(query, current_user).order_by(WorkItem.created_at.desc(), WorkItem.id.desc())
    result = await db.execute(query)

    return result.scalars().all()


@router.get("/pending-schedule", response_model=List[WorkItemResponse])
async def list_pending_schedule(
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """获取分配给当前管理员且未排期的工作项"""
    query = (
        select(WorkItem)
        .where(WorkItem.assignee_id == current_user.id)
        .where(or_(WorkItem.scheduled_start_date.is_(None), WorkItem.scheduled_end_date.is_(None)))
        .where(WorkItem.status != WorkStatus.COMPLETED.value)
        .order_by(WorkItem.created_at.desc(), WorkItem.id.desc())
    )
    result = await db.execute(query)
    return result.scalars().all()


@router.get("/export", response_model=ExportResponse)
async def export_work_items_excel(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """导出工作项为 Excel"""
    query = _visible_to(select(WorkItem), current_user).order_by(WorkItem.created_at.desc(), WorkItem.id.desc())
    result = await db.execute(query)
    work_items = result.scalars().all()

    if not work_items:
        raise HTTPException(status_code=404, detail="没有找到工作项，请先创建工作项")

    safe_filename, display_name = export_work_items(work_items)

    return ExportResponse(
        message=f"已成功导出 {len(work_items)} 个工作项",
        count=len(work_items),
        download_url=f"/exports/{safe_filename}",
        filename=display_name
    )


@router.get("/download/{filename}")
async def download_export(
    filename: str,
    current_user: User = Depends(get_current_user)
):
    """下载导出的 Excel 文件"""
    filepath = export_file_path(filename)
    if filepath is None:
        raise HTTPException(status_code=404, detail="文件不存在或已被删除")

    return FileResponse(
        filepath,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        filename=filename
    )


@router.post("", response_model=WorkItemResponse, status_code=status.HTTP_201_CREATED)
@router.post("/", response_model=WorkItemResponse, status_code=status.HTTP_201_CREATED)
async def create_work_item(
    request: Request,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """创建工作项（JSON 或带附件的 multipart 表单）"""
    data, files = await read_payload(request, "attachments")
    payload = WorkItemCreate.model_validate(data)

    await _check_project(db, payload.project_id)
    await check_assignee(db, payload.assignee_id)

    attachments = await save_attachments(files) if files else []

    try:
        work_item = WorkItem(
            **payload.model_dump(),
            created_by_id=current_user.id,
            attachments=dump_attachments(attachments),
            comments=[]
        )
        if work_item.status == WorkStatus.COMPLETED.value:
            work_item.completion_date = date.today()

        db.add(work_item)
        await db.flush()

        await record_activity(
            db,
            work_item.id,
            current_user.id,
            ActivityType.CREATE,
            None,
            None,
            work_item.title,
            f"创建了工作项「{work_item.title}」"
        )
        await db.commit()
    except Exception:
        # 事务未提交，新文件没有任何记录引用
        discard_uploads(attachments)
        raise

    logger.info("用户 %s 创建工作项 %s（附件 %d 个）", current_user.id, work_item.id, len(attachments))
    return await _get_work_item(db, work_item.id, refresh=True)


@router.get("/{work_item_id}", response_model=WorkItemResponse)
async def get_work_item(
    work_item_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """获取工作项详情"""
    return await _get_work_item(db, work_item_id)


@router.put("/{work_item_id}", response_model=WorkItemResponse)
async def update_work_item(
    work_item_id: int,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    更新工作项

    只处理请求中提交的字段。每个实际变化的字段写入一条活动记录，
    附件按 existing_attachments 保留列表与新上传文件合并。
    字段更新和活动记录在同一个事务中提交。
    """
    work_item = await _get_work_item(db, work_item_id)
    ensure_creator_or_admin(current_user, work_item, "没有权限修改此工作项")

    data, files = await read_payload(request, "attachments")
    keep_list = data.pop("existing_attachments", None)
    payload = WorkItemUpdate.model_validate(data)
    proposed = payload.model_dump(exclude_unset=True)

    if "project_id" in proposed:
        await _check_project(db, proposed["project_id"])
    new_assignee = None
    if "assignee_id" in proposed:
        new_assignee = await check_assignee(db, proposed["assignee_id"])

    usernames = {
        user.id: user.username
        for user in (work_item.assignee, new_assignee)
        if user is not None
    }
    changes = plan_work_item_update(work_item, proposed, usernames, date.today())

    uploaded = await save_attachments(files) if files else []
    merge = merge_attachments(work_item.attachments, keep_list, uploaded)

    try:
        for field_name, value in changes.values.items():
            setattr(work_item, field_name, value)

        merged = dump_attachments(merge.attachments)
        if merged != dump_attachments(parse_attachments(work_item.attachments)):
            work_item.attachments = merged

        await record_drafts(db, work_item.id, current_user.id, changes.activities + merge.activities)
        await db.commit()
    except Exception:
        discard_uploads(uploaded)
        raise

    logger.info(
        "用户 %s 更新工作项 %s：%d 个字段变化，%d 条附件变更",
        current_user.id, work_item.id, len(changes.values), len(merge.activities)
    )
    return await _get_work_item(db, work_item_id, refresh=True)


@router.delete("/{work_item_id}")
async def delete_work_item(
    work_item_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """删除工作项（创建者或管理员）"""
    work_item = await _get_work_item(db, work_item_id)
    ensure_creator_or_admin(current_user, work_item, "没有权限删除此工作项")

    await db.delete(work_item)
    await db.commit()

    logger.info("用户 %s 删除工作项 %s", current_user.id, work_item_id)
    return {"message": "工作项删除成功"}


@router.post("/{work_item_id}/comments", response_model=Comment, status_code=status.HTTP_201_CREATED)
async def add_comment(
    work_item_id: int,
    comment_data: CommentCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """添加评论"""
    work_item = await _get_work_item(db, work_item_id)

    comment = new_comment(current_user, comment_data.content)
    work_item.comments = append_comment(work_item.comments, comment)

    await record_activity(
        db,
        work_item.id,
        current_user.id,
        ActivityType.COMMENT,
        "comments",
        None,
        comment.content,
        "添加了评论"
    )
    await db.commit()

    return comment


@router.delete("/{work_item_id}/attachments/{filename}", response_model=AttachmentDeleteResponse)
async def delete_attachment(
    work_item_id: int,
    filename: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """删除附件"""
    work_item = await _get_work_item(db, work_item_id)
    ensure_creator_or_admin(current_user, work_item, "没有权限修改此工作项")

    merge = remove_attachment(work_item.attachments, filename)
    if merge is None:
        raise HTTPException(status_code=404, detail="附件不存在")

    work_item.attachments = dump_attachments(merge.attachments)
    await record_drafts(db, work_item.id, current_user.id, merge.activities)
    await db.commit()

    return AttachmentDeleteResponse(message="附件删除成功", attachments=work_item.attachments)


@router.get("/{work_item_id}/activities", response_model=List[ActivityResponse])
async def list_activities(
    work_item_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """获取工作项活动历史（新的在前）"""
    await _get_work_item(db, work_item_id)

    result = await db.execute(
        select(WorkItemActivity)
        .where(WorkItemActivity.work_item_id == work_item_id)
        .order_by(WorkItemActivity.created_at.desc(), WorkItemActivity.id.desc())
    )
    return result.scalars().all()
