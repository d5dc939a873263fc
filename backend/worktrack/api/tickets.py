"""
工单 API
"""
import logging
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from pydantic import BaseModel, Field, field_validator
from typing import Optional, List
from datetime import date, datetime, time

from worktrack.core.database import get_db
from worktrack.core.permissions import check_assignee, ensure_creator_or_admin, is_admin, require_admin
from worktrack.core.security import get_current_user
from worktrack.models.ticket import Ticket
from worktrack.models.user import User
from worktrack.models.work_item import WorkStatus, Priority
from worktrack.api.forms import blank_to_none
from worktrack.api.schemas import UserBrief
from worktrack.services.comments import Comment, append_comment, new_comment, parse_comments
from worktrack.services.tickets import generate_ticket_number

logger = logging.getLogger(__name__)

router = APIRouter()


# ========== Schemas ==========

class TicketCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = ""
    priority: Priority
    assignee_id: Optional[int] = None

    class Config:
        use_enum_values = True

    @field_validator("assignee_id", mode="before")
    @classmethod
    def _blank_to_none(cls, value):
        return blank_to_none(value)

    @field_validator("title")
    @classmethod
    def _strip_title(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("标题不能为空")
        return value.strip()


class TicketUpdate(BaseModel):
    status: Optional[WorkStatus] = None
    assignee_id: Optional[int] = None
    comment: Optional[str] = None

    class Config:
        use_enum_values = True

    @field_validator("status", "assignee_id", "comment", mode="before")
    @classmethod
    def _blank_to_none(cls, value):
        return blank_to_none(value)


class CommentCreate(BaseModel):
    content: str = Field(..., min_length=1)

    @field_validator("content")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("评论内容不能为空")
        return value


class TicketResponse(BaseModel):
    id: int
    ticket_number: str
    title: str
    description: Optional[str] = ""
    priority: str
    status: str
    assignee_id: Optional[int] = None
    created_by_id: int
    comments: List[Comment] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    assignee: Optional[UserBrief] = None
    creator: Optional[UserBrief] = None

    class Config:
        from_attributes = True

    @field_validator("comments", mode="before")
    @classmethod
    def _load_comments(cls, value):
        return parse_comments(value)


# ========== Helpers ==========

async def _get_ticket(db: AsyncSession, ticket_id: int, refresh: bool = False) -> Ticket:
    stmt = select(Ticket).where(Ticket.id == ticket_id)
    if refresh:
        stmt = stmt.execution_options(populate_existing=True)
    result = await db.execute(stmt)
    ticket = result.scalar_one_or_none()

    if not ticket:
        raise HTTPException(status_code=404, detail="工单不存在")

    return ticket


# ========== Routes ==========

@router.get("", response_model=List[TicketResponse])
@router.get("/", response_model=List[TicketResponse])
async def list_tickets(
    status: Optional[WorkStatus] = None,
    priority: Optional[Priority] = None,
    search: Optional[str] = None,
    created_by_id: Optional[int] = None,
    assignee_id: Optional[int] = None,
    unassigned: bool = False,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """获取工单列表（普通用户只能看到自己提交的工单）"""
    query = select(Ticket)

    if status:
        query = query.where(Ticket.status == status.value)
    if priority:
        query = query.where(Ticket.priority == priority.value)
    if search:
        query = query.where(Ticket.title.contains(search))
    if created_by_id:
        query = query.where(Ticket.created_by_id == created_by_id)
    if unassigned:
        query = query.where(Ticket.assignee_id.is_(None))
    elif assignee_id:
        query = query.where(Ticket.assignee_id == assignee_id)
    if start_date:
        query = query.where(Ticket.created_at >= datetime.combine(start_date, time.min))
    if end_date:
        query = query.where(Ticket.created_at <= datetime.combine(end_date, time.max))

    if not is_admin(current_user):
        query = query.where(Ticket.created_by_id == current_user.id)

    result = await db.execute(query.order_by(Ticket.created_at.desc(), Ticket.id.desc()))
    return result.scalars().all()


@router.post("", response_model=TicketResponse, status_code=status.HTTP_201_CREATED)
@router.post("/", response_model=TicketResponse, status_code=status.HTTP_201_CREATED)
async def create_ticket(
    ticket_data: TicketCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """提交工单"""
    await check_assignee(db, ticket_data.assignee_id)

    ticket = Ticket(
        ticket_number=await generate_ticket_number(db),
        title=ticket_data.title,
        description=ticket_data.description or "",
        priority=ticket_data.priority,
        status=WorkStatus.PENDING.value,
        assignee_id=ticket_data.assignee_id,
        created_by_id=current_user.id,
        comments=[]
    )
    db.add(ticket)
    await db.commit()

    logger.info("用户 %s 提交工单 %s", current_user.id, ticket.ticket_number)
    return await _get_ticket(db, ticket.id, refresh=True)


@router.get("/{ticket_id}", response_model=TicketResponse)
async def get_ticket(
    ticket_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """获取工单详情"""
    ticket = await _get_ticket(db, ticket_id)
    ensure_creator_or_admin(current_user, ticket, "没有权限查看此工单")
    return ticket


@router.put("/{ticket_id}", response_model=TicketResponse)
async def update_ticket(
    ticket_id: int,
    ticket_data: TicketUpdate,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """处理工单（管理员）：修改状态、负责人，或附加一条处理意见"""
    ticket = await _get_ticket(db, ticket_id)
    await check_assignee(db, ticket_data.assignee_id)

    if ticket_data.status:
        ticket.status = ticket_data.status
    if ticket_data.assignee_id:
        ticket.assignee_id = ticket_data.assignee_id
    if ticket_data.comment and ticket_data.comment.strip():
        ticket.comments = append_comment(ticket.comments, new_comment(current_user, ticket_data.comment))

    await db.commit()
    return await _get_ticket(db, ticket_id, refresh=True)


@router.post("/{ticket_id}/comments", response_model=Comment, status_code=status.HTTP_201_CREATED)
async def add_comment(
    ticket_id: int,
    comment_data: CommentCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """添加评论"""
    ticket = await _get_ticket(db, ticket_id)
    ensure_creator_or_admin(current_user, ticket, "没有权限评论此工单")

    comment = new_comment(current_user, comment_data.content)
    ticket.comments = append_comment(ticket.comments, comment)
    await db.commit()

    return comment
