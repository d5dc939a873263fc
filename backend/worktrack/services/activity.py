"""
工作项活动记录

活动记录只追加，不修改也不删除。写入失败时异常直接向上抛出，
由请求的数据库会话整体回滚，保证字段更新与活动记录一致。
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from worktrack.models.activity import ActivityType, WorkItemActivity

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ActivityDraft:
    """尚未写入数据库的活动记录"""
    type: ActivityType
    description: str
    field: Optional[str] = None
    old_value: Optional[str] = None
    new_value: Optional[str] = None


def stringify(value: Any) -> Optional[str]:
    """活动值统一存为字符串，None 保持为 None"""
    if value is None:
        return None
    if isinstance(value, Enum):
        return str(value.value)
    return str(value)


async def record_activity(
    db: AsyncSession,
    work_item_id: int,
    user_id: int,
    type: ActivityType,
    field: Optional[str],
    old_value: Any,
    new_value: Any,
    description: str
) -> WorkItemActivity:
    """追加一条活动记录"""
    activity = WorkItemActivity(
        work_item_id=work_item_id,
        user_id=user_id,
        type=ActivityType(type).value,
        field=field,
        old_value=stringify(old_value),
        new_value=stringify(new_value),
        description=description
    )
    db.add(activity)
    await db.flush()
    return activity


async def record_drafts(
    db: AsyncSession,
    work_item_id: int,
    user_id: int,
    drafts: Iterable[ActivityDraft]
) -> List[WorkItemActivity]:
    """批量写入活动记录"""
    activities = []
    for draft in drafts:
        activities.append(await record_activity(
            db,
            work_item_id,
            user_id,
            draft.type,
            draft.field,
            draft.old_value,
            draft.new_value,
            draft.description
        ))
    if activities:
        logger.debug("工作项 %s 写入 %d 条活动记录", work_item_id, len(activities))
    return activities
