"""
评论（工作项与工单共用，只追加）
"""
import json
import logging
import time
from datetime import datetime
from typing import Any, List

from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)


class Comment(BaseModel):
    """评论"""
    id: int
    user_id: int
    username: str
    content: str
    created_at: datetime


def parse_comments(raw: Any) -> List[Comment]:
    """读取 JSON 列中的评论，跳过格式错误的记录"""
    if not raw:
        return []
    if isinstance(raw, (bytes, str)):
        try:
            raw = json.loads(raw)
        except ValueError:
            logger.warning("评论列表不是有效的 JSON，已忽略")
            return []
    if not isinstance(raw, list):
        logger.warning("评论列表格式错误: %r", type(raw).__name__)
        return []
    comments = []
    for entry in raw:
        try:
            comments.append(Comment.model_validate(entry))
        except ValidationError:
            logger.warning("跳过无效的评论记录: %r", entry)
    return comments


def new_comment(user: Any, content: str) -> Comment:
    return Comment(
        id=int(time.time() * 1000),
        user_id=user.id,
        username=user.username,
        content=content,
        created_at=datetime.now()
    )


def append_comment(existing: Any, comment: Comment) -> List[dict]:
    """返回追加评论后的新列表（用于写回 JSON 列）"""
    comments = [c.model_dump(mode="json") for c in parse_comments(existing)]
    comments.append(comment.model_dump(mode="json"))
    return comments
