"""
附件列表处理

工作项的附件以 JSON 数组保存在 attachments 列中。读取时兼容字符串和
已解析的列表两种形式，格式错误时降级为空列表并记录日志，不会抛出异常。
"""
import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, List, Optional, Set

from pydantic import BaseModel, ValidationError

from worktrack.core.config import settings
from worktrack.models.activity import ActivityType
from worktrack.services.activity import ActivityDraft

logger = logging.getLogger(__name__)

UPLOAD_URL_PREFIX = "/uploads/"


class Attachment(BaseModel):
    """附件信息"""
    filename: str
    original_name: str
    path: str
    mimetype: str
    size: int


def _load_json_list(raw: Any, source: str) -> Optional[list]:
    if raw is None or raw == "":
        return []
    if isinstance(raw, (bytes, str)):
        try:
            raw = json.loads(raw)
        except ValueError:
            logger.warning("%s 不是有效的 JSON，已忽略", source)
            return None
    if raw is None:
        return []
    if not isinstance(raw, list):
        logger.warning("%s 不是数组: %r", source, type(raw).__name__)
        return None
    return raw


def _to_attachments(entries: Iterable[Any], source: str) -> List[Attachment]:
    attachments = []
    for entry in entries:
        if isinstance(entry, Attachment):
            attachments.append(entry)
            continue
        try:
            attachments.append(Attachment.model_validate(entry))
        except ValidationError:
            logger.warning("%s 中存在无效的附件记录，已跳过: %r", source, entry)
    return attachments


def parse_attachments(raw: Any) -> List[Attachment]:
    """解析数据库中保存的附件列表，格式错误时返回空列表"""
    entries = _load_json_list(raw, "附件列表")
    if entries is None:
        return []
    return _to_attachments(entries, "附件列表")


def parse_keep_list(raw: Any) -> Optional[Set[str]]:
    """
    解析客户端提交的保留附件列表，返回要保留的文件名集合

    列表元素可以是附件对象（按 filename 匹配）或文件名字符串。
    未提交返回 None（表示保留全部已有附件）；空字符串、null 或无法解析时
    同样返回 None 并记录日志。只有显式提交的空数组才表示不保留任何附件。
    """
    if raw is None:
        return None
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    if isinstance(raw, str):
        if not raw.strip():
            logger.warning("保留附件列表为空字符串，按未提交处理")
            return None
        try:
            raw = json.loads(raw)
        except ValueError:
            logger.warning("保留附件列表不是有效的 JSON，按未提交处理")
            return None
        if raw is None:
            logger.warning("保留附件列表为 null，按未提交处理")
            return None
    entries = _load_json_list(raw, "保留附件列表")
    if entries is None:
        return None
    names = set()
    for entry in entries:
        if isinstance(entry, Attachment):
            names.add(entry.filename)
        elif isinstance(entry, dict) and isinstance(entry.get("filename"), str):
            names.add(entry["filename"])
        elif isinstance(entry, str):
            names.add(entry)
        else:
            logger.warning("保留附件列表中存在无法识别的记录: %r", entry)
    return names


def dump_attachments(attachments: Iterable[Attachment]) -> List[dict]:
    """转换为可写入 JSON 列的数据"""
    return [attachment.model_dump() for attachment in attachments]


def attachment_file_path(attachment: Attachment) -> Optional[str]:
    """附件在磁盘上的绝对路径，路径不在上传目录下时返回 None"""
    if not attachment.path.startswith(UPLOAD_URL_PREFIX):
        return None
    root = os.path.abspath(settings.UPLOAD_DIR)
    full_path = os.path.abspath(os.path.join(root, attachment.path[len(UPLOAD_URL_PREFIX):]))
    if os.path.commonpath([root, full_path]) != root:
        return None
    return full_path


def attachment_exists(attachment: Attachment) -> bool:
    full_path = attachment_file_path(attachment)
    return full_path is not None and os.path.isfile(full_path)


@dataclass
class AttachmentMerge:
    """附件合并结果"""
    attachments: List[Attachment] = field(default_factory=list)
    activities: List[ActivityDraft] = field(default_factory=list)


def merge_attachments(
    stored: Any,
    keep: Any,
    uploaded: Iterable[Attachment] = (),
    exists: Callable[[Attachment], bool] = attachment_exists
) -> AttachmentMerge:
    """
    合并附件列表

    结果 = (保留列表 ∩ 已有附件 ∩ 磁盘上存在的文件) ∪ 新上传附件。
    已有附件中不在保留列表里的，每个产生一条 attachment_delete 记录；
    每个新上传附件产生一条 attachment_add 记录。
    """
    current = parse_attachments(stored)
    kept_names = parse_keep_list(keep)
    merge = AttachmentMerge()

    if kept_names is None:
        kept_names = {attachment.filename for attachment in current}

    for attachment in current:
        if attachment.filename not in kept_names:
            merge.activities.append(ActivityDraft(
                type=ActivityType.ATTACHMENT_DELETE,
                field="attachments",
                old_value=attachment.original_name,
                description=f"删除了附件「{attachment.original_name}」"
            ))
            continue
        if not exists(attachment):
            logger.warning("附件文件不存在，已从列表中移除: %s", attachment.path)
            continue
        merge.attachments.append(attachment)

    for attachment in uploaded:
        merge.attachments.append(attachment)
        merge.activities.append(ActivityDraft(
            type=ActivityType.ATTACHMENT_ADD,
            field="attachments",
            new_value=attachment.original_name,
            description=f"上传了附件「{attachment.original_name}」"
        ))

    return merge


def remove_attachment(stored: Any, filename: str) -> Optional[AttachmentMerge]:
    """按文件名删除单个附件，不存在时返回 None"""
    current = parse_attachments(stored)
    target = next((attachment for attachment in current if attachment.filename == filename), None)
    if target is None:
        return None
    return AttachmentMerge(
        attachments=[attachment for attachment in current if attachment.filename != filename],
        activities=[ActivityDraft(
            type=ActivityType.ATTACHMENT_DELETE,
            field="attachments",
            old_value=target.original_name,
            description=f"删除了附件「{target.original_name}」"
        )]
    )
