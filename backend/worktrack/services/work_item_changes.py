"""
工作项变更计算

根据当前工作项和请求中提交的字段（只处理提交了的字段）计算出需要
写入的列值以及对应的活动记录。本模块不访问数据库，调用方负责在同一个
事务中写入列值和活动记录。
"""
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from worktrack.models.activity import ActivityType
from worktrack.models.work_item import WorkStatus
from worktrack.services.activity import ActivityDraft

# 允许通过更新接口修改的字段
UPDATABLE_FIELDS = (
    "title",
    "type",
    "description",
    "status",
    "priority",
    "source",
    "expected_completion_date",
    "scheduled_start_date",
    "scheduled_end_date",
    "project_id",
    "assignee_id",
    "estimated_hours",
    "actual_hours",
)

DATE_FIELDS = frozenset({
    "expected_completion_date",
    "scheduled_start_date",
    "scheduled_end_date",
    "completion_date",
})

FIELD_LABELS = {
    "title": "标题",
    "type": "类型",
    "description": "描述",
    "status": "状态",
    "priority": "优先级",
    "source": "需求来源",
    "expected_completion_date": "期望完成日期",
    "scheduled_start_date": "排期开始日期",
    "scheduled_end_date": "排期结束日期",
    "project_id": "所属项目",
    "assignee_id": "负责人",
    "estimated_hours": "预估工时",
    "actual_hours": "实际工时",
    "completion_date": "完成日期",
}

UNASSIGNED = "未分配"
EMPTY = "空"


def normalize_date(value: Any) -> Optional[date]:
    """把日期、日期时间或 ISO 字符串统一为 date，空值返回 None"""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
        except ValueError:
            # 兼容 "2024-03-01 10:00:00.000" 之类的格式
            return date.fromisoformat(text[:10])
    raise ValueError(f"无法识别的日期: {value!r}")


def normalize_value(value: Any) -> Optional[str]:
    """转换为用于比较和记录的字符串形式"""
    if value is None or value == "":
        return None
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, float):
        text = repr(value)
        return text[:-2] if text.endswith(".0") else text
    return str(value)


def _column_value(field_name: str, value: Any) -> Any:
    if value is None or value == "":
        return "" if field_name == "description" else None
    if isinstance(value, Enum):
        return value.value
    if field_name in DATE_FIELDS:
        return normalize_date(value)
    return value


def _comparable(field_name: str, value: Any) -> Optional[str]:
    if field_name in DATE_FIELDS:
        return normalize_value(normalize_date(value))
    if field_name in ("estimated_hours", "actual_hours") and isinstance(value, (int, str)) and value != "":
        return normalize_value(float(value))
    return normalize_value(value)


def _assignee_name(user_id: Optional[int], usernames: Mapping[int, str]) -> str:
    if user_id is None:
        return UNASSIGNED
    return usernames.get(int(user_id), f"用户#{user_id}")


@dataclass
class WorkItemChangeSet:
    """一次更新的计算结果"""
    values: Dict[str, Any] = field(default_factory=dict)
    activities: List[ActivityDraft] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return bool(self.values)


def describe_field_change(field_name: str, old: Optional[str], new: Optional[str]) -> str:
    label = FIELD_LABELS.get(field_name, field_name)
    return f"将{label}从「{old or EMPTY}」修改为「{new or EMPTY}」"


def plan_work_item_update(
    item: Any,
    proposed: Mapping[str, Any],
    usernames: Optional[Mapping[int, str]] = None,
    today: Optional[date] = None
) -> WorkItemChangeSet:
    """
    计算工作项更新

    Args:
        item: 当前持久化的工作项（读取同名属性）
        proposed: 请求中提交的字段，未提交的字段不出现在其中
        usernames: 用户 ID 到用户名的映射，用于负责人变更描述
        today: 当前日期，状态变为已完成时写入完成日期

    Returns:
        需要写入的列值和活动记录
    """
    usernames = usernames or {}
    today = today or date.today()
    changes = WorkItemChangeSet()

    for name in UPDATABLE_FIELDS:
        if name not in proposed:
            continue

        old_text = _comparable(name, getattr(item, name, None))
        new_text = _comparable(name, proposed[name])
        if old_text == new_text:
            continue

        changes.values[name] = _column_value(name, proposed[name])

        if name == "status":
            changes.activities.append(ActivityDraft(
                type=ActivityType.STATUS_CHANGE,
                field=name,
                old_value=old_text,
                new_value=new_text,
                description=f"将状态从「{old_text or EMPTY}」变更为「{new_text or EMPTY}」"
            ))
        elif name == "assignee_id":
            old_id = getattr(item, name, None)
            new_id = changes.values[name]
            changes.activities.append(ActivityDraft(
                type=ActivityType.ASSIGNEE_CHANGE,
                field=name,
                old_value=old_text,
                new_value=new_text,
                description=(
                    f"将负责人从「{_assignee_name(old_id, usernames)}」"
                    f"变更为「{_assignee_name(new_id, usernames)}」"
                )
            ))
        else:
            changes.activities.append(ActivityDraft(
                type=ActivityType.UPDATE,
                field=name,
                old_value=old_text,
                new_value=new_text,
                description=describe_field_change(name, old_text, new_text)
            ))

    completed = WorkStatus.COMPLETED.value
    if changes.values.get("status") == completed and _comparable("status", getattr(item, "status", None)) != completed:
        completion = normalize_date(proposed.get("completion_date")) or today
        old_completion = _comparable("completion_date", getattr(item, "completion_date", None))
        changes.values["completion_date"] = completion
        changes.activities.append(ActivityDraft(
            type=ActivityType.UPDATE,
            field="completion_date",
            old_value=old_completion,
            new_value=completion.isoformat(),
            description=f"状态变更为已完成，自动设置完成日期为 {completion.isoformat()}"
        ))

    return changes
