"""
工作项导出 Excel
"""
import logging
import os
import re
import time
from typing import Iterable, Tuple

from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill

from worktrack.core.config import settings
from worktrack.models.work_item import WorkItem

logger = logging.getLogger(__name__)

SAFE_FILENAME = re.compile(r"^[a-zA-Z0-9_.-]+$")

COLUMNS = [
    ("ID", 10),
    ("标题", 30),
    ("类型", 15),
    ("状态", 15),
    ("优先级", 15),
    ("项目", 20),
    ("创建者", 15),
    ("负责人", 15),
    ("需求来源", 15),
    ("创建日期", 20),
    ("期望完成日期", 20),
    ("排期开始日期", 20),
    ("排期结束日期", 20),
    ("完成日期", 20),
    ("最后更新日期", 20),
    ("描述", 40),
]


def _fmt_date(value) -> str:
    return value.strftime("%Y-%m-%d") if value else ""


def _row(item: WorkItem) -> list:
    return [
        item.id,
        item.title,
        item.type,
        item.status,
        item.priority,
        item.project.name if item.project else "",
        item.creator.username if item.creator else "",
        item.assignee.username if item.assignee else "",
        item.source or "",
        item.created_at.strftime("%Y-%m-%d %H:%M:%S") if item.created_at else "",
        _fmt_date(item.expected_completion_date),
        _fmt_date(item.scheduled_start_date),
        _fmt_date(item.scheduled_end_date),
        _fmt_date(item.completion_date),
        _fmt_date(item.updated_at),
        item.description or "",
    ]


def build_workbook(work_items: Iterable[WorkItem]) -> Workbook:
    wb = Workbook()
    ws = wb.active
    ws.title = "工作项列表"

    ws.append([header for header, _ in COLUMNS])
    header_fill = PatternFill(fill_type="solid", fgColor="FFE0E0E0")
    for index, (_, width) in enumerate(COLUMNS, start=1):
        cell = ws.cell(row=1, column=index)
        cell.font = Font(bold=True)
        cell.fill = header_fill
        ws.column_dimensions[cell.column_letter].width = width

    for item in work_items:
        ws.append(_row(item))
    return wb


def export_work_items(work_items: Iterable[WorkItem]) -> Tuple[str, str]:
    """
    导出到 EXPORT_DIR

    Returns:
        (保存的文件名, 给用户看的中文文件名)
    """
    timestamp = int(time.time() * 1000)
    safe_filename = f"workitems_export_{timestamp}.xlsx"
    display_name = f"工作项导出_{timestamp}.xlsx"

    os.makedirs(settings.EXPORT_DIR, exist_ok=True)
    filepath = os.path.join(settings.EXPORT_DIR, safe_filename)
    build_workbook(work_items).save(filepath)
    logger.info("已导出工作项到 %s", filepath)
    return safe_filename, display_name


def export_file_path(filename: str):
    """校验文件名并返回导出文件路径，不合法或不存在返回 None"""
    if not SAFE_FILENAME.match(filename):
        return None
    filepath = os.path.join(settings.EXPORT_DIR, filename)
    if not os.path.isfile(filepath):
        return None
    return filepath
