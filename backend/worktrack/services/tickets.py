"""
工单编号生成
"""
from datetime import date
from typing import Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from worktrack.models.ticket import Ticket


def format_ticket_number(day: date, sequence: int) -> str:
    """TK-年月日-序号，例如 TK-240311-001"""
    return f"TK-{day.strftime('%y%m%d')}-{sequence:03d}"


async def generate_ticket_number(db: AsyncSession, today: Optional[date] = None) -> str:
    """按当天编号前缀下已有的工单数量生成下一个编号"""
    today = today or date.today()
    prefix = format_ticket_number(today, 0)[:-3]
    # 按编号前缀计数，与 created_at 的时区无关
    result = await db.execute(
        select(func.count(Ticket.id)).where(Ticket.ticket_number.startswith(prefix))
    )
    count = result.scalar() or 0

    # 编号唯一，遇到已占用的序号继续往后找
    sequence = count + 1
    while True:
        number = f"{prefix}{sequence:03d}"
        exists = await db.execute(select(Ticket.id).where(Ticket.ticket_number == number))
        if exists.scalar_one_or_none() is None:
            return number
        sequence += 1
