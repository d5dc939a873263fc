"""
初始化基础数据
"""
import logging

from sqlalchemy import select

from worktrack.core.config import settings
from worktrack.core.database import get_db_session
from worktrack.core.security import get_password_hash
from worktrack.models.user import User, UserRole, UserStatus, Brand

logger = logging.getLogger(__name__)


async def seed_super_admin() -> bool:
    """
    没有超级管理员时创建默认超级管理员

    Returns:
        是否创建了新用户
    """
    if not settings.SEED_ADMIN_USERNAME:
        return False

    async with get_db_session() as db:
        result = await db.execute(
            select(User.id).where(User.role == UserRole.SUPER_ADMIN.value).limit(1)
        )
        if result.scalar_one_or_none() is not None:
            logger.debug("超级管理员已存在，无需创建")
            return False

        result = await db.execute(select(User.id).where(User.username == settings.SEED_ADMIN_USERNAME))
        if result.scalar_one_or_none() is not None:
            logger.warning("用户名 %s 已被占用，跳过创建超级管理员", settings.SEED_ADMIN_USERNAME)
            return False

        db.add(User(
            username=settings.SEED_ADMIN_USERNAME,
            hashed_password=get_password_hash(settings.SEED_ADMIN_PASSWORD),
            phone=settings.SEED_ADMIN_PHONE,
            brand=Brand.EL.value,
            role=UserRole.SUPER_ADMIN.value,
            status=UserStatus.ACTIVE.value
        ))

    logger.info("已创建超级管理员: %s", settings.SEED_ADMIN_USERNAME)
    return True
