"""
数据库配置 - 默认 SQLite，本地开发版
"""
import os
from contextlib import asynccontextmanager

from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from worktrack.core.config import settings


def ensure_data_dir():
    """确保数据目录存在"""
    os.makedirs(settings.DATA_DIR, exist_ok=True)
    for sub_dir in ("images", "files", "avatars"):
        os.makedirs(os.path.join(settings.UPLOAD_DIR, sub_dir), exist_ok=True)
    os.makedirs(settings.EXPORT_DIR, exist_ok=True)


# 确保数据目录存在
ensure_data_dir()

IS_SQLITE = settings.DATABASE_URL.startswith("sqlite")

# 创建异步引擎
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.SQL_ECHO,
    future=True,
    # SQLite 特有配置
    connect_args={"check_same_thread": False} if IS_SQLITE else {}
)


if IS_SQLITE:
    @event.listens_for(engine.sync_engine, "connect")
    def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
        # SQLite 默认不执行外键级联
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


# 创建异步会话工厂
async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False
)


class Base(DeclarativeBase):
    """SQLAlchemy 基类"""
    pass


async def get_db() -> AsyncSession:
    """获取数据库会话"""
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


@asynccontextmanager
async def get_db_session():
    """获取数据库会话上下文管理器（用于启动脚本）"""
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
