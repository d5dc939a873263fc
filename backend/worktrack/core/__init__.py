"""
Core 模块导出
"""
from worktrack.core.config import settings
from worktrack.core.database import Base, get_db

__all__ = ["settings", "Base", "get_db"]
