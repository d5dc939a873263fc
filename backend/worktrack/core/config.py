"""
应用配置
"""
from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import List


class Settings(BaseSettings):
    """应用配置类"""

    # 应用配置
    APP_NAME: str = "项目工作项管理系统"
    DEBUG: bool = False
    SQL_ECHO: bool = False

    # 数据库配置 - 默认使用 SQLite（本地开发）
    DATABASE_URL: str = "sqlite+aiosqlite:///./data/worktrack.db"

    # 本地文件存储路径
    DATA_DIR: str = "./data"
    UPLOAD_DIR: str = "./data/uploads"
    EXPORT_DIR: str = "./data/exports"

    # 上传限制
    MAX_ATTACHMENT_SIZE: int = 20 * 1024 * 1024  # 20MB
    MAX_ATTACHMENT_FILES: int = 5
    MAX_AVATAR_SIZE: int = 2 * 1024 * 1024  # 2MB

    # JWT 配置
    JWT_SECRET_KEY: str = "your-secret-key-change-in-production"
    JWT_ALGORITHM: str = "HS256"
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24  # 24小时

    # CORS 允许的前端地址，逗号分隔
    CLIENT_URL: str = "http://localhost:3000"

    # 日志配置
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""

    # 启动时创建的超级管理员，用户名为空则不创建
    SEED_ADMIN_USERNAME: str = "admin"
    SEED_ADMIN_PASSWORD: str = "admin123"
    SEED_ADMIN_PHONE: str = "13800000000"

    class Config:
        env_file = ".env"
        case_sensitive = True

    @property
    def cors_origins(self) -> List[str]:
        return [origin.strip() for origin in self.CLIENT_URL.split(",") if origin.strip()]


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
