"""
项目工作项管理系统 - 后端主入口
"""
import logging
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from contextlib import asynccontextmanager
from pydantic import ValidationError

from worktrack.core.config import settings
from worktrack.core.database import engine, Base
from worktrack.core.logger import setup_logging
from worktrack.api import auth, users, projects, work_items, tickets, dashboard
from worktrack.services.seed import seed_super_admin
from worktrack.services.uploads import UploadError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    setup_logging(settings.LOG_LEVEL, settings.LOG_FILE or None)

    # 启动时创建数据库表
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    await seed_super_admin()

    logger.info("%s 启动完成", settings.APP_NAME)
    yield
    # 关闭时清理资源
    await engine.dispose()


app = FastAPI(
    title=settings.APP_NAME,
    description="项目、工作项与工单管理，记录工作项变更历史",
    version="1.0.0",
    lifespan=lifespan
)

# CORS 配置
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ========== 异常处理 ==========

def _format_errors(errors) -> list:
    formatted = []
    for error in errors:
        loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        formatted.append({"field": ".".join(loc), "message": error.get("msg", "")})
    return formatted


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"detail": "请求参数无效", "errors": _format_errors(exc.errors())}
    )


@app.exception_handler(ValidationError)
async def validation_handler(request: Request, exc: ValidationError):
    # 路由内手动校验表单数据时抛出
    return JSONResponse(
        status_code=400,
        content={"detail": "请求参数无效", "errors": _format_errors(exc.errors())}
    )


@app.exception_handler(UploadError)
async def upload_error_handler(request: Request, exc: UploadError):
    return JSONResponse(status_code=400, content={"detail": exc.message})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("未处理的异常: %s %s", request.method, request.url.path)
    content = {"detail": "服务器错误"}
    if settings.DEBUG:
        content["error"] = str(exc)
    return JSONResponse(status_code=500, content=content)


# 注册路由
app.include_router(auth.router, prefix="/api/auth", tags=["认证"])
app.include_router(users.router, prefix="/api/users", tags=["用户管理"])
app.include_router(projects.router, prefix="/api/projects", tags=["项目管理"])
app.include_router(work_items.router, prefix="/api/work-items", tags=["工作项"])
app.include_router(tickets.router, prefix="/api/tickets", tags=["工单"])
app.include_router(dashboard.router, prefix="/api/dashboard", tags=["仪表盘"])

# 上传文件与导出文件
app.mount("/uploads", StaticFiles(directory=settings.UPLOAD_DIR), name="uploads")
app.mount("/exports", StaticFiles(directory=settings.EXPORT_DIR), name="exports")


@app.get("/")
async def root():
    return {"message": f"{settings.APP_NAME} API", "version": "1.0.0"}


@app.get("/health")
async def health_check():
    return {"status": "healthy"}
