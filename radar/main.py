"""
FastAPI 应用实例

负责：
1. 创建 FastAPI 应用实例
2. 配置应用生命周期（开发/测试环境自动建表）
3. 注册所有 API 路由和中间件
4. 统一错误响应格式 {"detail": ..., "code": ...}
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from radar.api.routes import api_router
from radar.config import get_settings
from radar.db.session import init_models
from radar.exceptions import RadarError
from radar.infra.logging import get_logger, setup_logging
from radar.middleware import AuditLogMiddleware, RequestTraceMiddleware

# 配置结构化日志
setup_logging()
logger = get_logger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    应用生命周期管理器

    开发/测试环境使用 init_models() 自动建表，生产环境使用 Alembic 迁移。
    """
    logger.info(f"应用启动中... 环境: {settings.environment}")

    if settings.environment in ("dev", "development", "test"):
        await init_models()
        logger.info("数据库表初始化完成（开发模式）")
    else:
        logger.info("跳过自动建表，请使用 Alembic 迁移")

    if not settings.stripe_enabled:
        logger.warning("未配置 STRIPE_SECRET_KEY，计费接口将返回 503")

    yield

    logger.info("应用已关闭")


app = FastAPI(
    title=settings.app_name,
    lifespan=lifespan,
)

# 注册中间件（注意顺序：后添加的先执行）
app.add_middleware(AuditLogMiddleware)  # 审计日志
app.add_middleware(RequestTraceMiddleware)  # 请求追踪

# CORS 配置：允许前端跨域访问
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # 生产环境应限制为前端域名
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router)


@app.exception_handler(HTTPException)
async def http_exception_handler(_: Request, exc: HTTPException):
    """
    统一错误响应格式：
    {
        "detail": "<错误信息>",
        "code": "<ERROR_CODE>"
    }
    """
    code = "UNKNOWN_ERROR"
    detail = exc.detail
    if isinstance(exc.detail, dict):
        code = exc.detail.get("code") or code
        detail = exc.detail.get("detail") or exc.detail.get("message") or detail
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": detail, "code": code},
        headers=exc.headers,
    )


@app.exception_handler(RadarError)
async def radar_exception_handler(_: Request, exc: RadarError):
    """服务层业务异常：额度、功能开关、AI 路由、计费等，附加字段一并返回"""
    if exc.status_code >= 500:
        logger.error(f"{exc.code}: {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content={**exc.extra, "detail": exc.detail, "code": exc.code},
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(_: Request, exc: RequestValidationError):
    # 将 Pydantic 校验错误统一映射为 VALIDATION_ERROR
    return JSONResponse(
        status_code=422,
        content={"detail": jsonable_errors(exc), "code": "VALIDATION_ERROR"},
    )


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    """校验错误中的 ctx 可能包含异常对象，转成字符串后再序列化"""
    errors = []
    for error in exc.errors():
        error = dict(error)
        if "ctx" in error:
            error["ctx"] = {k: str(v) for k, v in error["ctx"].items()}
        errors.append(error)
    return errors
