"""
FastAPI应用主入口
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.routes import admin as admin_routes
from api.routes import payments as payments_routes
from api.routes import stripe as stripe_routes
from api.routes import trademark as trademark_routes
from api.middleware import RequestIDMiddleware, LoggingMiddleware
from core.config import settings
from core.exceptions import register_exception_handlers
from core.response import success_response
from core.logging_config import get_logger, configure_logging
from infrastructure.container import build_container
from infrastructure.database import create_tables


# 初始化日志：在入口处显式配置，避免模块导入时的副作用
configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    # 缺少网关凭证时抛出 FatalConfigError，进程拒绝启动
    container = await build_container()

    # 启动时创建数据库表（仅开发环境）。生产应使用 Alembic 迁移
    if settings.DEBUG:
        await create_tables(container.engine)
        logger.info("database_initialized", message="Database tables created (development)")
    else:
        logger.info(
            "database_migrations_required",
            message="No auto-create in production, use Alembic migrations (alembic upgrade head)"
        )

    app.state.container = container
    app.state.order_service = container.order_service
    app.state.reconciliation_service = container.reconciliation_service
    app.state.admin_service = container.admin_service

    yield

    await container.aclose()
    logger.info("application_shutdown", message="Application shutdown")


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    debug=settings.DEBUG,
    lifespan=lifespan,
    description="支付完整性校验与回调对账服务",
)

# 添加中间件（注意顺序：后添加的在外层，先执行）
# 1. 日志中间件（依赖request_id）
app.add_middleware(LoggingMiddleware)

# 2. Request ID中间件（在日志中间件外层，先绑定request_id）
app.add_middleware(RequestIDMiddleware, trusted_proxies=settings.TRUSTED_PROXIES)

# 3. CORS中间件（最外层）
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 注册全局异常处理器
register_exception_handlers(app)


# 注册路由
app.include_router(payments_routes.router, prefix="/api/v1")
app.include_router(stripe_routes.router, prefix="/api/v1")
app.include_router(trademark_routes.router, prefix="/api/v1")
app.include_router(admin_routes.router, prefix="/api/v1")


# 根路径
@app.get("/", tags=["Root"])
async def root():
    """API根路径"""
    return success_response(
        data={
            "name": settings.PROJECT_NAME,
            "version": settings.VERSION,
            "docs": "/docs",
            "redoc": "/redoc"
        },
    )


# 健康检查
@app.get("/health", tags=["Health"])
async def health_check():
    """健康检查端点"""
    return success_response(data={"status": "healthy"}, message="OK")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="debug" if settings.DEBUG else "info"
    )
