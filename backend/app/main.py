import logging
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.core.db import dispose_engine, init_models
from app.core.errors import ServiceError
from .routers import asana, auth, blockers, slack, summary

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def create_app() -> FastAPI:
    app = FastAPI(title="Workspace Digest API")

    app.include_router(slack.router, prefix="/api")
    app.include_router(auth.router, prefix="/api")
    app.include_router(blockers.router, prefix="/api")
    app.include_router(asana.router, prefix="/api")
    app.include_router(summary.router, prefix="/api")

    @app.exception_handler(ServiceError)
    async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} 失败: {exc.message}", exc_info=exc)
        else:
            logger.warning(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": exc.message},
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": "Invalid request", "details": jsonable_encoder(exc.errors())},
        )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        logger.info(f"{request.method} {request.url.path}")
        return await call_next(request)

    @app.get("/health")
    async def health() -> dict:
        return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}

    @app.get("/")
    async def read_root() -> dict:
        return {
            "name": "Workspace Digest API",
            "health": "/health",
            "docs": "/docs",
            "endpoints": {
                "slack": "/api/slack",
                "auth": "/api/auth",
                "blockers": "/api/blockers",
                "asana": "/api/asana",
                "summaries": "/api/summaries",
            },
        }

    @app.on_event("startup")
    async def startup_event() -> None:
        logger.info("正在初始化数据库...")
        await init_models()
        logger.info("应用启动完成！")

    @app.on_event("shutdown")
    async def shutdown_event() -> None:
        await dispose_engine()
        logger.info("数据库连接已关闭")

    return app


configure_logging()
app = create_app()
