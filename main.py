import os
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError
from bookwatch.core.config import settings
from bookwatch.core.database import Base, engine
import bookwatch.models  # noqa: F401  注册全部模型，供 create_all 使用
from bookwatch.routes import books, catalog, comparisons, health, manual_import, seed, versions

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):  # noqa: ARG001
    _run_startup()
    yield


# 创建 FastAPI 应用
app = FastAPI(
    title=settings.API_TITLE,
    version=settings.API_VERSION,
    description=settings.API_DESCRIPTION,
    docs_url="/docs",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)


@app.exception_handler(SQLAlchemyError)
async def _sqlalchemy_error_handler(request: Request, exc: SQLAlchemyError):
    # 统一把数据库异常转换成 JSON 响应
    logging.exception("数据库异常: %s", exc)
    detail = "数据库错误，请检查数据库连接与表结构"
    if os.getenv("DEBUG_DB_ERRORS", "false").lower() == "true":
        detail = f"{detail}: {exc}"
    return JSONResponse(status_code=500, content={"detail": detail})


def _run_startup() -> None:
    """应用启动时执行：创建表"""
    auto_create_tables = os.getenv("AUTO_CREATE_TABLES", "true").lower() == "true"
    if not auto_create_tables:
        return
    try:
        Base.metadata.create_all(bind=engine)
    except SQLAlchemyError as exc:
        logging.exception("数据库初始化失败（无法创建表），请检查 DATABASE_URL 连接与权限: %s", exc)


# CORS 中间件
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_origin_regex=settings.CORS_ALLOW_ORIGIN_REGEX,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# 健康检查
@app.get("/health")
async def health_check():
    """健康检查端点"""
    return {"status": "ok", "message": "Book Change Monitor is running"}


# 包含路由
app.include_router(health.router, prefix="/api/health", tags=["Health"])
app.include_router(books.router, prefix="/api/books", tags=["Books"])
app.include_router(versions.router, prefix="/api/books", tags=["Versions"])
app.include_router(comparisons.router, prefix="/api/comparisons", tags=["Comparisons"])
app.include_router(manual_import.router, prefix="/api/manual-import", tags=["Manual Import"])
app.include_router(catalog.router, prefix="/api/catalog", tags=["Catalog"])
app.include_router(seed.router, prefix="/api/test-seed", tags=["Test Seed"])

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=os.getenv("HOST", "127.0.0.1"),
        port=int(os.getenv("PORT", "8000")),
        reload=True,
        log_level="info"
    )
