"""
FastAPI entry point: timesheet submission, two-stage approval, processes and recycle bin
"""
import logging
import logging.config

from fastapi import FastAPI, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from app.config import settings, validate_settings
from app.database import engine, Base
from app import models  # noqa: F401  註冊全部資料表
from app.api import auth, timesheets, approvals, processes, recycle_bin
from app.scheduler import start_maintenance_scheduler, stop_maintenance_scheduler

logging.config.dictConfig(settings.get_logging_config())
logger = logging.getLogger(__name__)

APP_VERSION = "1.0.0"

# 缺少設定時以降級模式啟動
missing_settings = validate_settings()

app = FastAPI(
    title="Timesheet Approval System",
    description="計件工時提交、班長/段長兩級審核、工序管理與回收站",
    version=APP_VERSION,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
    openapi_tags=[
        {"name": "authentication", "description": "手機號登入、註冊與會話檢查"},
        {"name": "timesheets", "description": "工時記錄提交與刪除"},
        {"name": "approvals", "description": "班長與段長審核流程"},
        {"name": "processes", "description": "工序維護與 Excel 匯入"},
        {"name": "recycle-bin", "description": "已刪除資料的恢復與清理"},
    ]
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

for router in (auth.router, timesheets.router, approvals.router, processes.router, recycle_bin.router):
    app.include_router(router, prefix=settings.API_PREFIX)


@app.get("/health", summary="健康檢查")
async def health_check():
    """資料庫可連線時回報 healthy，並附上缺少的設定"""
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"健康檢查失敗: {e}")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Database unavailable")

    return {
        "status": "degraded" if missing_settings else "healthy",
        "database": "connected",
        "missing_settings": missing_settings,
        "version": APP_VERSION,
    }


@app.on_event("startup")
async def startup_event():
    logger.info(f"工時審核系統啟動中 (API 前綴 {settings.API_PREFIX})")

    # 開發環境便利用途，正式環境以 Alembic 遷移為準
    try:
        Base.metadata.create_all(bind=engine)
    except Exception as e:
        logger.error(f"建立資料表失敗: {e}")

    try:
        start_maintenance_scheduler()
    except Exception as e:
        logger.error(f"維護排程器啟動失敗: {e}")


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("工時審核系統關閉中")
    stop_maintenance_scheduler()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )
