import logging
from typing import Optional, Callable
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.orm import Session

from app.config import settings
from app.database import SessionLocal
from app.services.recycle_bin_service import RecycleBinService

logger = logging.getLogger(__name__)

class MaintenanceScheduler:
    """背景維護排程器"""

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self.session_factory = session_factory
        self.scheduler = BackgroundScheduler()
        self.config = settings.get_scheduler_config()

        self._setup_scheduled_jobs()

    def _setup_scheduled_jobs(self):
        """設定定時任務"""
        cleanup = self.config["recycle_bin_cleanup"]
        if not cleanup["enabled"]:
            logger.info("回收站自動清理已停用")
            return

        self.scheduler.add_job(
            func=self.recycle_bin_cleanup_job,
            trigger=IntervalTrigger(hours=cleanup["interval_hours"]),
            id='recycle_bin_cleanup',
            name='回收站過期清理',
            replace_existing=True
        )

        logger.info("定時任務設定完成")

    def recycle_bin_cleanup_job(self) -> int:
        """回收站過期清理任務，失敗只記錄日誌，下一輪再試"""
        db = None
        try:
            db = self.session_factory()
            count = RecycleBinService(db).cleanup_expired()
            logger.info(f"回收站清理完成，刪除 {count} 個過期項目")
            return count
        except Exception as e:
            logger.error(f"回收站清理任務錯誤: {e}")
            return 0
        finally:
            if db is not None:
                db.close()

    def start(self):
        """啟動排程器，並立即執行一次清理"""
        try:
            self.scheduler.start()
            logger.info("排程器已啟動")
        except Exception as e:
            logger.error(f"啟動排程器失敗: {e}")
            raise

        if self.config["recycle_bin_cleanup"]["enabled"] and self.config["recycle_bin_cleanup"]["run_on_start"]:
            self.recycle_bin_cleanup_job()

    def stop(self):
        """停止排程器"""
        try:
            if self.scheduler.running:
                self.scheduler.shutdown()
                logger.info("排程器已停止")
        except Exception as e:
            logger.error(f"停止排程器錯誤: {e}")


# 全域排程器實例
maintenance_scheduler: Optional[MaintenanceScheduler] = None

def get_maintenance_scheduler() -> MaintenanceScheduler:
    """獲取排程器實例"""
    global maintenance_scheduler
    if maintenance_scheduler is None:
        maintenance_scheduler = MaintenanceScheduler()
    return maintenance_scheduler

def start_maintenance_scheduler():
    """啟動排程器"""
    scheduler = get_maintenance_scheduler()
    scheduler.start()
    return scheduler

def stop_maintenance_scheduler():
    """停止排程器"""
    global maintenance_scheduler
    if maintenance_scheduler:
        maintenance_scheduler.stop()
        maintenance_scheduler = None
