"""
Retry and timeout helpers for read-only database queries.
"""

import time
import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from functools import wraps
from typing import Callable, Optional

from sqlalchemy.exc import OperationalError, DisconnectionError, TimeoutError as PoolTimeoutError

from app.config import settings

logger = logging.getLogger(__name__)

TRANSIENT_MESSAGE_MARKERS = ("fetch", "network", "timeout", "timed out", "pgrst301")


def is_transient_error(error: Exception) -> bool:
    """判斷錯誤是否為可重試的暫時性錯誤"""
    if isinstance(error, (OperationalError, DisconnectionError, PoolTimeoutError, TimeoutError, ConnectionError)):
        return True
    message = str(error).lower()
    return any(marker in message for marker in TRANSIENT_MESSAGE_MARKERS)


def with_retry(max_retries: Optional[int] = None, base_delay: Optional[float] = None,
               sleep: Callable[[float], None] = time.sleep):
    """
    讀取查詢的指數退避重試裝飾器。

    只用於讀取路徑；寫入操作失敗時直接回報錯誤，不自動重試。

    Args:
        max_retries: 最大嘗試次數（預設讀取 settings）
        base_delay: 第一次重試前的等待秒數，之後每次加倍
        sleep: 等待函式，測試時可替換
    """
    def decorator(func):
        name = getattr(func, "__name__", repr(func))

        @wraps(func)
        def wrapper(*args, **kwargs):
            attempts = max_retries or settings.READ_RETRY_MAX_ATTEMPTS
            delay = settings.READ_RETRY_BASE_DELAY if base_delay is None else base_delay

            for attempt in range(1, attempts + 1):
                try:
                    return func(*args, **kwargs)
                except Exception as e:
                    if attempt >= attempts or not is_transient_error(e):
                        raise
                    wait = delay * (2 ** (attempt - 1))
                    logger.warning(f"{name} 第 {attempt} 次查詢失敗，{wait:.1f} 秒後重試: {e}")
                    # 服務方法重試前先重置失效的交易
                    db = getattr(args[0], "db", None) if args else None
                    if db is not None:
                        db.rollback()
                    sleep(wait)
        return wrapper
    return decorator


def run_with_timeout(func: Callable, timeout: float, *args, **kwargs):
    """
    在背景執行緒執行 func，超過 timeout 秒視為失敗。

    Raises:
        TimeoutError: 超時
    """
    executor = ThreadPoolExecutor(max_workers=1)
    future = executor.submit(func, *args, **kwargs)
    try:
        return future.result(timeout=timeout)
    except FutureTimeoutError:
        raise TimeoutError(f"{getattr(func, '__name__', 'query')} timed out after {timeout} seconds")
    finally:
        executor.shutdown(wait=False)
