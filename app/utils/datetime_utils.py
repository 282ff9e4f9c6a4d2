import math
from datetime import datetime, date, timedelta
from typing import Optional
import pytz


def get_user_timezone(timezone_str: str = "Asia/Shanghai") -> pytz.BaseTzInfo:
    """獲取用戶時區"""
    try:
        return pytz.timezone(timezone_str)
    except pytz.UnknownTimeZoneError:
        return pytz.timezone("Asia/Shanghai")


def utc_now() -> datetime:
    """獲取當前 UTC 時間"""
    return datetime.now(pytz.UTC)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """補上時區資訊；資料庫讀回的無時區時間視為 UTC"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return pytz.UTC.localize(dt)
    return dt.astimezone(pytz.UTC)


def to_user_timezone(dt: datetime, timezone_str: str = "Asia/Shanghai") -> datetime:
    """將 UTC 時間轉換為用戶時區"""
    user_tz = get_user_timezone(timezone_str)
    return ensure_utc(dt).astimezone(user_tz)


def format_datetime(dt: datetime, timezone_str: str = "Asia/Shanghai", format_str: str = "%Y-%m-%d %H:%M") -> str:
    """格式化時間為用戶時區字符串"""
    user_dt = to_user_timezone(dt, timezone_str)
    return user_dt.strftime(format_str)


def month_start(month_str: str) -> Optional[date]:
    """將 YYYY-MM 轉換為當月 1 日"""
    try:
        return datetime.strptime(f"{month_str}-01", "%Y-%m-%d").date()
    except ValueError:
        return None


def format_relative_time(dt: datetime, now: Optional[datetime] = None,
                         timezone_str: str = "Asia/Shanghai") -> str:
    """
    格式化為相對時間。

    一分鐘內顯示「刚刚」，30 天內顯示分鐘/小時/天前，其餘顯示完整時間。
    """
    now = ensure_utc(now) if now else utc_now()
    diff = now - ensure_utc(dt)
    minutes = int(diff.total_seconds() // 60)
    hours = int(diff.total_seconds() // 3600)
    days = diff.days

    if minutes < 1:
        return "刚刚"
    if minutes < 60:
        return f"{minutes}分钟前"
    if hours < 24:
        return f"{hours}小时前"
    if days < 30:
        return f"{days}天前"
    return format_datetime(dt, timezone_str, "%Y-%m-%d %H:%M")


def is_expired(expires_at: datetime, now: Optional[datetime] = None) -> bool:
    """判斷是否已過期"""
    now = ensure_utc(now) if now else utc_now()
    return ensure_utc(expires_at) < now


def remaining_days(expires_at: datetime, now: Optional[datetime] = None) -> int:
    """距離過期的剩餘天數，不足一天以一天計，已過期為 0"""
    now = ensure_utc(now) if now else utc_now()
    seconds = (ensure_utc(expires_at) - now).total_seconds()
    return max(0, math.ceil(seconds / 86400))


def expiry_from(start: datetime, days: int) -> datetime:
    """計算保留期限"""
    return ensure_utc(start) + timedelta(days=days)
