"""
Время барбершопа
"""
from datetime import datetime
from zoneinfo import ZoneInfo

from .config import get_settings


def now_local() -> datetime:
    """Текущее время по часам барбершопа (naive, как хранится в базе)"""
    tz = ZoneInfo(get_settings().TIMEZONE)
    return datetime.now(tz).replace(tzinfo=None, microsecond=0)
