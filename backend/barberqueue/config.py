"""
Конфигурация приложения
"""
from pydantic_settings import BaseSettings
from functools import lru_cache
from pathlib import Path
from typing import Optional


class Settings(BaseSettings):
    """Настройки приложения"""

    # Database
    DATABASE_URL: str

    # Часовой пояс барбершопа ("сейчас" и "сегодня" считаются по нему)
    TIMEZONE: str = "Europe/Moscow"

    # Слоты
    SLOT_STEP_MINUTES: int = 10  # Сетка 00, 10, 20...
    ARRIVAL_BUFFER_MINUTES: int = 30  # На сегодня не раньше, чем через 30 минут
    BOOKING_DAYS_AHEAD: int = 30

    # Виртуальная очередь
    QUEUE_RESPONSE_WINDOW_MINUTES: int = 5  # Сколько клиент думает после уведомления
    QUEUE_ARRIVAL_MARGIN_MINUTES: int = 10  # Запас к времени дороги клиента
    QUEUE_MONITOR_ENABLED: bool = False
    QUEUE_MONITOR_INTERVAL_SECONDS: int = 60
    QUEUE_CRON_SECRET: Optional[str] = None

    # Уведомления клиентам (WhatsApp Cloud API)
    WHATSAPP_ACCESS_TOKEN: Optional[str] = None
    WHATSAPP_PHONE_NUMBER_ID: Optional[str] = None
    WHATSAPP_API_URL: str = "https://graph.facebook.com/v18.0"
    NOTIFICATION_TIMEOUT_SECONDS: float = 10.0
    NOTIFICATION_MAX_RETRIES: int = 3

    # Telegram для РАЗРАБОТЧИКА (сбои базы и каналов)
    TELEGRAM_BOT_TOKEN: Optional[str] = None
    TELEGRAM_DEV_CHAT_ID: Optional[str] = None

    # Application
    SITE_URL: str = "http://localhost:8000"

    # Development
    DEBUG: bool = True
    ENVIRONMENT: str = "development"

    class Config:
        # Путь к .env относительно корня проекта
        env_file = Path(__file__).resolve().parent.parent.parent / ".env"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Получить настройки приложения (с кешированием)"""
    return Settings()
