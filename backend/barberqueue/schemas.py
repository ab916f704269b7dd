"""
Pydantic-схемы, общие для сервисов и роутеров
"""
import re
from datetime import datetime
from uuid import UUID
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class QueueConfig(BaseModel):
    """
    Настройки очереди барбершопа как неизменяемое значение.
    Дефолты применяются один раз при загрузке, дальше значение передается явно.
    """
    model_config = ConfigDict(frozen=True, from_attributes=True)

    enabled: bool = False
    max_queue_size: int = Field(50, ge=1)
    notification_minutes: int = Field(30, ge=1)
    buffer_percentage: int = Field(33, ge=0, le=50)
    eta_weight: float = Field(0.60, ge=0, le=1)
    position_weight: float = Field(0.40, ge=0, le=1)
    wait_time_bonus: float = Field(0.20, ge=0, le=1)

    @property
    def reservation_horizon_minutes(self) -> int:
        """Насколько вперед ищем слот: notification_minutes плюс допуск buffer_percentage"""
        return self.notification_minutes + (self.notification_minutes * self.buffer_percentage) // 100


class QueueJoinRequest(BaseModel):
    """Вход в очередь (публичный, без авторизации)"""
    barbershop_id: str
    client_name: str = Field(..., min_length=3, max_length=100)
    client_phone: str = Field(..., min_length=10, max_length=20)
    service_id: UUID
    travel_time_minutes: int = Field(..., ge=1, le=180)
    employee_id: Optional[str] = None

    @field_validator("client_name")
    @classmethod
    def strip_name(cls, value: str) -> str:
        value = value.strip()
        if len(value) < 3:
            raise ValueError("Имя должно быть не короче 3 символов")
        return value

    @field_validator("client_phone")
    @classmethod
    def phone_has_digits(cls, value: str) -> str:
        if len(normalize_phone(value)) < 10:
            raise ValueError("Телефон должен содержать минимум 10 цифр")
        return value


def normalize_phone(phone: str) -> str:
    """Оставляем только цифры"""
    return re.sub(r"\D", "", phone or "")


class QueueEntryStatus(BaseModel):
    """То, что клиент видит при опросе своей записи"""
    model_config = ConfigDict(from_attributes=True)

    id: str
    barbershop_id: str
    client_name: str
    service_id: str
    employee_id: Optional[str] = None
    status: str
    queue_position: Optional[int] = None
    priority_score: Optional[float] = None
    estimated_arrival_minutes: int
    created_at: datetime
    notified_at: Optional[datetime] = None
    notification_expires_at: Optional[datetime] = None
    reserved_slot_start: Optional[datetime] = None
    reserved_slot_end: Optional[datetime] = None


class QueueStats(BaseModel):
    waiting: int = 0
    notified: int = 0
    confirmed: int = 0
    cancelled: int = 0
    expired: int = 0
    avg_wait_minutes: int = 0
    confirmation_rate: int = 0
