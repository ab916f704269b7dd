"""
Модель рабочего расписания мастера
"""
import uuid

from sqlalchemy import Column, Integer, String, Time, Boolean, ForeignKey, UniqueConstraint
from ..database import Base


class EmployeeSchedule(Base):
    """Рабочее окно мастера по дням недели"""

    __tablename__ = "employee_schedules"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    employee_id = Column(String(36), ForeignKey("employees.id", ondelete="CASCADE"), nullable=False, index=True)
    day_of_week = Column(Integer, nullable=False)  # 0=Пн, 6=Вс
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    is_active = Column(Boolean, default=True)

    __table_args__ = (
        UniqueConstraint("employee_id", "day_of_week", name="unique_employee_day"),
    )

    def __repr__(self):
        days = ["Пн", "Вт", "Ср", "Чт", "Пт", "Сб", "Вс"]
        return f"<EmployeeSchedule {days[self.day_of_week]} {self.start_time}-{self.end_time}>"


# Дефолтное расписание для новых мастеров
DEFAULT_SCHEDULE = [
    {"day_of_week": 0, "start_time": "09:00", "end_time": "20:00", "is_active": True},  # Пн
    {"day_of_week": 1, "start_time": "09:00", "end_time": "20:00", "is_active": True},  # Вт
    {"day_of_week": 2, "start_time": "09:00", "end_time": "20:00", "is_active": True},  # Ср
    {"day_of_week": 3, "start_time": "09:00", "end_time": "20:00", "is_active": True},  # Чт
    {"day_of_week": 4, "start_time": "09:00", "end_time": "20:00", "is_active": True},  # Пт
    {"day_of_week": 5, "start_time": "10:00", "end_time": "18:00", "is_active": True},  # Сб
    {"day_of_week": 6, "start_time": "10:00", "end_time": "18:00", "is_active": False},  # Вс
]
