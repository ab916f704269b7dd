"""
Модель настроек виртуальной очереди
"""
import uuid

from sqlalchemy import Column, Integer, String, Float, Boolean, ForeignKey, TIMESTAMP
from sqlalchemy.sql import func
from ..database import Base


class QueueSettings(Base):
    """Настройки очереди (одна строка на барбершоп)"""

    __tablename__ = "virtual_queue_settings"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    barbershop_id = Column(String(36), ForeignKey("barbershops.id", ondelete="CASCADE"), nullable=False, unique=True)
    enabled = Column(Boolean, nullable=False, default=False)
    max_queue_size = Column(Integer, nullable=False, default=50)
    notification_minutes = Column(Integer, nullable=False, default=30)
    buffer_percentage = Column(Integer, nullable=False, default=33)
    eta_weight = Column(Float, nullable=False, default=0.60)
    position_weight = Column(Float, nullable=False, default=0.40)
    wait_time_bonus = Column(Float, nullable=False, default=0.20)
    created_at = Column(TIMESTAMP, server_default=func.now())
    updated_at = Column(TIMESTAMP, server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        status = "✅" if self.enabled else "❌"
        return f"<QueueSettings {self.barbershop_id} {status} max={self.max_queue_size}>"
