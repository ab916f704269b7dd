"""
Модель записи в виртуальной очереди
"""
import uuid

from sqlalchemy import Column, Integer, String, Float, ForeignKey, DateTime
from ..database import Base


# waiting -> notified -> confirmed | cancelled | expired; waiting -> cancelled
ACTIVE_STATUSES = ("waiting", "notified")


class QueueEntry(Base):
    """Клиент в виртуальной очереди"""

    __tablename__ = "virtual_queue_entries"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    barbershop_id = Column(String(36), ForeignKey("barbershops.id", ondelete="CASCADE"), nullable=False, index=True)
    client_name = Column(String(100), nullable=False)
    client_phone = Column(String(20), nullable=False, index=True)
    service_id = Column(String(36), ForeignKey("services.id"), nullable=False)
    employee_id = Column(String(36), ForeignKey("employees.id"), nullable=True)  # Предпочтительный мастер
    estimated_arrival_minutes = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default="waiting", index=True)
    priority_score = Column(Float, nullable=True)
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=True)
    notified_at = Column(DateTime, nullable=True)
    notification_expires_at = Column(DateTime, nullable=True)
    reserved_slot_start = Column(DateTime, nullable=True)
    reserved_slot_end = Column(DateTime, nullable=True)
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def __repr__(self):
        return f"<QueueEntry {self.client_name} ({self.status})>"
