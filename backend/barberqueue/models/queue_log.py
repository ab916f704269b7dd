"""
Журнал событий виртуальной очереди
"""
import uuid

from sqlalchemy import Column, String, ForeignKey, DateTime, JSON
from ..database import Base


class QueueLog(Base):
    """
    Событие очереди: queue_joined, notification_sent, confirmed,
    cancelled, notification_expired.
    Пишется в той же транзакции, что и само изменение статуса.
    """

    __tablename__ = "virtual_queue_logs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    barbershop_id = Column(String(36), ForeignKey("barbershops.id", ondelete="CASCADE"), nullable=False, index=True)
    queue_entry_id = Column(String(36), ForeignKey("virtual_queue_entries.id", ondelete="CASCADE"), nullable=False, index=True)
    event_type = Column(String(30), nullable=False)
    event_data = Column(JSON, nullable=True)
    created_at = Column(DateTime, nullable=False)

    def __repr__(self):
        return f"<QueueLog {self.event_type} {self.queue_entry_id}>"
