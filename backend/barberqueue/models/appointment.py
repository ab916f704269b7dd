"""
Модель записи на прием
"""
import uuid

from sqlalchemy import Column, String, ForeignKey, Date, Time, TIMESTAMP, Index, text
from sqlalchemy.sql import func
from ..database import Base


# pending, confirmed, cancelled, no_show, completed, queue_reserved
APPOINTMENT_STATUSES = ("pending", "confirmed", "cancelled", "no_show", "completed", "queue_reserved")


class Appointment(Base):
    """Запись на прием (или временная бронь очереди)"""

    __tablename__ = "appointments"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    barbershop_id = Column(String(36), ForeignKey("barbershops.id", ondelete="CASCADE"), nullable=False, index=True)
    employee_id = Column(String(36), ForeignKey("employees.id"), nullable=False)
    service_id = Column(String(36), ForeignKey("services.id"), nullable=False)
    appointment_date = Column(Date, nullable=False, index=True)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    status = Column(String(20), nullable=False, default="pending")
    client_name = Column(String(100), nullable=True)
    client_phone = Column(String(20), nullable=True)
    queue_entry_id = Column(String(36), ForeignKey("virtual_queue_entries.id", ondelete="SET NULL"), nullable=True)
    source = Column(String(20), nullable=False, default="direct")  # direct, virtual_queue
    created_at = Column(TIMESTAMP, server_default=func.now())
    updated_at = Column(TIMESTAMP, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        # Два активных приема мастера не могут начинаться в одно время
        Index(
            "uq_appointments_active_start",
            "employee_id", "appointment_date", "start_time",
            unique=True,
            postgresql_where=text("status <> 'cancelled'"),
            sqlite_where=text("status <> 'cancelled'"),
        ),
    )

    def __repr__(self):
        return f"<Appointment {self.appointment_date} {self.start_time}-{self.end_time} (Status: {self.status})>"
