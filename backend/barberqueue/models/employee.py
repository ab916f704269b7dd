"""
Модели мастеров и их услуг
"""
import uuid

from sqlalchemy import Column, Integer, String, ForeignKey, TIMESTAMP, PrimaryKeyConstraint
from sqlalchemy.sql import func
from ..database import Base


class Employee(Base):
    """Мастер барбершопа"""

    __tablename__ = "employees"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    barbershop_id = Column(String(36), ForeignKey("barbershops.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    status = Column(String(20), default="active")  # active, inactive
    # Увеличивается при каждом захвате слота - блокирует строку мастера до коммита
    booking_version = Column(Integer, nullable=False, default=0)
    created_at = Column(TIMESTAMP, server_default=func.now())

    def __repr__(self):
        return f"<Employee {self.name} ({self.status})>"


class EmployeeService(Base):
    """Какие услуги выполняет мастер"""

    __tablename__ = "employee_services"

    employee_id = Column(String(36), ForeignKey("employees.id", ondelete="CASCADE"), nullable=False)
    service_id = Column(String(36), ForeignKey("services.id", ondelete="CASCADE"), nullable=False)

    __table_args__ = (
        PrimaryKeyConstraint("employee_id", "service_id"),
    )

    def __repr__(self):
        return f"<EmployeeService {self.employee_id} -> {self.service_id}>"
