"""
Модель барбершопа
"""
import uuid

from sqlalchemy import Column, String, TIMESTAMP
from sqlalchemy.sql import func
from ..database import Base


class Barbershop(Base):
    """Барбершоп - владелец услуг, мастеров и очереди"""

    __tablename__ = "barbershops"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(100), nullable=False)
    created_at = Column(TIMESTAMP, server_default=func.now())

    def __repr__(self):
        return f"<Barbershop {self.name}>"
