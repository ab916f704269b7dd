"""
SQLAlchemy модели для базы данных
"""
from .barbershop import Barbershop
from .service import Service
from .employee import Employee, EmployeeService
from .employee_schedule import EmployeeSchedule
from .appointment import Appointment
from .queue_entry import QueueEntry
from .queue_settings import QueueSettings
from .queue_log import QueueLog

__all__ = [
    "Barbershop",
    "Service",
    "Employee",
    "EmployeeService",
    "EmployeeSchedule",
    "Appointment",
    "QueueEntry",
    "QueueSettings",
    "QueueLog"
]
