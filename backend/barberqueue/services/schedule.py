"""
Сервис для работы с расписанием и слотами
"""
from dataclasses import dataclass
from datetime import date, time, datetime, timedelta
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from ..models.employee import Employee, EmployeeService
from ..models.employee_schedule import EmployeeSchedule
from ..models.service import Service
from ..config import get_settings
from .store import AppointmentStore

settings = get_settings()


def _to_minutes(value: time) -> int:
    return value.hour * 60 + value.minute


def _from_minutes(minutes: int) -> time:
    return time(minutes // 60, minutes % 60)


@dataclass(frozen=True)
class Slot:
    """Конкретный свободный интервал мастера на дату"""
    employee_id: str
    slot_date: date
    start_time: time
    end_time: time

    @property
    def start(self) -> datetime:
        return datetime.combine(self.slot_date, self.start_time)

    @property
    def end(self) -> datetime:
        return datetime.combine(self.slot_date, self.end_time)


class ScheduleCalendar:
    """
    Свободные начала приема для одного мастера на одну дату

    Слоты идут по фиксированной сетке (00, 10, 20...) от первой точки сетки
    не раньше начала смены. Слот [t, t+D) годится, если заканчивается
    не позже конца смены и не пересекается ни с одной занятой записью.
    На сегодня отсекается все, что начинается раньше now + буфер на дорогу.
    """

    def __init__(self, step_minutes: int = None, arrival_buffer_minutes: int = None):
        self.step = step_minutes or settings.SLOT_STEP_MINUTES
        if arrival_buffer_minutes is None:
            arrival_buffer_minutes = settings.ARRIVAL_BUFFER_MINUTES
        self.arrival_buffer = arrival_buffer_minutes

    def generate_time_slots(self, start: time, end: time, duration_minutes: int) -> List[time]:
        """Все точки сетки, с которых услуга успевает закончиться до конца смены"""
        first = -(-_to_minutes(start) // self.step) * self.step
        last = _to_minutes(end) - duration_minutes
        return [_from_minutes(minutes) for minutes in range(first, last + 1, self.step)]

    def available_starts(
        self,
        target_date: date,
        window_start: time,
        window_end: time,
        duration_minutes: int,
        busy: List[Tuple[time, time]],
        now: Optional[datetime] = None
    ) -> List[time]:
        """
        Свободные начала приема по возрастанию.
        Пустой список - день занят полностью, это не ошибка.
        """
        cutoff = None
        if now is not None:
            if target_date < now.date():
                return []
            if target_date == now.date():
                cutoff = now + timedelta(minutes=self.arrival_buffer)

        busy_minutes = [(_to_minutes(b_start), _to_minutes(b_end)) for b_start, b_end in busy]

        available = []
        for slot in self.generate_time_slots(window_start, window_end, duration_minutes):
            slot_start = _to_minutes(slot)
            slot_end = slot_start + duration_minutes

            # Проверяем пересечение интервалов
            if any(slot_start < b_end and slot_end > b_start for b_start, b_end in busy_minutes):
                continue

            if cutoff is not None and datetime.combine(target_date, slot) < cutoff:
                continue

            available.append(slot)

        return available


class SlotAllocator:
    """Свободные слоты по услуге сразу по всем подходящим мастерам"""

    def __init__(
        self,
        db: Session,
        calendar: ScheduleCalendar = None,
        store: AppointmentStore = None
    ):
        self.db = db
        self.calendar = calendar or ScheduleCalendar()
        self.store = store or AppointmentStore(db)

    def get_qualified_employees(self, service: Service, employee_id: Optional[str] = None) -> List[Employee]:
        """Активные мастера барбершопа, которые выполняют услугу"""
        query = self.db.query(Employee).join(
            EmployeeService, EmployeeService.employee_id == Employee.id
        ).filter(
            EmployeeService.service_id == service.id,
            Employee.barbershop_id == service.barbershop_id,
            Employee.status == "active"
        )
        if employee_id:
            query = query.filter(Employee.id == employee_id)

        return query.order_by(Employee.id).all()

    def get_working_hours(self, employee_id: str, target_date: date) -> Optional[Tuple[time, time]]:
        """
        Рабочее окно мастера на дату или None, если он не работает
        """
        # Python: понедельник = 0, воскресенье = 6
        schedule = self.db.query(EmployeeSchedule).filter(
            EmployeeSchedule.employee_id == employee_id,
            EmployeeSchedule.day_of_week == target_date.weekday(),
            EmployeeSchedule.is_active == True  # noqa: E712
        ).first()

        if not schedule or schedule.start_time >= schedule.end_time:
            return None
        return schedule.start_time, schedule.end_time

    def get_busy_intervals(self, employee_id: str, target_date: date) -> List[Tuple[time, time]]:
        return [
            (apt.start_time, apt.end_time)
            for apt in self.store.find_appointments(employee_id, target_date)
        ]

    def get_employee_slots(
        self,
        service: Service,
        employee_id: str,
        target_date: date,
        now: Optional[datetime] = None
    ) -> List[Slot]:
        working = self.get_working_hours(employee_id, target_date)
        if not working:
            return []

        starts = self.calendar.available_starts(
            target_date,
            working[0],
            working[1],
            service.duration_minutes,
            self.get_busy_intervals(employee_id, target_date),
            now=now
        )
        return [
            Slot(
                employee_id=employee_id,
                slot_date=target_date,
                start_time=start,
                end_time=_from_minutes(_to_minutes(start) + service.duration_minutes)
            )
            for start in starts
        ]

    def get_available_slots(
        self,
        service: Service,
        target_date: date,
        employee_id: Optional[str] = None,
        now: Optional[datetime] = None,
        not_before: Optional[datetime] = None,
        not_after: Optional[datetime] = None
    ) -> List[Slot]:
        """
        Слоты по всем подходящим мастерам, по одному на каждое время начала.
        Если время начала свободно у нескольких мастеров - берем мастера
        с меньшим id, чтобы результат был детерминированным.
        """
        by_start = {}
        for employee in self.get_qualified_employees(service, employee_id):
            for slot in self.get_employee_slots(service, employee.id, target_date, now=now):
                if not_before is not None and slot.start < not_before:
                    continue
                if not_after is not None and slot.start > not_after:
                    continue

                current = by_start.get(slot.start_time)
                if current is None or slot.employee_id < current.employee_id:
                    by_start[slot.start_time] = slot

        return [by_start[start] for start in sorted(by_start)]

    def find_earliest_slot(self, service: Service, target_date: date, **kwargs) -> Optional[Slot]:
        slots = self.get_available_slots(service, target_date, **kwargs)
        return slots[0] if slots else None
