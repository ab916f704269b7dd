"""
Хранилище записей и очереди

Все методы работают внутри сессии вызывающего и НЕ делают commit:
бронь слота и смена статуса записи в очереди коммитятся одной транзакцией.
"""
import logging
from datetime import date, time, datetime
from typing import List, Optional

from sqlalchemy import and_, func, or_, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..errors import NotFound, InvalidState, SlotConflict, UpstreamFailure
from ..models.appointment import Appointment
from ..models.employee import Employee
from ..models.queue_entry import QueueEntry, ACTIVE_STATUSES
from ..models.queue_log import QueueLog
from ..models.service import Service

logger = logging.getLogger(__name__)


class AppointmentStore:
    """Записи на прием: чтение, бронь слота, подтверждение и снятие брони"""

    def __init__(self, db: Session):
        self.db = db

    def get_service(self, service_id: str) -> Optional[Service]:
        return self.db.query(Service).filter(Service.id == service_id).first()

    def find_appointments(self, employee_id: str, target_date: date) -> List[Appointment]:
        """Все не отмененные записи мастера на дату, по времени начала"""
        try:
            return self.db.query(Appointment).filter(
                Appointment.employee_id == employee_id,
                Appointment.appointment_date == target_date,
                Appointment.status != "cancelled"
            ).order_by(Appointment.start_time).all()
        except SQLAlchemyError as e:
            raise UpstreamFailure(f"Не удалось загрузить записи мастера: {e}") from e

    def find_reservation(self, queue_entry_id: str) -> Optional[Appointment]:
        return self.db.query(Appointment).filter(
            Appointment.queue_entry_id == queue_entry_id,
            Appointment.status == "queue_reserved"
        ).first()

    def reserve_slot(
        self,
        employee_id: str,
        target_date: date,
        start: time,
        end: time,
        queue_entry_id: str
    ) -> Appointment:
        """
        Временная бронь слота под запись в очереди (status=queue_reserved)

        Raises:
            SlotConflict: интервал пересекается с другой записью мастера
        """
        entry = self.db.get(QueueEntry, queue_entry_id)
        if entry is None:
            raise NotFound()

        return self._claim_interval(
            Appointment(
                barbershop_id=entry.barbershop_id,
                employee_id=employee_id,
                service_id=entry.service_id,
                appointment_date=target_date,
                start_time=start,
                end_time=end,
                status="queue_reserved",
                client_name=entry.client_name,
                client_phone=entry.client_phone,
                queue_entry_id=entry.id,
                source="virtual_queue"
            )
        )

    def book_slot(
        self,
        barbershop_id: str,
        employee_id: str,
        service_id: str,
        target_date: date,
        start: time,
        end: time,
        client_name: Optional[str] = None,
        client_phone: Optional[str] = None
    ) -> Appointment:
        """Обычная запись клиента - через тот же захват интервала, что и бронь очереди"""
        return self._claim_interval(
            Appointment(
                barbershop_id=barbershop_id,
                employee_id=employee_id,
                service_id=service_id,
                appointment_date=target_date,
                start_time=start,
                end_time=end,
                status="pending",
                client_name=client_name,
                client_phone=client_phone,
                source="direct"
            )
        )

    def promote_to_appointment(self, appointment_id: str) -> Appointment:
        """Бронь очереди -> обычная запись (pending)"""
        appointment = self.db.get(Appointment, appointment_id)
        if appointment is None:
            raise NotFound("Бронь не найдена")
        if appointment.status != "queue_reserved":
            raise InvalidState("Бронь уже снята или подтверждена")

        appointment.status = "pending"
        self.db.flush()
        return appointment

    def delete_reservation(self, appointment_id: str) -> bool:
        """Удалить бронь очереди. False - брони уже нет"""
        deleted = self.db.query(Appointment).filter(
            Appointment.id == appointment_id,
            Appointment.status == "queue_reserved"
        ).delete(synchronize_session="fetch")
        return deleted > 0

    def _claim_interval(self, appointment: Appointment) -> Appointment:
        """
        Проверить свободен ли интервал и занять его

        UPDATE строки мастера берет блокировку (строка в PostgreSQL,
        запись в файл в SQLite) до конца транзакции, поэтому параллельный
        захват того же мастера ждет и видит уже занятый интервал.
        """
        try:
            locked = self.db.execute(
                update(Employee)
                .where(Employee.id == appointment.employee_id)
                .values(booking_version=Employee.booking_version + 1)
            ).rowcount
            if not locked:
                raise NotFound("Мастер не найден")

            overlapping = self.db.query(func.count(Appointment.id)).filter(
                Appointment.employee_id == appointment.employee_id,
                Appointment.appointment_date == appointment.appointment_date,
                Appointment.status != "cancelled",
                Appointment.start_time < appointment.end_time,
                Appointment.end_time > appointment.start_time
            ).scalar()
            if overlapping:
                raise SlotConflict()

            self.db.add(appointment)
            self.db.flush()
        except IntegrityError as e:
            raise SlotConflict() from e
        except SQLAlchemyError as e:
            raise UpstreamFailure(f"Ошибка базы при бронировании слота: {e}") from e

        logger.info(
            f"Слот занят: мастер {appointment.employee_id}, {appointment.appointment_date} "
            f"{appointment.start_time:%H:%M}-{appointment.end_time:%H:%M} ({appointment.status})"
        )
        return appointment


class QueueEntryStore:
    """Записи виртуальной очереди и журнал событий"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, entry_id: str) -> Optional[QueueEntry]:
        return self.db.get(QueueEntry, entry_id)

    def add(self, entry: QueueEntry) -> QueueEntry:
        self.db.add(entry)
        self.db.flush()
        return entry

    def count_waiting(self, barbershop_id: str) -> int:
        return self.db.query(func.count(QueueEntry.id)).filter(
            QueueEntry.barbershop_id == barbershop_id,
            QueueEntry.status == "waiting"
        ).scalar()

    def find_active_for_phone(self, barbershop_id: str, phone: str) -> Optional[QueueEntry]:
        return self.db.query(QueueEntry).filter(
            QueueEntry.barbershop_id == barbershop_id,
            QueueEntry.client_phone == phone,
            QueueEntry.status.in_(ACTIVE_STATUSES)
        ).first()

    def waiting_entries(self, barbershop_id: str) -> List[QueueEntry]:
        """Ожидающие записи в порядке прихода"""
        return self.db.query(QueueEntry).filter(
            QueueEntry.barbershop_id == barbershop_id,
            QueueEntry.status == "waiting"
        ).order_by(QueueEntry.created_at, QueueEntry.id).all()

    def active_entries(self, barbershop_id: str) -> List[QueueEntry]:
        return self.db.query(QueueEntry).filter(
            QueueEntry.barbershop_id == barbershop_id,
            QueueEntry.status.in_(ACTIVE_STATUSES)
        ).order_by(QueueEntry.created_at, QueueEntry.id).all()

    def all_entries(self, barbershop_id: str) -> List[QueueEntry]:
        return self.db.query(QueueEntry).filter(
            QueueEntry.barbershop_id == barbershop_id
        ).all()

    def stale_notified(self, barbershop_id: str, now: datetime) -> List[QueueEntry]:
        """Уведомленные записи, чье окно подтверждения истекло"""
        return self.db.query(QueueEntry).filter(
            QueueEntry.barbershop_id == barbershop_id,
            QueueEntry.status == "notified",
            QueueEntry.notification_expires_at < now
        ).all()

    def queue_position(self, entry: QueueEntry) -> Optional[int]:
        """Номер в очереди среди waiting (с 1), None если запись уже не ждет"""
        if entry.status != "waiting":
            return None
        ahead = self.db.query(func.count(QueueEntry.id)).filter(
            QueueEntry.barbershop_id == entry.barbershop_id,
            QueueEntry.status == "waiting",
            or_(
                QueueEntry.created_at < entry.created_at,
                and_(QueueEntry.created_at == entry.created_at, QueueEntry.id < entry.id)
            )
        ).scalar()
        return ahead + 1

    def log_event(self, entry: QueueEntry, event_type: str, now: datetime, event_data: dict = None):
        self.db.add(QueueLog(
            barbershop_id=entry.barbershop_id,
            queue_entry_id=entry.id,
            event_type=event_type,
            event_data=event_data or {},
            created_at=now
        ))
