"""
Виртуальная очередь: вход, периодическая обработка, подтверждение, отмена

Жизненный цикл записи:
    waiting -> notified -> confirmed | cancelled | expired
    waiting -> cancelled

Каждая смена статуса коммитится вместе со своей бронью и событием журнала.
Запись в очереди версионируется (QueueEntry.version), поэтому параллельные
изменения одной записи не проходят молча: проигравший получает StaleDataError.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ..clock import now_local
from ..config import get_settings
from ..errors import (
    QueueValidationError,
    QueueDisabled,
    QueueFull,
    DuplicateEntry,
    NotFound,
    InvalidState,
    SlotConflict,
    UpstreamFailure,
)
from ..models.queue_entry import QueueEntry, ACTIVE_STATUSES
from ..models.queue_settings import QueueSettings
from ..models.service import Service
from ..schemas import QueueConfig, QueueEntryStatus, QueueJoinRequest, QueueStats, normalize_phone
from .priority import score_entry, wait_minutes_since, ranking_key
from .schedule import ScheduleCalendar, SlotAllocator, Slot
from .store import AppointmentStore, QueueEntryStore

settings = get_settings()
logger = logging.getLogger(__name__)

# Сколько раз повторяем отмену, если запись параллельно поменяли
CANCEL_ATTEMPTS = 3


@dataclass
class QueueNotification:
    """Намерение уведомить клиента - отправляется вне транзакции"""
    entry_id: str
    barbershop_id: str
    client_name: str
    client_phone: str
    service_name: str
    slot_start: datetime
    slot_end: datetime
    expires_at: datetime
    minutes_until_slot: int
    travel_minutes: int


@dataclass
class ProcessResult:
    barbershop_id: str
    expired: int = 0
    skipped: int = 0
    conflicts: int = 0
    notifications: List[QueueNotification] = field(default_factory=list)

    @property
    def notified(self) -> int:
        return len(self.notifications)


class QueueEngine:
    """Сервис виртуальной очереди"""

    def __init__(
        self,
        db: Session,
        response_window_minutes: int = None,
        arrival_margin_minutes: int = None
    ):
        self.db = db
        self.appointments = AppointmentStore(db)
        self.entries = QueueEntryStore(db)
        # Время дороги клиента учитывается отдельно, общий буфер "сегодня" не нужен
        self.allocator = SlotAllocator(db, ScheduleCalendar(arrival_buffer_minutes=0), self.appointments)

        if response_window_minutes is None:
            response_window_minutes = settings.QUEUE_RESPONSE_WINDOW_MINUTES
        if arrival_margin_minutes is None:
            arrival_margin_minutes = settings.QUEUE_ARRIVAL_MARGIN_MINUTES
        self.response_window = timedelta(minutes=response_window_minutes)
        self.arrival_margin = arrival_margin_minutes

    # ==================== Вход в очередь ====================

    def join(
        self,
        config: QueueConfig,
        barbershop_id: str,
        client_name: str,
        client_phone: str,
        service_id: str,
        travel_time_minutes: int,
        employee_id: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> QueueEntry:
        """
        Поставить клиента в очередь

        Raises:
            QueueDisabled, QueueValidationError, DuplicateEntry, QueueFull
        """
        now = now or now_local()

        if not config.enabled:
            raise QueueDisabled()

        try:
            request = QueueJoinRequest(
                barbershop_id=barbershop_id,
                client_name=client_name,
                client_phone=client_phone,
                service_id=service_id,
                travel_time_minutes=travel_time_minutes,
                employee_id=employee_id
            )
        except ValidationError as e:
            fields = ", ".join(str(err["loc"][0]) for err in e.errors() if err.get("loc"))
            raise QueueValidationError(f"Проверьте поля: {fields}") from e

        service = self.appointments.get_service(str(request.service_id))
        if not service or not service.is_active or service.barbershop_id != barbershop_id:
            raise QueueValidationError("Услуга не найдена")

        phone = normalize_phone(request.client_phone)

        # Блокируем строку настроек, чтобы параллельные входы не обошли лимит
        self.db.query(QueueSettings).filter(
            QueueSettings.barbershop_id == barbershop_id
        ).with_for_update().first()

        if self.entries.find_active_for_phone(barbershop_id, phone):
            self.db.rollback()
            raise DuplicateEntry()

        if self.entries.count_waiting(barbershop_id) >= config.max_queue_size:
            self.db.rollback()
            raise QueueFull()

        entry = self.entries.add(QueueEntry(
            barbershop_id=barbershop_id,
            client_name=request.client_name,
            client_phone=phone,
            service_id=service.id,
            employee_id=request.employee_id,
            estimated_arrival_minutes=request.travel_time_minutes,
            status="waiting",
            created_at=now,
            updated_at=now
        ))
        self.entries.log_event(entry, "queue_joined", now, {"travel_time_minutes": request.travel_time_minutes})
        self.db.commit()

        logger.info(f"Клиент {entry.client_name} встал в очередь {barbershop_id} (запись {entry.id})")
        return entry

    # ==================== Периодическая обработка ====================

    def process_queue(self, config: QueueConfig, barbershop_id: str, now: Optional[datetime] = None) -> ProcessResult:
        """
        Один проход очереди барбершопа

        1. Истекшие уведомления -> expired, брони удаляются
        2. Для каждой waiting пересчитывается priority_score
        3. Жадно: лучшей записи с достижимым слотом бронируем слот и
           переводим ее в notified, пока есть слоты и кандидаты

        Ошибка на одной записи не останавливает проход по остальным.
        """
        now = now or now_local()
        result = ProcessResult(barbershop_id=barbershop_id)

        if not config.enabled:
            logger.info(f"Очередь {barbershop_id} выключена, пропускаем")
            return result

        result.expired = self.expire_stale(barbershop_id, now)

        try:
            waiting = self.entries.waiting_entries(barbershop_id)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise UpstreamFailure(f"Не удалось загрузить очередь: {e}") from e

        if not waiting:
            return result

        logger.info(f"Очередь {barbershop_id}: {len(waiting)} ожидают")

        positions = {entry.id: index + 1 for index, entry in enumerate(waiting)}
        horizon = now + timedelta(minutes=config.reservation_horizon_minutes)
        services: Dict[str, Service] = {}
        scores: Dict[str, float] = {}
        pool = list(waiting)
        attempts_left = len(pool) * 3

        while pool and attempts_left > 0:
            attempts_left -= 1
            candidates = []

            for entry in list(pool):
                if entry.status != "waiting":
                    # Клиент успел отменить запись
                    pool.remove(entry)
                    continue

                try:
                    service = self._get_service(services, entry.service_id)
                    slot, minutes_until = self._candidate_slot(config, entry, service, now, horizon)
                except Exception as e:
                    logger.error(f"Запись {entry.id} пропущена до следующего прохода: {e}")
                    self.db.rollback()
                    pool.remove(entry)
                    result.skipped += 1
                    continue

                breakdown = score_entry(
                    config,
                    entry.estimated_arrival_minutes,
                    positions[entry.id],
                    wait_minutes_since(entry.created_at, now),
                    minutes_until
                )
                scores[entry.id] = round(breakdown.score, 6)

                if slot is None:
                    pool.remove(entry)
                    continue
                candidates.append((breakdown.score, entry, slot, service))

            if not candidates:
                break

            candidates.sort(key=lambda item: ranking_key(item[0], item[1].created_at, item[1].id))
            score, entry, slot, service = candidates[0]

            try:
                notification = self._reserve_and_notify(entry, slot, service, scores[entry.id], now)
            except SlotConflict:
                # Слот заняли параллельно - пересчитываем и пробуем снова
                self.db.rollback()
                result.conflicts += 1
                logger.warning(f"Слот {slot.start:%H:%M} мастера {slot.employee_id} уже занят, ищем другой")
                continue
            except Exception as e:
                self.db.rollback()
                pool.remove(entry)
                result.skipped += 1
                logger.error(f"Не удалось уведомить запись {entry.id}: {e}")
                continue

            pool.remove(entry)
            result.notifications.append(notification)

        try:
            # Сохраняем пересчитанные приоритеты оставшихся
            for entry in waiting:
                if entry.status == "waiting" and entry.id in scores:
                    entry.priority_score = scores[entry.id]
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.warning(f"Приоритеты очереди {barbershop_id} не сохранены: {e}")

        logger.info(
            f"Очередь {barbershop_id}: уведомлено {result.notified}, истекло {result.expired}, "
            f"пропущено {result.skipped}, конфликтов {result.conflicts}"
        )
        return result

    def expire_stale(self, barbershop_id: str, now: Optional[datetime] = None) -> int:
        """Уведомленные без ответа дольше окна подтверждения -> expired"""
        now = now or now_local()
        expired = 0

        for entry in self.entries.stale_notified(barbershop_id, now):
            try:
                self._close_entry(entry, "expired", now)
                expired += 1
            except StaleDataError:
                # Клиент успел подтвердить или отменить
                self.db.rollback()
                logger.warning(f"Запись {entry.id} изменилась во время истечения, пропускаем")

        if expired:
            logger.info(f"⏰ {expired} уведомлений истекло (брони удалены)")
        return expired

    def _get_service(self, cache: Dict[str, Service], service_id: str) -> Service:
        if service_id not in cache:
            service = self.appointments.get_service(service_id)
            if service is None:
                raise UpstreamFailure(f"Услуга {service_id} не найдена")
            cache[service_id] = service
        return cache[service_id]

    def _candidate_slot(
        self,
        config: QueueConfig,
        entry: QueueEntry,
        service: Service,
        now: datetime,
        horizon: datetime
    ) -> Tuple[Optional[Slot], float]:
        """
        Ближайший слот, до которого клиент успевает доехать, и
        сколько минут до него (или до ближайшего слота вообще, если не успевает).
        """
        slots: List[Slot] = []
        day = now.date()
        while day <= horizon.date():
            slots.extend(self.allocator.get_available_slots(
                service,
                day,
                employee_id=entry.employee_id,
                now=now,
                not_before=now,
                not_after=horizon
            ))
            day += timedelta(days=1)

        reachable_from = now + timedelta(minutes=entry.estimated_arrival_minutes + self.arrival_margin)
        slot = next((s for s in slots if s.start >= reachable_from), None)

        reference = slot or (slots[0] if slots else None)
        if reference is None:
            return None, float(config.notification_minutes)
        return slot, (reference.start - now).total_seconds() / 60

    def _reserve_and_notify(
        self,
        entry: QueueEntry,
        slot: Slot,
        service: Service,
        score: float,
        now: datetime
    ) -> QueueNotification:
        """Бронь слота + notified одной транзакцией"""
        self.appointments.reserve_slot(
            slot.employee_id,
            slot.slot_date,
            slot.start_time,
            slot.end_time,
            entry.id
        )

        expires_at = now + self.response_window
        entry.status = "notified"
        entry.priority_score = score
        entry.notified_at = now
        entry.notification_expires_at = expires_at
        entry.reserved_slot_start = slot.start
        entry.reserved_slot_end = slot.end
        entry.updated_at = now
        self.entries.log_event(entry, "notification_sent", now, {
            "employee_id": slot.employee_id,
            "slot": {"start": slot.start.isoformat(), "end": slot.end.isoformat()},
            "priority_score": entry.priority_score
        })
        self.db.commit()

        minutes_until = int((slot.start - now).total_seconds() // 60)
        logger.info(
            f"✅ {entry.client_name} уведомлен: {slot.start:%d.%m %H:%M}, мастер {slot.employee_id}, "
            f"через {minutes_until} мин (дорога {entry.estimated_arrival_minutes} мин)"
        )
        return QueueNotification(
            entry_id=entry.id,
            barbershop_id=entry.barbershop_id,
            client_name=entry.client_name,
            client_phone=entry.client_phone,
            service_name=service.name,
            slot_start=slot.start,
            slot_end=slot.end,
            expires_at=expires_at,
            minutes_until_slot=minutes_until,
            travel_minutes=entry.estimated_arrival_minutes
        )

    # ==================== Действия клиента ====================

    def confirm(self, entry_id: str, phone: Optional[str] = None, now: Optional[datetime] = None) -> QueueEntry:
        """
        Клиент подтверждает предложенный слот: бронь -> pending

        Raises:
            NotFound, InvalidState
        """
        now = now or now_local()
        entry = self._get_entry(entry_id, phone)

        if entry.status != "notified":
            raise InvalidState(f"Подтверждение недоступно: запись в статусе {entry.status}")

        if entry.notification_expires_at and now > entry.notification_expires_at:
            try:
                self._close_entry(entry, "expired", now)
            except StaleDataError:
                self.db.rollback()
            raise InvalidState("Время на подтверждение истекло")

        reservation = self.appointments.find_reservation(entry.id)
        if reservation is None:
            raise InvalidState("Бронь для этой записи не найдена")

        try:
            self.appointments.promote_to_appointment(reservation.id)
            entry.status = "confirmed"
            entry.updated_at = now
            self.entries.log_event(entry, "confirmed", now, {"appointment_id": reservation.id})
            self.db.commit()
        except StaleDataError as e:
            self.db.rollback()
            raise InvalidState("Статус записи изменился, обновите страницу") from e

        logger.info(f"Запись {entry.id} подтверждена, прием {reservation.id} -> pending")
        return entry

    def cancel(self, entry_id: str, phone: Optional[str] = None, now: Optional[datetime] = None) -> QueueEntry:
        """
        Клиент выходит из очереди (из waiting или notified).
        Отмена принимается всегда: если запись параллельно уведомили,
        перечитываем ее и снимаем свежую бронь.
        """
        now = now or now_local()

        for attempt in range(CANCEL_ATTEMPTS):
            entry = self._get_entry(entry_id, phone)
            if entry.status not in ACTIVE_STATUSES:
                raise InvalidState(f"Отмена недоступна: запись в статусе {entry.status}")

            try:
                self._close_entry(entry, "cancelled", now)
            except StaleDataError:
                self.db.rollback()
                logger.warning(f"Запись {entry_id} изменилась во время отмены, попытка {attempt + 1}")
                continue

            logger.info(f"Запись {entry.id} отменена клиентом")
            return entry

        raise UpstreamFailure("Не удалось отменить запись, попробуйте еще раз")

    def _get_entry(self, entry_id: str, phone: Optional[str] = None) -> QueueEntry:
        entry = self.entries.get(entry_id)
        if entry is None:
            raise NotFound()
        if phone is not None and normalize_phone(phone) != entry.client_phone:
            raise NotFound()
        return entry

    def _close_entry(self, entry: QueueEntry, status: str, now: datetime):
        """cancelled/expired: сначала снять бронь, потом сменить статус - одним коммитом"""
        deleted = False
        if entry.status == "notified":
            reservation = self.appointments.find_reservation(entry.id)
            if reservation is not None:
                deleted = self.appointments.delete_reservation(reservation.id)

        entry.status = status
        entry.updated_at = now
        event = "notification_expired" if status == "expired" else "cancelled"
        self.entries.log_event(entry, event, now, {"reservation_deleted": deleted})
        self.db.commit()

    # ==================== Чтение ====================

    def get_entry_status(self, entry_id: str) -> QueueEntryStatus:
        entry = self._get_entry(entry_id)
        return self._to_status(entry)

    def list_active(self, barbershop_id: str) -> List[QueueEntryStatus]:
        """waiting + notified в порядке прихода"""
        result = []
        position = 0
        for entry in self.entries.active_entries(barbershop_id):
            status = QueueEntryStatus.model_validate(entry)
            if entry.status == "waiting":
                position += 1
                status = status.model_copy(update={"queue_position": position})
            result.append(status)
        return result

    def stats(self, barbershop_id: str) -> QueueStats:
        """Счетчики по статусам, среднее ожидание до уведомления, доля подтверждений"""
        entries = self.entries.all_entries(barbershop_id)
        counts = {status: 0 for status in ("waiting", "notified", "confirmed", "cancelled", "expired")}
        for entry in entries:
            if entry.status in counts:
                counts[entry.status] += 1

        confirmed = [entry for entry in entries if entry.status == "confirmed"]
        avg_wait = 0.0
        if confirmed:
            avg_wait = sum(
                wait_minutes_since(entry.created_at, entry.notified_at or entry.created_at)
                for entry in confirmed
            ) / len(confirmed)

        answered = counts["confirmed"] + counts["expired"] + counts["notified"]
        rate = counts["confirmed"] / answered * 100 if answered else 0

        return QueueStats(
            **counts,
            avg_wait_minutes=round(avg_wait),
            confirmation_rate=round(rate)
        )

    def _to_status(self, entry: QueueEntry) -> QueueEntryStatus:
        status = QueueEntryStatus.model_validate(entry)
        return status.model_copy(update={"queue_position": self.entries.queue_position(entry)})
