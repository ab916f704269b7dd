"""
API роутер виртуальной очереди
"""
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Header, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..config import get_settings
from ..database import get_db
from ..models.barbershop import Barbershop
from ..schemas import QueueConfig, QueueEntryStatus, QueueJoinRequest, QueueStats
from ..services.notifications import NotificationGateway, dispatch_notifications, get_notification_gateway
from ..services.queue_engine import QueueEngine
from ..services.queue_settings import load_queue_config, save_queue_config

settings = get_settings()
router = APIRouter(prefix="/api/queue", tags=["queue"])


# ==================== Pydantic Schemas ====================

class JoinResponse(BaseModel):
    entry_id: str
    queue_position: Optional[int]
    message: str


class ActionResponse(BaseModel):
    success: bool = True
    entry_id: str
    status: str
    message: str


class ProcessResponse(BaseModel):
    barbershop_id: str
    expired: int
    notified: int
    skipped: int


# ==================== Dependencies ====================

def get_gateway() -> NotificationGateway:
    return get_notification_gateway()


def verify_cron_secret(x_cron_secret: Optional[str] = Header(None)):
    """Если задан QUEUE_CRON_SECRET - ручной запуск только с ним"""
    if settings.QUEUE_CRON_SECRET and x_cron_secret != settings.QUEUE_CRON_SECRET:
        raise HTTPException(status_code=403, detail="Доступ запрещен")


# ==================== API Endpoints ====================

@router.post("/join", response_model=JoinResponse)
async def join_queue(data: QueueJoinRequest, db: Session = Depends(get_db)):
    """Встать в виртуальную очередь"""
    config = load_queue_config(db, data.barbershop_id)
    engine = QueueEngine(db)
    entry = engine.join(
        config,
        barbershop_id=data.barbershop_id,
        client_name=data.client_name,
        client_phone=data.client_phone,
        service_id=str(data.service_id),
        travel_time_minutes=data.travel_time_minutes,
        employee_id=data.employee_id
    )
    status = engine.get_entry_status(entry.id)

    return JoinResponse(
        entry_id=entry.id,
        queue_position=status.queue_position,
        message=(
            f"Вы в очереди! Мы напишем, когда до свободного времени "
            f"останется примерно {data.travel_time_minutes} мин."
        )
    )


@router.get("/entries/{entry_id}", response_model=QueueEntryStatus)
async def get_entry(entry_id: str, db: Session = Depends(get_db)):
    """Статус записи и место в очереди (для опроса клиентом)"""
    return QueueEngine(db).get_entry_status(entry_id)


@router.post("/entries/{entry_id}/confirm", response_model=ActionResponse)
async def confirm_entry(
    entry_id: str,
    phone: str = Query(..., min_length=10, description="Номер телефона для верификации"),
    db: Session = Depends(get_db)
):
    """Подтвердить предложенное время"""
    entry = QueueEngine(db).confirm(entry_id, phone=phone)
    return ActionResponse(entry_id=entry.id, status=entry.status, message="Запись подтверждена, ждем вас!")


@router.post("/entries/{entry_id}/cancel", response_model=ActionResponse)
async def cancel_entry(
    entry_id: str,
    phone: str = Query(..., min_length=10, description="Номер телефона для верификации"),
    db: Session = Depends(get_db)
):
    """Выйти из очереди или отказаться от предложенного времени"""
    entry = QueueEngine(db).cancel(entry_id, phone=phone)
    return ActionResponse(entry_id=entry.id, status=entry.status, message="Вы вышли из очереди")


@router.post("/{barbershop_id}/process", response_model=ProcessResponse, dependencies=[Depends(verify_cron_secret)])
def process_queue(
    barbershop_id: str,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    gateway: NotificationGateway = Depends(get_gateway)
):
    """
    Ручной запуск обработки очереди (для cron)
    Обычная def: FastAPI выполняет ее в пуле потоков, проход не держит event loop
    """
    config = load_queue_config(db, barbershop_id)
    result = QueueEngine(db).process_queue(config, barbershop_id)

    # Рассылка после ответа, вне транзакции
    if result.notifications:
        background_tasks.add_task(dispatch_notifications, gateway, result.notifications)

    return ProcessResponse(
        barbershop_id=barbershop_id,
        expired=result.expired,
        notified=result.notified,
        skipped=result.skipped
    )


@router.get("/{barbershop_id}/entries", response_model=List[QueueEntryStatus])
async def list_entries(barbershop_id: str, db: Session = Depends(get_db)):
    """Активные записи очереди (waiting + notified)"""
    return QueueEngine(db).list_active(barbershop_id)


@router.get("/{barbershop_id}/stats", response_model=QueueStats)
async def get_stats(barbershop_id: str, db: Session = Depends(get_db)):
    """Статистика очереди"""
    return QueueEngine(db).stats(barbershop_id)


@router.get("/{barbershop_id}/settings", response_model=QueueConfig)
async def get_queue_settings(barbershop_id: str, db: Session = Depends(get_db)):
    """Настройки очереди (дефолты, если еще не сохранены)"""
    return load_queue_config(db, barbershop_id)


@router.put("/{barbershop_id}/settings", response_model=QueueConfig)
async def update_queue_settings(barbershop_id: str, data: QueueConfig, db: Session = Depends(get_db)):
    """Сохранить настройки очереди"""
    if not db.get(Barbershop, barbershop_id):
        raise HTTPException(status_code=404, detail="Барбершоп не найден")
    return save_queue_config(db, barbershop_id, data)
