"""
API роутер свободных слотов
"""
from datetime import datetime, timedelta
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..clock import now_local
from ..config import get_settings
from ..database import get_db
from ..services.schedule import SlotAllocator
from ..services.store import AppointmentStore

settings = get_settings()
router = APIRouter(prefix="/api/schedule", tags=["schedule"])


class SlotResponse(BaseModel):
    time: str  # "HH:MM"
    end_time: str
    employee_id: str


class SlotsResponse(BaseModel):
    date: str  # "YYYY-MM-DD"
    service_id: str
    slots: List[SlotResponse]


@router.get("/{barbershop_id}/slots", response_model=SlotsResponse)
async def get_slots(
    barbershop_id: str,
    service_id: str = Query(..., description="ID услуги"),
    date: str = Query(..., pattern=r"^\d{4}-\d{2}-\d{2}$", description="Дата YYYY-MM-DD"),
    employee_id: Optional[str] = Query(None, description="Конкретный мастер"),
    db: Session = Depends(get_db)
):
    """Свободные слоты на дату по услуге"""
    try:
        target_date = datetime.strptime(date, "%Y-%m-%d").date()
    except ValueError:
        raise HTTPException(status_code=400, detail="Неверный формат даты. Используйте YYYY-MM-DD")

    now = now_local()

    # Проверка, что дата не в прошлом
    if target_date < now.date():
        raise HTTPException(status_code=400, detail="Нельзя записаться на прошедшую дату")

    # Проверка, что дата не слишком далеко
    max_date = now.date() + timedelta(days=settings.BOOKING_DAYS_AHEAD)
    if target_date > max_date:
        raise HTTPException(
            status_code=400,
            detail=f"Запись возможна максимум на {settings.BOOKING_DAYS_AHEAD} дней вперёд"
        )

    store = AppointmentStore(db)
    service = store.get_service(service_id)
    if not service or not service.is_active or service.barbershop_id != barbershop_id:
        raise HTTPException(status_code=404, detail="Услуга не найдена")

    slots = SlotAllocator(db, store=store).get_available_slots(
        service,
        target_date,
        employee_id=employee_id,
        now=now
    )

    return SlotsResponse(
        date=target_date.strftime("%Y-%m-%d"),
        service_id=service.id,
        slots=[
            SlotResponse(
                time=slot.start_time.strftime("%H:%M"),
                end_time=slot.end_time.strftime("%H:%M"),
                employee_id=slot.employee_id
            )
            for slot in slots
        ]
    )
