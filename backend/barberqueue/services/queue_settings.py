"""
Загрузка и сохранение настроек виртуальной очереди
"""
import logging
from typing import List

from pydantic import ValidationError
from sqlalchemy.orm import Session

from ..errors import UpstreamFailure
from ..models.queue_settings import QueueSettings
from ..schemas import QueueConfig

logger = logging.getLogger(__name__)


def load_queue_config(db: Session, barbershop_id: str) -> QueueConfig:
    """
    Настройки очереди барбершопа.
    Нет строки в базе - дефолты (очередь выключена).
    """
    record = db.query(QueueSettings).filter(
        QueueSettings.barbershop_id == barbershop_id
    ).first()

    if not record:
        return QueueConfig()

    try:
        return QueueConfig.model_validate(record)
    except ValidationError as e:
        raise UpstreamFailure(f"Некорректные настройки очереди барбершопа {barbershop_id}: {e}") from e


def save_queue_config(db: Session, barbershop_id: str, config: QueueConfig) -> QueueConfig:
    """Создать или обновить строку настроек"""
    record = db.query(QueueSettings).filter(
        QueueSettings.barbershop_id == barbershop_id
    ).first()

    if not record:
        record = QueueSettings(barbershop_id=barbershop_id)
        db.add(record)

    for field, value in config.model_dump().items():
        setattr(record, field, value)

    db.commit()
    db.refresh(record)
    logger.info(f"Настройки очереди обновлены для {barbershop_id}: {config.model_dump()}")
    return QueueConfig.model_validate(record)


def get_enabled_barbershops(db: Session) -> List[str]:
    """ID барбершопов с включенной очередью"""
    rows = db.query(QueueSettings.barbershop_id).filter(
        QueueSettings.enabled == True  # noqa: E712
    ).order_by(QueueSettings.barbershop_id).all()
    return [row.barbershop_id for row in rows]
