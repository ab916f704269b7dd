"""
Монитор виртуальной очереди - периодический проход по всем барбершопам
"""
import asyncio
import logging
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

from ..config import get_settings
from ..database import SessionLocal
from ..errors import UpstreamFailure
from .notifications import NotificationGateway, dispatch_notifications, get_notification_gateway, notify_dev_error
from .queue_engine import QueueEngine, ProcessResult
from .queue_settings import get_enabled_barbershops, load_queue_config

settings = get_settings()
logger = logging.getLogger(__name__)


def process_all_barbershops(
    session_factory=None,
    now: Optional[datetime] = None
) -> Tuple[List[ProcessResult], List[Tuple[str, Exception]]]:
    """
    ProcessQueue для каждого барбершопа с включенной очередью.
    Сбой одного барбершопа не мешает остальным.
    """
    session_factory = session_factory or SessionLocal

    db = session_factory()
    try:
        barbershop_ids = get_enabled_barbershops(db)
    finally:
        db.close()

    if not barbershop_ids:
        logger.info("ℹ️ Нет барбершопов с включенной очередью")
        return [], []

    results = []
    failures = []
    for barbershop_id in barbershop_ids:
        db = session_factory()
        try:
            config = load_queue_config(db, barbershop_id)
            results.append(QueueEngine(db).process_queue(config, barbershop_id, now=now))
        except (UpstreamFailure, SQLAlchemyError) as e:
            db.rollback()
            logger.error(f"❌ Очередь {barbershop_id} не обработана, повторим на следующем проходе: {e}")
            failures.append((barbershop_id, e))
        except Exception as e:
            db.rollback()
            logger.exception(f"❌ Непредвиденная ошибка в очереди {barbershop_id}: {e}")
            failures.append((barbershop_id, e))
        finally:
            db.close()

    return results, failures


async def run_queue_monitor_pass(
    session_factory=None,
    gateway: Optional[NotificationGateway] = None,
    now: Optional[datetime] = None
) -> dict:
    """Один проход монитора: обработка очередей в потоке, затем рассылка"""
    logger.info("🔄 Запуск монитора виртуальной очереди...")

    results, failures = await asyncio.to_thread(process_all_barbershops, session_factory, now)

    for barbershop_id, error in failures:
        await notify_dev_error("Обработка очереди", error, {"barbershop_id": barbershop_id})

    notifications = [notification for result in results for notification in result.notifications]
    sent = await dispatch_notifications(gateway or get_notification_gateway(), notifications)

    return {
        "barbershops": len(results),
        "failed": len(failures),
        "notified": len(notifications),
        "sent": sent,
        "expired": sum(result.expired for result in results),
    }


async def queue_monitor_loop(interval_seconds: int = None):
    """Фоновый цикл монитора (запускается из lifespan приложения)"""
    interval_seconds = interval_seconds or settings.QUEUE_MONITOR_INTERVAL_SECONDS
    logger.info(f"Монитор очереди запущен, интервал {interval_seconds} с")

    while True:
        try:
            summary = await run_queue_monitor_pass()
            logger.info(f"Монитор очереди: {summary}")
        except Exception as e:
            logger.error(f"❌ Ошибка в мониторе очереди: {e}")
            await notify_dev_error("Монитор очереди", e)

        await asyncio.sleep(interval_seconds)
