"""
Сервис для отправки уведомлений

Клиентам - сообщение о свободном слоте (WhatsApp Cloud API),
разработчику - технические уведомления о сбоях (Telegram).
Ядро очереди только формирует QueueNotification, отправка идет
после коммита и не держит транзакцию.
"""
import asyncio
import html
import logging
import traceback
from datetime import datetime
from typing import Iterable, Optional

import httpx

from ..config import get_settings
from .queue_engine import QueueNotification

settings = get_settings()
logger = logging.getLogger(__name__)


def build_queue_message(notification: QueueNotification) -> str:
    """Текст для клиента о зарезервированном слоте"""
    return (
        f"🔔 *Ваша очередь подходит!*\n\n"
        f"Здравствуйте, {notification.client_name}!\n\n"
        f"Для вас есть свободное время через *{notification.minutes_until_slot} мин*:\n"
        f"⏰ Время: {notification.slot_start.strftime('%H:%M')}\n"
        f"💈 Услуга: {notification.service_name}\n\n"
        f"Вы указали дорогу {notification.travel_minutes} мин - самое время выходить!\n\n"
        f"Ответьте *ДА*, чтобы подтвердить, или *НЕТ*, чтобы отменить.\n"
        f"⚠️ Подтвердите до {notification.expires_at.strftime('%H:%M')}"
    )


class NotificationGateway:
    """Канал доставки уведомлений клиенту"""

    async def notify(self, notification: QueueNotification) -> bool:
        raise NotImplementedError


class LogOnlyGateway(NotificationGateway):
    """Канал не настроен - только пишем в лог"""

    async def notify(self, notification: QueueNotification) -> bool:
        logger.warning(
            f"Канал уведомлений не настроен, клиент {notification.client_phone} "
            f"не получит сообщение о слоте {notification.slot_start:%H:%M}"
        )
        return False


class WhatsAppGateway(NotificationGateway):
    """Отправка через WhatsApp Cloud API с повторами внутри канала"""

    def __init__(
        self,
        access_token: str,
        phone_number_id: str,
        api_url: str = None,
        timeout: float = None,
        max_retries: int = None,
        retry_delay: float = 1.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.access_token = access_token
        self.api_url = f"{api_url or settings.WHATSAPP_API_URL}/{phone_number_id}/messages"
        self.timeout = timeout or settings.NOTIFICATION_TIMEOUT_SECONDS
        self.max_retries = max_retries or settings.NOTIFICATION_MAX_RETRIES
        self.retry_delay = retry_delay
        self.transport = transport

    async def notify(self, notification: QueueNotification) -> bool:
        """
        Отправить сообщение клиенту

        Returns:
            bool: True если отправлено успешно
        """
        payload = {
            "messaging_product": "whatsapp",
            "to": notification.client_phone,
            "type": "text",
            "text": {"body": build_queue_message(notification)},
        }
        headers = {"Authorization": f"Bearer {self.access_token}"}

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            for attempt in range(1, self.max_retries + 1):
                try:
                    response = await client.post(self.api_url, json=payload, headers=headers)
                    if response.status_code == 200:
                        logger.info(f"✅ WhatsApp отправлен на {notification.client_phone}")
                        return True

                    logger.error(
                        f"Ошибка WhatsApp ({response.status_code}), попытка {attempt}: {response.text[:200]}"
                    )
                    # 4xx кроме 429 повторять бессмысленно
                    if 400 <= response.status_code < 500 and response.status_code != 429:
                        return False
                except httpx.HTTPError as e:
                    logger.error(f"Исключение при отправке WhatsApp, попытка {attempt}: {e}")

                if attempt < self.max_retries:
                    await asyncio.sleep(self.retry_delay * attempt)

        return False


def get_notification_gateway() -> NotificationGateway:
    """Канал клиентских уведомлений по настройкам"""
    if settings.WHATSAPP_ACCESS_TOKEN and settings.WHATSAPP_PHONE_NUMBER_ID:
        return WhatsAppGateway(settings.WHATSAPP_ACCESS_TOKEN, settings.WHATSAPP_PHONE_NUMBER_ID)
    return LogOnlyGateway()


async def dispatch_notifications(
    gateway: NotificationGateway,
    notifications: Iterable[QueueNotification],
    timeout: float = None
) -> int:
    """
    Разослать уведомления параллельно, каждое с ограничением по времени.
    Зависшая или упавшая отправка не мешает остальным.

    Returns:
        int: сколько отправлено успешно
    """
    notifications = list(notifications)
    if not notifications:
        return 0

    # Повторы внутри канала укладываются в общий таймаут
    timeout = timeout or settings.NOTIFICATION_TIMEOUT_SECONDS * (settings.NOTIFICATION_MAX_RETRIES + 1)

    async def send(notification: QueueNotification) -> bool:
        try:
            return await asyncio.wait_for(gateway.notify(notification), timeout=timeout)
        except asyncio.TimeoutError:
            logger.error(f"Уведомление записи {notification.entry_id} не отправлено за {timeout} с")
        except Exception as e:
            logger.error(f"Уведомление записи {notification.entry_id} упало: {e}")
        return False

    results = await asyncio.gather(*(send(notification) for notification in notifications))
    return sum(1 for sent in results if sent)


# ==================== Уведомления разработчику ====================

async def send_telegram_to_developer(text: str, transport: Optional[httpx.AsyncBaseTransport] = None) -> bool:
    """Отправка сообщения РАЗРАБОТЧИКУ (сбои очереди)"""
    if not settings.TELEGRAM_BOT_TOKEN or not settings.TELEGRAM_DEV_CHAT_ID:
        logger.warning("Telegram для разработчика не настроен, пропускаем отправку")
        return False

    url = f"https://api.telegram.org/bot{settings.TELEGRAM_BOT_TOKEN}/sendMessage"
    data = {"chat_id": settings.TELEGRAM_DEV_CHAT_ID, "text": text, "parse_mode": "HTML"}

    try:
        async with httpx.AsyncClient(timeout=settings.NOTIFICATION_TIMEOUT_SECONDS, transport=transport) as client:
            response = await client.post(url, json=data)
            return response.status_code == 200
    except httpx.HTTPError as e:
        logger.error(f"Ошибка отправки в Telegram (разработчик): {e}")
        return False


async def notify_dev_error(error_type: str, error: Optional[Exception] = None, context: Optional[dict] = None):
    """Уведомить разработчика о сбое (база, канал уведомлений)"""
    message = (
        f"🚨 <b>ОШИБКА ОЧЕРЕДИ</b>\n\n"
        f"<b>Тип:</b> {error_type}\n"
    )
    if error:
        message += f"<b>Ошибка:</b> {html.escape(str(error)[:500])}\n"
        tb = "".join(traceback.format_exception(type(error), error, error.__traceback__))
        if len(tb) < 3000:  # Telegram лимит ~4096 символов
            message += f"\n<pre>{html.escape(tb)}</pre>\n"
    if context:
        for key, value in context.items():
            message += f"• {key}: {value}\n"
    message += f"\n🕐 {datetime.now().strftime('%d.%m.%Y %H:%M:%S')}"

    logger.error(f"Technical notification: {error_type} - {error}")
    await send_telegram_to_developer(message)
