"""
Ошибки виртуальной очереди

Каждая ошибка знает свой HTTP-код и текст для клиента,
роутеры пробрасывают их как есть, а main.py превращает в JSON.
"""


class QueueError(Exception):
    """Базовая ошибка очереди"""

    status_code = 400
    default_message = "Ошибка виртуальной очереди"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    @property
    def code(self) -> str:
        return type(self).__name__


class QueueValidationError(QueueError):
    """Некорректные данные при входе в очередь"""
    status_code = 422
    default_message = "Некорректные данные"


class QueueDisabled(QueueError):
    status_code = 400
    default_message = "Виртуальная очередь не включена для этого барбершопа"


class QueueFull(QueueError):
    status_code = 409
    default_message = "Очередь заполнена. Попробуйте позже."


class DuplicateEntry(QueueError):
    status_code = 409
    default_message = "Вы уже стоите в очереди"


class NotFound(QueueError):
    status_code = 404
    default_message = "Запись в очереди не найдена"


class InvalidState(QueueError):
    status_code = 409
    default_message = "Действие недоступно для текущего статуса"


class SlotConflict(QueueError):
    """Слот успели занять параллельно (проиграли гонку)"""
    status_code = 409
    default_message = "Это время уже занято"


class UpstreamFailure(QueueError):
    """База или внешний канал недоступны"""
    status_code = 503
    default_message = "Сервис временно недоступен"
