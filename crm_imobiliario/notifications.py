"""
Notificações para o usuário (equivalente aos "toasts" da interface)
"""
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List

logger = logging.getLogger(__name__)

VARIANT_DEFAULT = 'default'
VARIANT_DESTRUCTIVE = 'destructive'


@dataclass
class Notification:
    title: str
    description: str = ''
    variant: str = VARIANT_DEFAULT
    created_at: datetime = field(default_factory=datetime.now)

    @property
    def is_error(self) -> bool:
        return self.variant == VARIANT_DESTRUCTIVE

    def __str__(self) -> str:
        prefix = '❌' if self.is_error else '✅'
        if self.description:
            return f"{prefix} {self.title}: {self.description}"
        return f"{prefix} {self.title}"


class Notifier:
    """Coleta notificações e repassa para ouvintes (CLI, testes)"""

    def __init__(self):
        self._history: List[Notification] = []
        self._listeners: List[Callable[[Notification], None]] = []
        self._lock = threading.Lock()

    def notify(self, title: str, description: str = '', variant: str = VARIANT_DEFAULT) -> Notification:
        notification = Notification(title=title, description=description, variant=variant)

        if notification.is_error:
            logger.warning(f"{title}: {description}")
        else:
            logger.info(f"{title}: {description}")

        with self._lock:
            self._history.append(notification)
            listeners = list(self._listeners)

        for listener in listeners:
            listener(notification)
        return notification

    def success(self, title: str, description: str = '') -> Notification:
        return self.notify(title, description, VARIANT_DEFAULT)

    def error(self, title: str, description: str = '') -> Notification:
        return self.notify(title, description, VARIANT_DESTRUCTIVE)

    def subscribe(self, listener: Callable[[Notification], None]) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe():
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    @property
    def history(self) -> List[Notification]:
        with self._lock:
            return list(self._history)

    @property
    def last(self):
        with self._lock:
            return self._history[-1] if self._history else None

    def clear(self):
        with self._lock:
            self._history.clear()
