# pokerledger/events.py

import logging
from typing import Callable, Generic, List, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CallbackRegistry(Generic[T]):
    """Explicit listener list. ``subscribe`` returns the matching unsubscribe."""

    def __init__(self, name: str = "callbacks"):
        self.name = name
        self._callbacks: List[Callable[[T], None]] = []

    def subscribe(self, callback: Callable[[T], None]) -> Callable[[], None]:
        self._callbacks.append(callback)

        def unsubscribe():
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    def emit(self, value: T) -> None:
        for callback in list(self._callbacks):
            try:
                callback(value)
            except Exception:
                # 一つのリスナーの失敗で他を止めない
                logger.exception("%s listener failed", self.name)

    def __len__(self) -> int:
        return len(self._callbacks)
