import threading
from typing import Optional

from yidsrom.errors import OperationCancelledError


class CancelToken:
    """Set from any thread; checked by the core after each completed chunk."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def check(self, where: str = '') -> None:
        if self._event.is_set():
            raise OperationCancelledError('Operation cancelled', after=where or None)


def check_cancel(token: Optional[CancelToken], where: str = '') -> None:
    if token is not None:
        token.check(where)
