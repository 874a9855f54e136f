import logging
from typing import Any, Callable


logger = logging.getLogger(__name__)


class TimerHandle:
    """Cancelable reference to a scheduled callback."""

    def __init__(self, name: str, delay: float):
        self.name = name
        self.delay = delay
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True

    @property
    def active(self) -> bool:
        return not (self.cancelled or self.fired)

    def __repr__(self):
        return f'<TimerHandle {self.name} delay={self.delay} active={self.active}>'


class BackgroundScheduler:
    """Runs delayed callbacks as Socket.IO background tasks.

    Each timer sleeps in its own task; a cancelled handle is dropped when it
    wakes up instead of invoking the callback. Callbacks are responsible for
    re-checking the state they were armed for.
    """

    def __init__(self, socketio):
        self._socketio = socketio

    def call_later(self, delay: float, callback: Callable[..., Any], *args, name: str = 'timer') -> TimerHandle:
        handle = TimerHandle(name, delay)
        logger.debug(f"[timer-set] {name} delay={delay}s")

        def _worker():
            self._socketio.sleep(delay)
            if handle.cancelled:
                logger.debug(f"[timer-abort] {name} cancelled")
                return
            handle.fired = True
            logger.debug(f"[timer-fire] {name}")
            try:
                callback(*args)
            except Exception:
                logger.exception(f"[timer-error] {name} callback failed")

        self._socketio.start_background_task(_worker)
        return handle
