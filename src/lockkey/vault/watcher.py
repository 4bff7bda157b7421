# Vault - Session Timeout Watcher
#
# Background daemon thread that force-logs-out an idle session.
#
# A watcher is bound to one login (the session's identity token at the
# time it was started), not to the session object in general. Every tick
# it asks the session to expire *that* login; once the session has moved
# on (logout, new login, close) the identity no longer matches and the
# watcher exits without touching anything.

import threading
from typing import TYPE_CHECKING, Callable, Optional

from ..core.log import LogEvent, get_logger

if TYPE_CHECKING:
    from .session import Session

logger = get_logger(__name__)

DEFAULT_INTERVAL = 5.0


class TimeoutWatcher:
    """Polls one session login for inactivity.

    Uses threading.Event.wait(interval) for interruptible sleep.

    Args:
        session: The session to watch
        identity: Identity token of the login this watcher belongs to
        interval: Seconds between checks
        on_timeout: Called with the username after a forced logout
    """

    def __init__(
        self,
        session: "Session",
        identity: str,
        interval: float = DEFAULT_INTERVAL,
        on_timeout: Optional[Callable[[str], None]] = None,
    ):
        self._session = session
        self.identity = identity
        self._interval = interval
        self._on_timeout = on_timeout
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.fired = False

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run, name="lockkey-session-timeout", daemon=True
        )
        self._thread.start()
        logger.debug(LogEvent.WATCHER_STARTED.value, interval=self._interval)

    def cancel(self) -> None:
        """Signal the thread to exit without waiting for it.

        Safe to call while holding the session lock.
        """
        self._stop_event.set()

    def stop(self) -> None:
        """Signal the thread to exit and wait for it (unless called from it)."""
        self.cancel()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=5)
        self._thread = None

    def _run(self) -> None:
        while not self._stop_event.wait(self._interval):
            if not self.check():
                break
        logger.debug(LogEvent.WATCHER_STOPPED.value, fired=self.fired)

    def check(self) -> bool:
        """
        Run one inactivity check.

        Returns:
            True if the watcher should keep polling
        """
        if self._session.identity != self.identity:
            return False

        username = self._session.expire_if_idle(self.identity)
        if username is None:
            # Still active, or superseded between the two reads
            return self._session.identity == self.identity

        self.fired = True
        if self._on_timeout is not None:
            self._on_timeout(username)
        return False
