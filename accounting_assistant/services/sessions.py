"""In-memory per-sender conversation sessions.

Each sender (a WhatsApp phone number) owns one :class:`Session`: the
ordered LangChain message history plus a last-activity timestamp.  The
first message is always the system instructions.

Concurrency model
-----------------
* The store lock guards the sender → session mapping only.
* Each session carries its own lock, held for the whole turn, so two
  deliveries from the same sender are processed one after the other.
* The idle sweep takes a session lock non-blockingly: a session with a
  turn in flight is never evicted.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field

from langchain_core.messages import AnyMessage, SystemMessage, ToolMessage

from accounting_assistant.config import MAX_HISTORY_MESSAGES, SESSION_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)


@dataclass
class Session:
    sender: str
    messages: list[AnyMessage] = field(default_factory=list)
    last_activity: float = 0.0
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)


class SessionStore:
    """Sender-keyed sessions with idle expiry and window truncation."""

    def __init__(
        self,
        idle_timeout: float = SESSION_TIMEOUT_SECONDS,
        max_messages: int = MAX_HISTORY_MESSAGES,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._idle_timeout = idle_timeout
        self._max_messages = max_messages
        self._clock = clock
        self._sessions: dict[str, Session] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, sender: str) -> bool:
        with self._lock:
            return sender in self._sessions

    def get(self, sender: str) -> Session | None:
        with self._lock:
            return self._sessions.get(sender)

    def _is_idle(self, session: Session, now: float) -> bool:
        return now - session.last_activity > self._idle_timeout

    @contextmanager
    def checkout(self, sender: str, seed: Callable[[], SystemMessage]) -> Iterator[Session]:
        """Hold *sender*'s session exclusively for one turn.

        A session that is new, empty or idle past the timeout is (re)seeded
        with a fresh system message from *seed*.
        """
        while True:
            with self._lock:
                session = self._sessions.get(sender)
                if session is None:
                    session = Session(sender=sender, last_activity=self._clock())
                    self._sessions[sender] = session
            session.lock.acquire()
            # The sweeper or clear() may have dropped it while we waited.
            with self._lock:
                if self._sessions.get(sender) is session:
                    break
            session.lock.release()

        try:
            now = self._clock()
            if not session.messages or self._is_idle(session, now):
                if session.messages:
                    logger.info("Session for %s expired; starting fresh", sender)
                session.messages = [seed()]
            session.last_activity = now
            yield session
        finally:
            session.last_activity = self._clock()
            session.lock.release()

    def truncate(self, messages: list[AnyMessage]) -> list[AnyMessage]:
        """Keep the system message plus the most recent window of messages.

        Tool results at the start of the window lost their originating
        assistant message and are dropped.
        """
        if not messages:
            return messages
        head, rest = messages[0], messages[1:]
        if len(rest) <= self._max_messages:
            return messages
        window = rest[-self._max_messages:]
        while window and isinstance(window[0], ToolMessage):
            window.pop(0)
        return [head, *window]

    def clear(self, sender: str) -> bool:
        """Forget *sender*'s session.  Returns whether one existed."""
        with self._lock:
            removed = self._sessions.pop(sender, None) is not None
        if removed:
            logger.info("Cleared session for %s", sender)
        return removed

    def sweep(self) -> int:
        """Drop sessions idle past the timeout.  Returns how many were removed."""
        removed = 0
        with self._lock:
            candidates = list(self._sessions.values())
        for session in candidates:
            if not session.lock.acquire(blocking=False):
                continue
            try:
                with self._lock:
                    current = self._sessions.get(session.sender)
                    if current is session and self._is_idle(session, self._clock()):
                        del self._sessions[session.sender]
                        removed += 1
            finally:
                session.lock.release()
        if removed:
            logger.info("Evicted %d idle session(s)", removed)
        return removed

    def start_sweeper(self, interval: float) -> SessionSweeper:
        sweeper = SessionSweeper(self, interval)
        sweeper.start()
        return sweeper


class SessionSweeper:
    """Daemon thread that calls :meth:`SessionStore.sweep` periodically."""

    def __init__(self, store: SessionStore, interval: float) -> None:
        self._store = store
        self._interval = interval
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._run, daemon=True, name="session-sweeper")

    def start(self) -> None:
        self._thread.start()
        logger.info("Session sweeper started (interval=%.0fs)", self._interval)

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop.set()
        if self._thread.is_alive():
            self._thread.join(timeout)

    def _run(self) -> None:
        while not self._stop.wait(self._interval):
            try:
                self._store.sweep()
            except Exception:
                logger.exception("Session sweep failed")
