"""
Session lifecycle: token creation, explicit close, the periodic expiry
sweep and operational statistics.
"""
import threading
from dataclasses import dataclass
from typing import Any, Dict, Optional

from loguru import logger

from huesampler.config import config
from huesampler.services.imaging import NormalizedImage
from huesampler.services.session_store import SessionStore
from huesampler.utils.ids import short_token
from huesampler.utils.metrics import MetricsCollector, get_metrics


@dataclass(frozen=True)
class SessionStats:
    active_sessions: int
    oldest_session_created_at: Optional[float]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "activeSessions": self.active_sessions,
            "oldestSessionCreatedAt": self.oldest_session_created_at,
        }


class SessionLifecycleManager:
    """
    Owns the sweep timer for a SessionStore.

    The sweeper is a daemon thread, so it never keeps the process alive, and
    a failing sweep is logged without stopping later ones.
    """

    def __init__(self, store: SessionStore,
                 sweep_interval: Optional[float] = None,
                 metrics: Optional[MetricsCollector] = None):
        self.store = store
        self.sweep_interval = sweep_interval if sweep_interval is not None else config.SESSION_SWEEP_INTERVAL_SECONDS
        self.metrics = metrics or get_metrics()
        # Lazy, snapshot and swept evictions all count as expiries
        self.store.on_expire = self.metrics.increment_sessions_expired
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    def create(self, image: NormalizedImage) -> str:
        token = self.store.put(image)
        self.metrics.increment_session_created()
        return token

    def close(self, token: str) -> bool:
        closed = self.store.delete(token)
        if closed:
            self.metrics.increment_session_closed()
            logger.info(f"Closed session {short_token(token)}")
        return closed

    def sweep_now(self) -> int:
        evicted = self.store.sweep()
        self.metrics.set_gauge("active_sessions", len(self.store))
        return evicted

    def stats(self) -> SessionStats:
        sessions = self.store.live_sessions()
        oldest = min((s.created_at for s in sessions), default=None)
        self.metrics.set_gauge("active_sessions", len(sessions))
        return SessionStats(active_sessions=len(sessions), oldest_session_created_at=oldest)

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the background sweeper. Calling it twice is a no-op."""
        with self._lock:
            if self.is_running:
                return
            self._stop_event.clear()
            self._thread = threading.Thread(
                target=self._run,
                name="huesampler-session-sweeper",
                daemon=True,
            )
            self._thread.start()
        logger.info(f"Session sweeper started (interval={self.sweep_interval}s, ttl={self.store.ttl_seconds}s)")

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        with self._lock:
            thread = self._thread
            self._thread = None
            self._stop_event.set()
        if thread is not None:
            thread.join(timeout)
            logger.info("Session sweeper stopped")

    def _run(self) -> None:
        while not self._stop_event.wait(self.sweep_interval):
            try:
                self.sweep_now()
            except Exception as e:
                logger.error(f"Session sweep failed: {e}")
