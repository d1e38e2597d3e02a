"""
HueSampler Session Store
Token-keyed, TTL-bounded in-memory store of decoded images.
"""
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, List, Optional

import numpy as np
from loguru import logger

from huesampler.config import config
from huesampler.services.imaging import CHANNELS, NormalizedImage, SourceMetadata, rgba_view
from huesampler.utils.ids import generate_session_token, short_token


@dataclass(frozen=True)
class ImageSession:
    """A decoded image reachable through its token. Never mutated after put."""
    token: str
    pixels: bytes = field(repr=False)
    width: int
    height: int
    created_at: float
    source: SourceMetadata
    format: str = ""
    encoded: Optional[bytes] = field(default=None, repr=False)

    def buffer_matches_geometry(self) -> bool:
        return (
            self.pixels is not None
            and self.width > 0 and self.height > 0
            and len(self.pixels) == self.width * self.height * CHANNELS
        )

    def as_array(self) -> np.ndarray:
        return rgba_view(self.pixels, self.width, self.height)


class SessionStore:
    """
    In-memory token -> ImageSession map.

    A single lock guards the map; every operation under it is short and
    non-reentrant. Reads apply lazy expiry, so an entry older than the TTL is
    never returned even when no sweep has run yet.
    """

    def __init__(self,
                 ttl_seconds: Optional[float] = None,
                 clock: Callable[[], float] = time.monotonic,
                 token_factory: Callable[[], str] = generate_session_token,
                 on_expire: Optional[Callable[[int], None]] = None):
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else config.SESSION_TTL_SECONDS
        self._clock = clock
        self._token_factory = token_factory
        # Called outside the lock with the number of sessions evicted for age
        self.on_expire = on_expire
        self._sessions: Dict[str, ImageSession] = {}
        self._lock = threading.Lock()

    def now(self) -> float:
        return self._clock()

    def is_expired(self, session: ImageSession, now: Optional[float] = None) -> bool:
        if now is None:
            now = self._clock()
        return now - session.created_at > self.ttl_seconds

    def put(self, image: NormalizedImage) -> str:
        """Store a normalized image under a fresh token and return the token."""
        with self._lock:
            token = self._token_factory()
            while token in self._sessions:
                token = self._token_factory()

            self._sessions[token] = ImageSession(
                token=token,
                pixels=image.pixels,
                width=image.width,
                height=image.height,
                created_at=self._clock(),
                source=image.source,
                format=image.format,
                encoded=image.encoded,
            )

        logger.debug(f"Stored session {short_token(token)} ({image.width}x{image.height})")
        return token

    def get(self, token: str) -> Optional[ImageSession]:
        """Return the live session for token, evicting it if it has expired."""
        if not token:
            return None

        with self._lock:
            session = self._sessions.get(token)
            if session is None:
                return None
            expired = self.is_expired(session)
            if expired:
                del self._sessions[token]

        if expired:
            logger.debug(f"Lazily evicted expired session {short_token(token)}")
            self._notify_expired(1)
            return None
        return session

    def delete(self, token: str) -> bool:
        """Remove a session. Returns False when there was nothing to remove."""
        with self._lock:
            return self._sessions.pop(token, None) is not None

    def sweep(self) -> int:
        """Evict every session past its TTL. Returns the number evicted."""
        with self._lock:
            evicted = self._evict_expired_locked(self._clock())

        if evicted:
            logger.info(f"Session sweep evicted {evicted} expired session(s)")
            self._notify_expired(evicted)
        return evicted

    def live_sessions(self) -> List[ImageSession]:
        """Snapshot of the sessions still within their TTL."""
        with self._lock:
            evicted = self._evict_expired_locked(self._clock())
            live = list(self._sessions.values())

        if evicted:
            self._notify_expired(evicted)
        return live

    def _notify_expired(self, count: int) -> None:
        if self.on_expire is not None:
            self.on_expire(count)

    def _evict_expired_locked(self, now: float) -> int:
        expired = [token for token, session in self._sessions.items() if self.is_expired(session, now)]
        for token in expired:
            del self._sessions[token]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, token: str) -> bool:
        return self.get(token) is not None

    def __iter__(self) -> Iterator[str]:
        return iter([session.token for session in self.live_sessions()])
