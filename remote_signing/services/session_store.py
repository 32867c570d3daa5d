from __future__ import annotations

import secrets
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable

import structlog

from remote_signing.models import SigningSession, SigningVariant

logger = structlog.get_logger(__name__)


@dataclass
class SessionHandle:
    """Slot holding one session's signing context plus the mutex that guards it."""

    session_id: str
    variant: SigningVariant
    session: SigningSession | None = None
    last_access: float = 0.0
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)


class SessionStore:
    """Registry of signing sessions keyed by session id and variant.

    A caller works on a session only inside :meth:`transaction`, which holds
    that session's lock for the whole transition, so two requests racing on
    the same session are applied one after the other.
    """

    def __init__(self, ttl_seconds: float = 1800, clock: Callable[[], float] | None = None):
        self._ttl = ttl_seconds
        self._clock = clock or time.monotonic
        self._handles: dict[tuple[str, str], SessionHandle] = {}
        self._lock = threading.Lock()

    @staticmethod
    def new_session_id() -> str:
        return secrets.token_urlsafe(24)

    def __len__(self) -> int:
        with self._lock:
            return len(self._handles)

    def get(self, session_id: str, variant: SigningVariant) -> SigningSession | None:
        with self._lock:
            handle = self._handles.get((session_id, variant.name))
        if handle is None:
            return None
        with handle.lock:
            return handle.session

    @contextmanager
    def transaction(
        self, session_id: str, variant: SigningVariant, *, create: bool = False
    ) -> Iterator[SessionHandle | None]:
        """Lock a session slot for the duration of the ``with`` block.

        Yields ``None`` when the slot does not exist and ``create`` is false.
        """
        handle = self._acquire_handle(session_id, variant, create)
        if handle is None:
            yield None
            return
        with handle.lock:
            yield handle

    def purge_expired(self) -> int:
        with self._lock:
            return self._purge_locked()

    def _acquire_handle(self, session_id: str, variant: SigningVariant, create: bool) -> SessionHandle | None:
        key = (session_id, variant.name)
        with self._lock:
            self._purge_locked()
            handle = self._handles.get(key)
            if handle is None and create:
                handle = SessionHandle(session_id=session_id, variant=variant)
                self._handles[key] = handle
            if handle is not None:
                handle.last_access = self._clock()
            return handle

    def _purge_locked(self) -> int:
        now = self._clock()
        expired = [
            key
            for key, handle in self._handles.items()
            if now - handle.last_access > self._ttl and not handle.lock.locked()
        ]
        for key in expired:
            del self._handles[key]
        if expired:
            logger.info("session.expired", count=len(expired))
        return len(expired)
