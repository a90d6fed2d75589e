"""Signed-in sessions and their per-session receipt view models.

A ``SessionProvider`` is the reactive holder of one session's identity. It is
passed explicitly to whoever depends on the identity; listeners are told when
the identity is resolved and when it is cleared by sign-out.

The ``SessionRegistry`` keeps the live sessions of the process, keyed by the
session id carried in the access token. Opening a session also builds its
receipt view model; closing it signs out and tears the view model down.
A session opened with an expiry is closed once that moment passes, the same
moment its access token stops being accepted.
"""

import threading
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Callable, Dict, List, Optional

from app.schemas.auth import Identity
from app.services.base import BaseService
from app.services.exceptions import SessionClosedError

if TYPE_CHECKING:
    from app.services.receipt_view_model import ReceiptViewModel

IdentityListener = Callable[[Optional[Identity]], None]


class SessionProvider(BaseService):
    """Current identity of one session, plus sign-out."""

    def __init__(self, session_id: str, correlation_id: Optional[str] = None):
        super().__init__(correlation_id)
        self.session_id = session_id
        self._identity: Optional[Identity] = None
        self._loading = True
        self._listeners: List[IdentityListener] = []
        self._lock = threading.RLock()

    def current_identity(self) -> Optional[Identity]:
        return self._identity

    def is_loading(self) -> bool:
        return self._loading

    def resolve(self, identity: Optional[Identity]) -> None:
        """Record the outcome of authentication and notify listeners."""
        with self._lock:
            self._identity = identity
            self._loading = False
            listeners = list(self._listeners)
        self.log_operation(
            "session_resolved",
            session_id=self.session_id,
            signed_in=identity is not None,
        )
        for listener in listeners:
            listener(identity)

    def sign_out(self) -> None:
        """Clear the identity. Listeners stop their identity-bound work."""
        if self._identity is None and not self._loading:
            return
        self.log_operation("sign_out", session_id=self.session_id)
        self.resolve(None)

    def subscribe(self, listener: IdentityListener) -> Callable[[], None]:
        """Register ``listener`` for identity changes.

        If the identity is already resolved, ``listener`` is called with it
        immediately.

        Returns:
            Callable removing the listener again.
        """
        with self._lock:
            self._listeners.append(listener)
            resolved = not self._loading
            identity = self._identity
        if resolved:
            listener(identity)

        def _remove() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _remove


ViewModelFactory = Callable[[SessionProvider], "ReceiptViewModel"]
Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionRegistry(BaseService):
    """Live sessions of this process and their receipt view models."""

    def __init__(
        self,
        view_model_factory: ViewModelFactory,
        correlation_id: Optional[str] = None,
        clock: Clock = _utcnow,
    ):
        super().__init__(correlation_id)
        self._view_model_factory = view_model_factory
        self._clock = clock
        self._sessions: Dict[str, SessionProvider] = {}
        self._view_models: Dict[str, "ReceiptViewModel"] = {}
        self._expires_at: Dict[str, datetime] = {}
        self._lock = threading.Lock()

    def open(
        self,
        session_id: str,
        identity: Identity,
        expires_at: Optional[datetime] = None,
    ) -> SessionProvider:
        """Start a session for ``identity`` and build its view model.

        Sessions whose expiry has passed are closed first. A session opened
        without ``expires_at`` lives until it is closed.
        """
        self.close_expired()
        provider = SessionProvider(session_id, correlation_id=self.correlation_id)
        provider.resolve(identity)
        view_model = self._view_model_factory(provider)
        with self._lock:
            self._sessions[session_id] = provider
            self._view_models[session_id] = view_model
            if expires_at is not None:
                self._expires_at[session_id] = expires_at
        self.log_operation(
            "session_opened",
            session_id=session_id,
            user_id=identity.id,
            expires_at=expires_at.isoformat() if expires_at else None,
        )
        return provider

    def _is_expired(self, session_id: str, now: datetime) -> bool:
        expires_at = self._expires_at.get(session_id)
        return expires_at is not None and expires_at <= now

    def get(self, session_id: Optional[str]) -> SessionProvider:
        """Return the open session.

        Raises:
            SessionClosedError: If the session was closed, expired or never opened
        """
        with self._lock:
            provider = self._sessions.get(session_id) if session_id else None
            expired = provider is not None and self._is_expired(session_id, self._clock())
        if expired:
            self.close(session_id)
            provider = None
        if provider is None or provider.current_identity() is None:
            raise SessionClosedError(session_id=session_id, correlation_id=self.correlation_id)
        return provider

    def view_model(self, session_id: Optional[str]) -> "ReceiptViewModel":
        self.get(session_id)
        with self._lock:
            view_model = self._view_models.get(session_id)
        if view_model is None:
            raise SessionClosedError(session_id=session_id, correlation_id=self.correlation_id)
        return view_model

    def close(self, session_id: str) -> None:
        """Sign the session out and release its view model."""
        with self._lock:
            provider = self._sessions.pop(session_id, None)
            view_model = self._view_models.pop(session_id, None)
            self._expires_at.pop(session_id, None)
        if provider is None:
            return
        provider.sign_out()
        if view_model is not None:
            view_model.dispose()
        self.log_operation("session_closed", session_id=session_id)

    def close_expired(self) -> int:
        """Close every session whose expiry has passed.

        Returns:
            Number of sessions closed
        """
        now = self._clock()
        with self._lock:
            expired = [session_id for session_id in self._expires_at if self._is_expired(session_id, now)]
        for session_id in expired:
            self.close(session_id)
        if expired:
            self.log_operation("sessions_expired", closed=len(expired))
        return len(expired)

    def shutdown(self) -> None:
        """Close every open session."""
        with self._lock:
            session_ids = list(self._sessions)
        for session_id in session_ids:
            self.close(session_id)
        self.log_operation("registry_shutdown", closed=len(session_ids))

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
