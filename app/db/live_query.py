"""Live query support for receipts.

SQL databases do not push result-set changes to clients, so the change feed
watches the ORM sessions that write receipts instead. ``after_flush`` records
which owners had receipts inserted, updated or deleted; ``after_commit``
notifies every listener registered for those owners. Listeners re-read the
full result set themselves, so several writes committed together produce a
single notification per owner.
"""

import logging
import threading
from typing import Callable, Dict, Iterable, List, Set

from sqlalchemy import event
from sqlalchemy.orm import Session, sessionmaker

from app.db.models.receipt import Receipt

Listener = Callable[[], None]

_PENDING_KEY = "receipt_uids_changed"


class ReceiptChangeFeed:
    """Publishes per-owner change notifications for committed receipt writes."""

    def __init__(self):
        self._listeners: Dict[str, List[Listener]] = {}
        self._lock = threading.Lock()
        self.logger = logging.getLogger(self.__class__.__name__)

    def bind(self, session_factory: sessionmaker) -> None:
        """Watch every session produced by ``session_factory``."""
        event.listen(session_factory, "after_flush", self._after_flush)
        event.listen(session_factory, "after_commit", self._after_commit)
        event.listen(session_factory, "after_soft_rollback", self._after_rollback)

    def unbind(self, session_factory: sessionmaker) -> None:
        event.remove(session_factory, "after_flush", self._after_flush)
        event.remove(session_factory, "after_commit", self._after_commit)
        event.remove(session_factory, "after_soft_rollback", self._after_rollback)

    def listen(self, uid: str, listener: Listener) -> Callable[[], None]:
        """Register ``listener`` for changes to ``uid``'s receipts.

        Returns:
            Callable removing the listener again.
        """
        with self._lock:
            self._listeners.setdefault(uid, []).append(listener)

        def _remove() -> None:
            with self._lock:
                listeners = self._listeners.get(uid, [])
                if listener in listeners:
                    listeners.remove(listener)
                if not listeners:
                    self._listeners.pop(uid, None)

        return _remove

    def listener_count(self, uid: str) -> int:
        with self._lock:
            return len(self._listeners.get(uid, []))

    def publish(self, uids: Iterable[str]) -> None:
        """Notify listeners of each owner in ``uids``."""
        for uid in uids:
            with self._lock:
                listeners = list(self._listeners.get(uid, []))
            for listener in listeners:
                try:
                    listener()
                except Exception:
                    # A broken subscriber must not fail the committing writer
                    self.logger.exception(
                        "Receipt listener failed",
                        extra={"uid": uid, "operation": "publish"},
                    )

    def _after_flush(self, session: Session, flush_context) -> None:
        changed: Set[str] = session.info.setdefault(_PENDING_KEY, set())
        for obj in list(session.new) + list(session.dirty) + list(session.deleted):
            if isinstance(obj, Receipt) and obj.uid:
                changed.add(obj.uid)

    def _after_commit(self, session: Session) -> None:
        changed = session.info.pop(_PENDING_KEY, None)
        if changed:
            self.publish(sorted(changed))

    def _after_rollback(self, session: Session, previous_transaction) -> None:
        session.info.pop(_PENDING_KEY, None)
