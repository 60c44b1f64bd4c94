"""Persistence gateway.

A ``Repository`` wraps one SQLAlchemy session and is constructed explicitly
(per request in the web app, per test in the test-suite). Services receive
it as their first argument instead of reaching for the global session.

Transactions can be scoped to keyed locks so that read-modify-write
sequences on the same game, environment or rivalry are serialized across
concurrent requests in this process. Work that must only happen once the
data is durable (broadcasts) is queued with ``after_commit`` and dropped if
the transaction rolls back.
"""
import logging
import threading
from contextlib import contextmanager, ExitStack
from typing import Callable, Dict, Hashable, List, Optional

from flask import current_app, g

logger = logging.getLogger(__name__)


class KeyedLocks:
    """Registry of re-entrant locks keyed by e.g. ``('game', game_id)``.

    An entry lives only while someone holds or waits on it, so the registry
    stays as small as the number of keys currently in use.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[Hashable, list] = {}  # key -> [RLock, users]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    def _checkout(self, key: Hashable) -> threading.RLock:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = [threading.RLock(), 0]
            entry[1] += 1
            return entry[0]

    def _release(self, key: Hashable) -> None:
        with self._guard:
            entry = self._locks[key]
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[key]

    @contextmanager
    def hold(self, *keys: Hashable):
        # Fixed acquisition order so two callers never deadlock
        with ExitStack() as stack:
            for key in sorted(set(keys), key=repr):
                lock = self._checkout(key)
                stack.callback(self._release, key)
                stack.enter_context(lock)
            yield


class Repository:
    def __init__(self, session, locks: KeyedLocks = None, relay=None):
        self.session = session
        self.locks = locks or KeyedLocks()
        self.relay = relay
        self._after_commit: List[Callable[[], None]] = []
        self._depth = 0
        self._held: Optional[ExitStack] = None

    # ---- primitives ----

    def get(self, model, ident):
        return self.session.get(model, ident)

    def query(self, model, *entities):
        return self.session.query(model, *entities)

    def add(self, obj):
        self.session.add(obj)
        return obj

    def delete(self, obj) -> None:
        self.session.delete(obj)

    def flush(self) -> None:
        self.session.flush()

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    # ---- transactions ----

    @contextmanager
    def transaction(self, *lock_keys: Hashable):
        """Run the block atomically, holding ``lock_keys`` for its duration.

        Nested calls join the outer transaction. Locks they take are kept
        until the outermost block commits or rolls back, so nothing they
        guarded can change before their writes are durable. Queued
        after-commit callbacks run once the outermost block has committed
        and its locks are released.
        """
        if self._depth:
            self._held.enter_context(self.locks.hold(*lock_keys))
            self._depth += 1
            try:
                yield self.session
            finally:
                self._depth -= 1
            return

        with ExitStack() as held:
            held.enter_context(self.locks.hold(*lock_keys))
            self._held = held
            self._depth = 1
            # Anything loaded before the lock was taken may be stale
            self.session.expire_all()
            try:
                yield self.session
                self.session.commit()
            except Exception:
                self.session.rollback()
                dropped = len(self._after_commit)
                self._after_commit.clear()
                if dropped:
                    logger.debug(f"[tx-rollback] dropped {dropped} after-commit callback(s)")
                raise
            finally:
                self._depth = 0
                self._held = None

        callbacks, self._after_commit = self._after_commit, []
        for callback in callbacks:
            callback()

    def after_commit(self, callback: Callable[[], None]) -> None:
        if self._depth:
            self._after_commit.append(callback)
        else:
            callback()

    def publish(self, environment_id: str, event: str, payload: dict) -> None:
        """Queue a broadcast for when the current transaction commits."""
        if self.relay is None:
            return
        self.after_commit(lambda: self.relay.publish(environment_id, event, payload))


def get_repository() -> Repository:
    """Repository bound to the current app context's session."""
    if 'repository' not in g:
        from skorbord import db
        ext = current_app.extensions['skorbord']
        g.repository = Repository(db.session, locks=ext['locks'], relay=ext['relay'])
    return g.repository
