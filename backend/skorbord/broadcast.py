"""Broadcast relay: fan committed state changes out to environment rooms."""
import logging
import threading
from datetime import datetime, timezone
from typing import Dict, Optional

logger = logging.getLogger(__name__)

NAMESPACE = '/ws'


def room_for(environment_id: str) -> str:
    return f"environment:{environment_id}"


class BroadcastRelay:
    """Publishes events to every connection subscribed to an environment.

    Delivery is best-effort and at-most-once: there is no replay queue, a
    client that misses an event reconciles with a REST fetch.
    """

    def __init__(self, socketio, namespace: str = NAMESPACE):
        self.socketio = socketio
        self.namespace = namespace
        self._lock = threading.Lock()
        self._subscribers: Dict[str, str] = {}  # sid -> environment id

    def build_event(self, environment_id: str, event: str, payload: dict) -> dict:
        data = dict(payload)
        data['type'] = event
        data['environment_id'] = environment_id
        data['timestamp'] = datetime.now(timezone.utc).isoformat()
        return data

    def publish(self, environment_id: str, event: str, payload: dict) -> Optional[dict]:
        data = self.build_event(environment_id, event, payload)
        try:
            self.socketio.emit(event, data, to=room_for(environment_id), namespace=self.namespace)
        except Exception as exc:
            # Never surfaces to the request that caused the change
            logger.warning(f"[broadcast-fail] env={environment_id} event={event} error={exc!r}")
            return None
        logger.debug(f"[broadcast] env={environment_id} event={event} subscribers={self.subscriber_count(environment_id)}")
        return data

    # ---- subscriber tracking ----

    def subscribe(self, sid: str, environment_id: str) -> None:
        with self._lock:
            self._subscribers[sid] = environment_id

    def unsubscribe(self, sid: str) -> Optional[str]:
        with self._lock:
            return self._subscribers.pop(sid, None)

    def environment_of(self, sid: str) -> Optional[str]:
        with self._lock:
            return self._subscribers.get(sid)

    def subscriber_count(self, environment_id: str) -> int:
        with self._lock:
            return sum(1 for env in self._subscribers.values() if env == environment_id)
