from flask import current_app, request
from flask_socketio import ConnectionRefusedError, emit, join_room, leave_room
from skorbord import socketio
from skorbord.broadcast import NAMESPACE, room_for
from skorbord.errors import SkorbordError
from skorbord.repository import get_repository
from skorbord.services.environments import get_environment


def _relay():
    return current_app.extensions['skorbord']['relay']


def _get_sid() -> str:
    # request.sid exists in Socket.IO context
    return request.sid  # type: ignore


def handle_connect(auth=None):
    """Admit the connection to exactly one environment, named in the auth payload."""
    environment_id = (auth or {}).get('environment') if isinstance(auth, dict) else None
    try:
        environment = get_environment(get_repository(), environment_id)
    except SkorbordError as exc:
        current_app.logger.info(f"[ws-refused] sid={_get_sid()} env={environment_id!r} reason={exc.message}")
        raise ConnectionRefusedError(exc.message)

    join_room(room_for(environment.id))
    _relay().subscribe(_get_sid(), environment.id)
    current_app.logger.info(f"[ws-connect] sid={_get_sid()} env={environment.id}")
    emit('connected', {
        'environment_id': environment.id,
        'socket_id': _get_sid(),
        'viewers': _relay().subscriber_count(environment.id),
    })


def handle_disconnect(*args):
    environment_id = _relay().unsubscribe(_get_sid())
    if not environment_id:
        return
    current_app.logger.info(f"[ws-disconnect] sid={_get_sid()} env={environment_id}")
    _relay().publish(environment_id, 'viewer_left', {'socket_id': _get_sid()})


def handle_join_environment(data):
    # Legacy clients still ask to join after connecting; only their own room is allowed
    requested = data.get('environment') if isinstance(data, dict) else data
    admitted = _relay().environment_of(_get_sid())
    if not admitted or requested != admitted:
        emit('error', {'error': 'Not authorized for this environment'})
        return
    join_room(room_for(admitted))
    emit('connected', {
        'environment_id': admitted,
        'socket_id': _get_sid(),
        'viewers': _relay().subscriber_count(admitted),
    })


def handle_leave_environment(data=None):
    environment_id = _relay().unsubscribe(_get_sid())
    if not environment_id:
        emit('error', {'error': 'Not subscribed to an environment'})
        return
    leave_room(room_for(environment_id))
    emit('left', {'environment_id': environment_id})


def handle_ping(data=None):
    emit('pong', data or {})


def handle_player_activity(data):
    environment_id = _relay().environment_of(_get_sid())
    if not environment_id:
        return
    _relay().publish(environment_id, 'player_activity', data if isinstance(data, dict) else {})


def handle_show_rivalry_stats(data):
    environment_id = _relay().environment_of(_get_sid())
    if not environment_id:
        return
    payload = _relay().build_event(environment_id, 'show_rivalry_stats', data if isinstance(data, dict) else {})
    # The sender already shows the stats; only the other viewers follow
    emit('show_rivalry_stats', payload, to=room_for(environment_id), include_self=False)


def register_socketio_handlers() -> None:
    """Register Socket.IO event handlers on namespace '/ws'."""
    socketio.on_event('connect', handle_connect, namespace=NAMESPACE)
    socketio.on_event('disconnect', handle_disconnect, namespace=NAMESPACE)
    socketio.on_event('join_environment', handle_join_environment, namespace=NAMESPACE)
    socketio.on_event('leave_environment', handle_leave_environment, namespace=NAMESPACE)
    socketio.on_event('ping', handle_ping, namespace=NAMESPACE)
    socketio.on_event('player_activity', handle_player_activity, namespace=NAMESPACE)
    socketio.on_event('show_rivalry_stats', handle_show_rivalry_stats, namespace=NAMESPACE)
