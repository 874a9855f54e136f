import functools
import threading
from typing import Any, Dict, Optional

from flask import current_app, request
from flask_socketio import emit

from perfect_pitch import socketio
from perfect_pitch.errors import AuthRequired, GameError, UnknownSession
from perfect_pitch.services.games.players import Player
from perfect_pitch.services.games.rating import rank_for_rating
from perfect_pitch.services.games.server import get_game_server


CONNECTIONS_KEY = 'perfect_pitch.connections'


class SocketIOChannel:
    """Sends events to a single Socket.IO connection."""

    def __init__(self, sid: str, namespace: str, connections: 'ConnectionTable'):
        self.sid = sid
        self.namespace = namespace
        self._connections = connections

    @property
    def connected(self) -> bool:
        return self.sid in self._connections

    def send(self, event: str, payload: Dict[str, Any]) -> None:
        socketio.emit(event, payload, to=self.sid, namespace=self.namespace)


class ConnectionTable:
    """Live socket ids and the player each one authenticated as."""

    def __init__(self):
        self._ctx: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def __contains__(self, sid):
        with self._lock:
            return sid in self._ctx

    def add(self, sid: str, namespace: str) -> None:
        with self._lock:
            self._ctx[sid] = {
                'channel': SocketIOChannel(sid, namespace, self),
                'player': None,
            }

    def get(self, sid: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            return self._ctx.get(sid)

    def pop(self, sid: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            return self._ctx.pop(sid, None)


def _connections() -> ConnectionTable:
    return current_app.extensions.setdefault(CONNECTIONS_KEY, ConnectionTable())


def _get_sid() -> str:
    return request.sid  # type: ignore[attr-defined]


def _current_ctx() -> Dict[str, Any]:
    ctx = _connections().get(_get_sid())
    if ctx is None:
        # Handlers can run for a sid whose connect event we never saw
        _connections().add(_get_sid(), request.namespace)
        ctx = _connections().get(_get_sid())
    return ctx


def _require_player() -> Player:
    player = _current_ctx().get('player')
    if player is None:
        raise AuthRequired()
    return player


def _reports_errors(error_event: str):
    """Turn GameError raised by a handler into an ``error_event`` for the sender."""
    def decorator(handler):
        @functools.wraps(handler)
        def wrapper(data=None):
            try:
                handler(data or {})
            except GameError as exc:
                current_app.logger.info(f"[{error_event}] sid={_get_sid()} {exc.message}")
                emit(error_event, {'error': exc.message})
        return wrapper
    return decorator


def handle_connect(auth=None):
    _connections().add(_get_sid(), request.namespace)
    server = get_game_server(current_app)
    if current_app.config.get('ENABLE_MATCHMAKER') and not current_app.config.get('TESTING'):
        server.start()
    emit('connected', {'message': 'Connected to /ws'})


def handle_disconnect(*args):
    ctx = _connections().pop(_get_sid())
    if not ctx or ctx.get('player') is None:
        return
    player = ctx['player']
    current_app.logger.info(f"[disconnect] sid={_get_sid()} player={player.player_id}")
    get_game_server(current_app).handle_disconnect(player.player_id)


def handle_authenticate(data):
    ctx = _current_ctx()
    user = None
    try:
        user_id = int((data or {}).get('userId'))
    except (TypeError, ValueError):
        user_id = None
    if user_id is not None:
        try:
            user = get_game_server(current_app).store.get_user(user_id)
        except GameError as exc:
            emit('authenticated', {'success': False, 'error': exc.message})
            return
    if user is None:
        emit('authenticated', {'success': False, 'error': 'Invalid user'})
        return
    ctx['player'] = Player(player_id=user.id, display_name=user.username, rating=user.rating)
    current_app.logger.info(f"[authenticated] sid={_get_sid()} user={user.username}")
    emit('authenticated', {
        'success': True,
        'user': {
            'id': user.id,
            'username': user.username,
            'rating': user.rating,
            'rank': rank_for_rating(user.rating),
        },
    })


@_reports_errors('queue_error')
def handle_join_queue(data):
    player = _require_player()
    server = get_game_server(current_app)
    # Queue with the current rating, not the one seen at authentication
    user = server.store.get_user(player.player_id)
    if user is None:
        raise GameError('User not found')
    player = Player(player_id=user.id, display_name=user.username, rating=user.rating)
    ctx = _current_ctx()
    ctx['player'] = player
    server.queue.enqueue(player, ctx['channel'])


@_reports_errors('queue_error')
def handle_leave_queue(data):
    player = _require_player()
    get_game_server(current_app).queue.dequeue(player.player_id)
    emit('queue_left', {'message': "You've left the matchmaking queue"})


def _session_for(data):
    session = get_game_server(current_app).registry.get((data or {}).get('sessionId'))
    if session is None:
        raise UnknownSession()
    return session


@_reports_errors('game_error')
def handle_guess(data):
    player = _require_player()
    note = data.get('note')
    if not isinstance(note, str):
        raise GameError('note is required')
    _session_for(data).handle_guess(player.player_id, note)


@_reports_errors('game_error')
def handle_replay_note(data):
    player = _require_player()
    _session_for(data).replay_note(player.player_id)


@_reports_errors('game_error')
def handle_forfeit_game(data):
    player = _require_player()
    _session_for(data).forfeit(player.player_id)


def handle_ping(data):
    emit('pong', data or {})


HANDLERS = (
    ('connect', handle_connect),
    ('disconnect', handle_disconnect),
    ('authenticate', handle_authenticate),
    ('join_queue', handle_join_queue),
    ('leave_queue', handle_leave_queue),
    ('guess', handle_guess),
    ('replay_note', handle_replay_note),
    ('forfeit_game', handle_forfeit_game),
    ('ping', handle_ping),
)


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    for event, handler in HANDLERS:
        socketio.on_event(event, handler, namespace='/ws')

    if testing:
        # Test-only mirror on default namespace
        for event, handler in HANDLERS:
            socketio.on_event(event, handler, namespace='/')
