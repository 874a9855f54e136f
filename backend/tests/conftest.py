import os
import random
import sys
from dataclasses import replace

import pytest

# Ensure the backend root (containing the `perfect_pitch` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from perfect_pitch import create_app, db, socketio
from perfect_pitch.errors import PersistenceError
from perfect_pitch.services.games.matchmaking import MatchmakingQueue, QueueEntry
from perfect_pitch.services.games.players import Player
from perfect_pitch.services.games.rating import Outcome, adjust
from perfect_pitch.services.games.registry import SessionRegistry
from perfect_pitch.services.games.scheduler import TimerHandle
from perfect_pitch.services.games.server import get_game_server
from perfect_pitch.services.games.settings import GameSettings
from perfect_pitch.services.games.store import MatchRecord, UserRecord


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    WTF_CSRF_ENABLED = False
    BCRYPT_LOG_ROUNDS = 4
    ENABLE_MATCHMAKER = False


class ManualScheduler:
    """Scheduler whose timers only fire when a test advances time."""

    def __init__(self):
        self.now = 0.0
        self._seq = 0
        self._pending = []

    def call_later(self, delay, callback, *args, name='timer'):
        handle = TimerHandle(name, delay)
        self._seq += 1
        self._pending.append((self.now + delay, self._seq, handle, callback, args))
        return handle

    def active(self, prefix=''):
        return [h for _, _, h, _, _ in self._pending if h.active and h.name.startswith(prefix)]

    def advance(self, seconds):
        target = self.now + seconds
        while True:
            due = [item for item in self._pending if item[0] <= target]
            if not due:
                break
            item = min(due, key=lambda i: (i[0], i[1]))
            self._pending.remove(item)
            when, _, handle, callback, args = item
            self.now = when
            if handle.cancelled:
                continue
            handle.fired = True
            callback(*args)
        self.now = target


class FakeClock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FakeChannel:
    def __init__(self, connected=True):
        self.connected = connected
        self.events = []

    def send(self, event, payload):
        self.events.append((event, payload))

    def named(self, event):
        return [payload for name, payload in self.events if name == event]

    def names(self):
        return [name for name, _ in self.events]


class MemoryStore:
    """In-memory stand-in for the SQLAlchemy store."""

    def __init__(self):
        self.users = {}
        self.matches = []
        self.failures = 0
        self.attempts = 0
        self.crash = None

    def add_user(self, user_id, username, rating=1000):
        self.users[user_id] = UserRecord(
            id=user_id, username=username, rating=rating,
            matches_played=0, matches_won=0, total_rounds=0, rounds_won=0,
        )
        return self.users[user_id]

    def get_user(self, user_id):
        return self.users.get(user_id)

    def record_match(self, player1_id, player2_id, score1, score2, winner_id, session_id=None):
        self.attempts += 1
        if self.failures:
            self.failures -= 1
            raise PersistenceError('database unavailable')
        if self.crash is not None:
            raise self.crash
        user1, user2 = self.users[player1_id], self.users[player2_id]
        result = adjust(user1.rating, user2.rating, Outcome.from_winner(player1_id, player2_id, winner_id))
        self.users[player1_id] = replace(user1, rating=result.new_a, matches_played=user1.matches_played + 1)
        self.users[player2_id] = replace(user2, rating=result.new_b, matches_played=user2.matches_played + 1)
        record = MatchRecord(
            id=len(self.matches) + 1, session_id=session_id,
            player1_id=player1_id, player2_id=player2_id,
            score1=score1, score2=score2, winner_id=winner_id,
            rating_change1=result.delta_a, rating_change2=result.delta_b,
            new_rating1=result.new_a, new_rating2=result.new_b,
        )
        self.matches.append(record)
        return record


def make_entry(player_id, rating=1000, joined_at=0.0, channel=None, name=None):
    return QueueEntry(
        player=Player(player_id=player_id, display_name=name or f'player{player_id}', rating=rating),
        channel=channel or FakeChannel(),
        joined_at=joined_at,
    )


@pytest.fixture()
def scheduler():
    return ManualScheduler()


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def store():
    memory = MemoryStore()
    memory.add_user(1, 'alice')
    memory.add_user(2, 'bob')
    return memory


@pytest.fixture()
def settings():
    return GameSettings()


@pytest.fixture()
def registry(settings, scheduler, store):
    return SessionRegistry(settings, scheduler, store, rng=random.Random(7))


@pytest.fixture()
def queue(registry, settings, scheduler, clock):
    return MatchmakingQueue(registry, settings, scheduler=scheduler, clock=clock)


@pytest.fixture()
def session(registry):
    """A registered two-player session (alice vs bob) that has not started yet."""
    return registry.create_session(make_entry(1, name='alice'), make_entry(2, name='bob'))


@pytest.fixture()
def flask_app(scheduler):
    application = create_app(TestConfig, scheduler=scheduler)
    with application.app_context():
        # Ensure models are imported so tables are created
        import perfect_pitch.models  # noqa: F401
        db.create_all()
        yield application
        get_game_server(application).stop()
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_client(flask_app):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=flask_app.test_client(),
        namespace='/ws'
    )
    yield test_client
    if test_client.is_connected('/ws'):
        test_client.disconnect(namespace='/ws')
