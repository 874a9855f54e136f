import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from perfect_pitch.errors import DuplicateEntry
from .players import Channel, Player
from .registry import SessionRegistry
from .session import Session
from .settings import GameSettings


logger = logging.getLogger(__name__)


@dataclass
class QueueEntry:
    player: Player
    channel: Channel
    joined_at: float

    @property
    def player_id(self):
        return self.player.player_id


class MatchmakingQueue:
    """Waiting players and the pairing pass that turns them into sessions.

    Pairing is greedy nearest-rating with a wait-time decay: the rating gap
    between two entries is scaled down the longer either of them has been
    waiting, to a floor, so far-apart players still get matched eventually.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        settings: GameSettings,
        scheduler=None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._registry = registry
        self._settings = settings
        self._scheduler = scheduler
        self._clock = clock
        self._entries: List[QueueEntry] = []
        self._lock = threading.RLock()
        self._timer = None

    def __len__(self):
        with self._lock:
            return len(self._entries)

    def __contains__(self, player_id):
        with self._lock:
            return any(e.player_id == player_id for e in self._entries)

    def enqueue(self, player: Player, channel: Channel) -> QueueEntry:
        with self._lock:
            if any(e.player_id == player.player_id for e in self._entries):
                raise DuplicateEntry('You are already in the queue')
            if self._registry.owns_active_session(player.player_id):
                raise DuplicateEntry('You are already in a game')
            entry = QueueEntry(player=player, channel=channel, joined_at=self._clock())
            self._entries.append(entry)
            logger.info(f"[queue-join] player={player.player_id} rating={player.rating} size={len(self._entries)}")
        channel.send('queue_joined', {'message': "You've joined the matchmaking queue"})
        self.run_pass()
        return entry

    def dequeue(self, player_id) -> bool:
        with self._lock:
            before = len(self._entries)
            self._entries = [e for e in self._entries if e.player_id != player_id]
            removed = len(self._entries) != before
        if removed:
            logger.info(f"[queue-leave] player={player_id}")
        return removed

    def match_score(self, entry: QueueEntry, other: QueueEntry, now: float) -> float:
        """Lower is better."""
        waited = max(now - entry.joined_at, now - other.joined_at)
        wait_factor = max(1 - waited / self._settings.wait_decay, self._settings.wait_factor_floor)
        return abs(entry.player.rating - other.player.rating) * wait_factor

    def _prune_stale(self) -> List[QueueEntry]:
        live = []
        for entry in sorted(self._entries, key=lambda e: e.joined_at):
            if entry.channel.connected:
                live.append(entry)
            else:
                self._entries.remove(entry)
                logger.info(f"[queue-prune] player={entry.player_id} channel gone")
        return live

    def _find_pair(self) -> Optional[Tuple[QueueEntry, QueueEntry]]:
        now = self._clock()
        live = self._prune_stale()
        for entry in live:
            best, best_score = None, math.inf
            for other in live:
                if other is entry:
                    continue
                score = self.match_score(entry, other, now)
                if score < best_score:
                    best, best_score = other, score
            if best is not None:
                return entry, best
        return None

    def run_pass(self) -> List[Session]:
        """Pair up as many waiting players as possible and start their sessions."""
        created = []
        with self._lock:
            pair = self._find_pair()
            while pair is not None:
                first, second = pair
                self._entries.remove(first)
                self._entries.remove(second)
                created.append(self._registry.create_session(first, second))
                # The queue changed, so scan again from the oldest entry
                pair = self._find_pair()
        for session in created:
            session.start()
        return created

    # ---- periodic pass ----

    def start(self) -> None:
        if self._scheduler is None or self._timer is not None:
            return
        logger.info(f"[matchmaker-start] interval={self._settings.matchmaking_interval}s")
        self._arm()

    def stop(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _arm(self) -> None:
        self._timer = self._scheduler.call_later(
            self._settings.matchmaking_interval, self._tick, name='matchmaker'
        )

    def _tick(self) -> None:
        if self._timer is None:
            return
        try:
            self.run_pass()
        finally:
            if self._timer is not None:
                self._arm()
