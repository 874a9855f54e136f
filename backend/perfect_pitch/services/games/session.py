import enum
import logging
import random
import threading
import time
from typing import Any, Callable, Dict, Optional

from perfect_pitch.errors import PersistenceError, UnknownSession
from .players import Channel, Player
from .settings import GameSettings


logger = logging.getLogger(__name__)

NOTES = ('C', 'C#', 'D', 'D#', 'E', 'F', 'F#', 'G', 'G#', 'A', 'A#', 'B')


class SessionState(enum.Enum):
    STARTING = 'starting'
    ROUND_ACTIVE = 'round_active'
    ROUND_ENDED = 'round_ended'
    GAME_ENDED = 'game_ended'


class SessionEvent(enum.Enum):
    START_ROUND = 'start_round'
    GUESS = 'guess'
    END_ROUND = 'end_round'
    END_GAME = 'end_game'
    FORFEIT = 'forfeit'
    REPLAY = 'replay'


# (state, event) -> next state; None means the event is ignored in that state
TRANSITIONS: Dict[tuple, Optional[SessionState]] = {
    (SessionState.STARTING, SessionEvent.START_ROUND): SessionState.ROUND_ACTIVE,
    (SessionState.STARTING, SessionEvent.GUESS): None,
    (SessionState.STARTING, SessionEvent.END_ROUND): None,
    (SessionState.STARTING, SessionEvent.END_GAME): None,
    (SessionState.STARTING, SessionEvent.FORFEIT): SessionState.GAME_ENDED,
    (SessionState.STARTING, SessionEvent.REPLAY): None,

    (SessionState.ROUND_ACTIVE, SessionEvent.START_ROUND): None,
    (SessionState.ROUND_ACTIVE, SessionEvent.GUESS): SessionState.ROUND_ACTIVE,
    (SessionState.ROUND_ACTIVE, SessionEvent.END_ROUND): SessionState.ROUND_ENDED,
    (SessionState.ROUND_ACTIVE, SessionEvent.END_GAME): None,
    (SessionState.ROUND_ACTIVE, SessionEvent.FORFEIT): SessionState.GAME_ENDED,
    (SessionState.ROUND_ACTIVE, SessionEvent.REPLAY): SessionState.ROUND_ACTIVE,

    (SessionState.ROUND_ENDED, SessionEvent.START_ROUND): SessionState.ROUND_ACTIVE,
    (SessionState.ROUND_ENDED, SessionEvent.GUESS): None,
    (SessionState.ROUND_ENDED, SessionEvent.END_ROUND): None,
    (SessionState.ROUND_ENDED, SessionEvent.END_GAME): SessionState.GAME_ENDED,
    (SessionState.ROUND_ENDED, SessionEvent.FORFEIT): SessionState.GAME_ENDED,
    (SessionState.ROUND_ENDED, SessionEvent.REPLAY): None,

    (SessionState.GAME_ENDED, SessionEvent.START_ROUND): None,
    (SessionState.GAME_ENDED, SessionEvent.GUESS): None,
    (SessionState.GAME_ENDED, SessionEvent.END_ROUND): None,
    (SessionState.GAME_ENDED, SessionEvent.END_GAME): None,
    (SessionState.GAME_ENDED, SessionEvent.FORFEIT): None,
    (SessionState.GAME_ENDED, SessionEvent.REPLAY): None,
}


def _check_transitions() -> None:
    missing = [
        (state.value, event.value)
        for state in SessionState
        for event in SessionEvent
        if (state, event) not in TRANSITIONS
    ]
    if missing:
        raise RuntimeError(f"Session transition table is missing {missing}")


_check_transitions()


class PlayerSlot:
    def __init__(self, player: Player, channel: Channel):
        self.player = player
        self.channel = channel
        self.score = 0

    @property
    def player_id(self):
        return self.player.player_id


class Session:
    """One two-player match from pairing to cleanup.

    All mutating operations hold the session lock, so a correct guess and
    the round deadline racing each other are serialized here and the state
    guard in ``end_round`` lets only the first one through.
    """

    def __init__(
        self,
        session_id: str,
        first,
        second,
        settings: GameSettings,
        scheduler,
        store,
        on_cleanup: Callable[[str], Any],
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.time,
    ):
        if first.player.player_id == second.player.player_id:
            raise ValueError('A session needs two distinct players')
        self.session_id = session_id
        self.player1 = PlayerSlot(first.player, first.channel)
        self.player2 = PlayerSlot(second.player, second.channel)
        self.total_rounds = settings.total_rounds
        self.current_round = 1
        self.target_note: Optional[str] = None
        self.state = SessionState.STARTING
        self.winner_id = None
        self.round_started_at: Optional[float] = None
        self.timers: Dict[str, Any] = {}

        self._settings = settings
        self._scheduler = scheduler
        self._store = store
        self._on_cleanup = on_cleanup
        self._rng = rng or random.Random()
        self._clock = clock
        self._lock = threading.RLock()

    # ---- helpers ----

    @property
    def player_ids(self):
        return (self.player1.player_id, self.player2.player_id)

    @property
    def finished(self) -> bool:
        return self.state is SessionState.GAME_ENDED

    def slot_for(self, player_id) -> PlayerSlot:
        if player_id == self.player1.player_id:
            return self.player1
        if player_id == self.player2.player_id:
            return self.player2
        raise UnknownSession('You are not a player in this game')

    def _opponent(self, slot: PlayerSlot) -> PlayerSlot:
        return self.player2 if slot is self.player1 else self.player1

    def _transition(self, event: SessionEvent) -> bool:
        target = TRANSITIONS[(self.state, event)]
        if target is None:
            logger.debug(f"[ignored] session={self.session_id} state={self.state.value} event={event.value}")
            return False
        self.state = target
        return True

    def _broadcast(self, event: str, payload: Dict[str, Any]) -> None:
        for slot in (self.player1, self.player2):
            slot.channel.send(event, payload)

    def _arm(self, name: str, delay: float, callback, *args) -> None:
        previous = self.timers.pop(name, None)
        if previous is not None:
            previous.cancel()
        self.timers[name] = self._scheduler.call_later(
            delay, callback, *args, name=f"{name}:{self.session_id}"
        )

    def _cancel_timer(self, name: str) -> None:
        handle = self.timers.pop(name, None)
        if handle is not None:
            handle.cancel()

    def cancel_timers(self) -> None:
        for handle in self.timers.values():
            handle.cancel()
        self.timers.clear()

    # ---- lifecycle ----

    def start(self) -> None:
        with self._lock:
            if self.state is not SessionState.STARTING:
                return
            self._broadcast('game_found', {
                'sessionId': self.session_id,
                'player1': self.player1.player.to_dict(),
                'player2': self.player2.player.to_dict(),
                'round': self.current_round,
                'totalRounds': self.total_rounds,
            })
            self._arm('start', self._settings.game_start_delay, self.start_round)

    def start_round(self) -> None:
        with self._lock:
            if not self._transition(SessionEvent.START_ROUND):
                return
            self.target_note = self._rng.choice(NOTES)
            self.round_started_at = self._clock()
            self._arm('deadline', self._settings.round_timeout, self._on_deadline, self.current_round)
            logger.info(f"[round-start] session={self.session_id} round={self.current_round}/{self.total_rounds}")
            self._broadcast('round_start', {
                'round': self.current_round,
                'note': self.target_note,
            })

    def _on_deadline(self, round_no: int) -> None:
        with self._lock:
            if self.current_round != round_no:
                logger.debug(f"[timer-abort] session={self.session_id} deadline for round {round_no} is stale")
                return
            self.end_round(None)

    def handle_guess(self, player_id, note: str) -> bool:
        """Apply a guess; returns True when it was correct and ended the round."""
        with self._lock:
            slot = self.slot_for(player_id)
            if not self._transition(SessionEvent.GUESS):
                return False
            correct = note == self.target_note
            self._broadcast('player_guess', {
                'playerId': player_id,
                'note': note,
                'correct': correct,
            })
            if correct:
                slot.score += 1
                self.end_round(player_id)
            return correct

    def end_round(self, winner_id) -> bool:
        with self._lock:
            if not self._transition(SessionEvent.END_ROUND):
                return False
            self._cancel_timer('deadline')
            logger.info(
                f"[round-end] session={self.session_id} round={self.current_round} winner={winner_id} "
                f"score={self.player1.score}-{self.player2.score}"
            )
            self._broadcast('round_end', {
                'round': self.current_round,
                'note': self.target_note,
                'winnerId': winner_id,
                'score1': self.player1.score,
                'score2': self.player2.score,
            })
            if self.current_round >= self.total_rounds:
                self.end_game()
            else:
                self.current_round += 1
                self._arm('next_round', self._settings.next_round_delay, self.start_round)
            return True

    def end_game(self) -> bool:
        with self._lock:
            if not self._transition(SessionEvent.END_GAME):
                return False
            if self.player1.score > self.player2.score:
                winner_id = self.player1.player_id
            elif self.player2.score > self.player1.score:
                winner_id = self.player2.player_id
            else:
                winner_id = None
            self._finish('game_end', winner_id)
            return True

    def forfeit(self, player_id) -> bool:
        with self._lock:
            slot = self.slot_for(player_id)
            if not self._transition(SessionEvent.FORFEIT):
                return False
            opponent = self._opponent(slot)
            remaining = self.total_rounds - (self.player1.score + self.player2.score)
            opponent.score += max(0, remaining)
            logger.info(f"[forfeit] session={self.session_id} player={player_id} awarded={remaining}")
            self._finish('game_forfeit', opponent.player_id, forfeited_by=player_id)
            return True

    def replay_note(self, player_id) -> bool:
        with self._lock:
            slot = self.slot_for(player_id)
            if not self._transition(SessionEvent.REPLAY):
                return False
            slot.channel.send('replay_note', {'note': self.target_note})
            return True

    def close(self) -> None:
        with self._lock:
            self.cancel_timers()

    # ---- termination ----

    def _finish(self, event: str, winner_id, forfeited_by=None) -> None:
        self.winner_id = winner_id
        self.cancel_timers()
        try:
            match = self._persist()
        except PersistenceError as exc:
            logger.error(f"[persist-fail] session={self.session_id} giving up: {exc.message}")
            self._broadcast('game_error', {'error': exc.message})
        else:
            payload = self._result_payload(match)
            if forfeited_by is not None:
                payload['forfeitedById'] = forfeited_by
            self._broadcast(event, payload)
        finally:
            self._arm('cleanup', self._settings.cleanup_delay, self._on_cleanup, self.session_id)

    def _persist(self):
        attempts = 1 + max(0, self._settings.persist_retries)
        for attempt in range(1, attempts + 1):
            try:
                return self._store.record_match(
                    self.player1.player_id,
                    self.player2.player_id,
                    self.player1.score,
                    self.player2.score,
                    self.winner_id,
                    session_id=self.session_id,
                )
            except PersistenceError as exc:
                logger.warning(
                    f"[persist-retry] session={self.session_id} attempt={attempt}/{attempts} error={exc.message}"
                )
                if attempt == attempts:
                    raise

    def _result_payload(self, match) -> Dict[str, Any]:
        results = (
            (self.player1, match.rating_change1, match.new_rating1),
            (self.player2, match.rating_change2, match.new_rating2),
        )
        players = [
            {
                'id': slot.player_id,
                'username': slot.player.display_name,
                'score': slot.score,
                'newRating': new_rating,
                'ratingChange': change,
            }
            for slot, change, new_rating in results
        ]
        return {
            'sessionId': self.session_id,
            'player1': players[0],
            'player2': players[1],
            'winnerId': self.winner_id,
        }
