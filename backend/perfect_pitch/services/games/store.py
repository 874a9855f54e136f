import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from perfect_pitch import db
from perfect_pitch.errors import PersistenceError
from perfect_pitch.models import Match, User
from .rating import Outcome, adjust


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UserRecord:
    id: int
    username: str
    rating: int
    matches_played: int
    matches_won: int
    total_rounds: int
    rounds_won: int

    @classmethod
    def from_model(cls, user: User) -> 'UserRecord':
        return cls(
            id=user.id,
            username=user.username,
            rating=user.rating,
            matches_played=user.matches_played,
            matches_won=user.matches_won,
            total_rounds=user.total_rounds,
            rounds_won=user.rounds_won,
        )


@dataclass(frozen=True)
class MatchRecord:
    id: int
    session_id: Optional[str]
    player1_id: int
    player2_id: int
    score1: int
    score2: int
    winner_id: Optional[int]
    rating_change1: int
    rating_change2: int
    new_rating1: int
    new_rating2: int


class SqlAlchemyStore:
    """User lookups and match recording on the app's SQLAlchemy database.

    Every call runs in its own app context so it can be used from timer
    callbacks as well as from request handlers. Plain records are returned
    rather than ORM instances, which would be detached once the context
    closes.
    """

    def __init__(self, app):
        self._app = app

    def get_user(self, user_id) -> Optional[UserRecord]:
        with self._app.app_context():
            try:
                user = db.session.get(User, user_id)
                return UserRecord.from_model(user) if user else None
            except SQLAlchemyError as exc:
                db.session.rollback()
                logger.error(f"[store-error] user={user_id} {exc}")
                raise PersistenceError() from exc

    def record_match(self, player1_id, player2_id, score1, score2, winner_id, session_id=None) -> MatchRecord:
        with self._app.app_context():
            try:
                player1 = db.session.get(User, player1_id)
                player2 = db.session.get(User, player2_id)
                if player1 is None or player2 is None:
                    raise PersistenceError('Player not found')

                outcome = Outcome.from_winner(player1.id, player2.id, winner_id)
                adjustment = adjust(player1.rating, player2.rating, outcome)

                for user, own_score in ((player1, score1), (player2, score2)):
                    user.matches_played += 1
                    user.total_rounds += score1 + score2
                    user.rounds_won += own_score
                    if winner_id == user.id:
                        user.matches_won += 1
                player1.rating = adjustment.new_a
                player2.rating = adjustment.new_b

                match = Match(
                    session_id=session_id,
                    player1_id=player1_id,
                    player2_id=player2_id,
                    player1_score=score1,
                    player2_score=score2,
                    winner_id=winner_id,
                    rating_change1=adjustment.delta_a,
                    rating_change2=adjustment.delta_b,
                )
                db.session.add_all([player1, player2, match])
                db.session.commit()
                # Reading the id refreshes the row after commit
                match_id = match.id
            except SQLAlchemyError as exc:
                db.session.rollback()
                logger.error(f"[persist-error] session={session_id} {exc}")
                raise PersistenceError() from exc

            logger.info(
                f"[match-recorded] session={session_id} match={match_id} "
                f"changes={adjustment.delta_a},{adjustment.delta_b}"
            )
            return MatchRecord(
                id=match_id,
                session_id=session_id,
                player1_id=player1_id,
                player2_id=player2_id,
                score1=score1,
                score2=score2,
                winner_id=winner_id,
                rating_change1=adjustment.delta_a,
                rating_change2=adjustment.delta_b,
                new_rating1=adjustment.new_a,
                new_rating2=adjustment.new_b,
            )
