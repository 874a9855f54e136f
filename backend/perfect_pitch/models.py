from datetime import datetime, timezone

from perfect_pitch import db, bcrypt
from flask_login import UserMixin


def _utcnow():
    return datetime.now(timezone.utc)


class User(UserMixin, db.Model):
    __tablename__ = 'user'
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(256), nullable=False)
    rating = db.Column(db.Integer, nullable=False, default=1000)
    matches_played = db.Column(db.Integer, nullable=False, default=0)
    matches_won = db.Column(db.Integer, nullable=False, default=0)
    total_rounds = db.Column(db.Integer, nullable=False, default=0)
    rounds_won = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def set_password(self, password):
        self.password_hash = bcrypt.generate_password_hash(password).decode('utf-8')

    def check_password(self, password):
        return bcrypt.check_password_hash(self.password_hash, password)

    @property
    def win_rate(self):
        if not self.matches_played:
            return 0
        return round(self.matches_won / self.matches_played * 100)

    @property
    def accuracy(self):
        if not self.total_rounds:
            return 0
        return round(self.rounds_won / self.total_rounds * 100)

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
            'rating': self.rating,
        }

    def stats_dict(self):
        from perfect_pitch.services.games.rating import rank_for_rating
        return {
            'matchesPlayed': self.matches_played,
            'matchesWon': self.matches_won,
            'winRate': self.win_rate,
            'accuracy': self.accuracy,
            'rating': self.rating,
            'rank': rank_for_rating(self.rating),
        }


class Match(db.Model):
    __tablename__ = 'match'
    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.String(64), nullable=True, index=True)
    player1_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    player2_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    player1_score = db.Column(db.Integer, nullable=False)
    player2_score = db.Column(db.Integer, nullable=False)
    winner_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    rating_change1 = db.Column(db.Integer, nullable=False, default=0)
    rating_change2 = db.Column(db.Integer, nullable=False, default=0)
    played_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    player1 = db.relationship('User', foreign_keys=[player1_id])
    player2 = db.relationship('User', foreign_keys=[player2_id])

    def to_dict(self):
        return {
            'id': self.id,
            'session_id': self.session_id,
            'player1_id': self.player1_id,
            'player2_id': self.player2_id,
            'player1_score': self.player1_score,
            'player2_score': self.player2_score,
            'winner_id': self.winner_id,
            'rating_change1': self.rating_change1,
            'rating_change2': self.rating_change2,
            'played_at': self.played_at.isoformat() if self.played_at else None,
        }
