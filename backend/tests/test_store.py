import pytest

from perfect_pitch import db
from perfect_pitch.errors import PersistenceError
from perfect_pitch.models import Match, User
from perfect_pitch.services.games.server import get_game_server


def _user(username, rating=1000):
    user = User(username=username, rating=rating)
    user.set_password('secret')
    db.session.add(user)
    db.session.commit()
    return user.id


def test_get_user_returns_plain_record(flask_app):
    user_id = _user('alice')
    store = get_game_server(flask_app).store

    record = store.get_user(user_id)
    assert record.username == 'alice'
    assert record.rating == 1000
    assert store.get_user(9999) is None


def test_record_match_applies_ratings_and_counters(flask_app):
    alice, bob = _user('alice'), _user('bob')
    store = get_game_server(flask_app).store

    match = store.record_match(alice, bob, 5, 4, alice, session_id='game_1')

    assert (match.rating_change1, match.rating_change2) == (16, -16)
    a, b = store.get_user(alice), store.get_user(bob)
    assert (a.rating, b.rating) == (1016, 984)
    assert (a.matches_played, a.matches_won, a.total_rounds, a.rounds_won) == (1, 1, 9, 5)
    assert (b.matches_played, b.matches_won, b.total_rounds, b.rounds_won) == (1, 0, 9, 4)

    row = Match.query.filter_by(session_id='game_1').one()
    assert row.winner_id == alice
    assert (row.player1_score, row.player2_score) == (5, 4)


def test_record_match_tie(flask_app):
    alice, bob = _user('alice', 1200), _user('bob', 1200)
    store = get_game_server(flask_app).store

    match = store.record_match(alice, bob, 3, 3, None)

    assert match.winner_id is None
    assert (match.rating_change1, match.rating_change2) == (0, 0)
    assert store.get_user(alice).matches_won == 0


def test_record_match_unknown_player(flask_app):
    alice = _user('alice')
    store = get_game_server(flask_app).store

    with pytest.raises(PersistenceError):
        store.record_match(alice, 4242, 1, 0, alice)
    assert Match.query.count() == 0


def test_database_errors_surface_as_persistence_errors(flask_app):
    alice, bob = _user('alice'), _user('bob')
    store = get_game_server(flask_app).store
    db.session.remove()
    db.drop_all()

    with pytest.raises(PersistenceError):
        store.get_user(alice)
    with pytest.raises(PersistenceError):
        store.record_match(alice, bob, 5, 4, alice)


def test_record_match_reports_new_ratings(flask_app):
    alice, bob = _user('alice', 1500), _user('bob', 1000)
    store = get_game_server(flask_app).store

    match = store.record_match(alice, bob, 2, 7, bob)

    assert (match.new_rating1, match.new_rating2) == (store.get_user(alice).rating, store.get_user(bob).rating)
    assert match.new_rating2 - 1000 == match.rating_change2
