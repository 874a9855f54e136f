import random

import pytest

from perfect_pitch.errors import DuplicateEntry
from perfect_pitch.services.games.players import Player
from perfect_pitch.services.games.server import GameServer
from conftest import FakeChannel, make_entry


def _seed(queue, *entries):
    # Put entries in place without triggering the on-enqueue pass
    queue._entries.extend(entries)


def _pair(session):
    return set(session.player_ids)


def test_nearest_rating_is_paired_first(queue):
    a, b, c = make_entry(1, 1000), make_entry(2, 1020), make_entry(3, 1800)
    _seed(queue, a, b, c)

    sessions = queue.run_pass()

    assert [_pair(s) for s in sessions] == [{1, 2}]
    assert 3 in queue
    assert len(queue) == 1


def test_pass_restarts_after_each_pair(queue):
    _seed(
        queue,
        make_entry(1, 1000, joined_at=0),
        make_entry(2, 2000, joined_at=1),
        make_entry(3, 1010, joined_at=2),
        make_entry(4, 2010, joined_at=3),
    )

    sessions = queue.run_pass()

    assert [_pair(s) for s in sessions] == [{1, 3}, {2, 4}]
    assert len(queue) == 0


def test_first_seen_candidate_wins_ties(queue):
    _seed(
        queue,
        make_entry(1, 1000, joined_at=0),
        make_entry(2, 1010, joined_at=1),
        make_entry(3, 990, joined_at=2),
    )

    sessions = queue.run_pass()

    assert _pair(sessions[0]) == {1, 2}


def test_wait_time_decays_rating_gap_to_a_floor(queue):
    a = make_entry(1, 1000, joined_at=0)
    b = make_entry(2, 1500, joined_at=0)

    assert queue.match_score(a, b, now=0) == pytest.approx(500)
    assert queue.match_score(a, b, now=15) == pytest.approx(250)
    assert queue.match_score(a, b, now=40) == pytest.approx(100)
    assert queue.match_score(a, b, now=600) == pytest.approx(100)


def test_wait_uses_the_longer_waiting_entry(queue):
    early = make_entry(1, 1000, joined_at=0)
    late = make_entry(2, 1300, joined_at=27)

    assert queue.match_score(late, early, now=30) == pytest.approx(300 * 0.2)


def test_long_wait_hits_the_floor_and_outranks_a_closer_newcomer(queue, clock):
    lonely = make_entry(1, 2400, joined_at=0)
    _seed(queue, lonely)
    clock.advance(45)
    mid = make_entry(2, 1000, joined_at=45)
    near = make_entry(3, 1300, joined_at=45)

    # 1400 gap at the 0.2 floor beats a fresh 300 gap
    assert queue.match_score(mid, lonely, clock()) == pytest.approx(1400 * 0.2)
    assert queue.match_score(mid, near, clock()) == pytest.approx(300)
    assert queue.match_score(mid, lonely, clock()) < queue.match_score(mid, near, clock())

    _seed(queue, mid, near)
    sessions = queue.run_pass()

    assert [_pair(s) for s in sessions] == [{1, 3}]
    assert 2 in queue


def test_enqueue_sends_queue_joined_before_game_found(queue):
    first, second = FakeChannel(), FakeChannel()
    queue.enqueue(Player(1, 'alice', 1000), first)
    assert first.names() == ['queue_joined']

    queue.enqueue(Player(2, 'bob', 1000), second)
    assert second.names() == ['queue_joined', 'game_found']
    assert first.names() == ['queue_joined', 'game_found']


def test_duplicate_enqueue_is_rejected(queue):
    queue.enqueue(Player(1, 'alice', 1000), FakeChannel())
    with pytest.raises(DuplicateEntry):
        queue.enqueue(Player(1, 'alice', 1000), FakeChannel())
    assert len(queue) == 1


def test_player_in_live_session_cannot_queue(queue, registry):
    queue.enqueue(Player(1, 'alice', 1000), FakeChannel())
    queue.enqueue(Player(2, 'bob', 1000), FakeChannel())
    assert registry.owns_active_session(1)

    with pytest.raises(DuplicateEntry) as excinfo:
        queue.enqueue(Player(1, 'alice', 1000), FakeChannel())
    assert excinfo.value.message == 'You are already in a game'


def test_player_can_queue_again_once_game_ended(queue, registry):
    queue.enqueue(Player(1, 'alice', 1000), FakeChannel())
    queue.enqueue(Player(2, 'bob', 1000), FakeChannel())
    registry.session_for_player(1).forfeit(2)

    queue.enqueue(Player(1, 'alice', 1016), FakeChannel())
    assert 1 in queue


def test_stale_entries_are_pruned_during_pass(queue):
    gone = make_entry(1, 1000, joined_at=0, channel=FakeChannel(connected=False))
    _seed(queue, gone, make_entry(2, 1000, joined_at=1), make_entry(3, 1300, joined_at=2))

    sessions = queue.run_pass()

    assert [_pair(s) for s in sessions] == [{2, 3}]
    assert 1 not in queue


def test_dequeue(queue):
    queue.enqueue(Player(1, 'alice', 1000), FakeChannel())
    assert queue.dequeue(1) is True
    assert queue.dequeue(1) is False
    assert len(queue) == 0


def test_periodic_pass(queue, scheduler):
    _seed(queue, make_entry(1, 1000), make_entry(2, 1500))
    queue.start()

    scheduler.advance(2.9)
    assert len(queue) == 2

    scheduler.advance(0.1)
    assert len(queue) == 0
    assert len(scheduler.active('matchmaker')) == 1

    queue.stop()
    assert scheduler.active('matchmaker') == []


def test_server_stop_cancels_matchmaker_and_live_sessions(settings, scheduler, store, clock):
    server = GameServer(settings, scheduler, store, rng=random.Random(3), clock=clock)
    server.start()
    server.queue.enqueue(Player(1, 'alice', 1000), FakeChannel())
    server.queue.enqueue(Player(2, 'bob', 1000), FakeChannel())
    scheduler.advance(3)
    assert scheduler.active('deadline')

    server.stop()

    assert scheduler.active() == []
    assert len(server.registry) == 0
    assert server.registry.session_for_player(1) is None
