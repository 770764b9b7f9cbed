"""
Unit tests for client sync: match diffing, the stale guard and the hub.
"""
from dataclasses import replace

from live_engine.events import EventType
from live_engine.models import (
    Match, MatchStatus, StatsSummary, Leaderboard, PublishedResults
)
from live_engine.sync import ClientSyncHub, SubscriberSession, diff_matches


def make_match(status=MatchStatus.LIVE, score=(0, 0), id='m1'):
    return Match(id=id, team_a='alpha', team_b='beta', sport='Football', zone='LZ',
                 score_a=score[0], score_b=score[1], status=status)


def results(calculated_at, version):
    return PublishedResults(
        stats=StatsSummary(calculated_at=calculated_at, calculated_by='scheduled-trigger'),
        leaderboard=Leaderboard(last_updated=calculated_at),
        version=version,
    )


class TestDiffMatches:
    """Tests for diff_matches."""

    def test_new_live_match_starts(self):
        events = diff_matches({}, {'m1': make_match()})
        assert [e.type for e in events] == [EventType.MATCH_START]

    def test_scheduled_to_live_starts(self):
        before = {'m1': make_match(MatchStatus.SCHEDULED)}
        events = diff_matches(before, {'m1': make_match()})
        assert [e.type for e in events] == [EventType.MATCH_START]

    def test_score_change_while_live(self):
        before = {'m1': make_match(score=(0, 0))}
        events = diff_matches(before, {'m1': make_match(score=(1, 0))})

        assert [e.type for e in events] == [EventType.SCORE_UPDATE]
        assert events[0].data['previous_score'] == [0, 0]
        assert events[0].data['score_a'] == 1

    def test_unchanged_live_match_is_silent(self):
        before = {'m1': make_match(score=(2, 2))}
        assert diff_matches(before, {'m1': make_match(score=(2, 2))}) == []

    def test_live_to_completed_ends(self):
        before = {'m1': make_match(score=(3, 1))}
        events = diff_matches(before, {'m1': make_match(MatchStatus.COMPLETED, (3, 1))})

        assert [e.type for e in events] == [EventType.MATCH_END]
        assert events[0].data['final_score'] == [3, 1]

    def test_completed_seen_first_time_is_silent(self):
        assert diff_matches({}, {'m1': make_match(MatchStatus.COMPLETED)}) == []

    def test_resume_from_pause_restarts(self):
        before = {'m1': make_match(MatchStatus.PAUSED)}
        events = diff_matches(before, {'m1': make_match()})
        assert [e.type for e in events] == [EventType.MATCH_START]

    def test_going_from_live_to_paused_is_silent(self):
        before = {'m1': make_match()}
        assert diff_matches(before, {'m1': make_match(MatchStatus.PAUSED)}) == []


class TestStaleGuard:
    """Tests for SubscriberSession.receive_results."""

    def test_accepts_first_results(self):
        session = SubscriberSession('s1')
        assert session.receive_results(results(1000, 1))
        assert session.results.version == 1

    def test_rejects_older_results(self):
        session = SubscriberSession('s1')
        session.receive_results(results(2000, 2))

        assert not session.receive_results(results(1000, 1))
        assert session.results.version == 2

    def test_rejects_duplicate_results(self):
        session = SubscriberSession('s1')
        session.receive_results(results(2000, 2))
        assert not session.receive_results(results(2000, 2))

    def test_accepts_same_stamp_with_new_version(self):
        session = SubscriberSession('s1')
        session.receive_results(results(2000, 2))
        assert session.receive_results(results(2000, 3))

    def test_accepts_newer_results(self):
        session = SubscriberSession('s1')
        session.receive_results(results(2000, 2))
        assert session.receive_results(results(3000, 3))


class TestSubscriberSession:
    """Tests for per-subscriber notification handling."""

    def test_start_and_end_always_alert(self):
        session = SubscriberSession('s1')
        session.receive_matches({'m1': make_match()})
        session.receive_matches({'m1': make_match(MatchStatus.COMPLETED)})

        assert [n.alert for n in session.notifications] == [True, True]

    def test_score_updates_alert_only_for_favourites(self):
        fan = SubscriberSession('fan', favourites=['beta'])
        neutral = SubscriberSession('neutral')
        for session in (fan, neutral):
            session.receive_matches({'m1': make_match()})
            session.receive_matches({'m1': make_match(score=(0, 1))})

        assert fan.notifications[0].event.type == EventType.SCORE_UPDATE
        assert fan.notifications[0].alert is True
        assert neutral.notifications[0].alert is False

    def test_unread_count_and_mark_read(self):
        session = SubscriberSession('s1')
        session.receive_matches({'m1': make_match(), 'm2': make_match(id='m2')})
        assert session.unread_count == 2

        session.mark_all_read()
        assert session.unread_count == 0

    def test_history_is_bounded(self):
        session = SubscriberSession('s1', history_size=3)
        for score in range(6):
            session.receive_matches({'m1': make_match(score=(score, 0))})
        assert len(session.notifications) == 3

    def test_process_pending_drains_inbox(self):
        session = SubscriberSession('s1')
        session.offer('matches', {'m1': make_match()})
        session.offer('results', results(1000, 1))

        outputs = session.process_pending()

        assert [kind for kind, _ in outputs] == ['notification', 'results']
        assert session.process_pending() == []

    def test_closed_session_ignores_offers(self):
        session = SubscriberSession('s1')
        session.close()
        session.offer('matches', {'m1': make_match()})
        assert session.process_pending() == []

    def test_stream_yields_connect_then_events(self):
        session = SubscriberSession('s1')
        session.offer('matches', {'m1': make_match()})
        session.close()

        lines = list(session.stream(keepalive=0.01))

        assert len(lines) == 2
        assert '"connected"' in lines[0]
        assert '"match_start"' in lines[1]


class TestClientSyncHub:
    """Tests for ClientSyncHub fan-out."""

    def test_each_subscriber_gets_its_own_notifications(self):
        hub = ClientSyncHub()
        first = hub.register('s1')
        second = hub.register('s2')

        hub.broadcast_matches({'m1': make_match()})

        assert len(first.process_pending()) == 1
        assert len(second.process_pending()) == 1

    def test_late_subscriber_is_primed(self):
        hub = ClientSyncHub()
        hub.broadcast_matches({'m1': make_match()})
        hub.broadcast_results(results(1000, 1))

        session = hub.register('late')
        kinds = [kind for kind, _ in session.process_pending()]

        assert kinds == ['notification', 'results']

    def test_older_results_do_not_replace_latest(self):
        hub = ClientSyncHub()
        hub.broadcast_results(results(2000, 2))
        hub.broadcast_results(results(1000, 1))

        session = hub.register('late')
        outputs = session.process_pending()
        assert outputs[0][1].version == 2

    def test_reregister_closes_previous_session(self):
        hub = ClientSyncHub()
        old = hub.register('s1')
        new = hub.register('s1')

        assert old.closed
        assert hub.get('s1') is new
        assert hub.subscriber_count == 1

    def test_stale_unregister_keeps_newer_session(self):
        hub = ClientSyncHub()
        old = hub.register('s1')
        new = hub.register('s1')

        hub.unregister('s1', old)
        assert hub.get('s1') is new

        hub.unregister('s1', new)
        assert hub.get('s1') is None
        assert new.closed

    def test_attach_follows_match_writes(self, engine, store):
        hub = ClientSyncHub()
        hub.attach(store)
        session = hub.register('s1')

        match = engine.create_match('alpha', 'beta', 'Football', 'LZ')
        engine.transition(match.id, 'live')
        engine.update_score(match.id, 1, 0)

        types = [value.type for kind, value in session.process_pending() if kind == 'notification']
        assert types == [EventType.MATCH_START, EventType.SCORE_UPDATE]

    def test_replace_keeps_snapshots_immutable(self):
        hub = ClientSyncHub()
        session = hub.register('s1')
        live = make_match()
        hub.broadcast_matches({'m1': live})
        hub.broadcast_matches({'m1': replace(live, score_a=1)})

        events = [value for _, value in session.process_pending()]
        assert [e.type for e in events] == [EventType.MATCH_START, EventType.SCORE_UPDATE]
        assert live.score_a == 0
