"""
Unit tests for ResultPublisher.
"""
import pytest
from live_engine.models import Leaderboard, StatsSummary
from live_engine.publisher import ResultPublisher, SCHEDULED_TRIGGER, MANUAL_TRIGGER


class TestPublish:
    """Tests for publish and current."""

    def test_nothing_published_initially(self, publisher):
        assert publisher.current() is None

    def test_publish_stamps_both_artifacts(self, publisher):
        results = publisher.publish(StatsSummary(total_points=3), Leaderboard(), version=4)

        assert results.calculated_at is not None
        assert results.leaderboard.last_updated == results.calculated_at
        assert results.calculated_by == SCHEDULED_TRIGGER
        assert results.version == 4
        assert publisher.current() is results

    def test_publish_writes_one_stats_record(self, publisher, store):
        results = publisher.publish(StatsSummary(total_points=3), Leaderboard(),
                                    provenance=MANUAL_TRIGGER)

        stored = store.get('stats')
        assert stored['summary']['totalPoints'] == 3
        assert stored['summary']['calculatedBy'] == MANUAL_TRIGGER
        assert stored['leaderboard']['lastUpdated'] == results.calculated_at

    def test_calculated_at_never_decreases(self, publisher, mocker):
        mocker.patch('live_engine.publisher.now_ms', return_value=5000)
        first = publisher.publish(StatsSummary(), Leaderboard(), version=1)

        mocker.patch('live_engine.publisher.now_ms', return_value=4000)
        second = publisher.publish(StatsSummary(), Leaderboard(), version=2)

        assert first.calculated_at == 5000
        assert second.calculated_at == 5000

    def test_stamp_never_falls_below_stored_stamp(self, store, mocker):
        """A second publisher on the same store cannot stamp behind the first."""
        first = ResultPublisher(store)
        second = ResultPublisher(store)

        mocker.patch('live_engine.publisher.now_ms', return_value=5000)
        first.publish(StatsSummary(total_points=1), Leaderboard(), version=1)

        mocker.patch('live_engine.publisher.now_ms', return_value=4000)
        results = second.publish(StatsSummary(total_points=2), Leaderboard(), version=1)

        assert results.calculated_at == 5000
        assert store.get('stats')['summary']['lastCalculated'] == 5000
        assert store.get('stats')['summary']['totalPoints'] == 2

    def test_failed_store_write_keeps_previous(self, store, mocker):
        publisher = ResultPublisher(store)
        first = publisher.publish(StatsSummary(total_points=1), Leaderboard(), version=1)

        mocker.patch.object(store, 'modify', side_effect=RuntimeError('store down'))
        with pytest.raises(RuntimeError):
            publisher.publish(StatsSummary(total_points=2), Leaderboard(), version=2)

        assert publisher.current() is first

    def test_works_without_store(self):
        publisher = ResultPublisher()
        assert publisher.publish(StatsSummary(), Leaderboard()).version == 0


class TestListeners:
    """Tests for publication listeners."""

    def test_listener_receives_results(self, publisher, mocker):
        listener = mocker.MagicMock()
        publisher.add_listener(listener)

        results = publisher.publish(StatsSummary(), Leaderboard())
        listener.assert_called_once_with(results)

    def test_failing_listener_does_not_block_others(self, publisher, mocker):
        broken = mocker.MagicMock(side_effect=RuntimeError('boom'))
        healthy = mocker.MagicMock()
        publisher.add_listener(broken)
        publisher.add_listener(healthy)

        results = publisher.publish(StatsSummary(), Leaderboard())

        healthy.assert_called_once_with(results)
        assert publisher.current() is results
