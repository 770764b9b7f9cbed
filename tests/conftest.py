"""
Pytest configuration and fixtures for live engine tests.
"""
import os
import copy
import sys
import pytest

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

# Set testing environment before importing app
os.environ['FLASK_ENV'] = 'testing'

from livescore.app import create_app, shutdown_app
from livescore.models import db
from live_engine.store import MemoryEntityStore
from live_engine.publisher import ResultPublisher
from live_engine.recompute import RecomputeScheduler
from live_engine.match_engine import MatchEngine


UNIVERSITIES = {
    'alpha': {
        'id': 'alpha', 'name': 'Alpha', 'zone': 'LZ', 'status': 'competing',
        'wins': 3, 'losses': 1, 'draws': 0, 'points': 10
    },
    'beta': {
        'id': 'beta', 'name': 'Beta', 'zone': 'SZ', 'status': 'competing',
        'wins': 2, 'losses': 1, 'draws': 2, 'points': 8
    },
    'gamma': {
        'id': 'gamma', 'name': 'Gamma', 'zone': 'NZ', 'status': 'not-competing',
        'wins': 5, 'losses': 0, 'draws': 0, 'points': 15
    },
}


@pytest.fixture
def seed_data():
    """Raw records for three universities, one of them not competing."""
    return {'universities': copy.deepcopy(UNIVERSITIES)}


@pytest.fixture
def store(seed_data):
    """In-memory entity store seeded with the sample universities."""
    return MemoryEntityStore(seed_data)


@pytest.fixture
def empty_store():
    return MemoryEntityStore()


@pytest.fixture
def publisher(store):
    return ResultPublisher(store)


@pytest.fixture
def scheduler(store, publisher):
    """Foreground scheduler: passes only run when a test calls run_pending()."""
    scheduler = RecomputeScheduler(store, publisher, background=False)
    scheduler.attach()
    yield scheduler
    scheduler.shutdown()


@pytest.fixture
def engine(store):
    return MatchEngine(store)


@pytest.fixture
def live_match(engine):
    """A match between the two competing universities, already live."""
    match = engine.create_match('alpha', 'beta', 'Football', 'LZ')
    return engine.transition(match.id, 'live')


@pytest.fixture(scope='function')
def app(store):
    """Create application for testing."""
    app = create_app('testing', store=store)

    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()

    shutdown_app(app)


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture
def mock_redis(mocker):
    """MagicMock standing in for a redis.Redis client."""
    client = mocker.MagicMock()
    client.ping.return_value = True
    return client
