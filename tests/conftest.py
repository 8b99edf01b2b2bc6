"""Shared test fixtures."""
from datetime import datetime, timedelta

import pytest
from unittest.mock import patch, MagicMock
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from appleseed.config import Settings
from appleseed.database import Base, import_models
from appleseed.pipeline.base import PipelineContext
from appleseed.services.stacks import Balance, TransferResult, TxStatus
from appleseed.services.store import ProspectStore


NOW = datetime(2026, 3, 15, 12, 0, 0)


@pytest.fixture
def db_engine():
    """In-memory SQLite engine with schema created."""
    engine = create_engine('sqlite:///:memory:')
    import_models()
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(db_engine):
    """SQLAlchemy session bound to in-memory SQLite."""
    Session = sessionmaker(bind=db_engine)
    session = Session()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def store(db_session):
    return ProspectStore(db_session)


@pytest.fixture(autouse=True)
def no_sleep():
    """Stage delays and confirmation waits become no-ops."""
    with patch('time.sleep') as mock_sleep:
        yield mock_sleep


@pytest.fixture
def make_settings():
    """Factory fixture — Settings with test-friendly defaults."""
    def _make(**overrides):
        defaults = dict(
            network='mainnet',
            database_url='sqlite:///:memory:',
            github_token='ghp_test',
            treasury_address='SP3FBR2AGK5H9QBDH3EEN6DF8EK8JY7RX8QJ5SVTE',
            signer_url='http://signer.local',
            mirror_api_url='https://mirror.example.com',
            max_daily_prs=50,
            max_daily_payouts=20,
        )
        defaults.update(overrides)
        return Settings(**defaults)
    return _make


@pytest.fixture
def settings(make_settings):
    return make_settings()


def repo(name='agent-kit', owner='alice', stars=10, days_ago=5, description=None,
         query='topic:langchain stars:>10', language='Python', now=None):
    """MatchedRepo dict as the scanner stores it."""
    updated = (now or datetime.utcnow()) - timedelta(days=days_ago)
    return {
        'name': name,
        'full_name': f'{owner}/{name}',
        'url': f'https://github.com/{owner}/{name}',
        'stars': stars,
        'description': description,
        'language': language,
        'last_updated': updated.strftime('%Y-%m-%dT%H:%M:%SZ'),
        'matched_query': query,
    }


@pytest.fixture
def make_repo():
    return repo


@pytest.fixture
def make_prospect(store):
    """Factory fixture — inserts a prospect and applies lifecycle fields directly."""
    counter = {'n': 0}

    def _make(username=None, repos=None, **fields):
        counter['n'] += 1
        username = username or f'dev{counter["n"]}'
        prospect = store.add_prospect(
            username=username,
            github_id=1000 + counter['n'],
            repos=repos if repos is not None else [repo(owner=username)],
            discovered_via='langchain',
        )
        for key, value in fields.items():
            setattr(prospect, key, getattr(value, 'value', value))
        store.session.commit()
        return prospect
    return _make


@pytest.fixture
def mock_github():
    github = MagicMock()
    github.get_authenticated_user.return_value = 'appleseed-bot'
    github.fork_repository.return_value = {'default_branch': 'main'}
    github.open_pull_request.return_value = {
        'number': 7, 'html_url': 'https://github.com/alice/agent-kit/pull/7',
    }
    github.list_pull_request_comments.return_value = []
    return github


@pytest.fixture
def mock_chain():
    chain = MagicMock()
    chain.get_balance.return_value = Balance(native=5_000_000, token=1_000_000)
    chain.build_and_broadcast_transfer.return_value = TransferResult(txid='0xabc123')
    chain.get_transaction_status.return_value = TxStatus('success', block_height=812345)
    return chain


@pytest.fixture
def context(store, settings, mock_github, mock_chain):
    return PipelineContext(store=store, settings=settings, github=mock_github, chain=mock_chain)


@pytest.fixture
def mock_redis():
    """Mock Redis client. Returns a MagicMock with common Redis methods."""
    mock = MagicMock()
    mock.get.return_value = None
    mock.hgetall.return_value = {}
    with patch('appleseed.extensions._redis_client', mock):
        yield mock


class FakeRedis:
    """Minimal in-memory Redis fake for circuit breaker tests."""

    def __init__(self):
        self.get_store = {}
        self.hash_store = {}

    def get(self, key):
        return self.get_store.get(key)

    def set(self, key, value):
        self.get_store[key] = value

    def incr(self, key):
        val = int(self.get_store.get(key, 0)) + 1
        self.get_store[key] = str(val)
        return val

    def delete(self, *keys):
        for k in keys:
            self.get_store.pop(k, None)
            self.hash_store.pop(k, None)

    def hset(self, key, field, value):
        self.hash_store.setdefault(key, {})[field] = value

    def hincrby(self, key, field, amount):
        h = self.hash_store.setdefault(key, {})
        h[field] = str(int(h.get(field, 0)) + amount)

    def hgetall(self, key):
        return dict(self.hash_store.get(key, {}))

    def pipeline(self):
        return FakePipeline(self)


class FakePipeline:
    """Fake Redis pipeline that executes immediately."""

    def __init__(self, redis):
        self._redis = redis
        self._ops = []

    def set(self, key, value):
        self._ops.append(('set', key, value))
        return self

    def delete(self, *keys):
        self._ops.append(('delete', keys))
        return self

    def hincrby(self, key, field, amount):
        self._ops.append(('hincrby', key, field, amount))
        return self

    def hset(self, key, field, value):
        self._ops.append(('hset', key, field, value))
        return self

    def execute(self):
        for op in self._ops:
            if op[0] == 'set':
                self._redis.set(op[1], op[2])
            elif op[0] == 'delete':
                self._redis.delete(*op[1])
            elif op[0] == 'hincrby':
                self._redis.hincrby(op[1], op[2], op[3])
            elif op[0] == 'hset':
                self._redis.hset(op[1], op[2], op[3])
        self._ops = []


@pytest.fixture
def fake_redis():
    """In-memory Redis fake with dict-backed storage."""
    return FakeRedis()

