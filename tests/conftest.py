import pytest

from connectors.base import DISCONNECTED, Connector, Session
from core.clock import ManualClock
from core.config import Endpoint, Identity, RetryPolicy
from core.connection import ManagedConnection


class FakeSession(Session):
    """Session driven by the test instead of a network."""

    def __init__(self, identity, endpoint):
        super().__init__(identity, endpoint)
        self.close_calls = 0

    def establish(self):
        self._established()

    def terminate(self, reason=None, kind=DISCONNECTED):
        self._terminated(reason, kind)

    def fail(self, exc):
        self._error(exc)

    def close(self):
        self.close_calls += 1
        self.closed = True


class FakeConnector(Connector):
    """Records every session it hands out; can be told to raise."""

    name = "fake"

    def __init__(self):
        self.sessions = []
        self.fail_with = None

    def connect(self, identity, endpoint):
        if self.fail_with is not None:
            raise self.fail_with
        session = FakeSession(identity, endpoint)
        self.sessions.append(session)
        return session

    def sessions_for(self, name):
        return [s for s in self.sessions if s.identity.name == name]

    def live_sessions(self):
        return [s for s in self.sessions if not s.closed]


class FixedRandom:
    """Stand-in RNG returning a constant from ``random()``."""

    def __init__(self, value=0.0):
        self.value = value

    def random(self):
        return self.value


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def connector():
    return FakeConnector()


@pytest.fixture
def endpoint():
    return Endpoint(host="play.example.net", port=19132)


@pytest.fixture
def make_identity():
    def _make(name="BOT1"):
        return Identity(name=name, profile_path=f"./profiles/{name}")
    return _make


@pytest.fixture
def fixed_random():
    return FixedRandom


@pytest.fixture
def make_connection(clock, connector, endpoint, make_identity):
    """Factory for ManagedConnection wired to the fake connector and clock."""
    def _make(name="BOT1", jitter_value=0.0, **kwargs):
        kwargs.setdefault("retry_policy", RetryPolicy())
        kwargs.setdefault("rng", FixedRandom(jitter_value))
        return ManagedConnection(make_identity(name), connector, endpoint, clock, **kwargs)
    return _make
