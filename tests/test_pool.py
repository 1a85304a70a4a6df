from unittest.mock import MagicMock

import pytest

from core.pool import ConnectionPool


class TestConnectionPool:
    """Test suite for ConnectionPool."""

    @pytest.fixture
    def connections(self, make_connection):
        return [make_connection(f"BOT{i}") for i in range(1, 4)]

    def test_preserves_order_and_size(self, connections):
        pool = ConnectionPool(connections)
        assert len(pool) == 3
        assert list(pool) == connections
        assert pool[1] is connections[1]

    def test_lookup_by_name(self, connections):
        pool = ConnectionPool(connections)
        assert pool.get("BOT2") is connections[1]
        assert pool.get("BOT9") is None

    def test_duplicate_names_rejected(self, make_connection):
        with pytest.raises(ValueError, match="BOT1"):
            ConnectionPool([make_connection("BOT1"), make_connection("BOT1")])

    def test_connected_count(self, connections):
        pool = ConnectionPool(connections)
        assert pool.connected_count() == 0

        for conn in connections[:2]:
            conn.start()
            conn.session.establish()
        connections[2].start()

        assert pool.connected_count() == 2

    def test_snapshot(self, connections):
        pool = ConnectionPool(connections)
        connections[0].start()
        names = [s.name for s in pool.snapshot()]
        states = [s.state for s in pool.snapshot()]
        assert names == ["BOT1", "BOT2", "BOT3"]
        assert states == ["connecting", "idle", "idle"]

    def test_stop_all_stops_everyone(self, connections, connector, clock):
        pool = ConnectionPool(connections)
        for conn in connections:
            conn.start()
        pool.stop_all()

        assert all(conn.stopped for conn in pool)
        assert connector.live_sessions() == []
        assert clock.pending() == []

    def test_stop_all_contains_failures(self, connections):
        broken = MagicMock()
        broken.name = "BROKEN"
        broken.stop.side_effect = RuntimeError("boom")
        pool = ConnectionPool([broken] + connections)

        pool.stop_all()

        broken.stop.assert_called_once()
        assert all(conn.stopped for conn in connections)
