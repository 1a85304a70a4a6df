import asyncio
import logging
from unittest.mock import MagicMock, patch

import pytest

import main


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("CONFIG_FILE", str(tmp_path / "missing.json"))
    monkeypatch.setenv("SHUTDOWN_GRACE", "0")
    monkeypatch.delenv("ACCOUNTS", raising=False)
    monkeypatch.delenv("CONNECTOR", raising=False)
    with patch("main.setup_logging"):
        yield


class TestParseArgs:

    def test_defaults(self):
        args = main.parse_args([])
        assert not args.status_table
        assert args.single is None
        assert not args.no_rotation
        assert not args.no_health

    def test_flags(self):
        args = main.parse_args(["--status-table", "--single", "BOT3", "--no-rotation", "--no-health"])
        assert args.status_table
        assert args.single == "BOT3"
        assert args.no_rotation
        assert args.no_health


class TestMain:
    """Test suite for the async entry point."""

    @pytest.mark.asyncio
    async def test_unknown_single_account(self, caplog):
        with caplog.at_level(logging.WARNING):
            assert await main.main(["--single", "NOPE"]) == 1
        assert "NOPE" in caplog.text

    @pytest.mark.asyncio
    async def test_unknown_connector(self, monkeypatch):
        monkeypatch.setenv("CONNECTOR", "carrier-pigeon")
        assert await main.main(["--no-health"]) == 2

    @pytest.mark.asyncio
    async def test_interrupt_shuts_farm_down(self):
        farm = MagicMock()
        farm.bootstrap.side_effect = KeyboardInterrupt

        with patch("main.PresenceFarm.from_settings", return_value=farm) as from_settings:
            assert await main.main(["--single", "bot2", "--no-rotation", "--no-health"]) == 0

        settings = from_settings.call_args.args[0]
        assert settings.rotation_enabled is False
        assert [i.name for i in from_settings.call_args.kwargs["identities"]] == ["BOT2"]
        assert from_settings.call_args.kwargs["console"] is None
        farm.shutdown.assert_called()

    @pytest.mark.asyncio
    async def test_invalid_environment_value(self, monkeypatch, caplog):
        monkeypatch.setenv("PORT", "not-a-port")
        with caplog.at_level(logging.ERROR):
            assert await main.main(["--no-health"]) == 2
        assert "Invalid configuration" in caplog.text

    @pytest.mark.asyncio
    async def test_health_port_in_use(self, monkeypatch, caplog):
        blocker = await asyncio.start_server(lambda r, w: None, "127.0.0.1", 0)
        port = blocker.sockets[0].getsockname()[1]
        monkeypatch.setenv("HEALTH_HOST", "127.0.0.1")
        monkeypatch.setenv("PORT", str(port))
        try:
            with caplog.at_level(logging.ERROR):
                assert await main.main([]) == 3
        finally:
            blocker.close()
            await blocker.wait_closed()
        assert f"port {port}" in caplog.text
