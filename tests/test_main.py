from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from mc_chat_bridge.main import Bridge, run_bridge

SERVER = "[12:34:56] [Server thread/INFO]: "


def make_config(**overrides):
    values = dict(
        ws_url="wss://chat.example/room",
        cookie="session=abc",
        user_agent="MC-BRIDGE/1.0",
        log_file="/srv/minecraft/logs/latest.log",
        welcome_server_name="Salmonized Workspace",
        relay_enabled=False,
        renewal_enabled=False,
    )
    values.update(overrides)
    return SimpleNamespace(**values)


class FakeLogSource:
    def __init__(self, lines):
        self._lines = lines
        self.stop = AsyncMock()

    async def lines(self):
        for line in self._lines:
            yield line


class TestBridge:
    @pytest.mark.asyncio
    async def test_matching_lines_are_enqueued_rendered(self):
        bridge = Bridge(make_config())
        bridge.log_source = FakeLogSource(
            [
                SERVER + "Steve joined the game",
                SERVER + "Saving chunks for level 'ServerLevel[world]'",
                "[12:34:57] [Server thread/WARN]: Can't keep up!",
                SERVER + "Steve fell from a high place",
            ]
        )
        bridge.outbound = MagicMock()

        await bridge.pump_log_lines()

        assert [c.args[0] for c in bridge.outbound.enqueue.call_args_list] == [
            "[INFO] Steve joined the game",
            "[INFO] Steve fell from a high place",
        ]

    @pytest.mark.asyncio
    async def test_optional_components_follow_configuration(self):
        bridge = Bridge(make_config())
        assert bridge.relay is None
        assert bridge.renewal is None

        config = make_config(
            relay_enabled=True,
            relay_secret="s3cret",
            relay_host="127.0.0.1",
            relay_port=8765,
            rcon_host="127.0.0.1",
            rcon_port=25575,
            rcon_password="rcon-pass",
            renewal_enabled=True,
        )
        bridge = Bridge(config)
        assert bridge.relay is not None
        assert bridge.renewal is not None
        assert bridge.renewal.credential is bridge.credential
        assert bridge.outbound.credential is bridge.credential
        await bridge.renewal.client.aclose()

    @pytest.mark.asyncio
    async def test_shutdown_stops_everything(self):
        bridge = Bridge(make_config())
        bridge.log_source = FakeLogSource([])
        bridge.outbound = MagicMock(shutdown=AsyncMock())
        bridge.renewal = MagicMock(close=AsyncMock())

        bridge.start()
        await bridge.shutdown()

        bridge.log_source.stop.assert_awaited_once()
        bridge.renewal.start.assert_called_once()
        bridge.renewal.close.assert_awaited_once()
        bridge.outbound.shutdown.assert_awaited_once()


class TestRunBridge:
    def test_invalid_configuration_exits(self, clean_env, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        with pytest.raises(SystemExit) as excinfo:
            run_bridge()
        assert excinfo.value.code == 1

    def test_runs_until_stopped(self):
        config = make_config(log_level=20)
        with patch("mc_chat_bridge.main.Configuration", return_value=config), patch(
            "mc_chat_bridge.main.serve", new=AsyncMock()
        ) as serve:
            assert run_bridge() == 0
        serve.assert_awaited_once_with(config)
