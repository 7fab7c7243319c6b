import asyncio
import struct

import pytest

from mc_chat_bridge.rcon_client import (
    SERVERDATA_AUTH,
    SERVERDATA_AUTH_RESPONSE,
    SERVERDATA_EXECCOMMAND,
    SERVERDATA_RESPONSE_VALUE,
    RCON_Client,
    RCON_Error,
)

PASSWORD = "hunter2"


def packet(request_id, packet_type, body):
    payload = struct.pack("<ii", request_id, packet_type) + body.encode() + b"\x00\x00"
    return struct.pack("<i", len(payload)) + payload


async def read_packet(reader):
    (size,) = struct.unpack("<i", await reader.readexactly(4))
    data = await reader.readexactly(size)
    request_id, packet_type = struct.unpack("<ii", data[:8])
    return request_id, packet_type, data[8:-2].decode()


class FakeRconServer:
    """Minimal Minecraft style RCON server on a random local port."""

    def __init__(self, replies=None):
        self.replies = replies or {}
        self.commands = []
        self.sessions = 0
        self.server = None

    async def __aenter__(self):
        self.server = await asyncio.start_server(self.handle, "127.0.0.1", 0)
        return self

    async def __aexit__(self, *exc):
        self.server.close()
        await self.server.wait_closed()

    @property
    def port(self):
        return self.server.sockets[0].getsockname()[1]

    async def handle(self, reader, writer):
        self.sessions += 1
        try:
            request_id, packet_type, body = await read_packet(reader)
            assert packet_type == SERVERDATA_AUTH
            if body != PASSWORD:
                writer.write(packet(-1, SERVERDATA_AUTH_RESPONSE, ""))
                await writer.drain()
                return
            writer.write(packet(request_id, SERVERDATA_AUTH_RESPONSE, ""))
            await writer.drain()
            while True:
                request_id, packet_type, body = await read_packet(reader)
                assert packet_type == SERVERDATA_EXECCOMMAND
                self.commands.append(body)
                reply = self.replies.get(body, f"Unknown command: {body}")
                writer.write(packet(request_id, SERVERDATA_RESPONSE_VALUE, reply))
                await writer.drain()
        except asyncio.IncompleteReadError:
            pass
        finally:
            writer.close()


class TestRCONClient:
    @pytest.mark.asyncio
    async def test_command_round_trip(self):
        async with FakeRconServer({"list": "There are 0 of a max of 20 players online"}) as server:
            async with RCON_Client("127.0.0.1", server.port, PASSWORD) as rcon:
                reply = await rcon.command("list")

        assert reply == "There are 0 of a max of 20 players online"
        assert server.commands == ["list"]

    @pytest.mark.asyncio
    async def test_session_is_closed_on_exit(self):
        async with FakeRconServer() as server:
            rcon = RCON_Client("127.0.0.1", server.port, PASSWORD)
            async with rcon:
                await rcon.command("say hi")
            assert rcon.writer is None
            with pytest.raises(RCON_Error):
                await rcon.command("say again")

    @pytest.mark.asyncio
    async def test_bad_password(self):
        async with FakeRconServer() as server:
            with pytest.raises(RCON_Error, match="authentication"):
                async with RCON_Client("127.0.0.1", server.port, "wrong"):
                    pass
            assert server.commands == []

    @pytest.mark.asyncio
    async def test_unreachable_server(self):
        async with FakeRconServer() as server:
            port = server.port
        with pytest.raises(RCON_Error):
            async with RCON_Client("127.0.0.1", port, PASSWORD, timeout=2):
                pass
