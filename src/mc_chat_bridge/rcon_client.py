import asyncio
import logging
import struct

SERVERDATA_AUTH = 3
SERVERDATA_AUTH_RESPONSE = 2
SERVERDATA_EXECCOMMAND = 2
SERVERDATA_RESPONSE_VALUE = 0

# Seconds allowed for connecting and for each request/response exchange
RCON_TIMEOUT = 10.0


class RCON_Error(Exception):
    pass


class RCON_Client:
    """
    Represents one session with a game server's remote console (Source RCON
    protocol, as spoken by Minecraft).

    A session is meant to be short lived:

        async with RCON_Client(host, port, password) as rcon:
            reply = await rcon.command("say hello")

    Sessions are never pooled; callers open a new one per command.
    """

    def __init__(self, host, port, password, timeout=RCON_TIMEOUT, logger=None):
        self.host = host
        self.port = port
        self.password = password
        self.timeout = timeout
        self.logger = logger or logging.getLogger(__name__)
        self.reader = None
        self.writer = None
        self._request_id = 0

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def connect(self):
        self.logger.debug(f'Opening RCON session to "{self.host}:{self.port}"')
        try:
            self.reader, self.writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port), self.timeout
            )
        except (OSError, asyncio.TimeoutError) as e:
            raise RCON_Error(
                f'Could not connect to RCON at "{self.host}:{self.port}": {e}'
            ) from e

        request_id = await self._send_packet(SERVERDATA_AUTH, self.password)
        while True:
            reply_id, packet_type, _ = await self._recv_packet()
            # Some servers send an empty RESPONSE_VALUE ahead of the auth reply
            if packet_type == SERVERDATA_AUTH_RESPONSE:
                break
        # A rejected password is answered with request id -1
        if reply_id != request_id:
            await self.close()
            raise RCON_Error("RCON authentication failed")

    async def command(self, command: str) -> str:
        if self.writer is None:
            raise RCON_Error("RCON session is not open")
        request_id = await self._send_packet(SERVERDATA_EXECCOMMAND, command)
        reply_id, _, body = await self._recv_packet()
        if reply_id != request_id:
            raise RCON_Error(
                f"RCON reply id {reply_id} does not match request id {request_id}"
            )
        return body

    async def close(self):
        if self.writer is None:
            return
        writer, self.writer, self.reader = self.writer, None, None
        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            # The server may already have dropped the socket
            pass
        self.logger.debug(f'Closed RCON session to "{self.host}:{self.port}"')

    def _next_id(self):
        self._request_id += 1
        return self._request_id

    async def _send_packet(self, packet_type, body):
        request_id = self._next_id()
        payload = (
            struct.pack("<ii", request_id, packet_type)
            + body.encode("utf-8")
            + b"\x00\x00"
        )
        self.writer.write(struct.pack("<i", len(payload)) + payload)
        try:
            await asyncio.wait_for(self.writer.drain(), self.timeout)
        except (OSError, asyncio.TimeoutError) as e:
            raise RCON_Error(f"Failed to send RCON packet: {e}") from e
        return request_id

    async def _recv_packet(self):
        try:
            raw_size = await asyncio.wait_for(
                self.reader.readexactly(4), self.timeout
            )
            (size,) = struct.unpack("<i", raw_size)
            if size < 10:
                raise RCON_Error(f"Malformed RCON packet of size {size}")
            data = await asyncio.wait_for(self.reader.readexactly(size), self.timeout)
        except asyncio.IncompleteReadError as e:
            raise RCON_Error("RCON connection closed by server") from e
        except (OSError, asyncio.TimeoutError) as e:
            raise RCON_Error(f"Failed to read RCON packet: {e}") from e
        request_id, packet_type = struct.unpack("<ii", data[:8])
        body = data[8:-2].decode("utf-8", errors="replace")
        return request_id, packet_type, body
