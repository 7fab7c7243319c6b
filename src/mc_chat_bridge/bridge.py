import asyncio
import enum
import logging
from collections import deque
from dataclasses import dataclass

import websockets
from websockets.exceptions import WebSocketException

# Seconds
DELAY_ANNOTATION_THRESHOLD = 5
RECONNECT_DELAY = 5
IDLE_TIMEOUT = 10 * 60


class ConnectionState(enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    OPEN = "open"


@dataclass(frozen=True)
class QueuedMessage:
    text: str
    enqueued_at: float


def open_chat_connection(url, cookie, user_agent):
    """
    Default connector for `OutboundBridge`: a websocket to the chat room,
    authenticated by the session cookie.
    """
    return websockets.connect(
        url,
        additional_headers={"Cookie": cookie},
        user_agent_header=user_agent,
    )


class OutboundBridge:
    """
    Delivers rendered events to the chat room over a lazily opened websocket.

    Messages are held in a FIFO queue until they are sent.  A connection is
    only opened when there is something to send, is reopened after
    `RECONNECT_DELAY` seconds while messages are still waiting, and is closed
    again after `IDLE_TIMEOUT` seconds without traffic.

    All state lives on one event loop.  `connector(url, cookie, user_agent)`
    must return an awaitable resolving to an async iterable of inbound frames
    with `send()` and `close()` coroutines (a websockets client connection).
    """

    def __init__(
        self,
        url,
        credential,
        user_agent,
        connector=open_chat_connection,
        loop=None,
        logger=None,
    ):
        self.url = url
        self.credential = credential
        self.user_agent = user_agent
        self.connector = connector
        self.loop = loop or asyncio.get_running_loop()
        self.logger = logger or logging.getLogger(__name__)

        self.state = ConnectionState.DISCONNECTED
        self.queue = deque()
        self.connection = None

        self._connection_task = None
        self._flush_task = None
        self._close_task = None
        self._idle_timer = None
        self._reconnect_timer = None

    def enqueue(self, text: str):
        self.queue.append(QueuedMessage(text, self.loop.time()))
        if self.state is ConnectionState.OPEN:
            self.flush()
        else:
            self.logger.info(
                f"[Queue] Not connected, message queued (backlog: {len(self.queue)})"
            )
            self.connect()

    def connect(self):
        """Start a connection attempt unless one is open or in flight."""
        if self.state is not ConnectionState.DISCONNECTED:
            return
        self._cancel_reconnect_timer()
        self.state = ConnectionState.CONNECTING
        self._connection_task = self.loop.create_task(self._run_connection())

    async def _run_connection(self):
        # The credential is read once per attempt
        cookie = self.credential.value
        self.logger.debug(f'Connecting to chat room "{self.url}"...')
        try:
            connection = await self.connector(self.url, cookie, self.user_agent)
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            self.logger.error(f"[WS] Connection failed: {e}")
            self._on_close(None)
            return
        except Exception:
            self.logger.exception("[WS] Unexpected error while connecting")
            self._on_close(None)
            return

        self.connection = connection
        self.state = ConnectionState.OPEN
        self.logger.info(f'[WS] Connected to "{self.url}"')
        self.flush()
        try:
            async for _ in connection:
                # Inbound frames are not relayed
                pass
        except WebSocketException as e:
            self.logger.error(f"[WS] Connection error: {e}")
        finally:
            self._on_close(getattr(connection, "close_code", None))

    def flush(self):
        """Drain the queue to the open connection, unless a flush is running."""
        if self.state is not ConnectionState.OPEN:
            return
        if self._flush_task is not None and not self._flush_task.done():
            return
        self._flush_task = self.loop.create_task(self._flush(self.connection))

    async def _flush(self, connection):
        # Bound to one connection; a flush never outlives the connection it started on
        while self.queue and self.connection is connection:
            message = self.queue[0]
            text = message.text
            latency = self.loop.time() - message.enqueued_at
            if latency > DELAY_ANNOTATION_THRESHOLD:
                text += f" (delayed {int(latency + 0.5)}s)"
            try:
                await connection.send(text)
            except (OSError, WebSocketException) as e:
                self.logger.error(f"[WS] Send failed, closing connection: {e}")
                self.close_connection(connection)
                return
            if self.connection is not connection:
                # Closed mid-send; the message goes out again on the next connection
                return
            self.queue.popleft()
            self.logger.info(f"[Flush] {text}")
        if self.connection is connection:
            self._arm_idle_timer()

    def close_connection(self, connection=None):
        """Close the open connection; the close is handled by `_on_close`."""
        if connection is None:
            connection = self.connection
        if connection is None or connection is not self.connection:
            return
        if self._close_task is not None and not self._close_task.done():
            return
        self._close_task = self.loop.create_task(connection.close())

    def _on_close(self, code):
        self.state = ConnectionState.DISCONNECTED
        self.connection = None
        self._close_task = None
        if self._flush_task is not None and not self._flush_task.done():
            self._flush_task.cancel()
        self._flush_task = None
        self._cancel_idle_timer()
        self.logger.info(f"[WS] Connection closed (code: {code})")
        if self.queue:
            self._reconnect_timer = self._replace_timer(
                self._reconnect_timer, RECONNECT_DELAY, self._reconnect
            )

    def _reconnect(self):
        self._reconnect_timer = None
        if self.queue:
            self.connect()

    def _arm_idle_timer(self):
        self._idle_timer = self._replace_timer(
            self._idle_timer, IDLE_TIMEOUT, self._on_idle
        )

    def _on_idle(self):
        self._idle_timer = None
        if self.state is ConnectionState.OPEN:
            self.logger.info(
                f"[Idle] No traffic for {IDLE_TIMEOUT // 60} minutes, closing connection"
            )
            self.close_connection()

    def _replace_timer(self, timer, delay, callback):
        if timer is not None:
            timer.cancel()
        return self.loop.call_later(delay, callback)

    def _cancel_idle_timer(self):
        if self._idle_timer is not None:
            self._idle_timer.cancel()
            self._idle_timer = None

    def _cancel_reconnect_timer(self):
        if self._reconnect_timer is not None:
            self._reconnect_timer.cancel()
            self._reconnect_timer = None

    async def shutdown(self):
        """Cancel pending timers and close the connection, dropping the queue."""
        self._cancel_idle_timer()
        self._cancel_reconnect_timer()
        if self.queue:
            self.logger.warning(
                f"Shutting down with {len(self.queue)} undelivered message(s)"
            )
            self.queue.clear()
        if self.connection is not None:
            await self.connection.close()
        for task in (self._flush_task, self._connection_task):
            if task is not None and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
