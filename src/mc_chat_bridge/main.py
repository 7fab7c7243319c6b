import asyncio
import logging
import signal
import sys

from environs import EnvValidationError

from mc_chat_bridge.bridge import OutboundBridge
from mc_chat_bridge.config import Configuration
from mc_chat_bridge.credentials import SessionCredential
from mc_chat_bridge.log_source import LogSource
from mc_chat_bridge.parser import LineParser, build_rules
from mc_chat_bridge.relay import RelayServer, create_app
from mc_chat_bridge.renewal import CredentialRenewal


class Bridge:
    """
    Owns every long-lived piece of the process: the session credential, the
    outbound chat connection, the log follower, the inbound relay and the
    credential renewal loop.

    Built once inside the running event loop, torn down by `shutdown()`.
    """

    def __init__(self, config, logger=None):
        self.config = config
        self.logger = logger or logging.getLogger(__name__)

        self.credential = SessionCredential(config.cookie)
        self.parser = LineParser(build_rules(config.welcome_server_name))
        self.outbound = OutboundBridge(
            config.ws_url, self.credential, config.user_agent
        )
        self.log_source = LogSource(config.log_file)

        self.relay = None
        if config.relay_enabled:
            self.relay = RelayServer(
                create_app(config), config.relay_host, config.relay_port
            )
        else:
            self.logger.info("RCON_PASSWORD is not set, inbound relay disabled")

        self.renewal = None
        if config.renewal_enabled:
            self.renewal = CredentialRenewal(self.credential, config)
        else:
            self.logger.info("Renewal endpoints not configured, credential renewal disabled")

        self._tasks = []

    async def pump_log_lines(self):
        async for line in self.log_source.lines():
            event = self.parser.parse(line)
            if event is not None:
                self.outbound.enqueue(event.render())

    def start(self):
        self.logger.info(f'Following server log "{self.config.log_file}"')
        self.logger.info(f'Relaying to chat room "{self.config.ws_url}"')
        self._tasks.append(asyncio.create_task(self.pump_log_lines()))
        if self.relay is not None:
            self.logger.info(
                f"Relay listening on {self.config.relay_host}:{self.config.relay_port}"
            )
            self._tasks.append(asyncio.create_task(self.relay.serve()))
        if self.renewal is not None:
            self.renewal.start()

    async def shutdown(self):
        self.logger.info("Shutting down bridge...")
        if self.relay is not None:
            self.relay.stop()
        for task in self._tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        await self.log_source.stop()
        if self.renewal is not None:
            await self.renewal.close()
        await self.outbound.shutdown()


async def serve(config):
    bridge = Bridge(config)

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, stop.set)

    bridge.start()
    try:
        await stop.wait()
    finally:
        await bridge.shutdown()


def run_bridge():
    """
    Entry point for the bridge.
    """
    try:
        config = Configuration()
    except EnvValidationError as e:
        logging.basicConfig(level=logging.ERROR)
        logging.getLogger(__package__).error(f"Invalid configuration: {e}")
        sys.exit(1)

    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logger = logging.getLogger(__package__)

    # Third party libraries are spammy at INFO/DEBUG
    for name in ("websockets", "httpx", "uvicorn.access", "discord"):
        logging.getLogger(name).setLevel(logging.WARNING)

    logger.info("Starting bridge services...")
    asyncio.run(serve(config))
    return 0


if __name__ == "__main__":
    sys.exit(run_bridge())
