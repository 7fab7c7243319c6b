"""
Local HTTP endpoint that relays chat room commands into the game server.

A single route is served:

    POST /    Authorization: Bearer <secret>    {"command": "say hi"}

Each accepted request opens its own RCON session, runs exactly one command
and closes the session again.  Every other method or path is answered 404.
"""

import contextlib
import logging
import secrets

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse

from mc_chat_bridge.rcon_client import RCON_Client, RCON_Error

ALL_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]


def bearer_token_matches(authorization, secret):
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not token:
        return False
    return secrets.compare_digest(token.strip().encode(), secret.encode())


def create_app(config, rcon_factory=RCON_Client, logger=None):
    """
    Build the relay application.

    `rcon_factory(host, port, password)` must return an async context manager
    exposing `command()`; tests substitute a fake.
    """
    logger = logger or logging.getLogger(__name__)
    app = FastAPI(
        title="mc-chat-bridge relay", docs_url=None, redoc_url=None, openapi_url=None
    )

    if not config.relay_secret:
        logger.warning(
            "RELAY_SECRET is not set, relay requests are accepted without authentication"
        )

    @app.post("/")
    async def submit_command(request: Request):
        if config.relay_secret and not bearer_token_matches(
            request.headers.get("authorization"), config.relay_secret
        ):
            logger.warning(
                f"Rejected relay request from {request.client.host if request.client else 'unknown'}: bad or missing token"
            )
            return PlainTextResponse("Unauthorized", status_code=401)

        try:
            payload = await request.json()
        except ValueError:
            return PlainTextResponse("Missing command", status_code=400)
        command = payload.get("command") if isinstance(payload, dict) else None
        if not isinstance(command, str) or not command.strip():
            return PlainTextResponse("Missing command", status_code=400)

        logger.info(f'[Relay] Running command "{command}"')
        try:
            async with rcon_factory(
                config.rcon_host, config.rcon_port, config.rcon_password
            ) as rcon:
                reply = await rcon.command(command)
        except RCON_Error:
            logger.exception(f'[Relay] RCON command "{command}" failed')
            return PlainTextResponse("RCON error", status_code=500)
        logger.info(f'[Relay] RCON replied "{reply}"')
        return PlainTextResponse("OK")

    @app.api_route("/{path:path}", methods=ALL_METHODS)
    async def not_found(path: str):
        return PlainTextResponse("Not Found", status_code=404)

    return app


class RelayServer(uvicorn.Server):
    """
    uvicorn server run as a task on the bridge's event loop.
    """

    def __init__(self, app, host, port):
        super().__init__(
            uvicorn.Config(
                app, host=host, port=port, log_config=None, access_log=False
            )
        )

    @contextlib.contextmanager
    def capture_signals(self):
        # SIGINT/SIGTERM are handled by the bridge, which sets should_exit
        yield

    def stop(self):
        self.should_exit = True
