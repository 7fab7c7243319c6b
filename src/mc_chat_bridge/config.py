import logging

from environs import Env, ValidationError, validate

DEFAULT_USER_AGENT = "MC-BRIDGE/1.0"
DEFAULT_WELCOME_SERVER_NAME = "Salmonized Workspace"


class Configuration:
    """
    Bridge settings read from the environment and an optional `.env` file.

    Validation errors are collected and raised together by `env.seal()` as an
    `environs.EnvValidationError`, so a missing setting stops the process before
    any connection is attempted.
    """

    def __init__(self, env_path=None):
        ws_url_validator = validate.URL(schemes=("ws", "wss"), require_tld=False)
        renew_url_validator = validate.URL(
            schemes=("http", "https"), require_tld=False
        )

        # Read from and written back to (renewed credential) at the same path
        self.env_path = env_path or ".env"

        env = Env(eager=False)
        env.read_env(self.env_path, recurse=False)

        self.log_level = env.log_level("LOG_LEVEL", logging.INFO)

        # Chat transport
        self.ws_url = env.str("WS_URL", validate=ws_url_validator)
        self.cookie = env.str("COOKIE", validate=validate.Length(min=1))
        self.user_agent = env.str("USER_AGENT", DEFAULT_USER_AGENT)

        # Game server log
        self.log_file = env.str("LOG_FILE", validate=validate.Length(min=1))
        self.welcome_server_name = env.str(
            "WELCOME_SERVER_NAME", DEFAULT_WELCOME_SERVER_NAME
        )

        # Remote console
        self.rcon_host = env.str("RCON_HOST", "127.0.0.1")
        self.rcon_port = env.int(
            "RCON_PORT", 25575, validate=validate.Range(min=1, max=65535)
        )
        self.rcon_password = env.str("RCON_PASSWORD", "")

        # Inbound HTTP relay
        self.relay_host = env.str("RELAY_HOST", "127.0.0.1")
        self.relay_port = env.int(
            "RELAY_PORT", 8765, validate=validate.Range(min=1, max=65535)
        )
        self.relay_secret = env.str("RELAY_SECRET", None)

        def secret_required_validator(required):
            if required and not self.relay_secret:
                raise ValidationError(
                    "RELAY_SECRET must be set when RELAY_REQUIRE_SECRET is enabled."
                )

        self.relay_require_secret = env.bool(
            "RELAY_REQUIRE_SECRET", False, validate=secret_required_validator
        )

        # Credential renewal
        self.renew_token_url = env.str(
            "RENEW_TOKEN_URL", None, validate=renew_url_validator
        )
        self.renew_login_url = env.str(
            "RENEW_LOGIN_URL", None, validate=renew_url_validator
        )
        self.renew_username = env.str("RENEW_USERNAME", None)

        env.seal()

    @property
    def relay_enabled(self):
        return bool(self.rcon_password)

    @property
    def renewal_enabled(self):
        return bool(
            self.renew_token_url and self.renew_login_url and self.renew_username
        )
