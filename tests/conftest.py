import pytest

CONFIG_KEYS = (
    "LOG_LEVEL",
    "WS_URL",
    "COOKIE",
    "USER_AGENT",
    "LOG_FILE",
    "WELCOME_SERVER_NAME",
    "RCON_HOST",
    "RCON_PORT",
    "RCON_PASSWORD",
    "RELAY_HOST",
    "RELAY_PORT",
    "RELAY_SECRET",
    "RELAY_REQUIRE_SECRET",
    "RENEW_TOKEN_URL",
    "RENEW_LOGIN_URL",
    "RENEW_USERNAME",
)


@pytest.fixture
def clean_env(monkeypatch):
    """Remove bridge settings from the environment and restore them afterwards."""
    for key in CONFIG_KEYS:
        # setenv first so monkeypatch records the original state for undo
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)
    return monkeypatch
