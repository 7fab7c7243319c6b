import logging
from datetime import datetime, timedelta, timezone

import httpx
from discord.ext import tasks
from dotenv import set_key

from mc_chat_bridge.credentials import CredentialError, credential_expiry

# Hours - how often the credential expiry is checked
RENEWAL_CHECK_HOURS = 24

# Renew once the credential has less than this left
RENEWAL_WINDOW = timedelta(days=10)

CREDENTIAL_ENV_KEY = "COOKIE"


class RenewalError(Exception):
    pass


class CredentialRenewal:
    """
    Keeps the session credential from expiring.

    Once at start and then every `RENEWAL_CHECK_HOURS`, the `exp` claim of the
    current credential is read.  When less than `RENEWAL_WINDOW` remains, a
    fresh access token is issued under the current credential and exchanged
    for a new session credential through the login endpoint.  The new value
    replaces the in-memory credential and is written back to the `.env` file.

    A failed renewal leaves the current credential untouched.
    """

    def __init__(self, credential, config, client=None, now=None, logger=None):
        self.credential = credential
        self.config = config
        self.client = client or httpx.AsyncClient(timeout=httpx.Timeout(15.0))
        self.now = now or (lambda: datetime.now(timezone.utc))
        self.logger = logger or logging.getLogger(__name__)

    def start(self):
        self.renewal_loop.start()

    async def close(self):
        self.renewal_loop.cancel()
        await self.client.aclose()

    @tasks.loop(hours=RENEWAL_CHECK_HOURS)
    async def renewal_loop(self):
        await self.renew_if_needed()

    def needs_renewal(self, expiry):
        return expiry - self.now() < RENEWAL_WINDOW

    async def renew_if_needed(self):
        """
        Renew the credential if it is close to expiry.

        Returns True when a new credential was installed.
        """
        try:
            expiry = credential_expiry(self.credential.value)
        except CredentialError as e:
            self.logger.error(f"Could not read credential expiry, skipping renewal: {e}")
            return False

        remaining = expiry - self.now()
        if not self.needs_renewal(expiry):
            self.logger.info(
                f"Credential valid until {expiry.isoformat()} ({remaining.days} days left), no renewal needed"
            )
            return False

        self.logger.info(
            f"Credential expires {expiry.isoformat()} ({remaining.days} days left), renewing..."
        )
        try:
            access_token = await self.issue_access_token()
            new_credential = await self.exchange_access_token(access_token)
        except (httpx.HTTPError, RenewalError) as e:
            self.logger.error(f"Credential renewal failed, keeping current credential: {e}")
            return False

        self.credential.replace(new_credential)
        self.persist(new_credential)
        return True

    async def issue_access_token(self):
        response = await self.client.post(
            self.config.renew_token_url,
            headers={"Cookie": self.credential.value},
        )
        response.raise_for_status()
        try:
            body = response.json()
        except ValueError as e:
            raise RenewalError(f"Token issuance returned invalid JSON: {e}") from e
        if not isinstance(body, dict) or not body.get("success") or not body.get("token"):
            raise RenewalError(f'Token issuance was refused: "{body}"')
        return body["token"]

    async def exchange_access_token(self, access_token):
        # The login call is anonymous; drop anything the client picked up
        self.client.cookies.clear()
        response = await self.client.post(
            self.config.renew_login_url,
            json={
                "username": self.config.renew_username,
                "access_token": access_token,
            },
        )
        response.raise_for_status()
        cookies = response.headers.get_list("set-cookie")
        if not cookies:
            raise RenewalError("Login response carried no set-cookie header")
        new_credential = cookies[0].split(";", 1)[0].strip()
        if not new_credential:
            raise RenewalError("Login response set-cookie header was empty")
        return new_credential

    def persist(self, value):
        """Write the credential to the env file; failure keeps the in-memory value."""
        try:
            set_key(self.config.env_path, CREDENTIAL_ENV_KEY, value)
        except OSError:
            self.logger.exception(
                f'Failed to persist renewed credential to "{self.config.env_path}"'
            )
            return False
        self.logger.info(f'Renewed credential saved to "{self.config.env_path}"')
        return True
