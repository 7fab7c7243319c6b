import base64
import binascii
import json
import logging
from datetime import datetime, timezone


class CredentialError(Exception):
    pass


class SessionCredential:
    """
    The session cookie used to open the chat connection and to call the
    renewal API.

    Only `CredentialRenewal` replaces the value; readers take whatever is
    current at the moment they need it.
    """

    def __init__(self, value: str, logger=None):
        self.logger = logger or logging.getLogger(__name__)
        self._value = value

    @property
    def value(self) -> str:
        return self._value

    def replace(self, value: str):
        if not value:
            raise CredentialError("Refusing to replace credential with an empty value")
        self._value = value
        self.logger.info("Session credential replaced")


def credential_expiry(value: str) -> datetime:
    """
    Read the `exp` claim from a session credential.

    The credential is a signed three-segment token, optionally given as a
    `name=token` cookie pair.  Only the claims segment is decoded; the
    signature is not checked.
    """
    token = value.strip()
    if "=" in token.split(".", 1)[0]:
        token = token.split("=", 1)[1]
    segments = token.split(".")
    if len(segments) != 3:
        raise CredentialError(f"Expected 3 token segments, found {len(segments)}")

    claims_segment = segments[1]
    claims_segment += "=" * (-len(claims_segment) % 4)
    try:
        claims = json.loads(base64.urlsafe_b64decode(claims_segment))
    except (binascii.Error, UnicodeDecodeError, ValueError) as e:
        raise CredentialError(f"Undecodable claims segment: {e}") from e

    if not isinstance(claims, dict) or "exp" not in claims:
        raise CredentialError("Claims segment has no exp field")
    try:
        return datetime.fromtimestamp(float(claims["exp"]), timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError) as e:
        raise CredentialError(f'Invalid exp claim "{claims["exp"]}"') from e
