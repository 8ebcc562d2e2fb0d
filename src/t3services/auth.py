"""T3Auth challenge/response handshake primitives.

The login handshake is two POSTs of the same credentials to the login
endpoint. The first is answered with a ``WWW-Authenticate: T3Auth ...``
challenge; the second repeats the request with an ``Authorization`` header
carrying the challenge plus a token derived from static configuration and
the session ID:

    token = base64(sha1(utf8(f"{secret} {app}:{customer}:{session_id}")))

The token contains no server randomness, so it is stable for a session.

This module holds the pure pieces (token derivation, challenge parsing,
header derivation) and the immutable :class:`AuthState` the client swaps
on every transition. All I/O lives in :mod:`t3services.client`.

Examples:
    >>> create_token("secret", "Mocha", "Tester",
    ...              "15344b6f-2131-2fa9-994e-c69103be9859")
    '0OyW0ObuyVmHzSAcOQt9dzjF4w8='
    >>> authorization_header("T3Auth aaa", "abc=")
    'T3Auth aaa, token="abc="'
"""

import base64
import hashlib
import logging
import re
import time
from collections.abc import Mapping
from enum import StrEnum
from typing import Self

from pydantic import BaseModel, ConfigDict, Field

from t3services.errors import ProtocolError
from t3services.lib.headers import insensitive_get
from t3services.models import AuthToken

logger = logging.getLogger(__name__)

HEADER_PREFIX = "X-SpeechCycle-SmartCare-"
CHALLENGE_HEADER = "WWW-Authenticate"
ADDITIONAL_VALUES_VERSION = "2"

_CHALLENGE_RE = re.compile(r"^T3Auth ", re.IGNORECASE)


class HandshakeState(StrEnum):
    """Phase of the login handshake."""

    UNAUTHENTICATED = "unauthenticated"
    AWAITING_CHALLENGE = "awaiting_challenge"
    AWAITING_FINAL_TOKEN = "awaiting_final_token"
    AWAITING_SIGNIN = "awaiting_signin"
    AUTHENTICATED = "authenticated"


def token_input(secret: str, app: str, customer: str, session_id: str) -> str:
    """The raw string hashed into the handshake token."""
    return f"{secret} {app}:{customer}:{session_id}"


def create_token(secret: str, app: str, customer: str, session_id: str) -> str:
    """Derive the base64 SHA-1 token for the ``Authorization`` header."""
    raw = token_input(secret, app, customer, session_id)
    digest = hashlib.sha1(raw.encode("utf-8")).digest()
    return base64.b64encode(digest).decode("ascii")


def parse_challenge(headers: Mapping[str, str]) -> str:
    """Return the ``T3Auth`` challenge from response headers.

    Raises:
        ProtocolError: If the header is missing or is not a T3Auth challenge.
    """
    challenge = insensitive_get(headers, CHALLENGE_HEADER)
    if not challenge or not _CHALLENGE_RE.match(challenge):
        logger.debug("Unusable challenge header: %r", challenge)
        raise ProtocolError("Challenge not found")
    return challenge


def authorization_header(challenge: str, token: str) -> str:
    return f'{challenge}, token="{token}"'


def auth_headers(token: AuthToken) -> dict[str, str]:
    """Headers that authorize a call on behalf of the logged-in user."""
    headers = {
        f"{HEADER_PREFIX}UserID": token.value,
        f"{HEADER_PREFIX}UserName": token.value,
        f"{HEADER_PREFIX}T3Token": token.t3_token,
    }
    if token.additional_values:
        headers[f"{HEADER_PREFIX}AdditionalValues"] = token.additional_values_header
    return headers


def signin_form(
    token: AuthToken,
    *,
    customer: str,
    app: str,
    platform: str | None,
    session_id: str,
) -> dict[str, str]:
    """Form body for the optional forms sign-in step."""
    return {
        "s_customerId": customer,
        "s_applicationId": app,
        "s_userId": token.value,
        "s_userName": token.value,
        "s_userData": token.value,
        "s_t3token": token.t3_token,
        "s_platform": platform or "",
        "s_applicationVersion": ADDITIONAL_VALUES_VERSION,
        "s_additionalValues": token.additional_values_header,
        "s_sessionId": session_id,
    }


class AuthState(BaseModel):
    """Immutable authentication state owned by one client.

    Transitions return a new state; the client replaces its reference in a
    single assignment. A failed login keeps the last good token.
    """

    model_config = ConfigDict(frozen=True)

    phase: HandshakeState = HandshakeState.UNAUTHENTICATED
    token: AuthToken | None = None
    obtained_at: float | None = Field(
        default=None, description="time.monotonic() when the token was stored"
    )

    def advance(self, phase: HandshakeState) -> Self:
        return self.model_copy(update={"phase": phase})

    def authenticated(self, token: AuthToken) -> Self:
        return self.model_copy(
            update={
                "phase": HandshakeState.AUTHENTICATED,
                "token": token,
                "obtained_at": time.monotonic(),
            }
        )

    def failed(self) -> Self:
        """Back to rest after an error, keeping any previous token."""
        phase = (
            HandshakeState.AUTHENTICATED
            if self.token is not None
            else HandshakeState.UNAUTHENTICATED
        )
        return self.model_copy(update={"phase": phase})

    def is_valid(self, ttl_seconds: float | None = None) -> bool:
        """Whether the held token can authorize calls."""
        if self.token is None or not self.token.t3_token:
            return False
        if ttl_seconds is None or self.obtained_at is None:
            return True
        return time.monotonic() - self.obtained_at < ttl_seconds
