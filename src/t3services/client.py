"""Async client for the T3/SmartCare speech services.

All requests go through one ``httpx.AsyncClient``. A client instance owns
its session ID, its authentication state and its touchmap cache; nothing
is shared between instances.

Exports:
- SmartCare: login, touchmap refresh, search, account, statements, dashboard

Examples:
    Log in and search::

        >>> settings = T3Settings(
        ...     customer="Tester",
        ...     app="Mocha",
        ...     secret="secret",
        ...     endpoints={
        ...         "login": "https://t3.example.com/auth",
        ...         "search": "https://s.example.com/search",
        ...     },
        ... )
        >>> async with SmartCare(settings) as client:
        ...     token = await client.login("user", "password")
        ...     result = await client.search("pay my bill")
        >>> result.results[0].action.name
        'Billing_Pay'

    Bring your own transport (proxies, mocks, shared pools)::

        >>> http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        >>> client = SmartCare(settings, http=http)
"""

import logging
import uuid
from types import TracebackType
from typing import Any, Self, TypeVar

import httpx
from pydantic import BaseModel
from pydantic import ValidationError as ModelValidationError

from t3services.auth import (
    ADDITIONAL_VALUES_VERSION,
    HEADER_PREFIX,
    AuthState,
    HandshakeState,
    auth_headers,
    authorization_header,
    create_token,
    parse_challenge,
    signin_form,
    token_input,
)
from t3services.config import T3Settings
from t3services.errors import (
    AuthenticationError,
    PreconditionError,
    ProtocolError,
    ValidationError,
)
from t3services.lib.metrics import RequestMetrics
from t3services.lib.singleflight import SingleFlight
from t3services.models import AuthToken, MenuItem, SearchResult, TouchmapSnapshot
from t3services.touchmap import TouchmapCache, build_snapshot
from t3services.version import CLIENT_VERSION

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Argument validation
# ---------------------------------------------------------------------------


def validate_string(value: object, arg_name: str) -> str:
    """Return ``value`` trimmed, rejecting non-strings and blank strings."""
    if value is None:
        raise ValidationError(f"Parameter '{arg_name}' was None")
    if not isinstance(value, str):
        raise ValidationError(f"Parameter '{arg_name}' must be a non-empty string")
    value = value.strip()
    if not value:
        raise ValidationError(f"Parameter '{arg_name}' must be non-empty")
    return value


def _require_endpoint(url: str | None, name: str) -> str:
    if not url:
        raise ValidationError(f"The {name} endpoint is not configured")
    return url


def _is_textual(response: httpx.Response) -> bool:
    content_type = response.headers.get("content-type", "")
    return "json" in content_type or content_type.startswith("text/")


def _response_body(response: httpx.Response, failure: str) -> Any:
    """Decode a body by content type: JSON, text, or raw bytes (e.g. PDFs)."""
    if not response.content:
        return None
    content_type = response.headers.get("content-type", "")
    if "json" in content_type:
        try:
            return response.json()
        except ValueError as e:
            raise ProtocolError(failure) from e
    if content_type.startswith("text/"):
        return response.text
    return response.content


M = TypeVar("M", bound=BaseModel)


def _parse_json(
    response: httpx.Response, model: type[M], failure: str
) -> M:
    try:
        return model.model_validate(response.json())
    except (ValueError, ModelValidationError) as e:
        # JSONDecodeError is a ValueError
        raise ProtocolError(failure) from e


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class SmartCare:
    """Client for the T3 speech services.

    Args:
        settings: Validated client settings.
        http: Optional preconfigured ``httpx.AsyncClient``. When omitted the
            client creates (and closes) its own, honoring ``proxy`` and
            ``http_timeout_seconds``.
    """

    def __init__(
        self, settings: T3Settings, *, http: httpx.AsyncClient | None = None
    ) -> None:
        self.settings = settings
        self.session_id = settings.session_id or str(uuid.uuid4())
        self.metrics = RequestMetrics()

        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(
            proxy=settings.proxy,
            timeout=settings.http_timeout_seconds,
            follow_redirects=False,
        )
        self._auth = AuthState()
        self._touchmap = TouchmapCache(ttl_seconds=settings.touchmap_ttl_seconds)
        self._touchmap_refresh = SingleFlight[TouchmapSnapshot]()
        self._dashboard_url = settings.endpoints.dashboard

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        _exc_type: type[BaseException] | None,
        _exc_val: BaseException | None,
        _exc_tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_http:
            await self._http.aclose()

    # -----------------------------------------------------------------------
    # State
    # -----------------------------------------------------------------------

    @property
    def auth_state(self) -> AuthState:
        return self._auth

    @property
    def handshake_state(self) -> HandshakeState:
        return self._auth.phase

    @property
    def token(self) -> AuthToken | None:
        """The last token obtained by a successful login."""
        return self._auth.token

    @property
    def is_authenticated(self) -> bool:
        """Whether a usable T3 token is held (and not past ``token_ttl_seconds``)."""
        return self._auth.is_valid(self.settings.token_ttl_seconds)

    @property
    def has_actions(self) -> bool:
        """Whether a fresh touchmap is cached."""
        return self._touchmap.is_fresh()

    @property
    def has_menu(self) -> bool:
        """Whether the menu projection of a fresh touchmap is available."""
        return self._touchmap.is_fresh()

    @property
    def touchmap(self) -> TouchmapCache:
        return self._touchmap

    @property
    def menu(self) -> list[MenuItem]:
        return self._touchmap.menu

    @property
    def dashboard_url(self) -> str | None:
        """Configured dashboard endpoint, or the one learned at sign-in."""
        return self._dashboard_url

    # -----------------------------------------------------------------------
    # Request plumbing
    # -----------------------------------------------------------------------

    def request_headers(self) -> dict[str, str]:
        """Headers sent with every request."""
        return {
            f"{HEADER_PREFIX}CustomerID": self.settings.customer,
            f"{HEADER_PREFIX}ApplicationID": self.settings.app,
            f"{HEADER_PREFIX}Platform": self.settings.platform or "All",
            f"{HEADER_PREFIX}Culture": self.settings.culture,
            f"{HEADER_PREFIX}SessionID": self.session_id,
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": self.settings.name or f"t3services v{CLIENT_VERSION}",
        }

    def _diagnostic(self, msg: str, *args: object) -> None:
        if self.settings.verbose:
            logger.info(msg, *args)

    def _require_login(self) -> AuthToken:
        token = self._auth.token
        if token is None or not self.is_authenticated:
            raise PreconditionError("login required")
        return token

    async def _get(
        self,
        kind: str,
        url: str,
        failure: str,
        *,
        headers: dict[str, str] | None = None,
        params: dict[str, str] | None = None,
    ) -> httpx.Response:
        """GET ``url``, raising ``ProtocolError(failure)`` unless 200."""
        request_headers = self.request_headers() | (headers or {})
        with self.metrics.measure(kind):
            response = await self._http.get(url, headers=request_headers, params=params)
            if response.status_code != 200:
                logger.warning("%s: HTTP %d from %s", kind, response.status_code, url)
                raise ProtocolError(failure)
        if _is_textual(response):
            self._diagnostic("%s response: %s", kind, response.text)
        else:
            self._diagnostic("%s response: %d bytes", kind, len(response.content))
        return response

    # -----------------------------------------------------------------------
    # Authentication
    # -----------------------------------------------------------------------

    async def login(self, username: str, password: str) -> AuthToken:
        """Run the T3Auth handshake and store the resulting token.

        Args:
            username: The user's ID; surrounding whitespace is trimmed.
            password: The user's password; surrounding whitespace is trimmed.

        Returns:
            The new AuthToken, which replaces any previous one.

        Raises:
            ValidationError: Blank credentials or no login endpoint.
            ProtocolError: No ``T3Auth`` challenge, or a malformed response.
            AuthenticationError: The server rejected the credentials.
            httpx.HTTPError: Transport failures, unchanged.
        """
        username = validate_string(username, "username")
        password = validate_string(password, "password")
        url = _require_endpoint(self.settings.endpoints.login, "login")

        try:
            token = await self._handshake(url, username, password)
            if self.settings.endpoints.signin:
                self._auth = self._auth.advance(HandshakeState.AWAITING_SIGNIN)
                self._dashboard_url = await self._signin(
                    self.settings.endpoints.signin, token
                )
        except BaseException:
            self._auth = self._auth.failed()
            raise

        self._auth = self._auth.authenticated(token)
        logger.info("Logged in as %s (session %s)", token.value, self.session_id)
        return token

    async def _handshake(self, url: str, username: str, password: str) -> AuthToken:
        headers = self.request_headers()
        body = {
            "ID": username,
            "Password": password,
            "AdditionalValuesVersion": ADDITIONAL_VALUES_VERSION,
        }

        self._auth = self._auth.advance(HandshakeState.AWAITING_CHALLENGE)
        with self.metrics.measure("login"):
            first = await self._http.post(url, headers=headers, json=body)
            challenge = parse_challenge(first.headers)

        self._auth = self._auth.advance(HandshakeState.AWAITING_FINAL_TOKEN)
        s = self.settings
        token = create_token(s.secret, s.app, s.customer, self.session_id)
        self._diagnostic(
            "%s -> %s", token_input(s.secret, s.app, s.customer, self.session_id), token
        )
        headers["Authorization"] = authorization_header(challenge, token)

        with self.metrics.measure("login"):
            second = await self._http.post(url, headers=headers, json=body)
            if second.status_code != 200:
                logger.warning("Login rejected with HTTP %d", second.status_code)
                raise AuthenticationError("Authentication failed")
        self._diagnostic("login response: %s", second.text)
        return _parse_json(second, AuthToken, "Malformed login response")

    async def _signin(self, url: str, token: AuthToken) -> str:
        """Forms sign-in; returns the dashboard URL from the redirect."""
        headers = self.request_headers()
        del headers["Content-Type"]
        form = signin_form(
            token,
            customer=self.settings.customer,
            app=self.settings.app,
            platform=self.settings.platform,
            session_id=self.session_id,
        )

        with self.metrics.measure("signin"):
            response = await self._http.post(
                url, headers=headers, data=form, follow_redirects=False
            )
            location = response.headers.get("Location")
            if response.status_code != 302 or not location:
                logger.warning("Sign-in answered HTTP %d", response.status_code)
                raise ProtocolError("Signin protocol error")
            if "forbidden" in location.lower():
                raise AuthenticationError("Signin failed")

        dashboard = str(httpx.URL(url).join(location))
        logger.debug("Dashboard endpoint set to %s", dashboard)
        return dashboard

    # -----------------------------------------------------------------------
    # Touchmap and search
    # -----------------------------------------------------------------------

    async def refresh_touchmap(self) -> TouchmapSnapshot:
        """Fetch the touchmap and replace the cached snapshot.

        Concurrent calls share a single request.

        Raises:
            ValidationError: No search endpoint configured.
            ProtocolError: ``"Touchmap refresh failed"`` on a non-200 status.
        """
        url = _require_endpoint(self.settings.endpoints.search, "search")
        return await self._touchmap_refresh.run(lambda: self._fetch_touchmap(url))

    async def _fetch_touchmap(self, search_url: str) -> TouchmapSnapshot:
        failure = "Touchmap refresh failed"
        response = await self._get("touchmap", f"{search_url}/touch-map", failure)
        try:
            snapshot = build_snapshot(response.json())
        except (ValueError, ModelValidationError) as e:
            raise ProtocolError(failure) from e
        self._touchmap.replace(snapshot)
        return snapshot

    async def search(self, query: str) -> SearchResult:
        """Search for actions matching a user's query.

        Refreshes the touchmap first when none is cached (or it is stale).
        Result actions found in the touchmap are replaced by the full
        :class:`Action`; unknown ones stay as their name.

        Raises:
            ValidationError: Blank query or no search endpoint configured.
            ProtocolError: ``"Search failed"``, or the refresh's error.
        """
        query = validate_string(query, "query")
        url = _require_endpoint(self.settings.endpoints.search, "search")

        if not self.has_actions:
            await self.refresh_touchmap()

        response = await self._get(
            "search", f"{url}/simple", "Search failed", params={"text": query}
        )
        result = _parse_json(response, SearchResult, "Search failed")
        resolved = self._touchmap.resolve(result)
        logger.debug(
            "Search %r: %d results, %d resolved", query, len(result.results), resolved
        )
        return result

    # -----------------------------------------------------------------------
    # Authenticated calls
    # -----------------------------------------------------------------------

    async def get_account(self) -> Any:
        """Retrieve the logged-in user's account information."""
        url = _require_endpoint(self.settings.endpoints.account, "account")
        token = self._require_login()
        response = await self._get(
            "account",
            f"{url}/account/get-by-number",
            "Account lookup failed",
            headers=auth_headers(token),
        )
        return _response_body(response, "Account lookup failed")

    async def get_statements(self, count: int, pdf: bool) -> Any:
        """Retrieve the latest ``count`` statements.

        Args:
            count: Number of statements, starting with the latest. At least 1.
            pdf: True for PDF statements, False for JSON bills.
        """
        if isinstance(count, bool) or not isinstance(count, int):
            raise ValidationError("Parameter 'count' must be an integer")
        if count < 1:
            raise ValidationError("Parameter 'count' must be at least 1")
        if not isinstance(pdf, bool):
            raise ValidationError("Parameter 'pdf' must be a boolean")
        url = _require_endpoint(self.settings.endpoints.account, "account")
        token = self._require_login()

        path = f"/{'pdf-statement' if pdf else 'bill'}/{count}"
        response = await self._get(
            "statements",
            url + path,
            "Statement lookup failed",
            headers=auth_headers(token),
        )
        return _response_body(response, "Statement lookup failed")

    async def refresh_dashboard(self) -> Any:
        """Fetch the dashboard for the logged-in user."""
        url = _require_endpoint(self._dashboard_url, "dashboard")
        token = self._require_login()
        response = await self._get(
            "dashboard",
            url,
            "Dashboard refresh failed",
            headers=auth_headers(token),
        )
        return _response_body(response, "Dashboard refresh failed")
