"""Tests for the login handshake and forms sign-in."""

import json
import logging

import httpx
import pytest
from fakes import (
    LOGIN_URL,
    SESSION_ID,
    SIGNIN_URL,
    FakeT3,
    challenge_response,
    make_settings,
    serve_login,
    token_body,
)

from t3services.auth import HandshakeState
from t3services.client import SmartCare
from t3services.errors import (
    AuthenticationError,
    PreconditionError,
    ProtocolError,
    ValidationError,
)

PREFIX = "X-SpeechCycle-SmartCare-"
TOKEN = "0OyW0ObuyVmHzSAcOQt9dzjF4w8="


class TestHandshake:
    """Tests for the two-round T3Auth handshake."""

    @pytest.mark.asyncio
    async def test_success_stores_token(
        self, client: SmartCare, server: FakeT3
    ) -> None:
        serve_login(server)

        token = await client.login("alice", "hunter2")

        assert token.value == "1234"
        assert token.t3_token == "aaa"
        assert client.token == token
        assert client.is_authenticated
        assert client.handshake_state is HandshakeState.AUTHENTICATED

    @pytest.mark.asyncio
    async def test_both_rounds_send_same_body(
        self, client: SmartCare, server: FakeT3
    ) -> None:
        """Both POSTs should carry the trimmed credentials."""
        serve_login(server)

        await client.login("  alice ", " hunter2 ")

        first, second = server.calls("POST", LOGIN_URL)
        expected = {"ID": "alice", "Password": "hunter2", "AdditionalValuesVersion": "2"}
        assert json.loads(first.content) == expected
        assert json.loads(second.content) == expected

    @pytest.mark.asyncio
    async def test_second_round_carries_authorization(
        self, client: SmartCare, server: FakeT3
    ) -> None:
        serve_login(server)

        await client.login("alice", "hunter2")

        first, second = server.calls("POST", LOGIN_URL)
        assert "Authorization" not in first.headers
        assert second.headers["Authorization"] == f'T3Auth aaa, token="{TOKEN}"'

    @pytest.mark.asyncio
    async def test_common_headers(self, client: SmartCare, server: FakeT3) -> None:
        serve_login(server)

        await client.login("alice", "hunter2")

        for request in server.calls("POST", LOGIN_URL):
            assert request.headers[f"{PREFIX}CustomerID"] == "Tester"
            assert request.headers[f"{PREFIX}ApplicationID"] == "Mocha"
            assert request.headers[f"{PREFIX}Platform"] == "All"
            assert request.headers[f"{PREFIX}Culture"] == "en-us"
            assert request.headers[f"{PREFIX}SessionID"] == SESSION_ID
            assert request.headers["Content-Type"] == "application/json"
            assert request.headers["Accept"] == "application/json"
            assert request.headers["User-Agent"].startswith("t3services v")

    @pytest.mark.asyncio
    async def test_configured_identity_headers(
        self, server: FakeT3, http: httpx.AsyncClient
    ) -> None:
        settings = make_settings(name="MyApp", platform="DesktopWeb", culture="fr-fr")
        client = SmartCare(settings, http=http)
        serve_login(server)

        await client.login("alice", "hunter2")

        request = server.calls("POST", LOGIN_URL)[0]
        assert request.headers["User-Agent"] == "MyApp"
        assert request.headers[f"{PREFIX}Platform"] == "DesktopWeb"
        assert request.headers[f"{PREFIX}Culture"] == "fr-fr"

    @pytest.mark.asyncio
    async def test_session_id_reused_across_logins(
        self, server: FakeT3, http: httpx.AsyncClient
    ) -> None:
        """A client without a configured session ID should keep one random ID."""
        client = SmartCare(make_settings(), http=http)
        serve_login(server)
        serve_login(server)

        await client.login("alice", "hunter2")
        await client.login("alice", "hunter2")

        ids = {r.headers[f"{PREFIX}SessionID"] for r in server.requests}
        assert ids == {client.session_id}

    def test_session_ids_differ_between_clients(self, http: httpx.AsyncClient) -> None:
        settings = make_settings()

        first = SmartCare(settings, http=http)
        second = SmartCare(settings, http=http)

        assert first.session_id != second.session_id

    @pytest.mark.asyncio
    async def test_relogin_replaces_token(
        self, client: SmartCare, server: FakeT3
    ) -> None:
        serve_login(server, token_body(Value="first"))
        serve_login(server, token_body(Value="second"))

        await client.login("alice", "hunter2")
        await client.login("bob", "hunter2")

        assert client.token is not None
        assert client.token.value == "second"

    @pytest.mark.asyncio
    async def test_metrics_recorded(self, client: SmartCare, server: FakeT3) -> None:
        serve_login(server)

        await client.login("alice", "hunter2")

        assert client.metrics.calls("login") == 2


class TestHandshakeFailures:
    """Tests for handshake error paths."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("username", "password"),
        [("", "pw"), ("   ", "pw"), ("alice", ""), (None, "pw"), ("alice", 42)],
    )
    async def test_invalid_credentials_no_io(
        self, client: SmartCare, server: FakeT3, username: object, password: object
    ) -> None:
        with pytest.raises(ValidationError):
            await client.login(username, password)  # type: ignore[arg-type]

        assert server.requests == []

    @pytest.mark.asyncio
    async def test_missing_login_endpoint(
        self, server: FakeT3, http: httpx.AsyncClient
    ) -> None:
        client = SmartCare(make_settings(endpoints={"search": "https://s"}), http=http)

        with pytest.raises(ValidationError, match="login endpoint"):
            await client.login("alice", "hunter2")

        assert server.requests == []

    @pytest.mark.asyncio
    async def test_no_challenge(self, client: SmartCare, server: FakeT3) -> None:
        server.on("POST", LOGIN_URL, httpx.Response(401))

        with pytest.raises(ProtocolError, match="Challenge not found"):
            await client.login("alice", "hunter2")

        assert len(server.calls("POST", LOGIN_URL)) == 1
        assert client.handshake_state is HandshakeState.UNAUTHENTICATED
        assert not client.is_authenticated

    @pytest.mark.asyncio
    async def test_wrong_scheme(self, client: SmartCare, server: FakeT3) -> None:
        server.on("POST", LOGIN_URL, challenge_response('Basic realm="sc"'))

        with pytest.raises(ProtocolError, match="Challenge not found"):
            await client.login("alice", "hunter2")

    @pytest.mark.asyncio
    async def test_lowercase_challenge_header(
        self, client: SmartCare, server: FakeT3
    ) -> None:
        server.on(
            "POST",
            LOGIN_URL,
            httpx.Response(401, headers={"www-authenticate": "T3Auth aaa"}),
            httpx.Response(200, json=token_body()),
        )

        token = await client.login("alice", "hunter2")

        assert token.t3_token == "aaa"

    @pytest.mark.asyncio
    async def test_rejected(self, client: SmartCare, server: FakeT3) -> None:
        server.on("POST", LOGIN_URL, challenge_response(), httpx.Response(403))

        with pytest.raises(AuthenticationError, match="Authentication failed"):
            await client.login("alice", "hunter2")

        assert client.token is None
        assert client.handshake_state is HandshakeState.UNAUTHENTICATED

    @pytest.mark.asyncio
    async def test_malformed_body(self, client: SmartCare, server: FakeT3) -> None:
        server.on(
            "POST", LOGIN_URL, challenge_response(), httpx.Response(200, text="<html>")
        )

        with pytest.raises(ProtocolError, match="Malformed login response"):
            await client.login("alice", "hunter2")

    @pytest.mark.asyncio
    async def test_failure_keeps_previous_token(
        self, client: SmartCare, server: FakeT3
    ) -> None:
        """A failed re-login should leave the last good token in place."""
        serve_login(server)
        server.on("POST", LOGIN_URL, challenge_response(), httpx.Response(403))
        token = await client.login("alice", "hunter2")

        with pytest.raises(AuthenticationError):
            await client.login("alice", "wrong")

        assert client.token == token
        assert client.is_authenticated
        assert client.handshake_state is HandshakeState.AUTHENTICATED

    @pytest.mark.asyncio
    async def test_transport_error_propagates(
        self, client: SmartCare, server: FakeT3
    ) -> None:
        def fail(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        server.on("POST", LOGIN_URL, fail)

        with pytest.raises(httpx.ConnectError):
            await client.login("alice", "hunter2")

        assert client.handshake_state is HandshakeState.UNAUTHENTICATED

    @pytest.mark.asyncio
    async def test_empty_t3_token_is_not_authenticated(
        self, client: SmartCare, server: FakeT3
    ) -> None:
        serve_login(server, token_body(T3Token=""))

        await client.login("alice", "hunter2")

        assert not client.is_authenticated
        with pytest.raises(PreconditionError, match="login required"):
            await client.get_account()


class TestTokenExpiry:
    """Tests for the optional token lifetime."""

    @pytest.mark.asyncio
    async def test_expired_token_requires_login(
        self, server: FakeT3, http: httpx.AsyncClient
    ) -> None:
        client = SmartCare(make_settings(token_ttl_seconds=60), http=http)
        serve_login(server)
        await client.login("alice", "hunter2")
        assert client.is_authenticated

        obtained = client.auth_state.obtained_at
        assert obtained is not None
        client._auth = client.auth_state.model_copy(  # pyright: ignore[reportPrivateUsage]
            update={"obtained_at": obtained - 61}
        )

        assert not client.is_authenticated
        with pytest.raises(PreconditionError, match="login required"):
            await client.get_account()


class TestVerbose:
    """Tests for wire diagnostics."""

    @pytest.mark.asyncio
    async def test_verbose_logs_derivation(
        self,
        server: FakeT3,
        http: httpx.AsyncClient,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        client = SmartCare(
            make_settings(session_id=SESSION_ID, verbose=True), http=http
        )
        serve_login(server)

        with caplog.at_level(logging.INFO, logger="t3services.client"):
            await client.login("alice", "hunter2")

        assert f"secret Mocha:Tester:{SESSION_ID} -> {TOKEN}" in caplog.text
        assert "login response" in caplog.text

    @pytest.mark.asyncio
    async def test_quiet_by_default(
        self, client: SmartCare, server: FakeT3, caplog: pytest.LogCaptureFixture
    ) -> None:
        serve_login(server)

        with caplog.at_level(logging.INFO, logger="t3services.client"):
            await client.login("alice", "hunter2")

        assert TOKEN not in caplog.text


class TestSignin:
    """Tests for the optional forms sign-in step."""

    @pytest.fixture
    def signin_client(self, http: httpx.AsyncClient) -> SmartCare:
        settings = make_settings(
            session_id=SESSION_ID,
            endpoints={"login": LOGIN_URL, "signin": SIGNIN_URL},
        )
        return SmartCare(settings, http=http)

    @pytest.mark.asyncio
    async def test_redirect_sets_dashboard(
        self, signin_client: SmartCare, server: FakeT3
    ) -> None:
        serve_login(server)
        server.on(
            "POST",
            SIGNIN_URL,
            httpx.Response(302, headers={"Location": "/portal/dashboard"}),
        )

        await signin_client.login("alice", "hunter2")

        assert signin_client.dashboard_url == "https://t3.sc.com/portal/dashboard"
        assert signin_client.is_authenticated

    @pytest.mark.asyncio
    async def test_form_fields(self, signin_client: SmartCare, server: FakeT3) -> None:
        serve_login(server)
        server.on(
            "POST", SIGNIN_URL, httpx.Response(302, headers={"Location": "/home"})
        )

        await signin_client.login("alice", "hunter2")

        (request,) = server.calls("POST", SIGNIN_URL)
        form = dict(httpx.QueryParams(request.content.decode()))
        assert form["s_userId"] == "1234"
        assert form["s_t3token"] == "aaa"
        assert form["s_additionalValues"] == "1,2"
        assert form["s_sessionId"] == SESSION_ID
        assert request.headers["Content-Type"] == "application/x-www-form-urlencoded"
        assert request.headers["Accept"] == "application/json"

    @pytest.mark.asyncio
    async def test_non_redirect_is_protocol_error(
        self, signin_client: SmartCare, server: FakeT3
    ) -> None:
        serve_login(server)
        server.on("POST", SIGNIN_URL, httpx.Response(200))

        with pytest.raises(ProtocolError, match="Signin protocol error"):
            await signin_client.login("alice", "hunter2")

        assert signin_client.token is None
        assert signin_client.handshake_state is HandshakeState.UNAUTHENTICATED

    @pytest.mark.asyncio
    async def test_forbidden_location(
        self, signin_client: SmartCare, server: FakeT3
    ) -> None:
        serve_login(server)
        server.on(
            "POST",
            SIGNIN_URL,
            httpx.Response(302, headers={"Location": "/errors/Forbidden"}),
        )

        with pytest.raises(AuthenticationError, match="Signin failed"):
            await signin_client.login("alice", "hunter2")

        assert signin_client.token is None
        assert signin_client.dashboard_url is None


@pytest.mark.asyncio
async def test_authenticated_call_before_login(
    client: SmartCare, server: FakeT3
) -> None:
    with pytest.raises(PreconditionError, match="login required"):
        await client.get_account()

    assert server.requests == []
