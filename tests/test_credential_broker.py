"""Tests for credential acquisition and the token cache."""

import base64

import httpx
import pytest

from clearverify.auth import ClientCredentials, CredentialBroker, OAuth2Error, fetch_token
from clearverify.auth.oauth2 import OAuth2TransportError
from clearverify.errors import TransportUnavailable
from clearverify.models import AuthScheme


class FakeClock:
    def __init__(self, now: float = 1_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def _token_client(responses: list[httpx.Response], seen: list[httpx.Request]) -> httpx.Client:
    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return responses[min(len(seen), len(responses)) - 1]

    return httpx.Client(transport=httpx.MockTransport(handler))


def _credentials(**overrides) -> ClientCredentials:
    values = {
        "token_url": "https://auth.example.com/token",
        "client_id": "client",
        "client_secret": "secret",
        "scope": "coverage/*.read",
    }
    values.update(overrides)
    return ClientCredentials(**values)


class TestOAuth2Grant:
    """Tests for the client-credentials token request."""

    def test_token_request(self) -> None:
        seen: list[httpx.Request] = []
        client = _token_client(
            [httpx.Response(200, json={"access_token": "abc", "expires_in": 600})], seen
        )

        token = fetch_token(_credentials(), client=client)

        assert token["access_token"] == "abc"
        request = seen[0]
        expected = base64.b64encode(b"client:secret").decode()
        assert request.headers["Authorization"] == f"Basic {expected}"
        body = request.content.decode()
        assert "grant_type=client_credentials" in body
        assert "client_secret" not in body

    def test_credentials_in_body(self) -> None:
        seen: list[httpx.Request] = []
        client = _token_client([httpx.Response(200, json={"access_token": "abc"})], seen)

        fetch_token(_credentials(secret_in_body=True), client=client)

        assert "Authorization" not in seen[0].headers
        assert "client_secret=secret" in seen[0].content.decode()

    def test_secret_not_in_repr(self) -> None:
        assert "hunter2" not in repr(_credentials(client_secret="hunter2"))

    def test_missing_credentials(self) -> None:
        with pytest.raises(OAuth2Error, match="required"):
            fetch_token(_credentials(client_secret=""))

    def test_rejected_request(self) -> None:
        client = _token_client(
            [httpx.Response(400, json={"error": "invalid_client", "error_description": "bad"})],
            [],
        )

        with pytest.raises(OAuth2Error) as exc_info:
            fetch_token(_credentials(), client=client)

        assert exc_info.value.error_code == "invalid_client"
        assert not isinstance(exc_info.value, OAuth2TransportError)

    def test_response_without_token(self) -> None:
        client = _token_client([httpx.Response(200, json={"token_type": "bearer"})], [])

        with pytest.raises(OAuth2Error, match="no access_token"):
            fetch_token(_credentials(), client=client)

    def test_server_error_is_transport_error(self) -> None:
        client = _token_client([httpx.Response(503)], [])

        with pytest.raises(OAuth2TransportError):
            fetch_token(_credentials(), client=client)

    def test_connection_refused(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = httpx.Client(transport=httpx.MockTransport(handler))

        with pytest.raises(OAuth2TransportError):
            fetch_token(_credentials(), client=client)


class TestCredentialBroker:
    """Tests for per-scheme acquisition and token caching."""

    def test_oauth2_token_cached(self, directory, secrets) -> None:
        seen: list[httpx.Request] = []
        client = _token_client(
            [httpx.Response(200, json={"access_token": "tok-1", "expires_in": 3600})], seen
        )
        broker = CredentialBroker(secrets=secrets, client=client, clock=FakeClock())
        provider = directory.lookup("bcbs_florida")

        first = broker.acquire(provider)
        second = broker.acquire(provider)

        assert first is second
        assert first.secret == "tok-1"
        assert len(seen) == 1
        assert str(seen[0].url) == "https://api.floridablue.com/oauth/token"

    def test_oauth2_token_auth_follows_profile(self, directory, secrets) -> None:
        seen: list[httpx.Request] = []
        client = _token_client(
            [httpx.Response(200, json={"access_token": "tok", "expires_in": 3600})], seen
        )
        broker = CredentialBroker(secrets=secrets, client=client, clock=FakeClock())

        broker.acquire(directory.lookup("change_healthcare"))
        broker.acquire(directory.lookup("bcbs_florida"))

        body_request, basic_request = seen
        assert "Authorization" not in body_request.headers
        body = body_request.content.decode()
        assert "client_id=chc-client" in body
        assert "client_secret=chc-secret" in body
        assert basic_request.headers["Authorization"].startswith("Basic ")
        assert "client_secret" not in basic_request.content.decode()

    def test_oauth2_refresh_inside_safety_margin(self, directory, secrets) -> None:
        seen: list[httpx.Request] = []
        client = _token_client(
            [
                httpx.Response(200, json={"access_token": "tok-1", "expires_in": 600}),
                httpx.Response(200, json={"access_token": "tok-2", "expires_in": 600}),
            ],
            seen,
        )
        clock = FakeClock()
        broker = CredentialBroker(secrets=secrets, client=client, safety_margin=60, clock=clock)
        provider = directory.lookup("bcbs_florida")

        assert broker.acquire(provider).secret == "tok-1"
        clock.now += 539
        assert broker.acquire(provider).secret == "tok-1"
        clock.now += 2
        assert broker.acquire(provider).secret == "tok-2"
        assert len(seen) == 2

    def test_invalidate_forces_refresh(self, directory, secrets) -> None:
        seen: list[httpx.Request] = []
        client = _token_client(
            [
                httpx.Response(200, json={"access_token": "tok-1"}),
                httpx.Response(200, json={"access_token": "tok-2"}),
            ],
            seen,
        )
        broker = CredentialBroker(secrets=secrets, client=client, clock=FakeClock())
        provider = directory.lookup("bcbs_florida")

        broker.acquire(provider)
        broker.invalidate(provider.id)

        assert not broker.has_cached(provider.id)
        assert broker.acquire(provider).secret == "tok-2"

    def test_missing_oauth_credentials(self, directory) -> None:
        broker = CredentialBroker(secrets={})
        assert broker.acquire(directory.lookup("bcbs_florida")) is None

    def test_rejected_oauth_credentials(self, directory, secrets) -> None:
        client = _token_client([httpx.Response(401, json={"error": "invalid_client"})], [])
        broker = CredentialBroker(secrets=secrets, client=client)

        assert broker.acquire(directory.lookup("bcbs_florida")) is None
        assert not broker.has_cached("bcbs_florida")

    def test_token_endpoint_down(self, directory, secrets) -> None:
        client = _token_client([httpx.Response(502)], [])
        broker = CredentialBroker(secrets=secrets, client=client)

        with pytest.raises(TransportUnavailable) as exc_info:
            broker.acquire(directory.lookup("bcbs_florida"))
        assert exc_info.value.provider_id == "bcbs_florida"

    def test_api_key(self, directory, secrets) -> None:
        broker = CredentialBroker(secrets=secrets)
        provider = directory.lookup("united")

        token = broker.acquire(provider)

        assert token.scheme == AuthScheme.APIKEY
        assert token.expires_at is None
        assert token.auth_headers(provider) == {"X-API-Key": "uhc-key"}
        assert broker.has_cached("united")

    def test_api_key_in_authorization_header(self, directory, secrets) -> None:
        provider = directory.lookup("eligible")
        token = CredentialBroker(secrets=secrets).acquire(provider)

        assert token.auth_headers(provider) == {"Authorization": "Bearer eligible-key"}

    def test_basic_credentials(self, directory, secrets) -> None:
        broker = CredentialBroker(secrets=secrets)
        provider = directory.lookup("delta_dental")

        token = broker.acquire(provider)

        expected = base64.b64encode(b"dd-user:dd-pass").decode()
        assert token.auth_headers(provider) == {"Authorization": f"Basic {expected}"}
        assert not broker.has_cached("delta_dental")

    def test_missing_basic_password(self, directory) -> None:
        broker = CredentialBroker(secrets={"DELTA_DENTAL_USERNAME": "dd-user"})
        assert broker.acquire(directory.lookup("delta_dental")) is None

    def test_secret_not_in_repr(self, directory, secrets) -> None:
        token = CredentialBroker(secrets=secrets).acquire(directory.lookup("united"))
        assert "uhc-key" not in repr(token)

    def test_clear(self, directory, secrets) -> None:
        broker = CredentialBroker(secrets=secrets)
        broker.acquire(directory.lookup("united"))
        broker.clear()

        assert not broker.has_cached("united")
