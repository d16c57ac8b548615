#tests\test_run_entrypoint.py

"""Test serving the entry point of an applied stack."""

from urllib.parse import parse_qs, urlparse

import pytest
import requests
from fastapi.testclient import TestClient
from pydantic import SecretStr

from provisioning_engine import run_entrypoint
from provisioning_engine.core.errors import DependencyUnready
from provisioning_engine.entrypoint.listener import CALLBACK_PATH, SESSION_COOKIE, IdentityProviderConfig, Response
from provisioning_engine.entrypoint.runtime import HostedLoginVerifier, build_listener, create_entrypoint_app


def _verify(code):
    return "tester@test.com" if code == "good" else None


def _forward(target, request):
    return Response(
        status_code=200,
        headers={"Content-Type": "text/plain", "Content-Length": "999"},
        body=f"{target.target_id} {request.headers['X-Auth-User']}".encode(),
    )


@pytest.fixture
def records(provisioner, workspace_stack):
    """Records of an applied workspace stack, by logical id."""
    assert provisioner.apply(workspace_stack).succeeded
    return {r.logical_id: r for r in provisioner.status("workspace")}


@pytest.fixture
def runtime_settings(settings):
    return settings.model_copy(update={"entrypoint_targets": ["http://10.0.1.15:8978/"]})


@pytest.fixture
def listener(runtime_settings, records):
    return build_listener(runtime_settings, records, code_verifier=_verify, forwarder=_forward)


@pytest.fixture
def client(listener):
    return TestClient(create_entrypoint_app(listener), base_url="https://workspace.example")


def _login(client):
    return client.get(f"{CALLBACK_PATH}?code=good&state=/workspace", follow_redirects=False)


class TestBuildListener:
    """Test the listener is built from the applied stack."""

    def test_listener_from_records(self, listener, records, settings):
        client_outputs = records["user-pool-client"].outputs

        assert listener.certificate_arn == settings.certificate_arn
        assert listener.port == 443
        assert listener.identity.client_id == client_outputs["client_id"]
        assert listener.identity.callback_url == client_outputs["callback_urls"][0]
        assert listener.identity.hosted_ui_base_url == records["user-pool-domain"].outputs["hosted_ui_base_url"]
        assert [t.address for t in listener.target_group.targets()] == ["http://10.0.1.15:8978"]
        assert listener.target_group.healthy_threshold == settings.healthy_threshold
        assert listener.sessions.timeout.total_seconds() == settings.session_timeout_minutes * 60

    def test_unapplied_stack(self, settings):
        with pytest.raises(DependencyUnready):
            build_listener(settings, {})

    def test_default_verifier_uses_client_secret(self, runtime_settings, records):
        config = runtime_settings.model_copy(update={"entrypoint_client_secret": SecretStr("s3cret")})

        listener = build_listener(config, records)

        assert isinstance(listener.code_verifier, HostedLoginVerifier)
        assert listener.code_verifier.client_secret.get_secret_value() == "s3cret"


class TestEntrypointApp:
    """Test the listener served over HTTP."""

    def test_unauthenticated_redirects_to_login(self, client, listener):
        response = client.get("/", follow_redirects=False)

        assert response.status_code == 302
        location = urlparse(response.headers["location"])
        assert f"{location.scheme}://{location.netloc}" == listener.identity.hosted_ui_base_url
        assert parse_qs(location.query)["client_id"] == [listener.identity.client_id]

    def test_callback_sets_secure_session_cookie(self, client):
        response = _login(client)

        assert response.status_code == 302
        assert response.headers["location"] == "/workspace"
        cookie = response.headers["set-cookie"].lower()
        assert cookie.startswith(f"{SESSION_COOKIE}=")
        assert "secure" in cookie
        assert "httponly" in cookie

    def test_unavailable_until_target_healthy(self, client, listener):
        """Test 503 with no healthy target, then forwarding once health checks pass."""
        _login(client)

        assert client.get("/").status_code == 503

        for _ in range(listener.target_group.healthy_threshold):
            listener.target_group.record_probe("task-0", True)
        response = client.get("/")

        assert response.status_code == 200
        assert response.content == b"task-0 tester@test.com"

    def test_plain_http_rejected(self, listener):
        client = TestClient(create_entrypoint_app(listener))

        assert client.get("/").status_code == 400


class _FakeJSONResponse:
    def __init__(self, status_code, payload=None):
        self.status_code = status_code
        self._payload = payload or {}

    def json(self):
        return self._payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(str(self.status_code))


class _FakeLoginSession:
    """Token and userInfo endpoints of the hosted login."""

    def __init__(self, token_status=200, error=None):
        self.token_status = token_status
        self.error = error
        self.calls = []

    def post(self, url, data=None, auth=None, timeout=None):
        self.calls.append(("post", url, data, auth))
        if self.error is not None:
            raise self.error
        return _FakeJSONResponse(self.token_status, {"access_token": "token-1"})

    def get(self, url, headers=None, timeout=None):
        self.calls.append(("get", url, headers))
        return _FakeJSONResponse(200, {"username": "tester@test.com"})


class TestHostedLoginVerifier:
    """Test the authorization code exchange."""

    @pytest.fixture
    def identity(self):
        return IdentityProviderConfig(
            hosted_ui_base_url="https://workspace-1234.auth.us-east-1.amazoncognito.com",
            client_id="client123",
            callback_url=f"https://lb.example{CALLBACK_PATH}",
        )

    def test_exchange(self, identity):
        session = _FakeLoginSession()
        verifier = HostedLoginVerifier(identity, client_secret=SecretStr("s3cret"), session=session)

        assert verifier("code-1") == "tester@test.com"

        _, url, data, auth = session.calls[0]
        assert url == f"{identity.hosted_ui_base_url}/oauth2/token"
        assert data["code"] == "code-1"
        assert data["redirect_uri"] == identity.callback_url
        assert auth == ("client123", "s3cret")
        assert session.calls[1][2] == {"Authorization": "Bearer token-1"}

    def test_rejected_code(self, identity):
        session = _FakeLoginSession(token_status=400)

        assert HostedLoginVerifier(identity, session=session)("bad") is None
        assert len(session.calls) == 1

    def test_unreachable_endpoint(self, identity):
        session = _FakeLoginSession(error=requests.exceptions.ConnectTimeout("timed out"))

        assert HostedLoginVerifier(identity, session=session)("code-1") is None


class TestRunEntrypoint:
    """Test the run script."""

    def test_unapplied_stack_exit_code(self, settings):
        assert run_entrypoint.main(settings) == 2

    def test_serves_applied_stack(self, settings, provisioner, records, monkeypatch):
        served = []
        monkeypatch.setattr(run_entrypoint, "build_provisioner", lambda config: provisioner)
        monkeypatch.setattr(run_entrypoint.uvicorn, "run", lambda app, **kwargs: served.append(kwargs))

        assert run_entrypoint.main(settings) == 0

        assert served[0]["port"] == settings.entrypoint_port
        assert served[0]["host"] == settings.entrypoint_host
