#tests\test_entrypoint.py

"""Test the authenticated listener, target health and sessions."""

from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs, urlparse

import pytest
import requests

from provisioning_engine.entrypoint.health_checker import TargetHealthChecker
from provisioning_engine.entrypoint.listener import (
    CALLBACK_PATH,
    SESSION_COOKIE,
    AuthenticatedListener,
    IdentityProviderConfig,
    Request,
    Response,
)
from provisioning_engine.entrypoint.sessions import SessionStore
from provisioning_engine.entrypoint.target_group import TargetGroup, TargetHealth

CERTIFICATE_ARN = "arn:aws:acm:us-east-1:123456789012:certificate/abc"
LB_DNS = "workspace-lb-1234.us-east-1.elb.amazonaws.com"


class _Clock:
    def __init__(self):
        self.now = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self):
        return self.now


class _RecordingForwarder:
    def __init__(self):
        self.calls = []

    def __call__(self, target, request):
        self.calls.append((target.target_id, request))
        return Response(status_code=200, body=b"workspace")


def _mark_healthy(group, target_id):
    for _ in range(group.healthy_threshold):
        group.record_probe(target_id, True)


@pytest.fixture
def identity():
    return IdentityProviderConfig(
        hosted_ui_base_url="https://workspace-1234.auth.us-east-1.amazoncognito.com",
        client_id="client123",
        callback_url=f"https://{LB_DNS}{CALLBACK_PATH}",
    )


@pytest.fixture
def clock():
    return _Clock()


@pytest.fixture
def target_group():
    group = TargetGroup()
    group.register("task-a", "http://10.0.1.10:8978")
    group.register("task-b", "http://10.0.2.10:8978")
    return group


@pytest.fixture
def forwarder():
    return _RecordingForwarder()


@pytest.fixture
def listener(identity, clock, target_group, forwarder):
    return AuthenticatedListener(
        certificate_arn=CERTIFICATE_ARN,
        identity=identity,
        sessions=SessionStore(timeout_minutes=30, clock=clock),
        target_group=target_group,
        code_verifier=lambda code: "tester@test.com" if code == "good-code" else None,
        forwarder=forwarder,
    )


def _login(listener):
    response = listener.handle(Request("GET", CALLBACK_PATH, query={"code": "good-code", "state": "/projects"}))
    return response.cookies[SESSION_COOKIE]


class TestTargetGroup:
    """Test health thresholds and target selection."""

    def test_thresholds(self, target_group):
        """Test two consecutive results are needed to change health."""
        assert target_group.record_probe("task-a", True) == TargetHealth.INITIAL
        assert target_group.record_probe("task-a", True) == TargetHealth.HEALTHY
        assert target_group.record_probe("task-a", False) == TargetHealth.HEALTHY
        assert target_group.record_probe("task-a", False) == TargetHealth.UNHEALTHY

    def test_only_healthy_targets_selected(self, target_group):
        """Test all traffic goes to the single healthy target."""
        _mark_healthy(target_group, "task-a")

        picks = {target_group.next_target().target_id for _ in range(6)}

        assert picks == {"task-a"}

    def test_round_robin(self, target_group):
        _mark_healthy(target_group, "task-a")
        _mark_healthy(target_group, "task-b")

        picks = [target_group.next_target().target_id for _ in range(4)]

        assert sorted(picks) == ["task-a", "task-a", "task-b", "task-b"]

    def test_no_healthy_targets(self, target_group):
        assert target_group.next_target() is None

    def test_unknown_target(self, target_group):
        with pytest.raises(KeyError):
            target_group.record_probe("task-z", True)

    def test_invalid_threshold(self):
        with pytest.raises(ValueError):
            TargetGroup(healthy_threshold=0)


class TestAuthenticatedListener:
    """Test authenticate-then-forward."""

    def test_requires_certificate(self, identity, target_group):
        with pytest.raises(ValueError):
            AuthenticatedListener(None, identity, SessionStore(), target_group, lambda code: None)

    def test_plain_http_rejected(self, listener):
        assert listener.handle(Request("GET", "/", scheme="http")).status_code == 400

    def test_unauthenticated_redirects_to_login(self, listener):
        """Test a request without a session is sent to the hosted login page."""
        response = listener.handle(Request("GET", "/"))

        assert response.status_code == 302
        location = urlparse(response.headers["Location"])
        params = parse_qs(location.query)
        assert location.netloc == "workspace-1234.auth.us-east-1.amazoncognito.com"
        assert location.path == "/oauth2/authorize"
        assert params == {
            "client_id": ["client123"],
            "redirect_uri": [f"https://{LB_DNS}{CALLBACK_PATH}"],
            "response_type": ["code"],
            "scope": ["openid"],
        }

    def test_callback_starts_session(self, listener):
        """Test a valid code sets the session cookie and returns to the requested page."""
        response = listener.handle(Request("GET", CALLBACK_PATH, query={"code": "good-code", "state": "/projects"}))

        assert response.status_code == 302
        assert response.headers["Location"] == "/projects"
        assert response.cookies[SESSION_COOKIE]

    @pytest.mark.parametrize("query", [{}, {"code": "bad-code"}])
    def test_callback_rejects_bad_code(self, listener, query):
        assert listener.handle(Request("GET", CALLBACK_PATH, query=query)).status_code == 401

    @pytest.mark.parametrize("state", ["https://evil.example.com", "//evil.example.com"])
    def test_callback_never_redirects_off_site(self, listener, state):
        response = listener.handle(Request("GET", CALLBACK_PATH, query={"code": "good-code", "state": state}))
        assert response.headers["Location"] == "/"

    def test_authenticated_request_forwarded(self, listener, target_group, forwarder):
        """Test a valid session is forwarded to a healthy target with the user header."""
        _mark_healthy(target_group, "task-b")
        session_id = _login(listener)

        response = listener.handle(Request("GET", "/api/status", cookies={SESSION_COOKIE: session_id}))

        assert response.status_code == 200
        target_id, forwarded = forwarder.calls[0]
        assert target_id == "task-b"
        assert forwarded.headers["X-Auth-User"] == "tester@test.com"
        assert forwarded.headers["X-Forwarded-Proto"] == "https"

    def test_no_healthy_targets_is_503(self, listener, forwarder):
        session_id = _login(listener)

        response = listener.handle(Request("GET", "/", cookies={SESSION_COOKIE: session_id}))

        assert response.status_code == 503
        assert forwarder.calls == []

    def test_expired_session_redirects(self, listener, target_group, clock):
        """Test a session is no longer valid after the timeout."""
        _mark_healthy(target_group, "task-a")
        session_id = _login(listener)
        clock.now += timedelta(minutes=31)

        response = listener.handle(Request("GET", "/", cookies={SESSION_COOKIE: session_id}))

        assert response.status_code == 302
        assert "/oauth2/authorize" in response.headers["Location"]


class _FakeResponse:
    def __init__(self, status_code):
        self.status_code = status_code


class _FakeSession:
    """requests.Session stand-in keyed by URL."""

    def __init__(self, results):
        self.results = results
        self.urls = []

    def get(self, url, timeout=None, allow_redirects=True):
        self.urls.append(url)
        result = self.results[url]
        if isinstance(result, Exception):
            raise result
        return _FakeResponse(result)


class TestTargetHealthChecker:
    """Test health probes."""

    def test_probe_results(self, target_group):
        """Test 2xx/3xx succeed; errors and timeouts fail."""
        session = _FakeSession({
            "http://10.0.1.10:8978/": 302,
            "http://10.0.2.10:8978/": requests.exceptions.Timeout("timed out"),
        })
        checker = TargetHealthChecker(target_group, session=session)

        checker.run_once()
        checker.run_once()

        assert target_group.get("task-a").health == TargetHealth.HEALTHY
        assert target_group.get("task-b").health == TargetHealth.UNHEALTHY

    def test_server_error_is_failure(self, target_group):
        session = _FakeSession({"http://10.0.1.10:8978/": 500})
        checker = TargetHealthChecker(target_group, session=session)

        assert checker.probe(target_group.get("task-a")) is False

    def test_from_settings(self, target_group, settings):
        checker = TargetHealthChecker.from_settings(target_group, settings)
        assert checker.interval == settings.health_check_interval_seconds
        assert checker.timeout == settings.health_check_timeout_seconds
