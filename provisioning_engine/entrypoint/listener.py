# provisioning_engine/entrypoint/listener.py
"""
Authenticated listener - the single public entry point of the workspace.

Flow per request:
1. Reject plain HTTP (TLS terminates here, with the bound certificate)
2. Handle the identity provider's callback: exchange the code, start a session
3. No valid session -> redirect to the hosted login page
4. Valid session -> forward to a healthy target (503 if there is none)
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional
from urllib.parse import urlencode

import requests

from provisioning_engine.entrypoint.sessions import SessionStore
from provisioning_engine.entrypoint.target_group import Target, TargetGroup

logger = logging.getLogger(__name__)


CALLBACK_PATH = "/oauth2/idpresponse"
SESSION_COOKIE = "workspace-auth-session"


@dataclass
class Request:
    method: str
    path: str
    scheme: str = "https"
    host: str = ""
    query: Dict[str, str] = field(default_factory=dict)
    headers: Dict[str, str] = field(default_factory=dict)
    cookies: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""


@dataclass
class Response:
    status_code: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    cookies: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class IdentityProviderConfig:
    hosted_ui_base_url: str
    client_id: str
    callback_url: str
    scope: str = "openid"

    def authorize_url(self) -> str:
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.callback_url,
            "response_type": "code",
            "scope": self.scope,
        }
        return f"{self.hosted_ui_base_url}/oauth2/authorize?{urlencode(params)}"


def forward_with_requests(target: Target, request: Request, timeout: int = 30) -> Response:
    """Default forwarder: replay the request against the target over HTTP."""
    response = requests.request(
        request.method,
        f"{target.address}{request.path}",
        params=request.query,
        headers=request.headers,
        data=request.body,
        timeout=timeout,
        allow_redirects=False,
    )
    return Response(
        status_code=response.status_code,
        headers=dict(response.headers),
        body=response.content,
    )


class AuthenticatedListener:
    """
    HTTPS listener whose default action is authenticate, then forward.

    Args:
        certificate_arn: Bound server certificate; the listener refuses to
            serve without one
        identity: Hosted login settings (client id, callback URL)
        sessions: Session store (its timeout is the session timeout)
        target_group: Healthy targets receive forwarded requests
        code_verifier: Exchanges an authorization code for a username;
            returns None if the code is rejected
        forwarder: Sends a request to a target
    """

    def __init__(
        self,
        certificate_arn: Optional[str],
        identity: IdentityProviderConfig,
        sessions: SessionStore,
        target_group: TargetGroup,
        code_verifier: Callable[[str], Optional[str]],
        forwarder: Callable[[Target, Request], Response] = forward_with_requests,
        port: int = 443,
    ):
        if not certificate_arn:
            raise ValueError("An HTTPS listener requires a certificate")

        self.certificate_arn = certificate_arn
        self.identity = identity
        self.sessions = sessions
        self.target_group = target_group
        self.code_verifier = code_verifier
        self.forwarder = forwarder
        self.port = port

    def handle(self, request: Request) -> Response:
        if request.scheme != "https":
            return Response(status_code=400, body=b"HTTPS required")

        if request.path == CALLBACK_PATH:
            return self._handle_callback(request)

        session = self.sessions.get(request.cookies.get(SESSION_COOKIE))
        if session is None:
            logger.debug(f"[listener] no session for {request.path}, redirecting to login")
            return self._redirect(self.identity.authorize_url())

        target = self.target_group.next_target()
        if target is None:
            logger.warning("[listener] no healthy targets")
            return Response(status_code=503, body=b"Service Unavailable")

        forwarded = Request(
            method=request.method,
            path=request.path,
            scheme="http",
            host=request.host,
            query=dict(request.query),
            headers={**request.headers, "X-Forwarded-Proto": "https", "X-Auth-User": session.username},
            cookies=dict(request.cookies),
            body=request.body,
        )
        return self.forwarder(target, forwarded)

    def _handle_callback(self, request: Request) -> Response:
        code = request.query.get("code")
        if not code:
            return Response(status_code=401, body=b"Missing authorization code")

        username = self.code_verifier(code)
        if username is None:
            logger.warning("[listener] authorization code rejected")
            return Response(status_code=401, body=b"Authorization failed")

        session = self.sessions.create(username)
        logger.info(f"[listener] session started for {username}")

        # only same-site paths
        state = request.query.get("state") or "/"
        if not state.startswith("/") or state.startswith("//"):
            state = "/"

        response = self._redirect(state)
        response.cookies[SESSION_COOKIE] = session.session_id
        return response

    @staticmethod
    def _redirect(location: str) -> Response:
        return Response(status_code=302, headers={"Location": location})
