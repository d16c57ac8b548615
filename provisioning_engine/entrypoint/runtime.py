# provisioning_engine/entrypoint/runtime.py
"""
Entry point runtime - serves the authenticated listener of an applied stack.

The listener, its target group and the hosted login settings are built
from the stack's READY records (certificate, user pool domain and client,
target group, listener). Target addresses of the running tasks come from
settings; until one of them passes its health checks every
authenticated request gets a 503.
"""

import logging
from typing import Callable, Dict, Optional

import requests
from fastapi import FastAPI, Request as HTTPRequest
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import Response as HTTPResponse
from pydantic import SecretStr

from provisioning_engine.core.errors import DependencyUnready
from provisioning_engine.core.models import ResourceRecord
from provisioning_engine.entrypoint.listener import (
    AuthenticatedListener,
    IdentityProviderConfig,
    Request,
    Response,
    forward_with_requests,
)
from provisioning_engine.entrypoint.sessions import SessionStore
from provisioning_engine.entrypoint.target_group import Target, TargetGroup

logger = logging.getLogger(__name__)


# Not passed through in either direction
HOP_BY_HOP_HEADERS = {
    "connection",
    "keep-alive",
    "transfer-encoding",
    "te",
    "upgrade",
    "content-length",
    "content-encoding",
}


class HostedLoginVerifier:
    """
    Exchanges an authorization code at the hosted login's token endpoint
    and reads the signed-in username from its userInfo endpoint.

    Returns None whenever the exchange is rejected or cannot be completed.
    """

    def __init__(
        self,
        identity: IdentityProviderConfig,
        client_secret: Optional[SecretStr] = None,
        timeout: int = 10,
        session: Optional[requests.Session] = None,
    ):
        self.identity = identity
        self.client_secret = client_secret
        self.timeout = timeout
        self._session = session or requests.Session()

    def __call__(self, code: str) -> Optional[str]:
        base_url = self.identity.hosted_ui_base_url
        auth = None
        if self.client_secret is not None:
            auth = (self.identity.client_id, self.client_secret.get_secret_value())

        try:
            token = self._session.post(
                f"{base_url}/oauth2/token",
                data={
                    "grant_type": "authorization_code",
                    "code": code,
                    "client_id": self.identity.client_id,
                    "redirect_uri": self.identity.callback_url,
                },
                auth=auth,
                timeout=self.timeout,
            )
            if token.status_code != 200:
                logger.warning(f"[login] token exchange rejected ({token.status_code})")
                return None

            access_token = token.json().get("access_token")
            if not access_token:
                logger.warning("[login] token response without an access token")
                return None

            info = self._session.get(
                f"{base_url}/oauth2/userInfo",
                headers={"Authorization": f"Bearer {access_token}"},
                timeout=self.timeout,
            )
            info.raise_for_status()
        except requests.exceptions.RequestException as e:
            logger.warning(f"[login] code exchange failed: {e}")
            return None

        claims = info.json()
        return claims.get("username") or claims.get("email")


def _ready_outputs(records: Dict[str, ResourceRecord], logical_id: str) -> Dict:
    record = records.get(logical_id)
    if record is None or not record.is_ready():
        raise DependencyUnready(logical_id)
    return record.outputs


def build_listener(
    config,
    records: Dict[str, ResourceRecord],
    code_verifier: Optional[Callable[[str], Optional[str]]] = None,
    forwarder: Callable[[Target, Request], Response] = forward_with_requests,
) -> AuthenticatedListener:
    """
    Listener for an applied stack.

    Raises:
        DependencyUnready: one of the entry point resources is not READY
    """
    certificate = _ready_outputs(records, "certificate")
    domain = _ready_outputs(records, "user-pool-domain")
    client = _ready_outputs(records, "user-pool-client")
    _ready_outputs(records, "target-group")
    listener = _ready_outputs(records, "listener")

    identity = IdentityProviderConfig(
        hosted_ui_base_url=domain["hosted_ui_base_url"],
        client_id=client["client_id"],
        callback_url=client["callback_urls"][0],
    )

    target_group = TargetGroup.from_settings(config)
    for index, address in enumerate(config.entrypoint_targets):
        target_group.register(f"task-{index}", address)

    return AuthenticatedListener(
        certificate_arn=certificate["certificate_arn"],
        identity=identity,
        sessions=SessionStore(timeout_minutes=config.session_timeout_minutes),
        target_group=target_group,
        code_verifier=code_verifier or HostedLoginVerifier(
            identity,
            client_secret=config.entrypoint_client_secret,
            timeout=config.health_check_timeout_seconds,
        ),
        forwarder=forwarder,
        port=listener["port"],
    )


def create_entrypoint_app(listener: AuthenticatedListener) -> FastAPI:
    """ASGI app handing every request to the listener."""
    app = FastAPI(title="Workspace Entry Point", docs_url=None, redoc_url=None, openapi_url=None)
    cookie_max_age = int(listener.sessions.timeout.total_seconds())

    @app.api_route(
        "/{path:path}",
        methods=["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"],
    )
    async def handle(path: str, request: HTTPRequest):
        incoming = Request(
            method=request.method,
            path=request.url.path,
            scheme=request.url.scheme,
            host=request.headers.get("host", ""),
            query=dict(request.query_params),
            headers={
                k: v for k, v in request.headers.items()
                if k.lower() not in HOP_BY_HOP_HEADERS and k.lower() != "host"
            },
            cookies=dict(request.cookies),
            body=await request.body(),
        )

        response = await run_in_threadpool(listener.handle, incoming)

        outgoing = HTTPResponse(
            content=response.body,
            status_code=response.status_code,
            headers={
                k: v for k, v in response.headers.items()
                if k.lower() not in HOP_BY_HOP_HEADERS
            },
        )
        for name, value in response.cookies.items():
            outgoing.set_cookie(
                name,
                value,
                max_age=cookie_max_age,
                secure=True,
                httponly=True,
                samesite="lax",
            )
        return outgoing

    return app
