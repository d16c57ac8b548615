# provisioning_engine/providers/agent_client.py
"""Cloud agent client - provider that talks to a remote control plane over HTTP."""

import logging
from typing import Any, Dict, Optional

import requests

from provisioning_engine.core.errors import ProvisioningError, ResourceNotFound
from provisioning_engine.core.models import ResourceKind, ResourceStatus
from provisioning_engine.providers.base import ResourceProvider

logger = logging.getLogger(__name__)


class CloudAgentClient(ResourceProvider):
    """Client for communicating with the cloud agent."""

    def __init__(self, agent_url: str, timeout: int = 30):
        """
        Initialize client.

        Args:
            agent_url: Base URL of the cloud agent (e.g., "http://10.0.1.10:9100")
            timeout: Request timeout in seconds
        """
        self.base_url = agent_url.rstrip('/')
        self.timeout = timeout

    def health_check(self) -> bool:
        """
        Check if agent is healthy.

        Returns:
            True if healthy, False otherwise
        """
        try:
            response = requests.get(f"{self.base_url}/health", timeout=5)
            return response.status_code == 200
        except requests.exceptions.RequestException as e:
            logger.error(f"Health check failed: {e}")
            return False

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        try:
            response = requests.request(
                method,
                f"{self.base_url}{path}",
                timeout=self.timeout,
                **kwargs,
            )
        except requests.exceptions.Timeout:
            raise ProvisioningError(f"Cloud agent timeout after {self.timeout}s")
        except requests.exceptions.ConnectionError:
            raise ProvisioningError(f"Cannot connect to cloud agent at {self.base_url}")

        if response.status_code == 404:
            raise ResourceNotFound(path)

        if response.status_code >= 400:
            try:
                detail = response.json().get('detail', response.text)
            except ValueError:
                detail = response.text
            raise ProvisioningError(f"Cloud agent {method} {path} failed: {detail}")

        return response

    def create(self, kind: ResourceKind, logical_id: str, properties: Dict[str, Any]) -> str:
        logger.info(f"[agent] creating {kind.value} {logical_id} via {self.base_url}")

        response = self._request(
            "POST",
            "/resources",
            json={"kind": kind.value, "logical_id": logical_id, "properties": properties},
        )
        return response.json()["physical_id"]

    def describe(self, physical_id: str, context: Optional[Dict[str, Any]] = None) -> ResourceStatus:
        data = self._request("GET", f"/resources/{physical_id}").json()
        return ResourceStatus(
            physical_id=data["physical_id"],
            status=data["status"],
            outputs=data.get("outputs", {}),
            reason=data.get("reason"),
        )

    def update(self, physical_id: str, properties: Dict[str, Any], context: Optional[Dict[str, Any]] = None) -> None:
        self._request("PUT", f"/resources/{physical_id}", json={"properties": properties})

    def delete(self, physical_id: str, context: Optional[Dict[str, Any]] = None) -> None:
        self._request("DELETE", f"/resources/{physical_id}")
