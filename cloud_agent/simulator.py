# cloud_agent/simulator.py
"""
Managed cloud simulator.

Plays the role of the opaque managed services (network, secrets store,
database, file system, container cluster, load balancer, user directory).
Resources take a configurable number of status polls to become ready,
which gives the orchestrator the same "create, then wait for steady
state" contract a real control plane has.
"""

import logging
import secrets
import string
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

from provisioning_engine.core.errors import ResourceNotFound, UserAlreadyExists, UserNotFound
from provisioning_engine.core.models import ResourceStatus

logger = logging.getLogger(__name__)


DEFAULT_PORTS = {
    "postgres": 5432,
    "mysql": 3306,
}

NFS_PORT = 2049


def _token(length: int = 12, alphabet: str = string.ascii_lowercase + string.digits) -> str:
    return "".join(secrets.choice(alphabet) for _ in range(length))


def _generate_secret(exclude_punctuation: bool, length: int = 32) -> str:
    alphabet = string.ascii_letters + string.digits
    if not exclude_punctuation:
        alphabet += "!#$%&*+-=?^_~"
    return "".join(secrets.choice(alphabet) for _ in range(length))


@dataclass
class SimulatedResource:
    physical_id: str
    kind: str
    logical_id: str
    properties: Dict[str, Any]
    status: str = "creating"
    outputs: Dict[str, Any] = field(default_factory=dict)
    reason: Optional[str] = None
    polls_remaining: int = 0


class ManagedCloudSimulator:
    """Thread-safe in-memory control plane."""

    SUPPORTED_KINDS = {
        "network",
        "secret",
        "database",
        "file_system",
        "access_point",
        "security_group",
        "ingress_rule",
        "cluster",
        "task_definition",
        "file_system_grant",
        "service",
        "load_balancer",
        "certificate",
        "user_pool",
        "user_pool_domain",
        "user_pool_client",
        "target_group",
        "listener",
        "role",
    }

    def __init__(
        self,
        account_id: str = "000000000000",
        region: str = "us-east-1",
        provisioning_polls: int = 1,
        deletion_polls: int = 1,
    ):
        self.account_id = account_id
        self.region = region
        self.provisioning_polls = provisioning_polls
        self.deletion_polls = deletion_polls

        self._resources: Dict[str, SimulatedResource] = {}
        self._secret_values: Dict[str, Dict[str, str]] = {}
        self._user_pools: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._domain_prefixes: Set[str] = set()
        self._failures: Dict[str, str] = {}
        self._lock = threading.RLock()

        # (operation, kind, physical_id) of every mutating call
        self.calls: List[tuple] = []

    # ============================================
    # FAULT INJECTION
    # ============================================

    def fail_next(self, kind: str, reason: str = "simulated failure") -> None:
        """The next create of this kind ends in status 'failed'."""
        with self._lock:
            self._failures[kind] = reason

    def reserve_domain_prefix(self, prefix: str) -> None:
        """Mark a hosted-domain prefix as taken by another account."""
        with self._lock:
            self._domain_prefixes.add(prefix)

    def mutating_calls(self, operation: Optional[str] = None) -> List[tuple]:
        with self._lock:
            return [c for c in self.calls if operation is None or c[0] == operation]

    # ============================================
    # RESOURCE LIFECYCLE
    # ============================================

    def create(self, kind: str, logical_id: str, properties: Dict[str, Any]) -> str:
        if kind not in self.SUPPORTED_KINDS:
            raise ValueError(f"Unsupported resource kind: {kind}")

        with self._lock:
            physical_id = f"{kind.replace('_', '-')}-{_token()}"
            resource = SimulatedResource(
                physical_id=physical_id,
                kind=kind,
                logical_id=logical_id,
                properties=dict(properties),
                polls_remaining=self.provisioning_polls,
            )
            self._resources[physical_id] = resource
            self.calls.append(("create", kind, physical_id))

            reason = self._failures.pop(kind, None)
            if reason is None:
                try:
                    resource.outputs = self._materialize(resource)
                except ValueError as e:
                    reason = str(e)

            if reason is not None:
                resource.status = "failed"
                resource.reason = reason
                logger.warning(f"[cloud] {kind} {logical_id} failed: {reason}")
            elif resource.polls_remaining <= 0:
                resource.status = "ready"

            logger.info(f"[cloud] create {kind} {logical_id} -> {physical_id}")
            return physical_id

    def describe(self, physical_id: str) -> ResourceStatus:
        with self._lock:
            resource = self._require(physical_id)

            if resource.status in ("creating", "updating", "deleting"):
                resource.polls_remaining -= 1
                if resource.polls_remaining <= 0:
                    if resource.status == "deleting":
                        self._remove(resource)
                        raise ResourceNotFound(physical_id)
                    resource.status = "ready"

            return ResourceStatus(
                physical_id=physical_id,
                status=resource.status,
                outputs=dict(resource.outputs),
                reason=resource.reason,
            )

    def update(self, physical_id: str, properties: Dict[str, Any]) -> None:
        with self._lock:
            resource = self._require(physical_id)
            if resource.status == "deleting":
                raise ValueError(f"{physical_id} is being deleted")

            resource.properties = dict(properties)
            try:
                outputs = self._materialize(resource, existing=resource.outputs)
            except ValueError as e:
                resource.status = "failed"
                resource.reason = str(e)
            else:
                resource.outputs = outputs
                resource.reason = None
                resource.status = "updating" if self.provisioning_polls > 0 else "ready"
                resource.polls_remaining = self.provisioning_polls

            self.calls.append(("update", resource.kind, physical_id))

    def delete(self, physical_id: str) -> None:
        with self._lock:
            resource = self._require(physical_id)
            self.calls.append(("delete", resource.kind, physical_id))

            if resource.status == "deleting":
                return

            resource.status = "deleting"
            resource.polls_remaining = self.deletion_polls
            if resource.polls_remaining <= 0:
                self._remove(resource)

    def exists(self, physical_id: str) -> bool:
        with self._lock:
            return physical_id in self._resources

    def resources_of_kind(self, kind: str) -> List[SimulatedResource]:
        with self._lock:
            return [r for r in self._resources.values() if r.kind == kind]

    def _require(self, physical_id: str) -> SimulatedResource:
        resource = self._resources.get(physical_id)
        if resource is None:
            raise ResourceNotFound(physical_id)
        return resource

    def _remove(self, resource: SimulatedResource) -> None:
        self._resources.pop(resource.physical_id, None)
        outputs = resource.outputs

        if resource.kind == "secret":
            self._secret_values.pop(outputs.get("secret_arn"), None)
        elif resource.kind == "user_pool":
            self._user_pools.pop(outputs.get("user_pool_id"), None)
        elif resource.kind == "user_pool_domain":
            self._domain_prefixes.discard(outputs.get("domain"))
        elif resource.kind == "user_pool_client":
            self._secret_values.pop(outputs.get("client_secret_arn"), None)

        logger.info(f"[cloud] {resource.kind} {resource.physical_id} deleted")

    # ============================================
    # SECRETS
    # ============================================

    def get_secret_value(self, secret_arn: str, field_name: str) -> str:
        with self._lock:
            values = self._secret_values.get(secret_arn)
            if values is None or field_name not in values:
                raise ResourceNotFound(f"{secret_arn}:{field_name}")
            return values[field_name]

    def _secret_exists(self, secret_arn: str) -> bool:
        return secret_arn in self._secret_values

    # ============================================
    # USER DIRECTORY (admin API)
    # ============================================

    def _pool(self, user_pool_id: str) -> Dict[str, Dict[str, Any]]:
        pool = self._user_pools.get(user_pool_id)
        if pool is None:
            raise ResourceNotFound(f"user pool {user_pool_id}")
        return pool

    def get_user(self, user_pool_id: str, username: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            user = self._pool(user_pool_id).get(username)
            if user is None:
                return None
            return {
                "username": username,
                "status": user["status"],
                "attributes": dict(user["attributes"]),
            }

    def admin_create_user(
        self,
        user_pool_id: str,
        username: str,
        attributes: Dict[str, str],
        temporary_password: str,
        suppress_message: bool = True,
    ) -> None:
        with self._lock:
            pool = self._pool(user_pool_id)
            if username in pool:
                raise UserAlreadyExists(f"User {username} already exists")
            pool[username] = {
                "attributes": dict(attributes),
                "password": temporary_password,
                "status": "FORCE_CHANGE_PASSWORD",
                "message_suppressed": suppress_message,
            }
            self.calls.append(("admin_create_user", "identity_user", f"{user_pool_id}/{username}"))

    def admin_delete_user(self, user_pool_id: str, username: str) -> None:
        with self._lock:
            pool = self._pool(user_pool_id)
            if username not in pool:
                raise UserNotFound(f"User {username} not found")
            del pool[username]
            self.calls.append(("admin_delete_user", "identity_user", f"{user_pool_id}/{username}"))

    def admin_set_user_password(self, user_pool_id: str, username: str, password: str, permanent: bool = False) -> None:
        with self._lock:
            user = self._pool(user_pool_id).get(username)
            if user is None:
                raise UserNotFound(f"User {username} not found")
            user["password"] = password
            user["status"] = "CONFIRMED" if permanent else "FORCE_CHANGE_PASSWORD"

    def admin_confirm_sign_up(self, user_pool_id: str, username: str) -> None:
        with self._lock:
            user = self._pool(user_pool_id).get(username)
            if user is None:
                raise UserNotFound(f"User {username} not found")
            user["status"] = "CONFIRMED"

    def admin_update_user_attributes(self, user_pool_id: str, username: str, attributes: Dict[str, str]) -> None:
        with self._lock:
            user = self._pool(user_pool_id).get(username)
            if user is None:
                raise UserNotFound(f"User {username} not found")
            user["attributes"].update(attributes)

    # ============================================
    # KIND-SPECIFIC OUTPUTS
    # ============================================

    def _arn(self, service: str, resource: str) -> str:
        return f"arn:aws:{service}:{self.region}:{self.account_id}:{resource}"

    def _materialize(self, resource: SimulatedResource, existing: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Compute outputs; raising ValueError marks the resource failed."""
        handler = getattr(self, f"_materialize_{resource.kind}")
        return handler(resource.physical_id, resource.properties, existing or {})

    def _materialize_network(self, pid, props, existing):
        azs = [f"{self.region}{chr(ord('a') + i)}" for i in range(int(props["max_azs"]))]
        return {
            "vpc_id": existing.get("vpc_id", f"vpc-{_token(8)}"),
            "availability_zones": azs,
            "public_subnet_ids": [f"subnet-pub-{az}" for az in azs],
            "private_subnet_ids": [f"subnet-priv-{az}" for az in azs],
        }

    def _materialize_secret(self, pid, props, existing):
        if "secret_arn" in existing:
            self._secret_values[existing["secret_arn"]]["username"] = props["username"]
            return {**existing, "username": props["username"]}

        secret_arn = self._arn("secretsmanager", f"secret:{props['name']}-{_token(6)}")
        key = props.get("generate_key", "password")
        self._secret_values[secret_arn] = {
            "username": props["username"],
            key: _generate_secret(props.get("exclude_punctuation", False)),
        }
        return {"secret_arn": secret_arn, "username": props["username"]}

    def _materialize_database(self, pid, props, existing):
        if not self._secret_exists(props["credentials_secret"]):
            raise ValueError(f"credentials secret {props['credentials_secret']} does not exist")
        engine = props["engine"]
        return {
            "instance_id": pid,
            "endpoint_address": existing.get(
                "endpoint_address", f"{pid}.{_token(10)}.{self.region}.rds.amazonaws.com"
            ),
            "endpoint_port": DEFAULT_PORTS.get(engine, 5432),
            "database_name": props["database_name"],
            "security_group_id": existing.get("security_group_id", f"sg-{_token(8)}"),
        }

    def _materialize_file_system(self, pid, props, existing):
        return {
            "file_system_id": existing.get("file_system_id", f"fs-{_token(8)}"),
            "file_system_arn": existing.get(
                "file_system_arn", self._arn("elasticfilesystem", f"file-system/{pid}")
            ),
            "port": NFS_PORT,
            "security_group_id": existing.get("security_group_id", f"sg-{_token(8)}"),
        }

    def _materialize_access_point(self, pid, props, existing):
        return {
            "access_point_id": existing.get("access_point_id", f"fsap-{_token(8)}"),
            "file_system_id": props["file_system_id"],
            "path": props["path"],
        }

    def _materialize_security_group(self, pid, props, existing):
        return {"security_group_id": existing.get("security_group_id", f"sg-{_token(8)}")}

    def _materialize_ingress_rule(self, pid, props, existing):
        return {
            "rule_id": existing.get("rule_id", f"sgr-{_token(8)}"),
            "port": int(props["port"]),
        }

    def _materialize_cluster(self, pid, props, existing):
        name = props.get("name") or pid
        return {
            "cluster_name": name,
            "cluster_arn": self._arn("ecs", f"cluster/{name}"),
        }

    def _materialize_task_definition(self, pid, props, existing):
        container = props["container"]
        for name, value in container.get("environment", {}).items():
            if not isinstance(value, str):
                raise ValueError(f"environment variable {name} is not a resolved string")
        for name, binding in container.get("secrets", {}).items():
            if not self._secret_exists(binding["secret_arn"]):
                raise ValueError(f"secret binding {name} points to a missing secret")
        family = props.get("family", pid)
        revision = existing.get("revision", 0) + 1
        return {
            "task_definition_arn": self._arn("ecs", f"task-definition/{family}:{revision}"),
            "revision": revision,
            "task_role_arn": existing.get("task_role_arn", self._arn("iam", f"role/{family}-task-role")),
        }

    def _materialize_file_system_grant(self, pid, props, existing):
        return {
            "grant_id": existing.get("grant_id", pid),
            "actions": list(props["actions"]),
        }

    def _materialize_service(self, pid, props, existing):
        if int(props["desired_count"]) < 0:
            raise ValueError("desired_count must not be negative")
        name = props.get("name") or pid
        return {
            "service_name": name,
            "service_arn": self._arn("ecs", f"service/{name}"),
            "running_count": int(props["desired_count"]),
        }

    def _materialize_load_balancer(self, pid, props, existing):
        name = props["name"]
        return {
            "load_balancer_arn": existing.get(
                "load_balancer_arn", self._arn("elasticloadbalancing", f"loadbalancer/app/{name}/{_token(16)}")
            ),
            "dns_name": existing.get(
                "dns_name", f"{name}-{secrets.randbelow(10 ** 9)}.{self.region}.elb.amazonaws.com"
            ),
            "security_group_id": existing.get("security_group_id", f"sg-{_token(8)}"),
        }

    def _materialize_certificate(self, pid, props, existing):
        arn = props["certificate_arn"]
        if not arn.startswith("arn:"):
            raise ValueError(f"{arn} is not a certificate ARN")
        return {"certificate_arn": arn}

    def _materialize_user_pool(self, pid, props, existing):
        if "user_pool_id" in existing:
            return existing
        pool_id = f"{self.region}_{_token(9, string.ascii_letters + string.digits)}"
        self._user_pools[pool_id] = {}
        return {
            "user_pool_id": pool_id,
            "user_pool_arn": self._arn("cognito-idp", f"userpool/{pool_id}"),
        }

    def _materialize_user_pool_domain(self, pid, props, existing):
        prefix = props["domain_prefix"]
        if existing.get("domain") != prefix:
            if prefix in self._domain_prefixes:
                raise ValueError(f"domain prefix {prefix} is already taken")
            self._domain_prefixes.discard(existing.get("domain"))
            self._domain_prefixes.add(prefix)
        return {
            "domain": prefix,
            "hosted_ui_base_url": f"https://{prefix}.auth.{self.region}.amazoncognito.com",
        }

    def _materialize_user_pool_client(self, pid, props, existing):
        for url in props["callback_urls"]:
            if not url.startswith("https://"):
                raise ValueError(f"callback URL {url} must use https")
        outputs = {
            "client_id": existing.get("client_id", _token(26)),
            "callback_urls": list(props["callback_urls"]),
        }
        if props.get("generate_secret"):
            secret_arn = existing.get("client_secret_arn") or self._arn(
                "cognito-idp", f"userpool-client-secret/{outputs['client_id']}"
            )
            self._secret_values.setdefault(secret_arn, {"client_secret": _generate_secret(True, 52)})
            outputs["client_secret_arn"] = secret_arn
        return outputs

    def _materialize_target_group(self, pid, props, existing):
        return {
            "target_group_arn": existing.get(
                "target_group_arn", self._arn("elasticloadbalancing", f"targetgroup/{pid}/{_token(16)}")
            ),
            "port": int(props["port"]),
            "targets": list(props.get("targets", [])),
        }

    def _materialize_listener(self, pid, props, existing):
        action = props["default_action"]
        if "authenticate" not in action or "forward" not in action:
            raise ValueError("listener default action must authenticate then forward")
        return {
            "listener_arn": existing.get(
                "listener_arn", self._arn("elasticloadbalancing", f"listener/app/{pid}/{_token(16)}")
            ),
            "port": int(props["port"]),
        }

    def _materialize_role(self, pid, props, existing):
        name = props.get("name") or pid
        return {
            "role_arn": self._arn("iam", f"role/{name}"),
            "actions": list(props["actions"]),
            "resources": list(props["resources"]),
        }
