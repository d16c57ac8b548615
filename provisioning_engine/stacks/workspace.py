# provisioning_engine/stacks/workspace.py
"""
The workspace stack: a database-administration web workspace behind an
authenticating HTTPS load balancer.

Forward reference: the login client's callback URL needs the load
balancer's DNS name, and the listener needs the login client. Creating
the load balancer and its listener as separate resources breaks the
cycle in a single apply:

    load-balancer -> user-pool-client (callback URL) -> listener

The bootstrap user is reconciled before the listener attaches
authentication, so the first sign-in can succeed as soon as the
entry point is live.
"""

import hashlib
import re

from provisioning_engine.core.models import (
    RemovalPolicy,
    ResourceDescriptor,
    ResourceKind,
    StackDefinition,
)
from provisioning_engine.core.references import Fmt, Ref, SecretRef
from provisioning_engine.identity.capability import ADMIN_USER_ACTIONS

PHASE_NOTES = (
    "single-phase apply: load-balancer is created before user-pool-client "
    "(callback URL) and listener (authentication action)"
)


def unique_resource_name(stack_name: str, logical_id: str, max_length: int = 24) -> str:
    """
    Deterministic, lower-case name unique to (stack, logical id).

    Human-readable prefix plus an 8 character digest, cut to max_length.
    """
    digest = hashlib.sha256(f"{stack_name}/{logical_id}".encode("utf-8")).hexdigest()[:8]
    readable = re.sub(r"[^a-z0-9]", "", f"{stack_name}{logical_id}".lower())
    room = max_length - len(digest)
    if room <= 0:
        return digest[:max_length]
    return f"{readable[:room]}{digest}"


def domain_prefix(base: str, account_id: str) -> str:
    return f"{base}-{account_id[:4]}"


def build_workspace_stack(settings) -> StackDefinition:
    """Descriptors of every resource in the workspace, in declaration order."""
    jdbc_url = Fmt(
        "jdbc:postgresql://{}:{}/{}",
        Ref("database", "endpoint_address"),
        Ref("database", "endpoint_port"),
        settings.database_name,
    )
    db_user = Ref("db-secret", "username")

    resources = [
        # ============================================
        # NETWORK + SECRETS + DATA
        # ============================================
        ResourceDescriptor(
            "vpc",
            ResourceKind.NETWORK,
            {"max_azs": settings.max_azs, "subnet_tiers": ["public", "private"]},
        ),
        ResourceDescriptor(
            "admin-secret",
            ResourceKind.SECRET,
            {
                "name": "cb-admin-secret",
                "username": settings.admin_username,
                "generate_key": "password",
                "exclude_punctuation": True,
            },
        ),
        ResourceDescriptor(
            "db-secret",
            ResourceKind.SECRET,
            {
                "name": "cb-db-secret",
                "username": settings.db_username,
                "generate_key": "password",
                "exclude_punctuation": True,
            },
        ),
        ResourceDescriptor(
            "database",
            ResourceKind.DATABASE,
            {
                "engine": "postgres",
                "engine_version": "17",
                "instance_class": "db.t3.small",
                "database_name": settings.database_name,
                "credentials_secret": Ref("db-secret", "secret_arn"),
                "vpc_id": Ref("vpc", "vpc_id"),
                "subnet_ids": Ref("vpc", "private_subnet_ids"),
                "max_allocated_storage_gib": 200,
                "storage_encrypted": True,
            },
            removal_policy=RemovalPolicy.DESTROY,
        ),
        ResourceDescriptor(
            "file-system",
            ResourceKind.FILE_SYSTEM,
            {
                "vpc_id": Ref("vpc", "vpc_id"),
                "subnet_ids": Ref("vpc", "private_subnet_ids"),
                "encrypted": True,
            },
            removal_policy=RemovalPolicy.DESTROY,
        ),
        ResourceDescriptor(
            "access-point",
            ResourceKind.ACCESS_POINT,
            {"file_system_id": Ref("file-system", "file_system_id"), "path": "/"},
            removal_policy=RemovalPolicy.DESTROY,
        ),

        # ============================================
        # COMPUTE
        # ============================================
        ResourceDescriptor(
            "compute-sg",
            ResourceKind.SECURITY_GROUP,
            {"vpc_id": Ref("vpc", "vpc_id"), "description": "workspace service"},
        ),
        ResourceDescriptor(
            "db-ingress",
            ResourceKind.INGRESS_RULE,
            {
                "source_security_group_id": Ref("compute-sg", "security_group_id"),
                "target_security_group_id": Ref("database", "security_group_id"),
                "port": Ref("database", "endpoint_port"),
            },
        ),
        ResourceDescriptor(
            "fs-ingress",
            ResourceKind.INGRESS_RULE,
            {
                "source_security_group_id": Ref("compute-sg", "security_group_id"),
                "target_security_group_id": Ref("file-system", "security_group_id"),
                "port": Ref("file-system", "port"),
            },
        ),
        ResourceDescriptor(
            "cluster",
            ResourceKind.CLUSTER,
            {"vpc_id": Ref("vpc", "vpc_id")},
            depends_on=("database", "file-system"),
        ),
        ResourceDescriptor(
            "task-definition",
            ResourceKind.TASK_DEFINITION,
            {
                "cpu": settings.task_cpu,
                "memory": settings.task_memory_mib,
                "volumes": [
                    {
                        "name": "cb-efs-volume",
                        "file_system_id": Ref("file-system", "file_system_id"),
                        "access_point_id": Ref("access-point", "access_point_id"),
                        "iam_authorization": True,
                        "transit_encryption": True,
                    }
                ],
                "container": {
                    "name": "cb-app-container",
                    "image": settings.container_image,
                    "cpu": settings.task_cpu,
                    "memory": settings.task_memory_mib,
                    "port_mappings": [
                        {"container_port": settings.container_port, "host_port": settings.container_port}
                    ],
                    "mount_points": [
                        {
                            "source_volume": "cb-efs-volume",
                            "container_path": settings.workspace_mount_path,
                            "read_only": False,
                        }
                    ],
                    "logging": {"stream_prefix": "cb-logs", "retention_days": 1},
                    "environment": {
                        "CB_SERVER_NAME": settings.server_name,
                        "CB_ADMIN_NAME": settings.admin_username,
                        "CLOUDBEAVER_DB_DRIVER": "postgres-jdbc",
                        "CLOUDBEAVER_DB_URL": jdbc_url,
                        "CLOUDBEAVER_DB_USER": db_user,
                        "CLOUDBEAVER_RESTRICT_EXTERNAL_SERVICES_INVOCATION": "true",
                        "CLOUDBEAVER_QM_DB_USER": db_user,
                        "CLOUDBEAVER_QM_DB_URL": jdbc_url,
                    },
                    "secrets": {
                        "CLOUDBEAVER_DB_PASSWORD": SecretRef("db-secret", "password"),
                        "CLOUDBEAVER_QM_DB_PASSWORD": SecretRef("db-secret", "password"),
                        "CB_ADMIN_PASSWORD": SecretRef("admin-secret", "password"),
                    },
                },
            },
        ),
        ResourceDescriptor(
            "fs-grant",
            ResourceKind.FILE_SYSTEM_GRANT,
            {
                "file_system_id": Ref("file-system", "file_system_id"),
                "principal_arn": Ref("task-definition", "task_role_arn"),
                "actions": [
                    "elasticfilesystem:ClientMount",
                    "elasticfilesystem:ClientWrite",
                ],
            },
        ),
        ResourceDescriptor(
            "service",
            ResourceKind.SERVICE,
            {
                "cluster_arn": Ref("cluster", "cluster_arn"),
                "task_definition_arn": Ref("task-definition", "task_definition_arn"),
                "desired_count": settings.desired_count,
                "security_group_ids": [Ref("compute-sg", "security_group_id")],
                "subnet_ids": Ref("vpc", "private_subnet_ids"),
            },
            depends_on=("db-ingress", "fs-ingress", "fs-grant"),
        ),

        # ============================================
        # ENTRY POINT + IDENTITY
        # ============================================
        ResourceDescriptor(
            "load-balancer",
            ResourceKind.LOAD_BALANCER,
            {
                "name": unique_resource_name(settings.stack_name, "load-balancer"),
                "vpc_id": Ref("vpc", "vpc_id"),
                "subnet_ids": Ref("vpc", "public_subnet_ids"),
                "internet_facing": True,
            },
        ),
        ResourceDescriptor(
            "certificate",
            ResourceKind.CERTIFICATE,
            {"certificate_arn": settings.certificate_arn},
            removal_policy=RemovalPolicy.RETAIN,
        ),
        ResourceDescriptor(
            "user-pool",
            ResourceKind.USER_POOL,
            {
                "name": "cb-user-pool",
                "self_sign_up_enabled": False,
                "required_attributes": ["email"],
            },
            removal_policy=RemovalPolicy.DESTROY,
        ),
        ResourceDescriptor(
            "user-pool-domain",
            ResourceKind.USER_POOL_DOMAIN,
            {
                "user_pool_id": Ref("user-pool", "user_pool_id"),
                "domain_prefix": domain_prefix(settings.domain_prefix_base, settings.account_id),
            },
            removal_policy=RemovalPolicy.DESTROY,
        ),
        ResourceDescriptor(
            "user-pool-client",
            ResourceKind.USER_POOL_CLIENT,
            {
                "user_pool_id": Ref("user-pool", "user_pool_id"),
                "generate_secret": True,
                "oauth_flows": ["authorization_code"],
                "oauth_scopes": ["openid"],
                "callback_urls": [Fmt("https://{}/oauth2/idpresponse", Ref("load-balancer", "dns_name"))],
                "prevent_user_existence_errors": True,
            },
            removal_policy=RemovalPolicy.DESTROY,
        ),
        ResourceDescriptor(
            "target-group",
            ResourceKind.TARGET_GROUP,
            {
                "vpc_id": Ref("vpc", "vpc_id"),
                "port": settings.container_port,
                "protocol": "HTTP",
                "targets": [Ref("service", "service_arn")],
                "health_check": {
                    "path": settings.health_check_path,
                    "healthy_threshold": settings.healthy_threshold,
                    "unhealthy_threshold": settings.unhealthy_threshold,
                    "timeout_seconds": settings.health_check_timeout_seconds,
                    "interval_seconds": settings.health_check_interval_seconds,
                },
            },
        ),
        ResourceDescriptor(
            "reconciler-role",
            ResourceKind.ROLE,
            {
                "assumed_by": "lambda.amazonaws.com",
                "actions": list(ADMIN_USER_ACTIONS),
                "resources": [Ref("user-pool", "user_pool_arn")],
            },
        ),
        ResourceDescriptor(
            "bootstrap-user",
            ResourceKind.IDENTITY_USER,
            {
                "user_pool_id": Ref("user-pool", "user_pool_id"),
                "username": settings.bootstrap_username,
                "attributes": {
                    "email": settings.bootstrap_username,
                    "email_verified": "true",
                },
                "capability": {
                    "user_pool_id": Ref("user-pool", "user_pool_id"),
                    "user_pool_arn": Ref("user-pool", "user_pool_arn"),
                    "actions": Ref("reconciler-role", "actions"),
                    "role_arn": Ref("reconciler-role", "role_arn"),
                },
            },
        ),
        ResourceDescriptor(
            "listener",
            ResourceKind.LISTENER,
            {
                "load_balancer_arn": Ref("load-balancer", "load_balancer_arn"),
                "port": 443,
                "protocol": "HTTPS",
                "certificate_arn": Ref("certificate", "certificate_arn"),
                "default_action": {
                    "authenticate": {
                        "user_pool_arn": Ref("user-pool", "user_pool_arn"),
                        "client_id": Ref("user-pool-client", "client_id"),
                        "domain": Ref("user-pool-domain", "domain"),
                        "session_timeout_minutes": settings.session_timeout_minutes,
                        "scope": "openid",
                    },
                    "forward": {"target_group_arn": Ref("target-group", "target_group_arn")},
                },
            },
            depends_on=("bootstrap-user",),
        ),
    ]

    outputs = {
        "alb-url": Fmt("https://{}", Ref("load-balancer", "dns_name")),
        "user": settings.bootstrap_username,
        "admin-secret-location": Ref("admin-secret", "secret_arn"),
        "db-secret-location": Ref("db-secret", "secret_arn"),
    }

    return StackDefinition(
        name=settings.stack_name,
        resources=resources,
        outputs=outputs,
        phase_notes=PHASE_NOTES,
    )
