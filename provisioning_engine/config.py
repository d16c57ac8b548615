#provisioning_engine\config.py

from typing import List, Literal, Optional

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class ProvisioningSettings(BaseSettings):
    """Stack inputs and engine tuning from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Deployment target
    stack_name: str = "workspace"
    account_id: str = "000000000000"
    region: str = "us-east-1"

    # Pre-issued certificate for the HTTPS listener (required input)
    certificate_arn: str = ""

    # Application
    admin_username: str = "administrator"
    database_name: str = "cbinternal"
    db_username: str = "dbadmin"
    container_image: str = "dbeaver/cloudbeaver:25.1.2"
    container_port: int = 8978
    workspace_mount_path: str = "/opt/cloudbeaver/workspace"
    server_name: str = "My-CB-Server"
    task_cpu: int = 2048
    task_memory_mib: int = 4096
    desired_count: int = 1
    max_azs: int = 2

    # Identity
    domain_prefix_base: str = "dbeaver"
    bootstrap_username: str = "tester@test.com"
    bootstrap_temporary_password: Optional[SecretStr] = None
    session_timeout_minutes: int = 30

    # Target group health check
    healthy_threshold: int = 2
    unhealthy_threshold: int = 2
    health_check_interval_seconds: int = 20
    health_check_timeout_seconds: int = 10
    health_check_path: str = "/"

    # Entry point runtime (run_entrypoint)
    entrypoint_host: str = "0.0.0.0"
    entrypoint_port: int = 8443
    # Base URLs of the running tasks, e.g. ["http://10.0.1.15:8978"]
    entrypoint_targets: List[str] = []
    entrypoint_client_secret: Optional[SecretStr] = None
    entrypoint_ssl_certfile: Optional[str] = None
    entrypoint_ssl_keyfile: Optional[str] = None

    # Backends
    provider_backend: Literal["simulated", "agent"] = "simulated"
    state_backend: Literal["memory", "postgres"] = "memory"
    agent_url: str = "http://localhost:9100"
    agent_timeout_seconds: int = 30
    # "provider" uses the provider backend's user directory; "cognito" talks to Cognito directly
    directory_backend: Literal["provider", "cognito"] = "provider"

    # Scheduler
    max_parallelism: int = 4
    rollback_on_failure: bool = False

    # Events kept in memory by the logging emitter
    event_history_size: int = 1000

    # Readiness backoff
    readiness_initial_delay: float = 1.0
    readiness_max_delay: float = 30.0
    readiness_multiplier: float = 2.0
    readiness_timeout_seconds: float = 1800.0


settings = ProvisioningSettings()
