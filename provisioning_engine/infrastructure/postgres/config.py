#provisioning_engine\infrastructure\postgres\config.py

from typing import Optional

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class StateDatabaseSettings(BaseSettings):
    """
    Connection settings for the provisioning state database.

    Read from STATE_DB_* environment variables (or .env). ``STATE_DB_URL``
    overrides the individual parts, e.g. ``sqlite:///state.db`` for a
    single-operator setup.
    """

    model_config = SettingsConfigDict(
        env_prefix="STATE_DB_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    url: Optional[str] = None

    host: str = "localhost"
    port: int = 5432
    user: str = "provisioner"
    password: SecretStr = SecretStr("")
    name: str = "provisioning_state"

    # Pool (ignored for sqlite)
    pool_size: int = 5
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 1800

    echo: bool = False

    @property
    def database_url(self) -> str:
        if self.url:
            return self.url
        return (
            f"postgresql://{self.user}:{self.password.get_secret_value()}"
            f"@{self.host}:{self.port}/{self.name}"
        )

    @property
    def display_url(self) -> str:
        """Connection URL safe to log."""
        if self.url:
            if "@" not in self.url:
                return self.url
            scheme, _, rest = self.url.partition("://")
            host = rest.rpartition("@")[2]
            return f"{scheme}://***@{host}"
        return f"postgresql://{self.user}:***@{self.host}:{self.port}/{self.name}"


settings = StateDatabaseSettings()
