"""
Shared configuration management for permissions-gate.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class GateConfig(BaseSettings):
    """Library configuration read from PERMISSIONS_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="PERMISSIONS_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Dev tools; None means "on unless env is production"
    enable_devtools: Optional[bool] = Field(default=None)
    history_capacity: int = Field(default=100, gt=0)

    # Observability
    enable_metrics: bool = Field(default=False)

    @property
    def is_production(self) -> bool:
        return self.env.lower() == "production"

    def devtools_enabled(self, override: Optional[bool] = None) -> bool:
        """Resolve whether dev tools are on, an explicit override winning."""
        if override is not None:
            return override
        if self.enable_devtools is not None:
            return self.enable_devtools
        return not self.is_production


def get_config(**overrides) -> GateConfig:
    """Get library configuration."""
    return GateConfig(**overrides)
