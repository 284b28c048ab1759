"""Deployhook configuration using pydantic-settings.

This module defines the DeployhookSettings class that reads configuration
from environment variables. The three credentials (webhook secret, platform
token, source-control token) are required for the service to start; every
other option has a working default.
"""

import logging
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DeployhookSettings(BaseSettings):
    """Deployhook configuration from environment variables.

    Environment variables are read without a prefix (e.g. WEBHOOK_SHARED_SECRET).

    Required fields (must be set via environment variables):
    - webhook_shared_secret: HMAC key for validating webhook signatures
    - deploy_platform_api_token: Bearer token for the platform GraphQL API
    - source_control_api_token: Token for the GitHub REST API
    """

    model_config = SettingsConfigDict(
        env_prefix="",
        case_sensitive=False,
    )

    # -------------------------------------------------------------------------
    # Credentials
    # -------------------------------------------------------------------------
    # Shared secret used to sign webhook deliveries
    webhook_shared_secret: str

    # Bearer token for the deploy platform API
    deploy_platform_api_token: str

    # Token used to trigger the builder workflow
    source_control_api_token: str

    # -------------------------------------------------------------------------
    # Deploy Platform Configuration
    # -------------------------------------------------------------------------
    platform_api_url: str = "https://backboard.railway.app/graphql/v2"

    # Source image for newly created platform services
    platform_service_image: str = "ghcr.io/railwayapp/nixpacks/node:latest"

    # -------------------------------------------------------------------------
    # Source Control Configuration
    # -------------------------------------------------------------------------
    github_base_url: str = "https://api.github.com"

    # Repository hosting the builder workflow
    builder_repository_owner: str = "VarunGupta2005"
    builder_repository_name: str = "Deployer"

    # Stable workflow file name, addressed directly without discovery
    builder_workflow_file: str = "deployer.yml"

    # Git ref the builder workflow runs on
    builder_workflow_ref: str = "main"

    # Used when a push payload does not carry repository.default_branch
    default_branch: str = "main"

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------
    # PostgreSQL connection string; the in-memory store is used when unset
    database_url: Optional[str] = None

    # -------------------------------------------------------------------------
    # Timeouts and Retries
    # -------------------------------------------------------------------------
    request_timeout_seconds: float = 30.0
    repository_timeout_seconds: float = 120.0
    max_retries: int = 3

    # -------------------------------------------------------------------------
    # Server Configuration
    # -------------------------------------------------------------------------
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8080

    # -------------------------------------------------------------------------
    # Validators
    # -------------------------------------------------------------------------
    @field_validator(
        "webhook_shared_secret",
        "deploy_platform_api_token",
        "source_control_api_token",
    )
    @classmethod
    def validate_credential(cls, v: str, info) -> str:
        """Validate that credentials are not empty."""
        if not v or not v.strip():
            raise ValueError(f"{info.field_name} cannot be empty")
        return v

    @field_validator("platform_api_url", "github_base_url")
    @classmethod
    def validate_url(cls, v: str, info) -> str:
        """Validate that API URLs use http or https."""
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"{info.field_name} must start with http:// or https://")
        return v

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v: Optional[str]) -> Optional[str]:
        """Validate the database URL format when one is given."""
        if v is None or not v.strip():
            return None
        if not v.startswith(("postgresql://", "postgres://")):
            raise ValueError(
                "database_url must start with postgresql:// or postgres://"
            )
        return v

    @field_validator("builder_workflow_file")
    @classmethod
    def validate_workflow_file(cls, v: str) -> str:
        """Validate that the workflow is a bare YAML file name."""
        if "/" in v or not v.endswith((".yml", ".yaml")):
            raise ValueError(
                "builder_workflow_file must be a file name ending in .yml or .yaml"
            )
        return v

    @field_validator("request_timeout_seconds", "repository_timeout_seconds")
    @classmethod
    def validate_timeout(cls, v: float, info) -> float:
        """Validate that timeouts are positive."""
        if v <= 0:
            raise ValueError(f"{info.field_name} must be positive")
        return v

    @field_validator("max_retries")
    @classmethod
    def validate_max_retries(cls, v: int) -> int:
        """Validate that retry count is not negative."""
        if v < 0:
            raise ValueError("max_retries cannot be negative")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate that the log level is a known logging level name."""
        level = v.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level: {v}")
        return level

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        """Validate that port is in valid range."""
        if not 1 <= v <= 65535:
            raise ValueError("port must be between 1 and 65535")
        return v


def get_settings() -> DeployhookSettings:
    """Create and return DeployhookSettings instance.

    Returns:
        DeployhookSettings: Configured settings instance.

    Raises:
        pydantic.ValidationError: If required fields are missing or invalid.
    """
    return DeployhookSettings()
