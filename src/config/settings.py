# src/config/settings.py — v1
"""Typed configuration loaded from .env via pydantic-settings.

Single source of truth for all deployment-specific settings. Secrets
(registry password, SSH password) are held as SecretStr and are never
written to run manifests.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from shipline.core.errors import ShiplineError
from shipline.core.models import HostCredentials, RegistryCredentials


class ConfigurationError(ShiplineError):
    """Raised when configuration is internally inconsistent."""


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === APPLICATION ===
    app_name: str = "tutorial-app"
    trigger_branch: str = "main"

    # === SERVICES ===
    backend_context: Path = Path("./backend")
    backend_recipe: str = "Dockerfile"
    backend_image: str = "tutorial-backend"
    frontend_context: Path = Path("./frontend")
    frontend_recipe: str = "Dockerfile"
    frontend_image: str = "tutorial-frontend"
    image_tags: str = "latest,v1"
    builder_backend: Literal["docker"] = "docker"
    build_no_cache: bool = False

    # === REGISTRY ===
    registry_backend: Literal["docker"] = "docker"
    registry_url: str = ""
    registry_namespace: str = ""
    registry_username: str = ""
    registry_password: SecretStr = SecretStr("")
    publish_max_retries: int = 0
    publish_retry_delay_s: float = 2.0

    # === REMOTE HOST ===
    executor_backend: Literal["ssh"] = "ssh"
    ssh_host: str = ""
    ssh_port: int = 22
    ssh_user: str = "root"
    ssh_key_path: Path | None = None
    ssh_password: SecretStr | None = None
    ssh_connect_timeout_s: float = 10.0
    ssh_strict_host_keys: bool = False
    remote_project_dir: str = "/opt/tutorial-app"
    remote_compose_file: str = "docker-compose.yml"
    compose_command: str = "docker compose"
    apply_timeout_s: float = 600.0

    # === DESCRIPTOR ===
    compose_file: Path = Path("./docker-compose.yml")

    # === RUN LEDGER ===
    output_dir: Path = Path("./.shipline/runs")
    run_lock_file: Path | None = Path("./.shipline/run.lock")
    stage_log_lines: int = 200

    # === Logging ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "text"
    log_file: Path | None = None
    log_rotation: str = "10MB"
    log_retention: int = 30

    # --- Validators ---

    @field_validator("publish_max_retries")
    @classmethod
    def validate_publish_retries(cls, v: int) -> int:  # noqa: N805
        if v < 0:
            raise ValueError("publish_max_retries must be >= 0")
        return v

    @field_validator("ssh_connect_timeout_s", "apply_timeout_s")
    @classmethod
    def validate_timeouts(cls, v: float) -> float:  # noqa: N805
        if v <= 0:
            raise ValueError("timeouts must be > 0")
        return v

    @model_validator(mode="after")
    def validate_config_consistency(self) -> Settings:
        """Validate cross-field consistency rules."""
        errors: list[str] = []

        if not self.image_tags_list:
            errors.append("IMAGE_TAGS must name at least one tag")

        if self.registry_password.get_secret_value() and not self.registry_username:
            errors.append("REGISTRY_PASSWORD requires REGISTRY_USERNAME")

        if self.backend_image == self.frontend_image:
            errors.append("BACKEND_IMAGE and FRONTEND_IMAGE must differ")

        if self.stage_log_lines < 0:
            errors.append("STAGE_LOG_LINES must be >= 0")

        if errors:
            raise ConfigurationError("; ".join(errors))

        return self

    def validate_for_deploy(self) -> None:
        """Check the settings a deploy needs, raised lazily by the facade.

        Kept out of the model validator so build-only commands work
        without remote host configuration.
        """
        errors: list[str] = []
        if not self.ssh_host:
            errors.append("SSH_HOST is required to deploy")
        if self.ssh_key_path is None and self.ssh_password is None:
            errors.append("SSH_KEY_PATH or SSH_PASSWORD is required to deploy")
        if errors:
            raise ConfigurationError("; ".join(errors))

    # --- Helpers ---

    @property
    def image_tags_list(self) -> list[str]:
        """Parse comma-separated image tags."""
        return [t.strip() for t in self.image_tags.split(",") if t.strip()]

    def repository_for(self, image: str) -> str:
        """Full repository name: ``[registry/][namespace/]image``."""
        parts = [p.strip("/") for p in (self.registry_url, self.registry_namespace) if p]
        parts.append(image)
        return "/".join(parts)

    def registry_credentials(self) -> RegistryCredentials | None:
        """Registry credentials, or None for anonymous/local registries."""
        if not self.registry_username:
            return None
        return RegistryCredentials(
            username=self.registry_username,
            password=self.registry_password,
            registry=self.registry_url,
        )

    def host_credentials(self) -> HostCredentials:
        return HostCredentials(
            username=self.ssh_user,
            key_path=self.ssh_key_path,
            password=self.ssh_password,
            port=self.ssh_port,
        )


def load_settings(**overrides: object) -> Settings:
    """Load settings from .env with optional overrides.

    Args:
        **overrides: Field-level overrides (CLI flags or tests).

    Returns:
        Validated Settings instance.

    Raises:
        ConfigurationError: If configuration is internally inconsistent.
    """
    return Settings(**overrides)  # type: ignore[arg-type]
