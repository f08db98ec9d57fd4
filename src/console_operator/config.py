"""Configuration management with validation.

All settings are read from the environment once at startup and validated
at the boundary so that a misconfigured operator never starts a pass.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path


class ConfigurationError(Exception):
    """Raised when configuration validation fails."""

    pass


# Configuration constants with documented bounds
DEFAULT_TARGET_NAMESPACE = "openshift-console"
DEFAULT_CONSOLE_IMAGE = "docker.io/openshift/origin-console:latest"
DEFAULT_CONSOLE_FILE = "/var/run/console/console.yaml"
DEFAULT_STORE_DIR = "/var/lib/console-operator"

DEFAULT_RESYNC_INTERVAL_SECONDS = 60
MIN_RESYNC_INTERVAL_SECONDS = 5
MAX_RESYNC_INTERVAL_SECONDS = 3600

DEFAULT_REQUEUE_INTERVAL_SECONDS = 5
MIN_REQUEUE_INTERVAL_SECONDS = 1

# Input size limits
MAX_CONSOLE_FILE_SIZE_BYTES = 256 * 1024
MAX_STORED_OBJECT_SIZE_BYTES = 1024 * 1024

# Input validation patterns
VALID_NAMESPACE_PATTERN = r"^[a-z0-9]([-a-z0-9]{0,61}[a-z0-9])?$"
VALID_DOMAIN_PATTERN = r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?(\.[a-z0-9]([-a-z0-9]*[a-z0-9])?)*$"
VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class Config:
    """Operator configuration loaded from environment variables.

    All fields are validated at construction time. Invalid configurations
    raise ConfigurationError immediately rather than failing mid-pass.
    """

    target_namespace: str = DEFAULT_TARGET_NAMESPACE
    console_image: str = DEFAULT_CONSOLE_IMAGE

    # Paths
    console_file: Path = field(default_factory=lambda: Path(DEFAULT_CONSOLE_FILE))
    store_dir: Path = field(default_factory=lambda: Path(DEFAULT_STORE_DIR))

    # Local route admission, empty means hosts are assigned externally
    router_domain: str | None = None

    # Timing
    resync_interval_seconds: int = DEFAULT_RESYNC_INTERVAL_SECONDS
    requeue_interval_seconds: int = DEFAULT_REQUEUE_INTERVAL_SECONDS

    # Behavior
    create_default_console: bool = False

    # Logging
    enable_json_logging: bool = True
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        errors: list[str] = []

        if not self.target_namespace:
            errors.append("TARGET_NAMESPACE is required")
        elif not re.match(VALID_NAMESPACE_PATTERN, self.target_namespace):
            errors.append(
                f"TARGET_NAMESPACE must match pattern {VALID_NAMESPACE_PATTERN}: "
                f"{self.target_namespace}"
            )

        if not self.console_image:
            errors.append("CONSOLE_IMAGE is required")

        if self.router_domain and not re.match(VALID_DOMAIN_PATTERN, self.router_domain):
            errors.append(f"ROUTER_DOMAIN must be a DNS domain: {self.router_domain}")

        if not (
            MIN_RESYNC_INTERVAL_SECONDS
            <= self.resync_interval_seconds
            <= MAX_RESYNC_INTERVAL_SECONDS
        ):
            errors.append(
                f"RESYNC_INTERVAL must be between {MIN_RESYNC_INTERVAL_SECONDS} "
                f"and {MAX_RESYNC_INTERVAL_SECONDS} seconds"
            )

        if not (
            MIN_REQUEUE_INTERVAL_SECONDS
            <= self.requeue_interval_seconds
            <= self.resync_interval_seconds
        ):
            errors.append(
                f"REQUEUE_INTERVAL must be between {MIN_REQUEUE_INTERVAL_SECONDS} "
                f"and RESYNC_INTERVAL ({self.resync_interval_seconds}) seconds"
            )

        if self.log_level.upper() not in VALID_LOG_LEVELS:
            errors.append(f"LOG_LEVEL must be one of {list(VALID_LOG_LEVELS)}: {self.log_level}")

        if errors:
            error_msg = "Configuration validation failed:\n  - " + "\n  - ".join(errors)
            raise ConfigurationError(error_msg)

    @classmethod
    def from_env(cls) -> Config:
        """Load configuration from environment variables.

        Environment Variables:
            TARGET_NAMESPACE: Namespace holding the console resources
                (default: openshift-console)
            CONSOLE_IMAGE: Console image for the deployment. Falls back to IMAGE,
                the variable used by the operator manifests.
            CONSOLE_FILE: Path to the Console desired-state YAML
            STORE_DIR: Root directory of the file-backed resource store
            ROUTER_DOMAIN: If set, routes are admitted locally under this domain
            RESYNC_INTERVAL: Seconds between passes once converged (default: 60)
            REQUEUE_INTERVAL: Seconds before the next pass after progress (default: 5)
            CREATE_DEFAULT_CONSOLE: If "true", create a default Console when missing
            ENABLE_JSON_LOGGING: Emit JSON logs to stdout (default: true)
            LOG_LEVEL: Root log level (default: INFO)
        """

        def get_int(key: str, default: int) -> int:
            value = os.environ.get(key)
            if value is None:
                return default
            try:
                return int(value)
            except ValueError as e:
                raise ConfigurationError(f"{key} must be an integer: {value}") from e

        def get_bool(key: str, default: bool) -> bool:
            value = os.environ.get(key, "").lower()
            if not value:
                return default
            return value in ("true", "1", "yes")

        image = os.environ.get("CONSOLE_IMAGE") or os.environ.get("IMAGE") or DEFAULT_CONSOLE_IMAGE

        return cls(
            target_namespace=os.environ.get("TARGET_NAMESPACE", DEFAULT_TARGET_NAMESPACE),
            console_image=image,
            console_file=Path(os.environ.get("CONSOLE_FILE", DEFAULT_CONSOLE_FILE)),
            store_dir=Path(os.environ.get("STORE_DIR", DEFAULT_STORE_DIR)),
            router_domain=os.environ.get("ROUTER_DOMAIN") or None,
            resync_interval_seconds=get_int("RESYNC_INTERVAL", DEFAULT_RESYNC_INTERVAL_SECONDS),
            requeue_interval_seconds=get_int(
                "REQUEUE_INTERVAL", DEFAULT_REQUEUE_INTERVAL_SECONDS
            ),
            create_default_console=get_bool("CREATE_DEFAULT_CONSOLE", False),
            enable_json_logging=get_bool("ENABLE_JSON_LOGGING", True),
            log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        )
