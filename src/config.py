"""
Configuration module for the SLB reconciliation toolkit.

Loads configuration from environment variables. The remote client itself is
never global: callers build it from ClientConfig and pass it explicitly.
"""

import os
from dataclasses import dataclass, field
from typing import List, Optional

DEFAULT_NAME_PREFIXES = ["tf-testAcc", "tf_testAcc"]
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _split_list(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass
class ClientConfig:
    """Remote control plane connection configuration."""

    endpoint: str = "http://localhost:8080"
    region: str = "cn-hangzhou"
    access_key_id: str = ""
    access_key_secret: str = field(default="", repr=False)  # Never log secret

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        secret = os.getenv("SLB_ACCESS_KEY_SECRET", "")
        if not secret:
            raise ValueError(
                "SLB_ACCESS_KEY_SECRET environment variable must be set. "
                "Access key secret cannot be empty."
            )

        return cls(
            endpoint=os.getenv("SLB_ENDPOINT", "http://localhost:8080"),
            region=os.getenv("SLB_REGION", "cn-hangzhou"),
            access_key_id=os.getenv("SLB_ACCESS_KEY_ID", ""),
            access_key_secret=secret,
        )


@dataclass
class ReconcilerConfig:
    """Remote call policy for the reconciler and harness."""

    call_timeout: float = 30.0  # seconds per remote call
    max_attempts: int = 5

    # Exponential backoff configuration
    backoff_base_delay: float = 1.0  # base delay in seconds
    backoff_max_delay: float = 30.0  # max delay in seconds
    backoff_jitter_factor: float = 0.1  # ±10% jitter

    # Re-read after create/update/delete until the remote side agrees
    confirm_attempts: int = 10
    confirm_interval: float = 2.0

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        return cls(
            call_timeout=float(os.getenv("RECONCILE_CALL_TIMEOUT", "30")),
            max_attempts=int(os.getenv("RECONCILE_MAX_ATTEMPTS", "5")),
            backoff_base_delay=float(os.getenv("RECONCILE_BACKOFF_BASE_DELAY", "1")),
            backoff_max_delay=float(os.getenv("RECONCILE_BACKOFF_MAX_DELAY", "30")),
            backoff_jitter_factor=float(
                os.getenv("RECONCILE_BACKOFF_JITTER_FACTOR", "0.1")
            ),
            confirm_attempts=int(os.getenv("RECONCILE_CONFIRM_ATTEMPTS", "10")),
            confirm_interval=float(os.getenv("RECONCILE_CONFIRM_INTERVAL", "2")),
        )


@dataclass
class SweepConfig:
    """Orphaned resource sweep configuration."""

    name_prefixes: List[str] = field(
        default_factory=lambda: list(DEFAULT_NAME_PREFIXES)
    )
    lineage_tag_prefix: str = "kubernetes"
    page_size: int = 50
    max_concurrent_deletes: int = 5
    dry_run: bool = False

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        prefixes_str = os.getenv("SWEEP_NAME_PREFIXES", "")
        prefixes = (
            _split_list(prefixes_str)
            if prefixes_str
            else list(DEFAULT_NAME_PREFIXES)
        )
        return cls(
            name_prefixes=prefixes,
            lineage_tag_prefix=os.getenv("SWEEP_LINEAGE_TAG_PREFIX", "kubernetes"),
            page_size=int(os.getenv("SWEEP_PAGE_SIZE", "50")),
            max_concurrent_deletes=int(os.getenv("SWEEP_MAX_CONCURRENT_DELETES", "5")),
            dry_run=os.getenv("SWEEP_DRY_RUN", "false").lower() == "true",
        )


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "INFO"
    format: str = LOG_FORMAT

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        return cls(level=os.getenv("LOG_LEVEL", "INFO").upper())


@dataclass
class Config:
    """Main configuration object."""

    client: ClientConfig
    reconciler: ReconcilerConfig
    sweep: SweepConfig
    logging: LoggingConfig

    @classmethod
    def from_env(cls):
        """Load all configuration from environment variables."""
        return cls(
            client=ClientConfig.from_env(),
            reconciler=ReconcilerConfig.from_env(),
            sweep=SweepConfig.from_env(),
            logging=LoggingConfig.from_env(),
        )

    @classmethod
    def default(cls):
        """Return default configuration."""
        return cls(
            client=ClientConfig(),
            reconciler=ReconcilerConfig(),
            sweep=SweepConfig(),
            logging=LoggingConfig(),
        )


# Global config instance
config: Optional[Config] = None


def load_config() -> Config:
    """Load configuration (singleton pattern)."""
    global config
    if config is None:
        config = Config.from_env()
    return config


def get_config() -> Config:
    """Get the current configuration."""
    if config is None:
        return load_config()
    return config


def reset_config() -> None:
    """Reset configuration (mainly for testing)."""
    global config
    config = None
