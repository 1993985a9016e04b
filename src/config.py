"""
Configuration module for the MyApp controller.

Loads configuration from environment variables.
"""

import os
from dataclasses import dataclass
from typing import Optional


@dataclass
class ClusterConfig:
    """Kubernetes API access configuration."""

    kubeconfig: Optional[str] = None  # None = in-cluster, then default kubeconfig
    namespace: Optional[str] = None  # None = watch all namespaces
    watch_timeout_seconds: int = 300

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        return cls(
            kubeconfig=os.getenv("KUBECONFIG") or None,
            namespace=os.getenv("WATCH_NAMESPACE") or None,
            watch_timeout_seconds=int(os.getenv("WATCH_TIMEOUT_SECONDS", "300")),
        )


@dataclass
class ControllerConfig:
    """Work queue and worker configuration."""

    resync_period: int = 600  # seconds between full re-lists of MyApps
    max_concurrent_reconciles: int = 5

    # Exponential backoff configuration for failed passes
    backoff_base_delay: float = 1.0  # base delay in seconds
    backoff_max_delay: float = 300.0  # max delay in seconds (5 minutes)
    backoff_jitter_factor: float = 0.1  # ±10% jitter

    # Seconds stop() waits for in-flight passes before cancelling workers
    shutdown_timeout: float = 30.0

    def __post_init__(self):
        if self.max_concurrent_reconciles < 1:
            raise ValueError("max_concurrent_reconciles must be at least 1")

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        return cls(
            resync_period=int(os.getenv("RESYNC_PERIOD", "600")),
            max_concurrent_reconciles=int(os.getenv("MAX_CONCURRENT_RECONCILES", "5")),
            backoff_base_delay=float(os.getenv("BACKOFF_BASE_DELAY", "1.0")),
            backoff_max_delay=float(os.getenv("BACKOFF_MAX_DELAY", "300.0")),
            backoff_jitter_factor=float(os.getenv("BACKOFF_JITTER_FACTOR", "0.1")),
            shutdown_timeout=float(os.getenv("SHUTDOWN_TIMEOUT", "30.0")),
        )


@dataclass
class ServerConfig:
    """Health and metrics HTTP server configuration."""

    host: str = "0.0.0.0"
    port: int = 8080
    log_level: str = "INFO"
    enabled: bool = True

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        return cls(
            host=os.getenv("SERVER_HOST", "0.0.0.0"),
            port=int(os.getenv("SERVER_PORT", "8080")),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            enabled=os.getenv("SERVER_ENABLED", "true").lower() == "true",
        )


@dataclass
class Config:
    """Main configuration object."""

    cluster: ClusterConfig
    controller: ControllerConfig
    server: ServerConfig

    @classmethod
    def from_env(cls):
        """Load all configuration from environment variables."""
        return cls(
            cluster=ClusterConfig.from_env(),
            controller=ControllerConfig.from_env(),
            server=ServerConfig.from_env(),
        )

    @classmethod
    def default(cls):
        """Return default configuration."""
        return cls(
            cluster=ClusterConfig(),
            controller=ControllerConfig(),
            server=ServerConfig(),
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
