"""
Configuration management for Pacifica client.

Loads settings from environment variables with validation.
"""

from typing import Optional
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class PacificaSettings(BaseSettings):
    """
    Pacifica client settings.

    Loads from environment variables with PACIFICA_ prefix.
    """
    model_config = SettingsConfigDict(
        env_prefix="PACIFICA_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # API URLs
    api_url: str = Field(
        default="https://api.pacifica.fi/api/v1",
        description="REST API base URL"
    )
    ws_url: str = Field(
        default="wss://ws.pacifica.fi/ws",
        description="WebSocket URL"
    )

    # Credentials
    private_key: Optional[str] = Field(
        None,
        repr=False,
        description="Base58 Ed25519 secret of the signing (agent) key"
    )
    account: Optional[str] = Field(
        None,
        description="Main account address (defaults to the signing key)"
    )

    # Timeouts and retries
    request_timeout: float = Field(default=30.0, ge=1.0, description="Request timeout (seconds)")
    connect_timeout: float = Field(default=10.0, ge=1.0, description="Connection timeout (seconds)")
    max_retries: int = Field(default=3, ge=0, le=10, description="Max retry attempts")
    retry_backoff_base: float = Field(default=2.0, ge=1.0, description="Backoff multiplier")
    retry_backoff_max: float = Field(default=60.0, ge=1.0, description="Max backoff delay")

    # Signing
    default_expiry_window: int = Field(
        default=0,
        ge=0,
        description="Signature expiry window (ms), 0 = 30s default"
    )

    # WebSocket
    ws_ping_interval: float = Field(default=50.0, gt=0, description="Keepalive interval (seconds)")
    ws_reconnect_base_delay: float = Field(default=1.0, gt=0, description="First reconnect delay")
    ws_reconnect_max_delay: float = Field(default=60.0, gt=0, description="Max reconnect delay")
    ws_connect_timeout: float = Field(default=10.0, gt=0, description="WebSocket dial timeout")
    ws_debug: bool = Field(default=False, description="Log every WebSocket frame")

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_requests: bool = Field(default=False, description="Log all HTTP requests")

    # Metrics
    enable_metrics: bool = Field(default=False, description="Enable Prometheus metrics")
    metrics_port: int = Field(default=9090, ge=1024, le=65535, description="Metrics server port")

    def __repr__(self) -> str:
        """Safe repr without sensitive data."""
        return (
            f"PacificaSettings("
            f"api_url={self.api_url}, "
            f"ws_url={self.ws_url}, "
            f"account={self.account}"
            ")"
        )


def get_settings() -> PacificaSettings:
    """
    Get Pacifica settings from the environment.

    Returns:
        Validated settings instance
    """
    return PacificaSettings()
