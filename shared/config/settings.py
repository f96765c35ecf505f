"""
Multiplexer settings loaded from environment variables.
Uses pydantic-settings for type-safe configuration.
"""

from functools import lru_cache
from urllib.parse import urlsplit

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Multiplexer settings with defaults for local development."""

    # Environment
    environment: str = "development"
    debug: bool = True

    # Transport endpoint
    # The dashboard backend serves the multiplexer next to its REST API.
    mux_base_ws_url: str = "ws://localhost:4466/"
    mux_endpoint: str = "wsMultiplexer"

    # Connection establishment
    mux_connection_timeout: float = 30.0  # Seconds before a connect attempt is failed
    mux_close_timeout: float = 5.0  # Seconds to wait for the closing handshake

    # Subscription teardown
    # Short enough that a closed view stops streaming promptly, long enough to
    # absorb an unmount immediately followed by a remount of the same watch.
    mux_unsubscribe_debounce: float = 0.1

    # Caller identity sent in every REQUEST/CLOSE frame (empty is acceptable)
    mux_user_id: str = ""

    # Inbound frames larger than this are dropped (0 disables the check)
    mux_max_frame_size: int = 16 * 1024 * 1024

    # Background reconnect after a drop (off: the next subscribe reconnects)
    mux_auto_reconnect: bool = False
    mux_reconnect_initial_delay: float = 1.0
    mux_reconnect_max_delay: float = 30.0
    mux_reconnect_max_attempts: int = 10

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False

    @property
    def multiplexer_url(self) -> str:
        """Full URL of the multiplexer endpoint."""
        return f"{self.mux_base_ws_url}{self.mux_endpoint}"

    def validate_settings(self) -> list[str]:
        """
        Validate multiplexer settings.
        Returns a list of validation errors. Empty list means all checks pass.
        """
        errors = []

        if self.mux_connection_timeout <= 0:
            errors.append("MUX_CONNECTION_TIMEOUT must be positive")

        if self.mux_unsubscribe_debounce < 0:
            errors.append("MUX_UNSUBSCRIBE_DEBOUNCE must not be negative")
        elif self.mux_unsubscribe_debounce >= self.mux_connection_timeout:
            errors.append(
                "MUX_UNSUBSCRIBE_DEBOUNCE must be shorter than MUX_CONNECTION_TIMEOUT"
            )

        if self.mux_max_frame_size < 0:
            errors.append("MUX_MAX_FRAME_SIZE must not be negative (0 disables the limit)")

        scheme = urlsplit(self.mux_base_ws_url).scheme
        if scheme not in ("ws", "wss"):
            errors.append(f"MUX_BASE_WS_URL must use ws:// or wss://, got '{scheme or '<none>'}'")

        if self.mux_auto_reconnect:
            if self.mux_reconnect_initial_delay <= 0:
                errors.append("MUX_RECONNECT_INITIAL_DELAY must be positive")
            if self.mux_reconnect_max_delay < self.mux_reconnect_initial_delay:
                errors.append("MUX_RECONNECT_MAX_DELAY must be >= MUX_RECONNECT_INITIAL_DELAY")
            if self.mux_reconnect_max_attempts < 1:
                errors.append("MUX_RECONNECT_MAX_ATTEMPTS must be >= 1")

        if self.environment == "production" and self.mux_base_ws_url.startswith("ws://"):
            errors.append("MUX_BASE_WS_URL should use wss:// in production")

        return errors


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
