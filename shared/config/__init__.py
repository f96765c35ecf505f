"""
Configuration module: Settings, logging.
"""

from shared.config.settings import settings, get_settings, Settings
from shared.config.logging import (
    get_logger,
    setup_logging,
    mask_user_id,
    audit_connection_event,
)

__all__ = [
    # settings
    "settings",
    "get_settings",
    "Settings",
    # logging
    "get_logger",
    "setup_logging",
    "mask_user_id",
    "audit_connection_event",
]
