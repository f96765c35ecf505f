"""
Caller identity for outbound frames.

Every REQUEST and CLOSE carries a ``userId``. The identity is resolved when
the frame is built, so a provider may change its answer (e.g. after login)
without re-creating the multiplexer.
"""

from __future__ import annotations

from typing import Callable, Optional

from shared.config.settings import get_settings

IdentityProvider = Callable[[], Optional[str]]


def settings_identity() -> str | None:
    """Identity configured through ``MUX_USER_ID``; None when unset."""
    return get_settings().mux_user_id or None


def resolve_user_id(provider: IdentityProvider | None) -> str:
    """Resolve the identity to send; a missing identity becomes ``""``."""
    if provider is None:
        return ""
    return provider() or ""
