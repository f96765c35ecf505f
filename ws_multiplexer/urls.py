"""
URL helpers for watch subscriptions.

Views describe a watch as a URL (``/api/v1/namespaces/default/pods?watch=1``);
the multiplexer addresses it by path and serialized query.
"""

from __future__ import annotations

import re
from typing import Any, Mapping, Sequence
from urllib.parse import urlencode, urljoin, urlsplit

_DUPLICATE_SLASHES = re.compile(r"/{2,}")


def make_url(url_parts: Sequence[Any] | str, query: Mapping[str, Any] | None = None) -> str:
    """
    Join URL segments and append a query string.

    Empty segments are skipped and repeated slashes collapsed; query entries
    whose value is None are left out.

    Example:
        >>> make_url(["/api/v1", "namespaces/default", "pods"], {"watch": 1})
        '/api/v1/namespaces/default/pods?watch=1'
    """
    if isinstance(url_parts, str):
        url_parts = [url_parts]

    url = _DUPLICATE_SLASHES.sub("/", "/".join(str(part) for part in url_parts if part))

    params = {k: v for k, v in (query or {}).items() if v is not None}
    if params:
        url = f"{url}?{urlencode(params, doseq=True)}"
    return url


def split_watch_url(url: str, base_url: str) -> tuple[str, str]:
    """
    Resolve a watch URL against the base WS URL.

    Args:
        url: Absolute or relative watch URL.
        base_url: Base URL of the dashboard backend.

    Returns:
        Tuple of (path, query) where query has no leading ``?``.
    """
    parts = urlsplit(urljoin(base_url, url))
    return parts.path, parts.query
