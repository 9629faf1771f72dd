from __future__ import annotations

import logging

import requests

from datapack_core.__version__ import __version__ as VERSION
from datapack_core.config import get_settings
from datapack_core.exceptions import FetchError

logger = logging.getLogger(__name__)


def build_user_agent(name: str | None = None, version: str = VERSION) -> str:
    """Build a default User-Agent string."""
    return f"{name or get_settings().user_agent}/{version}"


def http_get_bytes(url: str, *, timeout_s: float | None = None, user_agent: str | None = None) -> bytes:
    """Fetch ``url`` and return the body.

    Blocking, single attempt. The timeout defaults to the configured
    ``http_timeout`` (``None`` waits indefinitely).
    """
    settings = get_settings()
    timeout = timeout_s if timeout_s is not None else settings.http_timeout
    headers = {"User-Agent": user_agent or build_user_agent()}
    logger.debug("HTTP GET %s", url)
    try:
        with requests.get(url, timeout=timeout, headers=headers) as response:
            response.raise_for_status()
            return response.content
    except requests.exceptions.RequestException as exc:
        raise FetchError(f"error performing HTTP GET ({url}): {exc}", location=url, cause=exc) from exc
