"""Event shaping helpers.

Pure functions applied to an event before it is buffered: derive
operating system and browser version from the user agent, break the
page URL into components, and drop empty containers the store would
reject. None of these mutate their input.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Optional
from urllib.parse import urlsplit

logger = logging.getLogger("schemasync.pipeline.cleaning")

# First match wins; Android agents also contain "Linux"
OS_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"CrOS"), "ChromeOS"),
    (re.compile(r"Android"), "Android"),
    (re.compile(r"Mac"), "MacOS"),
    (re.compile(r"Win"), "Windows"),
    (re.compile(r"Linux"), "Linux"),
]

CHROME_VERSION = re.compile(r"Chrome/([0-9]*\.[0-9]*\.[0-9]*\.[0-9]*)")

DEFAULT_PORTS = {"http": "80", "https": "443", "ws": "80", "wss": "443", "ftp": "21"}


def detect_os(agent: str) -> str:
    """Operating system family named by a user agent string."""
    for pattern, name in OS_PATTERNS:
        if pattern.search(agent):
            return name
    return "Unknown"


def chrome_version(agent: str) -> Optional[str]:
    """Four-part Chrome version from a user agent, if present."""
    match = CHROME_VERSION.search(agent)
    return match.group(1) if match else None


def describe_agent(request: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of request with `os` and `chromeversion` filled in.

    Requests without an `agent` string are returned as a plain copy.
    """
    out = dict(request)
    agent = out.get("agent")
    if not isinstance(agent, str) or not agent:
        return out

    out["os"] = detect_os(agent)
    version = chrome_version(agent)
    if version:
        out["chromeversion"] = version
    return out


def url_object(url: str) -> Optional[dict[str, str]]:
    """Split a URL into the component names browsers use.

    Query parameters are kept only as the raw `search` string.
    Returns None when the string is not an absolute URL.
    """
    try:
        parts = urlsplit(url)
        port = parts.port
    except ValueError as e:
        logger.debug("Unparsable url %r: %s", url, e)
        return None

    if not parts.scheme or not parts.netloc:
        logger.debug("Not an absolute url: %r", url)
        return None

    hostname = parts.hostname or ""
    port_str = "" if port is None or str(port) == DEFAULT_PORTS.get(parts.scheme) else str(port)
    host = f"{hostname}:{port_str}" if port_str else hostname
    origin = f"{parts.scheme}://{host}"

    return {
        "href": url,
        "origin": origin,
        "protocol": f"{parts.scheme}:",
        "username": parts.username or "",
        "password": parts.password or "",
        "host": host,
        "hostname": hostname,
        "port": port_str,
        "pathname": parts.path or "/",
        "search": f"?{parts.query}" if parts.query else "",
        "hash": f"#{parts.fragment}" if parts.fragment else "",
    }


def strip_empty(value: Any) -> Any:
    """Remove empty containers and null members, bottom-up.

    Children are cleaned first, then any member that is None, an
    empty dict or an empty list is dropped, so a container emptied
    by cleaning disappears too. Inside lists, empty containers are
    dropped but scalar elements (None included) keep their place.

        {"a": {}, "b": [], "c": {"d": 1}} -> {"c": {"d": 1}}
        {"a": {"b": {}}, "l": [{}]}     -> {}
    """
    if isinstance(value, dict):
        cleaned = {k: strip_empty(v) for k, v in value.items()}
        return {k: v for k, v in cleaned.items() if not _is_empty(v)}
    if isinstance(value, list):
        cleaned = [strip_empty(v) for v in value]
        return [
            v for v in cleaned
            if not (isinstance(v, (dict, list)) and len(v) == 0)
        ]
    return value


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (dict, list)):
        return len(value) == 0
    return False
