"""Host and path whitelist matching."""

from __future__ import annotations

import re
from typing import Iterable
from urllib.parse import urlsplit

from .logger import get_logger

logger = get_logger(__name__)

WILDCARD = "*"


def compile_pattern(pattern: str) -> re.Pattern[str]:
    """Escape literal dots and expand wildcards to "any sequence"."""

    return re.compile(pattern.replace(".", r"\.").replace(WILDCARD, ".*"))


def matches_pattern(hostname: str, full_path: str, pattern: str) -> bool:
    if WILDCARD in pattern:
        regex = compile_pattern(pattern)
        return bool(regex.fullmatch(hostname) or regex.fullmatch(full_path))
    return hostname == pattern or full_path == pattern


def is_url_whitelisted(url: str, patterns: Iterable[str] | None) -> bool:
    """Return True when the page is excluded from automatic translation.

    An invalid pattern is ignored on its own; an unparseable URL is never
    whitelisted.
    """

    patterns = [pattern for pattern in (patterns or []) if pattern]
    if not patterns:
        return False

    try:
        parts = urlsplit(url)
        hostname = parts.hostname or ""
    except ValueError as exc:
        logger.warning("Could not parse URL %r: %s", url, exc)
        return False
    path = parts.path or ("/" if parts.netloc else "")
    full_path = hostname + path

    for pattern in patterns:
        try:
            if matches_pattern(hostname, full_path, pattern):
                return True
        except re.error as exc:
            logger.warning("Ignoring invalid whitelist pattern %r: %s", pattern, exc)
    return False
