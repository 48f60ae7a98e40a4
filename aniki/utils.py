"""Utility helpers shared across the library engine."""

from __future__ import annotations

import os
import re
import time
from pathlib import Path
from urllib.parse import urlparse

TRAILING_ID_RE = re.compile(r"(\d+)/*$")


def current_timestamp() -> int:
    """Return the current UNIX time in whole seconds."""

    return int(time.time())


def dir_modified_time(path: str | Path) -> int:
    """Return the modification time of ``path``, or 0 when it cannot be read."""

    try:
        return int(os.stat(path).st_mtime)
    except OSError:
        return 0


def trailing_id(url: str, domain: str) -> int | None:
    """Extract the numeric id ending ``url`` when it points at ``domain``."""

    parsed = urlparse(url)
    host = (parsed.hostname or "").lower()
    if host != domain and not host.endswith(f".{domain}"):
        return None
    match = TRAILING_ID_RE.search(parsed.path)
    if match is None:
        return None
    return int(match.group(1))
