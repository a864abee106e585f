"""Normalize submitted profile identifiers (handles, @handles, profile URLs)."""

from __future__ import annotations

import re
import uuid
from urllib.parse import urlparse

from profile_analysis.errors import InvalidIdentifierError

_USERNAME_RE = re.compile(r"^[a-z0-9._]{1,30}$")

# Instagram paths that are not profiles
_RESERVED_PATHS = {"p", "reel", "reels", "explore", "stories", "tv", "accounts"}


def extract_username(identifier: str) -> str:
    """Return the lowercase username for a handle, @handle or instagram.com URL.

    Raises InvalidIdentifierError if nothing usable can be extracted.
    """
    raw = (identifier or "").strip()
    if not raw:
        raise InvalidIdentifierError("Empty profile identifier")

    candidate = raw
    if "instagram.com" in raw.lower() or raw.startswith(("http://", "https://")):
        url = raw if "://" in raw else f"https://{raw}"
        parsed = urlparse(url)
        host = parsed.netloc.lower().removeprefix("www.")
        if host not in ("instagram.com", "m.instagram.com"):
            raise InvalidIdentifierError(f"Not an Instagram profile URL: {raw}")
        segments = [s for s in parsed.path.split("/") if s]
        if not segments or segments[0].lower() in _RESERVED_PATHS:
            raise InvalidIdentifierError(f"No username in profile URL: {raw}")
        candidate = segments[0]

    username = candidate.removeprefix("@").strip().lower()
    if not _USERNAME_RE.match(username):
        raise InvalidIdentifierError(f"Invalid username: {raw}")
    return username


def generate_request_id() -> str:
    return f"req_{uuid.uuid4().hex[:16]}"
