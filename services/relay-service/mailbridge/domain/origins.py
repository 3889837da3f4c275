"""Per-account origin allow-list check used by the relay path."""

from __future__ import annotations

from typing import Sequence


def origin_allowed(allowed_origins: Sequence[str], origin: str | None) -> bool:
    """Return ``True`` when ``origin`` may submit to an account with ``allowed_origins``.

    An empty allow-list admits every origin, as does a request that declared no
    origin at all (non-browser callers). Otherwise the origin must be listed
    exactly, or differ from a listed entry only by a single trailing slash.
    No wildcard or subdomain matching is performed.
    """
    if not allowed_origins or not origin:
        return True
    candidates = {origin}
    if origin.endswith("/"):
        candidates.add(origin[:-1])
    else:
        candidates.add(origin + "/")
    return any(entry in candidates for entry in allowed_origins)
