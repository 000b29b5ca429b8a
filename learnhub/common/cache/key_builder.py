"""
Key Builder Module

This module builds deterministic cache keys from structured payloads such as
chat message lists, so identical requests map to the same cache entry.
"""

import hashlib
import json
from typing import Any, Optional


def build_cache_key(namespace: str, payload: Any, version: Optional[str] = None) -> str:
    """
    Build a cache key from a namespace and a JSON-serializable payload.

    Args:
        namespace: Leading key segment, e.g. ``"llm"``
        payload: Any JSON-serializable structure; it is hashed
        version: Optional version string appended to the key

    Returns:
        A colon-separated key string
    """
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    digest = hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:32]
    parts = [namespace, digest]
    if version:
        parts.append(f"v{version}")
    return ":".join(parts)
