"""
Cache Key Derivation

Two requests that differ only in letter case or whitespace share a key.
Fields (content, purpose, format, tone, audience, research flag, truncated
URL hash) are normalized, joined with ``|`` and hashed with SHA-256.
"""

import hashlib
from typing import Optional

from config.constants import CACHE_TTL_POLICY
from core.exceptions import CacheKeyError
from core.models import ContentRequest

DEFAULT_PREFIX = "content:"


def normalize_field(value: Optional[str]) -> str:
    """Lower-case and collapse runs of whitespace."""
    if value is None:
        return ""
    return " ".join(str(value).lower().split())


def url_fingerprint(url: Optional[str]) -> str:
    if not url:
        return ""
    digest = hashlib.sha256(url.strip().lower().encode("utf-8")).hexdigest()
    return digest[: CACHE_TTL_POLICY.URL_HASH_LENGTH]


def cache_key_material(request: ContentRequest) -> str:
    """Delimited, normalized string the key hash is computed from."""
    content = normalize_field(request.content)
    if not content:
        raise CacheKeyError(context={"request_id": request.request_id})

    return CACHE_TTL_POLICY.KEY_DELIMITER.join(
        [
            content,
            normalize_field(request.purpose),
            normalize_field(request.format),
            normalize_field(request.tone),
            normalize_field(request.target_audience),
            "research" if request.enable_research else "no-research",
            url_fingerprint(request.url_reference),
        ]
    )


def build_cache_key(request: ContentRequest, prefix: str = DEFAULT_PREFIX) -> str:
    material = cache_key_material(request)
    return prefix + hashlib.sha256(material.encode("utf-8")).hexdigest()


__all__ = ["build_cache_key", "cache_key_material", "normalize_field", "url_fingerprint"]
