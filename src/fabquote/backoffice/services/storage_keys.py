"""
Object-store key layout for convertible entities:

    <prefix>/<id>/source/[v<n>/]<file>
    <prefix>/<id>/mesh/<file>
    <prefix>/<id>/thumbnails/<file>

with prefix "parts" or "quote-parts".
"""

from typing import Optional
from urllib.parse import unquote, urlparse

from fabquote.backoffice.models.conversion import EntityKind

KNOWN_PREFIXES = tuple(kind.storage_prefix + "/" for kind in EntityKind)


def entity_root(kind: EntityKind, entity_id: str) -> str:
    return f"{kind.storage_prefix}/{entity_id}"


def source_prefix(kind: EntityKind, entity_id: str, version: Optional[int] = None) -> str:
    root = f"{entity_root(kind, entity_id)}/source"
    return f"{root}/v{version}" if version else root


def mesh_prefix(kind: EntityKind, entity_id: str) -> str:
    return f"{entity_root(kind, entity_id)}/mesh"


def thumbnail_prefix(kind: EntityKind, entity_id: str) -> str:
    return f"{entity_root(kind, entity_id)}/thumbnails"


def storage_key(ref: Optional[str]) -> Optional[str]:
    """
    Reduce a stored reference to its object key.

    Full URLs (public bucket URLs, presigned links) are cut at the first known
    entity prefix; anything else is returned without a leading slash.
    """
    if not ref:
        return None
    path = unquote(urlparse(ref).path) if "://" in ref else ref.split("?", 1)[0]
    path = path.lstrip("/")
    for prefix in KNOWN_PREFIXES:
        idx = path.find(prefix)
        if idx == 0 or (idx > 0 and path[idx - 1] == "/"):
            return path[idx:]
    return path or None
