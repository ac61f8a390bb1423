"""Typed references to where a blob's bytes live."""
from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class ObjectKey:
    """Bytes stored in the object-storage bucket under ``key``."""
    key: str


@dataclass(frozen=True)
class LocalPath:
    """Bytes stored on the legacy filesystem at ``path`` (relative to its root)."""
    path: str


StorageRef = Union[ObjectKey, LocalPath]


def blob_key(content_hash: str) -> str:
    """
    Derive the storage key for a content hash.

    Uses git-like directory structure: blobs/first2/rest, e.g.
    blobs/ab/cdef123456... Two uploads of the same content always target
    the same key, which makes concurrent writes of new content idempotent.
    """
    return f"blobs/{content_hash[:2]}/{content_hash[2:]}"
