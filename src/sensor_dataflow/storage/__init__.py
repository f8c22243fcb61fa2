"""Object store local e layout de prefixos do Sensor DataFlow."""

from .layout import StoreLayout
from .object_store import (
    OBJECT_CREATED,
    LocalObjectStore,
    ObjectCreated,
    StagedObject,
    normalize_key,
    normalize_prefix,
)

__all__ = [
    "OBJECT_CREATED",
    "LocalObjectStore",
    "ObjectCreated",
    "StagedObject",
    "StoreLayout",
    "normalize_key",
    "normalize_prefix",
]
