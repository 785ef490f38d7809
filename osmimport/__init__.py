"""Caches, binary encodings, diff indexes, tile expiry and options for OpenStreetMap imports."""

__version__ = "0.1.0"

__all__ = [
    "cacheconfig",
    "config",
    "coords",
    "deltacoords",
    "diffcache",
    "element",
    "element_caches",
    "expire",
    "idrefs_codec",
    "osm",
    "osmcache",
    "serialize",
    "store",
    "tags",
    "varint",
]