"""Tuning options for the on-disk caches, with JSON overrides."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, replace
from typing import Any, Optional, TypeVar

ENV_VARIABLE = "OSMIMPORT_CACHE_CONFIG"


@dataclass
class CacheOptions:
    """Storage tuning for one cache; zero means "use the store's default"."""

    cache_size_m: int = 0
    max_open_files: int = 0
    block_restart_interval: int = 0
    write_buffer_size_m: int = 0
    block_size_k: int = 0
    max_file_size_m: int = 0


@dataclass
class CoordsCacheOptions(CacheOptions):
    """Options of the coords cache, including bunch size and bunch LRU capacity."""

    bunch_size: int = 0
    bunch_cache_capacity: int = 0


@dataclass
class OSMCacheOptions:
    """Options for every cache of an import."""

    coords: CoordsCacheOptions = field(default_factory=CoordsCacheOptions)
    ways: CacheOptions = field(default_factory=CacheOptions)
    nodes: CacheOptions = field(default_factory=CacheOptions)
    relations: CacheOptions = field(default_factory=CacheOptions)
    coords_index: CacheOptions = field(default_factory=CacheOptions)
    ways_index: CacheOptions = field(default_factory=CacheOptions)


_FIELDS = {
    "CacheSizeM": "cache_size_m",
    "MaxOpenFiles": "max_open_files",
    "BlockRestartInterval": "block_restart_interval",
    "WriteBufferSizeM": "write_buffer_size_m",
    "BlockSizeK": "block_size_k",
    "MaxFileSizeM": "max_file_size_m",
}

_COORDS_FIELDS = {
    **_FIELDS,
    "BunchSize": "bunch_size",
    "BunchCacheCapacity": "bunch_cache_capacity",
}

_SECTIONS = {
    "Coords": ("coords", _COORDS_FIELDS),
    "Ways": ("ways", _FIELDS),
    "Nodes": ("nodes", _FIELDS),
    "Relations": ("relations", _FIELDS),
    "CoordsIndex": ("coords_index", _FIELDS),
    "WaysIndex": ("ways_index", _FIELDS),
}


def _standard(restart_interval: int) -> CacheOptions:
    return CacheOptions(
        cache_size_m=16,
        write_buffer_size_m=64,
        block_size_k=0,
        max_open_files=64,
        max_file_size_m=32,
        block_restart_interval=restart_interval,
    )


def default_cache_options() -> OSMCacheOptions:
    """Return a fresh copy of the built-in cache options."""
    return OSMCacheOptions(
        coords=CoordsCacheOptions(
            cache_size_m=16,
            write_buffer_size_m=64,
            block_size_k=0,
            max_open_files=64,
            max_file_size_m=32,
            block_restart_interval=256,
            bunch_size=32,
            bunch_cache_capacity=8096,
        ),
        nodes=_standard(128),
        ways=_standard(128),
        relations=_standard(128),
        coords_index=CacheOptions(
            cache_size_m=32,
            write_buffer_size_m=128,
            block_size_k=0,
            max_open_files=256,
            max_file_size_m=8,
            block_restart_interval=256,
        ),
        ways_index=CacheOptions(
            cache_size_m=16,
            write_buffer_size_m=64,
            block_size_k=0,
            max_open_files=64,
            max_file_size_m=8,
            block_restart_interval=128,
        ),
    )


_T = TypeVar("_T")


def _lookup(mapping: dict[str, _T], key: str) -> Optional[_T]:
    if key in mapping:
        return mapping[key]
    lowered = key.lower()
    for name, value in mapping.items():
        if name.lower() == lowered:
            return value
    return None


def _overlay_section(target: _T, data: Any, fields: dict[str, str], section: str) -> _T:
    if data is None:
        return target
    if not isinstance(data, dict):
        raise ValueError(f"cache config section {section!r} must be an object")
    changes = {}
    for key, value in data.items():
        attr = _lookup(fields, key)
        if attr is None or value is None:
            continue
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"cache config {section}.{key} must be an integer, got {value!r}")
        changes[attr] = value
    return replace(target, **changes)


def _overlay(options: OSMCacheOptions, data: Any) -> OSMCacheOptions:
    if data is None:
        return options
    if not isinstance(data, dict):
        raise ValueError("cache config must be a JSON object")
    for key, value in data.items():
        entry = _lookup(_SECTIONS, key)
        if entry is None:
            continue
        attr, fields = entry
        current = getattr(options, attr)
        options = replace(options, **{attr: _overlay_section(current, value, fields, key)})
    return options


def load_cache_options(path: Optional[str | os.PathLike[str]] = None) -> OSMCacheOptions:
    """Return the default options overridden by a JSON file.

    Without a path, the file named by the OSMIMPORT_CACHE_CONFIG environment
    variable is used; if that is unset the defaults are returned. Raises
    OSError when the file cannot be read and ValueError when it is invalid.
    """
    if path is None:
        path = os.environ.get(ENV_VARIABLE, "")
        if not path:
            return default_cache_options()
    with open(path, encoding="utf-8") as fh:
        data = json.load(fh)
    return _overlay(default_cache_options(), data)