import json

import pytest

from osmimport.cacheconfig import (
    ENV_VARIABLE,
    CacheOptions,
    CoordsCacheOptions,
    OSMCacheOptions,
    default_cache_options,
    load_cache_options,
)


@pytest.fixture
def write_config(tmp_path):
    def write(data):
        path = tmp_path / "cache.json"
        path.write_text(json.dumps(data), encoding="utf-8")
        return path

    return write


def test_defaults_from_source():
    opts = default_cache_options()
    assert opts.coords.bunch_size == 32
    assert opts.coords.bunch_cache_capacity == 8096
    assert opts.coords.block_restart_interval == 256
    assert opts.coords_index.max_open_files == 256
    assert opts.nodes.block_restart_interval == 128
    assert opts.ways_index.max_file_size_m == 8


def test_defaults_are_fresh_copies():
    first = default_cache_options()
    first.nodes.cache_size_m = 999
    assert first.nodes.cache_size_m == 999
    assert default_cache_options().nodes.cache_size_m == 16


def test_zero_defaults_of_dataclasses():
    assert OSMCacheOptions().coords == CoordsCacheOptions()
    assert CacheOptions().cache_size_m == 0


def test_overlay_single_value(write_config):
    path = write_config({"Coords": {"BunchSize": 64}})
    opts = load_cache_options(path)
    defaults = default_cache_options()
    assert opts.coords.bunch_size == 64
    assert opts.coords.cache_size_m == defaults.coords.cache_size_m
    assert opts.nodes == defaults.nodes


def test_overlay_embedded_field(write_config):
    opts = load_cache_options(write_config({"Coords": {"CacheSizeM": 7}}))
    assert opts.coords.cache_size_m == 7
    assert opts.coords.bunch_size == default_cache_options().coords.bunch_size


def test_keys_match_case_insensitively(write_config):
    opts = load_cache_options(write_config({"nodes": {"cachesizem": 5}}))
    assert opts.nodes.cache_size_m == 5


def test_unknown_keys_are_ignored(write_config):
    opts = load_cache_options(write_config({"Foo": 1, "Ways": {"Bar": 2}}))
    assert opts == default_cache_options()


def test_null_leaves_values_unchanged(write_config):
    opts = load_cache_options(write_config({"Ways": None, "Nodes": {"CacheSizeM": None}}))
    assert opts == default_cache_options()


@pytest.mark.parametrize(
    "data",
    [
        {"Ways": {"CacheSizeM": "big"}},
        {"Ways": {"CacheSizeM": 1.5}},
        {"Ways": {"CacheSizeM": True}},
        {"Ways": [1, 2]},
        [1, 2, 3],
    ],
)
def test_invalid_values_raise(write_config, data):
    with pytest.raises(ValueError):
        load_cache_options(write_config(data))


def test_invalid_json_raises(tmp_path):
    path = tmp_path / "broken.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(ValueError):
        load_cache_options(path)


def test_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_cache_options(tmp_path / "missing.json")


def test_environment_variable(monkeypatch, write_config):
    path = write_config({"Relations": {"MaxOpenFiles": 3}})
    monkeypatch.setenv(ENV_VARIABLE, str(path))
    assert load_cache_options().relations.max_open_files == 3


def test_without_environment_variable(monkeypatch):
    monkeypatch.delenv(ENV_VARIABLE, raising=False)
    assert load_cache_options() == default_cache_options()