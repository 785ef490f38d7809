"""Command line and JSON configuration of import, diff and run commands."""

from __future__ import annotations

import json
import os
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

DEFAULT_SRID = 3857
DEFAULT_CACHE_DIR = "/tmp/osmimport"
DEFAULT_SCHEMA_IMPORT = "import"
DEFAULT_SCHEMA_PRODUCTION = "public"
DEFAULT_SCHEMA_BACKUP = "backup"

_MINUTE = timedelta(minutes=1)


class ConfigError(ValueError):
    """Invalid command line arguments or configuration."""

    def __init__(self, message: str, errors: Sequence[str] = (), usage: str = "") -> None:
        super().__init__(message)
        self.message = message
        self.errors = list(errors)
        self.usage = usage

    def __str__(self) -> str:
        if self.errors:
            return self.message + ": " + "; ".join(self.errors)
        return self.message


@dataclass
class Schemas:
    """Database schemas for import, production and backup tables."""

    import_: str = DEFAULT_SCHEMA_IMPORT
    production: str = DEFAULT_SCHEMA_PRODUCTION
    backup: str = DEFAULT_SCHEMA_BACKUP


@dataclass
class BaseOptions:
    """Options shared by all commands."""

    connection: str = ""
    cache_dir: str = DEFAULT_CACHE_DIR
    diff_dir: str = ""
    mapping_file: str = ""
    srid: int = DEFAULT_SRID
    limit_to: str = ""
    limit_to_cache_buffer: float = 0.0
    config_file: str = ""
    http_profile: str = ""
    quiet: bool = False
    schemas: Schemas = field(default_factory=Schemas)
    expire_tiles_dir: str = ""
    expire_tiles_zoom: int = 0
    commit_latest: bool = False
    replication_url: str = ""
    replication_interval: timedelta = timedelta(0)
    diff_state_before: timedelta = timedelta(0)
    force_diff_import: bool = False


@dataclass
class ImportOptions:
    """Options of the import command."""

    base: BaseOptions = field(default_factory=BaseOptions)
    overwritecache: bool = False
    appendcache: bool = False
    read: str = ""
    write: bool = False
    optimize: bool = False
    diff: bool = False
    deploy_production: bool = False
    revert_deploy: bool = False
    remove_backup: bool = False


_UNITS_US = {
    "ns": Decimal("0.001"),
    "us": Decimal(1),
    "µs": Decimal(1),
    "μs": Decimal(1),
    "ms": Decimal(1000),
    "s": Decimal(1_000_000),
    "m": Decimal(60_000_000),
    "h": Decimal(3_600_000_000),
}
_DURATION_PART = re.compile(r"(\d+\.?\d*|\.\d+)(ns|us|µs|μs|ms|s|m|h)")


def parse_duration(text: str) -> timedelta:
    """Parse a duration such as "1m", "1h30m" or "1.5h"; raises ConfigError."""
    rest = text
    sign = 1
    if rest[:1] in ("+", "-"):
        sign = -1 if rest[0] == "-" else 1
        rest = rest[1:]
    if rest == "0":
        return timedelta(0)
    if not rest:
        raise ConfigError(f"invalid duration {text!r}")
    total = Decimal(0)
    pos = 0
    while pos < len(rest):
        match = _DURATION_PART.match(rest, pos)
        if match is None:
            raise ConfigError(f"invalid duration {text!r}")
        try:
            number = Decimal(match.group(1))
        except InvalidOperation as exc:
            raise ConfigError(f"invalid duration {text!r}") from exc
        total += number * _UNITS_US[match.group(2)]
        pos = match.end()
    return sign * timedelta(microseconds=int(total))


def parse_minutes_interval(value: Any) -> timedelta:
    """Parse a JSON interval: a duration string or an integer number of minutes."""
    if isinstance(value, str):
        return parse_duration(value)
    if isinstance(value, int) and not isinstance(value, bool):
        return timedelta(minutes=value)
    raise ConfigError(f"invalid interval {value!r}")


@dataclass
class _FileConfig:
    cache_dir: str = DEFAULT_CACHE_DIR
    diff_dir: str = ""
    connection: str = ""
    mapping_file: str = ""
    limit_to: str = ""
    limit_to_cache_buffer: float = 0.0
    srid: int = DEFAULT_SRID
    schema_import: str = ""
    schema_production: str = ""
    schema_backup: str = ""
    expire_tiles_dir: str = ""
    expire_tiles_zoom: int = 0
    commit_latest: bool = False
    replication_url: str = ""
    replication_interval: timedelta = timedelta(0)
    diff_state_before: timedelta = timedelta(0)


def _as_str(value: Any, key: str) -> str:
    if not isinstance(value, str):
        raise ConfigError(f"config {key} must be a string, got {value!r}")
    return value


def _as_int(value: Any, key: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"config {key} must be an integer, got {value!r}")
    return value


def _as_float(value: Any, key: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"config {key} must be a number, got {value!r}")
    return float(value)


def _as_bool(value: Any, key: str) -> bool:
    if not isinstance(value, bool):
        raise ConfigError(f"config {key} must be a boolean, got {value!r}")
    return value


_FILE_KEYS: dict[str, tuple[str, Callable[[Any, str], Any]]] = {
    "cachedir": ("cache_dir", _as_str),
    "diffdir": ("diff_dir", _as_str),
    "connection": ("connection", _as_str),
    "mapping": ("mapping_file", _as_str),
    "limitto": ("limit_to", _as_str),
    "limitto_cache_buffer": ("limit_to_cache_buffer", _as_float),
    "srid": ("srid", _as_int),
    "expiretiles_dir": ("expire_tiles_dir", _as_str),
    "expiretiles_zoom": ("expire_tiles_zoom", _as_int),
    "commit_latest": ("commit_latest", _as_bool),
    "replication_url": ("replication_url", _as_str),
    "replication_interval": ("replication_interval", lambda v, _k: parse_minutes_interval(v)),
    "diff_state_before": ("diff_state_before", lambda v, _k: parse_minutes_interval(v)),
}

_SCHEMA_KEYS = {
    "import": "schema_import",
    "production": "schema_production",
    "backup": "schema_backup",
}


def _load_file_config(path: str) -> _FileConfig:
    try:
        with open(path, encoding="utf-8") as fh:
            data = json.load(fh)
    except OSError as exc:
        raise ConfigError(f"reading config {path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigError(f"parsing config {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"config {path} must hold a JSON object")

    conf = _FileConfig()
    for key, value in data.items():
        lowered = key.lower()
        if value is None:
            continue
        if lowered == "schemas":
            if not isinstance(value, dict):
                raise ConfigError("config schemas must be an object")
            for schema_key, schema_value in value.items():
                attr = _SCHEMA_KEYS.get(schema_key.lower())
                if attr is not None and schema_value is not None:
                    setattr(conf, attr, _as_str(schema_value, f"schemas.{schema_key}"))
            continue
        entry = _FILE_KEYS.get(lowered)
        if entry is None:
            continue
        attr, convert = entry
        setattr(conf, attr, convert(value, key))
    return conf


def _update_from_config(opts: BaseOptions) -> None:
    conf = _load_file_config(opts.config_file) if opts.config_file else _FileConfig()

    if conf.schema_import and opts.schemas.import_ == DEFAULT_SCHEMA_IMPORT:
        opts.schemas.import_ = conf.schema_import
    if conf.schema_production and opts.schemas.production == DEFAULT_SCHEMA_PRODUCTION:
        opts.schemas.production = conf.schema_production
    if conf.schema_backup and opts.schemas.backup == DEFAULT_SCHEMA_BACKUP:
        opts.schemas.backup = conf.schema_backup

    if not opts.connection:
        opts.connection = conf.connection
    if conf.srid == 0:
        conf.srid = DEFAULT_SRID
    if opts.srid == DEFAULT_SRID:
        opts.srid = conf.srid
    if not opts.mapping_file:
        opts.mapping_file = conf.mapping_file
    if not opts.limit_to:
        opts.limit_to = conf.limit_to
    if opts.limit_to == "NONE":
        # allows disabling a configured limit from the command line
        opts.limit_to = ""
    if opts.limit_to_cache_buffer == 0.0:
        opts.limit_to_cache_buffer = conf.limit_to_cache_buffer
    if opts.cache_dir == DEFAULT_CACHE_DIR:
        opts.cache_dir = conf.cache_dir

    if not opts.expire_tiles_dir:
        opts.expire_tiles_dir = conf.expire_tiles_dir
    if opts.expire_tiles_zoom == 0:
        opts.expire_tiles_zoom = conf.expire_tiles_zoom
    if not 6 <= opts.expire_tiles_zoom <= 18:
        opts.expire_tiles_zoom = 14

    if not opts.commit_latest:
        opts.commit_latest = conf.commit_latest

    if conf.replication_interval and opts.replication_interval == _MINUTE:
        opts.replication_interval = conf.replication_interval
    if opts.replication_interval < _MINUTE:
        opts.replication_interval = _MINUTE
    opts.replication_url = conf.replication_url

    if not opts.diff_dir:
        # the cache dir holds the diff state unless configured otherwise
        opts.diff_dir = conf.diff_dir or opts.cache_dir

    if conf.diff_state_before and not opts.diff_state_before:
        opts.diff_state_before = conf.diff_state_before


def _check(opts: BaseOptions) -> list[str]:
    errors = []
    if opts.srid not in (3857, 4326):
        errors.append("only -srid=3857 or -srid=4326 are supported")
    if not opts.mapping_file:
        errors.append("missing mapping")
    return errors


_TRUE = {"1", "t", "T", "TRUE", "true", "True"}
_FALSE = {"0", "f", "F", "FALSE", "false", "False"}


def _parse_bool(text: str) -> bool:
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise ValueError(f"invalid boolean {text!r}")


_CONVERTERS: dict[str, Callable[[str], Any]] = {
    "string": str,
    "int": lambda text: int(text, 0),
    "float": float,
    "bool": _parse_bool,
    "duration": parse_duration,
}


@dataclass
class _Flag:
    name: str
    kind: str
    default: Any
    help: str
    apply: Callable[[Any], None]


def _bind(obj: Any, attr: str) -> Callable[[Any], None]:
    return lambda value: setattr(obj, attr, value)


class _FlagSet:
    """Single-dash flags: -name, -name=value and -name value."""

    def __init__(self, usage_line: str) -> None:
        self.usage_line = usage_line
        self._flags: dict[str, _Flag] = {}
        self.visited: set[str] = set()

    def add(self, name: str, kind: str, default: Any, help_: str, apply: Callable[[Any], None]) -> None:
        self._flags[name] = _Flag(name, kind, default, help_, apply)
        apply(default)

    def usage(self) -> str:
        lines = [self.usage_line, ""]
        for name in sorted(self._flags):
            flag = self._flags[name]
            lines.append(f"  -{name}" + ("" if flag.kind == "bool" else f" {flag.kind}"))
            default = flag.default
            suffix = "" if default in ("", 0, False, timedelta(0)) else f" (default {default})"
            lines.append(f"    \t{flag.help}{suffix}")
        return "\n".join(lines)

    def _error(self, message: str) -> ConfigError:
        return ConfigError(message, usage=self.usage())

    def set(self, name: str, text: str) -> None:
        flag = self._flags.get(name)
        if flag is None:
            raise self._error(f"no such flag -{name}")
        try:
            value = _CONVERTERS[flag.kind](text)
        except (ValueError, ConfigError) as exc:
            raise self._error(f"invalid value {text!r} for flag -{name}: {exc}") from exc
        flag.apply(value)
        self.visited.add(name)

    def parse(self, args: Sequence[str]) -> list[str]:
        """Apply flags and return the arguments after the first non-flag."""
        args = list(args)
        i = 0
        while i < len(args):
            arg = args[i]
            if len(arg) < 2 or arg[0] != "-":
                break
            dashes = 2 if arg[1] == "-" else 1
            if arg == "--":
                i += 1
                break
            name = arg[dashes:]
            if not name or name[0] in "-=":
                raise self._error(f"bad flag syntax: {arg}")
            value: Optional[str] = None
            if "=" in name:
                name, value = name.split("=", 1)
            i += 1
            flag = self._flags.get(name)
            if flag is None:
                if name in ("h", "help"):
                    raise self._error("help requested")
                raise self._error(f"flag provided but not defined: -{name}")
            if flag.kind == "bool":
                self.set(name, "true" if value is None else value)
                continue
            if value is None:
                if i >= len(args):
                    raise self._error(f"flag needs an argument: -{name}")
                value = args[i]
                i += 1
            self.set(name, value)
        return args[i:]


def _add_base_flags(opts: BaseOptions, flags: _FlagSet) -> None:
    flags.add("connection", "string", "", "connection parameters", _bind(opts, "connection"))
    flags.add("cachedir", "string", DEFAULT_CACHE_DIR, "cache directory", _bind(opts, "cache_dir"))
    flags.add("diffdir", "string", "", "diff directory for last.state.txt", _bind(opts, "diff_dir"))
    flags.add("mapping", "string", "", "mapping file", _bind(opts, "mapping_file"))
    flags.add("srid", "int", DEFAULT_SRID, "srs id", _bind(opts, "srid"))
    flags.add("limitto", "string", "", "limit to geometries", _bind(opts, "limit_to"))
    flags.add("limittocachebuffer", "float", 0.0, "limit to buffer for cache",
              _bind(opts, "limit_to_cache_buffer"))
    flags.add("config", "string", "", "config (json)", _bind(opts, "config_file"))
    flags.add("httpprofile", "string", "", "bind address for profile server", _bind(opts, "http_profile"))
    flags.add("quiet", "bool", False, "quiet log output", _bind(opts, "quiet"))
    flags.add("dbschema-import", "string", DEFAULT_SCHEMA_IMPORT, "db schema for imports",
              _bind(opts.schemas, "import_"))
    flags.add("dbschema-production", "string", DEFAULT_SCHEMA_PRODUCTION, "db schema for production",
              _bind(opts.schemas, "production"))
    flags.add("dbschema-backup", "string", DEFAULT_SCHEMA_BACKUP, "db schema for backups",
              _bind(opts.schemas, "backup"))


def _add_replication_interval_flag(opts: BaseOptions, flags: _FlagSet) -> None:
    flags.add("replication-interval", "duration", _MINUTE,
              "replication interval as duration (1m, 1h, 24h)", _bind(opts, "replication_interval"))


def _add_expire_flags(opts: BaseOptions, flags: _FlagSet) -> None:
    flags.add("expiretiles-dir", "string", "", "write expire tiles into dir", _bind(opts, "expire_tiles_dir"))
    flags.add("expiretiles-zoom", "int", 14, "write expire tiles in this zoom level",
              _bind(opts, "expire_tiles_zoom"))


def _finish(opts: BaseOptions, flags: _FlagSet) -> None:
    _update_from_config(opts)
    errors = _check(opts)
    if errors:
        raise ConfigError("errors in config/options", errors, usage=flags.usage())


def _reset_unset_zoom(flags: _FlagSet) -> None:
    # without an explicit zoom the configured value or the fallback applies
    if "expiretiles-zoom" not in flags.visited:
        flags.set("expiretiles-zoom", "0")


def parse_import(args: Sequence[str]) -> ImportOptions:
    """Parse the arguments of the import command; raises ConfigError."""
    opts = ImportOptions()
    flags = _FlagSet("Usage: import [args]")
    _add_base_flags(opts.base, flags)
    flags.add("overwritecache", "bool", False, "overwritecache", _bind(opts, "overwritecache"))
    flags.add("appendcache", "bool", False, "append cache", _bind(opts, "appendcache"))
    flags.add("read", "string", "", "read", _bind(opts, "read"))
    flags.add("write", "bool", False, "write", _bind(opts, "write"))
    flags.add("optimize", "bool", False, "optimize", _bind(opts, "optimize"))
    flags.add("diff", "bool", False, "enable diff support", _bind(opts, "diff"))
    flags.add("deployproduction", "bool", False, "deploy production", _bind(opts, "deploy_production"))
    flags.add("revertdeploy", "bool", False, "revert deploy to production", _bind(opts, "revert_deploy"))
    flags.add("removebackup", "bool", False, "remove backups from deploy", _bind(opts, "remove_backup"))
    flags.add("diff-state-before", "duration", timedelta(0), "set initial diff sequence before",
              _bind(opts.base, "diff_state_before"))
    _add_replication_interval_flag(opts.base, flags)

    if not args:
        raise ConfigError("missing arguments", usage=flags.usage())
    flags.parse(args)
    _finish(opts.base, flags)
    return opts


def parse_diff_import(args: Sequence[str]) -> tuple[BaseOptions, list[str]]:
    """Parse the arguments of the diff command; returns options and diff files."""
    opts = BaseOptions()
    flags = _FlagSet("Usage: diff [args] [.osc.gz, ...]")
    _add_base_flags(opts, flags)
    _add_expire_flags(opts, flags)
    flags.add("force", "bool", False, "force import of diff if sequence was already imported",
              _bind(opts, "force_diff_import"))
    flags.add("commit-latest", "bool", False, "commit after last diff, instead after each diff",
              _bind(opts, "commit_latest"))

    if not args:
        raise ConfigError("missing arguments", usage=flags.usage())
    files = flags.parse(args)
    _reset_unset_zoom(flags)
    _finish(opts, flags)
    return opts, files


def parse_run_import(args: Sequence[str]) -> BaseOptions:
    """Parse the arguments of the run command; raises ConfigError."""
    opts = BaseOptions()
    flags = _FlagSet("Usage: run [args]")
    _add_base_flags(opts, flags)
    _add_expire_flags(opts, flags)
    flags.add("commit-latest", "bool", False, "commit after last diff, instead after each diff",
              _bind(opts, "commit_latest"))
    _add_replication_interval_flag(opts, flags)

    if not args:
        raise ConfigError("missing arguments", usage=flags.usage())
    flags.parse(args)
    _reset_unset_zoom(flags)
    _finish(opts, flags)
    return opts