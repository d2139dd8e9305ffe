"""Project build configuration (``build.toml``).

``--config NAME`` selects ``build.NAME.toml`` instead of the default file.
"""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from build_runner.errors import ConfigError

DEFAULT_CONFIG_NAME = "build.toml"


@dataclass(frozen=True, slots=True)
class BuildConfig:
    sources: list[str] = field(default_factory=lambda: ["web", "test", "lib"])
    build_dir: str = ".build"
    exclude: list[str] = field(default_factory=list)


def config_filename(config_key: str | None) -> str:
    if config_key:
        return f"build.{config_key}.toml"
    return DEFAULT_CONFIG_NAME


def _str_list(table: dict[str, Any], key: str, default: list[str]) -> list[str]:
    if key not in table:
        return list(default)
    value = table[key]
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ConfigError(f"[build].{key} must be a list of strings.")
    return list(value)


def load_config(*, root: Path, config_key: str | None = None) -> BuildConfig:
    path = root / config_filename(config_key)
    if not path.exists():
        if config_key:
            raise ConfigError(f"Configuration {config_key!r} not found: {path} does not exist.")
        return BuildConfig()

    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in {path}: {e}") from e

    table = data.get("build", {})
    if not isinstance(table, dict):
        raise ConfigError("[build] must be a table.")

    defaults = BuildConfig()
    build_dir = table.get("build_dir", defaults.build_dir)
    if not isinstance(build_dir, str) or not build_dir.strip():
        raise ConfigError("[build].build_dir must be a non-empty string.")

    return BuildConfig(
        sources=_str_list(table, "sources", defaults.sources),
        build_dir=build_dir,
        exclude=_str_list(table, "exclude", defaults.exclude),
    )
