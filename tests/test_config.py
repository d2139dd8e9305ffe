from __future__ import annotations

from pathlib import Path

import pytest

from build_runner.config import BuildConfig, config_filename, load_config
from build_runner.errors import ConfigError


def test_missing_default_config_uses_defaults(tmp_path: Path) -> None:
    cfg = load_config(root=tmp_path)
    assert cfg == BuildConfig()
    assert cfg.sources == ["web", "test", "lib"]
    assert cfg.build_dir == ".build"
    assert cfg.exclude == []


def test_load_config_overrides(tmp_path: Path) -> None:
    (tmp_path / "build.toml").write_text(
        "\n".join(
            [
                "[build]",
                'sources = ["site"]',
                'build_dir = "dist"',
                'exclude = ["site/*.tmp"]',
            ]
        )
        + "\n",
        encoding="utf-8",
    )
    cfg = load_config(root=tmp_path)
    assert cfg.sources == ["site"]
    assert cfg.build_dir == "dist"
    assert cfg.exclude == ["site/*.tmp"]


def test_config_key_selects_named_file(tmp_path: Path) -> None:
    (tmp_path / "build.toml").write_text('[build]\nbuild_dir = "default"\n', encoding="utf-8")
    (tmp_path / "build.release.toml").write_text(
        '[build]\nbuild_dir = "release"\n', encoding="utf-8"
    )
    assert config_filename("release") == "build.release.toml"
    assert load_config(root=tmp_path, config_key="release").build_dir == "release"


def test_missing_named_config_is_an_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="release"):
        load_config(root=tmp_path, config_key="release")


def test_invalid_toml_is_an_error(tmp_path: Path) -> None:
    (tmp_path / "build.toml").write_text("[build\n", encoding="utf-8")
    with pytest.raises(ConfigError, match="Invalid TOML"):
        load_config(root=tmp_path)


def test_wrong_types_are_errors(tmp_path: Path) -> None:
    (tmp_path / "build.toml").write_text('[build]\nsources = "web"\n', encoding="utf-8")
    with pytest.raises(ConfigError, match="sources"):
        load_config(root=tmp_path)

    (tmp_path / "build.toml").write_text("[build]\nbuild_dir = 3\n", encoding="utf-8")
    with pytest.raises(ConfigError, match="build_dir"):
        load_config(root=tmp_path)
