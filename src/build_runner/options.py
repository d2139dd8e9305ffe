"""Immutable option models shared by every command.

Options are built once from the parsed argparse namespace and then handed to
an executor, which reads them but never changes them.
"""

from __future__ import annotations

import argparse
from collections.abc import Iterable
from dataclasses import dataclass

from build_runner.errors import MalformedInputError

DEFAULT_PORT = 8080
DEFAULT_HOSTNAME = "localhost"


@dataclass(frozen=True, slots=True)
class ServeTarget:
    """A directory of build output exposed on one port."""

    dir: str
    port: int = DEFAULT_PORT


DEFAULT_SERVE_TARGETS: tuple[ServeTarget, ...] = (
    ServeTarget("web", 8080),
    ServeTarget("test", 8081),
)


def parse_serve_target(token: str) -> ServeTarget:
    parts = token.split(":")
    if len(parts) > 2:
        raise MalformedInputError(
            f"Invalid serve target {token!r}: expected `dir` or `dir:port`.", token=token
        )
    directory = parts[0]
    if not directory:
        raise MalformedInputError(
            f"Invalid serve target {token!r}: directory must not be empty.", token=token
        )
    if len(parts) == 1:
        return ServeTarget(directory, DEFAULT_PORT)

    raw_port = parts[1].strip()
    # int() also takes signs and non-ASCII digits; ports are plain ASCII numbers.
    if not (raw_port.isascii() and raw_port.isdecimal()) or int(raw_port) <= 0:
        raise MalformedInputError(
            f"Invalid serve target {token!r}: port must be a positive integer.", token=token
        )
    return ServeTarget(directory, int(raw_port))


def parse_serve_targets(tokens: Iterable[str]) -> tuple[ServeTarget, ...]:
    """Parse ``dir[:port]`` tokens, falling back to the web/test defaults."""

    targets = tuple(parse_serve_target(t) for t in tokens)
    if not targets:
        return DEFAULT_SERVE_TARGETS
    return targets


def _optional_str(args: argparse.Namespace, name: str, flag: str) -> str | None:
    value = getattr(args, name, None)
    if value is None:
        return None
    if not isinstance(value, str) or not value.strip():
        raise MalformedInputError(f"Option {flag} requires a non-empty value.", token=flag)
    return value


def _shared_kwargs(args: argparse.Namespace) -> dict[str, object]:
    return {
        "assume_tty": bool(getattr(args, "assume_tty", False)),
        "delete_files_by_default": bool(getattr(args, "delete_conflicting_outputs", False)),
        "fail_on_severe": bool(getattr(args, "fail_on_severe", False)),
        "low_resources_mode": bool(getattr(args, "low_resources_mode", False)),
        "config_key": _optional_str(args, "config", "--config"),
        "output_dir": _optional_str(args, "output", "--output"),
        "verbose": bool(getattr(args, "verbose", False)),
    }


@dataclass(frozen=True, slots=True)
class SharedOptions:
    assume_tty: bool = False
    # Delete conflicting outputs instead of prompting/failing.
    delete_files_by_default: bool = False
    fail_on_severe: bool = False
    low_resources_mode: bool = False
    # Read build.<config_key>.toml instead of build.toml.
    config_key: str | None = None
    # Merged output directory, or None when no directory should be written.
    output_dir: str | None = None
    verbose: bool = False

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> SharedOptions:
        return cls(**_shared_kwargs(args))  # type: ignore[arg-type]


@dataclass(frozen=True, slots=True)
class ServeOptions(SharedOptions):
    hostname: str = DEFAULT_HOSTNAME
    serve_targets: tuple[ServeTarget, ...] = DEFAULT_SERVE_TARGETS

    def __post_init__(self) -> None:
        if not self.serve_targets:
            object.__setattr__(self, "serve_targets", DEFAULT_SERVE_TARGETS)

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> ServeOptions:
        hostname = _optional_str(args, "hostname", "--hostname") or DEFAULT_HOSTNAME
        return cls(
            **_shared_kwargs(args),  # type: ignore[arg-type]
            hostname=hostname,
            serve_targets=parse_serve_targets(getattr(args, "targets", None) or []),
        )
