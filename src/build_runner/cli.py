"""CLI entry point for build_runner.

One program, four commands: ``build``, ``watch``, ``serve`` and ``test``.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from build_runner import __version__
from build_runner.builder import EXIT_OK
from build_runner.diagnostics import format_error_with_hint
from build_runner.errors import (
    ConfigError,
    ListenerBindError,
    MalformedInputError,
    MissingDependencyError,
)
from build_runner.options import DEFAULT_HOSTNAME, ServeOptions, SharedOptions

if TYPE_CHECKING:  # pragma: no cover
    from build_runner.engine import BuildEngine


EXIT_USAGE = 2
EXIT_MISSING_DEPENDENCY = 3
EXIT_SERVE_ERROR = 4

_LOG_HANDLER_NAME = "build_runner.cli"


def _add_common_flags(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--assume-tty",
        action=argparse.BooleanOptionalAction,
        default=False,
        help=(
            "Enable colors and interactive input even when not running directly in a "
            "terminal, e.g. as a subprocess."
        ),
    )
    p.add_argument(
        "--delete-conflicting-outputs",
        action="store_true",
        help=(
            "Delete existing outputs that were not generated by this build instead of "
            "prompting. Meant for CI and tests."
        ),
    )
    p.add_argument(
        "--low-resources-mode",
        action="store_true",
        help="Reduce memory use at the cost of slower builds.",
    )
    p.add_argument(
        "--fail-on-severe",
        action=argparse.BooleanOptionalAction,
        default=False,
        help="Treat any logged error as a build failure.",
    )
    p.add_argument(
        "-c",
        "--config",
        type=str,
        default=None,
        help="Read build.<name>.toml instead of the default build.toml.",
    )
    p.add_argument(
        "-o",
        "--output",
        type=str,
        default=None,
        help="A directory to write the result of a build to.",
    )
    p.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging.")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="build_runner",
        description="Unified interface for running builds.",
        allow_abbrev=False,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    subparsers = parser.add_subparsers(dest="command", required=True)

    build_p = subparsers.add_parser(
        "build",
        help="Perform a single build on the configured sources and exit.",
        allow_abbrev=False,
    )
    _add_common_flags(build_p)

    watch_p = subparsers.add_parser(
        "watch",
        help="Build, then watch the file system and rebuild on changes.",
        allow_abbrev=False,
    )
    _add_common_flags(watch_p)

    serve_p = subparsers.add_parser(
        "serve", help="Run a development server on top of `watch`.", allow_abbrev=False
    )
    _add_common_flags(serve_p)
    serve_p.add_argument(
        "--hostname",
        type=str,
        default=DEFAULT_HOSTNAME,
        help="Hostname to serve on.",
    )
    serve_p.add_argument(
        "targets",
        nargs="*",
        metavar="TARGET",
        help="DIR or DIR:PORT to serve (repeatable; default: web:8080 test:8081).",
    )

    test_p = subparsers.add_parser(
        "test",
        help="Perform a single build, then run pytest on the outputs.",
        epilog="Unrecognized trailing arguments (or everything after `--`) go to pytest.",
        allow_abbrev=False,
    )
    _add_common_flags(test_p)

    return parser


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = _build_parser()
    args, extras = parser.parse_known_args(argv)
    if args.command == "serve":
        # A `*` positional is consumed once; targets after a flag land in extras.
        leftovers = [e for e in extras if not e.startswith("-")]
        args.targets = [*(args.targets or []), *leftovers]
        extras = [e for e in extras if e.startswith("-")]
    if args.command != "test":
        if extras:
            parser.error(f"unrecognized arguments: {' '.join(extras)}")
        return args

    if extras and extras[0] == "--":
        extras = extras[1:]
    args.test_args = extras
    return args


def _eprint(msg: str) -> None:
    print(msg, file=sys.stderr)


def _print_error(e: BaseException) -> None:
    _eprint(format_error_with_hint(e))


def _configure_logging(*, verbose: bool) -> None:
    logger = logging.getLogger("build_runner")
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    fmt = "[%(levelname)s] %(name)s: %(message)s" if verbose else "[%(levelname)s] %(message)s"

    handler = next((h for h in logger.handlers if h.get_name() == _LOG_HANDLER_NAME), None)
    if handler is None:
        handler = logging.StreamHandler(sys.stderr)
        handler.set_name(_LOG_HANDLER_NAME)
        logger.addHandler(handler)
    else:
        # main() may run repeatedly in one process with a swapped sys.stderr.
        handler.setStream(sys.stderr)  # type: ignore[attr-defined]
    handler.setFormatter(logging.Formatter(fmt))
    logger.propagate = False


def _build_engine(options: SharedOptions) -> BuildEngine:
    from build_runner.config import load_config
    from build_runner.mirror import MirrorEngine

    root = Path.cwd()
    return MirrorEngine(root, load_config(root=root, config_key=options.config_key))


def cmd_build(args: argparse.Namespace) -> int:
    try:
        options = SharedOptions.from_args(args)
        engine = _build_engine(options)
    except (MalformedInputError, ConfigError) as e:
        _print_error(e)
        return EXIT_USAGE

    from build_runner import builder

    return asyncio.run(builder.build_once(engine, options))


def cmd_watch(args: argparse.Namespace) -> int:
    try:
        options = SharedOptions.from_args(args)
        engine = _build_engine(options)
    except (MalformedInputError, ConfigError) as e:
        _print_error(e)
        return EXIT_USAGE

    from build_runner import watcher

    try:
        return asyncio.run(watcher.run_watch(engine, options))
    except KeyboardInterrupt:
        _eprint("\n[watch] stopped.")
        return EXIT_OK


def cmd_serve(args: argparse.Namespace) -> int:
    try:
        options = ServeOptions.from_args(args)
        engine = _build_engine(options)
    except (MalformedInputError, ConfigError) as e:
        _print_error(e)
        return EXIT_USAGE

    from build_runner import watcher

    try:
        return asyncio.run(watcher.run_serve(engine, options))
    except ListenerBindError as e:
        _print_error(e)
        return EXIT_SERVE_ERROR
    except KeyboardInterrupt:
        _eprint("\n[serve] stopped.")
        return EXIT_OK


def cmd_test(args: argparse.Namespace) -> int:
    try:
        options = SharedOptions.from_args(args)
        engine = _build_engine(options)
    except (MalformedInputError, ConfigError) as e:
        _print_error(e)
        return EXIT_USAGE

    from build_runner import tester

    try:
        return asyncio.run(
            tester.run_tests(engine, options, test_args=list(getattr(args, "test_args", [])))
        )
    except MissingDependencyError as e:
        _print_error(e)
        return EXIT_MISSING_DEPENDENCY


def main(argv: list[str] | None = None) -> int:
    try:
        args = parse_args(list(sys.argv[1:] if argv is None else argv))
    except SystemExit as e:
        # argparse uses SystemExit for --help/--version and parse errors.
        code = e.code
        return int(code) if isinstance(code, int) else EXIT_USAGE

    _configure_logging(verbose=bool(getattr(args, "verbose", False)))

    if args.command == "build":
        return cmd_build(args)
    if args.command == "watch":
        return cmd_watch(args)
    if args.command == "serve":
        return cmd_serve(args)
    if args.command == "test":
        return cmd_test(args)

    return EXIT_USAGE


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
