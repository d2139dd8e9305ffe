"""``build_runner build``: one build, then exit."""

from __future__ import annotations

import logging

from build_runner.diagnostics import format_build_errors
from build_runner.engine import BuildEngine, BuildResult, BuildStatus
from build_runner.options import SharedOptions

logger = logging.getLogger("build_runner.builder")

EXIT_OK = 0
EXIT_BUILD_FAILURE = 1


def log_result(result: BuildResult) -> None:
    if result.ok:
        logger.info("Build succeeded with %d output(s).", len(result.outputs))
    else:
        logger.error(format_build_errors(result.errors))


def exit_code_for(result: BuildResult) -> int:
    if result.status is BuildStatus.SUCCESS:
        return EXIT_OK
    return EXIT_BUILD_FAILURE


async def run_build(
    engine: BuildEngine,
    options: SharedOptions,
    *,
    output_dir: str | None = None,
) -> BuildResult:
    """Run exactly one build; ``output_dir`` overrides ``options.output_dir``."""

    target = output_dir if output_dir is not None else options.output_dir
    result = await engine.build(options, output_dir=target)
    log_result(result)
    return result


async def build_once(engine: BuildEngine, options: SharedOptions) -> int:
    return exit_code_for(await run_build(engine, options))
