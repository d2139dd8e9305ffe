"""``build_runner test``: build once into a directory, then run pytest on it."""

from __future__ import annotations

import asyncio
import logging
import shutil
import sys
import tempfile
from typing import TextIO

from build_runner.builder import EXIT_BUILD_FAILURE, run_build
from build_runner.engine import BuildEngine
from build_runner.errors import MissingDependencyError
from build_runner.options import SharedOptions
from build_runner.packages import PackageGraph
from build_runner.process import ProcessManager

logger = logging.getLogger("build_runner.tester")

TEST_SUPPORT_PACKAGE = "pytest"

_MISSING_PYTEST_HINT = """\
Please add pytest to the test dependencies of your pyproject.toml:

  [project.optional-dependencies]
  test = [
    "build-runner",
    "pytest",
  ]

and install them, e.g. `pip install -e '.[test]'`.
"""


def ensure_test_dependency(package_graph: PackageGraph) -> None:
    if not package_graph.has_dependency(TEST_SUPPORT_PACKAGE):
        raise MissingDependencyError(TEST_SUPPORT_PACKAGE, _MISSING_PYTEST_HINT)


def pytest_command(output_dir: str, extra_args: list[str]) -> tuple[str, list[str]]:
    return sys.executable, ["-m", "pytest", output_dir, *extra_args]


async def run_pytest(
    output_dir: str,
    extra_args: list[str],
    *,
    process_manager: ProcessManager,
) -> int:
    """Run pytest against the compiled output and return its exit code verbatim."""

    command, args = pytest_command(output_dir, extra_args)
    proc = await process_manager.spawn(command, args)
    return await proc.wait()


async def run_tests(
    engine: BuildEngine,
    options: SharedOptions,
    *,
    test_args: list[str] | None = None,
    package_graph: PackageGraph | None = None,
    process_manager: ProcessManager | None = None,
    out: TextIO | None = None,
) -> int:
    stream = out if out is not None else sys.stdout
    manager = process_manager if process_manager is not None else ProcessManager()
    owned_dir: str | None = None
    try:
        graph = package_graph if package_graph is not None else PackageGraph.for_this_package()
        ensure_test_dependency(graph)

        # Tests always need an output directory; make a temporary one if none
        # was asked for.
        if options.output_dir is not None:
            output_dir = options.output_dir
        else:
            owned_dir = tempfile.mkdtemp(prefix="build_runner_test")
            output_dir = owned_dir

        result = await run_build(engine, options, output_dir=output_dir)
        if not result.ok:
            stream.write("Skipping tests due to build failure\n")
            stream.flush()
            return EXIT_BUILD_FAILURE

        stream.write("Running tests...\n\n")
        stream.flush()
        exit_code = await run_pytest(output_dir, list(test_args or []), process_manager=manager)
        if exit_code != 0:
            # pytest already reported the failures.
            logger.debug("pytest exited with status %d", exit_code)
        return exit_code
    finally:
        if owned_dir is not None:
            await asyncio.to_thread(shutil.rmtree, owned_dir, ignore_errors=True)
        ProcessManager.terminate_stdin()
