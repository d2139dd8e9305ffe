"""Error taxonomy for build_runner.

A failed build is not an error: it is a normal ``BuildStatus.FAILURE`` result.
Likewise a failing test run is reported through its exit code.
"""

from __future__ import annotations


class BuildRunnerError(Exception):
    """Base class for all errors raised by build_runner."""


class MalformedInputError(BuildRunnerError, ValueError):
    """A flag value or positional token could not be parsed."""

    def __init__(self, message: str, *, token: str | None = None) -> None:
        super().__init__(message)
        self.token = token


class ConfigError(BuildRunnerError):
    """The project build configuration file is missing or invalid."""


class MissingDependencyError(BuildRunnerError):
    """A tooling dependency required by a command is not installed."""

    def __init__(self, package: str, remediation: str) -> None:
        super().__init__(f"Missing dependency on {package!r}, which is required to run tests.")
        self.package = package
        self.remediation = remediation


class ListenerBindError(BuildRunnerError):
    """A serve target's host/port could not be bound."""

    def __init__(self, host: str, port: int, reason: str) -> None:
        super().__init__(f"Could not serve on {host}:{port}: {reason}")
        self.host = host
        self.port = port
