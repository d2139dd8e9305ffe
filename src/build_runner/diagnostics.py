"""Operator-facing rendering of errors."""

from __future__ import annotations

from build_runner.errors import (
    ConfigError,
    ListenerBindError,
    MalformedInputError,
    MissingDependencyError,
)


def _hint_for(e: BaseException) -> str | None:
    if isinstance(e, MalformedInputError):
        if e.token and e.token.startswith("-"):
            return f"pass a non-empty value to {e.token}."
        return "serve targets look like `dir` or `dir:port`, e.g. `web:8080`."
    if isinstance(e, ConfigError):
        return "check build.toml (or build.<name>.toml when using --config)."
    if isinstance(e, ListenerBindError):
        return f"port {e.port} may already be in use; pick another with `<dir>:<port>`."
    return None


def format_error_with_hint(e: BaseException) -> str:
    """Return ``error: ...`` plus remediation/hint lines for known errors."""

    msg = str(e) or type(e).__name__
    lines = [f"error: {msg}"]
    if isinstance(e, MissingDependencyError):
        lines.append("")
        lines.append(e.remediation.rstrip())
        return "\n".join(lines)

    hint = _hint_for(e)
    if hint:
        lines.append(f"hint: {hint}")
    return "\n".join(lines)


def format_build_errors(errors: tuple[str, ...] | list[str]) -> str:
    if not errors:
        return "Build failed."
    out = [f"Build failed ({len(errors)} error(s)):"]
    for err in errors:
        out.append(f"  - {err}")
    return "\n".join(out)
