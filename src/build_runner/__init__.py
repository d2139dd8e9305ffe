"""build_runner: one entry point for building, watching, serving and testing.

The orchestration layer lives here; the build engine it drives is pluggable
(see :mod:`build_runner.engine`).
"""

from __future__ import annotations

__version__ = "0.4.0"

__all__ = ["__version__"]
