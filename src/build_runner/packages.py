"""Read-only view of the packages available to the current project."""

from __future__ import annotations

import importlib.metadata
import re
from collections.abc import Iterable

_NORMALIZE_RE = re.compile(r"[-_.]+")


def normalize_name(name: str) -> str:
    # PEP 503 normalization: "Build_Test" and "build-test" are the same package.
    return _NORMALIZE_RE.sub("-", name).lower()


class PackageGraph:
    def __init__(self, packages: Iterable[str]) -> None:
        self._packages = frozenset(normalize_name(p) for p in packages if p)

    @classmethod
    def for_this_package(cls) -> PackageGraph:
        """Snapshot the distributions installed in the running environment."""
        names: list[str] = []
        for dist in importlib.metadata.distributions():
            name = dist.metadata["Name"] if dist.metadata else None
            if name:
                names.append(name)
        return cls(names)

    def has_dependency(self, name: str) -> bool:
        return normalize_name(name) in self._packages
