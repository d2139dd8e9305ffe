"""The default build engine: mirror source directories into the build dir.

Each configured source directory ``<src>`` is copied to
``<build_dir>/<src>``. Only files whose content changed are rewritten, outputs
whose source disappeared are deleted, and a manifest remembers which files
this engine owns so that foreign files are never silently overwritten.
"""

from __future__ import annotations

import asyncio
import fnmatch
import hashlib
import json
import logging
import shutil
import sys
from collections.abc import AsyncIterator, Callable
from pathlib import Path
from typing import TYPE_CHECKING

import watchfiles
from aiohttp import web

from build_runner.config import BuildConfig
from build_runner.engine import BuildEngine, BuildResult, BuildStatus, WatchHandle

if TYPE_CHECKING:  # pragma: no cover
    from build_runner.engine import RequestHandler
    from build_runner.options import SharedOptions

logger = logging.getLogger("build_runner.mirror")

MANIFEST_NAME = ".build_runner_manifest.json"
_CHUNK_SIZE = 64 * 1024


def _digest(path: Path, *, chunked: bool) -> str:
    h = hashlib.sha256()
    if chunked:
        with path.open("rb") as f:
            for block in iter(lambda: f.read(_CHUNK_SIZE), b""):
                h.update(block)
    else:
        h.update(path.read_bytes())
    return h.hexdigest()


class _SourceChangeFilter(watchfiles.DefaultFilter):
    """Default watchfiles filtering, minus anything the build itself writes."""

    def __init__(self, build_root: Path) -> None:
        super().__init__()
        self._build_root = build_root.resolve()

    def __call__(self, change: watchfiles.Change, path: str) -> bool:
        resolved = Path(path).resolve()
        if resolved == self._build_root or self._build_root in resolved.parents:
            return False
        return super().__call__(change, path)


def _ask_to_delete(conflicts: list[str]) -> bool:
    print(f"Found {len(conflicts)} output(s) not generated by this build:", file=sys.stderr)
    for rel in conflicts[:10]:
        print(f"  {rel}", file=sys.stderr)
    if len(conflicts) > 10:
        print(f"  ... and {len(conflicts) - 10} more", file=sys.stderr)
    try:
        answer = input("Delete these files? [y/N] ")
    except EOFError:
        return False
    return answer.strip().lower() in ("y", "yes")


class MirrorEngine(BuildEngine):
    def __init__(
        self,
        root: Path,
        config: BuildConfig,
        *,
        confirm_delete: Callable[[list[str]], bool] | None = None,
    ) -> None:
        self.root = root
        self.config = config
        self._confirm_delete = confirm_delete or _ask_to_delete

    @property
    def build_root(self) -> Path:
        return self.root / self.config.build_dir

    @property
    def manifest_path(self) -> Path:
        return self.build_root / MANIFEST_NAME

    def source_dirs(self) -> list[Path]:
        return [self.root / s for s in self.config.sources if (self.root / s).is_dir()]

    def _interactive(self, options: SharedOptions) -> bool:
        if options.assume_tty:
            return True
        return sys.stdin is not None and sys.stdin.isatty()

    def _excluded(self, rel: str) -> bool:
        return any(fnmatch.fnmatch(rel, pat) for pat in self.config.exclude)

    def _read_manifest(self) -> dict[str, str]:
        try:
            data = json.loads(self.manifest_path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(k): str(v) for k, v in data.items()}

    def _write_manifest(self, manifest: dict[str, str]) -> None:
        self.manifest_path.parent.mkdir(parents=True, exist_ok=True)
        self.manifest_path.write_text(
            json.dumps(dict(sorted(manifest.items())), indent=2) + "\n", encoding="utf-8"
        )

    def _plan(self) -> tuple[dict[str, Path], list[str]]:
        planned: dict[str, Path] = {}
        severe: list[str] = []
        build_dir = Path(self.config.build_dir)
        for source in self.config.sources:
            src_dir = self.root / source
            if not src_dir.is_dir():
                severe.append(f"Source directory {source!r} does not exist.")
                continue
            for path in sorted(src_dir.rglob("*")):
                if not path.is_file():
                    continue
                rel = path.relative_to(self.root).as_posix()
                # A build dir nested in a source dir must not be mirrored into itself.
                if rel.startswith(build_dir.as_posix() + "/"):
                    continue
                if self._excluded(rel):
                    continue
                planned[rel] = path
        return planned, severe

    def build_sync(self, options: SharedOptions, output_dir: str | None = None) -> BuildResult:
        planned, severe = self._plan()
        for msg in severe:
            logger.error(msg)

        manifest = self._read_manifest()
        conflicts = sorted(
            rel for rel in planned if rel not in manifest and (self.build_root / rel).exists()
        )
        if conflicts:
            if options.delete_files_by_default:
                logger.info("Deleting %d conflicting output(s).", len(conflicts))
            elif self._interactive(options) and self._confirm_delete(conflicts):
                logger.info("Deleting %d conflicting output(s).", len(conflicts))
            else:
                return BuildResult(
                    status=BuildStatus.FAILURE,
                    errors=tuple(
                        f"Conflicting output {rel} was not generated by this build; "
                        "rerun with --delete-conflicting-outputs to replace it."
                        for rel in conflicts
                    ),
                )
            for rel in conflicts:
                (self.build_root / rel).unlink()

        chunked = options.low_resources_mode
        new_manifest: dict[str, str] = {}
        written: list[str] = []
        for rel, src in planned.items():
            digest = _digest(src, chunked=chunked)
            new_manifest[rel] = digest
            dest = self.build_root / rel
            if manifest.get(rel) == digest and dest.exists():
                continue
            dest.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(src, dest)
            written.append(rel)
            logger.debug("Wrote %s", rel)

        for rel in sorted(set(manifest) - set(new_manifest)):
            stale = self.build_root / rel
            if stale.exists():
                stale.unlink()
                logger.debug("Deleted stale output %s", rel)

        if new_manifest != manifest or not self.manifest_path.exists():
            self._write_manifest(new_manifest)

        if output_dir is not None:
            self._merge_into(Path(output_dir), new_manifest)

        if severe and options.fail_on_severe:
            return BuildResult(
                status=BuildStatus.FAILURE, outputs=tuple(written), errors=tuple(severe)
            )
        return BuildResult(status=BuildStatus.SUCCESS, outputs=tuple(written))

    def _merge_into(self, output_dir: Path, manifest: dict[str, str]) -> None:
        out = output_dir.resolve()
        if out == self.build_root.resolve():
            return
        out.mkdir(parents=True, exist_ok=True)
        for rel in manifest:
            dest = out / rel
            dest.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(self.build_root / rel, dest)
        logger.info("Merged %d output(s) into %s", len(manifest), out)

    async def build(
        self, options: SharedOptions, *, output_dir: str | None = None
    ) -> BuildResult:
        return await asyncio.to_thread(self.build_sync, options, output_dir)

    async def watch(self, options: SharedOptions) -> MirrorWatchHandle:
        return MirrorWatchHandle(self, options)


class MirrorWatchHandle(WatchHandle):
    def __init__(self, engine: MirrorEngine, options: SharedOptions) -> None:
        self._engine = engine
        self._options = options
        self._stop = asyncio.Event()
        self._idle = asyncio.Event()
        self._first = asyncio.ensure_future(self._run_build())

    async def _run_build(self) -> BuildResult:
        self._idle.clear()
        try:
            return await self._engine.build(self._options, output_dir=self._options.output_dir)
        finally:
            self._idle.set()

    @property
    def current_build(self) -> asyncio.Future[BuildResult]:
        return self._first

    @property
    def build_results(self) -> AsyncIterator[BuildResult]:
        return self._rebuilds()

    def stop(self) -> None:
        self._stop.set()

    async def _rebuilds(self) -> AsyncIterator[BuildResult]:
        await self._first
        paths = self._engine.source_dirs()
        if not paths:
            logger.warning("No existing source directories to watch.")
            return
        dirs_word = "directory" if len(paths) == 1 else "directories"
        logger.info("Watching %d %s for changes.", len(paths), dirs_word)
        async for changes in watchfiles.awatch(
            *paths,
            watch_filter=_SourceChangeFilter(self._engine.build_root),
            stop_event=self._stop,
        ):
            logger.debug("%d change(s) detected", len(changes))
            yield await self._run_build()

    def handler_for(self, directory: str) -> RequestHandler:
        base = (self._engine.build_root / directory).resolve()

        async def handle(request: web.Request) -> web.StreamResponse:
            if request.method not in ("GET", "HEAD"):
                raise web.HTTPMethodNotAllowed(request.method, ["GET", "HEAD"])
            # Never serve half-written outputs.
            await self._idle.wait()
            target = (base / request.match_info.get("tail", "")).resolve()
            if target != base and base not in target.parents:
                raise web.HTTPForbidden()
            if target.is_dir():
                target = target / "index.html"
            if not target.is_file():
                raise web.HTTPNotFound()
            return web.FileResponse(target)

        return handle
