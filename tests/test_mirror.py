"""Tests for the default mirror engine."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest
from aiohttp import web
from aiohttp.test_utils import make_mocked_request

from build_runner.config import BuildConfig
from build_runner.engine import BuildStatus
from build_runner.mirror import MANIFEST_NAME, MirrorEngine
from build_runner.options import SharedOptions


def _write(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def _engine(root: Path, **config: object) -> MirrorEngine:
    cfg = BuildConfig(**{"sources": ["web"], **config})  # type: ignore[arg-type]
    return MirrorEngine(root, cfg, confirm_delete=lambda conflicts: False)


def test_build_copies_sources_into_build_dir(tmp_path: Path) -> None:
    _write(tmp_path / "web" / "index.html", "<h1>hi</h1>")
    _write(tmp_path / "web" / "js" / "app.js", "console.log(1)")
    engine = _engine(tmp_path)

    result = asyncio.run(engine.build(SharedOptions()))

    assert result.status is BuildStatus.SUCCESS
    assert sorted(result.outputs) == ["web/index.html", "web/js/app.js"]
    assert (tmp_path / ".build" / "web" / "js" / "app.js").read_text() == "console.log(1)"
    assert (tmp_path / ".build" / MANIFEST_NAME).exists()


def test_second_build_only_rewrites_changed_files(tmp_path: Path) -> None:
    _write(tmp_path / "web" / "a.txt", "a")
    _write(tmp_path / "web" / "b.txt", "b")
    engine = _engine(tmp_path)
    engine.build_sync(SharedOptions())

    _write(tmp_path / "web" / "b.txt", "b2")
    result = engine.build_sync(SharedOptions(low_resources_mode=True))

    assert result.outputs == ("web/b.txt",)
    assert (tmp_path / ".build" / "web" / "b.txt").read_text() == "b2"


def test_removed_sources_delete_stale_outputs(tmp_path: Path) -> None:
    _write(tmp_path / "web" / "a.txt", "a")
    _write(tmp_path / "web" / "gone.txt", "x")
    engine = _engine(tmp_path)
    engine.build_sync(SharedOptions())

    (tmp_path / "web" / "gone.txt").unlink()
    engine.build_sync(SharedOptions())

    assert not (tmp_path / ".build" / "web" / "gone.txt").exists()
    assert (tmp_path / ".build" / "web" / "a.txt").exists()


def test_excluded_files_are_not_copied(tmp_path: Path) -> None:
    _write(tmp_path / "web" / "a.txt", "a")
    _write(tmp_path / "web" / "a.tmp", "tmp")
    engine = _engine(tmp_path, exclude=["*.tmp"])

    result = engine.build_sync(SharedOptions())

    assert result.outputs == ("web/a.txt",)


def test_missing_source_is_severe_only_with_fail_on_severe(tmp_path: Path) -> None:
    _write(tmp_path / "web" / "a.txt", "a")
    engine = _engine(tmp_path, sources=["web", "lib"])

    assert engine.build_sync(SharedOptions()).status is BuildStatus.SUCCESS

    result = engine.build_sync(SharedOptions(fail_on_severe=True))
    assert result.status is BuildStatus.FAILURE
    assert any("'lib'" in e for e in result.errors)


def test_conflicting_outputs_fail_unless_deleting_by_default(tmp_path: Path) -> None:
    _write(tmp_path / "web" / "a.txt", "new")
    _write(tmp_path / ".build" / "web" / "a.txt", "foreign")
    engine = _engine(tmp_path)

    result = engine.build_sync(SharedOptions())
    assert result.status is BuildStatus.FAILURE
    assert "--delete-conflicting-outputs" in result.errors[0]
    assert (tmp_path / ".build" / "web" / "a.txt").read_text() == "foreign"

    result = engine.build_sync(SharedOptions(delete_files_by_default=True))
    assert result.status is BuildStatus.SUCCESS
    assert (tmp_path / ".build" / "web" / "a.txt").read_text() == "new"


def test_assume_tty_asks_before_deleting_conflicts(tmp_path: Path) -> None:
    _write(tmp_path / "web" / "a.txt", "new")
    _write(tmp_path / ".build" / "web" / "a.txt", "foreign")
    asked: list[list[str]] = []

    def confirm(conflicts: list[str]) -> bool:
        asked.append(conflicts)
        return True

    engine = MirrorEngine(tmp_path, BuildConfig(sources=["web"]), confirm_delete=confirm)
    result = engine.build_sync(SharedOptions(assume_tty=True))

    assert asked == [["web/a.txt"]]
    assert result.status is BuildStatus.SUCCESS


def test_output_dir_receives_merged_outputs(tmp_path: Path) -> None:
    _write(tmp_path / "web" / "index.html", "x")
    out = tmp_path / "merged"
    engine = _engine(tmp_path)

    asyncio.run(engine.build(SharedOptions(), output_dir=str(out)))

    assert (out / "web" / "index.html").read_text() == "x"
    assert not (out / MANIFEST_NAME).exists()


def test_watch_first_build_and_handler(tmp_path: Path) -> None:
    _write(tmp_path / "web" / "index.html", "<p>home</p>")
    _write(tmp_path / "web" / "docs" / "index.html", "<p>docs</p>")
    engine = _engine(tmp_path)

    async def run() -> None:
        handle = await engine.watch(SharedOptions())
        first = await handle.current_build
        assert first.status is BuildStatus.SUCCESS

        handler = handle.handler_for("web")
        resp = await handler(make_mocked_request("GET", "/", match_info={"tail": ""}))
        assert isinstance(resp, web.FileResponse)

        resp = await handler(make_mocked_request("GET", "/docs", match_info={"tail": "docs"}))
        assert isinstance(resp, web.FileResponse)

        with pytest.raises(web.HTTPNotFound):
            await handler(make_mocked_request("GET", "/x", match_info={"tail": "missing.js"}))
        with pytest.raises(web.HTTPForbidden):
            await handler(
                make_mocked_request("GET", "/", match_info={"tail": "../../web/index.html"})
            )
        with pytest.raises(web.HTTPMethodNotAllowed):
            await handler(make_mocked_request("POST", "/", match_info={"tail": ""}))

    asyncio.run(run())


def test_watch_stream_ends_immediately_without_sources(tmp_path: Path) -> None:
    engine = _engine(tmp_path, sources=["nope"])

    async def run() -> list[object]:
        handle = await engine.watch(SharedOptions())
        await handle.current_build
        return [r async for r in handle.build_results]

    assert asyncio.run(run()) == []


def test_watch_rebuilds_on_change(tmp_path: Path) -> None:
    _write(tmp_path / "web" / "a.txt", "a")
    engine = _engine(tmp_path)

    async def run() -> tuple[str, ...]:
        handle = await engine.watch(SharedOptions())
        await handle.current_build
        results = handle.build_results

        async def touch() -> None:
            await asyncio.sleep(0.5)
            _write(tmp_path / "web" / "b.txt", "b")

        toucher = asyncio.create_task(touch())
        result = await asyncio.wait_for(anext(results), timeout=20)
        handle.stop()
        await toucher
        return result.outputs

    assert asyncio.run(run()) == ("web/b.txt",)


def test_nested_build_dir_does_not_retrigger_watch(tmp_path: Path) -> None:
    _write(tmp_path / "web" / "a.txt", "a")
    engine = _engine(tmp_path, build_dir="web/.build")

    async def run() -> list[tuple[str, ...]]:
        handle = await engine.watch(SharedOptions())
        await handle.current_build
        seen: list[tuple[str, ...]] = []

        async def consume() -> None:
            async for result in handle.build_results:
                seen.append(result.outputs)

        consumer = asyncio.create_task(consume())
        await asyncio.sleep(0.5)
        _write(tmp_path / "web" / "b.txt", "b")
        # Long enough for a second debounce window to fire if outputs were watched.
        await asyncio.sleep(5)
        handle.stop()
        await asyncio.wait_for(consumer, timeout=10)
        return seen

    assert asyncio.run(run()) == [("web/b.txt",)]
    assert (tmp_path / "web" / ".build" / "web" / "b.txt").read_text() == "b"


def test_unchanged_build_leaves_manifest_alone(tmp_path: Path) -> None:
    _write(tmp_path / "web" / "a.txt", "a")
    engine = _engine(tmp_path)
    engine.build_sync(SharedOptions())
    before = engine.manifest_path.stat().st_mtime_ns

    result = engine.build_sync(SharedOptions())

    assert result.outputs == ()
    assert engine.manifest_path.stat().st_mtime_ns == before
