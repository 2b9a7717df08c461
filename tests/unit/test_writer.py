"""Unit tests for DurableWriter — appends, rotation, retry, and fallbacks."""

from __future__ import annotations

import errno
import json

import pytest

from routelog.core.errors import InvalidPathError, InvalidPayloadError, PathTraversalError
from routelog.storage.writer import DurableWriter

from conftest import FILE_TS, no_sleep

ENTRY = {"schemaVersion": "1.0", "timestamp": "2024-03-05T12:30:45.123+00:00", "flag": "heartbeat"}


def _fail_under(writer, directory, exc_factory):
    """Patch ``_append`` to raise for any file beneath *directory*."""
    original = writer._append

    async def _append(file_path, content):
        if directory.resolve() in file_path.resolve().parents:
            raise exc_factory()
        await original(file_path, content)

    writer._append = _append


def _lines(path):
    return path.read_text(encoding="utf-8").splitlines()


# ---------------------------------------------------------------------------
# Primary writes
# ---------------------------------------------------------------------------


class TestPersist:

    @pytest.mark.asyncio
    async def test_appends_newline_delimited(self, writer, tmp_path):
        await writer.persist("app/events.log", ENTRY)
        await writer.persist("app/events.log", "plain line")
        target = tmp_path / "logs" / "app" / "events.log"
        lines = _lines(target)
        assert json.loads(lines[0])["flag"] == "heartbeat"
        assert lines[1] == "plain line"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", ["", "   ", {"flag": "x"}, 42, None])
    async def test_invalid_payload(self, writer, payload):
        with pytest.raises(InvalidPayloadError):
            await writer.persist("app.log", payload)

    @pytest.mark.asyncio
    async def test_unsafe_paths_rejected_before_disk(self, writer, tmp_path):
        with pytest.raises(PathTraversalError):
            await writer.persist("../escape.log", ENTRY)
        with pytest.raises(InvalidPathError):
            await writer.persist("/etc/passwd", ENTRY)
        with pytest.raises(InvalidPathError):
            await writer.persist("", ENTRY)
        assert not (tmp_path / "logs").exists()

    def test_path_resolution_is_cached(self, writer, context, tmp_path):
        first = writer.resolve_within_root(writer.root, "a/b.log")
        assert writer.resolve_within_root(writer.root, "a/b.log") is first
        assert f"{writer.root}::a/b.log" in context.path_cache
        assert first.full == (tmp_path / "logs" / "a" / "b.log").resolve()


class TestRotation:

    @pytest.mark.asyncio
    async def test_rotates_at_size_cap(self, tmp_path, context, clock):
        writer = DurableWriter(
            tmp_path / "logs", tmp_path / "fallback", context,
            clock=clock, sleep=no_sleep, max_file_bytes=100,
        )
        target = tmp_path / "logs" / "app.log"
        target.parent.mkdir(parents=True)
        target.write_text("x" * 100, encoding="utf-8")

        await writer.persist("app.log", "fresh")

        rotated = tmp_path / "logs" / f"app_{FILE_TS}.log"
        assert rotated.read_text(encoding="utf-8") == "x" * 100
        assert _lines(target) == ["fresh"]

    @pytest.mark.asyncio
    async def test_small_file_not_rotated(self, writer, tmp_path):
        await writer.persist("app.log", "one")
        assert await writer.rotate_if_needed(tmp_path / "logs" / "app.log") is None

    @pytest.mark.asyncio
    async def test_missing_file_is_not_an_error(self, writer, tmp_path):
        assert await writer.rotate_if_needed(tmp_path / "nope.log") is None


class TestRetry:

    @pytest.mark.asyncio
    async def test_backoff_between_attempts(self, tmp_path, context, clock):
        delays: list[float] = []

        async def record_sleep(seconds):
            delays.append(seconds)

        writer = DurableWriter(
            tmp_path / "logs", tmp_path / "fallback", context, clock=clock, sleep=record_sleep
        )
        calls = 0
        original = writer._append

        async def flaky(file_path, content):
            nonlocal calls
            calls += 1
            if calls == 1:
                raise OSError(errno.EIO, "transient")
            await original(file_path, content)

        writer._append = flaky
        await writer.persist("app.log", "ok")

        assert calls == 2
        assert delays == [pytest.approx(0.1)]
        assert _lines(tmp_path / "logs" / "app.log") == ["ok"]

    @pytest.mark.asyncio
    async def test_single_attempt_reraises_without_backoff(self, tmp_path, context, clock):
        delays: list[float] = []

        async def record_sleep(seconds):
            delays.append(seconds)

        writer = DurableWriter(
            tmp_path / "logs", tmp_path / "fallback", context,
            clock=clock, sleep=record_sleep, attempts=1,
        )
        failure = OSError(errno.EIO, "bad sector")
        _fail_under(writer, tmp_path / "logs", lambda: failure)
        (tmp_path / "logs").mkdir()

        with pytest.raises(OSError) as excinfo:
            await writer.write_with_retry(tmp_path / "logs" / "app.log", "x\n")

        assert excinfo.value is failure
        assert delays == []
        assert context.errors.counters["write_retry"] == 1


# ---------------------------------------------------------------------------
# Fallbacks
# ---------------------------------------------------------------------------


class TestFallbacks:

    @pytest.mark.asyncio
    async def test_write_errors_record(self, writer, context, tmp_path):
        _fail_under(writer, tmp_path / "logs", lambda: OSError(errno.EIO, "disk gone"))
        await writer.persist("app/events.log", ENTRY)

        record_file = tmp_path / "fallback" / "write_errors" / "app" / f"events_{FILE_TS}.log"
        record = json.loads(_lines(record_file)[0])
        assert record["errorCode"] == "E_WRITE_FAIL"
        assert record["env"] == "test"
        assert record["attemptedPath"].endswith("events.log")
        assert "entryCount" not in record
        assert context.errors.counters["write_retry"] == 1

    @pytest.mark.asyncio
    async def test_permission_failure_dropped_silently(self, writer, context, tmp_path):
        _fail_under(writer, tmp_path / "logs", lambda: PermissionError(errno.EACCES, "denied"))
        await writer.persist("app/events.log", ENTRY)

        assert context.errors.permission_drops == 1
        assert not (tmp_path / "fallback").exists()

    @pytest.mark.asyncio
    async def test_fallback_failure_propagates(self, writer, tmp_path):
        _fail_under(writer, tmp_path, lambda: OSError(errno.EIO, "everything broken"))
        with pytest.raises(OSError):
            await writer.persist("app/events.log", ENTRY)

    @pytest.mark.asyncio
    async def test_fallback_permission_failure_dropped(self, writer, context, tmp_path):
        _fail_under(writer, tmp_path / "logs", lambda: OSError(errno.EIO, "disk gone"))
        _fail_under(writer, tmp_path / "fallback", lambda: PermissionError(errno.EPERM, "no"))
        await writer.persist("app/events.log", ENTRY)
        assert context.errors.permission_drops == 1

    @pytest.mark.asyncio
    async def test_fallback_entry_written(self, writer, tmp_path):
        path = await writer.write_fallback_entry("slack", "a/b_1.log", "payload", stage="test")
        assert path == (tmp_path / "fallback" / "slack" / "a" / "b_1.log").resolve()
        assert _lines(path) == ["payload"]


class TestBatch:

    @pytest.mark.asyncio
    async def test_single_multi_line_write(self, writer, tmp_path):
        await writer.persist_batch("batch.log", [ENTRY, {**ENTRY, "flag": "second"}])
        lines = _lines(tmp_path / "logs" / "batch.log")
        assert [json.loads(line)["flag"] for line in lines] == ["heartbeat", "second"]

    @pytest.mark.asyncio
    async def test_empty_batch_writes_nothing(self, writer, tmp_path):
        await writer.persist_batch("batch.log", [])
        assert not (tmp_path / "logs" / "batch.log").exists()

    @pytest.mark.asyncio
    async def test_non_list_rejected(self, writer):
        with pytest.raises(InvalidPayloadError):
            await writer.persist_batch("batch.log", ENTRY)

    @pytest.mark.asyncio
    async def test_batch_fallback_carries_entry_count(self, writer, tmp_path):
        _fail_under(writer, tmp_path / "logs", lambda: OSError(errno.EIO, "disk gone"))
        await writer.persist_batch("batch.log", [ENTRY, ENTRY, ENTRY])

        record_file = tmp_path / "fallback" / "batch_write_errors" / f"batch_{FILE_TS}.log"
        record = json.loads(_lines(record_file)[0])
        assert record["errorCode"] == "E_BATCH_WRITE_FAIL"
        assert record["entryCount"] == 3
