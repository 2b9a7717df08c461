"""Adversarial tests — hostile paths and data must never escape the storage roots."""

from __future__ import annotations

import os

import pytest

from routelog.core.errors import InvalidPathError, PathTraversalError

from conftest import FILE_TS

DAY = "2024-03-05T08:00:00Z"


def _all_files(root):
    return [p for p in root.rglob("*") if p.is_file()]


class TestTraversalThroughData:
    """Placeholder values are reduced to one safe segment."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "tenant", ["../../etc", "..", "a/../../b", "..\\..\\windows", "/abs/path", "~root"]
    )
    async def test_hostile_tenant_stays_inside_root(self, make_pipeline, tmp_path, tenant):
        pipeline = make_pipeline()
        await pipeline.write_log(flag="user_login", data={"tenant": tenant, "date": DAY})

        logs = (tmp_path / "logs").resolve()
        written = _all_files(tmp_path)
        assert written
        for path in written:
            resolved = path.resolve()
            assert logs in resolved.parents or (tmp_path / "fallback").resolve() in resolved.parents

    @pytest.mark.asyncio
    async def test_hostile_action_is_sanitized(self, make_pipeline, tmp_path):
        pipeline = make_pipeline()
        await pipeline.write_log(flag="admin_action", action="../../../tmp/pwn")
        written = _all_files(tmp_path / "logs")
        assert written
        assert all((tmp_path / "logs").resolve() in p.resolve().parents for p in written)


class TestTraversalThroughExplicitPaths:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("rel", ["../escape.log", "a/../../escape.log", "a\\..\\..\\x.log"])
    async def test_parent_segments_rejected(self, make_pipeline, rel):
        with pytest.raises(PathTraversalError):
            await make_pipeline().write_to_storage(rel, "x")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("rel", ["/etc/passwd", "C:/Windows/x.log", "./.", ""])
    async def test_absolute_and_dot_paths_rejected(self, make_pipeline, rel):
        with pytest.raises(InvalidPathError):
            await make_pipeline().write_to_storage(rel, "x")

    @pytest.mark.asyncio
    async def test_critical_writes_share_the_gate(self, make_pipeline):
        with pytest.raises(PathTraversalError):
            await make_pipeline().write_critical_log_file("../x.log", "x", FILE_TS)

    @pytest.mark.asyncio
    async def test_symlink_escape_blocked(self, make_pipeline, tmp_path, context):
        outside = tmp_path / "outside"
        outside.mkdir()
        (tmp_path / "logs").mkdir()
        os.symlink(outside, tmp_path / "logs" / "evil")

        with pytest.raises(PathTraversalError):
            await make_pipeline().write_to_storage("evil/x.log", "payload")
        assert list(outside.iterdir()) == []
        assert context.errors.counters["path_traversal"] == 1


class TestReservedKeys:

    @pytest.mark.asyncio
    async def test_reserved_keys_never_become_placeholders(self, make_pipeline, tmp_path, context):
        routing_table = {
            "x": {"logs": [{"flag": "proto", "path": "p/{constructor}.log"}]},
        }
        pipeline = make_pipeline(routing_table=routing_table)
        await pipeline.write_log(flag="proto", data={"constructor": "evil", "__proto__": "evil"})

        assert not (tmp_path / "logs" / "p").exists()
        assert context.errors.counters["placeholder_key"] >= 2
        assert list((tmp_path / "fallback" / "missing_path").rglob("*.log"))

    @pytest.mark.asyncio
    async def test_reserved_keys_never_encrypted(self, make_pipeline, tmp_path):
        pipeline = make_pipeline()
        await pipeline.write_log(
            flag="heartbeat", data={"__proto__": "visible"}, encryptFields=["__proto__"]
        )
        content = next((tmp_path / "logs" / "system").glob("heartbeat_*.log")).read_text("utf-8")
        assert "visible" in content
