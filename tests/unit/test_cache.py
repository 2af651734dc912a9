# tests/unit/test_cache.py

"""Tests for the persisted failing/selected sets and the package list cache."""

import json
import os
from datetime import timedelta
from pathlib import Path

import pytest

from gest.cache import (
    CacheState,
    PackageCache,
    cache_from_json,
    cached_packages,
    load_cache,
    save_cache,
    update_package_cache,
)
from gest.exceptions import CacheError
from gest.state import TestId
from gest.workspace import PackageInfo

TTL = timedelta(minutes=10)


def test_save_then_load(tmp_path: Path) -> None:
    path = tmp_path / ".gest" / "state.json"
    state = CacheState(
        failing=[TestId("p", "TestA"), TestId("p", "TestA/sub")],
        selected=[TestId("q", "TestB")],
        package_cache=PackageCache(1.5, 100.0, [PackageInfo("example.com/m", "/src/m")]),
    )

    save_cache(path, state)
    loaded = load_cache(path)

    assert loaded == state
    raw = json.loads(path.read_text())
    assert raw["failing"][0] == {"package": "p", "name": "TestA"}


def test_missing_file_is_empty(tmp_path: Path) -> None:
    assert load_cache(tmp_path / "missing.json") == CacheState()


@pytest.mark.parametrize(
    "content",
    ["{not json", "[]", '{"failing": "TestA"}', '{"failing": [{"package": 1}]}', '{"package_cache": {"packages": []}}'],
)
def test_corrupt_file_is_empty(tmp_path: Path, content: str) -> None:
    path = tmp_path / "state.json"
    path.write_text(content)
    assert load_cache(path) == CacheState()


def test_missing_keys_default() -> None:
    assert cache_from_json({}) == CacheState()


def test_save_failure_raises(tmp_path: Path) -> None:
    blocker = tmp_path / "file"
    blocker.write_text("")
    with pytest.raises(CacheError, match="Cannot write cache file"):
        save_cache(blocker / "state.json", CacheState())


class TestPackageCache:
    def test_fresh_cache_is_used(self, go_module: Path) -> None:
        state = CacheState()
        packages = [PackageInfo("example.com/m", go_module)]
        update_package_cache(go_module, state, packages)

        assert cached_packages(go_module, state, TTL) == packages

    def test_expired_cache_is_ignored(self, go_module: Path) -> None:
        state = CacheState()
        update_package_cache(go_module, state, [PackageInfo("example.com/m", go_module)])
        later = state.package_cache.created_at + TTL.total_seconds() + 1

        assert cached_packages(go_module, state, TTL, now=later) is None

    def test_go_mod_change_invalidates(self, go_module: Path) -> None:
        state = CacheState()
        update_package_cache(go_module, state, [PackageInfo("example.com/m", go_module)])
        mtime = state.package_cache.go_mod_mtime
        os.utime(go_module / "go.mod", (mtime + 10, mtime + 10))

        assert cached_packages(go_module, state, TTL) is None

    def test_no_cache(self, go_module: Path) -> None:
        assert cached_packages(go_module, CacheState(), TTL) is None

# 🔼⚙️
