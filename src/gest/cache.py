#
# src/gest/cache.py
#
"""
Persistent state kept between sessions in `<root>/.gest/state.json`: the
failing and selected test sets plus a time-limited copy of the package list.
"""

import json
import time
from datetime import timedelta
from pathlib import Path
from typing import Any

import structlog
from attrs import define, field

from gest.exceptions import CacheError
from gest.state import TestId
from gest.workspace import PackageInfo

log = structlog.get_logger("cache")


@define(slots=True)
class PackageCache:
    go_mod_mtime: float | None
    created_at: float  # time.time()
    packages: list[PackageInfo] = field(factory=list)


@define(slots=True)
class CacheState:
    failing: list[TestId] = field(factory=list)
    selected: list[TestId] = field(factory=list)
    package_cache: PackageCache | None = field(default=None)


# --- (de)serialization ---
def _test_id_to_json(test_id: TestId) -> dict[str, str]:
    return {"package": test_id.package, "name": test_id.name}


def _test_ids_from_json(raw: Any) -> list[TestId]:
    if not isinstance(raw, list):
        raise CacheError("expected a list of tests")
    tests = []
    for entry in raw:
        if not isinstance(entry, dict):
            raise CacheError(f"malformed test entry: {entry!r}")
        if not isinstance(entry.get("package"), str) or not isinstance(entry.get("name"), str):
            raise CacheError(f"malformed test entry: {entry!r}")
        tests.append(TestId(entry["package"], entry["name"]))
    return tests


def _package_cache_from_json(raw: Any) -> PackageCache | None:
    if raw is None:
        return None
    try:
        return PackageCache(
            go_mod_mtime=raw.get("go_mod_mtime"),
            created_at=float(raw["created_at"]),
            packages=[PackageInfo(item["import_path"], item["dir"]) for item in raw.get("packages", [])],
        )
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        raise CacheError(f"malformed package cache: {e}") from e


def cache_to_json(state: CacheState) -> dict[str, Any]:
    package_cache = None
    if state.package_cache is not None:
        package_cache = {
            "go_mod_mtime": state.package_cache.go_mod_mtime,
            "created_at": state.package_cache.created_at,
            "packages": [
                {"import_path": package.import_path, "dir": str(package.dir)}
                for package in state.package_cache.packages
            ],
        }
    return {
        "failing": [_test_id_to_json(test_id) for test_id in state.failing],
        "selected": [_test_id_to_json(test_id) for test_id in state.selected],
        "package_cache": package_cache,
    }


def cache_from_json(raw: Any) -> CacheState:
    if not isinstance(raw, dict):
        raise CacheError("cache root must be an object")
    return CacheState(
        failing=_test_ids_from_json(raw.get("failing", [])),
        selected=_test_ids_from_json(raw.get("selected", [])),
        package_cache=_package_cache_from_json(raw.get("package_cache")),
    )


# --- load / save ---
def load_cache(path: Path) -> CacheState:
    """
    Reads the cache file. Never fails: a missing, unreadable or corrupt
    cache yields an empty state.
    """
    if not path.exists():
        log.debug("No cache file, starting fresh", path=str(path))
        return CacheState()
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
        state = cache_from_json(raw)
    except (OSError, ValueError, CacheError) as e:
        log.warning("Ignoring unreadable cache file", path=str(path), error=str(e))
        return CacheState()
    log.debug("Cache loaded", path=str(path), failing=len(state.failing), selected=len(state.selected))
    return state


def save_cache(path: Path, state: CacheState) -> None:
    """
    Writes the cache file, creating its directory.

    Raises:
        CacheError: if the file cannot be written.
    """
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(cache_to_json(state), indent=2), encoding="utf-8")
    except OSError as e:
        raise CacheError(f"Cannot write cache file '{path}': {e}") from e
    log.debug("Cache saved", path=str(path))


# --- package list caching ---
def go_mod_mtime(root: Path) -> float | None:
    try:
        return (root / "go.mod").stat().st_mtime
    except OSError:
        return None


def cached_packages(
    root: Path, state: CacheState, ttl: timedelta, now: float | None = None
) -> list[PackageInfo] | None:
    """Returns the cached package list if it is younger than `ttl` and go.mod is unchanged."""
    package_cache = state.package_cache
    if package_cache is None:
        return None
    now = time.time() if now is None else now
    age = now - package_cache.created_at
    if age < 0 or age >= ttl.total_seconds():
        log.debug("Package cache expired", age=round(age, 1))
        return None
    if package_cache.go_mod_mtime != go_mod_mtime(root):
        log.debug("Package cache invalidated by go.mod change")
        return None
    return list(package_cache.packages)


def update_package_cache(root: Path, state: CacheState, packages: list[PackageInfo]) -> None:
    state.package_cache = PackageCache(
        go_mod_mtime=go_mod_mtime(root),
        created_at=time.time(),
        packages=list(packages),
    )

# 🔼⚙️
