#
# src/gest/workspace.py
#
"""
Locates the Go module root and discovers its packages via `go list`.
"""

import re
import subprocess
from collections.abc import Iterable, Sequence
from pathlib import Path

import structlog
from attrs import define, field

from gest.exceptions import WorkspaceError

log = structlog.get_logger("workspace")

CACHE_DIR_NAME = ".gest"
CACHE_FILE_NAME = "state.json"
GO_LIST_FORMAT = "{{.ImportPath}}|{{.Dir}}"
WATCHED_FILE_NAMES = frozenset({"go.mod", "go.sum"})


@define(frozen=True, slots=True)
class PackageInfo:
    """One package of the module: its import path and source directory."""

    import_path: str
    dir: Path = field(converter=Path)


def find_repo_root(start: Path) -> Path | None:
    """Walks up from `start` to the nearest directory containing `go.mod`."""
    current = start.resolve()
    for candidate in (current, *current.parents):
        if (candidate / "go.mod").exists():
            return candidate
    return None


def cache_dir(root: Path) -> Path:
    return root / CACHE_DIR_NAME


def cache_file(root: Path) -> Path:
    return cache_dir(root) / CACHE_FILE_NAME


def ensure_cache_dir(root: Path) -> Path:
    directory = cache_dir(root)
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise WorkspaceError("Cannot create cache directory", root=str(root), details=e) from e
    return directory


def parse_go_list_output(output: str) -> list[PackageInfo]:
    """Parses `ImportPath|Dir` lines, skipping malformed ones; longest directory first."""
    packages: list[PackageInfo] = []
    for line in output.splitlines():
        import_path, sep, directory = line.partition("|")
        import_path, directory = import_path.strip(), directory.strip()
        if not sep or not import_path or not directory:
            continue
        packages.append(PackageInfo(import_path, Path(directory)))
    packages.sort(key=lambda package: len(str(package.dir)), reverse=True)
    return packages


def list_packages(root: Path) -> list[PackageInfo]:
    """
    Lists every package of the module rooted at `root`.

    Raises:
        WorkspaceError: if `go list` cannot be run or exits unsuccessfully.
    """
    command = ["go", "list", "-f", GO_LIST_FORMAT, "./..."]
    log.debug("Listing packages", root=str(root), command=" ".join(command))
    try:
        result = subprocess.run(command, cwd=root, capture_output=True, text=True, check=False)
    except OSError as e:
        raise WorkspaceError("Failed to run go list", root=str(root), details=e) from e

    if result.returncode != 0:
        raise WorkspaceError(f"go list failed: {result.stderr.strip()}", root=str(root))

    packages = parse_go_list_output(result.stdout)
    log.info("Discovered packages", root=str(root), count=len(packages))
    return packages


def filter_packages(packages: Iterable[PackageInfo], pattern: str | re.Pattern | None) -> list[PackageInfo]:
    """Keeps packages whose import path matches `pattern` anywhere; no pattern keeps all."""
    if pattern is None:
        return list(packages)
    regex = re.compile(pattern) if isinstance(pattern, str) else pattern
    return [package for package in packages if regex.search(package.import_path)]


def package_for_path(packages: Sequence[PackageInfo], path: Path) -> PackageInfo | None:
    """
    Maps a file path to the package directory containing it.

    `packages` must be sorted longest directory first, as `list_packages`
    returns them, so the first hit is the longest matching prefix. Paths that
    no longer exist resolve to None.
    """
    try:
        resolved = path.resolve(strict=True)
    except OSError:
        return None
    for package in packages:
        if resolved.is_relative_to(package.dir):
            return package
    return None


def is_watched_file(path: Path) -> bool:
    """True for Go sources and module manifests."""
    return path.suffix == ".go" or path.name in WATCHED_FILE_NAMES

# 🔼⚙️
