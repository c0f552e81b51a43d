"""
Resolution of the .context workspace root.

Strategies run in a fixed order and the first hit wins:

1. parameter: the start path is itself the .context directory
2. direct-subdir: the start path contains .context
3. manifest-config: package.json / pyproject.toml names an explicit path
4. upward-traversal: an ancestor (bounded hops) contains .context
5. git-root: the nearest .git marker is taken as the project root
6. cwd-fallback: the start path is taken as the project root

Strategies 2-5 share one wall-clock budget. When it runs out the search is
abandoned and the fallback is returned with a warning; resolve() never raises
for a root that cannot be found.
"""

import json
import logging
import os
import time
import tomllib
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from structure_validator import StructureValidation, validate_structure

logger = logging.getLogger(__name__)

DEFAULT_CONTEXT_DIR = ".context"
DEFAULT_MAX_TRAVERSAL = 10
DEFAULT_TIMEOUT_MS = 5000
GIT_MAX_HOPS = 20
MANIFEST_KEY = "ai-context"


class FoundBy(str, Enum):
    PARAMETER = "parameter"
    DIRECT_SUBDIR = "direct-subdir"
    MANIFEST_CONFIG = "manifest-config"
    UPWARD_TRAVERSAL = "upward-traversal"
    GIT_ROOT = "git-root"
    CWD_FALLBACK = "cwd-fallback"


class ManifestError(ValueError):
    """Raised when a manifest's ai-context section has the wrong shape."""


class _SearchTimeout(Exception):
    pass


@dataclass(frozen=True)
class ManifestConfig:
    """The ai-context section of a project manifest."""

    source: Path
    context_path: str | None = None

    def resolved_path(self) -> Path | None:
        if self.context_path is None:
            return None
        path = Path(self.context_path)
        if not path.is_absolute():
            path = self.source.parent / path
        return path.resolve()


@dataclass(frozen=True)
class ResolutionRequest:
    start_path: str | Path | None = None
    max_traversal_depth: int = DEFAULT_MAX_TRAVERSAL
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    validate: bool = True
    check_manifest: bool = True
    context_dir_name: str = DEFAULT_CONTEXT_DIR

    def __post_init__(self) -> None:
        if self.max_traversal_depth < 0:
            raise ValueError(f"max_traversal_depth must be >= 0, got {self.max_traversal_depth}")
        if self.timeout_ms < 0:
            raise ValueError(f"timeout_ms must be >= 0, got {self.timeout_ms}")


@dataclass(frozen=True)
class ResolutionResult:
    root_path: Path
    project_root: Path
    exists: bool
    found_by: FoundBy
    is_valid: bool | None = None
    validation: StructureValidation | None = None
    warning: str | None = None

    def to_dict(self) -> dict:
        return {
            "root_path": str(self.root_path),
            "project_root": str(self.project_root),
            "exists": self.exists,
            "found_by": self.found_by.value,
            "is_valid": self.is_valid,
            "validation": self.validation.to_dict() if self.validation else None,
            "warning": self.warning,
        }


class _Deadline:
    def __init__(self, timeout_ms: int, clock: Callable[[], float]) -> None:
        self._clock = clock
        self._expires = clock() + timeout_ms / 1000

    def check(self) -> None:
        if self._clock() >= self._expires:
            raise _SearchTimeout()


def _is_dir(path: Path) -> bool:
    try:
        return path.is_dir()
    except OSError:
        return False


def _is_file(path: Path) -> bool:
    try:
        return path.is_file()
    except OSError:
        return False


def _normalize_start(start_path: str | Path | None) -> Path:
    path = Path(start_path) if start_path is not None else Path.cwd()
    try:
        return path.resolve()
    except (OSError, RuntimeError):
        return Path(os.path.abspath(path))


def find_git_root(
    start: str | Path,
    max_hops: int = GIT_MAX_HOPS,
    deadline: _Deadline | None = None,
) -> Path | None:
    """Walk upward from start looking for a .git marker; None if not found."""
    current = _normalize_start(start)
    for _ in range(max_hops + 1):
        if deadline is not None:
            deadline.check()
        try:
            if (current / ".git").exists():
                return current
        except OSError:
            # Unreadable directory: keep walking.
            pass
        if current.parent == current:
            break
        current = current.parent
    return None


def _manifest_from_section(source: Path, section: object) -> ManifestConfig:
    if not isinstance(section, dict):
        raise ManifestError(f'{source}: "{MANIFEST_KEY}" must be a table/object')
    value = section.get("path")
    if value is None:
        return ManifestConfig(source=source)
    if not isinstance(value, str) or not value.strip() or "\0" in value:
        raise ManifestError(f'{source}: "{MANIFEST_KEY}.path" must be a non-empty string without NUL')
    return ManifestConfig(source=source, context_path=value)


def read_manifest_config(directory: str | Path) -> ManifestConfig | None:
    """
    Read the ai-context override from package.json, then pyproject.toml.
    Returns None when neither manifest carries the section.
    Raises ManifestError when a manifest is unreadable or the section is malformed.
    """
    directory = Path(directory)
    package_json = directory / "package.json"
    if _is_file(package_json):
        try:
            data = json.loads(package_json.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise ManifestError(f"Cannot read {package_json}: {e}") from e
        if not isinstance(data, dict):
            raise ManifestError(f"{package_json}: top level must be an object")
        if MANIFEST_KEY in data:
            return _manifest_from_section(package_json, data[MANIFEST_KEY])
    pyproject = directory / "pyproject.toml"
    if _is_file(pyproject):
        try:
            data = tomllib.loads(pyproject.read_text(encoding="utf-8"))
        except (OSError, tomllib.TOMLDecodeError) as e:
            raise ManifestError(f"Cannot read {pyproject}: {e}") from e
        tool = data.get("tool", {})
        if isinstance(tool, dict) and MANIFEST_KEY in tool:
            return _manifest_from_section(pyproject, tool[MANIFEST_KEY])
    return None


class ContextRootResolver:
    """Runs the resolution strategies. The clock is injectable for tests."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock

    def resolve(self, request: ResolutionRequest | None = None) -> ResolutionResult:
        request = request or ResolutionRequest()
        start = _normalize_start(request.start_path)
        if start.name == request.context_dir_name:
            return self._finish(request, start, start.parent, _is_dir(start), FoundBy.PARAMETER)
        deadline = _Deadline(request.timeout_ms, self._clock)
        try:
            result = self._search(request, start, deadline)
        except _SearchTimeout:
            logger.warning(
                "Context root search from %s timed out after %dms", start, request.timeout_ms
            )
            return self._fallback(
                request,
                start,
                f"Context root search timed out after {request.timeout_ms}ms.",
            )
        if result is None:
            return self._fallback(request, start)
        return result

    def _search(
        self, request: ResolutionRequest, start: Path, deadline: _Deadline
    ) -> ResolutionResult | None:
        name = request.context_dir_name

        deadline.check()
        direct = start / name
        if _is_dir(direct):
            return self._finish(request, direct, start, True, FoundBy.DIRECT_SUBDIR)

        if request.check_manifest:
            deadline.check()
            result = self._from_manifest(request, start)
            if result is not None:
                return result

        current = start
        for _ in range(request.max_traversal_depth):
            deadline.check()
            if current.parent == current:
                break
            current = current.parent
            candidate = current / name
            if _is_dir(candidate):
                return self._finish(request, candidate, current, True, FoundBy.UPWARD_TRAVERSAL)

        deadline.check()
        git_root = find_git_root(start, deadline=deadline)
        if git_root is not None:
            candidate = git_root / name
            return self._finish(request, candidate, git_root, _is_dir(candidate), FoundBy.GIT_ROOT)
        return None

    def _from_manifest(self, request: ResolutionRequest, start: Path) -> ResolutionResult | None:
        try:
            config = read_manifest_config(start)
        except ManifestError as e:
            logger.warning("Ignoring manifest override: %s", e)
            return None
        if config is None or config.context_path is None:
            return None
        target = config.resolved_path()
        logger.info("Using %s override from %s: %s", MANIFEST_KEY, config.source.name, target)
        return self._finish(request, target, start, _is_dir(target), FoundBy.MANIFEST_CONFIG)

    def _fallback(
        self, request: ResolutionRequest, start: Path, reason: str | None = None
    ) -> ResolutionResult:
        root_path = start / request.context_dir_name
        exists = _is_dir(root_path)
        if exists:
            warning = f"Using {root_path} (cwd fallback)."
        else:
            warning = f"No {request.context_dir_name} directory found. Expected at: {root_path}"
        if reason:
            warning = f"{reason} {warning}"
        logger.info("Falling back to %s", root_path)
        return self._finish(request, root_path, start, exists, FoundBy.CWD_FALLBACK, warning)

    def _finish(
        self,
        request: ResolutionRequest,
        root_path: Path,
        project_root: Path,
        exists: bool,
        found_by: FoundBy,
        warning: str | None = None,
    ) -> ResolutionResult:
        validation = None
        is_valid = None
        if request.validate:
            validation = validate_structure(root_path)
            is_valid = validation.is_valid
            if not is_valid:
                origin = {
                    FoundBy.MANIFEST_CONFIG: f" (from {MANIFEST_KEY} manifest)",
                    FoundBy.CWD_FALLBACK: " (cwd fallback)",
                }.get(found_by, "")
                missing = ", ".join(validation.missing_directories)
                detail = (
                    f"Invalid {request.context_dir_name} structure at {root_path}{origin}. "
                    f"Missing: {missing}"
                )
                warning = f"{warning} {detail}" if warning else detail
        logger.debug("Resolved %s via %s (exists=%s)", root_path, found_by.value, exists)
        return ResolutionResult(
            root_path=root_path,
            project_root=project_root,
            exists=exists,
            found_by=found_by,
            is_valid=is_valid,
            validation=validation,
            warning=warning,
        )


def resolve(
    request: ResolutionRequest | None = None,
    *,
    clock: Callable[[], float] = time.monotonic,
) -> ResolutionResult:
    """Resolve the workspace root for request (defaults: cwd, validation on)."""
    return ContextRootResolver(clock=clock).resolve(request)


def get_context_path(start: str | Path | None = None) -> Path:
    """Return the resolved (possibly not yet existing) .context path for start."""
    return resolve(ResolutionRequest(start_path=start, validate=False)).root_path


def get_project_root(start: str | Path | None = None) -> Path:
    """Return the git root above start, or start itself."""
    git_root = find_git_root(start if start is not None else Path.cwd())
    return git_root if git_root is not None else _normalize_start(start)
