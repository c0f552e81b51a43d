"""
File access inside a resolved .context workspace.

The workspace is laid out as .context/{section}/... where section is one of
docs, agents, workflow, plans, rules. Every read and write goes through
path_util.validate_path against the context root first.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path

from context_resolver import ResolutionResult
from path_util import SecurityError, validate_path
from structure_validator import EXPECTED_DIRECTORIES, validate_structure

logger = logging.getLogger(__name__)

# MIME types by extension (extend as needed)
_MIME = {
    ".md": "text/markdown",
    ".mdc": "text/markdown",
    ".json": "application/json",
    ".yaml": "text/yaml",
    ".yml": "text/yaml",
    ".toml": "text/x-toml",
    ".txt": "text/plain",
    ".py": "text/x-python",
    ".ts": "text/typescript",
    ".js": "text/javascript",
}


@dataclass(frozen=True)
class ContextPaths:
    """Standard locations for one workspace."""

    project_root: Path
    context_path: Path

    @classmethod
    def from_resolution(cls, result: ResolutionResult) -> "ContextPaths":
        return cls(project_root=result.project_root, context_path=result.root_path)

    @property
    def docs_path(self) -> Path:
        return self.context_path / "docs"

    @property
    def agents_path(self) -> Path:
        return self.context_path / "agents"

    @property
    def workflow_path(self) -> Path:
        return self.context_path / "workflow"

    @property
    def plans_path(self) -> Path:
        return self.context_path / "plans"

    @property
    def rules_path(self) -> Path:
        return self.context_path / "rules"


@dataclass
class WriteReport:
    written: list[str] = field(default_factory=list)
    skipped: dict[str, str] = field(default_factory=dict)


def get_mime(path: Path) -> str:
    """Infer MIME type from file extension."""
    return _MIME.get(path.suffix.lower(), "text/plain")


def list_context_files(context_root: Path, section: str | None = None) -> list[str]:
    """
    List files under context_root (or one section of it) as posix paths
    relative to context_root. Hidden files and directories are skipped.
    """
    base = validate_path(context_root, section) if section else Path(context_root).resolve()
    if not base.is_dir():
        return []
    root = Path(context_root).resolve()
    out: list[str] = []
    for p in sorted(base.rglob("*")):
        rel = p.relative_to(root)
        if any(part.startswith(".") for part in rel.parts):
            continue
        if p.is_file():
            out.append(rel.as_posix())
    return out


def read_context_file(context_root: Path, path_str: str) -> tuple[str, str]:
    """
    Read a file from the workspace. Returns (content, mime_type).
    Raises SecurityError if path_str escapes the root, FileNotFoundError if missing.
    """
    full = validate_path(context_root, path_str)
    if not full.is_file():
        raise FileNotFoundError(f"Context file not found: {path_str}")
    return full.read_text(encoding="utf-8", errors="replace"), get_mime(full)


def write_context_file(context_root: Path, path_str: str, content: str) -> Path:
    """Write content to path_str under context_root, creating parent directories."""
    full = validate_path(context_root, path_str)
    if full == Path(context_root).resolve():
        raise IsADirectoryError(f"Cannot write to the workspace root: {path_str}")
    full.parent.mkdir(parents=True, exist_ok=True)
    full.write_text(content, encoding="utf-8")
    return full


def write_context_files(context_root: Path, files: dict[str, str]) -> WriteReport:
    """
    Write several files. A path that fails the boundary check is logged and
    skipped; the remaining files are still written.
    """
    report = WriteReport()
    for path_str, content in files.items():
        try:
            write_context_file(context_root, path_str, content)
        except SecurityError as e:
            logger.warning(
                "Skipping %r: %s (root=%s)", e.attempted_path, e.reason.value, e.workspace_root
            )
            report.skipped[path_str] = e.reason.value
            continue
        except OSError as e:
            logger.warning("Skipping %r: %s", path_str, e)
            report.skipped[path_str] = str(e)
            continue
        report.written.append(path_str)
    return report


def scaffold_context(context_root: Path) -> list[str]:
    """
    Create the expected section directories that are missing.
    Returns the names created. Raises FileExistsError if a section name is
    taken by a file.
    """
    root = Path(context_root).resolve()
    validation = validate_structure(root)
    if validation.wrong_type:
        raise FileExistsError(
            f"Cannot scaffold {root}: {', '.join(validation.wrong_type)} exists but is not a directory"
        )
    created: list[str] = []
    for name in EXPECTED_DIRECTORIES:
        target = validate_path(root, name)
        if not target.is_dir():
            target.mkdir(parents=True)
            created.append(name)
    if created:
        logger.info("Scaffolded %s: %s", root, ", ".join(created))
    return created
