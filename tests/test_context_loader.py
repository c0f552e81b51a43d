"""Unit tests for context_loader."""

from pathlib import Path

import pytest

from context_loader import (
    ContextPaths,
    get_mime,
    list_context_files,
    read_context_file,
    scaffold_context,
    write_context_file,
    write_context_files,
)
from context_resolver import ResolutionRequest, resolve
from path_util import SecurityError, TraversalReason
from structure_validator import validate_structure


def test_get_mime():
    """MIME types are inferred from extension."""
    assert get_mime(Path("x.md")) == "text/markdown"
    assert get_mime(Path("x.json")) == "application/json"
    assert get_mime(Path("x.YML")) == "text/yaml"
    assert get_mime(Path("x.unknown")) == "text/plain"


def test_context_paths_from_resolution(context_root, project_root_env):
    paths = ContextPaths.from_resolution(resolve(ResolutionRequest(start_path=project_root_env)))
    assert paths.project_root == project_root_env
    assert paths.context_path == context_root
    assert paths.docs_path == context_root / "docs"
    assert paths.agents_path == context_root / "agents"
    assert paths.workflow_path == context_root / "workflow"
    assert paths.plans_path == context_root / "plans"
    assert paths.rules_path == context_root / "rules"


def test_read_context_file(context_root):
    (context_root / "docs" / "architecture.md").write_text("# Arch")
    content, mime = read_context_file(context_root, "docs/architecture.md")
    assert content == "# Arch"
    assert mime == "text/markdown"


def test_read_context_file_missing_raises(context_root):
    with pytest.raises(FileNotFoundError):
        read_context_file(context_root, "docs/nope.md")
    with pytest.raises(FileNotFoundError):
        read_context_file(context_root, "docs")


def test_read_context_file_traversal_raises(context_root, project_root_env):
    (project_root_env / "secret.txt").write_text("s")
    with pytest.raises(SecurityError) as exc_info:
        read_context_file(context_root, "../secret.txt")
    assert exc_info.value.reason is TraversalReason.TRAVERSAL


def test_write_context_file(context_root):
    written = write_context_file(context_root, "plans/q3/roadmap.md", "hello")
    assert written == context_root / "plans" / "q3" / "roadmap.md"
    assert written.read_text() == "hello"


def test_write_context_file_traversal_rejected(context_root, project_root_env):
    with pytest.raises(SecurityError):
        write_context_file(context_root, "%2e%2e%2fevil.md", "x")
    assert not (project_root_env / "evil.md").exists()


def test_write_context_file_root_rejected(context_root):
    with pytest.raises(IsADirectoryError):
        write_context_file(context_root, ".", "x")


def test_write_context_files_skips_only_rejected(context_root, project_root_env):
    """A rejected path is skipped; the other files are still written."""
    report = write_context_files(
        context_root,
        {
            "docs/a.md": "a",
            "../../etc/evil": "x",
            "agents/b.md": "b",
            "rules/c\0.md": "c",
        },
    )
    assert report.written == ["docs/a.md", "agents/b.md"]
    assert report.skipped == {"../../etc/evil": "traversal", "rules/c\0.md": "null-byte"}
    assert (context_root / "docs" / "a.md").read_text() == "a"
    assert (context_root / "agents" / "b.md").read_text() == "b"


def test_list_context_files(context_root):
    (context_root / "docs" / "guide.md").write_text("g")
    (context_root / "agents" / "sub").mkdir()
    (context_root / "agents" / "sub" / "playbook.md").write_text("p")
    (context_root / "docs" / ".hidden.md").write_text("h")
    assert list_context_files(context_root) == ["agents/sub/playbook.md", "docs/guide.md"]
    assert list_context_files(context_root, "docs") == ["docs/guide.md"]
    assert list_context_files(context_root, "plans") == []


def test_list_context_files_missing_root(project_root_env):
    assert list_context_files(project_root_env / ".context") == []


def test_list_context_files_rejects_traversal(context_root):
    with pytest.raises(SecurityError):
        list_context_files(context_root, "..")


def test_scaffold_context(project_root_env):
    root = project_root_env / ".context"
    created = scaffold_context(root)
    assert created == ["docs", "agents", "workflow", "plans", "rules"]
    validation = validate_structure(root)
    assert validation.is_valid
    assert validation.missing_directories == ()
    assert scaffold_context(root) == []


def test_scaffold_context_partial(context_root):
    assert scaffold_context(context_root) == ["workflow", "plans", "rules"]


def test_scaffold_context_refuses_wrong_type(context_root):
    (context_root / "rules").write_text("x")
    with pytest.raises(FileExistsError) as exc_info:
        scaffold_context(context_root)
    assert "rules" in str(exc_info.value)
    assert not (context_root / "workflow").exists()
