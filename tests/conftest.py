"""Pytest fixtures for context-mcp tests."""

import pytest


@pytest.fixture(autouse=True)
def project_root_env(tmp_path, monkeypatch):
    """Set CONTEXT_MCP_ROOT to a temp directory so path_util and tools use it."""
    monkeypatch.setenv("CONTEXT_MCP_ROOT", str(tmp_path))
    monkeypatch.delenv("CONTEXT_MCP_TIMEOUT_MS", raising=False)
    monkeypatch.delenv("CONTEXT_MCP_MAX_TRAVERSAL", raising=False)
    return tmp_path.resolve()


@pytest.fixture
def context_root(project_root_env):
    """A .context directory with docs/ and agents/ under the project root."""
    root = project_root_env / ".context"
    (root / "docs").mkdir(parents=True)
    (root / "agents").mkdir()
    return root
