"""
Context Workspace MCP Server.

Locates the project's .context workspace and exposes its files to MCP
clients. Every path a client sends is checked against the resolved
workspace root before it is read or written.
"""

import json
import logging
import os
from pathlib import Path

from fastmcp import FastMCP
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from context_loader import (
    ContextPaths,
    list_context_files,
    read_context_file,
    scaffold_context,
    write_context_file,
    write_context_files,
)
from context_resolver import (
    DEFAULT_MAX_TRAVERSAL,
    DEFAULT_TIMEOUT_MS,
    ResolutionRequest,
    ResolutionResult,
    resolve,
)
from path_util import SecurityError, get_root, validate_path
from structure_validator import EXPECTED_DIRECTORIES, validate_structure

# Logging: level from env (default INFO)
_log_level = os.environ.get("LOG_LEVEL", "INFO").upper()
logging.basicConfig(level=getattr(logging, _log_level, logging.INFO))
logger = logging.getLogger(__name__)

mcp = FastMCP(
    "ContextWorkspace",
    instructions=(
        "Use this server to locate and work inside the project's .context workspace "
        "(docs, agents, workflow, plans, rules). Call resolve_context first to see where "
        "the workspace is and how it was found. File paths passed to list_files, "
        "read_file and write_file are relative to the workspace root; paths that "
        "escape it are rejected. Resources: context://{section}/{path} "
        "(e.g. context://docs/architecture.md)."
    ),
    list_page_size=50,
)


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Invalid %s=%r, using %d", name, raw, default)
        return default


def _resolve_workspace(start_path: str | None = None, validate: bool = True) -> ResolutionResult:
    """Resolve .context from start_path (checked against the project root) or the root itself."""
    root = get_root()
    start = validate_path(root, start_path) if start_path else root
    return resolve(
        ResolutionRequest(
            start_path=start,
            max_traversal_depth=_env_int("CONTEXT_MCP_MAX_TRAVERSAL", DEFAULT_MAX_TRAVERSAL),
            timeout_ms=_env_int("CONTEXT_MCP_TIMEOUT_MS", DEFAULT_TIMEOUT_MS),
            validate=validate,
        )
    )


def _context_root() -> Path:
    return _resolve_workspace(validate=False).root_path


# ---- Resources: context://{section}/{path*} ----


def resource_context_file(section: str, path: str) -> str:
    """Read a workspace file by section and path (e.g. docs/architecture.md)."""
    if isinstance(path, list):
        path = "/".join(path)
    try:
        content, _ = read_context_file(_context_root(), f"{section}/{path}")
        return content
    except SecurityError as e:
        logger.warning("Rejected resource path %r: %s", e.attempted_path, e.reason.value)
        return f"Error: {e}"
    except FileNotFoundError:
        logger.warning("Context file not found: %s/%s", section, path)
        return f"Error: Context file not found: {section}/{path}"


mcp.resource(
    "context://{section}/{path*}",
    tags={"context"},
    mime_type="text/plain",
)(resource_context_file)


# ---- Tools: workspace discovery and path-validated file access ----


def resolve_context(start_path: str | None = None, validate: bool = True) -> str:
    """Locate the .context workspace. Returns JSON with root_path, found_by, warning."""
    logger.info("resolve_context start_path=%s validate=%s", start_path, validate)
    try:
        result = _resolve_workspace(start_path, validate=validate)
    except SecurityError as e:
        logger.warning("resolve_context path error: %s", e)
        return f"Error: {e}"
    data = result.to_dict()
    paths = ContextPaths.from_resolution(result)
    data["paths"] = {
        name: str(getattr(paths, f"{name}_path")) for name in EXPECTED_DIRECTORIES
    }
    return json.dumps(data, indent=2)


def check_structure(context_path: str | None = None) -> str:
    """Validate a workspace root (default: the resolved one). Returns JSON."""
    try:
        root = (
            validate_path(get_root(), context_path) if context_path else _context_root()
        )
    except SecurityError as e:
        logger.warning("check_structure path error: %s", e)
        return f"Error: {e}"
    data = {"context_path": str(root), **validate_structure(root).to_dict()}
    return json.dumps(data, indent=2)


def list_files(section: str | None = None) -> str:
    """List workspace files, optionally limited to one section. Returns JSON."""
    try:
        files = list_context_files(_context_root(), section)
    except SecurityError as e:
        logger.warning("list_files path error: %s", e)
        return f"Error: {e}"
    return json.dumps(files, indent=2)


def read_file(path: str) -> str:
    """Read a file relative to the workspace root."""
    logger.info("read_file path=%s", path)
    try:
        content, _ = read_context_file(_context_root(), path)
    except (SecurityError, FileNotFoundError) as e:
        logger.warning("read_file error: %s", e)
        return f"Error: {e}"
    return content


def write_file(path: str, content: str) -> str:
    """Write or overwrite a file relative to the workspace root."""
    logger.info("write_file path=%s", path)
    try:
        resolved = write_context_file(_context_root(), path, content)
    except (SecurityError, OSError) as e:
        logger.warning("write_file error: %s", e)
        return f"Error: {e}"
    return f"Wrote {resolved}"


def write_files(files: dict[str, str]) -> str:
    """Write several files; rejected paths are skipped. Returns JSON report."""
    logger.info("write_files count=%d", len(files))
    report = write_context_files(_context_root(), files)
    return json.dumps({"written": report.written, "skipped": report.skipped}, indent=2)


def init_context(start_path: str | None = None) -> str:
    """Create the .context workspace and any missing section directories."""
    try:
        result = _resolve_workspace(start_path, validate=False)
        created = scaffold_context(result.root_path)
    except (SecurityError, OSError) as e:
        logger.warning("init_context error: %s", e)
        return f"Error: {e}"
    if not created:
        return f"Workspace already complete at {result.root_path}"
    return f"Initialized {result.root_path}: created {', '.join(created)}"


mcp.tool(tags={"context", "discovery"}, annotations={"readOnlyHint": True})(resolve_context)
mcp.tool(tags={"context", "discovery"}, annotations={"readOnlyHint": True})(check_structure)
mcp.tool(tags={"files"}, annotations={"readOnlyHint": True})(list_files)
mcp.tool(tags={"files"}, annotations={"readOnlyHint": True})(read_file)
mcp.tool(tags={"files"}, annotations={"destructiveHint": True})(write_file)
mcp.tool(tags={"files"}, annotations={"destructiveHint": True})(write_files)
mcp.tool(tags={"context", "create"}, annotations={"destructiveHint": False})(init_context)


@mcp.custom_route("/health", methods=["GET"])
async def health(_request: Request) -> Response:
    """Health check for load balancers and k8s probes."""
    return JSONResponse({"status": "ok"})


def main() -> None:
    """Entry point for the context-mcp CLI."""
    transport = os.environ.get("MCP_TRANSPORT", "http")
    if transport == "http":
        port = _env_int("MCP_PORT", 8000)
        mcp.run(transport="http", host="0.0.0.0", port=port)
    else:
        mcp.run()


if __name__ == "__main__":
    main()
