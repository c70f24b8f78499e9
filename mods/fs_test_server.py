"""In-memory "filesystem" MCP server used as a stdio backend in tests and demos.

Run with ``python mods/fs_test_server.py``; it speaks MCP over stdin/stdout
and logs to stderr.
"""

import logging
import os

from mcp.server.fastmcp import FastMCP

logging.basicConfig(
    level=logging.INFO, format="[FsTestServer] %(asctime)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

mcp = FastMCP("FsTest")

_FILES = {
    "/notes/todo.txt": "water the plants",
    "/notes/ideas.txt": "a gateway for MCP servers",
}


@mcp.tool()
async def read_file(path: str) -> str:
    """Return the contents of *path*."""
    logger.info("read_file(%s)", path)
    if path not in _FILES:
        raise ValueError(f"no such file: {path}")
    return _FILES[path]


@mcp.tool()
async def write_file(path: str, content: str) -> str:
    """Create or replace *path*."""
    logger.info("write_file(%s)", path)
    _FILES[path] = content
    return f"wrote {len(content)} bytes to {path}"


@mcp.tool()
async def delete_file(path: str) -> str:
    """Remove *path*."""
    logger.info("delete_file(%s)", path)
    _FILES.pop(path, None)
    return f"deleted {path}"


@mcp.tool()
async def list_directory(path: str = "/") -> list[str]:
    """List the files below *path*."""
    prefix = path.rstrip("/") + "/"
    return sorted(name for name in _FILES if name.startswith(prefix))


@mcp.tool()
async def env_value(name: str) -> str:
    """Echo one environment variable of this process (empty when unset)."""
    return os.environ.get(name, "")


@mcp.resource("memo://notes/readme")
def readme() -> str:
    """A fixed text resource."""
    return "This server keeps its files in memory."


@mcp.prompt()
def summarize(path: str) -> str:
    """Ask the model to summarize one file."""
    return f"Summarize the file {path}."


if __name__ == "__main__":
    logger.info("Starting FsTest MCP Server with stdio transport...")
    mcp.run(transport="stdio")
