"""journo MCP server - main entry point."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any

from loguru import logger

# MCP imports are optional - only needed when running the server
try:
    from mcp.server import Server  # pragma: no cover
    from mcp.server.stdio import stdio_server  # pragma: no cover
    from mcp.types import Tool, TextContent  # pragma: no cover
    HAS_MCP = True  # pragma: no cover
except ImportError:
    HAS_MCP = False
    Server = None  # type: ignore
    Tool = None  # type: ignore
    TextContent = None  # type: ignore

from .config import JournalConfig, load_config
from .engine import JournalEngine
from .tools import execute_tool, make_tools


def configure_logging(level: str) -> None:
    """Send log output to stderr; stdout carries the MCP protocol."""
    logger.remove()
    logger.add(sys.stderr, level=level.upper())


def create_server(config: JournalConfig) -> "Server":
    """Create and configure the MCP server.

    Args:
        config: Journal configuration

    Returns:
        Configured MCP Server instance

    Raises:
        ImportError: If MCP package is not installed
    """
    if not HAS_MCP:
        raise ImportError(
            "MCP package not installed. Install with: pip install journo[mcp]"
        )

    server = Server("journo")
    engine = JournalEngine(config)
    tool_defs = make_tools(engine)

    @server.list_tools()
    async def list_tools() -> list[Tool]:
        """Return list of available tools."""
        return [
            Tool(
                name=t["name"],
                description=t["description"],
                inputSchema=t["inputSchema"],
            )
            for t in tool_defs.values()
        ]

    @server.call_tool()
    async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
        """Handle tool invocation."""
        result = await execute_tool(engine, name, arguments)
        return [TextContent(type="text", text=json.dumps(result, indent=2, default=str))]

    return server


async def run_server(config: JournalConfig) -> None:
    """Run the MCP server with stdio transport."""
    if not HAS_MCP:
        raise ImportError(
            "MCP package not installed. Install with: pip install journo[mcp]"
        )

    server = create_server(config)  # pragma: no cover

    async with stdio_server() as (read_stream, write_stream):  # pragma: no cover
        await server.run(  # pragma: no cover
            read_stream,
            write_stream,
            server.create_initialization_options(),
        )


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="journo - bullet journal entry store with a searchable index"
    )
    parser.add_argument(
        "--journal-root",
        "-j",
        type=Path,
        default=Path.cwd(),
        help="Journal root directory (default: current directory)",
    )
    parser.add_argument(
        "--config",
        "-c",
        type=Path,
        help="Path to config file (default: auto-detect in journal root)",
    )
    parser.add_argument(
        "--init",
        action="store_true",
        help="Create the journal directories and index, then exit",
    )
    parser.add_argument(
        "--rebuild-index",
        action="store_true",
        help="Rebuild the index from stored entries, then exit",
    )

    args = parser.parse_args()
    journal_root = args.journal_root.resolve()

    try:
        config = load_config(journal_root, args.config)
    except Exception as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        sys.exit(1)

    configure_logging(config.log_level)

    if args.init or args.rebuild_index:
        engine = JournalEngine(config)
        try:
            if args.rebuild_index:
                result = engine.rebuild_index()
                print(
                    f"Indexed {result['entries_indexed']} of {result['entries_found']} entries"
                    f" ({result['errors']} errors)"
                )
            else:
                engine.stats()
                print(f"Initialized journal in {journal_root}")
                print(f"  - {config.data_dir}/")
                print(f"  - {config.indexes_dir}/{config.index_file}")
        finally:
            engine.close()
        return

    if not HAS_MCP:
        print("Error: MCP package not installed.", file=sys.stderr)
        print("Install with: pip install journo[mcp]", file=sys.stderr)
        sys.exit(1)

    asyncio.run(run_server(config))


if __name__ == "__main__":  # pragma: no cover
    main()
