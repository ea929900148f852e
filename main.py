"""Main entry point for judgeoverlay."""

from judgeoverlay.server import mcp


def main() -> None:
    """Run the judgeoverlay MCP server."""
    mcp.run()


if __name__ == "__main__":
    main()
