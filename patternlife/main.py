"""Main entry point for the patternlife MCP server."""

from __future__ import annotations

import argparse
import logging
import os
import sys

from .config import get_config


def setup_logging() -> None:
    """Configure logging for the application."""
    logging.basicConfig(
        level=os.environ.get("PATTERNLIFE_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="patternlife - Pattern lifecycle engine (MCP server and sweeper)"
    )
    parser.add_argument(
        "--mode",
        choices=["server", "sweep"],
        default="server",
        help="Run mode: 'server' runs the MCP server, "
        "'sweep' runs one maintenance sweep and exits (default: server)",
    )
    parser.add_argument(
        "--transport",
        choices=["stdio", "sse", "streamable-http"],
        default=None,
        help="Transport mode for server mode (default: from env or stdio)",
    )
    parser.add_argument(
        "--host",
        default=None,
        help="Host to bind to (default: from env or 127.0.0.1)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port to bind to (default: from env or 8765)",
    )
    return parser.parse_args(argv)


def run_server_mode(
    transport: str, host: str, port: int, logger: logging.Logger
) -> None:
    """Run the MCP server."""
    from .server import mcp

    logger.info(f"Transport: {transport}")
    if transport == "stdio":
        mcp.run(transport="stdio")
        return

    import uvicorn

    if transport == "sse":
        app = mcp.sse_app()
    else:
        app = mcp.streamable_http_app()

    logger.info(f"Listening on http://{host}:{port}")
    uvicorn.run(app, host=host, port=port, log_level="info")


def run_sweep_mode(logger: logging.Logger) -> None:
    """Run one sweep in this process."""
    from .worker.sweep import LifecycleSweeper

    report = LifecycleSweeper(install_signal_handlers=True).run()
    if report is None:
        logger.info("Another sweeper is running; nothing to do")
    else:
        logger.info(f"Sweep report: {report.to_dict()}")


def main(argv: list[str] | None = None) -> None:
    """Run patternlife."""
    setup_logging()
    logger = logging.getLogger(__name__)

    args = parse_args(argv)
    config = get_config()

    host = args.host or os.environ.get("PATTERNLIFE_HOST", "127.0.0.1")
    port = args.port or int(os.environ.get("PATTERNLIFE_PORT", "8765"))

    logger.info("Starting patternlife")
    logger.info(f"Data directory: {config.data_dir}")
    logger.info(f"Storage: {config.storage}")
    logger.info(f"Mode: {args.mode}")

    if args.mode == "sweep":
        run_sweep_mode(logger)
    else:
        transport = args.transport or os.environ.get("PATTERNLIFE_TRANSPORT", "stdio")
        run_server_mode(transport, host, port, logger)


if __name__ == "__main__":
    main()
