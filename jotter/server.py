#!/usr/bin/env python3
"""Jotter HTTP API server.

Serves the notes API consumed by the browser UI and by the MCP bridge.

Usage:
    jotter-server
    jotter-server --port 4000 --db data/notes.db
"""

import argparse
import errno
import logging
import sys

from . import server_api
from .note_store import NoteStore
from .server_http import make_server
from .server_storage import load_config

logger = logging.getLogger(__name__)


def configure_logging(level: str):
    logging.basicConfig(
        level=getattr(logging, level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )


def run(host: str, port: int, db_path: str) -> int:
    server_api.set_store(NoteStore(db_path))
    try:
        server = make_server(host, port)
    except OSError as exc:
        if exc.errno == errno.EADDRINUSE:
            logger.error("Port %d is already in use.", port)
            logger.error("  To see the process holding the port:")
            logger.error("    lsof -nP -iTCP:%d -sTCP:LISTEN", port)
            logger.error("  You can also run the server on another port:")
            logger.error("    jotter-server --port 4000")
        else:
            logger.error("Server error: %s", exc)
        return 1

    logger.info("API at http://localhost:%d/api", server.server_address[1])
    logger.info("Database: %s", db_path)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("Shutting down.")
    finally:
        server.server_close()
    return 0


def main(argv=None):
    config = load_config()
    parser = argparse.ArgumentParser(description="Jotter notes API server")
    parser.add_argument("--host", default=config["host"], help="Interface to bind")
    parser.add_argument("--port", type=int, default=config["port"], help="Port to listen on")
    parser.add_argument("--db", default=config["db_path"], help="SQLite database path")
    parser.add_argument("--log-level", type=str, default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    args = parser.parse_args(argv)

    configure_logging(args.log_level)
    sys.exit(run(args.host, args.port, args.db))


if __name__ == "__main__":
    main()
