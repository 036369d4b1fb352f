#!/usr/bin/env python3
"""TCP bridge that runs the MCP stdio server and exposes it on a TCP port.

One client at a time, so JSON frames from different sockets never
interleave on the child's stdin. A second client is told the bridge is
busy and disconnected; it is not queued.

Usage:
    jotter-mcp-tcp
    jotter-mcp-tcp --port 7020 --api-url http://localhost:3000/api
"""

import argparse
import logging
import socket
import socketserver
import subprocess
import sys
import threading

from jotter.server_storage import load_config

logger = logging.getLogger(__name__)

BUSY_MESSAGE = b"MCP bridge busy: one client at a time\n"
RECV_SIZE = 64 * 1024


class ConnectionGuard:
    """Mutual exclusion over the single active client connection."""

    def __init__(self):
        self._lock = threading.Lock()
        self._active = None

    @property
    def active(self):
        return self._active

    def acquire(self, conn) -> bool:
        """Claim the slot for *conn*; False when another client holds it."""
        with self._lock:
            if self._active is not None:
                return False
            self._active = conn
            return True

    def release(self, conn):
        with self._lock:
            if self._active is conn:
                self._active = None


class _BridgeServer(socketserver.ThreadingTCPServer):
    daemon_threads = True
    allow_reuse_address = True

    def __init__(self, server_address, handler_cls, bridge):
        self.bridge = bridge
        super().__init__(server_address, handler_cls)


class _BridgeHandler(socketserver.BaseRequestHandler):
    def handle(self):
        bridge = self.server.bridge
        conn = self.request
        if not bridge.guard.acquire(conn):
            logger.info("Rejecting %s:%s, bridge busy", *self.client_address[:2])
            try:
                conn.sendall(BUSY_MESSAGE)
            except OSError as exc:
                logger.debug("Could not send busy notice: %s", exc)
            return

        logger.info("Client %s:%s connected", *self.client_address[:2])
        try:
            while True:
                data = conn.recv(RECV_SIZE)
                if not data:
                    break
                bridge.write_to_child(data)
        except OSError as exc:
            logger.warning("Client %s:%s error: %s", *self.client_address[:2], exc)
            conn.close()
        finally:
            bridge.guard.release(conn)
            logger.info("Client %s:%s disconnected", *self.client_address[:2])


class TcpBridge:
    def __init__(self, host: str, port: int, command: list[str] | None = None):
        self.host = host
        self.port = port
        self.command = command or [sys.executable, "-m", "jotter_mcp.mcp_server"]
        self.guard = ConnectionGuard()
        self.child = None
        self.server = None
        self.exit_code = None
        self._stdin_lock = threading.Lock()

    @property
    def address(self):
        return self.server.server_address

    def start(self):
        self.child = subprocess.Popen(
            self.command,
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=None,
        )
        self.server = _BridgeServer((self.host, self.port), _BridgeHandler, bridge=self)
        threading.Thread(
            target=self._pump_child_output,
            name="jotter-mcp-stdout",
            daemon=True,
        ).start()
        logger.info("TCP bridge listening on %s:%d", *self.address[:2])

    def serve_forever(self) -> int:
        try:
            self.server.serve_forever()
        finally:
            self.server.server_close()
        return self.exit_code if self.exit_code is not None else 1

    def close(self):
        if self.server is not None:
            self.server.shutdown()
        if self.child is not None and self.child.poll() is None:
            self.child.terminate()
            try:
                self.child.wait(timeout=5)
            except subprocess.TimeoutExpired:
                self.child.kill()

    def write_to_child(self, data: bytes):
        with self._stdin_lock:
            self.child.stdin.write(data)
            self.child.stdin.flush()

    def _pump_child_output(self):
        """Forward child stdout to whichever client is active."""
        out = self.child.stdout
        while True:
            data = out.read1(RECV_SIZE)
            if not data:
                break
            conn = self.guard.active
            if conn is None:
                logger.debug("No client connected, dropping %d bytes of output", len(data))
                continue
            try:
                conn.sendall(data)
            except OSError as exc:
                logger.warning("Dropping client after write error: %s", exc)
                self.guard.release(conn)
                try:
                    conn.shutdown(socket.SHUT_RDWR)
                except OSError:
                    logger.debug("Socket already closed")

        self.exit_code = self.child.wait()
        logger.error("MCP child exited: %s", self.exit_code)
        threading.Thread(target=self.server.shutdown, daemon=True).start()


def main(argv=None):
    config = load_config()
    parser = argparse.ArgumentParser(description="Expose the Jotter MCP stdio server over TCP")
    parser.add_argument("--host", default=config["mcp_host"], help="Interface to bind")
    parser.add_argument("--port", type=int, default=config["mcp_port"], help="Port to listen on")
    parser.add_argument("--api-url", default=None, help="Passed through to the MCP server")
    parser.add_argument("--log-level", type=str, default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )

    command = [sys.executable, "-m", "jotter_mcp.mcp_server", "--log-level", args.log_level]
    if args.api_url:
        command += ["--api-url", args.api_url]

    bridge = TcpBridge(args.host, args.port, command)
    try:
        bridge.start()
        code = bridge.serve_forever()
    except KeyboardInterrupt:
        code = 0
    except OSError as exc:
        logger.error("Could not listen on %s:%d: %s", args.host, args.port, exc)
        code = 1
    finally:
        bridge.close()
    sys.exit(code)


if __name__ == "__main__":
    main()
