#!/usr/bin/env python3
"""Connect a stdio MCP client to a remote Jotter TCP bridge.

Usage:
    jotter-mcp-connect [host] [port]
"""

import argparse
import socket
import sys
import threading

from .tcp_bridge import RECV_SIZE

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 7020


def _pump_stdin(sock: socket.socket, stdin):
    try:
        while True:
            data = stdin.read1(RECV_SIZE)
            if not data:
                break
            sock.sendall(data)
    except OSError:
        # server hung up; the recv loop in relay() reports it
        return
    finally:
        try:
            sock.shutdown(socket.SHUT_WR)
        except OSError:
            pass  # already closed


def relay(sock: socket.socket, stdin, stdout):
    """Copy stdin to *sock* and *sock* to stdout until the server hangs up."""
    threading.Thread(target=_pump_stdin, args=(sock, stdin), daemon=True).start()
    while True:
        data = sock.recv(RECV_SIZE)
        if not data:
            break
        stdout.write(data)
        stdout.flush()


def main(argv=None):
    parser = argparse.ArgumentParser(description="Pipe stdio to a Jotter MCP TCP bridge")
    parser.add_argument("host", nargs="?", default=DEFAULT_HOST)
    parser.add_argument("port", nargs="?", type=int, default=DEFAULT_PORT)
    args = parser.parse_args(argv)

    try:
        sock = socket.create_connection((args.host, args.port))
    except OSError as exc:
        print(f"[bridge] connection error: {exc}", file=sys.stderr)
        sys.exit(1)

    try:
        relay(sock, sys.stdin.buffer, sys.stdout.buffer)
    except KeyboardInterrupt:
        sys.exit(0)
    except OSError as exc:
        print(f"[bridge] connection error: {exc}", file=sys.stderr)
        sys.exit(1)
    finally:
        sock.close()


if __name__ == "__main__":
    main()
