#!/usr/bin/env python3
"""Jotter MCP server (stdio, newline-delimited JSON-RPC).

- MCP core: initialize, tools/list, tools/call
- Legacy ``notes.*`` methods kept for older clients

Tool handlers are thin wrappers over the Jotter HTTP API. Frames are read
and routed strictly in arrival order. Reads run on a worker pool; creates,
edits, deletes and enrichments run on a single writer thread, so they reach
the API in arrival order. Replies can still come back out of order and
clients must match them by id.

Never write anything but JSON-RPC frames to stdout. Logs go to stderr.
"""

import argparse
import json
import logging
import re
import sys
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional
from urllib.parse import quote, urlencode

from jotter.server_storage import load_config

from .api_client import ApiClient
from .framing import ByteFramer, decode_frame, encode_frame

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "2025-06-18"
SERVER_NAME = "jotter-mcp"
SERVER_VERSION = "0.1.0"
READ_CHUNK_SIZE = 64 * 1024
DEFAULT_WORKERS = 4

METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603

SIGNALS_DEFAULT_LIMIT = 5
SIGNALS_MIN_LIMIT = 1
SIGNALS_MAX_LIMIT = 20

_LEADING_INT_RE = re.compile(r"\s*([+-]?\d+)")


class Method(str, Enum):
    INITIALIZE = "initialize"
    INITIALIZED = "notifications/initialized"
    TOOLS_LIST = "tools/list"
    TOOLS_CALL = "tools/call"


class Tool(str, Enum):
    CREATE_NOTE = "create_note"
    EDIT_NOTE = "edit_note"
    DELETE_NOTE = "delete_note"
    SEARCH_NOTES = "search_notes"
    ENRICH_NOTE = "enrich_note"
    TOP_SIGNALS_TODAY = "top_signals_today"
    LIST_NOTES = "list_notes"
    GET_NOTE = "get_note"


class LegacyMethod(str, Enum):
    LIST = "notes.list"
    GET = "notes.get"
    CREATE = "notes.create"
    UPDATE = "notes.update"
    DELETE = "notes.delete"
    ENRICH = "notes.enrich"
    SEARCH = "notes.search"


WRITE_TOOLS = frozenset({
    Tool.CREATE_NOTE,
    Tool.EDIT_NOTE,
    Tool.DELETE_NOTE,
    Tool.ENRICH_NOTE,
})
WRITE_LEGACY_METHODS = frozenset({
    LegacyMethod.CREATE,
    LegacyMethod.UPDATE,
    LegacyMethod.DELETE,
    LegacyMethod.ENRICH,
})

LEGACY_PREFIX = "notes."


def _lookup(enum_cls, value):
    try:
        return enum_cls(value)
    except ValueError:
        return None


class ProtocolError(Exception):
    """A failure reported to the client as a JSON-RPC error object."""

    def __init__(self, code: int, message: str, data=None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data


@dataclass
class Deferred:
    """API work to finish off the reader thread.

    ``on_error`` turns a failure into a result; when it is None the failure
    becomes an internal-error reply. ``writes`` work runs one call at a time
    in arrival order.
    """

    work: Callable[[], Any]
    on_success: Callable[[Any], Any] = lambda result: result
    on_error: Optional[Callable[[Exception], Any]] = None
    writes: bool = False


def must_string(args: dict, field: str) -> str:
    value = args.get(field)
    if not isinstance(value, str) or not value:
        raise ProtocolError(INVALID_PARAMS, f"Missing/invalid {field}")
    return value


def clamp_int(value, lower: int, upper: int) -> int:
    """Integer in ``[lower, upper]``; numbers truncate, strings use their leading digits."""
    n = lower
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            n = int(value)
        except (OverflowError, ValueError):
            n = lower
    elif not isinstance(value, bool):
        match = _LEADING_INT_RE.match(str(value))
        if match:
            n = int(match.group(1))
    return max(lower, min(upper, n))


def note_path(note_id, suffix: str = "") -> str:
    return f"/notes/{quote(str(note_id), safe='')}{suffix}"


def tool_result(data) -> dict:
    return {
        "content": [{"type": "text", "text": json.dumps(data, ensure_ascii=False)}],
        "isError": False,
    }


def tool_failure(exc: Exception) -> dict:
    return {
        "content": [{"type": "text", "text": f"Tool failed: {str(exc) or type(exc).__name__}"}],
        "isError": True,
    }


class JotterMCP:
    def __init__(self, api: ApiClient | None = None, out=None, max_workers: int = DEFAULT_WORKERS):
        self.api = api or ApiClient()
        self.out = out or sys.stdout
        self._write_lock = threading.Lock()
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="jotter-mcp",
        )
        # one worker: mutations reach the API in arrival order
        self._write_executor = ThreadPoolExecutor(
            max_workers=1,
            thread_name_prefix="jotter-mcp-write",
        )

    # -- Transport ---------------------------------------------------------

    def run(self, stream=None):
        """Read stdin until EOF, then wait for in-flight calls to reply."""
        stream = stream or sys.stdin.buffer
        framer = ByteFramer()
        read = getattr(stream, "read1", stream.read)
        logger.info("%s %s ready on stdio", SERVER_NAME, SERVER_VERSION)
        try:
            while True:
                chunk = read(READ_CHUNK_SIZE)
                if not chunk:
                    break
                for frame in framer.feed_bytes(chunk):
                    self.handle_frame(frame)
        finally:
            self.close()

    def close(self):
        self._write_executor.shutdown(wait=True)
        self._executor.shutdown(wait=True)

    def handle_frame(self, line: str) -> Future | None:
        msg = decode_frame(line)
        if msg is None:
            logger.debug("Ignoring non-request frame: %.80s", line)
            return None
        return self.handle_message(msg)

    def handle_message(self, msg: dict) -> Future | None:
        """Route one request; returns the Future when work was deferred."""
        req_id = msg.get("id")
        method = msg["method"]
        params = msg.get("params")
        if not isinstance(params, dict):
            params = {}

        try:
            outcome = self._dispatch(method, params)
        except ProtocolError as exc:
            self._write_error(req_id, exc.code, exc.message, exc.data)
            return None
        except Exception as exc:
            logger.exception("Handler error for %s", method)
            self._write_error(req_id, INTERNAL_ERROR, str(exc) or "Internal error")
            return None

        if isinstance(outcome, Deferred):
            executor = self._write_executor if outcome.writes else self._executor
            return executor.submit(self._complete, req_id, method, outcome)
        self._write_result(req_id, outcome)
        return None

    def _complete(self, req_id, method: str, deferred: Deferred):
        try:
            try:
                result = deferred.work()
            except Exception as exc:
                if deferred.on_error is None:
                    raise
                logger.warning("%s failed: %s", method, exc)
                self._write_result(req_id, deferred.on_error(exc))
                return
            self._write_result(req_id, deferred.on_success(result))
        except Exception as exc:
            logger.error("Handler error for %s: %s", method, exc)
            self._write_error(req_id, INTERNAL_ERROR, str(exc) or "Internal error")

    # -- Dispatch ----------------------------------------------------------

    def _dispatch(self, method: str, params: dict):
        known = _lookup(Method, method)
        if known is not None:
            handlers = {
                Method.INITIALIZE: self._handle_initialize,
                Method.INITIALIZED: lambda _p: {},
                Method.TOOLS_LIST: self._handle_list_tools,
                Method.TOOLS_CALL: self._handle_call_tool,
            }
            return handlers[known](params)
        if method.startswith(LEGACY_PREFIX):
            return self._handle_legacy(method, params)
        raise ProtocolError(METHOD_NOT_FOUND, f"Unknown method: {method}")

    def _handle_initialize(self, _params: dict) -> dict:
        return {
            "protocolVersion": PROTOCOL_VERSION,
            "capabilities": {"tools": {"listChanged": False}},
            "serverInfo": {"name": SERVER_NAME, "version": SERVER_VERSION},
            "instructions": (
                "Jotter MCP exposes tools for creating, editing, searching, "
                "enriching notes, and listing today's top signals."
            ),
        }

    def _handle_list_tools(self, _params: dict) -> dict:
        return {"tools": TOOLS}

    def _handle_call_tool(self, params: dict) -> Deferred:
        name = params.get("name")
        args = params.get("arguments")
        if not isinstance(args, dict):
            args = {}

        tool = _lookup(Tool, name) if isinstance(name, str) else None
        if tool is None:
            raise ProtocolError(INVALID_PARAMS, f"Unknown tool: {name}")

        handlers = {
            Tool.CREATE_NOTE: self._tool_create_note,
            Tool.EDIT_NOTE: self._tool_edit_note,
            Tool.DELETE_NOTE: self._tool_delete_note,
            Tool.SEARCH_NOTES: self._tool_search_notes,
            Tool.ENRICH_NOTE: self._tool_enrich_note,
            Tool.TOP_SIGNALS_TODAY: self._tool_top_signals_today,
            Tool.LIST_NOTES: self._tool_list_notes,
            Tool.GET_NOTE: self._tool_get_note,
        }
        # argument checks happen here, before anything is deferred
        work = handlers[tool](args)
        return Deferred(
            work,
            on_success=tool_result,
            on_error=tool_failure,
            writes=tool in WRITE_TOOLS,
        )

    # -- Tools (each validates, then returns the deferred API call) --------

    def _tool_create_note(self, args: dict):
        text = must_string(args, "text")
        return lambda: self.api.post("/notes", {"text": text})

    def _tool_edit_note(self, args: dict):
        note_id = must_string(args, "id")
        text = must_string(args, "text")
        return lambda: self.api.patch(note_path(note_id), {"text": text})

    def _tool_delete_note(self, args: dict):
        note_id = must_string(args, "id")

        def work():
            self.api.delete(note_path(note_id))
            return {"ok": True}

        return work

    def _tool_search_notes(self, args: dict):
        query = {
            "q": "" if args.get("q") is None else str(args.get("q")),
            "tag": "" if args.get("tag") is None else str(args.get("tag")),
        }
        if args.get("semantic"):
            query["semantic"] = "true"
        return lambda: self.api.get("/search?" + urlencode(query))

    def _tool_enrich_note(self, args: dict):
        note_id = must_string(args, "id")
        return lambda: self._enrich_and_fetch(note_id)

    def _tool_top_signals_today(self, args: dict):
        raw = args.get("limit")
        limit = clamp_int(
            SIGNALS_DEFAULT_LIMIT if raw is None else raw,
            SIGNALS_MIN_LIMIT,
            SIGNALS_MAX_LIMIT,
        )
        return lambda: self.api.get(f"/signals/top?limit={limit}")

    def _tool_list_notes(self, _args: dict):
        return lambda: self.api.get("/notes")

    def _tool_get_note(self, args: dict):
        note_id = must_string(args, "id")
        return lambda: self.api.get(note_path(note_id))

    # -- Legacy dispatcher -------------------------------------------------

    def _handle_legacy(self, method: str, params: dict):
        """Pre-MCP contract: unknown names get an ``error`` field in the result.

        Parameters are passed through unchecked; a missing id fails at the
        API as not found.
        """
        legacy = _lookup(LegacyMethod, method)
        if legacy is None:
            return {"error": f"unknown method: {method}"}

        api = self.api
        note_id = params.get("id")
        handlers = {
            LegacyMethod.LIST: lambda: api.get("/notes"),
            LegacyMethod.GET: lambda: api.get(note_path(note_id)),
            LegacyMethod.CREATE: lambda: api.post("/notes", {"text": params.get("text")}),
            LegacyMethod.UPDATE: lambda: api.patch(note_path(note_id), {"text": params.get("text")}),
            LegacyMethod.DELETE: lambda: api.delete(note_path(note_id)),
            LegacyMethod.ENRICH: lambda: self._enrich_and_fetch(note_id),
            LegacyMethod.SEARCH: lambda: api.get("/search?" + urlencode({
                "q": params.get("q") or "",
                "tag": params.get("tag") or "",
            })),
        }
        return Deferred(handlers[legacy], writes=legacy in WRITE_LEGACY_METHODS)

    def _enrich_and_fetch(self, note_id):
        self.api.post(note_path(note_id, "/enrich"), {})
        return self.api.get(note_path(note_id))

    # -- Output ------------------------------------------------------------

    def _write_result(self, req_id, result):
        if req_id is None:
            return
        self._write({"jsonrpc": "2.0", "id": req_id, "result": result})

    def _write_error(self, req_id, code: int, message: str, data=None):
        if req_id is None:
            return
        error = {"code": code, "message": message}
        if data is not None:
            error["data"] = data
        self._write({"jsonrpc": "2.0", "id": req_id, "error": error})

    def _write(self, obj: dict):
        with self._write_lock:
            self.out.write(encode_frame(obj))
            self.out.flush()


TOOLS = [
    {
        "name": Tool.CREATE_NOTE.value,
        "description": "Create a note with free text.",
        "inputSchema": {
            "type": "object",
            "properties": {"text": {"type": "string", "minLength": 1}},
            "required": ["text"],
        },
    },
    {
        "name": Tool.EDIT_NOTE.value,
        "description": "Update note text by id.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "id": {"type": "string", "minLength": 1},
                "text": {"type": "string", "minLength": 1},
            },
            "required": ["id", "text"],
        },
    },
    {
        "name": Tool.DELETE_NOTE.value,
        "description": "Delete a note by id.",
        "inputSchema": {
            "type": "object",
            "properties": {"id": {"type": "string", "minLength": 1}},
            "required": ["id"],
        },
    },
    {
        "name": Tool.SEARCH_NOTES.value,
        "description": "Search notes by free text and/or tag; optional semantic mode.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "q": {"type": "string", "default": ""},
                "tag": {"type": "string", "default": ""},
                "semantic": {"type": "boolean", "default": False},
            },
        },
    },
    {
        "name": Tool.ENRICH_NOTE.value,
        "description": "Summarize, tag, and classify a note as signal/noise.",
        "inputSchema": {
            "type": "object",
            "properties": {"id": {"type": "string", "minLength": 1}},
            "required": ["id"],
        },
    },
    {
        "name": Tool.TOP_SIGNALS_TODAY.value,
        "description": "Return today's top signal notes (AI-ranked when configured).",
        "inputSchema": {
            "type": "object",
            "properties": {
                "limit": {
                    "type": "integer",
                    "minimum": SIGNALS_MIN_LIMIT,
                    "maximum": SIGNALS_MAX_LIMIT,
                    "default": SIGNALS_DEFAULT_LIMIT,
                },
            },
        },
    },
    {
        "name": Tool.LIST_NOTES.value,
        "description": "List all notes (most recent first).",
        "inputSchema": {"type": "object", "properties": {}},
    },
    {
        "name": Tool.GET_NOTE.value,
        "description": "Get a note by id.",
        "inputSchema": {
            "type": "object",
            "properties": {"id": {"type": "string", "minLength": 1}},
            "required": ["id"],
        },
    },
]


def main(argv=None):
    parser = argparse.ArgumentParser(description="Jotter MCP server over stdio")
    parser.add_argument("--api-url", default=None, help="Jotter API base URL (default: $API_URL or config)")
    parser.add_argument("--workers", type=int, default=DEFAULT_WORKERS, help="Concurrent tool calls")
    parser.add_argument("--log-level", type=str, default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )

    api_url = args.api_url or load_config()["api_url"]
    logger.info("Using API at %s", api_url)
    JotterMCP(ApiClient(api_url), max_workers=max(1, args.workers)).run()


if __name__ == "__main__":
    main()
