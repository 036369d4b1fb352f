#!/usr/bin/env python3
"""HTTP routing and server startup for Jotter."""

import json
import logging
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from urllib.parse import parse_qs, unquote, urlparse

from .server_api import (
    handle_delete_note,
    handle_get_note,
    handle_get_notes,
    handle_get_search,
    handle_get_top_signals,
    handle_patch_note,
    handle_post_enrich,
    handle_post_note,
)
from .server_storage import MAX_BODY_SIZE, error_response

logger = logging.getLogger(__name__)

API_PREFIX = "/api"
NOTES_PREFIX = API_PREFIX + "/notes/"


class BodyError(ValueError):
    def __init__(self, status: int, code: str, message: str):
        super().__init__(message)
        self.status = status
        self.code = code


class JotterHandler(BaseHTTPRequestHandler):
    """Routes /api requests to the handlers in server_api."""

    def log_message(self, format, *args):
        logger.debug("%s - %s", self.address_string(), format % args)

    def send_cors_headers(self):
        self.send_header("Access-Control-Allow-Origin", "*")
        self.send_header("Access-Control-Allow-Methods", "GET, POST, PATCH, DELETE, OPTIONS")
        self.send_header("Access-Control-Allow-Headers", "Content-Type")

    def send_json(self, status: int, data):
        body = json.dumps(data, ensure_ascii=False, default=str).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self.send_cors_headers()
        self.end_headers()
        self.wfile.write(body)

    def send_text(self, status: int, text: str):
        body = text.encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "text/plain; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def send_not_found(self):
        self.send_json(
            404,
            error_response("NOT_FOUND", "Not found", "Check the endpoint path and method."),
        )

    def do_OPTIONS(self):
        self.send_response(204)
        self.send_cors_headers()
        self.end_headers()

    def read_body(self) -> dict:
        try:
            length = int(self.headers.get("Content-Length", 0))
        except ValueError:
            raise BodyError(400, "INVALID_CONTENT_LENGTH", "Invalid Content-Length header")
        if length <= 0:
            return {}
        if length > MAX_BODY_SIZE:
            raise BodyError(413, "BODY_TOO_LARGE", "Request body too large")
        raw = self.rfile.read(length)
        try:
            data = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            raise BodyError(400, "INVALID_JSON", "Request body is not valid JSON")
        if not isinstance(data, dict):
            raise BodyError(400, "INVALID_JSON_OBJECT", "Request body must be a JSON object")
        return data

    def _route(self):
        parsed = urlparse(self.path)
        return parsed.path.rstrip("/"), parse_qs(parsed.query)

    def _note_id(self, path: str, suffix: str = "") -> str | None:
        if not path.startswith(NOTES_PREFIX) or not path.endswith(suffix):
            return None
        note_id = unquote(path[len(NOTES_PREFIX):len(path) - len(suffix)])
        if not note_id or "/" in note_id:
            return None
        return note_id

    def _dispatch(self, handler):
        try:
            status, data = handler()
        except BodyError as exc:
            status, data = exc.status, error_response(exc.code, str(exc))
        except Exception as exc:
            logger.exception("Unhandled error for %s %s", self.command, self.path)
            status, data = 500, error_response("INTERNAL_ERROR", str(exc) or "Internal error")
        self.send_json(status, data)

    def do_GET(self):
        path, query_params = self._route()

        if path == "/health":
            return self.send_text(200, "ok")

        if path == API_PREFIX + "/notes":
            return self._dispatch(handle_get_notes)

        if path == API_PREFIX + "/search":
            return self._dispatch(lambda: handle_get_search(query_params))

        if path == API_PREFIX + "/signals/top":
            return self._dispatch(lambda: handle_get_top_signals(query_params))

        note_id = self._note_id(path)
        if note_id is not None:
            return self._dispatch(lambda: handle_get_note(note_id))

        self.send_not_found()

    def do_POST(self):
        path, _ = self._route()

        if path == API_PREFIX + "/notes":
            return self._dispatch(lambda: handle_post_note(self.read_body()))

        note_id = self._note_id(path, "/enrich")
        if note_id is not None:
            return self._dispatch(lambda: handle_post_enrich(note_id))

        self.send_not_found()

    def do_PATCH(self):
        path, _ = self._route()

        note_id = self._note_id(path)
        if note_id is not None:
            return self._dispatch(lambda: handle_patch_note(note_id, self.read_body()))

        self.send_not_found()

    def do_DELETE(self):
        path, _ = self._route()

        note_id = self._note_id(path)
        if note_id is not None:
            return self._dispatch(lambda: handle_delete_note(note_id))

        self.send_not_found()


def make_server(host: str, port: int) -> ThreadingHTTPServer:
    return ThreadingHTTPServer((host, port), JotterHandler)
