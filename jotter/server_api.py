#!/usr/bin/env python3
"""API handlers for the Jotter HTTP server.

Each handler returns ``(status, payload)``; routing and serialization live
in server_http.
"""

import logging
import threading
import uuid

from .enrich import enrich_note
from .llm import resolve_llm_config
from .note_store import NoteNotFound, NoteStore
from .note_utils import utc_now_iso
from .search import search_notes
from .server_storage import error_response, load_config
from .signals import DEFAULT_LIMIT, top_signals

logger = logging.getLogger(__name__)

MAX_SIGNALS_LIMIT = 20

_store = None
_store_lock = threading.Lock()


def get_store() -> NoteStore:
    global _store
    with _store_lock:
        if _store is None:
            _store = NoteStore(load_config()["db_path"])
        return _store


def set_store(store: NoteStore | None):
    global _store
    with _store_lock:
        _store = store


def _llm_config() -> dict:
    return resolve_llm_config(load_config())


def _not_found(note_id: str):
    return 404, error_response(
        "NOTE_NOT_FOUND",
        f"Note not found: {note_id}",
        "Check the note id and try again.",
    )


def _first(query_params: dict, key: str, default: str = "") -> str:
    values = query_params.get(key) or [default]
    return values[0]


def _parse_limit(raw, default: int = DEFAULT_LIMIT, upper: int = MAX_SIGNALS_LIMIT) -> int:
    try:
        value = int(str(raw))
    except (TypeError, ValueError):
        value = default
    return max(1, min(value, upper))


# -- Notes CRUD ------------------------------------------------------------


def handle_get_notes():
    notes = get_store().list()
    notes.sort(key=lambda n: n.get("createdAt", ""), reverse=True)
    return 200, notes


def handle_get_note(note_id: str):
    note = get_store().get(note_id)
    if note is None:
        return _not_found(note_id)
    return 200, note


def handle_post_note(body: dict):
    text = body.get("text")
    if not isinstance(text, str) or not text.strip():
        return 400, error_response(
            "INVALID_TEXT",
            "Field 'text' must be a non-empty string",
            "Send a JSON body like {\"text\": \"...\"}.",
        )
    now = utc_now_iso()
    note = {"id": str(uuid.uuid4()), "text": text, "createdAt": now, "updatedAt": now}
    created = get_store().create(note)
    logger.info("Created note %s", created["id"])
    return 201, created


def handle_patch_note(note_id: str, body: dict):
    text = body.get("text")
    if text is not None and not isinstance(text, str):
        return 400, error_response("INVALID_TEXT", "Field 'text' must be a string")
    try:
        updated = get_store().update(note_id, {"text": text or None})
    except NoteNotFound:
        return _not_found(note_id)
    return 200, updated


def handle_delete_note(note_id: str):
    removed = get_store().remove(note_id)
    if removed:
        logger.info("Deleted note %s", note_id)
    return 200, {"ok": removed}


# -- Intelligence ------------------------------------------------------------


def handle_post_enrich(note_id: str):
    """Enrich a note and always add exactly one of the signal/noise tags."""
    store = get_store()
    note = store.get(note_id)
    if note is None:
        return _not_found(note_id)

    patch = enrich_note(note, _llm_config())
    try:
        updated = store.update(note["id"], patch)
    except NoteNotFound:
        return _not_found(note_id)
    except Exception as exc:
        logger.exception("Enrich failed for note %s", note_id)
        return 500, error_response("ENRICH_FAILED", str(exc) or "enrich failed")
    return 200, updated


def handle_get_search(query_params: dict):
    # ``semantic`` is accepted for compatibility; the filter is the same
    q = _first(query_params, "q")
    tag = _first(query_params, "tag")
    return 200, search_notes(get_store().list(), q, tag)


def handle_get_top_signals(query_params: dict):
    limit = _parse_limit(_first(query_params, "limit", str(DEFAULT_LIMIT)))
    return 200, top_signals(get_store().list(), limit, _llm_config())
