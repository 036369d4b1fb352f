"""Jotter notes backend: store, enrichment, signal ranking and HTTP API."""

__version__ = "0.1.0"

from .enrich import enrich_note, heuristic_enrich, llm_enrich
from .llm import with_fallback
from .note_store import NoteNotFound, NoteStore
from .search import search_notes
from .signals import classify, merge_ranking, signal_candidates, top_signals
