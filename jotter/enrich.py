#!/usr/bin/env python3
"""
Note enrichment: a short summary plus up to five topic tags.

Uses the configured language model when an API key is present and falls
back to a deterministic heuristic whenever the model is unavailable or
returns something unusable. Callers always get a sanitized
``{"summary", "tags"}`` dict; a model failure is only logged.
"""

import json
import logging
import re

from . import llm
from .llm import with_fallback
from .note_utils import dedupe
from .signals import classify, ensure_label

logger = logging.getLogger(__name__)

SUMMARY_MAX_WORDS = 25
MAX_TAGS = 5

_WS_RE = re.compile(r"\s+")
_TAG_TERM_RE = re.compile(r"\b[a-z0-9]{4,}\b")

SYSTEM_PROMPT = (
    "You summarize notes in ≤ 25 words and produce 1–5 short tags "
    "(lowercase, alphanumeric words).\n"
    'Output strict JSON: {"summary":"...","tags":["...", "..."]}'
)


def sanitize(summary=None, tags=None) -> dict:
    s = summary.strip() if isinstance(summary, str) else ""
    raw_tags = tags if isinstance(tags, list) else []
    t = [str(tag).strip().lower() for tag in raw_tags]
    return {"summary": s, "tags": [tag for tag in t if tag][:MAX_TAGS]}


def heuristic_enrich(text: str, llm_cfg: dict | None = None) -> dict:
    clean = _WS_RE.sub(" ", text or "").strip()
    summary = " ".join(clean.split(" ")[:SUMMARY_MAX_WORDS])
    terms = _TAG_TERM_RE.findall(clean.lower())
    return sanitize(summary, dedupe(terms)[:MAX_TAGS])


def llm_enrich(text: str, llm_cfg: dict | None = None) -> dict:
    content = llm.call_llm(
        [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": text},
        ],
        llm_cfg or {},
        temperature=0.2,
        json_mode=True,
    )
    parsed = json.loads(llm.strip_code_fence(content) or "{}")
    if not isinstance(parsed, dict):
        raise ValueError("Enrichment response is not a JSON object")
    return sanitize(parsed.get("summary"), parsed.get("tags"))


_enrich_with_fallback = with_fallback(llm_enrich, heuristic_enrich, label="LLM enrichment")


def enrich(text: str, llm_cfg: dict | None = None) -> dict:
    """Summarize and tag *text*; heuristic only when no key is configured."""
    if not llm.is_configured(llm_cfg):
        return heuristic_enrich(text)
    return _enrich_with_fallback(text, llm_cfg)


def enrich_note(note: dict, llm_cfg: dict | None = None) -> dict:
    """Return the ``{summary, tags}`` patch for *note*, signal/noise label included."""
    text = note.get("text") or ""
    result = enrich(text, llm_cfg)
    label = classify(text)
    # drop any label the model invented so exactly one survives
    tags = [t for t in result["tags"] if t not in ("signal", "noise")]
    return {"summary": result["summary"], "tags": ensure_label(dedupe(tags), label)}
