#!/usr/bin/env python3
"""Signal/noise classification and today's top-signal ranking."""

import json
import logging
import re
from datetime import datetime

from . import llm
from .llm import with_fallback
from .note_utils import dedupe, local_date, note_tags

logger = logging.getLogger(__name__)

SIGNAL = "signal"
NOISE = "noise"
DEFAULT_LIMIT = 5

_URGENT_RE = re.compile(
    r"(today|asap|urgent|deadline|due|blocker|critical|priority|p0|p1)",
    re.IGNORECASE,
)
_ACTIONABLE_RE = re.compile(
    r"(todo|fix|ship|implement|decide|review|schedule|follow up|send|create)",
    re.IGNORECASE,
)

RANKING_PROMPT = """You are an executive assistant. Given today's "signal" notes, pick the TOP {limit} to focus on NOW.
Rank by urgency, impact, deadlines, blockers, and dependency risk.
Return a JSON array of note IDs, most important first. Only JSON.

Notes:
{items}

JSON array of IDs only:"""


def classify(text: str) -> str:
    text = text or ""
    if _URGENT_RE.search(text) or _ACTIONABLE_RE.search(text):
        return SIGNAL
    return NOISE


def ensure_label(tags, label: str) -> list[str]:
    base = list(tags) if isinstance(tags, list) else []
    return dedupe(base + [label])


def is_today(iso: str, now: datetime | None = None) -> bool:
    """True when *iso* falls on the current local calendar day."""
    day = local_date(iso)
    if day is None:
        return False
    now = now or datetime.now()
    if now.tzinfo is not None:
        now = now.astimezone()
    return day == now.date()


def signal_candidates(notes: list[dict], now: datetime | None = None) -> list[dict]:
    candidates = [
        n for n in notes
        if SIGNAL in note_tags(n) and is_today(n.get("createdAt", ""), now)
    ]
    candidates.sort(key=lambda n: n.get("updatedAt", ""), reverse=True)
    return candidates


def build_ranking_prompt(candidates: list[dict], limit: int) -> str:
    items = "\n".join(
        f"#{i} ({n['id']})\n"
        f"TEXT: {n.get('text', '')}\n"
        f"SUMMARY: {n.get('summary') or '(none)'}\n"
        f"UPDATED_AT: {n.get('updatedAt', '')}\n"
        for i, n in enumerate(candidates, start=1)
    )
    return RANKING_PROMPT.format(limit=limit, items=items)


def merge_ranking(candidates: list[dict], ids, limit: int) -> list[dict]:
    """Ranked ids first, then every unranked candidate in recency order."""
    by_id = {n["id"]: n for n in candidates}
    ranked = []
    seen = set()
    for note_id in ids:
        if not isinstance(note_id, str) or note_id in seen or note_id not in by_id:
            continue
        seen.add(note_id)
        ranked.append(by_id[note_id])
    remainder = [n for n in candidates if n["id"] not in seen]
    return (ranked + remainder)[:limit]


def recency_rank(candidates: list[dict], limit: int, llm_cfg: dict | None = None) -> list[dict]:
    return candidates[:limit]


def llm_rank(candidates: list[dict], limit: int, llm_cfg: dict | None = None) -> list[dict]:
    content = llm.call_llm(
        [{"role": "user", "content": build_ranking_prompt(candidates, limit)}],
        llm_cfg or {},
        temperature=0,
    )
    ids = json.loads(llm.strip_code_fence(content) or "[]")
    if not isinstance(ids, list):
        raise ValueError("Ranking response is not a JSON array")
    return merge_ranking(candidates, ids, limit)


_rank_with_fallback = with_fallback(llm_rank, recency_rank, label="LLM ranking")


def top_signals(
    notes: list[dict],
    limit: int = DEFAULT_LIMIT,
    llm_cfg: dict | None = None,
    now: datetime | None = None,
) -> list[dict]:
    """Today's signal notes, model-ranked when configured, else most recent first."""
    candidates = signal_candidates(notes, now)
    if not candidates or not llm.is_configured(llm_cfg):
        return recency_rank(candidates, limit)
    return _rank_with_fallback(candidates, limit, llm_cfg)
