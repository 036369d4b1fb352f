#!/usr/bin/env python3
"""Substring and tag filter over notes."""

from .note_utils import note_tags, note_text


def search_notes(notes: list[dict], q: str | None = None, tag: str | None = None) -> list[dict]:
    qq = (q or "").lower()
    tt = (tag or "").lower()

    results = []
    for note in notes:
        tags = note_tags(note)
        if tt and tt not in [t.lower() for t in tags]:
            continue
        if qq:
            blob = " ".join([note_text(note), note.get("summary") or "", " ".join(tags)])
            if qq not in blob.lower():
                continue
        results.append(note)
    return results
