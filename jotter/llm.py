#!/usr/bin/env python3
"""Chat-completion caller for the summarization and ranking prompts.

Talks to any OpenAI-compatible ``/chat/completions`` endpoint over plain
HTTP. Every failure (no key, transport error, non-2xx, malformed body)
surfaces as an exception; callers decide how to fall back.
"""

import functools
import json
import logging
import os
import urllib.error
import urllib.request

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "https://api.openai.com/v1"
DEFAULT_MODEL = "gpt-4o-mini"
REQUEST_TIMEOUT = 60


class LLMError(RuntimeError):
    pass


def resolve_llm_config(config: dict | None = None, environ=None) -> dict:
    """Combine the ``llm_provider`` config block with environment overrides."""
    environ = os.environ if environ is None else environ
    block = {}
    if isinstance(config, dict):
        candidate = config.get("llm_provider", config)
        if isinstance(candidate, dict):
            block = candidate
    return {
        "endpoint": environ.get("OPENAI_BASE_URL") or block.get("endpoint") or DEFAULT_ENDPOINT,
        "api_key": environ.get("OPENAI_API_KEY") or block.get("api_key") or "",
        "model": environ.get("OPENAI_MODEL") or block.get("model") or DEFAULT_MODEL,
    }


def is_configured(llm_cfg: dict | None) -> bool:
    return bool(llm_cfg and str(llm_cfg.get("api_key") or "").strip())


def _chat_url(endpoint: str) -> str:
    endpoint = (endpoint or DEFAULT_ENDPOINT).strip().rstrip("/")
    if endpoint.endswith("/chat/completions"):
        return endpoint
    return endpoint + "/chat/completions"


def call_llm(
    messages: list[dict],
    llm_cfg: dict,
    temperature: float = 0.2,
    json_mode: bool = False,
) -> str:
    """POST one chat completion and return the first choice's content."""
    api_key = (llm_cfg or {}).get("api_key")
    if not api_key:
        raise LLMError("No API key configured for llm_provider")

    payload = {
        "model": llm_cfg.get("model") or DEFAULT_MODEL,
        "messages": messages,
        "temperature": temperature,
    }
    if json_mode:
        payload["response_format"] = {"type": "json_object"}

    req = urllib.request.Request(
        _chat_url(llm_cfg.get("endpoint")),
        data=json.dumps(payload).encode(),
        headers={
            "Content-Type": "application/json",
            "Authorization": f"Bearer {api_key}",
        },
        method="POST",
    )
    try:
        with urllib.request.urlopen(req, timeout=REQUEST_TIMEOUT) as resp:
            data = json.loads(resp.read().decode())
    except urllib.error.HTTPError as exc:
        raise LLMError(f"LLM endpoint returned HTTP {exc.code}") from exc

    try:
        content = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError) as exc:
        raise LLMError("Malformed chat completion response") from exc
    if not isinstance(content, str):
        raise LLMError("Chat completion content is not text")
    return content


def with_fallback(primary, fallback, label: str = "primary"):
    """Compose two strategies: run *primary*, on any failure run *fallback*.

    Both receive the same arguments. Nothing is retried.
    """

    @functools.wraps(primary)
    def run(*args, **kwargs):
        try:
            return primary(*args, **kwargs)
        except Exception as exc:
            logger.warning("%s failed, using fallback: %s", label, exc)
            return fallback(*args, **kwargs)

    return run


def strip_code_fence(text: str) -> str:
    """Remove a surrounding markdown code block, if the model added one."""
    text = (text or "").strip()
    if text.startswith("```"):
        lines = text.split("\n")
        text = "\n".join(lines[1:-1] if lines[-1].startswith("```") else lines[1:])
    return text.strip()
