"""
Recovering a JSON object from model output.

Models wrap their JSON in chatter, code fences and trailing commas. Each
recovery strategy lives in its own function; ``parse_model_json`` runs them
in order and reports which one succeeded.
"""
import json
import logging
import re
from typing import Any, Dict, Iterable, Optional, Tuple

from datachat.services.keywords import LLM_PREFIXES

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")
_OBJECT_RE = re.compile(r"\{[\s\S]*?\}")

# Repairs applied in order before re-scanning for objects
_REPAIRS = (
    (re.compile(r"[\x00-\x1f\x7f-\x9f]"), ""),
    (re.compile(r"\\'"), "'"),
    (re.compile(r'\\"'), '"'),
    (re.compile(r"\n"), " "),
    (re.compile(r",\s*}"), "}"),
    (re.compile(r",\s*\]"), "]"),
    (re.compile(r"(['\"])?([a-zA-Z0-9_]+)(['\"])?:"), r'"\2":'),
)


def extract_json_candidate(text: Optional[str]) -> Optional[str]:
    """
    Strip known preambles and fences, then slice from the first "{" to the
    last "}".

    Returns None when the text holds no brace pair.
    """
    if not text:
        return None

    processed = text.strip()
    for prefix in LLM_PREFIXES:
        if processed.lower().startswith(prefix.lower()):
            processed = processed[len(prefix):].strip()

    if processed.endswith("```"):
        processed = processed[:-3].strip()

    first = processed.find("{")
    last = processed.rfind("}")
    if first == -1 or last <= first:
        return None
    return processed[first:last + 1]


def load_object(candidate: Optional[str]) -> Optional[Dict[str, Any]]:
    """Parse ``candidate`` as a non-empty JSON object, None on any failure."""
    if not candidate:
        return None
    try:
        parsed = json.loads(candidate)
    except (ValueError, RecursionError):
        return None
    if isinstance(parsed, dict) and parsed:
        return parsed
    return None


def from_code_fence(text: str) -> Optional[Dict[str, Any]]:
    match = _FENCE_RE.search(text)
    if not match:
        return None
    inner = match.group(1).strip()
    if inner.startswith("{") and inner.endswith("}"):
        return load_object(inner)
    return None


def from_first_object(text: str) -> Optional[Dict[str, Any]]:
    match = _OBJECT_RE.search(text)
    return load_object(match.group(0).strip()) if match else None


def repair(text: str) -> str:
    """Best-effort textual fixes for almost-JSON."""
    for pattern, replacement in _REPAIRS:
        text = pattern.sub(replacement, text)
    return text


def _first_loadable(candidates: Iterable[str]) -> Optional[Dict[str, Any]]:
    for candidate in candidates:
        parsed = load_object(candidate)
        if parsed is not None:
            return parsed
    return None


def from_repaired(text: str) -> Optional[Dict[str, Any]]:
    return _first_loadable(_OBJECT_RE.findall(repair(text)))


def parse_model_json(text: Optional[str]) -> Tuple[Optional[Dict[str, Any]], str]:
    """
    Run every recovery strategy in order.

    Returns:
        (parsed object or None, name of the stage that produced it or "none")
    """
    text = text or ""
    stages = (
        ("direct", lambda: load_object(extract_json_candidate(text))),
        ("code_fence", lambda: from_code_fence(text)),
        ("first_object", lambda: from_first_object(text)),
        ("repaired", lambda: from_repaired(text)),
    )
    for name, attempt in stages:
        parsed = attempt()
        if parsed is not None:
            logger.debug(f"Model output parsed at stage '{name}'")
            return parsed, name
    return None, "none"
