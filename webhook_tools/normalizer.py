"""Manifest Normalizer - Expands shorthand tool entries.

Manifest authors may declare a tool as just `{name, webhook}`. This module
expands such entries into the canonical definition shape once, at load
time, so nothing downstream has to branch on the entry's shape.
"""

import copy
import logging
import re
from typing import Any, Dict, List
from urllib.parse import urlparse

from .types import default_input_schema, default_output_schema

logger = logging.getLogger(__name__)

_WORD_START = re.compile(r"\b\w")


def describe_webhook(webhook_url: str) -> str:
    """
    Derive a readable label for a webhook URL.

    Uses the last non-empty path segment ("send-invoice" -> "Send Invoice
    webhook"), then the host name, then the bare word "webhook" when the
    URL cannot be parsed.
    """
    if not isinstance(webhook_url, str):
        return "webhook"

    try:
        parsed = urlparse(webhook_url)
        hostname = parsed.hostname
    except ValueError:
        return "webhook"

    if not parsed.scheme or not hostname:
        return "webhook"

    segments = [segment for segment in parsed.path.split("/") if segment]
    if segments:
        readable = re.sub(r"[-_]", " ", segments[-1])
        readable = _WORD_START.sub(lambda match: match.group(0).upper(), readable)
        return f"{readable} webhook"

    return f"{hostname} webhook"


def _is_set(value: Any) -> bool:
    """Manifest values count as set unless missing, null, false, zero or empty text."""
    if value is None or value is False:
        return False
    if isinstance(value, (int, float)) and value == 0:
        return False
    return value != ""


def is_canonical(entry: Dict[str, Any]) -> bool:
    """Entries carrying description, url, input and output need no expansion."""
    return all(_is_set(entry.get(key)) for key in ("description", "url", "input", "output"))


def is_shorthand(entry: Dict[str, Any]) -> bool:
    """Entries with a `webhook` and no `url` are shorthand declarations."""
    return _is_set(entry.get("webhook")) and not _is_set(entry.get("url"))


class ManifestNormalizer:
    """
    Stateless expansion of shorthand entries into canonical tool entries.

    Canonical entries and unrecognized shapes pass through untouched; the
    validator is responsible for rejecting the latter. The input entry is
    never mutated.
    """

    def normalize(self, entry: Dict[str, Any]) -> Dict[str, Any]:
        """
        Expand one manifest entry.

        Args:
            entry: Raw tool entry (shorthand or canonical)

        Returns:
            Entry in canonical shape
        """
        if not isinstance(entry, dict) or is_canonical(entry):
            return entry

        if not is_shorthand(entry):
            return entry

        expanded = copy.deepcopy(entry)
        expanded["url"] = expanded.pop("webhook")

        if not _is_set(expanded.get("description")):
            expanded["description"] = f"Forward to {describe_webhook(expanded['url'])}"
        if not _is_set(expanded.get("method")):
            expanded["method"] = "POST"
        if not _is_set(expanded.get("input")):
            expanded["input"] = default_input_schema()
        if not _is_set(expanded.get("output")):
            expanded["output"] = default_output_schema()
        if "public" not in expanded:
            expanded["public"] = False

        logger.debug(f"Expanded shorthand tool {expanded.get('name')!r} -> {expanded['url']}")
        return expanded

    def normalize_all(self, entries: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Expand every entry of a manifest's tools list."""
        return [self.normalize(entry) for entry in entries]
