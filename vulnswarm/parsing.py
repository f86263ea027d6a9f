"""Pull structured data out of free-text oracle responses."""

import json
import logging
import re
from typing import Any

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json|JSON)?[ \t]*\n?([\s\S]*?)```")
_OPENERS = {"{": "}", "[": "]"}


class StructuredParseError(ValueError):
    """Raised when no JSON value can be recovered from a response."""

    def __init__(self, message: str, raw: str) -> None:
        self.raw = raw
        preview = raw[:200] + ("..." if len(raw) > 200 else "")
        super().__init__(f"{message}: {preview!r}")


def first_fenced_block(text: str) -> str | None:
    match = _FENCE_RE.search(text)
    return match.group(1).strip() if match else None


def first_balanced_region(text: str) -> str | None:
    """Return the first balanced {...} or [...] region, ignoring brackets inside strings."""
    start = next((i for i, ch in enumerate(text) if ch in _OPENERS), None)
    while start is not None:
        stack: list[str] = []
        in_string = False
        escaped = False
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch in _OPENERS:
                stack.append(_OPENERS[ch])
            elif ch in ("}", "]"):
                if not stack or stack.pop() != ch:
                    break
                if not stack:
                    return text[start:i + 1]
        # Unbalanced from this opener; try the next one
        start = next((j for j in range(start + 1, len(text)) if text[j] in _OPENERS), None)
    return None


def parse_structured(text: str) -> Any:
    """Parse JSON from an oracle response.

    Order: first fenced code block, else the first balanced object/array region.

    Raises:
        StructuredParseError: If neither yields valid JSON.
    """
    candidates: list[str] = []
    block = first_fenced_block(text)
    if block:
        candidates.append(block)
        region = first_balanced_region(block)
        if region and region != block:
            candidates.append(region)
    region = first_balanced_region(text)
    if region:
        candidates.append(region)

    for candidate in candidates:
        try:
            return json.loads(candidate)
        except json.JSONDecodeError:
            continue

    raise StructuredParseError("Failed to parse JSON from response", text)


def as_list(value: Any) -> list:
    """A JSON list as-is, a lone object as a one-item list, anything else as []."""
    if isinstance(value, list):
        return value
    if isinstance(value, dict):
        return [value]
    return []
