from __future__ import annotations

import json
import logging
import re
from typing import Any, List

from .errors import ParseError
from .models import ParsedInsight

logger = logging.getLogger(__name__)

# Closing fences must start a line; JSON strings cannot hold a raw newline.
_JSON_FENCE_RE = re.compile(r"```json[ \t]*\r?\n(.*?)\r?\n[ \t]*```", re.IGNORECASE | re.DOTALL)
_ANY_FENCE_RE = re.compile(r"```[\w+-]*[ \t]*\r?\n(.*?)\r?\n[ \t]*```", re.DOTALL)
_INLINE_FENCE_RE = re.compile(r"```(?:json\b)?(.*?)```", re.IGNORECASE | re.DOTALL)


def extract_json_payload(content: str) -> str:
    """
    Return the JSON candidate inside a model response: a ```json fenced block
    first, any fenced block second, a fence closed mid-line third,
    otherwise the whole text.
    """
    match = (
        _JSON_FENCE_RE.search(content)
        or _ANY_FENCE_RE.search(content)
        or _INLINE_FENCE_RE.search(content)
    )
    if match:
        return match.group(1).strip()
    return content.strip()


def parse_insights(content: str) -> List[ParsedInsight]:
    """
    Parse a model response into insight candidates.

    An empty ``insights`` array is a valid, empty result. Anything that does
    not yield an object with an ``insights`` array raises ParseError. Elements
    without a non-empty string title and summary are dropped so that their
    well-formed siblings still get through.
    """
    if not content or not content.strip():
        raise ParseError("Failed to parse AI response: empty response")

    payload = extract_json_payload(content)
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as exc:
        raise ParseError(f"Failed to parse AI response: {exc}") from exc

    if not isinstance(data, dict) or not isinstance(data.get("insights"), list):
        raise ParseError("Failed to parse AI response: missing 'insights' array")

    insights: List[ParsedInsight] = []
    for index, element in enumerate(data["insights"]):
        if not _is_well_formed(element):
            logger.warning("Dropping malformed insight #%d: %r", index, element)
            continue
        insights.append(ParsedInsight(title=element["title"], summary=element["summary"]))
    return insights


def _is_well_formed(element: Any) -> bool:
    if not isinstance(element, dict):
        return False
    for key in ("title", "summary"):
        value = element.get(key)
        if not isinstance(value, str) or not value.strip():
            return False
    return True
