from __future__ import annotations

import re

from bs4 import BeautifulSoup
from bs4.element import CData, Comment, Declaration, Doctype, ProcessingInstruction

DEFAULT_MAX_CHARS = 8000

# Markup-only nodes that get_text() could otherwise surface.
_NON_TEXT_NODES = (Comment, CData, Declaration, Doctype, ProcessingInstruction)
_WHITESPACE_RE = re.compile(r"\s+")


def extract_text(html: str, max_chars: int = DEFAULT_MAX_CHARS) -> str:
    """
    Reduce raw HTML to bounded plain text for model input. Script/style
    elements are dropped with their content, comments and other markup-only
    nodes are discarded, whitespace is collapsed and the result is cut to
    ``max_chars``.
    """
    if not html:
        return ""

    soup = BeautifulSoup(html, "html.parser")
    for element in soup(["script", "style"]):
        element.decompose()
    for node in soup.find_all(string=lambda s: isinstance(s, _NON_TEXT_NODES)):
        node.extract()

    text = _WHITESPACE_RE.sub(" ", soup.get_text(separator=" ")).strip()
    # Cutting mid-run can leave a trailing space; strip it so re-extraction is a no-op.
    return text[: max(max_chars, 0)].rstrip()
