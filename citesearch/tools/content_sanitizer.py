from __future__ import annotations

import re

MAX_CONTENT_CHARS = 300
ELLIPSIS = "..."
SENTENCE_ENDINGS = ".?!"

_TAG_RE = re.compile(r"<[^>]*>")
_WHITESPACE_RE = re.compile(r"\s+")
_BLANK_LINES_RE = re.compile(r"\n\s*\n")
_DISALLOWED_RE = re.compile(r"[^\w\s.,!?;:()\-'\"]", re.ASCII)

# Applied in order; "&amp;lt;" therefore decodes all the way to "<".
ENTITY_REPLACEMENTS = (
    ("&nbsp;", " "),
    ("&amp;", "&"),
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&quot;", '"'),
    ("&#39;", "'"),
    ("&apos;", "'"),
)


def _decode_entities(text: str) -> str:
    for entity, replacement in ENTITY_REPLACEMENTS:
        text = text.replace(entity, replacement)
    return text


def _truncate(text: str, max_chars: int) -> str:
    if len(text) <= max_chars:
        return text

    truncated = text[:max_chars]
    last_sentence_end = max(truncated.rfind(mark) for mark in SENTENCE_ENDINGS)
    if last_sentence_end > max_chars * 0.8:
        return truncated[: last_sentence_end + 1].strip()

    last_space = truncated.rfind(" ")
    if last_space > 0:
        return truncated[:last_space].strip() + ELLIPSIS
    return truncated.strip() + ELLIPSIS


def sanitize(raw_content: str, max_chars: int = MAX_CONTENT_CHARS) -> str:
    """Turn raw page HTML/text into a short, clean passage for model context.

    Strips tags, decodes a fixed set of entities, normalizes whitespace,
    drops characters outside a basic punctuation allow-list and cuts the
    result to ``max_chars``, preferring a sentence boundary within the last
    20% of the window and otherwise the last space plus an ellipsis.
    """
    if not raw_content or not isinstance(raw_content, str):
        return ""

    cleaned = _TAG_RE.sub(" ", raw_content)
    cleaned = _decode_entities(cleaned)
    cleaned = _WHITESPACE_RE.sub(" ", cleaned)
    cleaned = _BLANK_LINES_RE.sub("\n", cleaned).strip()
    cleaned = _DISALLOWED_RE.sub("", cleaned)
    # Dropped characters can leave doubled or edge spaces behind.
    cleaned = re.sub(r" {2,}", " ", cleaned).strip()
    return _truncate(cleaned, max_chars)
