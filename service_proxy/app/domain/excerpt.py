"""
Markdown to plain-text teaser conversion.
"""

import re


ELLIPSIS = "…"

_IMAGE_DIRECTIVE = re.compile(r"!\[.*?\]\(.*?\)")
_LINK_DIRECTIVE = re.compile(r"\[([^\]]+)\]\([^)]+\)")
_MARKDOWN_PUNCTUATION = re.compile(r"[#*_>`-]+")
_WHITESPACE = re.compile(r"\s+")


def markdown_to_text(markdown: str) -> str:
    """Flatten markdown into a single line of visible text."""
    text = _IMAGE_DIRECTIVE.sub("", markdown)
    text = _LINK_DIRECTIVE.sub(r"\1", text)
    text = _MARKDOWN_PUNCTUATION.sub(" ", text)
    return _WHITESPACE.sub(" ", text).strip()


def make_excerpt(markdown: str, max_length: int = 220) -> str:
    """
    Build a teaser of at most ``max_length`` characters from markdown.

    Truncation happens on the last whitespace boundary at or before the
    limit and is marked with an ellipsis. A single word longer than the
    limit is cut hard.
    """
    text = markdown_to_text(markdown)
    if len(text) <= max_length:
        return text

    boundary = text.rfind(" ", 0, max_length + 1)
    short = text[:boundary] if boundary > 0 else text[:max_length]
    return short.rstrip() + ELLIPSIS
