"""
scorgs.services.markdown — Markdown validation & metrics for HR documents
==========================================================================

Documents are stored as raw markdown and rendered by the frontend, so the
backend's job is to refuse content that could carry script and to compute
the word count / reading time shown in listings.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field

MAX_CONTENT_LENGTH = 1_000_000
MAX_LINK_COUNT = 100
MAX_IMAGE_COUNT = 50
MAX_HTML_TAGS = 50
WORDS_PER_MINUTE = 200

DANGEROUS_PATTERNS: tuple[tuple[str, re.Pattern], ...] = (
    ("javascript: URL", re.compile(r"javascript:", re.IGNORECASE)),
    ("vbscript: URL", re.compile(r"vbscript:", re.IGNORECASE)),
    ("data: URL", re.compile(r"data:(?!image/)", re.IGNORECASE)),
    ("inline event handler", re.compile(r"\bon\w+\s*=", re.IGNORECASE)),
    ("<script> tag", re.compile(r"<script", re.IGNORECASE)),
    ("<iframe> tag", re.compile(r"<iframe", re.IGNORECASE)),
    ("<object> tag", re.compile(r"<object", re.IGNORECASE)),
    ("<embed> tag", re.compile(r"<embed", re.IGNORECASE)),
    ("<form> tag", re.compile(r"<form", re.IGNORECASE)),
    ("<link> tag", re.compile(r"<link", re.IGNORECASE)),
    ("<meta> tag", re.compile(r"<meta", re.IGNORECASE)),
    ("<style> tag", re.compile(r"<style", re.IGNORECASE)),
)

_LINK_RE = re.compile(r"(?<!!)\[([^\]]*)\]\(([^)]+)\)")
_IMAGE_RE = re.compile(r"!\[([^\]]*)\]\(([^)]+)\)")
_HTML_TAG_RE = re.compile(r"<[^>]+>")
_HEADING_RE = re.compile(r"^(#{1,6})\s", re.MULTILINE)

# Syntax stripped before counting words.
_STRIP_PATTERNS: tuple[tuple[re.Pattern, str], ...] = (
    (re.compile(r"```.*?```", re.DOTALL), " "),
    (re.compile(r"`([^`]*)`"), r"\1"),
    (_IMAGE_RE, r"\1"),
    (_LINK_RE, r"\1"),
    (_HTML_TAG_RE, " "),
    (re.compile(r"^\s{0,3}#{1,6}\s*", re.MULTILINE), ""),
    (re.compile(r"^\s{0,3}>\s?", re.MULTILINE), ""),
    (re.compile(r"^\s*([-*+]|\d+\.)\s+", re.MULTILINE), ""),
    (re.compile(r"^\s*([-*_]\s*){3,}$", re.MULTILINE), " "),
    (re.compile(r"[*_~|]+"), " "),
)


@dataclass
class MarkdownValidation:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    word_count: int = 0
    estimated_reading_time: int = 0

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def to_json(self) -> dict:
        return {
            "is_valid": self.is_valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "word_count": self.word_count,
            "estimated_reading_time": self.estimated_reading_time,
        }


def plain_text(content: str) -> str:
    text = content or ""
    for pattern, repl in _STRIP_PATTERNS:
        text = pattern.sub(repl, text)
    return re.sub(r"\s+", " ", text).strip()


def word_count(content: str) -> int:
    text = plain_text(content)
    return len(text.split()) if text else 0


def estimated_reading_time(content: str) -> int:
    """Minutes at 200 wpm, rounded up; 0 only for content with no words."""
    words = word_count(content)
    if words == 0:
        return 0
    return max(1, math.ceil(words / WORDS_PER_MINUTE))


def validate_markdown(content: str | None) -> MarkdownValidation:
    result = MarkdownValidation()
    if content is None or not isinstance(content, str) or not content.strip():
        result.errors.append("Content cannot be empty")
        return result

    if len(content) > MAX_CONTENT_LENGTH:
        result.errors.append(f"Content exceeds maximum length of {MAX_CONTENT_LENGTH} characters")

    for label, pattern in DANGEROUS_PATTERNS:
        if pattern.search(content):
            result.errors.append(f"Content contains a disallowed {label}")

    links = _LINK_RE.findall(content)
    if len(links) > MAX_LINK_COUNT:
        result.warnings.append(f"Content contains {len(links)} links (more than {MAX_LINK_COUNT})")
    images = _IMAGE_RE.findall(content)
    if len(images) > MAX_IMAGE_COUNT:
        result.warnings.append(f"Content contains {len(images)} images (more than {MAX_IMAGE_COUNT})")
    for alt, _src in images:
        if not alt.strip():
            result.warnings.append("Image is missing alt text")
            break
    tags = _HTML_TAG_RE.findall(content)
    if len(tags) > MAX_HTML_TAGS:
        result.warnings.append(f"Content contains {len(tags)} HTML tags which may be stripped")

    if content.count("```") % 2:
        result.warnings.append("Unclosed code block")

    previous = 0
    for match in _HEADING_RE.finditer(content):
        level = len(match.group(1))
        if previous and level > previous + 1:
            result.warnings.append(f"Heading level jumps from h{previous} to h{level}")
            break
        previous = level

    result.word_count = word_count(content)
    result.estimated_reading_time = estimated_reading_time(content)
    return result
