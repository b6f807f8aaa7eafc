"""
tests/test_markdown.py — Markdown Validation Tests
====================================================
"""

from __future__ import annotations

import pytest

from scorgs.services.markdown import (
    estimated_reading_time,
    plain_text,
    validate_markdown,
    word_count,
)

HANDBOOK = """\
# Crew Handbook

Welcome aboard. Read the **rules** below.

## Rules

- Be on time
- Check your [loadout](https://example.com/loadout)

```
quantum drive spool
```
"""


class TestValidateMarkdown:

    def test_clean_document_is_valid(self):
        result = validate_markdown(HANDBOOK)
        assert result.is_valid
        assert result.errors == []
        assert result.warnings == []
        assert result.word_count > 0
        assert result.estimated_reading_time == 1

    @pytest.mark.parametrize("content", [None, "", "   \n\t"])
    def test_empty_content(self, content):
        result = validate_markdown(content)
        assert result.errors == ["Content cannot be empty"]
        assert not result.is_valid

    def test_script_tag_rejected(self):
        result = validate_markdown("Hello <script>alert(1)</script>")
        assert "Content contains a disallowed <script> tag" in result.errors

    def test_javascript_url_rejected(self):
        result = validate_markdown("[click](javascript:alert(1))")
        assert "Content contains a disallowed javascript: URL" in result.errors

    def test_inline_handler_rejected(self):
        result = validate_markdown('<img src="x.png" onerror="steal()">')
        assert "Content contains a disallowed inline event handler" in result.errors

    def test_iframe_rejected(self):
        assert not validate_markdown('<iframe src="https://evil.test"></iframe>').is_valid

    def test_unclosed_code_block_warns(self):
        result = validate_markdown("Text\n```\ncode without end")
        assert result.is_valid
        assert "Unclosed code block" in result.warnings

    def test_heading_jump_warns(self):
        result = validate_markdown("# Title\n\n### Deep section\n")
        assert "Heading level jumps from h1 to h3" in result.warnings

    def test_image_without_alt_warns(self):
        result = validate_markdown("Look: ![](https://example.com/ship.png)")
        assert "Image is missing alt text" in result.warnings

    def test_to_json(self):
        payload = validate_markdown("<script>").to_json()
        assert payload["is_valid"] is False
        assert payload["errors"]


class TestWordCount:

    def test_strips_markdown_syntax(self):
        assert plain_text("## Hello **world**") == "Hello world"
        assert word_count("## Hello **world**") == 2

    def test_link_text_counts_once(self):
        assert word_count("See [the docs](https://example.com/very/long/path)") == 3

    def test_code_blocks_excluded(self):
        assert word_count("one\n```\ntwo three four\n```\nfive") == 2

    def test_reading_time_rounds_up(self):
        assert estimated_reading_time("word " * 200) == 1
        assert estimated_reading_time("word " * 201) == 2

    def test_reading_time_zero_without_words(self):
        assert estimated_reading_time("***") == 0
        assert estimated_reading_time("one") == 1
