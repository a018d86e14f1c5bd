"""Tests for raw page content sanitization."""
import pytest

from citesearch.tools.content_sanitizer import MAX_CONTENT_CHARS, sanitize


class TestCleaning:
    def test_strips_tags_and_collapses_whitespace(self):
        raw = "<p>Hello&nbsp;<b>world</b>   and\n\n\n  friends</p>"
        assert sanitize(raw) == "Hello world and friends"

    def test_decodes_fixed_entities_then_drops_disallowed_characters(self):
        raw = "Tom&#39;s &quot;quote&quot; &amp; &apos;more&apos; &lt;tag&gt;"
        # "&" "<" ">" are decoded first and then removed by the allow-list.
        assert sanitize(raw) == "Tom's \"quote\" 'more' tag"

    def test_keeps_basic_punctuation(self):
        text = "Yes, it works (mostly): really? Sure! a-b; 'c' \"d\"."
        assert sanitize(text) == text

    def test_drops_non_ascii_word_characters(self):
        assert sanitize("Café ☕ latte") == "Caf latte"

    @pytest.mark.parametrize("raw", ["", None, 42, "   ", "<br/><hr>"])
    def test_empty_or_invalid_input_returns_empty_string(self, raw):
        assert sanitize(raw) == ""


class TestTruncation:
    def test_short_text_is_untouched(self):
        text = "A short passage. " * 5
        assert sanitize(text) == text.strip()

    def test_cuts_at_sentence_end_within_last_fifth(self):
        raw = "A" * 250 + ". " + "b " * 40
        assert sanitize(raw) == "A" * 250 + "."

    def test_falls_back_to_last_space_with_ellipsis(self):
        raw = "word " * 100
        assert sanitize(raw) == " ".join(["word"] * 60) + "..."

    def test_ignores_sentence_end_before_last_fifth(self):
        raw = "Short sentence. " + "x" * 400
        assert sanitize(raw) == "Short sentence...."

    def test_no_whitespace_hard_cut(self):
        assert sanitize("x" * 400) == "x" * MAX_CONTENT_CHARS + "..."

    @pytest.mark.parametrize(
        "raw",
        [
            "word " * 200,
            "<div>" + "Sentence number one. " * 40 + "</div>",
            "y" * 1000,
            "mixed &amp; <i>markup</i>, lots of text! " * 30,
        ],
    )
    def test_output_never_exceeds_limit_plus_ellipsis(self, raw):
        assert len(sanitize(raw)) <= MAX_CONTENT_CHARS + len("...")


@pytest.mark.parametrize(
    "raw",
    [
        "Plain clean text.",
        "<p>Hello&nbsp;<b>world</b></p>",
        "Symbols © and ® between words",
        "Tabs\tand\nnewlines\r\nmixed   in",
        "&amp;lt;script&amp;gt;alert(1)&amp;lt;/script&amp;gt;",
    ],
)
def test_sanitize_is_idempotent_below_limit(raw):
    once = sanitize(raw)
    assert len(once) < MAX_CONTENT_CHARS
    assert sanitize(once) == once
