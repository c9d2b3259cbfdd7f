"""Tests for assistant reply post-processing."""

from services.reply_format import (
    FALLBACK_REPLY,
    format_reply,
    normalize_list_spacing,
    scrub_tool_language,
    split_assistant_reply,
)


class TestSplitAssistantReply:
    def test_extracts_suggested_actions(self):
        reply = (
            "Here is a routine for oily skin.\n\n"
            "**Suggested actions:**\n"
            "1. Add the cleanser to my cart\n"
            "- Show me a cheaper toner\n"
            "• Explain niacinamide\n"
            "• This fourth one is dropped"
        )
        parsed = split_assistant_reply(reply)
        assert parsed.main == "Here is a routine for oily skin."
        assert parsed.suggestions == [
            "Add the cleanser to my cart",
            "Show me a cheaper toner",
            "Explain niacinamide",
        ]

    def test_no_header(self):
        parsed = split_assistant_reply("Just text\r\nmore")
        assert parsed.main == "Just text\nmore"
        assert parsed.suggestions == []


class TestScrubToolLanguage:
    def test_tool_names_replaced(self):
        text = scrub_tool_language("I used the searchProductsByQuery tool to find these.")
        assert "searchProductsByQuery" not in text
        assert "product search" in text
        assert "tool" not in text

    def test_blank(self):
        assert scrub_tool_language("   ") == ""


def test_normalize_list_spacing_inserts_blank_line():
    text = "Try these:\n- Cleanser\n- Toner"
    assert normalize_list_spacing(text) == "Try these:\n\n- Cleanser\n- Toner"


def test_normalize_list_spacing_leaves_spaced_lists():
    text = "Try these:\n\n- Cleanser"
    assert normalize_list_spacing(text) == text


class TestFormatReply:
    def test_regular_reply(self):
        formatted = format_reply("Here you go.\n\nSuggestions:\n- Use the addToCart tool")
        assert formatted.reply == "Here you go."
        assert formatted.stored == "Here you go."
        assert formatted.suggestions == ["Use the cart update"]

    def test_empty_reply_falls_back_and_is_not_stored(self):
        formatted = format_reply("")
        assert formatted.reply == FALLBACK_REPLY
        assert formatted.stored == ""

    def test_reply_that_is_only_tool_words_falls_back(self):
        formatted = format_reply("tools")
        assert formatted.reply == FALLBACK_REPLY
        assert formatted.stored == ""
