"""Tests for quiz-sentinel parsing and user-id binding."""

import json

from config.prompts.shopping import QUIZ_INSTRUCTION
from services.quiz_sentinel import (
    QUIZ_SENTINEL,
    bind_user_marker,
    build_quiz_instruction,
    parse_inbound_message,
    strip_user_marker,
)


def _quiz(payload) -> str:
    return QUIZ_SENTINEL + json.dumps(payload)


class TestUserMarker:
    def test_bind_and_strip(self):
        bound = bind_user_marker("Find me a toner", "u-42")
        assert bound == "Find me a toner\n\n[userId: u-42]"
        assert strip_user_marker(bound) == "Find me a toner"

    def test_no_user_leaves_content_alone(self):
        assert bind_user_marker("hello", None) == "hello"


class TestParseInbound:
    def test_plain_message_is_user_role(self):
        inbound = parse_inbound_message("  hi there  ", "u-1")
        assert inbound.role == "user"
        assert inbound.is_quiz is False
        assert inbound.content == "hi there\n\n[userId: u-1]"

    def test_quiz_message_becomes_hidden_system_instruction(self):
        message = _quiz({"answers": [
            {"question": "How does your skin feel at noon?", "answer": "Shiny"},
            {"question": "Do you get breakouts?", "answer": "Often"},
        ]})
        inbound = parse_inbound_message(message, "u-1")

        assert inbound.role == "system"
        assert inbound.is_quiz is True
        assert QUIZ_SENTINEL not in inbound.content
        assert inbound.content.startswith(QUIZ_INSTRUCTION)
        assert "**Q1:** How does your skin feel at noon?\n**A:** Shiny" in inbound.content
        assert "**Q2:** Do you get breakouts?" in inbound.content
        # Survey submissions never carry the user marker.
        assert "[userId:" not in inbound.content

    def test_malformed_quiz_payload_yields_empty_instruction(self):
        inbound = parse_inbound_message(QUIZ_SENTINEL + "{not json", "u-1")
        assert inbound.is_quiz is True
        assert inbound.content == ""

    def test_deeply_nested_quiz_payload_yields_empty_instruction(self):
        inbound = parse_inbound_message(QUIZ_SENTINEL + "[" * 100_000, "u-1")
        assert inbound.is_quiz is True
        assert inbound.content == ""

    def test_sentinel_must_prefix_the_message(self):
        inbound = parse_inbound_message(f"what is {QUIZ_SENTINEL}?")
        assert inbound.role == "user"
        assert inbound.is_quiz is False


class TestBuildQuizInstruction:
    def test_invalid_answers_are_skipped(self):
        payload = json.dumps({"answers": [
            {"question": "Q", "answer": ""},
            {"question": 3, "answer": "x"},
            "junk",
            {"question": "Kept?", "answer": "Yes"},
        ]})
        instruction = build_quiz_instruction(payload)
        assert "**Q1:** Kept?" in instruction
        assert "**Q2:**" not in instruction

    def test_no_answers(self):
        assert build_quiz_instruction(json.dumps({"answers": []})) == ""
        assert build_quiz_instruction(json.dumps(["a"])) == ""
        assert build_quiz_instruction("") == ""
