"""
Tests for session note content normalization.
"""

import pytest

from psyplex.services.content import (
    DEFAULT_CONTENT,
    RawContent,
    StructuredContent,
    as_note_content,
    default_content,
    normalize_content,
)


class TestAsNoteContent:

    def test_wraps_text_and_objects(self):
        assert as_note_content("hello") == RawContent("hello")
        assert as_note_content({"a": 1}) == StructuredContent({"a": 1})

    def test_already_wrapped_is_unchanged(self):
        wrapped = RawContent("x")
        assert as_note_content(wrapped) is wrapped

    def test_rejects_other_types(self):
        with pytest.raises(TypeError):
            as_note_content(42)


class TestNormalizeContent:

    def test_malformed_json_gives_default(self):
        assert normalize_content(RawContent("{not json")) == DEFAULT_CONTENT

    def test_json_array_gives_default(self):
        assert normalize_content(RawContent('["a", "b"]')) == DEFAULT_CONTENT

    def test_serialized_object_is_parsed_and_filled(self):
        result = normalize_content(RawContent('{"insights": {"mood": "low"}, "risk": "none"}'))

        assert result == {
            "insights": {"mood": "low"},
            "recommendations": {"nextSession": [], "homework": []},
            "risk": "none",
        }

    def test_plain_text_becomes_insight_text(self):
        result = normalize_content(RawContent("  Client reported better sleep.  "))

        assert result["insights"] == {"text": "Client reported better sleep."}
        assert result["recommendations"] == {"nextSession": [], "homework": []}

    def test_string_insights_are_wrapped(self):
        result = normalize_content(StructuredContent({"insights": "Calmer this week"}))

        assert result["insights"] == {"text": "Calmer this week"}

    def test_partial_recommendations_are_filled(self):
        result = normalize_content(StructuredContent({
            "insights": {},
            "recommendations": {"homework": ["breathing exercise"]},
        }))

        assert result["recommendations"] == {"homework": ["breathing exercise"], "nextSession": []}

    def test_input_is_not_mutated(self):
        data = {"recommendations": {"homework": ["walk"]}}

        normalize_content(StructuredContent(data))

        assert data == {"recommendations": {"homework": ["walk"]}}

    def test_default_content_is_a_fresh_copy(self):
        content = default_content()
        content["recommendations"]["homework"].append("x")

        assert DEFAULT_CONTENT["recommendations"]["homework"] == []
