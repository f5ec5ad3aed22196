"""
Session note content normalization.

Note content reaches the write boundary either as text (what the
transcription front end produces, sometimes a JSON document serialized
to a string) or as an already-structured object. It is wrapped once in a
tagged variant and normalized to the stored shape::

    {
        "insights": {...},
        "recommendations": {"nextSession": [...], "homework": [...]},
        ...any other keys the caller supplied
    }
"""

import copy
import json
from dataclasses import dataclass
from typing import Any, Union

import structlog

logger = structlog.get_logger(__name__)

DEFAULT_CONTENT: dict[str, Any] = {
    "insights": {},
    "recommendations": {"nextSession": [], "homework": []},
}


@dataclass(frozen=True)
class RawContent:
    """Text content, possibly a serialized JSON document."""
    text: str


@dataclass(frozen=True)
class StructuredContent:
    """Content that is already an object."""
    data: dict[str, Any]


NoteContent = Union[RawContent, StructuredContent]


def default_content() -> dict[str, Any]:
    """A fresh copy of the empty structured shape."""
    return copy.deepcopy(DEFAULT_CONTENT)


def as_note_content(value: Union[str, dict[str, Any], RawContent, StructuredContent]) -> NoteContent:
    if isinstance(value, (RawContent, StructuredContent)):
        return value
    if isinstance(value, dict):
        return StructuredContent(value)
    if isinstance(value, str):
        return RawContent(value)
    raise TypeError(f"unsupported note content type: {type(value).__name__}")


def normalize_content(content: NoteContent) -> dict[str, Any]:
    """
    Normalize note content to the stored shape. Never raises.

    Text that looks like JSON is parsed; if parsing fails or the document
    is not an object the default shape is used instead. Other text is kept
    as ``insights.text``. Structured content gets any missing top-level
    sections filled in from the default shape.
    """
    if isinstance(content, StructuredContent):
        return _fill_defaults(content.data)

    text = content.text.strip()
    if text[:1] in ("{", "["):
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError as e:
            logger.warning("note_content_unparseable", error=e.msg, position=e.pos)
            return default_content()
        if not isinstance(parsed, dict):
            logger.warning("note_content_not_object", parsed_type=type(parsed).__name__)
            return default_content()
        return _fill_defaults(parsed)

    shaped = default_content()
    shaped["insights"] = {"text": text}
    return shaped


def _fill_defaults(data: dict[str, Any]) -> dict[str, Any]:
    shaped = copy.deepcopy(data)

    insights = shaped.get("insights")
    if isinstance(insights, str):
        shaped["insights"] = {"text": insights}
    elif not isinstance(insights, dict):
        shaped["insights"] = {}

    recommendations = shaped.get("recommendations")
    if not isinstance(recommendations, dict):
        recommendations = {}
    recommendations.setdefault("nextSession", [])
    recommendations.setdefault("homework", [])
    shaped["recommendations"] = recommendations

    return shaped
