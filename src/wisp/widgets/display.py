"""
Widgets that display values: text, images and gauges.
"""

from typing import Mapping

from ..expr.value import EMPTY, Value
from ..utils.errors import TypeMismatch
from .base import BaseWidget


class LabelWidget(BaseWidget):
    """
    Display text.

    Configuration:
        text: Text to show
        limit-width: Truncate to this many characters (0 = unlimited)

    Example:
        (label :text (str "CPU " cpu "%"))
    """

    widget_type = "label"
    attributes = {
        "text": EMPTY,
        "limit-width": Value.number(0),
        "wrap": Value.boolean(False),
    }

    def render_text(self, values: Mapping[str, Value]) -> str:
        text = values.get("text", EMPTY).as_string()
        try:
            limit = int(values.get("limit-width", Value.number(0)).as_number())
        except TypeMismatch:
            limit = 0
        if limit > 0 and len(text) > limit:
            return text[:limit] + "…"
        return text


class ImageWidget(BaseWidget):
    """Display an image file."""

    widget_type = "image"
    attributes = {
        "path": EMPTY,
        "image-width": Value.number(0),
        "image-height": Value.number(0),
    }


class ProgressWidget(BaseWidget):
    """
    Progress bar.

    Configuration:
        value: Percentage between 0 and 100
    """

    widget_type = "progress"
    attributes = {
        "value": Value.number(0),
        "orientation": Value.string("h"),
        "flipped": Value.boolean(False),
    }

    def render_text(self, values: Mapping[str, Value]) -> str:
        try:
            percent = values.get("value", Value.number(0)).as_number()
        except TypeMismatch:
            return "N/A"
        return f"{percent:.0f}%"
