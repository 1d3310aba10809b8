"""
Interactive widgets.

Commands bound to events (":onclick", ":onchange") are opaque strings to the
engine; running them is the render backend's job.
"""

from typing import Mapping

from ..expr.value import EMPTY, Value
from .base import BaseWidget


class ButtonWidget(BaseWidget):
    """
    Clickable button with a text label.

    Example:
        (button :onclick "notify-send hi" :label "Hi")
    """

    widget_type = "button"
    attributes = {
        "label": EMPTY,
        "onclick": EMPTY,
        "onrightclick": EMPTY,
        "onmiddleclick": EMPTY,
    }

    def render_text(self, values: Mapping[str, Value]) -> str:
        return values.get("label", EMPTY).as_string()


class ScaleWidget(BaseWidget):
    """Slider between min and max."""

    widget_type = "scale"
    attributes = {
        "value": Value.number(0),
        "min": Value.number(0),
        "max": Value.number(100),
        "orientation": Value.string("h"),
        "onchange": EMPTY,
    }
