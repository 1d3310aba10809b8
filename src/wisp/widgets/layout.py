"""
Container widgets that arrange their children.
"""

from ..expr.value import Value
from .base import BaseWidget


class BoxWidget(BaseWidget):
    """
    Lay out children in a row or column.

    Example:
        (box :orientation "v" :spacing 4
          (label :text "a")
          (label :text "b"))
    """

    widget_type = "box"
    container = True
    attributes = {
        "orientation": Value.string("h"),
        "spacing": Value.number(0),
        "space-evenly": Value.boolean(True),
    }


class CenterBoxWidget(BaseWidget):
    """Three children: start, center and end."""

    widget_type = "centerbox"
    container = True
    attributes = {
        "orientation": Value.string("h"),
    }
