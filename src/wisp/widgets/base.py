"""
Base classes for all widget types.
"""

import logging
from typing import Any, Dict, Iterable, Mapping

from ..expr.value import EMPTY, TRUE, Value
from ..utils.errors import CompileError

logger = logging.getLogger(__name__)

# Attributes every widget type accepts
COMMON_ATTRIBUTES: Dict[str, Value] = {
    "class": EMPTY,
    "visible": TRUE,
    "tooltip": EMPTY,
    "halign": Value.string("fill"),
    "valign": Value.string("fill"),
    "width": Value.number(0),
    "height": Value.number(0),
    "active": TRUE,
}


class BaseWidget:
    """
    Base class for all widget types.

    A widget type describes which attributes a node of that type accepts,
    their default values, and whether the node may have children. The
    render backend owns the real on-screen element; this class only
    describes the node and how its content reads as text.

    Class Attributes:
        widget_type: Unique tag used in configuration (e.g., "label", "box")
        container: Whether nodes of this type accept child widgets
        attributes: Type-specific attributes and their defaults

    Example:
        >>> class ClockFace(BaseWidget):
        ...     widget_type = "clock-face"
        ...     attributes = {"time": EMPTY}
        ...
        ...     def render_text(self, values):
        ...         return values["time"].as_string()
    """

    # Widget type identifier (must be unique)
    widget_type: str = None

    container: bool = False

    attributes: Dict[str, Value] = {}

    def __init__(self):
        """
        Raises:
            ValueError: If widget_type is not defined
        """
        if not self.widget_type:
            raise ValueError(f"{self.__class__.__name__} must define widget_type")

    def accepted_attributes(self) -> Dict[str, Value]:
        """All attributes this type accepts, with defaults."""
        merged = dict(COMMON_ATTRIBUTES)
        merged.update(self.attributes)
        return merged

    def default_for(self, name: str) -> Value:
        return self.accepted_attributes().get(name, EMPTY)

    def validate(self, attribute_names: Iterable[str], child_count: int, span=None) -> None:
        """
        Check a widget form against this type.

        Raises:
            CompileError: For unknown attributes or children on a leaf widget
        """
        accepted = self.accepted_attributes()
        for name in attribute_names:
            if name not in accepted:
                raise CompileError(
                    f"Widget '{self.widget_type}' has no attribute ':{name}'", span
                )
        if child_count and not self.container:
            raise CompileError(f"Widget '{self.widget_type}' cannot have children", span)

    def render_text(self, values: Mapping[str, Value]) -> str:
        """
        Text shown for a node of this type.

        Override this in types that display text.

        Args:
            values: Current attribute values of the node
        """
        return ""

    def describe(self) -> Dict[str, Any]:
        return {
            "type": self.widget_type,
            "container": self.container,
            "attributes": {name: value.to_python() for name, value in self.accepted_attributes().items()},
        }

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(type={self.widget_type}, container={self.container})>"


