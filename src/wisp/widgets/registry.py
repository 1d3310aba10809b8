"""
Registry for widget types.
"""

import logging
from typing import Dict, Optional

from .base import BaseWidget

logger = logging.getLogger(__name__)


class WidgetRegistry:
    """
    Registry for auto-discovering widget types.

    Widget types are looked up by the tag used in configuration. An
    unknown tag is a load-time CompileError raised by the definition
    builder.
    """

    def __init__(self):
        """Initialize empty registry."""
        self._widgets: Dict[str, BaseWidget] = {}

    def register(self, widget_class: type) -> None:
        """
        Register a widget class.

        Args:
            widget_class: Widget class to register

        Raises:
            TypeError: If widget_class doesn't inherit from BaseWidget
            ValueError: If widget_type is not defined
        """
        if not isinstance(widget_class, type) or not issubclass(widget_class, BaseWidget):
            raise TypeError(f"{widget_class} must inherit from BaseWidget")

        widget_type = widget_class.widget_type
        if not widget_type:
            raise ValueError(f"{widget_class.__name__} must define widget_type class attribute")

        if widget_type in self._widgets:
            logger.warning(f"Overwriting existing widget type: {widget_type}")

        self._widgets[widget_type] = widget_class()
        logger.debug(f"Registered widget type: {widget_type}")

    def get(self, widget_type: str) -> Optional[BaseWidget]:
        """
        Get the widget type descriptor by tag.

        Returns:
            Widget instance or None if not found
        """
        return self._widgets.get(widget_type)

    def list_widgets(self) -> list:
        return list(self._widgets.keys())

    def auto_discover(self) -> None:
        """Auto-discover and register all widget modules."""
        import importlib
        import pkgutil

        import wisp.widgets as widgets_pkg

        for _importer, modname, _ispkg in pkgutil.iter_modules(widgets_pkg.__path__):
            if modname in ["base", "registry", "__init__"]:
                continue

            try:
                module = importlib.import_module(f"wisp.widgets.{modname}")

                for attr_name in dir(module):
                    attr = getattr(module, attr_name)
                    if (
                        isinstance(attr, type)
                        and issubclass(attr, BaseWidget)
                        and attr is not BaseWidget
                        and attr.widget_type
                    ):
                        self.register(attr)

            except Exception as e:
                logger.error(f"Failed to load widget module {modname}: {e}")

        logger.debug(f"Discovered widget types: {self.list_widgets()}")


def default_registry() -> WidgetRegistry:
    """Registry populated with every builtin widget type."""
    registry = WidgetRegistry()
    registry.auto_discover()
    return registry
