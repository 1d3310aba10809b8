"""
Widget type catalogue.

Each widget type declares the attributes a configuration may bind for it,
their defaults, and whether it can hold children. Types are discovered
automatically from the modules in this package.
"""

from .base import BaseWidget
from .registry import WidgetRegistry, default_registry

__all__ = ["BaseWidget", "WidgetRegistry", "default_registry"]
