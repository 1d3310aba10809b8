"""
Wisp - reactive widget daemon.

Declarative widget configurations whose attributes are expressions over
live variables; variable changes become minimal patches against open
windows.
"""

from .controller import WispDaemon

__version__ = "0.1.0"

__all__ = ["WispDaemon", "__version__"]
