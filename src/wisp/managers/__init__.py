"""
Managers for the running daemon.

This module provides specialized managers for different responsibilities:
- ScriptVarManager: Poll and listen producers feeding the variable store
- WindowManager: Open windows, their trees and backend handles
- ConfigWatcher: Reload requests when the configuration file changes
"""

from .propagation import ErrorReporter, PropagationGraph
from .script_vars import ListenWorker, PollScheduler, ScriptVarManager
from .watcher import ConfigWatcher
from .window import OpenWindow, WindowManager

__all__ = [
    "ScriptVarManager",
    "PollScheduler",
    "ListenWorker",
    "WindowManager",
    "OpenWindow",
    "PropagationGraph",
    "ErrorReporter",
    "ConfigWatcher",
]
