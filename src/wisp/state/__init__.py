"""
Live variable state.
"""

from .store import Variable, VariableSnapshot, VariableStore

__all__ = ["Variable", "VariableSnapshot", "VariableStore"]
