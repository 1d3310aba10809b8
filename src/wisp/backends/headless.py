"""
Headless render backend.

Keeps an in-memory copy of every materialized tree and applies patches to
it. Useful for running the daemon without a display, for dumping window
contents, and as the base for backends that re-render whole windows.
"""

import collections
import itertools
import logging
import threading
from typing import Any, Deque, Dict, List

from ..tree.diff import apply_patch
from ..tree.node import WidgetNode
from ..tree.patch import Patch, PatchOp
from ..utils.errors import BackendError
from .base import RenderBackend

logger = logging.getLogger(__name__)


class HeadlessBackend(RenderBackend):
    """
    In-memory render backend.

    Attributes:
        trees: Materialized copy of each tree, by handle
        history: Most recent patches applied, oldest first
    """

    name = "headless"

    # Patches kept in history; older ones are dropped
    HISTORY_LIMIT = 256

    def __init__(self, history_limit: int = HISTORY_LIMIT):
        self.trees: Dict[int, WidgetNode] = {}
        self.history: Deque[Patch] = collections.deque(maxlen=history_limit)
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def instantiate(self, root: WidgetNode) -> int:
        with self._lock:
            handle = next(self._ids)
            tree = root.copy()
            self.on_render(handle, tree)
            self.trees[handle] = tree
        logger.debug(f"Materialized {root.widget_type} tree as handle {handle}")
        return handle

    def apply_patch(self, patch: Patch) -> None:
        with self._lock:
            current = self.trees.get(patch.target)
            if current is None:
                raise BackendError(f"Unknown handle {patch.target!r} for window '{patch.window}'")

            # Apply and render a scratch copy, and only swap it in once both succeeded
            scratch = current.copy()
            try:
                apply_patch(scratch, patch)
            except (IndexError, KeyError, TypeError) as e:
                raise BackendError(f"Cannot apply patch to '{patch.window}': {e}") from e
            self.on_render(patch.target, scratch)
            self.trees[patch.target] = scratch
            self.history.append(patch)

        logger.debug(f"Applied {len(patch)} operation(s) to '{patch.window}'")

    def destroy(self, handle: Any) -> None:
        with self._lock:
            if self.trees.pop(handle, None) is None:
                raise BackendError(f"Unknown handle {handle!r}")
        logger.debug(f"Destroyed handle {handle}")

    def on_render(self, handle: Any, root: WidgetNode) -> None:
        """
        Hook called with a tree about to become the current one for handle.

        Raising BackendError here rejects the whole change.
        """
        pass

    def tree(self, handle: Any) -> WidgetNode:
        with self._lock:
            return self.trees[handle].copy()

    def operations(self) -> List[PatchOp]:
        """Operations of the patches still in history, flattened."""
        with self._lock:
            return [op for patch in self.history for op in patch]
