"""
Render backend abstraction.

The engine depends on exactly three operations: materialize a tree, apply
a patch to a materialized tree, and destroy it. Everything about drawing,
positioning and styling belongs to the backend.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any

from ..tree.node import WidgetNode
from ..tree.patch import Patch

logger = logging.getLogger(__name__)


class RenderBackend(ABC):
    """Base class for render backends"""

    name: str = "base"

    @abstractmethod
    def instantiate(self, root: WidgetNode) -> Any:
        """
        Materialize a widget tree.

        Args:
            root: Root of a freshly built tree; the backend must not keep a
                reference to it, only copy what it needs

        Returns:
            Opaque handle identifying the materialized tree

        Raises:
            BackendError: If the tree cannot be materialized
        """
        pass

    @abstractmethod
    def apply_patch(self, patch: Patch) -> None:
        """
        Apply all operations of a patch as one visual update.

        Either every operation takes effect or, on failure, BackendError is
        raised and nothing is shown in an intermediate state.

        Raises:
            BackendError: If the patch cannot be applied
        """
        pass

    @abstractmethod
    def destroy(self, handle: Any) -> None:
        """
        Remove a materialized tree.

        Raises:
            BackendError: If the handle is unknown or removal failed
        """
        pass
