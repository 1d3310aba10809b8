"""
Open window management.

Each open window owns its widget tree record, the bindings of that tree and
the backend handle of its materialized root. Trees are only touched from
the daemon's coordination thread.
"""

import logging
from typing import Dict, Iterable, List, Mapping, Optional

from ..backends.base import RenderBackend
from ..config.definitions import Config, WindowDefinition
from ..expr.value import Value
from ..tree.diff import apply_patch, build_tree, compatible, diff_attributes, diff_trees
from ..tree.node import WidgetNode
from ..tree.patch import Patch
from ..utils.errors import BackendError, ConfigurationError
from ..widgets.registry import WidgetRegistry
from .propagation import ErrorReporter, PropagationGraph

logger = logging.getLogger(__name__)


class OpenWindow:
    """
    A materialized window.

    Attributes:
        definition: Window definition it was opened from
        root: Engine's record of the tree, as last confirmed by the backend
        graph: Bindings of the tree indexed by variable
        handle: Backend handle of the root
    """

    def __init__(self, definition: WindowDefinition, root: WidgetNode, graph: PropagationGraph, handle):
        self.definition = definition
        self.root = root
        self.graph = graph
        self.handle = handle

    @property
    def name(self) -> str:
        return self.definition.name

    @property
    def reporter(self) -> ErrorReporter:
        return self.graph.reporter

    def __repr__(self) -> str:
        return f"<OpenWindow(name={self.name}, bindings={len(self.graph.bindings)})>"


class WindowManager:
    """
    Opens, updates and closes windows against a render backend.

    Responsibilities:
    - Instantiating windows from the configuration
    - Turning variable changes into minimal patches
    - Carrying open windows across a configuration reload
    """

    def __init__(self, backend: RenderBackend, registry: WidgetRegistry):
        self.backend = backend
        self.registry = registry
        self.windows: Dict[str, OpenWindow] = {}

    def open(self, definition: WindowDefinition, config: Config, snapshot: Mapping[str, Value]) -> OpenWindow:
        """
        Build and materialize a window.

        Opening a window that is already open leaves it as it is.

        Raises:
            CompileError: If the tree cannot be built
            BackendError: If the backend cannot materialize it; nothing is recorded
        """
        existing = self.windows.get(definition.name)
        if existing is not None:
            logger.info(f"Window '{definition.name}' is already open")
            return existing

        window = self._materialize(definition, config, snapshot)
        self.windows[definition.name] = window
        logger.info(f"Opened window '{definition.name}'")
        return window

    def close(self, name: str) -> None:
        """
        Destroy an open window.

        Raises:
            ConfigurationError: If no window with that name is open
            BackendError: If the backend fails to destroy it
        """
        window = self.windows.pop(name, None)
        if window is None:
            raise ConfigurationError(f"Window '{name}' is not open")
        self.backend.destroy(window.handle)
        logger.info(f"Closed window '{name}'")

    def close_all(self) -> None:
        for name in list(self.windows):
            try:
                self.close(name)
            except BackendError as e:
                logger.error(f"Failed to close window '{name}': {e}")

    def is_open(self, name: str) -> bool:
        return name in self.windows

    def list_windows(self) -> List[str]:
        return sorted(self.windows)

    def propagate(self, changed: Iterable[str], snapshot: Mapping[str, Value]) -> List[Patch]:
        """
        Run one propagation round over every open window.

        Each window's record only advances once the backend accepted its
        patch. A backend failure in one window does not stop the others;
        the first failure is raised once every window was handled.

        Returns:
            Non-empty patches that were applied

        Raises:
            BackendError: If the backend rejected a patch
        """
        changed = set(changed)
        applied: List[Patch] = []
        failure: Optional[BackendError] = None

        for window in list(self.windows.values()):
            changes = window.graph.recompute(changed, snapshot)
            patch = diff_attributes(window.root, changes, window.name, window.handle)
            if not patch:
                continue
            try:
                self.backend.apply_patch(patch)
            except BackendError as e:
                logger.error(f"Backend rejected update of window '{window.name}': {e}")
                failure = failure or e
                continue
            apply_patch(window.root, patch)
            applied.append(patch)

        if failure is not None:
            raise failure
        return applied

    def reload(self, config: Config, snapshot: Mapping[str, Value]) -> List[Patch]:
        """
        Carry open windows over to a new configuration.

        Windows whose definition disappeared are closed. Windows whose root
        kept its type and attribute set are patched in place; others are
        destroyed and materialized again.

        Returns:
            Structural patches applied to windows updated in place
        """
        applied: List[Patch] = []
        failure: Optional[Exception] = None

        for name in list(self.windows):
            window = self.windows[name]
            definition = config.windows.get(name)
            try:
                if definition is None:
                    logger.info(f"Window '{name}' no longer exists, closing it")
                    self.close(name)
                    continue

                patch = self._reload_window(window, definition, config, snapshot)
                if patch is not None:
                    applied.append(patch)
            except (BackendError, ConfigurationError) as e:
                logger.error(f"Failed to reload window '{name}': {e}")
                failure = failure or e

        if failure is not None:
            raise failure
        return applied

    def _reload_window(
        self, window: OpenWindow, definition: WindowDefinition, config: Config, snapshot: Mapping[str, Value]
    ) -> Optional[Patch]:
        reporter = ErrorReporter(definition.name)
        spec = config.expand(definition.root)
        new_root, bindings = build_tree(spec, snapshot, self.registry, reporter.report)

        if not compatible(window.root, new_root):
            logger.info(f"Root of window '{definition.name}' changed shape, reopening it")
            self.windows.pop(definition.name)
            self.backend.destroy(window.handle)
            self.windows[definition.name] = self._materialize(definition, config, snapshot)
            return None

        patch = diff_trees(window.root, new_root, definition.name, window.handle)
        if patch:
            self.backend.apply_patch(patch)
            apply_patch(window.root, patch)

        window.definition = definition
        window.graph = PropagationGraph(bindings, reporter)
        logger.debug(f"Reloaded window '{definition.name}' with {len(patch)} operation(s)")
        return patch

    def _materialize(self, definition: WindowDefinition, config: Config, snapshot: Mapping[str, Value]) -> OpenWindow:
        reporter = ErrorReporter(definition.name)
        spec = config.expand(definition.root)
        root, bindings = build_tree(spec, snapshot, self.registry, reporter.report)

        handle = self.backend.instantiate(root)
        root.handle = handle
        return OpenWindow(definition, root, PropagationGraph(bindings, reporter), handle)
