"""
Dependency graph and change propagation for one widget tree.

Each attribute binding is indexed under every variable its expression
reads. When variables change, only the bindings that read one of them are
recomputed, all against the same snapshot.
"""

import logging
import threading
from collections import defaultdict
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple

from ..expr.evaluator import evaluate
from ..expr.value import Value
from ..tree.diff import AttributeChange
from ..tree.node import Binding, Path
from ..utils.errors import EvalError

logger = logging.getLogger(__name__)


class ErrorReporter:
    """
    Reports evaluation failures once per distinct cause.

    A binding that keeps failing the same way is logged only the first
    time. It is logged again once it fails differently, or after it has
    evaluated successfully in between.
    """

    def __init__(self, owner: str = ""):
        self.owner = owner
        self._active: Dict[Tuple[Path, str], Tuple[str, str]] = {}
        self._lock = threading.Lock()

    def report(self, binding: Binding, error: EvalError) -> bool:
        """
        Record a failure.

        Returns:
            True if the failure was logged (i.e. it is a new cause)
        """
        cause = (type(error).__name__, str(error))
        with self._lock:
            if self._active.get(binding.key) == cause:
                return False
            self._active[binding.key] = cause

        prefix = f"[{self.owner}] " if self.owner else ""
        logger.warning(
            f"{prefix}{binding.describe()} = {binding.expression.to_source()}: "
            f"{cause[0]}: {error}; keeping previous value"
        )
        return True

    def resolve(self, binding: Binding) -> None:
        with self._lock:
            cause = self._active.pop(binding.key, None)
        if cause is not None:
            logger.info(f"{binding.describe()} evaluates again")

    def active(self) -> Dict[Tuple[Path, str], Tuple[str, str]]:
        with self._lock:
            return dict(self._active)


class PropagationGraph:
    """
    Maps variables to the bindings that depend on them.

    Args:
        bindings: Bindings of one tree, in pre-order
        reporter: Error reporter shared with the tree build
    """

    def __init__(self, bindings: Iterable[Binding], reporter: Optional[ErrorReporter] = None):
        self.bindings: List[Binding] = list(bindings)
        self.reporter = reporter or ErrorReporter()
        self._by_variable: Dict[str, List[int]] = defaultdict(list)
        for index, binding in enumerate(self.bindings):
            for name in binding.dependencies:
                self._by_variable[name].append(index)

    def dependency_set(self, path: Path, attribute: str) -> FrozenSet[str]:
        for binding in self.bindings:
            if binding.path == path and binding.attribute == attribute:
                return binding.dependencies
        raise KeyError(f"No binding for {attribute} at {path}")

    def variables(self) -> FrozenSet[str]:
        return frozenset(self._by_variable)

    def affected(self, changed: Iterable[str]) -> List[Binding]:
        """Bindings whose DependencySet intersects the changed names, in tree order."""
        indexes = set()
        for name in changed:
            indexes.update(self._by_variable.get(name, ()))
        return [self.bindings[index] for index in sorted(indexes)]

    def recompute(self, changed: Iterable[str], snapshot: Mapping[str, Value]) -> List[AttributeChange]:
        """
        Re-evaluate affected bindings against one snapshot.

        A failing binding is left out of the result, so its attribute keeps
        its previous value; failures never stop the rest of the round.

        Returns:
            (path, attribute, new value) for every binding that evaluated
        """
        changes: List[AttributeChange] = []
        for binding in self.affected(changed):
            try:
                value = evaluate(binding.expression, snapshot)
            except EvalError as e:
                self.reporter.report(binding, e)
                continue
            self.reporter.resolve(binding)
            changes.append((binding.path, binding.attribute, value))
        return changes
