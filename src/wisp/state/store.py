"""
The variable store: the one table of named reactive values.

All writes go through commit(), serialized by a single lock, and each
commit publishes a brand new immutable snapshot. Readers grab the current
snapshot reference without locking, so they never block writers and never
see a half-applied commit.
"""

import logging
import threading
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, List, Optional

from ..config.definitions import Config, VarDefinition, VariableKind
from ..expr.value import Value
from ..utils.errors import DuplicateVariable, UnknownVariable

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[str, int], None]


class VariableSnapshot(Mapping):
    """
    Immutable view of every variable's value and version at one instant.

    Behaves as a read-only mapping of name -> Value so it can be handed
    straight to the evaluator.
    """

    __slots__ = ("_values", "_versions", "sequence")

    def __init__(self, values: Dict[str, Value], versions: Dict[str, int], sequence: int = 0):
        self._values = values
        self._versions = versions
        self.sequence = sequence

    def __getitem__(self, name: str) -> Value:
        return self._values[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def version(self, name: str) -> int:
        return self._versions[name]

    def to_dict(self) -> Dict[str, Any]:
        """Plain-data dump: {name: {"value": ..., "version": ...}}."""
        return {
            name: {"value": value.to_python(), "version": self._versions[name]}
            for name, value in self._values.items()
        }

    def __repr__(self) -> str:
        return f"<VariableSnapshot(sequence={self.sequence}, variables={len(self._values)})>"


@dataclass(frozen=True)
class Variable:
    """A variable as seen at one instant: definition plus current value."""

    definition: VarDefinition
    value: Value
    version: int

    @property
    def name(self) -> str:
        return self.definition.name

    @property
    def kind(self) -> VariableKind:
        return self.definition.kind


class VariableStore:
    """
    Process-wide table of reactive variables.

    The store is an explicit object rather than module state so tests can
    run several isolated stores side by side.

    Args:
        on_change: Called with (name, new_version) after every committed
            change. Invoked while the commit lock is held, so notifications
            are delivered in commit order; it must not block.
    """

    def __init__(self, on_change: Optional[ChangeCallback] = None):
        self.on_change = on_change
        self._definitions: Dict[str, VarDefinition] = {}
        self._snapshot = VariableSnapshot({}, {}, 0)
        self._lock = threading.Lock()

    def declare(self, definition: VarDefinition) -> None:
        """
        Register a variable with its initial value.

        Raises:
            DuplicateVariable: If the name is already declared
        """
        with self._lock:
            if definition.name in self._definitions:
                raise DuplicateVariable(definition.name)
            self._definitions[definition.name] = definition
            self._publish(definition.name, definition.initial)
        logger.debug(f"Declared variable '{definition.name}' ({definition.kind.value})")

    def declare_all(self, config: Config) -> None:
        for definition in config.variables.values():
            self.declare(definition)

    def read_snapshot(self) -> VariableSnapshot:
        # Reference reads are atomic; snapshots are never mutated after publish
        return self._snapshot

    def commit(self, name: str, value: Value, *, only_if_changed: bool = False, notify: bool = True) -> bool:
        """
        Commit a new value for a variable.

        Args:
            name: Variable name
            value: New value
            only_if_changed: Skip the commit when the value is unchanged
            notify: Emit a change notification for this commit

        Returns:
            True if a new version was committed

        Raises:
            UnknownVariable: If the name is not declared
        """
        with self._lock:
            if name not in self._definitions:
                raise UnknownVariable(name)
            if only_if_changed and self._snapshot[name] == value:
                return False
            version = self._publish(name, value)
            if notify and self.on_change:
                self.on_change(name, version)
        logger.debug(f"Committed {name} = {value.as_string()!r} (version {version})")
        return True

    def set(self, name: str, value: Value, notify: bool = True) -> bool:
        """Explicit override, independent of the variable's poll/listen source."""
        return self.commit(name, value, notify=notify)

    def remove(self, name: str) -> None:
        with self._lock:
            if self._definitions.pop(name, None) is None:
                return
            values = dict(self._snapshot._values)
            versions = dict(self._snapshot._versions)
            del values[name]
            del versions[name]
            self._snapshot = VariableSnapshot(values, versions, self._snapshot.sequence + 1)

    def teardown(self) -> None:
        """Drop every variable."""
        with self._lock:
            self._definitions.clear()
            self._snapshot = VariableSnapshot({}, {}, self._snapshot.sequence + 1)
        logger.debug("Variable store torn down")

    def definition(self, name: str) -> Optional[VarDefinition]:
        return self._definitions.get(name)

    def definitions(self, kind: Optional[VariableKind] = None) -> List[VarDefinition]:
        with self._lock:
            found = list(self._definitions.values())
        if kind is None:
            return found
        return [definition for definition in found if definition.kind is kind]

    def variable(self, name: str) -> Variable:
        snapshot = self._snapshot
        definition = self._definitions.get(name)
        if definition is None or name not in snapshot:
            raise UnknownVariable(name)
        return Variable(definition, snapshot[name], snapshot.version(name))

    def __contains__(self, name: str) -> bool:
        return name in self._definitions

    def _publish(self, name: str, value: Value) -> int:
        """Copy-on-write: build and swap in the next snapshot. Lock must be held."""
        current = self._snapshot
        values = dict(current._values)
        versions = dict(current._versions)
        values[name] = value
        version = versions.get(name, 0) + 1
        versions[name] = version
        self._snapshot = VariableSnapshot(values, versions, current.sequence + 1)
        return version
