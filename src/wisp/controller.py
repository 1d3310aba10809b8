"""
Main controller for the Wisp daemon.
"""

import logging
import queue
import threading
import time
from concurrent.futures import Future
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Set, Union

from .backends.base import RenderBackend
from .backends.headless import HeadlessBackend
from .config.definitions import Config, load_config
from .config.loader import SettingsLoader, read_config
from .expr.value import Value
from .managers import ConfigWatcher, ScriptVarManager, WindowManager
from .managers.script_vars import ListenSpawner, PollRunner, run_poll_command, spawn_listener
from .state.store import VariableStore
from .tree.patch import Patch
from .utils.errors import ConfigurationError, WispError, error_boundary
from .widgets.registry import WidgetRegistry, default_registry

logger = logging.getLogger(__name__)


class ChangeNotification(NamedTuple):
    """A committed change, tagged with the store generation it came from."""

    generation: int
    name: str
    version: int


class _Command:
    """A control surface call queued for the coordination thread."""

    def __init__(self, func: Callable[..., Any], args: tuple):
        self.func = func
        self.args = args
        self.future: Future = Future()

    def execute(self) -> None:
        if not self.future.set_running_or_notify_cancel():
            return
        try:
            result = self.func(*self.args)
        except BaseException as e:
            self.future.set_exception(e)
        else:
            self.future.set_result(result)

    def abort(self) -> None:
        if self.future.set_running_or_notify_cancel():
            self.future.set_exception(WispError("Daemon stopped before the command ran"))


class WispDaemon:
    """
    Main controller orchestrating the reactive engine.

    This controller delegates specific responsibilities to specialized managers:
    - ScriptVarManager: Runs poll and listen producers
    - WindowManager: Owns open windows and applies patches to the backend
    - ConfigWatcher: Requests reloads when the configuration file changes

    Every change notification and every control surface call goes through
    one FIFO queue drained by a single coordination thread, so rounds and
    commands are processed strictly in the order they were enqueued. When
    the coordination thread is not running, commands run on the caller's
    thread and queued notifications are drained with process_pending().
    """

    # How long the coordination thread blocks waiting for work
    IDLE_WAIT = 0.1

    def __init__(
        self,
        config_path: Optional[str] = None,
        settings: Optional[Dict[str, Any]] = None,
        backend: Optional[RenderBackend] = None,
        poll_runner: PollRunner = run_poll_command,
        listen_spawner: ListenSpawner = spawn_listener,
        registry: Optional[WidgetRegistry] = None,
    ) -> None:
        """
        Initialize the daemon.

        Args:
            config_path: Path to the widget configuration file
            settings: Daemon settings; missing values are defaulted
            backend: Render backend (headless if not given)
            poll_runner: Runs poll producers (name, command, timeout) -> stdout
            listen_spawner: Starts listen producers, command -> process
            registry: Widget type catalogue
        """
        self.config_path = config_path
        self.settings: Dict[str, Any] = SettingsLoader().from_dict(settings or {})
        self.coalesce_window: float = self.settings["engine"]["coalesce_window"]

        self.registry = registry or default_registry()
        self.backend = backend or HeadlessBackend()
        self.poll_runner = poll_runner
        self.listen_spawner = listen_spawner

        self.config: Optional[Config] = None
        self.generation = 0
        self.store = VariableStore()
        self.producers: Optional[ScriptVarManager] = None
        self.windows = WindowManager(self.backend, self.registry)
        self.watcher: Optional[ConfigWatcher] = None

        self.queue: "queue.Queue[Union[ChangeNotification, _Command]]" = queue.Queue()
        self.rounds = 0
        self.running = False
        self._thread: Optional[threading.Thread] = None

        logger.debug(f"Registered widget types: {self.registry.list_widgets()}")

    # -- lifecycle -------------------------------------------------------

    def load(self, text: Optional[str] = None) -> Config:
        """
        Load the configuration and create the variable store.

        Args:
            text: Configuration text; read from config_path when omitted

        Raises:
            ConfigurationError: If the configuration cannot be read or is invalid
        """
        config = self._read_config(text)
        self._install(config)
        logger.info(
            f"Loaded configuration: {len(config.variables)} variables, "
            f"{len(config.templates)} widgets, {len(config.windows)} windows"
        )
        return config

    def start(self) -> None:
        """Start producers, the coordination thread and the config watcher."""
        if self.running:
            logger.warning("Daemon already running")
            return
        if self.config is None:
            self.load()

        self.running = True
        self._thread = threading.Thread(target=self._coordination_loop, daemon=True, name="Coordinator")
        self._thread.start()
        self.producers.start()

        watch = self.settings["watch"]
        if watch["enabled"] and self.config_path:
            self.watcher = ConfigWatcher(self.config_path, self._on_config_changed, watch["debounce"])
            self.watcher.start()

        logger.info("Wisp is running")

    def run(self, windows: Optional[List[str]] = None) -> None:
        """
        Main application run loop.

        Starts the daemon, opens the requested windows and blocks until
        stop() is called or the process is interrupted.
        """
        try:
            self.start()
        except ConfigurationError as e:
            logger.error(f"Cannot start without valid configuration: {e}")
            return

        for name in windows or []:
            try:
                self.open_window(name)
            except WispError as e:
                logger.error(f"Cannot open window '{name}': {e}")

        try:
            while self.running:
                time.sleep(0.1)
        except KeyboardInterrupt:
            logger.info("Received shutdown signal")
        except Exception as e:
            logger.error(f"Unexpected error in main loop: {e}", exc_info=True)
        finally:
            self.shutdown()

    def stop(self) -> None:
        """Stop the background threads. Open windows stay materialized."""
        if self.watcher:
            self.watcher.stop()
            self.watcher = None

        if self.producers:
            self.producers.stop()

        self.running = False
        if self._thread and self._thread is not threading.current_thread():
            self._thread.join(timeout=3)
        self._thread = None

        # Commands that never reached the coordination thread
        while True:
            try:
                item = self.queue.get_nowait()
            except queue.Empty:
                break
            if isinstance(item, _Command):
                item.abort()

    def shutdown(self) -> None:
        """Stop everything, close every window and drop all variables."""
        logger.info("Shutting down Wisp...")
        self.stop()
        self.windows.close_all()
        self.store.teardown()
        self.config = None

    # -- control surface -------------------------------------------------

    def open_window(self, name: str) -> None:
        """
        Open a window defined in the configuration.

        Raises:
            ConfigurationError: If no window with that name is defined
            BackendError: If the backend cannot materialize it
        """
        self._call(self._open_window, name)

    def close_window(self, name: str) -> None:
        """
        Close an open window.

        Raises:
            ConfigurationError: If the window is not open
        """
        self._call(self.windows.close, name)

    def reload_config(self, text: Optional[str] = None) -> List[str]:
        """
        Replace the running configuration.

        The new configuration is fully parsed and validated before anything
        is torn down; if that fails the running configuration, store and
        windows stay exactly as they were.

        Returns:
            Names of the windows open after the reload

        Raises:
            ConfigurationError: If the new configuration is invalid
        """
        return self._call(self._reload_config, text)

    def set_variable(self, name: str, value: Union[Value, str, int, float, bool]) -> List[Patch]:
        """
        Override a variable's value.

        The change is propagated immediately, so backend failures reach the
        caller.

        Returns:
            Patches applied to open windows

        Raises:
            UnknownVariable: If the variable is not declared
            BackendError: If the backend rejected an update
        """
        if not isinstance(value, Value):
            value = Value.from_python(value)
        return self._call(self._set_variable, name, value)

    def get_state(self) -> Dict[str, Any]:
        """Current value and version of every variable, from one snapshot."""
        return self.store.read_snapshot().to_dict()

    def list_windows(self) -> List[str]:
        return self._call(self.windows.list_windows)

    # -- coordination ----------------------------------------------------

    def process_pending(self) -> int:
        """
        Drain the queue on the calling thread.

        Only valid while the coordination thread is not running.

        Returns:
            Number of propagation rounds run
        """
        if self.running:
            raise WispError("process_pending() cannot be used while the daemon is running")

        before = self.rounds
        while True:
            try:
                item = self.queue.get_nowait()
            except queue.Empty:
                break
            self._handle(item, block=False)
        return self.rounds - before

    def _call(self, func: Callable[..., Any], *args) -> Any:
        if not self.running or threading.current_thread() is self._thread:
            return func(*args)
        command = _Command(func, args)
        self.queue.put(command)
        return command.future.result()

    def _coordination_loop(self) -> None:
        """Main coordination loop (runs in background thread)."""
        while self.running:
            try:
                item = self.queue.get(timeout=self.IDLE_WAIT)
            except queue.Empty:
                continue
            self._handle(item, block=True)

    def _handle(self, item: Union[ChangeNotification, _Command], block: bool) -> None:
        """
        Process one queue item.

        A notification starts a batch that collects every notification
        following it within the coalescing window. A command ends the batch
        and runs right after the batch's round.
        """
        if isinstance(item, _Command):
            item.execute()
            return

        changed: Set[str] = set()
        self._accept(item, changed)
        deferred: Optional[_Command] = None
        deadline = time.monotonic() + self.coalesce_window

        while True:
            try:
                if block:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        break
                    following = self.queue.get(timeout=remaining)
                else:
                    following = self.queue.get_nowait()
            except queue.Empty:
                break
            if isinstance(following, _Command):
                deferred = following
                break
            self._accept(following, changed)

        if changed:
            self._safe_round(changed)
        if deferred:
            deferred.execute()

    def _accept(self, notification: ChangeNotification, changed: Set[str]) -> None:
        if notification.generation != self.generation:
            logger.debug(f"Ignoring change of '{notification.name}' from a replaced store")
            return
        changed.add(notification.name)

    def _run_round(self, changed: Set[str]) -> List[Patch]:
        snapshot = self.store.read_snapshot()
        self.rounds += 1
        patches = self.windows.propagate(changed, snapshot)
        if patches:
            logger.debug(
                f"Round {self.rounds}: {', '.join(sorted(changed))} -> "
                f"{sum(len(patch) for patch in patches)} operation(s)"
            )
        return patches

    @error_boundary(default_return=[])
    def _safe_round(self, changed: Set[str]) -> List[Patch]:
        return self._run_round(changed)

    # -- command implementations -----------------------------------------

    def _open_window(self, name: str) -> None:
        if self.config is None:
            raise ConfigurationError("No configuration loaded")
        definition = self.config.windows.get(name)
        if definition is None:
            raise ConfigurationError(f"Unknown window '{name}'")
        self.windows.open(definition, self.config, self.store.read_snapshot())

    def _set_variable(self, name: str, value: Value) -> List[Patch]:
        self.store.set(name, value, notify=False)
        return self._run_round({name})

    def _reload_config(self, text: Optional[str]) -> List[str]:
        config = self._read_config(text)
        self._install(config)
        self.windows.reload(config, self.store.read_snapshot())
        logger.info("Configuration reloaded")
        return self.windows.list_windows()

    def _read_config(self, text: Optional[str]) -> Config:
        if text is None:
            if not self.config_path:
                raise ConfigurationError("No configuration file given")
            text = read_config(self.config_path)
        return load_config(text, self.registry)

    def _install(self, config: Config) -> None:
        """
        Swap in a validated configuration with a fresh store.

        Variables whose definition did not change keep their current value,
        so a reload does not flash windows back to initial values.
        """
        previous = self.store
        if self.producers:
            self.producers.stop()

        self.generation += 1
        generation = self.generation
        store = VariableStore(
            on_change=lambda name, version: self.queue.put(ChangeNotification(generation, name, version))
        )
        store.declare_all(config)

        snapshot = previous.read_snapshot()
        for name, definition in config.variables.items():
            if previous.definition(name) == definition and name in snapshot:
                store.commit(name, snapshot[name], only_if_changed=True, notify=False)

        previous.teardown()
        self.config = config
        self.store = store

        engine = self.settings["engine"]
        self.producers = ScriptVarManager(
            store,
            self.poll_runner,
            self.listen_spawner,
            poll_timeout=engine["poll_timeout"],
            poll_workers=engine["poll_workers"],
        )
        if self.running:
            self.producers.start()

    def _on_config_changed(self) -> None:
        try:
            windows = self.reload_config()
        except WispError as e:
            logger.error(f"Reload failed, keeping previous configuration: {e}")
            return
        logger.info(f"Reloaded {self.config_path} ({len(windows)} window(s) open)")
