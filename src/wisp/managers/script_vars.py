"""
Producers for polled and listened variables.

Handles the lifecycle of the external commands feeding variables:
- PollScheduler: one thread driving every poll timer, running producers
  on a small worker pool
- ListenWorker: one reader thread per listened variable, committing each
  output line
- ScriptVarManager: starts and tears down all producers for a store
"""

import heapq
import logging
import subprocess
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

import psutil

from ..config.definitions import VarDefinition, VariableKind
from ..expr.value import Value
from ..state.store import VariableStore
from ..utils.errors import ProducerFailure, UnknownVariable, error_boundary, safe_execute

logger = logging.getLogger(__name__)

PollRunner = Callable[[str, str, float], str]
ListenSpawner = Callable[[str], Any]


def run_poll_command(name: str, command: str, timeout: float) -> str:
    """
    Run a poll producer and return its standard output.

    Security Note:
        Commands run with shell=True so configurations can use pipes and
        redirects. Configuration files can execute arbitrary commands with
        your user permissions; only load configs from trusted sources.

    Raises:
        ProducerFailure: On spawn errors, timeouts or non-zero exit
    """
    try:
        result = subprocess.run(command, shell=True, capture_output=True, text=True, timeout=timeout)
    except subprocess.TimeoutExpired:
        raise ProducerFailure(name, f"timed out after {timeout:g}s")
    except OSError as e:
        raise ProducerFailure(name, f"could not start: {e}")

    if result.returncode != 0:
        stderr = result.stderr.strip().splitlines()
        detail = f": {stderr[-1]}" if stderr else ""
        raise ProducerFailure(name, f"exited with status {result.returncode}{detail}")
    return result.stdout


def spawn_listener(command: str) -> subprocess.Popen:
    """Start a listen producer with line-buffered text output."""
    return subprocess.Popen(
        command,
        shell=True,
        stdout=subprocess.PIPE,
        stderr=subprocess.DEVNULL,
        stdin=subprocess.DEVNULL,
        text=True,
        bufsize=1,
    )


def terminate_process_tree(process: Any, timeout: float = 2.0) -> None:
    """
    Terminate a producer and everything it spawned.

    With shell=True the real producer is a child of the shell, so killing
    only the direct child would leave it running.
    """
    pid = getattr(process, "pid", None)
    if pid is None:
        process.terminate()
        return

    try:
        parent = psutil.Process(pid)
        procs = parent.children(recursive=True) + [parent]
    except psutil.NoSuchProcess:
        return

    for proc in procs:
        try:
            proc.terminate()
        except psutil.NoSuchProcess:
            pass

    _gone, alive = psutil.wait_procs(procs, timeout=timeout)
    for proc in alive:
        try:
            proc.kill()
        except psutil.NoSuchProcess:
            pass


class _FailureLog:
    """Logs a producer failure once until its message changes or it recovers."""

    def __init__(self):
        self._last: Dict[str, str] = {}
        self._lock = threading.Lock()

    def failed(self, name: str, message: str) -> None:
        with self._lock:
            repeated = self._last.get(name) == message
            self._last[name] = message
        if repeated:
            logger.debug(message)
        else:
            logger.warning(f"{message}; keeping last value")

    def recovered(self, name: str) -> None:
        with self._lock:
            if self._last.pop(name, None) is not None:
                logger.info(f"Producer for '{name}' recovered")


class PollScheduler:
    """
    Drives every polled variable from a single timer thread.

    Producers run on a worker pool so a slow command does not delay other
    timers. At most one run per variable is in flight; a tick that finds the
    previous run still going skips that variable.

    Args:
        store: Store to commit results into
        runner: Function (name, command, timeout) -> stdout
        timeout: Seconds allowed per producer run
        workers: Size of the worker pool
        clock: Monotonic time source
    """

    # Upper bound on how long the timer thread sleeps between checks
    MAX_WAIT = 0.25

    def __init__(
        self,
        store: VariableStore,
        runner: PollRunner = run_poll_command,
        timeout: float = 5.0,
        workers: int = 4,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.runner = runner
        self.timeout = timeout
        self.workers = workers
        self.clock = clock

        self.running = False
        self._definitions: Dict[str, VarDefinition] = {}
        self._due: List[Tuple[float, str]] = []
        self._in_flight: Set[str] = set()
        self._lock = threading.Lock()
        self._wakeup = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._executor: Optional[ThreadPoolExecutor] = None
        self._failures = _FailureLog()

    def add(self, definition: VarDefinition) -> None:
        """Schedule a polled variable; its first run is due immediately."""
        if definition.kind is not VariableKind.POLLED:
            raise ValueError(f"'{definition.name}' is not a polled variable")
        with self._lock:
            self._definitions[definition.name] = definition
            heapq.heappush(self._due, (self.clock(), definition.name))
        self._wakeup.set()
        logger.debug(f"Scheduled poll '{definition.name}' every {definition.interval:g}s")

    def remove(self, name: str) -> None:
        with self._lock:
            self._definitions.pop(name, None)
            self._due = [(due, other) for due, other in self._due if other != name]
            heapq.heapify(self._due)

    def names(self) -> List[str]:
        with self._lock:
            return list(self._definitions)

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            logger.warning("Poll scheduler already running")
            return

        self.running = True
        self._executor = ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="PollWorker")
        self._thread = threading.Thread(target=self._loop, daemon=True, name="PollScheduler")
        self._thread.start()
        logger.debug("Poll scheduler started")

    def stop(self) -> None:
        self.running = False
        self._wakeup.set()

        if self._thread:
            self._thread.join(timeout=3)
            self._thread = None
        if self._executor:
            # In-flight runs finish on their own; their commits are dropped
            self._executor.shutdown(wait=False)
            self._executor = None

        with self._lock:
            self._definitions.clear()
            self._due.clear()
        logger.debug("Poll scheduler stopped")

    def tick(self, now: Optional[float] = None) -> List[Future]:
        """
        Submit every poll that is due.

        Returns:
            Futures for the runs started by this tick
        """
        now = self.clock() if now is None else now
        due: List[VarDefinition] = []

        with self._lock:
            while self._due and self._due[0][0] <= now:
                _when, name = heapq.heappop(self._due)
                definition = self._definitions.get(name)
                if definition is None:
                    continue
                heapq.heappush(self._due, (now + definition.interval, name))
                if name in self._in_flight:
                    logger.debug(f"Poll '{name}' still running, skipping this tick")
                    continue
                self._in_flight.add(name)
                due.append(definition)

        return [self._submit(definition) for definition in due]

    def next_due(self) -> Optional[float]:
        with self._lock:
            return self._due[0][0] if self._due else None

    def poll_now(self, definition: VarDefinition) -> bool:
        """
        Run one producer synchronously and commit its value if it changed.

        Returns:
            True if a new value was committed
        """
        try:
            output = self.runner(definition.name, definition.command, self.timeout)
        except ProducerFailure as e:
            self._failures.failed(definition.name, str(e))
            return False

        self._failures.recovered(definition.name)
        value = Value.parse(output.strip())

        if definition.name not in self._definitions:
            logger.debug(f"Dropping result for unscheduled poll '{definition.name}'")
            return False
        try:
            return self.store.commit(definition.name, value, only_if_changed=True)
        except UnknownVariable:
            logger.debug(f"Poll '{definition.name}' finished after its variable was removed")
            return False

    def _submit(self, definition: VarDefinition) -> Future:
        if self._executor is None:
            future: Future = Future()
            try:
                future.set_result(self._run(definition))
            except Exception as e:
                future.set_exception(e)
            return future
        return self._executor.submit(self._run, definition)

    def _run(self, definition: VarDefinition) -> bool:
        try:
            return self.poll_now(definition)
        finally:
            with self._lock:
                self._in_flight.discard(definition.name)

    def _loop(self) -> None:
        """Timer loop (runs in background thread)."""
        while self.running:
            self._safe_tick()

            next_due = self.next_due()
            wait = self.MAX_WAIT if next_due is None else max(0.0, next_due - self.clock())
            self._wakeup.wait(min(wait, self.MAX_WAIT))
            self._wakeup.clear()

    @error_boundary(default_return=[])
    def _safe_tick(self) -> List[Future]:
        return self.tick()


class ListenWorker:
    """
    Reader for one listened variable.

    Each line the producer writes becomes the variable's new value. When
    the producer exits the variable keeps its last value and the condition
    is logged; the rest of the system keeps running.
    """

    def __init__(
        self,
        definition: VarDefinition,
        store: VariableStore,
        spawn: ListenSpawner = spawn_listener,
    ):
        if definition.kind is not VariableKind.LISTENED:
            raise ValueError(f"'{definition.name}' is not a listened variable")
        self.definition = definition
        self.store = store
        self.spawn = spawn

        self.process: Optional[Any] = None
        self.stopped = threading.Event()
        self.lines_read = 0
        self._thread: Optional[threading.Thread] = None
        # Guards process against a stop() racing the spawn
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return self.definition.name

    def start(self) -> None:
        self._thread = threading.Thread(target=self._run, daemon=True, name=f"Listen-{self.name}")
        self._thread.start()
        logger.debug(f"Listener for '{self.name}' started")

    def stop(self, timeout: float = 2.0) -> None:
        """Terminate the producer and wait for the reader to finish."""
        with self._lock:
            self.stopped.set()
            process = self.process
        if process is not None:
            self._terminate(process, timeout)
        if self._thread and self._thread is not threading.current_thread():
            self._thread.join(timeout=timeout)
        self._thread = None
        logger.debug(f"Listener for '{self.name}' stopped")

    def _terminate(self, process: Any, timeout: float = 2.0) -> None:
        safe_execute(
            lambda: terminate_process_tree(process, timeout),
            on_error=lambda e: logger.error(f"Error terminating producer for '{self.name}': {e}"),
        )

    def is_alive(self) -> bool:
        return bool(self._thread and self._thread.is_alive())

    def _run(self) -> None:
        try:
            process = self.spawn(self.definition.command)
        except OSError as e:
            logger.warning(str(ProducerFailure(self.name, f"could not start: {e}")))
            return

        with self._lock:
            self.process = process
            stopped = self.stopped.is_set()
        if stopped:
            logger.debug(f"Listener for '{self.name}' was stopped while its producer started")
            self._terminate(process)
            return

        try:
            for line in self.process.stdout:
                if self.stopped.is_set():
                    break
                self._commit_line(line)
        except (OSError, ValueError) as e:
            # Pipe closed underneath us during teardown
            if not self.stopped.is_set():
                logger.warning(str(ProducerFailure(self.name, f"read error: {e}")))
            return

        if self.stopped.is_set():
            return

        status = self.process.wait()
        logger.warning(
            str(ProducerFailure(self.name, f"exited with status {status}"))
            + f"; '{self.name}' keeps its last value"
        )

    def _commit_line(self, line: str) -> None:
        self.lines_read += 1
        try:
            self.store.commit(self.name, Value.parse(line.rstrip("\r\n")))
        except UnknownVariable:
            logger.debug(f"Listener '{self.name}' outlived its variable")
            self.stopped.set()


class ScriptVarManager:
    """
    Starts and stops all producers for a store.

    Responsibilities:
    - Scheduling polled variables
    - Running one listener per listened variable
    - Explicit teardown on reload and shutdown
    """

    def __init__(
        self,
        store: VariableStore,
        poll_runner: PollRunner = run_poll_command,
        listen_spawner: ListenSpawner = spawn_listener,
        poll_timeout: float = 5.0,
        poll_workers: int = 4,
    ):
        self.store = store
        self.listen_spawner = listen_spawner
        self.scheduler = PollScheduler(store, poll_runner, poll_timeout, poll_workers)
        self.listeners: Dict[str, ListenWorker] = {}

    def start(self) -> None:
        """Start producers for every polled and listened variable in the store."""
        for definition in self.store.definitions(VariableKind.POLLED):
            self.scheduler.add(definition)
        self.scheduler.start()

        for definition in self.store.definitions(VariableKind.LISTENED):
            worker = ListenWorker(definition, self.store, self.listen_spawner)
            self.listeners[definition.name] = worker
            worker.start()

        logger.info(
            f"Started {len(self.scheduler.names())} poll and {len(self.listeners)} listen producers"
        )

    def stop_variable(self, name: str) -> None:
        """Tear down the producer of one variable, if it has one."""
        self.scheduler.remove(name)
        worker = self.listeners.pop(name, None)
        if worker:
            worker.stop()

    def stop(self) -> None:
        self.scheduler.stop()
        for worker in list(self.listeners.values()):
            worker.stop()
        self.listeners.clear()
        logger.debug("All producers stopped")
