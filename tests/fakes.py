"""
Test doubles for producers.
"""

import io
import queue
import time


class FakeRunner:
    """Poll runner returning scripted outputs per variable."""

    def __init__(self, outputs=None):
        self.outputs = dict(outputs or {})
        self.calls = []

    def __call__(self, name, command, timeout):
        self.calls.append((name, command, timeout))
        result = self.outputs.get(name, "")
        if isinstance(result, Exception):
            raise result
        return result


class FakeProcess:
    """
    Listen producer whose output lines are pushed by the test.

    With lines given up front, stdout is a plain StringIO that ends after
    them. Otherwise lines are fed through push() and close() ends the stream.
    """

    pid = None

    def __init__(self, lines=None, status=0):
        self.status = status
        self.terminated = False
        self._lines = queue.Queue()
        if lines is not None:
            self.stdout = io.StringIO("".join(line + "\n" for line in lines))
        else:
            self.stdout = self._iter_pushed()

    def push(self, line):
        self._lines.put(line + "\n")

    def close(self):
        self._lines.put(None)

    def _iter_pushed(self):
        while True:
            line = self._lines.get()
            if line is None:
                return
            yield line

    def terminate(self):
        self.terminated = True
        self.close()

    def wait(self, timeout=None):
        return self.status


class FakeSpawner:
    """Listen spawner handing out FakeProcess instances by command."""

    def __init__(self, processes=None):
        self.processes = dict(processes or {})
        self.commands = []

    def __call__(self, command):
        self.commands.append(command)
        if command not in self.processes:
            self.processes[command] = FakeProcess()
        return self.processes[command]


def wait_for(condition, timeout=2.0, interval=0.01):
    """Poll a condition until it holds or the timeout expires"""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if condition():
            return True
        time.sleep(interval)
    return condition()
