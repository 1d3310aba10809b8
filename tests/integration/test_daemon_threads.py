"""
Integration tests for the running daemon.

These start the coordination thread, the poll scheduler, listener threads
and the file watcher, with faked producers.
"""

import os

import pytest
from fakes import FakeRunner, FakeSpawner, wait_for

from wisp.backends.headless import HeadlessBackend
from wisp.controller import WispDaemon
from wisp.expr.value import Value
from wisp.tree.patch import SetAttribute
from wisp.utils.errors import ConfigurationError, WispError


def text_at(daemon, path):
    window = daemon.windows.windows["bar"]
    return daemon.backend.tree(window.handle).node_at(path).attributes["text"]


@pytest.fixture
def running(daemon):
    daemon.start()
    daemon.open_window("bar")
    return daemon


class TestRunningDaemon:
    """Test producers driving open windows through the coordination thread"""

    def test_threads_are_started(self, running, fake_runner, fake_spawner):
        assert running.running
        assert wait_for(lambda: fake_spawner.commands == ["watch-theme"])
        assert wait_for(lambda: ("counter", "count-things", 5.0) in fake_runner.calls)

    def test_listener_updates_window(self, running, fake_spawner):
        assert wait_for(lambda: "watch-theme" in fake_spawner.processes)
        process = fake_spawner.processes["watch-theme"]

        process.push("dark")
        assert wait_for(lambda: text_at(running, (2,)) == Value.string("#000"))
        process.push("light")
        assert wait_for(lambda: text_at(running, (2,)) == Value.string("#fff"))

    def test_poll_updates_window(self, running, fake_runner):
        fake_runner.outputs["counter"] = "41"
        assert wait_for(lambda: text_at(running, (0,)) == Value.number(51), timeout=3.0)

    def test_control_calls_run_on_coordinator(self, running):
        patches = running.set_variable("greeting", "bye")
        assert patches[0].ops == (SetAttribute((1,), "text", Value.string("bye")),)
        assert running.list_windows() == ["bar"]

        with pytest.raises(ConfigurationError):
            running.open_window("dock")

    def test_process_pending_is_rejected_while_running(self, running):
        with pytest.raises(WispError):
            running.process_pending()

    def test_reload_restarts_producers(self, running, fake_spawner, sample_text):
        assert wait_for(lambda: "watch-theme" in fake_spawner.processes)
        old_process = fake_spawner.processes.pop("watch-theme")

        assert running.reload_config(sample_text.replace("watch-theme", "watch-theme --dark")) == ["bar"]

        assert old_process.terminated
        assert wait_for(lambda: "watch-theme --dark" in fake_spawner.processes)
        fake_spawner.processes["watch-theme --dark"].push("dark")
        assert wait_for(lambda: text_at(running, (2,)) == Value.string("#000"))

    def test_stop_keeps_windows(self, running, backend):
        running.stop()
        assert not running.running
        assert running.list_windows() == ["bar"]
        assert len(backend.trees) == 1

    def test_start_twice(self, running, caplog):
        running.start()
        assert "already running" in caplog.text


class TestConfigWatching:
    """Test reloading when the configuration file changes"""

    @pytest.fixture
    def watched(self, config_file, registry):
        daemon = WispDaemon(
            str(config_file),
            settings={"watch": {"enabled": True, "debounce": 0.0}},
            backend=HeadlessBackend(),
            poll_runner=FakeRunner({"counter": "1"}),
            listen_spawner=FakeSpawner(),
            registry=registry,
        )
        daemon.start()
        daemon.open_window("bar")
        yield daemon
        daemon.shutdown()

    def test_edit_triggers_reload(self, watched, config_file, sample_text):
        config_file.write_text(sample_text.replace("(label :text greeting)", "(label :text \"edited\")"))
        mtime = os.stat(config_file).st_mtime + 10
        os.utime(config_file, (mtime, mtime))

        assert wait_for(lambda: text_at(watched, (1,)) == Value.string("edited"), timeout=5.0)

    def test_broken_edit_keeps_running_config(self, watched, config_file, caplog):
        config = watched.config
        config_file.write_text("(defwindow bar (label")
        mtime = os.stat(config_file).st_mtime + 10
        os.utime(config_file, (mtime, mtime))

        assert wait_for(lambda: "Reload failed" in caplog.text, timeout=5.0)
        assert watched.config is config
        assert watched.list_windows() == ["bar"]
