"""
Integration tests for end-to-end reactive updates.

These drive a daemon without its background threads: producers commit
directly into the store and process_pending() runs the propagation rounds,
so every scenario is deterministic.
"""

from unittest.mock import patch

import pytest

from wisp.config.loader import read_config
from wisp.controller import ChangeNotification
from wisp.expr.value import Value
from wisp.managers.script_vars import ListenWorker
from wisp.tree.patch import SetAttribute
from wisp.utils.errors import BackendError, ConfigurationError, ParseError, UnknownVariable


@pytest.fixture
def bar(daemon, backend):
    """Daemon with the sample config loaded and the bar window open"""
    daemon.load()
    daemon.open_window("bar")
    return daemon.windows.windows["bar"]


def text_at(backend, window, path):
    return backend.tree(window.handle).node_at(path).attributes["text"]


class TestPollScenario:
    """A polled counter feeding an arithmetic binding"""

    def test_initial_render(self, bar, backend):
        assert text_at(backend, bar, (0,)) == Value.number(11)
        assert text_at(backend, bar, (1,)) == Value.string("hello")
        assert text_at(backend, bar, (2,)) == Value.string("#fff")

    def test_new_poll_value_sends_one_operation(self, daemon, bar, backend, fake_runner):
        scheduler = daemon.producers.scheduler
        definition = daemon.store.definition("counter")
        scheduler.add(definition)

        fake_runner.outputs["counter"] = "2"
        assert scheduler.poll_now(definition) is True
        assert daemon.process_pending() == 1

        assert backend.operations() == [SetAttribute((0,), "text", Value.number(12))]
        assert text_at(backend, bar, (0,)) == Value.number(12)

    def test_same_poll_value_sends_nothing(self, daemon, bar, backend, fake_runner):
        scheduler = daemon.producers.scheduler
        definition = daemon.store.definition("counter")
        scheduler.add(definition)

        fake_runner.outputs["counter"] = "2"
        scheduler.poll_now(definition)
        daemon.process_pending()
        assert scheduler.poll_now(definition) is False
        assert daemon.process_pending() == 0
        assert len(backend.operations()) == 1


class TestListenScenario:
    """A listened theme switching a conditional binding"""

    def test_each_line_updates_the_badge(self, daemon, bar, backend, fake_spawner):
        worker = ListenWorker(daemon.store.definition("mode"), daemon.store, fake_spawner)
        expected = {"dark": "#000", "light": "#fff"}

        for index, line in enumerate(["dark", "light", "dark"], start=1):
            worker._commit_line(line + "\n")
            assert daemon.process_pending() == 1
            assert text_at(backend, bar, (2,)) == Value.string(expected[line])
            assert len(backend.operations()) == index

        assert all(op.path == (2,) and op.name == "text" for op in backend.operations())

    def test_repeated_line_sends_nothing(self, daemon, bar, backend):
        daemon.store.commit("mode", Value.string("light"))
        assert daemon.process_pending() == 1
        assert backend.operations() == []


class TestCoalescing:
    """Notifications queued together share one round"""

    def test_one_round_per_batch(self, daemon, bar, backend):
        daemon.store.commit("counter", Value.number(2))
        daemon.store.commit("counter", Value.number(3))
        daemon.store.commit("greeting", Value.string("bye"))

        assert daemon.process_pending() == 1
        assert len(backend.history) == 1
        assert backend.history[0].ops == (
            SetAttribute((0,), "text", Value.number(13)),
            SetAttribute((1,), "text", Value.string("bye")),
        )

    def test_stale_generation_is_ignored(self, daemon, bar, backend):
        daemon.queue.put(ChangeNotification(daemon.generation - 1, "counter", 9))
        daemon.process_pending()
        assert list(backend.history) == []


class TestControlSurface:
    """Open, close, override and inspect"""

    def test_get_state(self, daemon):
        daemon.load()
        assert daemon.get_state() == {
            "counter": {"value": "1", "version": 1},
            "greeting": {"value": "hello", "version": 1},
            "mode": {"value": "light", "version": 1},
        }

    def test_set_variable_propagates_immediately(self, daemon, bar, backend):
        patches = daemon.set_variable("greeting", "bye")
        assert [patch.ops for patch in patches] == [(SetAttribute((1,), "text", Value.string("bye")),)]
        assert daemon.get_state()["greeting"] == {"value": "bye", "version": 2}
        assert daemon.process_pending() == 0

    def test_set_unknown_variable(self, daemon, bar):
        with pytest.raises(UnknownVariable):
            daemon.set_variable("nope", 1)

    def test_failing_binding_keeps_other_bindings_alive(self, daemon, bar, backend):
        assert daemon.set_variable("counter", "lots") == []
        assert text_at(backend, bar, (0,)) == Value.number(11)
        assert bar.reporter.active()[((0,), "text")][0] == "TypeMismatch"

        daemon.set_variable("greeting", "still here")
        assert text_at(backend, bar, (1,)) == Value.string("still here")

        daemon.set_variable("counter", 5)
        assert text_at(backend, bar, (0,)) == Value.number(15)
        assert bar.reporter.active() == {}

    def test_backend_failure_reaches_caller(self, daemon, bar, backend):
        with patch.object(backend, "apply_patch", side_effect=BackendError("display gone")):
            with pytest.raises(BackendError):
                daemon.set_variable("greeting", "bye")
        assert bar.root.node_at((1,)).attributes["text"] == Value.string("hello")

    def test_open_unknown_window(self, daemon):
        daemon.load()
        with pytest.raises(ConfigurationError, match="Unknown window 'dock'"):
            daemon.open_window("dock")

    def test_close_window(self, daemon, bar, backend):
        daemon.close_window("bar")
        assert daemon.list_windows() == []
        assert backend.trees == {}
        with pytest.raises(ConfigurationError):
            daemon.close_window("bar")

    def test_shutdown(self, daemon, bar, backend):
        daemon.shutdown()
        assert backend.trees == {}
        assert daemon.get_state() == {}
        assert daemon.config is None


class TestReload:
    """Configuration reloads keep the running system consistent"""

    def test_malformed_reload_keeps_everything(self, daemon, bar, backend):
        daemon.set_variable("greeting", "bye")
        config, store, state = daemon.config, daemon.store, daemon.get_state()

        with pytest.raises(ParseError) as excinfo:
            daemon.reload_config('(defvar greeting "hi")\n(defwindow bar (label :text "x")')

        assert excinfo.value.line == 2
        assert "line 2" in str(excinfo.value)
        assert daemon.config is config
        assert daemon.store is store
        assert daemon.get_state() == state
        assert daemon.list_windows() == ["bar"]

        # The old producers and bindings are still wired up
        daemon.store.commit("counter", Value.number(4))
        assert daemon.process_pending() == 1
        assert text_at(backend, bar, (0,)) == Value.number(14)

    def test_invalid_reload_keeps_everything(self, daemon, bar):
        config = daemon.config
        with pytest.raises(ConfigurationError):
            daemon.reload_config('(defwindow bar (marquee :text "x"))')
        assert daemon.config is config

    def test_unchanged_variables_keep_their_values(self, daemon, bar, backend, config_file):
        daemon.set_variable("greeting", "bye")
        text = read_config(str(config_file)).replace("(+ counter 10)", "(+ counter 100)")

        assert daemon.reload_config(text) == ["bar"]

        assert daemon.get_state()["greeting"]["value"] == "bye"
        assert text_at(backend, daemon.windows.windows["bar"], (0,)) == Value.number(101)
        assert text_at(backend, daemon.windows.windows["bar"], (1,)) == Value.string("bye")

    def test_changed_definition_resets_value(self, daemon, bar, backend, config_file):
        daemon.set_variable("greeting", "bye")
        text = read_config(str(config_file)).replace('(defvar greeting "hello")', '(defvar greeting "hey")')

        daemon.reload_config(text)

        assert daemon.get_state()["greeting"]["value"] == "hey"
        assert text_at(backend, daemon.windows.windows["bar"], (1,)) == Value.string("hey")

    def test_notifications_from_replaced_store_are_dropped(self, daemon, bar, backend, sample_text):
        daemon.store.commit("counter", Value.number(7))
        daemon.reload_config(sample_text)
        history = len(backend.history)

        assert daemon.process_pending() == 0
        assert len(backend.history) == history

    def test_reload_from_file(self, daemon, bar, config_file):
        config_file.write_text(read_config(str(config_file)).replace("defwindow bar", "defwindow dock"))
        assert daemon.reload_config() == []
