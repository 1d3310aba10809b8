"""
Pytest configuration and fixtures
"""

from unittest.mock import Mock

import pytest
from fakes import FakeRunner, FakeSpawner

from wisp.backends.headless import HeadlessBackend
from wisp.config.definitions import load_config
from wisp.controller import WispDaemon
from wisp.widgets.registry import default_registry


SAMPLE_CONFIG = """
; sample bar
(defvar greeting "hello")
(defpoll counter :interval "1s" :initial "1" "count-things")
(deflisten mode :initial "light" "watch-theme")

(defwidget badge (text ?color)
  (label :text text :class (?: color "plain")))

(defwindow bar :monitor 0
  (box :orientation "h"
    (label :text (+ counter 10))
    (label :text greeting)
    (badge :text (if (== mode "dark") "#000" "#fff"))))
"""


@pytest.fixture
def registry():
    """Registry populated with every builtin widget type"""
    return default_registry()


@pytest.fixture
def sample_text():
    return SAMPLE_CONFIG


@pytest.fixture
def sample_config(registry):
    """Parsed and validated sample configuration"""
    return load_config(SAMPLE_CONFIG, registry)


@pytest.fixture
def config_file(tmp_path):
    """Create a temporary widget config file"""
    config_path = tmp_path / "wisp.yuck"
    config_path.write_text(SAMPLE_CONFIG)
    return config_path


@pytest.fixture
def backend():
    return HeadlessBackend()


@pytest.fixture
def fake_runner():
    return FakeRunner({"counter": "1"})


@pytest.fixture
def fake_spawner():
    return FakeSpawner()


@pytest.fixture
def daemon(config_file, backend, fake_runner, fake_spawner, registry):
    """Daemon on the sample config with faked producers and no file watching"""
    daemon = WispDaemon(
        str(config_file),
        settings={"watch": {"enabled": False}},
        backend=backend,
        poll_runner=fake_runner,
        listen_spawner=fake_spawner,
        registry=registry,
    )
    yield daemon
    daemon.shutdown()


@pytest.fixture(autouse=True)
def no_subprocess_calls(monkeypatch):
    """Prevent actual subprocess calls during testing"""
    mock_popen = Mock()
    mock_popen.returncode = 0
    monkeypatch.setattr("subprocess.Popen", Mock(return_value=mock_popen))
    monkeypatch.setattr("subprocess.run", Mock(return_value=Mock(returncode=0, stdout="", stderr="")))
