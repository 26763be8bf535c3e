"""Shared test fixtures and configuration."""

import gc

import pytest


@pytest.fixture(autouse=True)
def _qt_cleanup():
    """Flush queued Qt events after each test.

    Provider callbacks are posted to the bridge as queued signals. A test
    that finishes before they are delivered would otherwise leak them into
    the next test's processEvents() call.
    """
    yield
    try:
        from PySide6.QtCore import QCoreApplication

        app = QCoreApplication.instance()
        if app is not None:
            app.processEvents()
    except ImportError:
        pass
    gc.collect()


@pytest.fixture(autouse=True)
def _isolated_cache_dir(tmp_path, monkeypatch):
    """Point the default cache directory at a temp dir for every test."""
    monkeypatch.setenv("FASTPLAYER_CACHE_DIR", str(tmp_path / "default_cache"))
