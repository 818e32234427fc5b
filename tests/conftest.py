import logging
import os

import pytest

# ----------------------------------------------------------------------
# Environment MUST be set before storeclass.config is imported
# ----------------------------------------------------------------------

os.environ.setdefault("STORECLASS_LOG_LEVEL", "DEBUG")

from storeclass import reload_config  # noqa: E402


@pytest.fixture
def engine_env(monkeypatch):
    """
    Set STORECLASS_* variables for one test and reload the config.

    Usage::

        def test_x(engine_env):
            engine_env(STORECLASS_SEPARATOR=".")
    """

    def apply(**env):
        for key, value in env.items():
            monkeypatch.setenv(key, value)
        return reload_config()

    yield apply
    monkeypatch.undo()
    reload_config()


@pytest.fixture
def caplog_debug(caplog):
    caplog.set_level(logging.DEBUG, logger="storeclass")
    return caplog
