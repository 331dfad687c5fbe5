"""Tests for uvicorn option resolution."""

from __future__ import annotations

import pytest

from cartwise.server.run import resolve_options


def test_defaults_without_environment():
    options = resolve_options(environ={})

    assert (options.host, options.port, options.reload, options.duration) == ("127.0.0.1", 8000, False, None)


def test_arguments_override_environment():
    env = {"CARTWISE_SERVER_HOST": "0.0.0.0", "CARTWISE_SERVER_PORT": "9000", "RELOAD": "1"}

    assert resolve_options(environ=env).port == 9000
    options = resolve_options(host="localhost", port=8100, reload=False, environ=env)
    assert (options.host, options.port, options.reload) == ("localhost", 8100, False)


@pytest.mark.parametrize(
    "env",
    [
        {"CARTWISE_SERVER_DURATION": "0"},
        {"CARTWISE_SERVER_DURATION": "soon"},
        {"CARTWISE_SERVER_DURATION": "5", "RELOAD": "1"},
        {"CARTWISE_SERVER_PORT": "70000"},
    ],
)
def test_invalid_options_exit(env):
    with pytest.raises(SystemExit):
        resolve_options(environ=env)
