"""Integration test fixtures.

The CLI installs root log handlers bound to CliRunner's captured streams;
they are removed after each test so later tests never write to a closed
stream.
"""

from __future__ import annotations

import logging

import pytest


@pytest.fixture(autouse=True)
def reset_root_logging():
    yield
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()


@pytest.fixture
def qualys_env(monkeypatch):
    monkeypatch.setenv("QUALYS_USERNAME", "svc-sync")
    monkeypatch.setenv("QUALYS_PASSWORD", "s3cret")
