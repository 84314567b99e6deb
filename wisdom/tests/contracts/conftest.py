"""
Shared pytest fixtures for Wisdom contract tests.
"""
import sys
import threading
import time

import pytest

from wisdom.content.capability import Capability
from wisdom.content.pipeline import GenerationError
from wisdom.http.server import WisdomServer
from wisdom.tests.contracts.test_doubles import (
    FORMATTER_CODE,
    QUOTE_CODE,
    FakeGenerator,
    python_argv,
)


@pytest.fixture
def quote_argv():
    return python_argv(QUOTE_CODE)


@pytest.fixture
def formatter_argv():
    return python_argv(FORMATTER_CODE)


@pytest.fixture
def full_capability():
    """Both utilities present."""
    return Capability(quote_source_path=sys.executable, formatter_path=sys.executable)


@pytest.fixture
def no_formatter_capability():
    """Formatter simulated as unavailable."""
    return Capability(quote_source_path=sys.executable, formatter_path=None)


@pytest.fixture
def serve():
    """
    Factory starting a WisdomServer on 127.0.0.1 with an ephemeral port in a
    background thread. Every server started is stopped at teardown.
    """
    started = []

    def _serve(generator, **kwargs):
        kwargs.setdefault("linger", 0.05)
        server = WisdomServer("127.0.0.1", 0, generator, **kwargs)
        server.bind()
        thread = threading.Thread(target=server.serve_forever, daemon=True, name="WisdomServer")
        thread.start()
        started.append((server, thread))
        return server

    yield _serve

    for server, thread in started:
        server.stop()
        thread.join(timeout=5.0)
        assert not thread.is_alive(), "Accept loop did not stop"


@pytest.fixture
def failing_generator():
    return FakeGenerator(GenerationError("fortune exited with status 1"))


@pytest.fixture(autouse=False)
def thread_leak_guard():
    """
    Optional fixture to detect handler threads outliving a test.

    Request it explicitly in tests that exercise concurrent mode.
    """
    before = set(t.ident for t in threading.enumerate())
    yield
    deadline = time.monotonic() + 2.0
    while time.monotonic() < deadline:
        leaked = set(t.ident for t in threading.enumerate()) - before
        if not leaked:
            return
        time.sleep(0.05)
    leaked_threads = [t for t in threading.enumerate() if t.ident in leaked]
    thread_info = "\n".join(f"  - {t.name} (daemon={t.daemon})" for t in leaked_threads)
    assert False, f"Thread leak detected.\nLeaked threads:\n{thread_info}"
