"""
Contract tests for the Wisdom process lifecycle.

Covers: startup prerequisites report, bind failure exits non-zero without
serving, end-to-end serving from `python -m wisdom`, shutdown on SIGTERM.
"""

import logging
import os
import signal
import socket
import subprocess
import sys
import threading
import time
from pathlib import Path

import httpx
import pytest

from wisdom.__main__ import main
from wisdom.config import WisdomConfig
from wisdom.content.capability import Capability
from wisdom.http.server import BindError, ServerState
from wisdom.service import WisdomService
from wisdom.tests.contracts.test_doubles import (
    FORMATTER_CODE,
    QUOTE_CODE,
    QUOTES,
    fetch_raw,
    find_free_port,
    parse_response,
    python_cmd,
)


REPO_ROOT = Path(__file__).resolve().parents[3]


def _config(**overrides) -> WisdomConfig:
    config = WisdomConfig(
        host="127.0.0.1",
        port=find_free_port(),
        quote_cmd=python_cmd(QUOTE_CODE),
        formatter_cmd=python_cmd(FORMATTER_CODE),
        linger_sec=0.05,
    )
    for key, value in overrides.items():
        setattr(config, key, value)
    config.validate()
    return config


def _wisdom_env(tmp_path, **extra) -> dict:
    env = dict(os.environ)
    env["PYTHONPATH"] = os.pathsep.join(filter(None, [str(REPO_ROOT), env.get("PYTHONPATH")]))
    env["WISDOM_ENV_FILE"] = str(tmp_path / "missing.env")
    env["WISDOM_HOST"] = "127.0.0.1"
    env["WISDOM_QUOTE_CMD"] = python_cmd(QUOTE_CODE)
    env["WISDOM_FORMATTER_CMD"] = python_cmd(FORMATTER_CODE)
    env.update(extra)
    return env


def _wait_for_listener(port: int, proc: subprocess.Popen, timeout: float = 10.0) -> None:
    deadline = time.time() + timeout
    while time.time() < deadline:
        if proc.poll() is not None:
            raise RuntimeError(f"Wisdom exited early with status {proc.returncode}")
        try:
            with socket.create_connection(("127.0.0.1", port), timeout=0.5):
                return
        except OSError:
            time.sleep(0.05)
    raise TimeoutError(f"Wisdom did not start listening within {timeout} seconds")


class TestPrerequisites:
    """Tests for the startup capability report."""

    def test_missing_formatter_warned(self, caplog):
        """A missing formatter is reported once at startup."""
        capability = Capability(quote_source_path=sys.executable, formatter_path=None)
        with caplog.at_level(logging.WARNING, logger="wisdom.service"):
            WisdomService(_config(), capability=capability)
        assert "serving plain quotes" in caplog.text

    def test_missing_quote_source_warned_not_fatal(self, caplog):
        """A missing quote source is a warning at startup, not a startup failure."""
        capability = Capability(quote_source_path=None, formatter_path=None)
        with caplog.at_level(logging.WARNING, logger="wisdom.service"):
            service = WisdomService(_config(), capability=capability)
        assert "not found on PATH" in caplog.text
        assert service.server.state is ServerState.INIT

    def test_capability_probed_when_not_given(self):
        """Without an injected probe result the service probes PATH itself."""
        service = WisdomService(_config())
        assert service.capability.quote_source_available
        assert service.capability.formatter_available


class TestServiceInProcess:
    """Tests for WisdomService start/run/stop."""

    @pytest.mark.timeout(20)
    def test_start_serve_stop(self):
        """The service binds, serves real pipeline output and stops cleanly."""
        service = WisdomService(_config())
        service.start()
        thread = threading.Thread(target=service.run_forever, daemon=True)
        thread.start()
        try:
            status, headers, body = parse_response(fetch_raw(service.server.address))
            assert status == "HTTP/1.1 200 OK"
            assert any(quote.encode() in body for quote in QUOTES)
        finally:
            service.stop()
            thread.join(timeout=5.0)
        assert not thread.is_alive()
        assert service.stats()["served"] == 1

    def test_start_bind_failure(self):
        """start() surfaces BindError for an occupied port."""
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as blocker:
            blocker.bind(("127.0.0.1", 0))
            blocker.listen(1)
            service = WisdomService(_config(port=blocker.getsockname()[1]))
            with pytest.raises(BindError):
                service.start()

    @pytest.mark.timeout(10)
    def test_sigterm_stops_service(self):
        """SIGTERM delivered to the process stops the server."""
        service = WisdomService(_config())
        service.start()
        previous = {s: signal.getsignal(s) for s in (signal.SIGTERM, signal.SIGINT)}
        try:
            service.install_signal_handlers()
            os.kill(os.getpid(), signal.SIGTERM)
            deadline = time.monotonic() + 2.0
            while service.server.state is not ServerState.STOPPED and time.monotonic() < deadline:
                time.sleep(0.01)
            assert service.server.state is ServerState.STOPPED
        finally:
            for signum, handler in previous.items():
                signal.signal(signum, handler)
            service.stop()


class TestMainEntryPoint:
    """Tests for `python -m wisdom`."""

    def test_main_bind_failure_returns_nonzero(self, monkeypatch, tmp_path):
        """main() returns 1 when the port is taken."""
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as blocker:
            blocker.bind(("127.0.0.1", 0))
            blocker.listen(1)
            port = blocker.getsockname()[1]
            monkeypatch.setenv("WISDOM_ENV_FILE", str(tmp_path / "missing.env"))
            monkeypatch.setenv("WISDOM_HOST", "127.0.0.1")
            assert main([str(port)]) == 1

    def test_main_invalid_config_returns_nonzero(self, monkeypatch, tmp_path):
        """main() returns 1 on invalid configuration."""
        monkeypatch.setenv("WISDOM_ENV_FILE", str(tmp_path / "missing.env"))
        monkeypatch.setenv("WISDOM_GENERATE_TIMEOUT_SEC", "never")
        assert main([]) == 1

    def test_main_invalid_port_argument_returns_nonzero(self, monkeypatch, tmp_path):
        monkeypatch.setenv("WISDOM_ENV_FILE", str(tmp_path / "missing.env"))
        assert main(["70000"]) == 1

    def test_main_interrupt_during_startup_exits_cleanly(self, monkeypatch, tmp_path):
        """Ctrl-C before the signal handlers are installed is a clean shutdown."""
        monkeypatch.setenv("WISDOM_ENV_FILE", str(tmp_path / "missing.env"))
        monkeypatch.setenv("WISDOM_HOST", "127.0.0.1")
        monkeypatch.setenv("WISDOM_QUOTE_CMD", python_cmd(QUOTE_CODE))
        monkeypatch.setenv("WISDOM_FORMATTER_CMD", python_cmd(FORMATTER_CODE))
        services = []
        real_start = WisdomService.start

        def interrupted_start(service):
            services.append(service)
            real_start(service)
            raise KeyboardInterrupt

        monkeypatch.setattr(WisdomService, "start", interrupted_start)

        assert main([str(find_free_port())]) == 0
        assert services[0].server.state is ServerState.STOPPED

    @pytest.mark.timeout(20)
    def test_scenario_bind_failure_exits_nonzero(self, tmp_path):
        """Port already bound by another listener: the process exits non-zero without serving."""
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as blocker:
            blocker.bind(("127.0.0.1", 0))
            blocker.listen(1)
            port = blocker.getsockname()[1]

            result = subprocess.run(
                [sys.executable, "-m", "wisdom"],
                cwd=str(REPO_ROOT),
                env=_wisdom_env(tmp_path, WISDOM_PORT=str(port)),
                capture_output=True,
                text=True,
                timeout=15,
            )

        assert result.returncode != 0
        assert "Cannot listen on" in result.stderr
        assert "Wisdom served on port" not in result.stderr

    @pytest.mark.timeout(30)
    def test_scenario_serves_then_terminates_cleanly(self, tmp_path):
        """The process serves consecutive requests and exits 0 on SIGTERM."""
        port = find_free_port()
        proc = subprocess.Popen(
            [sys.executable, "-m", "wisdom", str(port)],
            cwd=str(REPO_ROOT),
            env=_wisdom_env(tmp_path),
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
        )
        try:
            _wait_for_listener(port, proc)

            with httpx.Client(timeout=5.0) as client:
                for _ in range(2):
                    resp = client.get(f"http://127.0.0.1:{port}/")
                    assert resp.status_code == 200
                    assert int(resp.headers["content-length"]) == len(resp.content)
                    assert resp.content

            proc.send_signal(signal.SIGTERM)
            _, stderr = proc.communicate(timeout=10)
        finally:
            if proc.poll() is None:
                proc.kill()
                proc.wait()

        assert proc.returncode == 0
        assert f"Wisdom served on port={port}" in stderr
