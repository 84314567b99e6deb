# wisdom/http/server.py

import logging
import socket
import threading
import time
from enum import Enum
from typing import Optional, Tuple

from wisdom.content.pipeline import GenerationError
from wisdom.http.response import build_error_response, build_response

logger = logging.getLogger(__name__)

# accept() wakes this often to notice stop()
ACCEPT_POLL_SEC = 0.5

# Pause after an unexpected accept() failure (e.g. EMFILE) before retrying
ACCEPT_ERROR_BACKOFF_SEC = 0.1

DRAIN_CHUNK_BYTES = 4096


class BindError(Exception):
    """Raised when the listening socket cannot be bound. Fatal at startup."""
    pass


class WriteError(Exception):
    """Raised when a response cannot be written to a client."""
    pass


class ServerState(Enum):
    INIT = "INIT"
    LISTENING = "LISTENING"
    HANDLING = "HANDLING"
    STOPPED = "STOPPED"


class WisdomServer:
    """
    Accept loop serving one generated blob per connection.

    State machine: INIT -> LISTENING -> HANDLING -> LISTENING ... -> STOPPED.
    STOPPED is reached only through a bind failure or stop(); a failure while
    handling one connection never ends the loop.

    Request bytes are never parsed. Every connection gets the same path:
    generate, frame, write once, close. In concurrent mode each connection is
    handled on its own daemon thread and the loop stays in LISTENING.
    """

    def __init__(
        self,
        host: str,
        port: int,
        generator,
        backlog: int = 16,
        write_timeout: float = 5.0,
        linger: float = 0.2,
        concurrent: bool = False,
    ):
        """
        Initialize WisdomServer.

        Args:
            host: Host address to bind to
            port: Port to listen on (0 picks an ephemeral port)
            generator: Must implement .generate() returning bytes
            backlog: listen() backlog
            write_timeout: Bound in seconds on writing one response
            linger: Bound in seconds on discarding client input before close
            concurrent: Handle each connection on its own thread
        """
        self.host = host
        self.port = port
        self.generator = generator
        self.backlog = backlog
        self.write_timeout = write_timeout
        self.linger = linger
        self.concurrent = concurrent

        self._state = ServerState.INIT
        self._sock: Optional[socket.socket] = None
        self._shutdown = threading.Event()
        self._serving = False

        # Shared by handler threads in concurrent mode
        self._stats_lock = threading.Lock()
        self._served = 0
        self._failed = 0
        self._write_failed = 0

    @property
    def state(self) -> ServerState:
        return self._state

    @property
    def address(self) -> Tuple[str, int]:
        """Actual bound (host, port); only valid after bind()."""
        if self._sock is None:
            raise RuntimeError("Server is not bound")
        return self._sock.getsockname()[:2]

    def bind(self) -> None:
        """
        Bind and listen: INIT -> LISTENING.

        Raises:
            BindError: If the port is in use, not permitted, or the host is
                invalid. The server is STOPPED afterwards.
        """
        if self._state is not ServerState.INIT:
            raise RuntimeError(f"Cannot bind from state {self._state.value}")

        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((self.host, self.port))
            sock.listen(self.backlog)
        except OSError as e:
            sock.close()
            self._state = ServerState.STOPPED
            reason = e.strerror or str(e)
            raise BindError(f"Cannot listen on {self.host}:{self.port}: {reason}") from e

        sock.settimeout(ACCEPT_POLL_SEC)
        self._sock = sock
        self._state = ServerState.LISTENING
        logger.info(f"Listening on {self.host}:{self.address[1]}")

    def serve_forever(self) -> None:
        """
        Run the accept loop in the current thread until stop() is called.

        Binds first if bind() has not been called yet.

        Raises:
            BindError: If binding fails
        """
        if self._state is ServerState.INIT:
            self.bind()
        if self._state is ServerState.STOPPED or self._sock is None:
            raise RuntimeError("Server is stopped")

        self._serving = True
        try:
            while not self._shutdown.is_set():
                try:
                    client, addr = self._sock.accept()
                except socket.timeout:
                    continue
                except OSError as e:
                    if self._shutdown.is_set():
                        break
                    logger.warning(f"accept() failed: {e}")
                    time.sleep(ACCEPT_ERROR_BACKOFF_SEC)
                    continue

                self._dispatch(client, addr)
        finally:
            self._serving = False
            self._close_listener()
            self._state = ServerState.STOPPED
            logger.info("Accept loop stopped")

    def stop(self) -> None:
        """
        Stop accepting connections. Safe to call from a signal handler or
        another thread, and more than once.
        """
        self._shutdown.set()

        sock = self._sock
        if sock is None:
            self._state = ServerState.STOPPED
            return

        if self._serving:
            # Wakes a blocked accept(); serve_forever closes the socket
            try:
                sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
        else:
            self._close_listener()
            self._state = ServerState.STOPPED

    def stats(self) -> dict:
        """Counters since start: served, failed (500s), write_failed."""
        with self._stats_lock:
            return {
                "served": self._served,
                "failed": self._failed,
                "write_failed": self._write_failed,
            }

    def _dispatch(self, client: socket.socket, addr) -> None:
        if self.concurrent:
            try:
                threading.Thread(
                    target=self.handle_connection,
                    args=(client, addr),
                    daemon=True,
                    name=f"wisdom-conn-{addr[1] if addr else '?'}",
                ).start()
            except RuntimeError as e:
                # e.g. "can't start new thread"; drop this client, keep accepting
                logger.error(f"Cannot start handler thread for {addr}: {e}")
                client.close()
            return

        self._state = ServerState.HANDLING
        try:
            self.handle_connection(client, addr)
        finally:
            if not self._shutdown.is_set():
                self._state = ServerState.LISTENING

    def handle_connection(self, client: socket.socket, addr=None) -> None:
        """
        Serve one accepted connection: generate, frame, write, close.

        Never raises; every per-connection failure is logged and the socket
        is always closed.
        """
        peer = f"{addr[0]}:{addr[1]}" if addr else "unknown"
        generated = False
        try:
            try:
                blob = self.generator.generate()
                payload = build_response(blob)
                generated = True
            except GenerationError as e:
                logger.error(f"Content generation failed for {peer}: {e}")
                payload = build_error_response()
            except Exception as e:
                logger.error(f"Unexpected generator error for {peer}: {e}", exc_info=True)
                payload = build_error_response()

            try:
                self._send(client, payload)
            except WriteError as e:
                logger.warning(f"Response to {peer} abandoned: {e}")
                self._record(generated, written=False)
                return

            self._record(generated, written=True)
            logger.debug(f"Served {peer} ({len(payload)} bytes, ok={generated})")
        except Exception as e:
            logger.error(f"Unexpected error handling {peer}: {e}", exc_info=True)
        finally:
            self._close_client(client)

    def _send(self, client: socket.socket, payload: bytes) -> None:
        try:
            client.settimeout(self.write_timeout)
            client.sendall(payload)
        except OSError as e:
            # Covers timeouts, resets and broken pipes
            raise WriteError(str(e) or type(e).__name__) from e

    def _record(self, generated: bool, written: bool) -> None:
        with self._stats_lock:
            if not written:
                self._write_failed += 1
            elif generated:
                self._served += 1
            else:
                self._failed += 1

    def _close_client(self, client: socket.socket) -> None:
        """
        Half-close, discard pending input for at most `linger` seconds, close.

        Closing with unread request bytes makes the kernel send RST, which can
        destroy the response before the client reads it.
        """
        try:
            client.shutdown(socket.SHUT_WR)
        except OSError:
            # Peer already gone
            client.close()
            return

        if self.linger > 0:
            deadline = time.monotonic() + self.linger
            try:
                while True:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        break
                    client.settimeout(remaining)
                    if not client.recv(DRAIN_CHUNK_BYTES):
                        break
            except OSError:
                pass

        client.close()

    def _close_listener(self) -> None:
        sock, self._sock = self._sock, None
        if sock is not None:
            sock.close()
