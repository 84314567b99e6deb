# wisdom/content/pipeline.py

import logging
import subprocess
import tempfile
import time
from contextlib import contextmanager
from typing import IO, Iterator, List, Sequence, Tuple

logger = logging.getLogger(__name__)

# Grace period for a killed child to be reaped
KILL_WAIT_SEC = 1.0

# Cap on stderr echoed into error messages
STDERR_SNIPPET_BYTES = 200


class GenerationError(Exception):
    """Raised when the external pipeline cannot produce a blob."""
    pass


def _stderr_snippet(data: bytes) -> str:
    text = data.decode("utf-8", errors="replace").strip()
    if len(text) > STDERR_SNIPPET_BYTES:
        text = text[:STDERR_SNIPPET_BYTES] + "..."
    return text


def _read_spooled(spool: IO[bytes]) -> bytes:
    spool.seek(0)
    return spool.read()


def _reap(proc: subprocess.Popen) -> None:
    """Kill the child if it is still running, wait for it, close its pipes."""
    if proc.poll() is None:
        logger.warning(f"Killing pipeline stage {proc.args[0]!r} (pid={proc.pid})")
        proc.kill()
        try:
            proc.wait(timeout=KILL_WAIT_SEC)
        except subprocess.TimeoutExpired:
            logger.error(f"Pipeline stage did not exit after SIGKILL (pid={proc.pid})")

    for pipe in (proc.stdin, proc.stdout, proc.stderr):
        if pipe is not None:
            pipe.close()


@contextmanager
def _spawned(
    commands: Sequence[Sequence[str]],
) -> Iterator[Tuple[List[subprocess.Popen], List[IO[bytes]]]]:
    """
    Spawn each command with its stdout wired into the next one's stdin.

    Yields the children and, for every stage but the last, the temporary file
    its stderr is spooled to. Nothing reads an upstream stage's stderr while
    the pipeline runs, so a pipe there could fill and stall the stage.

    Every child spawned here is reaped on exit, whether the block finished,
    raised, or a later stage failed to start.
    """
    procs: List[subprocess.Popen] = []
    spools: List[IO[bytes]] = []
    try:
        upstream = subprocess.DEVNULL
        for index, argv in enumerate(commands):
            if index < len(commands) - 1:
                spools.append(tempfile.TemporaryFile(prefix="wisdom-stderr-"))
                stderr = spools[-1]
            else:
                # communicate() drains the last stage's stderr
                stderr = subprocess.PIPE
            try:
                # New session keeps terminal signals aimed at the server away
                # from its children
                proc = subprocess.Popen(
                    list(argv),
                    stdin=upstream,
                    stdout=subprocess.PIPE,
                    stderr=stderr,
                    start_new_session=True,
                )
            except OSError as e:
                raise GenerationError(f"Failed to start {argv[0]!r}: {e}") from e

            if procs:
                # Only the downstream child may hold the read end, so the
                # upstream one sees SIGPIPE if the downstream exits early
                procs[-1].stdout.close()
            procs.append(proc)
            upstream = proc.stdout

        yield procs, spools
    finally:
        for proc in procs:
            _reap(proc)
        for spool in spools:
            spool.close()


def run_pipeline(commands: Sequence[Sequence[str]], timeout: float) -> bytes:
    """
    Run a shell-style pipeline and capture the last stage's stdout.

    Args:
        commands: argv lists, first stage first; stdin of the first stage is
            /dev/null
        timeout: Bound in seconds on the whole pipeline

    Returns:
        stdout of the last stage

    Raises:
        GenerationError: If a stage fails to start, exits non-zero, or the
            pipeline does not finish within the timeout
    """
    if not commands:
        raise ValueError("Pipeline needs at least one command")

    deadline = time.monotonic() + timeout

    with _spawned(commands) as (procs, spools):
        last = procs[-1]
        try:
            output, last_err = last.communicate(timeout=timeout)
        except subprocess.TimeoutExpired as e:
            raise GenerationError(
                f"{last.args[0]!r} did not finish within {timeout}s"
            ) from e

        # Upstream stages have already handed over their output
        for proc, spool in zip(procs[:-1], spools):
            remaining = max(deadline - time.monotonic(), 0.01)
            try:
                proc.wait(timeout=remaining)
            except subprocess.TimeoutExpired as e:
                raise GenerationError(
                    f"{proc.args[0]!r} did not finish within {timeout}s"
                ) from e
            if proc.returncode != 0:
                raise GenerationError(
                    f"{proc.args[0]!r} exited with status {proc.returncode}: "
                    f"{_stderr_snippet(_read_spooled(spool))}"
                )

        if last.returncode != 0:
            raise GenerationError(
                f"{last.args[0]!r} exited with status {last.returncode}: "
                f"{_stderr_snippet(last_err)}"
            )

    return output
