"""
Transport layer abstraction for peer communication.

Currently implements:
  - StdioTransport: newline-delimited JSON-RPC over a child process's
    stdin/stdout pipes (local)

Every transport carries one exclusive, re-entrant ``lock``. Callers hold it
across a send+receive pair so at most one request per peer awaits its reply.
Replies are not matched to requests by id.
"""

from __future__ import annotations

import logging
import os
import subprocess
import threading
from abc import ABC, abstractmethod
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from typing import IO

from peerlink.codec import Envelope, decode, encode
from peerlink.errors import (
    DeadlineExceededError,
    NotConnectedError,
    PeerConnectionError,
)

logger = logging.getLogger(__name__)


class Transport(ABC):
    """Abstract bidirectional envelope channel."""

    def __init__(self) -> None:
        self.lock = threading.RLock()

    @abstractmethod
    def start(self) -> None:
        """Open the channel (e.g., launch subprocess)."""
        ...

    @abstractmethod
    def send(self, envelope: Envelope) -> None:
        """Write one envelope."""
        ...

    @abstractmethod
    def send_with_deadline(self, envelope: Envelope, timeout: float | None) -> None:
        """Write one envelope, giving up after ``timeout`` seconds.

        Only the write is bounded; a following ``receive`` is not.
        """
        ...

    @abstractmethod
    def receive(self) -> Envelope:
        """Block until one full envelope arrives or the channel closes."""
        ...

    @abstractmethod
    def close(self) -> None:
        """Close the channel. Safe to call more than once."""
        ...

    @abstractmethod
    def is_connected(self) -> bool:
        """Check if the transport is usable."""
        ...


class StdioTransport(Transport):
    """
    JSON-RPC over stdin/stdout pipes to a subprocess.

    The peer runs as a child process. We write requests to its stdin and
    read replies from its stdout. One line = one message. stderr is drained
    in the background so a chatty peer cannot block on a full pipe; the tail
    is kept for error messages.
    """

    RECENT_LINES = 10
    STDERR_LINES = 20
    TERMINATE_WAIT = 5.0

    def __init__(
        self,
        command: list[str],
        env: dict[str, str] | None = None,
        cwd: str | None = None,
        shutdown_grace: float = 2.0,
    ):
        """
        Args:
            command: Command to launch the peer process.
                     e.g., ["python", "-m", "peerlink.servers.calculator"]
            env: Environment overrides, merged over the inherited environment.
            cwd: Working directory for the peer process.
            shutdown_grace: Seconds to wait for the peer to exit on its own
                            after stdin is closed, before terminating it.
        """
        super().__init__()
        self.command = list(command)
        self.env = dict(env or {})
        self.cwd = cwd
        self.shutdown_grace = shutdown_grace
        self._process: subprocess.Popen | None = None
        self._connected = False
        self._state_lock = threading.Lock()
        self._write_lock = threading.Lock()
        self._writer: ThreadPoolExecutor | None = None
        self._recent: deque[str] = deque(maxlen=self.RECENT_LINES)
        self._stderr_tail: deque[str] = deque(maxlen=self.STDERR_LINES)

    def start(self) -> None:
        """Launch the peer subprocess."""
        if self.is_connected():
            raise PeerConnectionError("transport already started")
        if not self.command:
            raise PeerConnectionError("empty command")

        # Reap a process left behind by an earlier read failure
        self.close()

        env = {**os.environ, **self.env} if self.env else None

        with self._state_lock:
            logger.info(f"Starting stdio transport: {' '.join(self.command)}")
            try:
                process = subprocess.Popen(
                    self.command,
                    stdin=subprocess.PIPE,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.PIPE,
                    env=env,
                    cwd=self.cwd,
                )
            except (OSError, ValueError) as e:
                raise PeerConnectionError(
                    f"failed to start process {self.command[0]!r}: {e}"
                ) from e

            self._process = process
            self._connected = True
            self._recent.clear()
            self._stderr_tail.clear()

        threading.Thread(
            target=self._drain_stderr,
            args=(process.stderr,),
            name=f"stderr-{process.pid}",
            daemon=True,
        ).start()

    def send(self, envelope: Envelope) -> None:
        data = encode(envelope) + b"\n"
        with self.lock:
            self._write(self._require_process(), data)

    def send_with_deadline(self, envelope: Envelope, timeout: float | None) -> None:
        if timeout is None:
            self.send(envelope)
            return
        if timeout <= 0:
            raise DeadlineExceededError("deadline exceeded before send")

        data = encode(envelope) + b"\n"
        with self.lock:
            process = self._require_process()
            future = self._executor().submit(self._write, process, data)
            try:
                future.result(timeout=timeout)
            except FutureTimeout:
                raise DeadlineExceededError(
                    f"send did not complete within {timeout}s"
                ) from None

    def receive(self) -> Envelope:
        """Read the next non-blank stdout line and decode it."""
        with self.lock:
            process = self._require_process()
            while True:
                try:
                    line = process.stdout.readline()
                except (OSError, ValueError) as e:
                    self._mark_disconnected()
                    raise PeerConnectionError(f"error reading from stdout: {e}") from e

                if not line:
                    # Process may have died
                    self._mark_disconnected()
                    raise PeerConnectionError(f"EOF reached{self._stderr_hint()}")
                if line.strip():
                    break

            text = line.decode("utf-8", errors="replace").rstrip("\r\n")
            self._recent.append(text)
            logger.debug(f"<- {text}")
            return decode(line)

    def close(self) -> None:
        """Close stdin, then terminate the peer if it does not exit by itself."""
        with self._state_lock:
            process = self._process
            writer = self._writer
            self._process = None
            self._writer = None
            self._connected = False

        if process is None:
            return

        # The exclusive lock is not held here, so a reader blocked on the
        # child's stdout is released by the child's exit below.
        write_pending = self._write_lock.locked()
        if write_pending:
            # A write stuck on a full pipe holds stdin until the child is gone
            logger.warning(f"Write to pid {process.pid} still pending, terminating")
            process.terminate()
        else:
            self._close_stdin(process)

        try:
            process.wait(timeout=self.shutdown_grace)
        except subprocess.TimeoutExpired:
            process.terminate()
            try:
                process.wait(timeout=self.TERMINATE_WAIT)
            except subprocess.TimeoutExpired:
                logger.warning(f"Peer pid {process.pid} ignored SIGTERM, killing")
                process.kill()
                process.wait()

        if write_pending:
            self._close_stdin(process)
        for stream in (process.stdout, process.stderr):
            if stream:
                stream.close()
        if writer:
            writer.shutdown(wait=False)

        logger.info(f"Stdio transport stopped (exit code {process.returncode})")

    def is_connected(self) -> bool:
        with self._state_lock:
            return self._connected

    @property
    def pid(self) -> int | None:
        with self._state_lock:
            return self._process.pid if self._process else None

    def recent_lines(self) -> list[str]:
        """The last stdout lines received, oldest first."""
        return list(self._recent)

    def stderr_lines(self) -> list[str]:
        """The last stderr lines the peer wrote, oldest first."""
        return list(self._stderr_tail)

    # ── Internals ────────────────────────────────────────────────

    def _require_process(self) -> subprocess.Popen:
        with self._state_lock:
            if not self._connected or self._process is None:
                raise NotConnectedError("transport not connected")
            return self._process

    def _write(self, process: subprocess.Popen, data: bytes) -> None:
        with self._write_lock:
            try:
                process.stdin.write(data)
                process.stdin.flush()
            except (OSError, ValueError) as e:
                self._mark_disconnected()
                raise PeerConnectionError(f"failed to write to stdin: {e}") from e
        logger.debug(f"-> {data.decode('utf-8', errors='replace').rstrip()}")

    @staticmethod
    def _close_stdin(process: subprocess.Popen) -> None:
        if process.stdin:
            try:
                process.stdin.close()
            except OSError as e:
                logger.debug(f"Closing stdin of pid {process.pid}: {e}")

    def _executor(self) -> ThreadPoolExecutor:
        with self._state_lock:
            if self._writer is None:
                self._writer = ThreadPoolExecutor(max_workers=1, thread_name_prefix="stdio-send")
            return self._writer

    def _mark_disconnected(self) -> None:
        with self._state_lock:
            self._connected = False

    def _stderr_hint(self) -> str:
        tail = self.stderr_lines()
        if not tail:
            return ""
        return f". stderr: {' | '.join(tail)[-500:]}"

    def _drain_stderr(self, stream: IO[bytes]) -> None:
        try:
            for raw in iter(stream.readline, b""):
                line = raw.decode("utf-8", errors="replace").rstrip()
                if line:
                    self._stderr_tail.append(line)
                    logger.debug(f"[stderr] {line}")
        except (OSError, ValueError):
            # Stream closed underneath us by close()
            return
