"""ProcessSupervisor — owns the peer process and its three stdio streams."""

from __future__ import annotations

import contextlib
import logging
import os
import queue
import signal
import subprocess
import sys
import threading
from collections.abc import Mapping, Sequence
from typing import Any

from toolwire.constants import (
    DEFAULT_QUEUE_SIZE,
    DEFAULT_STARTUP_GRACE,
    DEFAULT_STOP_GRACE,
    MAX_LINE_BYTES,
)
from toolwire.errors import SpawnError, TransportClosedError
from toolwire.process.helpers import format_stderr_preview, resolve_executable
from toolwire.process.reader import BackgroundReader, StderrDrain

logger = logging.getLogger(__name__)

#: Seconds to wait after SIGTERM before SIGKILL.
_SIGTERM_WAIT = 1.0

#: Seconds to wait for each reader thread to notice EOF.
_JOIN_TIMEOUT = 1.0


class ProcessSupervisor:
    """Launches one peer process and guarantees it is gone after :meth:`stop`.

    Decoded stdout lines arrive on :attr:`incoming` (filled by a
    :class:`BackgroundReader` thread).  Stderr is logged and its tail kept
    for error messages.  A supervisor is single-use: once stopped it cannot
    be started again.
    """

    def __init__(
        self,
        *,
        name: str = "peer",
        startup_grace: float = DEFAULT_STARTUP_GRACE,
        stop_grace: float = DEFAULT_STOP_GRACE,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        max_line_bytes: int = MAX_LINE_BYTES,
    ) -> None:
        self.name = name
        self._startup_grace = startup_grace
        self._stop_grace = stop_grace
        self._max_line_bytes = max_line_bytes
        self.incoming: queue.Queue[Any] = queue.Queue(maxsize=queue_size)

        self._process: subprocess.Popen[bytes] | None = None
        self._reader: BackgroundReader | None = None
        self._stderr_drain: StderrDrain | None = None
        self._stdin_lock = threading.Lock()
        self._stopped = False
        self._reaper: threading.Thread | None = None

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    def start(
        self,
        command: str,
        args: Sequence[str] = (),
        *,
        cwd: str | None = None,
        env: Mapping[str, str] | None = None,
    ) -> None:
        """Spawn the peer and wait out the startup grace interval.

        Raises:
            SpawnError: If the executable is missing, cannot be launched,
                or exits before the grace interval ends.
        """
        if self._process is not None or self._stopped:
            msg = f"Tool server '{self.name}' was already started"
            raise SpawnError(msg)

        workdir = cwd or os.getcwd()
        search_path = env.get("PATH") if env is not None else None
        executable = resolve_executable(command, workdir, path=search_path)
        if executable is None:
            msg = (
                f"Tool server command not found: {command}\n"
                f"Make sure '{command}' is installed and on your PATH."
            )
            raise SpawnError(msg)

        popen_kwargs: dict[str, Any] = {}
        if sys.platform == "win32":
            popen_kwargs["creationflags"] = subprocess.CREATE_NO_WINDOW
        else:
            popen_kwargs["start_new_session"] = True

        proc_env = None if env is None else {**os.environ, **env}

        try:
            proc = subprocess.Popen(
                [executable, *args],
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                cwd=workdir,
                env=proc_env,
                **popen_kwargs,
            )
        except OSError as exc:
            msg = f"Failed to spawn tool server '{command}': {exc}"
            raise SpawnError(msg) from exc

        self._process = proc
        assert proc.stdout is not None and proc.stderr is not None
        self._reader = BackgroundReader(
            proc.stdout,
            self.incoming,
            name=self.name,
            max_line_bytes=self._max_line_bytes,
        )
        self._stderr_drain = StderrDrain(proc.stderr, name=self.name)
        self._reader.start()
        self._stderr_drain.start()
        logger.info("%s: started pid %d (%s)", self.name, proc.pid, executable)

        returncode = self._wait_for_early_exit(proc)
        if returncode is None:
            return

        # Crashed on launch: let stderr reach EOF so the message is complete.
        self._stderr_drain.join(_JOIN_TIMEOUT)
        stderr_text = self._stderr_drain.tail()
        self.stop()
        msg = f"Tool server '{self.name}' exited during startup with code {returncode}."
        preview = format_stderr_preview(stderr_text)
        if preview:
            msg += f" Stderr:\n  {preview}"
        raise SpawnError(msg, exit_code=returncode, stderr=stderr_text)

    def stop(self, grace: float | None = None) -> None:
        """Close stdin, wait, then SIGTERM -> SIGKILL.  Idempotent.

        Blocks for up to ``grace`` plus two seconds.  Code running on a
        frame tick uses :meth:`stop_nowait` instead.
        """
        if self._stopped:
            return
        self._stopped = True

        proc = self._process
        if proc is None:
            return

        # 1. EOF on stdin is the conventional shutdown signal.
        self._close_stdin(proc)

        # 2. Wait for graceful exit.
        wait = self._stop_grace if grace is None else grace
        try:
            proc.wait(timeout=wait)
        except subprocess.TimeoutExpired:
            # 3. SIGTERM, then SIGKILL.
            self._signal(proc, signal.SIGTERM)
            self._kill_if_still_running(proc)

        self._join_readers()
        logger.info("%s: stopped (exit code %s)", self.name, proc.returncode)

    def stop_nowait(self) -> None:
        """Signal the peer and finish shutdown on a reaper thread.  Idempotent.

        Closes stdin and sends SIGTERM without waiting; a daemon thread
        escalates to SIGKILL and joins the readers.  Use :meth:`join` to
        wait for it.
        """
        if self._stopped:
            return
        self._stopped = True

        proc = self._process
        if proc is None:
            return

        self._close_stdin(proc)
        if proc.poll() is None:
            self._signal(proc, signal.SIGTERM)
        self._reaper = threading.Thread(
            target=self._reap,
            args=(proc,),
            name=f"toolwire-reaper-{self.name}",
            daemon=True,
        )
        self._reaper.start()

    def join(self, timeout: float | None = None) -> bool:
        """Wait for a shutdown started by :meth:`stop_nowait`.

        Returns:
            ``True`` once no reaper thread is running.
        """
        reaper = self._reaper
        if reaper is None:
            return True
        reaper.join(timeout)
        return not reaper.is_alive()

    # ------------------------------------------------------------------ #
    # I/O
    # ------------------------------------------------------------------ #

    def write_line(self, line: str) -> None:
        """Write one JSONL line to the peer's stdin and flush.

        Raises:
            TransportClosedError: If the peer is gone or the pipe is broken.
        """
        proc = self._process
        if proc is None or proc.stdin is None or self._stopped:
            msg = f"Tool server '{self.name}' is not running"
            raise TransportClosedError(msg)

        data = (line + "\n").encode("utf-8")
        with self._stdin_lock:
            try:
                proc.stdin.write(data)
                proc.stdin.flush()
            except (OSError, ValueError) as exc:
                msg = f"Failed to write to tool server '{self.name}': {exc}"
                raise TransportClosedError(msg) from exc

    # ------------------------------------------------------------------ #
    # Introspection
    # ------------------------------------------------------------------ #

    def is_alive(self) -> bool:
        """True while the peer process is running.  Never raises."""
        proc = self._process
        if proc is None:
            return False
        try:
            return proc.poll() is None
        except Exception:
            return False

    @property
    def exit_code(self) -> int | None:
        proc = self._process
        if proc is None:
            return None
        try:
            return proc.poll()
        except Exception:
            return None

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process is not None else None

    @property
    def started(self) -> bool:
        return self._process is not None

    def stderr_tail(self) -> str:
        """Most recent stderr lines from the peer."""
        if self._stderr_drain is None:
            return ""
        return self._stderr_drain.tail()

    # ------------------------------------------------------------------ #
    # Internal
    # ------------------------------------------------------------------ #

    def _wait_for_early_exit(self, proc: subprocess.Popen[bytes]) -> int | None:
        if self._startup_grace <= 0:
            return proc.poll()
        try:
            return proc.wait(timeout=self._startup_grace)
        except subprocess.TimeoutExpired:
            return None

    def _signal(self, proc: subprocess.Popen[bytes], sig: int) -> None:
        """Signal the peer's whole process group where we created one."""
        with contextlib.suppress(ProcessLookupError, PermissionError, OSError):
            if sys.platform != "win32":
                # start_new_session made the peer a group leader; wrappers
                # like npx leave grandchildren holding our pipes otherwise.
                os.killpg(proc.pid, sig)
            elif sig == signal.SIGTERM:
                proc.terminate()
            else:
                proc.kill()

    def _close_stdin(self, proc: subprocess.Popen[bytes]) -> None:
        if proc.stdin is not None:
            with self._stdin_lock, contextlib.suppress(OSError, ValueError):
                proc.stdin.close()

    def _kill_if_still_running(self, proc: subprocess.Popen[bytes]) -> None:
        """After SIGTERM: wait briefly, then SIGKILL."""
        try:
            proc.wait(timeout=_SIGTERM_WAIT)
        except subprocess.TimeoutExpired:
            self._signal(proc, getattr(signal, "SIGKILL", signal.SIGTERM))
            with contextlib.suppress(subprocess.TimeoutExpired):
                proc.wait(timeout=_SIGTERM_WAIT)

    def _reap(self, proc: subprocess.Popen[bytes]) -> None:
        self._kill_if_still_running(proc)
        self._join_readers()
        logger.info("%s: stopped (exit code %s)", self.name, proc.returncode)

    def _join_readers(self) -> None:
        threads = [t for t in (self._reader, self._stderr_drain) if t is not None]
        for thread in threads:
            thread.stop()
        for thread in threads:
            if thread.ident is not None:
                thread.join(_JOIN_TIMEOUT)

        if any(t.is_alive() for t in threads):
            # A grandchild still holds the pipe open.  The threads are
            # daemons and close their stream once it reaches EOF.
            logger.warning(
                "%s: reader threads did not exit; abandoning them", self.name
            )
