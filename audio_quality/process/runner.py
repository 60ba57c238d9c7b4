import logging
import shutil
import subprocess
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import IO, List, Optional, Sequence

from .. import config
from ..exceptions import (
    CommandError,
    CommandSpawnError,
    CommandTimeoutError,
    StreamCaptureError,
    ToolNotFoundError,
)
from .limiter import ProcessLimiter

_READ_SIZE = 64 * 1024


@dataclass
class CommandResult:
    success: bool
    exit_status: str
    stdout: str
    stderr: str


class _StreamReader(threading.Thread):
    """Drains one pipe into memory; failures are kept for the caller to re-raise."""

    def __init__(self, stream: IO[bytes], name: str):
        super().__init__(name=name, daemon=True)
        self.stream = stream
        self.chunks: List[bytes] = []
        self.error: Optional[BaseException] = None

    def run(self):
        try:
            while chunk := self._read_chunk():
                self.chunks.append(chunk)
        except BaseException as e:
            self.error = e
        finally:
            try:
                self.stream.close()
            except OSError:
                pass

    def _read_chunk(self) -> bytes:
        return self.stream.read(_READ_SIZE)

    def text(self) -> str:
        return b"".join(self.chunks).decode("utf-8", errors="replace")


def describe_exit(returncode: int) -> str:
    """Human-readable exit status ('exit status: 1', 'signal: 9')."""
    if returncode < 0:
        return f"signal: {-returncode}"
    return f"exit status: {returncode}"


class CommandRunner:
    """
    Runs external commands with both output streams drained concurrently
    and a hard timeout.

    Reading stdout and stderr on separate threads is required: a process that
    fills the pipe buffer on one stream while nobody reads the other would
    block forever.
    """

    def __init__(self,
                 limiter: Optional[ProcessLimiter] = None,
                 poll_interval: float = config.POLL_INTERVAL):
        self.limiter = limiter or ProcessLimiter()
        self.poll_interval = poll_interval

    def run(self, args: Sequence[str], timeout: float = config.DEFAULT_COMMAND_TIMEOUT) -> CommandResult:
        """
        Spawns `args` with stdin closed and waits for it, holding a limiter slot.

        Raises:
            CommandSpawnError: process could not be started.
            CommandTimeoutError: process ran longer than `timeout` (it is killed first).
            StreamCaptureError: a reader thread failed.
        """
        cmd = [str(a) for a in args]
        with self.limiter.acquire():
            return self._run_unbounded(cmd, timeout)

    def run_checked(self, args: Sequence[str], timeout: float = config.DEFAULT_COMMAND_TIMEOUT) -> CommandResult:
        """Like `run`, but a non-zero exit raises CommandError with a stderr preview."""
        result = self.run(args, timeout)
        if not result.success:
            preview = result.stderr[:config.STDERR_PREVIEW_CHARS]
            raise CommandError(
                f"Command {Path(args[0]).name} failed with {result.exit_status}. Stderr: {preview}"
            )
        return result

    def _run_unbounded(self, cmd: List[str], timeout: float) -> CommandResult:
        logging.debug(f"Running: {' '.join(cmd)}")
        try:
            proc = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except OSError as e:
            raise CommandSpawnError(f"Failed to start {cmd[0]}: {e}") from e

        # Start draining immediately, before waiting on anything
        out_reader = _StreamReader(proc.stdout, "stdout-reader")
        err_reader = _StreamReader(proc.stderr, "stderr-reader")
        out_reader.start()
        err_reader.start()

        start = time.monotonic()
        while proc.poll() is None:
            if time.monotonic() - start > timeout:
                proc.kill()
                proc.wait()
                self._join_readers(out_reader, err_reader)
                raise CommandTimeoutError(
                    f"{config.E_TIMEOUT}: {Path(cmd[0]).name} exceeded {timeout:.1f}s and was killed"
                )
            time.sleep(self.poll_interval)

        self._join_readers(out_reader, err_reader)
        return CommandResult(
            success=proc.returncode == 0,
            exit_status=describe_exit(proc.returncode),
            stdout=out_reader.text(),
            stderr=err_reader.text(),
        )

    def _join_readers(self, *readers: _StreamReader):
        for reader in readers:
            reader.join()
        for reader in readers:
            if reader.error is not None:
                raise StreamCaptureError(
                    f"{reader.name} failed: {reader.error}"
                ) from reader.error


def locate_tool(name: str, explicit: Optional[Path] = None) -> Path:
    """
    Finds an executable.

    Order:
    1. Explicit path (CLI flag), if it exists.
    2. System PATH.
    3. <project root>/resources/<name>.
    """
    tried = []
    if explicit is not None:
        if explicit.exists():
            return explicit
        tried.append(str(explicit))

    found = shutil.which(name)
    if found:
        logging.info(f"Found {name} on PATH: {found}")
        return Path(found)
    tried.append(f"PATH:{name}")

    bundled = config.RESOURCES_DIR / f"{name}{config.EXE_SUFFIX}"
    if bundled.exists():
        logging.info(f"Found {name} in resources: {bundled}")
        return bundled
    tried.append(str(bundled))

    raise ToolNotFoundError(
        f"Could not locate {name}. Tried: {', '.join(tried)}. "
        f"Install FFmpeg and make sure '{name}' is on your PATH."
    )
