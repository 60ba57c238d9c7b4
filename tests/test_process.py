import sys
import threading
import time
from pathlib import Path

import pytest

from audio_quality import config
from audio_quality.exceptions import (
    CommandError,
    CommandSpawnError,
    CommandTimeoutError,
    StreamCaptureError,
    ToolNotFoundError,
    extract_error_code,
)
from audio_quality.process import runner as runner_module
from audio_quality.process.limiter import ProcessLimiter
from audio_quality.process.runner import CommandRunner, locate_tool


def py(code: str):
    """Command line running a Python snippet; stands in for ffmpeg."""
    return [sys.executable, "-c", code]


# --- Process Limiter ---

def test_limiter_never_exceeds_max():
    limiter = ProcessLimiter(max_processes=2)
    lock = threading.Lock()
    state = {'current': 0, 'peak': 0}

    def worker():
        with limiter.acquire():
            with lock:
                state['current'] += 1
                state['peak'] = max(state['peak'], state['current'])
            time.sleep(0.05)
            with lock:
                state['current'] -= 1

    threads = [threading.Thread(target=worker) for _ in range(5)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=5)

    assert state['peak'] <= 2
    assert limiter.active == 0


def test_limiter_releases_on_exception():
    limiter = ProcessLimiter(max_processes=1)
    with pytest.raises(RuntimeError):
        with limiter.acquire():
            assert limiter.active == 1
            raise RuntimeError("boom")
    assert limiter.active == 0

    # Slot is usable again
    with limiter.acquire():
        assert limiter.active == 1


def test_limiter_defaults_to_at_least_one():
    assert ProcessLimiter().max_processes >= 1
    assert ProcessLimiter(0).max_processes == 1


# --- Command Runner ---

def test_runner_captures_both_streams():
    result = CommandRunner(ProcessLimiter(1)).run(
        py("import sys; sys.stdout.write('out'); sys.stderr.write('err')"), timeout=30
    )
    assert result.success
    assert result.exit_status == "exit status: 0"
    assert result.stdout == "out"
    assert result.stderr == "err"


def test_runner_drains_large_output_on_both_streams():
    # Each stream far exceeds a pipe buffer; this would hang without concurrent readers
    code = "import sys; sys.stderr.write('e' * 2000000); sys.stderr.flush(); sys.stdout.write('o' * 2000000)"
    result = CommandRunner(ProcessLimiter(1)).run(py(code), timeout=60)
    assert result.success
    assert len(result.stderr) == 2000000
    assert len(result.stdout) == 2000000


def test_runner_reports_nonzero_exit():
    result = CommandRunner().run(py("import sys; sys.stderr.write('bad input'); sys.exit(3)"), timeout=30)
    assert not result.success
    assert result.exit_status == "exit status: 3"
    assert result.stderr == "bad input"


def test_run_checked_raises_with_bounded_preview():
    code = "import sys; sys.stderr.write('x' * 2000); sys.exit(1)"
    with pytest.raises(CommandError) as excinfo:
        CommandRunner().run_checked(py(code), timeout=30)

    message = str(excinfo.value)
    assert "exit status: 1" in message
    assert "x" * config.STDERR_PREVIEW_CHARS in message
    assert "x" * (config.STDERR_PREVIEW_CHARS + 1) not in message
    # No embedded code: callers fall back to an operation-specific one
    assert extract_error_code(message) is None


def test_runner_kills_on_timeout():
    limiter = ProcessLimiter(1)
    start = time.monotonic()
    with pytest.raises(CommandTimeoutError) as excinfo:
        CommandRunner(limiter, poll_interval=0.01).run(py("import time; time.sleep(30)"), timeout=0.3)

    assert time.monotonic() - start < 10
    assert extract_error_code(str(excinfo.value)) == "E_TIMEOUT"
    assert limiter.active == 0


def test_runner_spawn_failure(tmp_path):
    missing = tmp_path / "no-such-ffmpeg"
    with pytest.raises(CommandSpawnError):
        CommandRunner().run([str(missing), "-version"], timeout=5)


def test_reader_failure_propagates(monkeypatch):
    def broken_read(self):
        raise OSError("pipe broke")

    monkeypatch.setattr(runner_module._StreamReader, "_read_chunk", broken_read)
    with pytest.raises(StreamCaptureError) as excinfo:
        CommandRunner().run(py("pass"), timeout=30)
    assert isinstance(excinfo.value.__cause__, OSError)


# --- Tool Discovery ---

def test_locate_tool_prefers_explicit_path(tmp_path):
    exe = tmp_path / "ffmpeg"
    exe.write_text("")
    assert locate_tool("ffmpeg", exe) == exe


def test_locate_tool_falls_back_to_resources(monkeypatch, tmp_path):
    monkeypatch.setattr(runner_module.shutil, "which", lambda name: None)
    monkeypatch.setattr(config, "RESOURCES_DIR", tmp_path)
    bundled = tmp_path / f"ffprobe{config.EXE_SUFFIX}"
    bundled.write_text("")
    assert locate_tool("ffprobe") == bundled


def test_locate_tool_missing_raises(monkeypatch, tmp_path):
    monkeypatch.setattr(runner_module.shutil, "which", lambda name: None)
    monkeypatch.setattr(config, "RESOURCES_DIR", tmp_path)
    with pytest.raises(ToolNotFoundError):
        locate_tool("ffmpeg", Path(tmp_path / "nope"))
