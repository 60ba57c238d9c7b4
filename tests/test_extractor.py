import threading
from pathlib import Path

from audio_quality.exceptions import CommandError, CommandTimeoutError
from audio_quality.extraction.extractor import ExtractionTools, MetricExtractor

from conftest import FakeRunner

TOOLS = ExtractionTools(ffmpeg=Path("/usr/bin/ffmpeg"), ffprobe=Path("/usr/bin/ffprobe"))


def extract(runner):
    return MetricExtractor(TOOLS, runner).extract(Path("/music/a.flac"), 1234, "deadbeef")


def test_extract_merges_all_branches(fake_runner):
    m = extract(fake_runner)

    assert m.file_path == str(Path("/music/a.flac"))
    assert m.file_size_bytes == 1234
    assert m.content_sha256 == "deadbeef"
    assert m.integrated_loudness_lufs == -11.4
    assert m.lra == 7.8
    assert m.true_peak_dbtp == -0.8
    assert m.peak_amplitude_db == -0.5
    assert m.overall_rms_db == -18.25
    assert m.rms_db_above_16k == -61.5
    assert m.rms_db_above_18k == -68.2
    assert m.rms_db_above_20k == -79.9
    assert m.sample_rate_hz == 44100
    assert m.bitrate_kbps == 912
    assert m.codec_name == "flac"
    assert m.error_codes == ()
    assert m.cache_hit is False
    assert len(fake_runner.calls) == 6


def test_failed_branch_is_isolated():
    runner = FakeRunner(failures={"highpass=f=20000": CommandError("Command ffmpeg failed with exit status: 1")})
    m = extract(runner)

    assert m.rms_db_above_20k is None
    assert m.error_codes == ("E_RMS20K_FAILED",)
    # Everything else still populated
    assert m.rms_db_above_18k == -68.2
    assert m.integrated_loudness_lufs == -11.4
    assert m.sample_rate_hz == 44100


def test_embedded_code_wins_over_fallback():
    runner = FakeRunner(failures={"ebur128": CommandTimeoutError("E_TIMEOUT: ffmpeg exceeded 300.0s and was killed")})
    m = extract(runner)

    assert m.error_codes == ("E_TIMEOUT",)
    assert m.lra is None
    assert m.integrated_loudness_lufs is None
    assert m.true_peak_dbtp is None


def test_parse_failure_code_is_recorded():
    runner = FakeRunner(outputs={"ffprobe": ("not json", "")})
    m = extract(runner)
    assert m.error_codes == ("E_PROBE_PARSE",)
    assert m.sample_rate_hz is None


def test_error_codes_are_unique_and_sorted():
    timeout = CommandTimeoutError("E_TIMEOUT: killed")
    runner = FakeRunner(failures={
        "highpass=f=20000": timeout,
        "highpass=f=16000": timeout,
        "-filter:a astats": CommandError("Command ffmpeg failed with exit status: 1"),
    })
    m = extract(runner)
    assert m.error_codes == ("E_STATS_FAILED", "E_TIMEOUT")
    assert m.rms_db_above_18k == -68.2


def test_partial_loudness_adds_field_codes():
    partial = "    I:         -9.0 LUFS\n    LRA:         5.0 LU\n"
    runner = FakeRunner(outputs={"ebur128": ("", partial)})
    m = extract(runner)
    assert m.integrated_loudness_lufs == -9.0
    assert m.true_peak_dbtp is None
    assert m.error_codes == ("E_PARSE_TRUE_PEAK",)


def test_branches_run_concurrently():
    # Each call waits until all six are in flight; sequential execution would time out
    barrier = threading.Barrier(6, timeout=10)
    runner = FakeRunner(on_call=lambda line: barrier.wait())
    m = extract(runner)
    assert m.error_codes == ()


def test_command_lines(fake_runner):
    extract(fake_runner)
    loudness = next(c for c in fake_runner.calls if "ebur128" in c)
    probe = next(c for c in fake_runner.calls if "ffprobe" in c)

    assert "-hide_banner" in loudness
    assert "-nostats" in loudness
    assert loudness.endswith("-f null -")
    assert "ebur128=peak=true" in loudness
    assert "-select_streams a:0" in probe
    assert "-of json" in probe


def test_e_tokens_inside_stderr_do_not_replace_branch_codes():
    # ffmpeg echoes the input path; an upper-case directory must not read as a code
    stderr_message = ("Command ffmpeg failed with exit status: 1. "
                      "Stderr: /music/E_STREET_BAND/01.flac: Invalid data found when processing input")
    runner = FakeRunner(failures={"/": CommandError(stderr_message)})
    m = extract(runner)

    assert m.error_codes == (
        "E_LOUDNESS_FAILED",
        "E_PROBE_FAILED",
        "E_RMS16K_FAILED",
        "E_RMS18K_FAILED",
        "E_RMS20K_FAILED",
        "E_STATS_FAILED",
    )
