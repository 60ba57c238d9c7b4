import json
from dataclasses import replace

import pytest

from audio_quality.models import FileMetrics
from audio_quality.process.runner import CommandResult

EBUR128_OUTPUT = """\
[Parsed_ebur128_0 @ 0x55d5c8a1c2c0] t: 0.4  TARGET:-23 LUFS    M: -25.3 S:-120.7     I: -25.3 LUFS       LRA:   0.0 LU  FTPK: -6.1 -6.3 dBFS  TPK: -6.1 -6.3 dBFS
[Parsed_ebur128_0 @ 0x55d5c8a1c2c0] t: 0.8  TARGET:-23 LUFS    M: -12.0 S:-120.7     I: -13.1 LUFS       LRA:   2.5 LU  FTPK: -1.2 -1.4 dBFS  TPK: -1.2 -1.4 dBFS
[Parsed_ebur128_0 @ 0x55d5c8a1c2c0] Summary:

  Integrated loudness:
    I:         -11.4 LUFS
    Threshold: -21.6 LUFS

  Loudness range:
    LRA:         7.8 LU
    Threshold: -31.7 LUFS
    LRA low:   -15.3 LUFS
    LRA high:   -8.1 LUFS

  True peak:
    Peak:       -0.8 dBFS
"""

ASTATS_OUTPUT = """\
[Parsed_astats_0 @ 0x7f3a2c004a80] Channel: 1
[Parsed_astats_0 @ 0x7f3a2c004a80] DC offset: 0.000012
[Parsed_astats_0 @ 0x7f3a2c004a80] Peak level dB: -1.000000
[Parsed_astats_0 @ 0x7f3a2c004a80] RMS level dB: -20.000000
[Parsed_astats_0 @ 0x7f3a2c004a80] Overall
[Parsed_astats_0 @ 0x7f3a2c004a80] DC offset: 0.000010
[Parsed_astats_0 @ 0x7f3a2c004a80] Peak level dB: -0.500000
[Parsed_astats_0 @ 0x7f3a2c004a80] RMS level dB: -18.250000
[Parsed_astats_0 @ 0x7f3a2c004a80] Number of samples: 9525312
"""


def highpass_output(rms: str) -> str:
    return (
        "[Parsed_astats_1 @ 0x7f3a2c005b00] Channel: 1\n"
        "[Parsed_astats_1 @ 0x7f3a2c005b00] RMS level dB: -99.000000\n"
        "[Parsed_astats_1 @ 0x7f3a2c005b00] Overall\n"
        "[Parsed_astats_1 @ 0x7f3a2c005b00] Peak level dB: -40.100000\n"
        f"[Parsed_astats_1 @ 0x7f3a2c005b00] RMS level dB: {rms}\n"
    )


PROBE_OUTPUT = json.dumps({
    "streams": [{"codec_name": "flac", "sample_rate": "44100", "channels": 2}],
    "format": {"format_name": "flac", "duration": "215.300000", "bit_rate": "912345"},
})

HIGHPASS_RMS = {16000: "-61.5", 18000: "-68.2", 20000: "-79.9"}


class FakeRunner:
    """
    Stands in for CommandRunner: answers by looking at the filter argument.
    `failures` maps a substring of the command line to the exception to raise.
    """

    def __init__(self, failures=None, outputs=None, on_call=None):
        self.failures = failures or {}
        self.outputs = outputs or {}
        self.on_call = on_call
        self.calls = []

    def run_checked(self, args, timeout):
        line = " ".join(str(a) for a in args)
        self.calls.append(line)
        if self.on_call:
            self.on_call(line)
        for needle, exc in self.failures.items():
            if needle in line:
                raise exc
        for needle, (stdout, stderr) in self.outputs.items():
            if needle in line:
                return CommandResult(True, "exit status: 0", stdout, stderr)

        if "ffprobe" in str(args[0]):
            return CommandResult(True, "exit status: 0", PROBE_OUTPUT, "")
        if "ebur128" in line:
            return CommandResult(True, "exit status: 0", "", EBUR128_OUTPUT)
        for freq, rms in HIGHPASS_RMS.items():
            if f"highpass=f={freq}," in line:
                return CommandResult(True, "exit status: 0", "", highpass_output(rms))
        return CommandResult(True, "exit status: 0", "", ASTATS_OUTPUT)


@pytest.fixture
def fake_runner():
    return FakeRunner()


@pytest.fixture
def good_metrics():
    """A complete lossless track that classifies as Good under the pop profile."""
    return FileMetrics(
        file_path="/music/track.flac",
        file_size_bytes=30_000_000,
        lra=9.0,
        integrated_loudness_lufs=-11.0,
        true_peak_dbtp=-1.5,
        peak_amplitude_db=-1.6,
        overall_rms_db=-14.0,
        rms_db_above_16k=-60.0,
        rms_db_above_18k=-68.0,
        rms_db_above_20k=-80.0,
        sample_rate_hz=44_100,
        bitrate_kbps=900,
        channels=2,
        codec_name="flac",
        container_format="flac",
        duration_seconds=215.3,
        processing_time_ms=1200,
        content_sha256="abc",
    )


@pytest.fixture
def make_metrics(good_metrics):
    """Returns good_metrics with overrides applied."""
    def _make(**overrides):
        return replace(good_metrics, **overrides)
    return _make
