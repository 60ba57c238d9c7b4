import json

import pytest

from audio_quality.exceptions import MetricParseError, ProbeError, extract_error_code
from audio_quality.extraction.parsing import (
    parse_astats,
    parse_ebur128,
    parse_highpass_rms,
    parse_number,
    parse_probe,
)

from conftest import ASTATS_OUTPUT, EBUR128_OUTPUT, highpass_output


def test_parse_number_handles_ffmpeg_tokens():
    assert parse_number("-14.20") == -14.2
    assert parse_number("-inf") == float("-inf")
    assert parse_number("nan") is None
    assert parse_number("garbage") is None
    assert parse_number(None) is None


def test_ebur128_prefers_summary():
    stats = parse_ebur128(EBUR128_OUTPUT)
    assert stats.integrated_lufs == -11.4
    assert stats.lra == 7.8
    assert stats.true_peak_dbtp == -0.8


def test_ebur128_falls_back_to_streaming_lines():
    # Cut off before the summary (e.g. killed mid-run)
    streaming = EBUR128_OUTPUT.split("Summary:")[0]
    stats = parse_ebur128(streaming)
    assert stats.integrated_lufs == -13.1
    assert stats.lra == 2.5
    # Max over channels of the last TPK reading
    assert stats.true_peak_dbtp == -1.2


def test_ebur128_partial_summary_keeps_found_fields():
    text = "  Integrated loudness:\n    I:         -9.0 LUFS\n"
    stats = parse_ebur128(text)
    assert stats.integrated_lufs == -9.0
    assert stats.lra is None
    assert stats.true_peak_dbtp is None


def test_ebur128_silence_reports_negative_infinity():
    text = "    I:         -inf LUFS\n    LRA:         0.0 LU\n    Peak:       -inf dBFS\n"
    stats = parse_ebur128(text)
    assert stats.integrated_lufs == float("-inf")
    # Zero is a real value, not absence
    assert stats.lra == 0.0


def test_ebur128_nothing_found_raises_code():
    with pytest.raises(MetricParseError) as excinfo:
        parse_ebur128("Input #0, flac, from 'x.flac':\n")
    assert extract_error_code(str(excinfo.value)) == "E_PARSE_LOUDNESS"


def test_astats_reads_overall_section_only():
    stats = parse_astats(ASTATS_OUTPUT, astats_index=0)
    assert stats.peak_db == -0.5
    assert stats.rms_db == -18.25


def test_astats_without_overall_raises_code():
    per_channel_only = ASTATS_OUTPUT.split("Overall")[0].rsplit("\n", 1)[0]
    with pytest.raises(MetricParseError) as excinfo:
        parse_astats(per_channel_only, astats_index=0)
    assert extract_error_code(str(excinfo.value)) == "E_PARSE_STATS"


def test_highpass_rms_uses_chained_astats_instance():
    assert parse_highpass_rms(highpass_output("-68.2"), 18000) == -68.2


def test_highpass_rms_missing_raises_frequency_code():
    with pytest.raises(MetricParseError) as excinfo:
        parse_highpass_rms("", 20000)
    assert extract_error_code(str(excinfo.value)) == "E_PARSE_RMS20K"


def test_probe_prefers_stream_bitrate():
    doc = {
        "streams": [{"codec_name": "mp3", "sample_rate": "48000", "channels": 2, "bit_rate": "320000"}],
        "format": {"format_name": "mp3", "duration": "180.5", "bit_rate": "325112"},
    }
    info = parse_probe(json.dumps(doc))
    assert info.bitrate_kbps == 320
    assert info.sample_rate_hz == 48000
    assert info.channels == 2
    assert info.codec_name == "mp3"
    assert info.container_format == "mp3"
    assert info.duration_seconds == 180.5


def test_probe_falls_back_to_format_bitrate():
    doc = {
        "streams": [{"codec_name": "flac", "sample_rate": "44100", "channels": 2, "bit_rate": "N/A"}],
        "format": {"format_name": "flac", "bit_rate": "912345"},
    }
    info = parse_probe(json.dumps(doc))
    assert info.bitrate_kbps == 912
    assert info.duration_seconds is None


def test_probe_invalid_json():
    with pytest.raises(ProbeError) as excinfo:
        parse_probe("{not json")
    assert extract_error_code(str(excinfo.value)) == "E_PROBE_PARSE"


def test_probe_no_audio_stream():
    with pytest.raises(ProbeError) as excinfo:
        parse_probe(json.dumps({"streams": [], "format": {}}))
    assert extract_error_code(str(excinfo.value)) == "E_PROBE_NO_STREAM"
