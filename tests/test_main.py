import pytest

from audio_quality import config, main as main_module
from audio_quality.exceptions import ToolNotFoundError


def test_parse_args_defaults(tmp_path):
    args = main_module.parse_args([str(tmp_path)])
    assert args.profile == "pop"
    assert args.timeout == config.DEFAULT_COMMAND_TIMEOUT
    assert args.no_cache is False
    assert args.workers is None


def test_parse_args_rejects_unknown_profile(tmp_path):
    with pytest.raises(SystemExit):
        main_module.parse_args([str(tmp_path), "--profile", "club"])


def test_missing_path_exits(tmp_path):
    with pytest.raises(SystemExit) as excinfo:
        main_module.main([str(tmp_path / "nowhere")])
    assert excinfo.value.code == 1


def test_missing_ffmpeg_exits(tmp_path, monkeypatch):
    def no_tool(name, explicit=None):
        raise ToolNotFoundError(f"Could not locate {name}")

    monkeypatch.setattr(main_module, "locate_tool", no_tool)
    with pytest.raises(SystemExit) as excinfo:
        main_module.main([str(tmp_path)])
    assert excinfo.value.code == 1
