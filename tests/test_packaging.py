import tomllib
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent


def test_long_description_is_the_readme():
    with open(ROOT / "pyproject.toml", "rb") as f:
        project = tomllib.load(f)["project"]
    assert project["readme"] == "README.md"
    assert (ROOT / "README.md").is_file()
