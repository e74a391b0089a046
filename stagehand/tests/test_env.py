"""Tests for .env loading and typed environment lookups."""
import os

import pytest

from stagehand.env import ensure_dotenv_loaded, env_flag, env_int, env_str, load_dotenv, reset_dotenv_state

_SCRATCH_VARS = ["STAGEHAND_T_A", "STAGEHAND_T_B", "STAGEHAND_T_C", "STAGEHAND_T_KEEP", "STAGEHAND_T_LAYER", "STAGEHAND_T_EXPLICIT"]


@pytest.fixture(autouse=True)
def scratch_vars(monkeypatch):
    """Register the scratch names so values written by the loader are undone."""
    for name in _SCRATCH_VARS:
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)


def test_load_dotenv_parses_quotes_comments_and_export(tmp_path, monkeypatch):
    """Test the supported .env line forms."""
    dotenv = tmp_path / ".env"
    dotenv.write_text(
        "# comment\n"
        "\n"
        "STAGEHAND_T_A=plain\n"
        "export STAGEHAND_T_B='single quoted'\n"
        'STAGEHAND_T_C="a=b"\n'
        "not a pair\n",
        encoding="utf-8",
    )

    loaded = load_dotenv(path=dotenv)

    assert loaded == {"STAGEHAND_T_A": "plain", "STAGEHAND_T_B": "single quoted", "STAGEHAND_T_C": "a=b"}
    assert os.environ["STAGEHAND_T_C"] == "a=b"


def test_load_dotenv_does_not_override_by_default(tmp_path, monkeypatch):
    """Test that existing variables win unless override is set."""
    monkeypatch.setenv("STAGEHAND_T_KEEP", "from-env")
    dotenv = tmp_path / ".env"
    dotenv.write_text("STAGEHAND_T_KEEP=from-file\n", encoding="utf-8")

    assert load_dotenv(path=dotenv) == {}
    assert os.environ["STAGEHAND_T_KEEP"] == "from-env"

    load_dotenv(path=dotenv, override=True)
    assert os.environ["STAGEHAND_T_KEEP"] == "from-file"


def test_load_dotenv_missing_file_and_directory(tmp_path):
    """Test that a missing file is a no-op and a directory is an error."""
    assert load_dotenv(path=tmp_path / "nope.env") == {}
    with pytest.raises(RuntimeError, match="directory"):
        load_dotenv(path=tmp_path)


def test_ensure_dotenv_loaded_runs_once_and_layers_local(tmp_path, monkeypatch):
    """Test .env then .env.local loading, exactly once."""
    monkeypatch.chdir(tmp_path)
    reset_dotenv_state()
    (tmp_path / ".env").write_text("STAGEHAND_T_LAYER=base\n", encoding="utf-8")
    (tmp_path / ".env.local").write_text("STAGEHAND_T_LAYER=local\n", encoding="utf-8")

    ensure_dotenv_loaded()
    assert os.environ["STAGEHAND_T_LAYER"] == "local"

    (tmp_path / ".env.local").write_text("STAGEHAND_T_LAYER=changed\n", encoding="utf-8")
    assert ensure_dotenv_loaded() == {}
    assert os.environ["STAGEHAND_T_LAYER"] == "local"


def test_ensure_dotenv_loaded_honors_dotenv_path(tmp_path, monkeypatch):
    """Test that DOTENV_PATH selects a single explicit file."""
    monkeypatch.chdir(tmp_path)
    reset_dotenv_state()
    explicit = tmp_path / "ci.env"
    explicit.write_text("STAGEHAND_T_EXPLICIT=yes\n", encoding="utf-8")
    monkeypatch.setenv("DOTENV_PATH", str(explicit))

    assert ensure_dotenv_loaded() == {"STAGEHAND_T_EXPLICIT": "yes"}


def test_env_str_treats_blank_as_unset(monkeypatch):
    monkeypatch.setenv("BASE_URL", "   ")
    assert env_str("BASE_URL", "fallback") == "fallback"
    monkeypatch.setenv("BASE_URL", " http://x ")
    assert env_str("BASE_URL") == "http://x"


@pytest.mark.parametrize("raw,expected", [("true", True), ("1", True), ("YES", True), ("false", False), ("0", False)])
def test_env_flag(monkeypatch, raw, expected):
    monkeypatch.setenv("HEADLESS", raw)
    assert env_flag("HEADLESS", default=not expected) is expected


def test_env_flag_default_when_unset():
    assert env_flag("HEADLESS", True) is True


def test_env_int(monkeypatch):
    """Test integer parsing and the error naming the variable."""
    assert env_int("APPIUM_PORT", 4723) == 4723
    monkeypatch.setenv("APPIUM_PORT", "4800")
    assert env_int("APPIUM_PORT", 4723) == 4800
    monkeypatch.setenv("APPIUM_PORT", "abc")
    with pytest.raises(ValueError, match="APPIUM_PORT"):
        env_int("APPIUM_PORT")
