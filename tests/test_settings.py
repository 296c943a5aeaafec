import pytest

from gql_intel.utils.settings import DEFAULT_SETTINGS, load_settings, merge_settings


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    # set-then-delete so teardown also removes values loaded from a .env file
    for name in ("GQL_INTEL_TIMEOUT", "GQL_INTEL_OUTPUT_DIR", "GQL_INTEL_LOG_LEVEL", "GQL_INTEL_HEADLESS"):
        monkeypatch.setenv(name, "unset")
        monkeypatch.delenv(name)


def test_file_values_merge_over_defaults(tmp_path):
    config = tmp_path / "capture.yaml"
    config.write_text("capture:\n  timeout: 42\ncrawler:\n  max_retries: 3\n", encoding="utf-8")

    settings = load_settings(config, env_file=tmp_path / "missing.env")

    assert settings["capture"]["timeout"] == 42
    assert settings["capture"]["progress_interval"] == DEFAULT_SETTINGS["capture"]["progress_interval"]
    assert settings["crawler"]["max_retries"] == 3
    assert settings["output"]["dir"] == "output"


def test_missing_file_falls_back_to_defaults(tmp_path):
    settings = load_settings(tmp_path / "nope.yaml", env_file=tmp_path / "missing.env")

    assert settings["capture"] == DEFAULT_SETTINGS["capture"]


def test_invalid_yaml_falls_back_to_defaults(tmp_path):
    config = tmp_path / "capture.yaml"
    config.write_text("capture: [unclosed\n", encoding="utf-8")

    settings = load_settings(config, env_file=tmp_path / "missing.env")

    assert settings["capture"]["timeout"] == DEFAULT_SETTINGS["capture"]["timeout"]


def test_environment_overrides(tmp_path, monkeypatch):
    monkeypatch.setenv("GQL_INTEL_TIMEOUT", "12.5")
    monkeypatch.setenv("GQL_INTEL_OUTPUT_DIR", "/tmp/gql")
    monkeypatch.setenv("GQL_INTEL_HEADLESS", "yes")
    monkeypatch.setenv("GQL_INTEL_LOG_LEVEL", "DEBUG")

    settings = load_settings(tmp_path / "nope.yaml", env_file=tmp_path / "missing.env")

    assert settings["capture"]["timeout"] == 12.5
    assert settings["output"]["dir"] == "/tmp/gql"
    assert settings["browser"]["headless"] is True
    assert settings["logging"]["level"] == "DEBUG"


def test_dotenv_file_is_loaded(tmp_path, monkeypatch):
    env_file = tmp_path / ".env"
    env_file.write_text("GQL_INTEL_TIMEOUT=7\n", encoding="utf-8")

    settings = load_settings(tmp_path / "nope.yaml", env_file=env_file)

    assert settings["capture"]["timeout"] == 7.0


def test_invalid_override_is_ignored(tmp_path, monkeypatch):
    monkeypatch.setenv("GQL_INTEL_TIMEOUT", "soon")

    settings = load_settings(tmp_path / "nope.yaml", env_file=tmp_path / "missing.env")

    assert settings["capture"]["timeout"] == DEFAULT_SETTINGS["capture"]["timeout"]


def test_merge_settings_does_not_mutate_defaults():
    merged = merge_settings({"capture": {"timeout": 1}})
    merged["output"]["dir"] = "elsewhere"

    assert DEFAULT_SETTINGS["capture"]["timeout"] == 300
    assert DEFAULT_SETTINGS["output"]["dir"] == "output"
    assert merge_settings(None)["capture"]["timeout"] == 300
