from pathlib import Path

from fitcare.backend.app import config

ENV_VARS = [
    "FITCARE_DB_PATH",
    "DB_PATH",
    "CRISIS_WEBHOOK_URL",
    "CRISIS_WEBHOOK_TIMEOUT",
    "CRISIS_RESPONSE_THRESHOLD",
    "FITCARE_DEV_MODE",
    "DEV_MODE",
    "GEMINI_API_KEY",
    "GEMINI_MODEL",
    "FITCARE_LOG_LEVEL",
    "LOG_LEVEL",
]


def clear_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_resolve_db_path_stable_across_cwd(monkeypatch, tmp_path):
    clear_env(monkeypatch)
    monkeypatch.chdir(tmp_path)
    expected = Path(config.__file__).resolve().parents[3] / "fitcare.db"
    assert Path(config.resolve_db_path()) == expected


def test_relative_db_path_resolves_against_repo_root(monkeypatch):
    clear_env(monkeypatch)
    monkeypatch.setenv("DB_PATH", "data/custom.db")
    assert Path(config.resolve_db_path()) == config.REPO_ROOT / "data" / "custom.db"


def test_defaults(monkeypatch):
    clear_env(monkeypatch)
    settings = config.load_settings()
    assert settings.crisis_webhook_url is None
    assert settings.crisis_response_threshold == 0.7
    assert settings.crisis_webhook_timeout == 5.0
    assert settings.gemini_api_key is None
    assert settings.gemini_model == "gemini-1.5-flash"
    assert settings.log_level == "INFO"
    assert settings.dev_mode is False
    assert settings.database_url.startswith("sqlite:///")


def test_overrides(monkeypatch):
    clear_env(monkeypatch)
    monkeypatch.setenv("CRISIS_WEBHOOK_URL", " https://hooks.example.test/crisis ")
    monkeypatch.setenv("CRISIS_RESPONSE_THRESHOLD", "0.85")
    monkeypatch.setenv("FITCARE_DEV_MODE", "yes")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    settings = config.load_settings()
    assert settings.crisis_webhook_url == "https://hooks.example.test/crisis"
    assert settings.crisis_response_threshold == 0.85
    assert settings.dev_mode is True
    assert settings.log_level == "DEBUG"


def test_malformed_number_falls_back(monkeypatch, caplog):
    clear_env(monkeypatch)
    monkeypatch.setenv("CRISIS_RESPONSE_THRESHOLD", "high")
    settings = config.load_settings()
    assert settings.crisis_response_threshold == 0.7
    assert "CRISIS_RESPONSE_THRESHOLD" in caplog.text


def test_blank_webhook_url_is_unset(monkeypatch):
    clear_env(monkeypatch)
    monkeypatch.setenv("CRISIS_WEBHOOK_URL", "   ")
    assert config.load_settings().crisis_webhook_url is None
