"""Unit tests for application settings configuration."""

from pathlib import Path

from app.config import Settings


def test_settings_uses_backend_env_file_independent_of_cwd():
    """Settings should always include backend/.env as an env source."""
    env_files = Settings.model_config.get("env_file")
    assert env_files is not None

    normalized = {str(Path(item)) for item in env_files}
    expected_backend_env = str(Path(__file__).resolve().parents[2] / ".env")

    assert expected_backend_env in normalized
    assert str(Path(".env")) in normalized


def test_job_defaults(monkeypatch):
    """Retry and reaper defaults apply when nothing is configured."""
    for name in ("JOB_MAX_ATTEMPTS", "JOB_RETRY_JITTER_SEED", "STALE_JOB_TIMEOUT_MINUTES"):
        monkeypatch.delenv(name, raising=False)

    settings = Settings(_env_file=None)

    assert settings.job_max_attempts == 3
    assert settings.job_retry_base_delay_ms == 1000
    assert settings.job_retry_max_delay_ms == 30000
    assert settings.job_retry_jitter_seed is None
    assert settings.stale_job_timeout_minutes == 30


def test_job_settings_read_from_environment(monkeypatch):
    monkeypatch.setenv("JOB_MAX_ATTEMPTS", "5")
    monkeypatch.setenv("JOB_RETRY_JITTER_SEED", "1234")

    settings = Settings(_env_file=None)

    assert settings.job_max_attempts == 5
    assert settings.job_retry_jitter_seed == 1234
