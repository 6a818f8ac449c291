"""
Tests for environment-based settings
"""

import pytest

from config import Settings

ENV_KEYS = ["LMS_COURSES_DIR", "LMS_COURSES_URL", "LMS_PROGRESS_DIR", "LMS_BACKEND", "FIREBASE_API_KEY",
            "FIREBASE_PROJECT_ID", "LMS_LOG_LEVEL", "LMS_LOG_FILE", "LMS_NOTIFICATION_SECONDS", "LMS_MAX_QUIZ_QUESTIONS"]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def test_defaults():
    settings = Settings.from_env()
    assert settings.courses_dir == "courses"
    assert settings.backend == "memory"
    assert settings.progress_dir is None
    assert settings.notification_seconds == 4.0


def test_reads_environment(monkeypatch):
    monkeypatch.setenv("LMS_PROGRESS_DIR", "/tmp/progress")
    monkeypatch.setenv("LMS_NOTIFICATION_SECONDS", "2.5")
    monkeypatch.setenv("LMS_LOG_LEVEL", "DEBUG")
    settings = Settings.from_env()
    assert settings.progress_dir == "/tmp/progress"
    assert settings.notification_seconds == 2.5
    assert settings.log_level == "DEBUG"


def test_firebase_requires_credentials(monkeypatch):
    monkeypatch.setenv("LMS_BACKEND", "firebase")
    with pytest.raises(ValueError):
        Settings.from_env()
    monkeypatch.setenv("FIREBASE_API_KEY", "key")
    monkeypatch.setenv("FIREBASE_PROJECT_ID", "proj")
    assert Settings.from_env().firebase_project_id == "proj"
