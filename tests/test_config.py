"""
Tests for loading bot settings.
"""

import json

import pytest

from config import Config

NAMES = (
    "TOKEN", "DISCORD_BOT_TOKEN", "COMMAND_PREFIX", "TRACKED_CHANNELS", "DATABASE_PATH", "REPORT_DIR",
    "LOG_DIR", "LOG_LEVEL", "BATCH_SIZE", "DOWNLOAD_CONCURRENCY", "THREAD_CONCURRENCY",
    "MAX_ATTACHMENT_SIZE", "HASH_SIZE", "PROGRESS_INTERVAL", "PROGRESS_TIMEOUT", "DOWNLOAD_TIMEOUT",
)


@pytest.fixture
def clean_env(monkeypatch):
    for name in NAMES:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def write_settings(directory, data):
    (directory / "settings.json").write_text(json.dumps(data), encoding="utf-8")


def test_defaults(clean_env, temp_dir):
    config = Config(str(temp_dir))
    assert config.prefix == "!"
    assert config.token == ""
    assert config.batch_size == 100
    assert config.download_concurrency == 6
    assert config.thread_concurrency == 4
    assert config.max_attachment_size == 8 * 1024 * 1024
    assert config.hash_size == 16
    assert config.progress_timeout == 5.0
    assert config.tracked_channels == set()
    assert config.report_dir.name == "reports"


def test_settings_file(clean_env, temp_dir):
    write_settings(temp_dir, {"command_prefix": "?", "batch_size": 50, "tracked_channels": [123, "456"]})
    config = Config(str(temp_dir))
    assert config.prefix == "?"
    assert config.batch_size == 50
    assert config.tracked_channels == {123, 456}


def test_environment_overrides_file(clean_env, temp_dir):
    write_settings(temp_dir, {"batch_size": 50})
    clean_env.setenv("BATCH_SIZE", "25")
    clean_env.setenv("TRACKED_CHANNELS", "1, 2,3")
    assert Config(str(temp_dir)).batch_size == 25
    assert Config(str(temp_dir)).tracked_channels == {1, 2, 3}


def test_discord_bot_token_fallback(clean_env, temp_dir):
    clean_env.setenv("DISCORD_BOT_TOKEN", "abc")
    assert Config(str(temp_dir)).token == "abc"
    clean_env.setenv("TOKEN", "xyz")
    assert Config(str(temp_dir)).token == "xyz"


def test_invalid_values_fall_back(clean_env, temp_dir):
    clean_env.setenv("BATCH_SIZE", "lots")
    clean_env.setenv("DOWNLOAD_CONCURRENCY", "0")
    clean_env.setenv("PROGRESS_TIMEOUT", "-1")
    clean_env.setenv("TRACKED_CHANNELS", "12,general")
    config = Config(str(temp_dir))
    assert config.batch_size == 100
    assert config.download_concurrency == 6
    assert config.progress_timeout == 5.0
    assert config.tracked_channels == {12}


def test_broken_settings_file(clean_env, temp_dir):
    (temp_dir / "settings.json").write_text("{not json", encoding="utf-8")
    assert Config(str(temp_dir)).prefix == "!"
