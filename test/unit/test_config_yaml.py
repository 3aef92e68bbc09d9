"""Unit tests for YAML configuration loading."""

import pytest

import config as config_module


def _clear_env(monkeypatch, keys):
    """Clear environment variables for config tests."""
    for key in keys:
        monkeypatch.delenv(key, raising=False)


def _use_paths(monkeypatch, defaults, user=None, secrets=None):
    monkeypatch.setattr(config_module, "_DEFAULT_CONFIG_PATH", defaults)
    monkeypatch.setattr(config_module, "_USER_CONFIG_PATHS", [user] if user else [])
    monkeypatch.setattr(config_module, "_USER_SECRETS_PATHS", [secrets] if secrets else [])


def test_yaml_precedence(monkeypatch, tmp_path):
    """Environment variables override secrets, user, and default YAML."""
    defaults = tmp_path / "defaults.yml"
    user_cfg = tmp_path / "user.yml"
    secrets = tmp_path / "secrets.yml"

    defaults.write_text(
        "\n".join(
            [
                "expenses:",
                "  base_url: https://default.example/api/",
                "  timeout: 10",
                "  api_token: Bearer default-token-000000",
                "scheduler:",
                "  default_timezone: UTC",
                "  failure_notification_threshold: 1",
            ]
        ),
        encoding="utf-8",
    )
    user_cfg.write_text(
        "\n".join(
            [
                "expenses:",
                "  timeout: 20",
                "scheduler:",
                "  default_timezone: Europe/Berlin",
                "  failure_notification_threshold: 2",
            ]
        ),
        encoding="utf-8",
    )
    secrets.write_text(
        "\n".join(
            [
                "expenses:",
                "  api_token: Bearer secret-token-111111",
                "  timeout: 30",
            ]
        ),
        encoding="utf-8",
    )

    _clear_env(
        monkeypatch,
        [
            "EXPENSES_BASE_URL",
            "EXPENSES_API_TOKEN",
            "EXPENSES_TIMEOUT",
            "SCHEDULER_DEFAULT_TIMEZONE",
        ],
    )
    monkeypatch.setenv("EXPENSES_TIMEOUT", "40")
    _use_paths(monkeypatch, defaults, user_cfg, secrets)

    settings = config_module.Settings()

    assert settings.expenses.timeout == 40
    assert settings.expenses.api_token == "Bearer secret-token-111111"
    assert settings.expenses.base_url == "https://default.example/api"
    assert settings.scheduler.default_timezone == "Europe/Berlin"
    assert settings.scheduler.failure_notification_threshold == 2


def test_missing_yaml_files(monkeypatch, tmp_path):
    """Missing YAML files fall back to environment settings and defaults."""
    _clear_env(monkeypatch, ["EXPENSES_API_TOKEN", "SCHEDULER_TIMER_BACKEND"])
    monkeypatch.setenv("EXPENSES_API_TOKEN", "Bearer env-token-222222")
    monkeypatch.setenv("SCHEDULER_TIMER_BACKEND", "Celery")
    monkeypatch.setenv("SIGNAL_RECIPIENTS", "[\"+15551234567\"]")
    _use_paths(
        monkeypatch,
        tmp_path / "missing-default.yml",
        tmp_path / "missing-user.yml",
        tmp_path / "missing-secrets.yml",
    )

    settings = config_module.Settings()

    assert settings.expenses.api_token == "Bearer env-token-222222"
    assert settings.scheduler.timer_backend == "celery"
    assert settings.notifications.signal_recipients == ["+15551234567"]
    assert settings.expenses.max_attempts == 3


def test_non_mapping_yaml_raises(monkeypatch, tmp_path):
    """Non-mapping YAML raises a validation error."""
    defaults = tmp_path / "defaults.yml"
    defaults.write_text("- just\n- a\n- list\n", encoding="utf-8")
    _use_paths(monkeypatch, defaults)

    with pytest.raises(ValueError, match="Config file must contain a mapping"):
        config_module.Settings()


@pytest.mark.parametrize(
    ("yaml_text", "message"),
    [
        ("scheduler:\n  default_timezone: Nowhere/Special\n", "Invalid timezone"),
        ("scheduler:\n  timer_backend: cron\n", "timer_backend"),
        ("scheduler:\n  failure_notification_threshold: 0\n", "threshold"),
        (
            "scheduler:\n  min_custom_interval_ms: 600000\n  max_custom_interval_ms: 60000\n",
            "max_custom_interval_ms",
        ),
        ("expenses:\n  max_attempts: 0\n", "max_attempts"),
        ("notifications:\n  backend: signal\n", "signal_from_number"),
        ("log_level: chatty\n", "log_level"),
    ],
)
def test_invalid_values_are_rejected(monkeypatch, tmp_path, yaml_text, message):
    """Out-of-range settings fail validation with a named field."""
    _clear_env(
        monkeypatch,
        ["SCHEDULER_TIMER_BACKEND", "NOTIFICATIONS_BACKEND", "LOG_LEVEL", "SCHEDULER_DEFAULT_TIMEZONE"],
    )
    defaults = tmp_path / "defaults.yml"
    defaults.write_text(yaml_text, encoding="utf-8")
    _use_paths(monkeypatch, defaults)

    with pytest.raises(ValueError, match=message):
        config_module.Settings()


def test_repository_defaults_load():
    """The shipped defaults file produces a valid configuration."""
    defaults = config_module._load_yaml(config_module._DEFAULT_CONFIG_PATH)

    assert defaults["scheduler"]["timer_backend"] == "in_process"
    assert defaults["celery"]["queue_name"] == "expense-autopilot"
