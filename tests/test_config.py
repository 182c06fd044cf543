"""Tests for configuration loading, validation and duration parsing."""

from datetime import timedelta

import pytest

from notifier.config import (
    AppConfig,
    ConfigurationError,
    load_config,
    parse_config_dict,
)
from notifier.config.duration import (
    DurationParseError,
    describe_seconds,
    parse_duration,
    parse_timedelta,
    validate_duration_range,
)
from notifier.config.environment import (
    DEFAULT_DATABASE_URL,
    DEFAULT_SMTP_HOST,
    DEFAULT_SMTP_PORT,
    EnvironmentConfig,
    load_environment_config,
)

ENV_VARS = (
    "SMTP_HOST",
    "SMTP_PORT",
    "SMTP_USER",
    "SMTP_PASS",
    "SMTP_SENDER_NAME",
    "LOG_LEVEL",
    "DATABASE_URL",
    "NOTIFICATION_TABLE_NAME",
    "ERROR_TABLE_NAME",
    "TEMPLATE_BUCKET",
    "TEMPLATE_DIR",
    "AWS_REGION",
    "SQS_QUEUE_URL",
)


@pytest.fixture
def clean_env(monkeypatch):
    """Remove every pipeline environment variable."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


@pytest.fixture
def mock_env_vars(clean_env):
    """Set valid mail credentials."""
    clean_env.setenv("SMTP_USER", "notifications@example.com")
    clean_env.setenv("SMTP_PASS", "secret123")
    return clean_env


class TestConfigurationLoading:
    """Test configuration loading from YAML files."""

    def test_load_valid_config(self, tmp_path, mock_env_vars):
        """Test loading a configuration file with every section."""
        config_file = tmp_path / "config.yaml"
        config_file.write_text(
            "templates:\n"
            "  freshness_window: PT10M\n"
            "  render_engine: placeholder\n"
            "delivery:\n"
            "  max_workers: 4\n"
            "  bulk_wave_size: 5\n"
            "  bulk_wave_pause: 500ms\n"
            "  use_tls: false\n"
            "logging:\n"
            "  level: DEBUG\n"
            "  format: json\n"
        )

        app_config, env_config = load_config(config_file)

        assert app_config.templates.freshness_timedelta == timedelta(minutes=10)
        assert app_config.templates.render_engine == "placeholder"
        assert app_config.delivery.max_workers == 4
        assert app_config.delivery.bulk_wave_size == 5
        assert app_config.delivery.bulk_wave_pause_seconds == 0.5
        assert app_config.delivery.use_tls is False
        assert app_config.logging.level == "DEBUG"
        assert app_config.logging.format == "json"
        assert env_config.smtp_user == "notifications@example.com"

    def test_defaults_without_config_file(self, tmp_path, mock_env_vars):
        """Test the built-in defaults apply when no config file exists."""
        mock_env_vars.chdir(tmp_path)

        app_config, _ = load_config()

        assert app_config.templates.freshness_timedelta == timedelta(minutes=5)
        assert app_config.templates.render_engine == "jinja"
        assert app_config.delivery.max_workers == 10
        assert app_config.delivery.bulk_wave_pause_seconds == 1.0
        assert app_config.logging.level == "INFO"
        assert app_config.logging.format == "key-value"

    def test_config_in_working_directory_is_found(self, tmp_path, mock_env_vars):
        """Test ./config.yaml is picked up automatically."""
        (tmp_path / "config.yaml").write_text("delivery:\n  max_workers: 3\n")
        mock_env_vars.chdir(tmp_path)

        app_config, _ = load_config()

        assert app_config.delivery.max_workers == 3

    def test_empty_config_file(self, tmp_path, mock_env_vars):
        """Test an empty file yields the defaults."""
        config_file = tmp_path / "config.yaml"
        config_file.write_text("")

        app_config, _ = load_config(config_file)

        assert app_config == AppConfig()

    def test_config_file_not_found(self, tmp_path, mock_env_vars):
        """Test error when a given config file doesn't exist."""
        with pytest.raises(ConfigurationError) as exc_info:
            load_config(tmp_path / "missing.yaml")

        assert "not found" in str(exc_info.value)

    def test_invalid_yaml_syntax(self, tmp_path, mock_env_vars):
        """Test error handling for invalid YAML syntax."""
        config_file = tmp_path / "invalid.yaml"
        config_file.write_text("delivery:\n  max_workers: [1, 2\n")

        with pytest.raises(ConfigurationError) as exc_info:
            load_config(config_file)

        assert "Failed to parse YAML" in str(exc_info.value)

    def test_top_level_must_be_mapping(self, tmp_path, mock_env_vars):
        """Test a YAML list at the top level is rejected."""
        config_file = tmp_path / "list.yaml"
        config_file.write_text("- one\n- two\n")

        with pytest.raises(ConfigurationError, match="mapping"):
            load_config(config_file)


class TestParseConfigDict:
    """Test pydantic validation errors are reported as ConfigurationError."""

    def test_max_workers_out_of_range(self):
        with pytest.raises(ConfigurationError) as exc_info:
            parse_config_dict({"delivery": {"max_workers": 0}})

        assert "delivery -> max_workers" in str(exc_info.value)

    def test_invalid_log_format(self):
        with pytest.raises(ConfigurationError) as exc_info:
            parse_config_dict({"logging": {"format": "xml"}})

        assert "logging -> format" in str(exc_info.value)

    def test_freshness_window_too_long(self):
        with pytest.raises(ConfigurationError) as exc_info:
            parse_config_dict({"templates": {"freshness_window": "2d"}})

        assert "Freshness window too long" in str(exc_info.value)

    def test_all_errors_reported(self):
        """Test every invalid field is listed in one error."""
        with pytest.raises(ConfigurationError) as exc_info:
            parse_config_dict({"delivery": {"max_workers": 0, "bulk_wave_pause": "soon"}})

        assert len(exc_info.value.errors) == 2

    def test_zero_freshness_window_disables_cache(self):
        config = parse_config_dict({"templates": {"freshness_window": "0s"}})

        assert config.templates.freshness_timedelta == timedelta(0)


class TestDurationParsing:
    """Test duration parsing."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("5m", 300.0),
            ("1s", 1.0),
            ("500ms", 0.5),
            ("2h", 7200.0),
            ("1d", 86400.0),
            ("1h30m", 5400.0),
            ("PT5M", 300.0),
            ("PT1H30M", 5400.0),
            ("P1D", 86400.0),
            ("PT1.5S", 1.5),
        ],
    )
    def test_parse_valid(self, value, expected):
        assert parse_duration(value) == expected

    @pytest.mark.parametrize("value", ["", "   ", "5 minutes", "abc", "P", "PT", "5x"])
    def test_parse_invalid_format(self, value):
        with pytest.raises(DurationParseError):
            parse_duration(value)

    def test_zero_needs_allow_zero(self):
        with pytest.raises(DurationParseError, match="zero"):
            parse_duration("0s")

        assert parse_duration("PT0S", allow_zero=True) == 0.0

    def test_parse_timedelta(self):
        assert parse_timedelta("5m") == timedelta(minutes=5)

    def test_validate_duration_range_too_short(self):
        with pytest.raises(DurationParseError) as exc_info:
            validate_duration_range(30, min_seconds=60, max_seconds=3600)

        assert "too short" in str(exc_info.value)
        assert "1 minute" in str(exc_info.value)

    def test_validate_duration_range_too_long(self):
        with pytest.raises(DurationParseError, match="Pause too long: 2 hours"):
            validate_duration_range(7200, min_seconds=0, max_seconds=3600, label="Pause")

    def test_validate_duration_range_valid(self):
        validate_duration_range(300, min_seconds=60, max_seconds=3600)

    @pytest.mark.parametrize(
        "seconds,expected",
        [(1, "1 second"), (30, "30 seconds"), (0.5, "0.5 seconds"), (60, "1 minute"), (7200, "2 hours"), (86400, "1 day")],
    )
    def test_describe_seconds(self, seconds, expected):
        assert describe_seconds(seconds) == expected


class TestEnvironmentConfig:
    """Test environment variable loading."""

    def test_defaults(self, clean_env):
        """Test every variable is optional at load time."""
        env_config = load_environment_config()

        assert env_config.smtp_host == DEFAULT_SMTP_HOST
        assert env_config.smtp_port == DEFAULT_SMTP_PORT
        assert env_config.database_url == DEFAULT_DATABASE_URL
        assert env_config.notification_table_name == "notifications"
        assert env_config.error_table_name == "notification_errors"
        assert env_config.smtp_sender_name == "Notifications"
        assert env_config.has_mail_credentials is False

    def test_load_all_variables(self, mock_env_vars):
        mock_env_vars.setenv("SMTP_HOST", "smtp.example.com")
        mock_env_vars.setenv("SMTP_PORT", "587")
        mock_env_vars.setenv("TEMPLATE_BUCKET", "templates-bucket")
        mock_env_vars.setenv("SQS_QUEUE_URL", "https://sqs.example.com/queue")
        mock_env_vars.setenv("NOTIFICATION_TABLE_NAME", "notif_prod")

        env_config = load_environment_config()

        assert env_config.smtp_host == "smtp.example.com"
        assert env_config.smtp_port == 587
        assert env_config.template_bucket == "templates-bucket"
        assert env_config.sqs_queue_url == "https://sqs.example.com/queue"
        assert env_config.notification_table_name == "notif_prod"
        assert env_config.has_mail_credentials is True

    @pytest.mark.parametrize("port", ["abc", "0", "70000"])
    def test_invalid_smtp_port(self, mock_env_vars, port):
        mock_env_vars.setenv("SMTP_PORT", port)

        with pytest.raises(ConfigurationError) as exc_info:
            load_environment_config()

        assert "SMTP_PORT" in str(exc_info.value)

    def test_invalid_email_format(self, mock_env_vars):
        mock_env_vars.setenv("SMTP_USER", "not-an-email")

        with pytest.raises(ConfigurationError, match="SMTP_USER"):
            load_environment_config()

    def test_user_without_password(self, clean_env):
        clean_env.setenv("SMTP_USER", "notifications@example.com")

        with pytest.raises(ConfigurationError, match="SMTP_PASS is not"):
            load_environment_config()

    def test_invalid_log_level(self, mock_env_vars):
        mock_env_vars.setenv("LOG_LEVEL", "LOUD")

        with pytest.raises(ConfigurationError, match="LOG_LEVEL"):
            load_environment_config()

    def test_conflicting_template_sources(self, mock_env_vars):
        mock_env_vars.setenv("TEMPLATE_BUCKET", "bucket")
        mock_env_vars.setenv("TEMPLATE_DIR", "/srv/templates")

        with pytest.raises(ConfigurationError, match="Choose one template source"):
            load_environment_config()

    def test_all_problems_reported_together(self, clean_env):
        clean_env.setenv("SMTP_PORT", "abc")
        clean_env.setenv("LOG_LEVEL", "LOUD")

        with pytest.raises(ConfigurationError) as exc_info:
            load_environment_config()

        assert len(exc_info.value.errors) == 2

    def test_require_mail_credentials(self):
        with pytest.raises(ConfigurationError) as exc_info:
            EnvironmentConfig(smtp_user="notifications@example.com").require_mail_credentials()

        assert exc_info.value.errors == ["Missing required environment variable: SMTP_PASS"]
