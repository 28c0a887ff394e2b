"""Unit tests for configuration module.

Tests cover:
- Environment variable loading
- Configuration validation
- Directory creation
- S3 configuration
"""

from importlib import reload

import pytest

import debt_pipeline.config as config
from debt_pipeline.exceptions import ConfigurationError


@pytest.fixture
def reload_config(monkeypatch):
    """Reload the config module under a patched environment.

    The module is reloaded again with the original environment afterwards,
    so later tests see the usual settings.
    """

    def _reload(**env):
        for key, value in env.items():
            if value is None:
                monkeypatch.delenv(key, raising=False)
            else:
                monkeypatch.setenv(key, value)
        return reload(config)

    yield _reload

    monkeypatch.undo()
    reload(config)


# ============================================================================
# Environment Variable Tests
# ============================================================================

@pytest.mark.unit
class TestEnvironmentVariables:
    """Test environment variable configuration."""

    def test_defaults(self, reload_config):
        """Test default configuration values."""
        module = reload_config(
            API_BASE_URL=None,
            BULK_PAGE_SIZE=None,
            OUTPUT_FORMAT=None,
            FAILURE_POLICY=None,
            DUPLICATE_POLICY=None,
            HTTP_MAX_ATTEMPTS=None,
            ENABLE_S3_UPLOAD=None,
        )

        assert module.API_BASE_URL == "https://api.worldbank.org/v2/sources/6"
        assert module.BULK_PAGE_SIZE == 100000
        assert module.OUTPUT_FORMAT == "wide"
        assert module.FAILURE_POLICY == "abort"
        assert module.DUPLICATE_POLICY == "error"
        assert module.HTTP_MAX_ATTEMPTS == 1
        assert module.ENABLE_S3_UPLOAD is False

    def test_api_base_url_trailing_slash_stripped(self, reload_config):
        """Test the trailing slash is stripped from the API URL."""
        module = reload_config(API_BASE_URL="https://api.example.org/v2/sources/6/")

        assert module.API_BASE_URL == "https://api.example.org/v2/sources/6"

    def test_policies_lowercased(self, reload_config):
        """Test policy settings are lowercased."""
        module = reload_config(FAILURE_POLICY="PARTIAL", OUTPUT_FORMAT="Long")

        assert module.FAILURE_POLICY == "partial"
        assert module.OUTPUT_FORMAT == "long"

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("true", True),
            ("True", True),
            ("false", False),
            ("anything_else", False),
        ],
    )
    def test_enable_s3_upload_parsing(self, reload_config, value, expected):
        """Test parsing of the S3 upload flag."""
        module = reload_config(ENABLE_S3_UPLOAD=value)

        assert module.ENABLE_S3_UPLOAD is expected

    def test_prod_landing_folder(self, reload_config):
        """Test the landing folder in the prod environment."""
        module = reload_config(TARGET="prod")

        assert module.LANDING_AREA_FOLDER == "prod/landing/ids"

    def test_dev_landing_folder(self, reload_config):
        """Test the landing folder in a dev environment."""
        module = reload_config(TARGET="dev", USERNAME="Alice")

        assert module.LANDING_AREA_FOLDER == "dev/dev_alice/landing/ids"

    def test_default_series(self):
        """Test the default series list."""
        codes = [spec.api_code for spec in config.DEFAULT_SERIES]
        short_names = [spec.short_name for spec in config.DEFAULT_SERIES]

        assert "DT.DOD.DPPG.CD" in codes
        assert len(set(short_names)) == len(short_names)


# ============================================================================
# Validation Tests
# ============================================================================

@pytest.mark.unit
class TestValidateConfig:
    """Test configuration validation."""

    def test_valid_configuration(self, temp_dir):
        """Test a valid configuration passes validation."""
        config.validate_config(output_dir=str(temp_dir))

    def test_creates_output_directory(self, temp_dir):
        """Test validation creates the output directory."""
        output_dir = temp_dir / "nested" / "data"

        config.validate_config(output_dir=str(output_dir))

        assert output_dir.is_dir()

    def test_unwritable_output_directory(self, temp_dir):
        """Test an unwritable output directory is rejected."""
        blocker = temp_dir / "blocker"
        blocker.write_text("not a directory")

        with pytest.raises(ConfigurationError, match="output directory"):
            config.validate_config(output_dir=str(blocker / "data"))

    @pytest.mark.parametrize(
        "overrides,setting",
        [
            ({"output_format": "parquet"}, "OUTPUT_FORMAT"),
            ({"failure_policy": "retry"}, "FAILURE_POLICY"),
            ({"duplicate_policy": "first"}, "DUPLICATE_POLICY"),
        ],
    )
    def test_invalid_choice(self, temp_dir, overrides, setting):
        """Test invalid policy and format choices are rejected."""
        with pytest.raises(ConfigurationError, match=setting):
            config.validate_config(output_dir=str(temp_dir), **overrides)

    @pytest.mark.parametrize(
        "setting", ["BULK_PAGE_SIZE", "METADATA_PAGE_SIZE", "MAX_WORKERS", "HTTP_MAX_ATTEMPTS"]
    )
    def test_non_positive_setting(self, temp_dir, monkeypatch, setting):
        """Test non-positive numeric settings are rejected."""
        monkeypatch.setattr(f"debt_pipeline.config.{setting}", 0)

        with pytest.raises(ConfigurationError, match=f"{setting} must be positive"):
            config.validate_config(output_dir=str(temp_dir))

    def test_empty_api_url(self, temp_dir, monkeypatch):
        """Test an empty API URL is rejected."""
        monkeypatch.setattr("debt_pipeline.config.API_BASE_URL", "")

        with pytest.raises(ConfigurationError, match="API_BASE_URL"):
            config.validate_config(output_dir=str(temp_dir))

    def test_s3_upload_without_bucket(self, temp_dir, monkeypatch):
        """Test enabling upload without a bucket is rejected."""
        monkeypatch.setattr("debt_pipeline.config.ENABLE_S3_UPLOAD", True)
        monkeypatch.setattr("debt_pipeline.config.S3_BUCKET_NAME", "")

        with pytest.raises(ConfigurationError, match="no bucket name"):
            config.validate_config(output_dir=str(temp_dir))
