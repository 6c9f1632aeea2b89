"""Tests for s3verify configuration loading."""

import tempfile
from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from s3verify.config import RunConfig, S3VerifyConfig, apply_env_overrides, load_config


def _write_yaml(data) -> Path:
    with tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
        yaml.dump(data, f)
        f.flush()
        return Path(f.name)


class TestLoadConfig:
    """Tests for load_config()."""

    def test_load_example_config(self):
        """Loading the example config file populates all fields."""
        config = load_config(Path(__file__).resolve().parent.parent / "s3verify.example.yaml")
        assert config.server.endpoint == "http://localhost:9000"
        assert config.server.region == "us-east-1"
        assert config.auth.access_key == "s3verify"
        assert config.auth.secret_key == "s3verify-secret"
        assert config.run.extended is False
        assert config.run.request_pool_size == 10
        assert config.run.object_count == 10
        assert config.logging.format == "text"
        assert config.metrics.textfile == ""

    def test_load_minimal_config(self):
        """Loading an empty YAML uses defaults for all fields."""
        config = load_config(_write_yaml({}))
        assert config.server.endpoint == "http://localhost:9000"
        assert config.run.object_count == 10
        assert config.auth.access_key == ""

    def test_nested_object_count(self):
        """run.objects.count maps onto object_count."""
        config = load_config(_write_yaml({"run": {"extended": True, "objects": {"count": 4}}}))
        assert config.run.object_count == 4
        assert config.run.extended is True

    def test_invalid_pool_size(self):
        """A zero request pool size fails validation."""
        with pytest.raises(ValidationError):
            load_config(_write_yaml({"run": {"request_pool_size": 0}}))

    def test_missing_file(self):
        """A missing file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            load_config(Path("/nonexistent/s3verify.yaml"))

    def test_defaults_instance(self):
        """A bare S3VerifyConfig has sensible defaults."""
        config = S3VerifyConfig()
        assert config.server.region == "us-east-1"
        assert config.run == RunConfig()


class TestEnvOverrides:
    """Tests for apply_env_overrides()."""

    def test_overrides(self):
        """S3_* variables replace endpoint, region and credentials."""
        config = apply_env_overrides(
            S3VerifyConfig(),
            {"S3_URL": "https://s3.example.com", "S3_ACCESS": "ak", "S3_SECRET": "sk", "S3_REGION": "eu-west-1"},
        )
        assert config.server.endpoint == "https://s3.example.com"
        assert config.server.region == "eu-west-1"
        assert (config.auth.access_key, config.auth.secret_key) == ("ak", "sk")

    def test_empty_values_ignored(self):
        """Empty variables leave the config alone."""
        config = apply_env_overrides(S3VerifyConfig(), {"S3_URL": ""})
        assert config.server.endpoint == "http://localhost:9000"


class TestCredentials:
    """Tests for S3VerifyConfig.credentials()."""

    def test_frozen(self):
        """Credentials combine server and auth and cannot be changed."""
        config = S3VerifyConfig()
        config.auth.access_key = "ak"
        config.auth.secret_key = "sk"
        creds = config.credentials()
        assert creds.endpoint == config.server.endpoint
        assert creds.access_key == "ak"
        with pytest.raises(ValidationError):
            creds.access_key = "other"
