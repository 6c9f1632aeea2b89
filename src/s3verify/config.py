"""Configuration loading and Pydantic models for s3verify."""

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field

DEFAULT_REGION = "us-east-1"


class Credentials(BaseModel):
    """Endpoint and credentials for one test run. Immutable."""

    model_config = ConfigDict(frozen=True)

    access_key: str
    secret_key: str
    region: str = DEFAULT_REGION
    endpoint: str


class ServerConfig(BaseModel):
    """Target S3 endpoint."""

    endpoint: str = "http://localhost:9000"
    region: str = DEFAULT_REGION


class AuthConfig(BaseModel):
    """Credentials used to sign requests."""

    access_key: str = ""
    secret_key: str = ""


class RunConfig(BaseModel):
    """Test selection and concurrency settings."""

    extended: bool = False
    verbose: bool = False
    request_pool_size: int = Field(default=10, ge=1)
    object_count: int = Field(default=10, ge=1)
    bucket_prefix: str = "s3verify"


class LoggingConfig(BaseModel):
    """Log level and output format."""

    level: str = "INFO"
    format: str = "text"


class MetricsConfig(BaseModel):
    """Prometheus text-file output."""

    textfile: str = ""


class S3VerifyConfig(BaseModel):
    """Top-level s3verify configuration."""

    server: ServerConfig = Field(default_factory=ServerConfig)
    auth: AuthConfig = Field(default_factory=AuthConfig)
    run: RunConfig = Field(default_factory=RunConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)

    def credentials(self) -> Credentials:
        """Freeze the endpoint and auth sections into run credentials."""
        return Credentials(
            access_key=self.auth.access_key,
            secret_key=self.auth.secret_key,
            region=self.server.region,
            endpoint=self.server.endpoint,
        )


def _parse_server(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the server section from YAML data into a dict for Pydantic."""
    if data is None:
        return {}
    return {
        "endpoint": data.get("endpoint", "http://localhost:9000"),
        "region": data.get("region", DEFAULT_REGION),
    }


def _parse_auth(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the auth section from YAML data."""
    if data is None:
        return {}
    return {
        "access_key": data.get("access_key", ""),
        "secret_key": data.get("secret_key", ""),
    }


def _parse_run(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the run section from YAML data.

    Handles the nested structure: run.objects.count -> object_count
    """
    if data is None:
        return {}
    result: dict[str, Any] = {
        "extended": data.get("extended", False),
        "verbose": data.get("verbose", False),
        "request_pool_size": data.get("request_pool_size", 10),
        "bucket_prefix": data.get("bucket_prefix", "s3verify"),
    }
    objects_section = data.get("objects")
    if isinstance(objects_section, dict):
        result["object_count"] = objects_section.get("count", 10)
    return result


def _parse_logging(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the logging section from YAML data."""
    if data is None:
        return {}
    return {
        "level": data.get("level", "INFO"),
        "format": data.get("format", "text"),
    }


def _parse_metrics(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the metrics section from YAML data."""
    if data is None:
        return {}
    return {"textfile": data.get("textfile", "")}


def load_config(path: Path) -> S3VerifyConfig:
    """Load an S3VerifyConfig from a YAML file.

    Args:
        path: Path to the YAML configuration file.

    Returns:
        A fully populated S3VerifyConfig validated by Pydantic.

    Raises:
        FileNotFoundError: If the config file does not exist.
        yaml.YAMLError: If the file is not valid YAML.
    """
    with open(path, "r") as fh:
        raw: dict[str, Any] = yaml.safe_load(fh) or {}

    return S3VerifyConfig(
        server=ServerConfig(**_parse_server(raw.get("server"))),
        auth=AuthConfig(**_parse_auth(raw.get("auth"))),
        run=RunConfig(**_parse_run(raw.get("run"))),
        logging=LoggingConfig(**_parse_logging(raw.get("logging"))),
        metrics=MetricsConfig(**_parse_metrics(raw.get("metrics"))),
    )


def apply_env_overrides(
    config: S3VerifyConfig, environ: Mapping[str, str] | None = None
) -> S3VerifyConfig:
    """Override endpoint and credentials from S3_* environment variables.

    Recognised variables: ``S3_URL``, ``S3_ACCESS``, ``S3_SECRET``,
    ``S3_REGION``.  Unset or empty variables leave the config unchanged.
    """
    env = os.environ if environ is None else environ
    if env.get("S3_URL"):
        config.server.endpoint = env["S3_URL"]
    if env.get("S3_REGION"):
        config.server.region = env["S3_REGION"]
    if env.get("S3_ACCESS"):
        config.auth.access_key = env["S3_ACCESS"]
    if env.get("S3_SECRET"):
        config.auth.secret_key = env["S3_SECRET"]
    return config
