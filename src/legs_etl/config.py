"""Configuration loading and settings for the leg ETL."""

from pathlib import Path
from typing import Literal, Self

import yaml
from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from legs_etl.executor import ExecutionPolicy
from legs_etl.models import ReferenceFileConfig, SchemaVersion
from legs_etl.pipeline import PipelineOptions


def load_reference_file(path: Path) -> ReferenceFileConfig:
    """Load and parse an aircraft.yaml reference file.

    Args:
        path: Path to the aircraft.yaml file.

    Returns:
        Parsed ReferenceFileConfig.

    Raises:
        FileNotFoundError: If the file does not exist.
        yaml.YAMLError: If the file is not valid YAML.
        pydantic.ValidationError: If the reference data is invalid.
    """
    with path.open() as f:
        raw_config = yaml.safe_load(f)

    return ReferenceFileConfig.model_validate(raw_config)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="",
        case_sensitive=True,
    )

    # Storage settings
    storage_backend: Literal["s3", "gcs"] = Field(
        default="s3",
        validation_alias="STORAGE_BACKEND",
        description="Object storage backend (s3 or gcs)",
    )
    storage_bucket: str = Field(
        validation_alias="STORAGE_BUCKET",
        description="Bucket holding positions and legs",
    )
    storage_endpoint_url: str | None = Field(
        default="https://fra1.digitaloceanspaces.com",
        validation_alias="STORAGE_ENDPOINT_URL",
        description="Endpoint of the S3-compatible service",
    )
    storage_region: str | None = Field(
        default="fra1",
        validation_alias="STORAGE_REGION",
        description="Region of the S3-compatible service",
    )
    storage_access_key: SecretStr | None = Field(
        default=None,
        validation_alias="STORAGE_ACCESS_KEY",
        description="Access key to the remote storage (required for s3)",
    )
    storage_secret_access_key: SecretStr | None = Field(
        default=None,
        validation_alias="STORAGE_SECRET_ACCESS_KEY",
        description="Secret access key to the remote storage (required for s3)",
    )

    # Dataset settings
    reference_path: Path = Field(
        default=Path("./aircraft.yaml"),
        validation_alias="REFERENCE_PATH",
        description="Path to the tracked aircraft reference file",
    )
    country: str | None = Field(
        default=None,
        pattern=r"^[A-Za-z]{2}$",
        validation_alias="COUNTRY",
        description="Optional ISO 3166 country to restrict aircraft to; defaults to whole world",
    )
    schema_version: SchemaVersion = Field(
        default=SchemaVersion.V2,
        validation_alias="SCHEMA_VERSION",
        description="Schema generation to build (v1 or v2)",
    )
    start_year: int = Field(
        default=2019,
        ge=1970,
        validation_alias="START_YEAR",
        description="First year of the dataset (inclusive)",
    )
    end_year: int = Field(
        default=2024,
        ge=1970,
        validation_alias="END_YEAR",
        description="Last year of the dataset (inclusive)",
    )
    public_url_base: str | None = Field(
        default=None,
        validation_alias="PUBLIC_URL_BASE",
        description="Public base URL of the bucket, used in status.json",
    )

    # Runtime settings
    etl_concurrency: int = Field(
        default=50,
        ge=1,
        le=500,
        validation_alias="ETL_CONCURRENCY",
        description="Maximum number of partitions processed concurrently",
    )
    read_concurrency: int = Field(
        default=100,
        ge=1,
        le=500,
        validation_alias="READ_CONCURRENCY",
        description="Maximum number of partitions read concurrently during aggregation",
    )
    etl_policy: ExecutionPolicy = Field(
        default=ExecutionPolicy.TOLERANT,
        validation_alias="ETL_POLICY",
        description="Failure policy of the ETL phase (tolerant or fail_fast)",
    )

    # Observability settings
    metrics_pushgateway: str | None = Field(
        default=None,
        validation_alias="METRICS_PUSHGATEWAY",
        description="Prometheus pushgateway address; metrics are not pushed when unset",
    )
    log_level: str = Field(
        default="INFO",
        validation_alias="LOG_LEVEL",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )
    log_format: str = Field(
        default="json",
        validation_alias="LOG_FORMAT",
        description="Log output format (json or text)",
    )

    @model_validator(mode="after")
    def validate_year_range(self) -> Self:
        """Validate that start_year is not after end_year."""
        if self.start_year > self.end_year:
            raise ValueError(
                f"start_year ({self.start_year}) must not be after end_year ({self.end_year})"
            )
        return self

    @model_validator(mode="after")
    def validate_credentials(self) -> Self:
        """Validate that the s3 backend has both secrets."""
        if self.storage_backend == "s3" and (
            self.storage_access_key is None or self.storage_secret_access_key is None
        ):
            raise ValueError(
                "STORAGE_ACCESS_KEY and STORAGE_SECRET_ACCESS_KEY are required for the s3 backend"
            )
        return self

    def pipeline_options(self) -> PipelineOptions:
        """Run parameters for :func:`legs_etl.pipeline.run_pipeline`."""
        return PipelineOptions(
            start_year=self.start_year,
            end_year=self.end_year,
            country=self.country,
            etl_concurrency=self.etl_concurrency,
            read_concurrency=self.read_concurrency,
            etl_policy=self.etl_policy,
            public_url_base=self.public_url_base,
        )
