"""
Runtime settings for the ingestion client.

Settings come from environment variables prefixed with `KUSTO_INGEST__`
(nested sections use `__`, e.g. `KUSTO_INGEST__OTEL__OTLP_ENDPOINT`) and an
optional `.env` file in the working directory.

The streaming size limit is a protocol constant and is deliberately absent
here (see `kustoingest.streaming.MAX_STREAM_SIZE`).
"""

from __future__ import annotations

from datetime import timedelta
from functools import lru_cache
from pathlib import Path

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_ENV_PATH: Path = Path.cwd() / ".env"


class OTELConfig(BaseSettings):
    """OpenTelemetry export settings, used only when observability is initialized."""

    service_name: str = Field(default="kustoingest")
    otlp_endpoint: str = Field(default="http://otel-collector:4317")
    otlp_headers: str = Field(default="")
    resource_attributes: str = Field(default="deployment.environment=local")
    insecure: bool = Field(default=True)

    model_config = SettingsConfigDict(extra="ignore")

    def resource_attrs(self) -> dict:
        """Parse `k=v,k2=v2` resource attributes."""
        return {
            kv.split("=", 1)[0]: kv.split("=", 1)[1]
            for kv in self.resource_attributes.split(",")
            if "=" in kv
        }


class IngestSettings(BaseSettings):
    """Root settings object."""

    mapping_cache_ttl_sec: float = Field(
        default=300.0,
        gt=0,
        description="Seconds a fetched list of server mappings is trusted.",
    )
    stream_timeout_sec: float = Field(
        default=30.0,
        gt=0,
        description="Default HTTP timeout for streaming writes.",
    )
    buffer_pool_size: int = Field(
        default=32,
        ge=0,
        description="Max compression buffers kept for reuse.",
    )
    log_level: str = Field(default="INFO")

    otel: OTELConfig = Field(default_factory=OTELConfig)

    model_config = SettingsConfigDict(
        env_prefix="KUSTO_INGEST__",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def mapping_cache_ttl(self) -> timedelta:
        return timedelta(seconds=self.mapping_cache_ttl_sec)

    @classmethod
    @lru_cache(maxsize=1)
    def load(cls) -> "IngestSettings":
        try:
            env_file = str(DEFAULT_ENV_PATH) if DEFAULT_ENV_PATH.exists() else None
            return cls(_env_file=env_file)
        except ValidationError as exc:
            raise RuntimeError("Invalid configuration values.") from exc
