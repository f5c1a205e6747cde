"""Configuration models and loaders for rxiv-ingest."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator

from .errors import ConfigurationError
from .types import Server
from .utils.sizes import parse_file_size

PROJECT_ROOT = Path(__file__).resolve().parents[2]
DEFAULT_CONFIG_PATH = PROJECT_ROOT / "configs" / "default.yaml"
API_KEY_ENV_VAR = "BIORXIV_API_KEY"

DEFAULT_BUCKETS = {
    Server.BIORXIV: "biorxiv-src-monthly",
    Server.MEDRXIV: "medrxiv-src-monthly",
}

# Archives at or above this size are fully extracted to disk instead of read selectively.
DEFAULT_SELECTIVE_THRESHOLD_BYTES = int(1.9 * 1024**3)


class StoreConfig(BaseModel):
    """Settings for the S3-compatible object store holding the MECA archives."""

    server: Server = Field(default=Server.BIORXIV)
    bucket: str | None = Field(default=None)
    region: str = Field(default="us-east-1")
    endpoint_url: str | None = Field(default=None)
    requester_pays: bool = Field(default=True)
    connect_timeout: float = Field(default=60.0, gt=0.0)
    read_timeout: float = Field(default=300.0, gt=0.0)
    max_pool_connections: int = Field(default=10, ge=1)

    @field_validator("server", mode="before")
    @classmethod
    def _validate_server(cls, value: Any) -> Server:
        if isinstance(value, Server):
            return value
        try:
            return Server(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"server must be 'biorxiv' or 'medrxiv', got {value!r}") from None

    def bucket_name(self) -> str:
        """Return the configured bucket, or the public source bucket for the server."""
        return self.bucket or DEFAULT_BUCKETS[self.server]


class CatalogConfig(BaseModel):
    """Settings for the catalog service that records registered works."""

    api_url: str = Field(default="https://biorxiv.curvenote.dev")
    api_key: str | None = Field(default=None)
    timeout: float = Field(default=30.0, gt=0.0)
    page_size: int = Field(default=1000, ge=1, le=1000)

    def base_url(self) -> str:
        return f"{self.api_url.rstrip('/')}/v1"


class PipelineConfig(BaseModel):
    """Batch processing behaviour.

    ``output_dir`` is resolved relative to the config file's parent directory.
    """

    concurrency: int = Field(default=1, ge=1)
    output_dir: Path = Field(default=Path("../batch-extracted"))
    keep: bool = Field(default=False)
    full_extract: bool = Field(default=False)
    max_file_size: str | None = Field(default=None)
    selective_threshold_bytes: int = Field(default=DEFAULT_SELECTIVE_THRESHOLD_BYTES, ge=1)
    archive_extension: str = Field(default=".meca")

    @field_validator("output_dir", mode="before")
    @classmethod
    def _coerce_path(cls, value: Any) -> Path:
        if isinstance(value, Path):
            return value
        return Path(str(value))

    @field_validator("max_file_size", mode="before")
    @classmethod
    def _validate_max_file_size(cls, value: Any) -> str | None:
        if value is None:
            return None
        text = str(value).strip()
        if not text:
            return None
        try:
            parse_file_size(text)
        except ConfigurationError as exc:
            raise ValueError(str(exc)) from None
        return text

    def max_file_size_bytes(self) -> int | None:
        return parse_file_size(self.max_file_size) if self.max_file_size else None

    def with_base(self, base_dir: Path) -> PipelineConfig:
        """Return a copy with an absolute output directory."""
        directory = self.output_dir
        resolved = directory if directory.is_absolute() else (base_dir / directory).resolve()
        return self.model_copy(update={"output_dir": resolved})


class IngestConfig(BaseModel):
    """Top-level configuration container."""

    store: StoreConfig = Field(default_factory=StoreConfig)
    catalog: CatalogConfig = Field(default_factory=CatalogConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)

    def with_base(self, base_dir: Path) -> IngestConfig:
        """Return a copy with filesystem paths resolved against *base_dir*."""
        return self.model_copy(update={"pipeline": self.pipeline.with_base(base_dir)})

    def with_environment(self) -> IngestConfig:
        """Fill the catalog API key from ``BIORXIV_API_KEY`` when the file leaves it unset."""
        if self.catalog.api_key:
            return self
        env_key = os.environ.get(API_KEY_ENV_VAR)
        if not env_key:
            return self
        return self.model_copy(
            update={"catalog": self.catalog.model_copy(update={"api_key": env_key})}
        )


def _load_raw_config(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise TypeError(f"Expected config to deserialize into a mapping, got {type(data)!r}")
    return {str(key): value for key, value in data.items()}


def load_config(path: Path | str | None = None) -> IngestConfig:
    """Load a configuration from *path* (defaults to configs/default.yaml)."""
    config_path = Path(path).resolve() if path else DEFAULT_CONFIG_PATH
    raw_config = _load_raw_config(config_path)
    config = IngestConfig.model_validate(raw_config)
    return config.with_base(config_path.parent).with_environment()


__all__ = [
    "API_KEY_ENV_VAR",
    "CatalogConfig",
    "DEFAULT_BUCKETS",
    "DEFAULT_SELECTIVE_THRESHOLD_BYTES",
    "IngestConfig",
    "PipelineConfig",
    "StoreConfig",
    "load_config",
]
