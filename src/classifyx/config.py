"""Environment-based configuration for ClassifyX."""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from CLASSIFYX_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="CLASSIFYX_",
        case_sensitive=False,
        protected_namespaces=(),
    )

    # Server
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 8082

    # Authentication (None = disabled)
    api_key: str | None = None

    # Model source: a local file, or a HuggingFace repo to download from
    model_path: str | None = None
    labels_path: str | None = None
    model_repo_id: str | None = None
    model_filename: str = "model.onnx"
    labels_filename: str | None = None
    models_dir: str = "models"

    # Normalization override (None = pick from the model name)
    normalization: Literal["imagenet", "symmetric", "unit"] | None = None

    # Ranking
    default_top_k: int = Field(default=5, ge=1)
    max_top_k: int = Field(default=100, ge=1)

    # ONNX Runtime threading
    intra_op_threads: int = Field(default=0, ge=0)
    inter_op_threads: int = Field(default=1, ge=1)

    # Input limits
    max_image_pixels: int = Field(default=16_777_216, ge=1)
    max_file_size: int = Field(default=209_715_200, ge=1)


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()
