"""
Settings for the U2-Net background-removal service.

Every knob is read from the environment (or `.env`): where the ONNX models
live and where they are fetched from, which onnxruntime execution providers
to use, and the download / inference time limits.
"""

from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

VARIANTS = ("standard", "medium")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Model cache + sources
    u2net_home: Path = Field(default_factory=lambda: Path.home() / ".u2net")
    u2net_url: Optional[str] = "https://github.com/danielgatis/rembg/releases/download/v0.0.0/u2net.onnx"
    u2net_md5: Optional[str] = "60024c5c889badc19c04ad937298a77b"
    u2net_med_url: Optional[str] = None
    u2net_med_md5: Optional[str] = None

    # Inference engine
    # Comma separated, e.g. ONNX_PROVIDERS=CUDAExecutionProvider,CPUExecutionProvider
    onnx_providers: Annotated[Optional[List[str]], NoDecode] = None
    session_cache_size: int = 2
    default_variant: str = "standard"

    # Timeouts
    download_timeout_seconds: float = 600.0
    inference_timeout_seconds: float = 120.0

    # API
    prefetch_on_startup: bool = True
    log_level: str = "INFO"

    @field_validator("default_variant")
    @classmethod
    def validate_variant(cls, v: str) -> str:
        if v not in VARIANTS:
            raise ValueError("DEFAULT_VARIANT must be one of standard|medium")
        return v

    @field_validator("onnx_providers", mode="before")
    @classmethod
    def split_providers(cls, v: Any) -> Any:
        if isinstance(v, str):
            return [name.strip() for name in v.split(",") if name.strip()] or None
        return v

    @field_validator("session_cache_size")
    @classmethod
    def validate_cache_size(cls, v: int) -> int:
        if v < 1:
            raise ValueError("SESSION_CACHE_SIZE must be at least 1")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Process-wide settings; the API and the CLI share one parsed instance."""
    return Settings()
