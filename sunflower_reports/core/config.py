from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "Sunflower Reports"

    api_base_url: str = "http://localhost:5000"
    request_timeout_seconds: float = Field(default=15.0, gt=0)

    # Image CDN. URLs on this host accept a transformation segment after /upload/.
    cdn_host: str = "cloudinary.com"
    preview_width: int = Field(default=800, gt=0)
    thumbnail_size: int = Field(default=400, gt=0)
    report_image_width: int = Field(default=600, gt=0)
    image_timeout_seconds: float = Field(default=20.0, gt=0)

    report_image_box_mm: float = Field(default=80.0, gt=0)
    report_image_quality: float = Field(default=0.8, gt=0, le=1)
    report_image_pixel_scale: int = Field(default=4, ge=1)

    output_dir: Path = Path("exports")

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_json: bool = False

    @property
    def api_base_url_normalized(self) -> str:
        return self.api_base_url.rstrip("/")

    @property
    def output_dir_resolved(self) -> Path:
        return Path(self.output_dir).expanduser().resolve()


@lru_cache
def get_settings() -> Settings:
    return Settings()
