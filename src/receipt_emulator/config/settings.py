"""
Emulator settings using Pydantic.

Settings are loaded from environment variables with .env file support.
Without any configuration the emulator renders 80mm paper with the
standard 12x24 / 9x17 fonts.
"""

import codecs
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Printable width in dots at 203 DPI
PAPER_WIDTHS = {
    "80mm": 576,
    "58mm": 384,
}


class FontSettings(BaseSettings):
    """Character cell metrics of the resident fonts."""

    # Font A (default)
    font_a_width: int = Field(default=12, ge=1)
    font_a_height: int = Field(default=24, ge=1)

    # Font B (ESC M 1)
    font_b_width: int = Field(default=9, ge=1)
    font_b_height: int = Field(default=17, ge=1)

    # Default line advance in dots (ESC 2)
    line_spacing: int = Field(default=30, ge=1)

    # TrueType font for the raster backend; None = first monospace font found
    font_path: Optional[Path] = None


class RenderSettings(BaseSettings):
    """Main emulator settings."""

    model_config = SettingsConfigDict(
        env_prefix="RECEIPT_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    debug: bool = False

    # Paper
    page_width: int = Field(default=PAPER_WIDTHS["80mm"], ge=8)

    # Raster output
    channel_format: Literal["rgb", "rgba", "grayscale"] = "rgb"

    # Text decoding until ESC t selects another table
    code_page: str = "cp437"

    # Thread pool size; 1 renders jobs one after another
    workers: int = Field(default=1, ge=1)

    # Nested settings
    font: FontSettings = Field(default_factory=FontSettings)

    @field_validator("code_page")
    @classmethod
    def _known_codec(cls, value: str) -> str:
        try:
            codecs.lookup(value)
        except LookupError as e:
            raise ValueError(f"unknown code page {value!r}") from e
        return value

    @classmethod
    def for_paper(cls, paper: str, **kwargs) -> "RenderSettings":
        """Settings for a paper width such as "58mm" or "80mm"."""
        if paper not in PAPER_WIDTHS:
            raise ValueError(f"Unknown paper {paper!r}, expected one of {sorted(PAPER_WIDTHS)}")
        return cls(page_width=PAPER_WIDTHS[paper], **kwargs)


@lru_cache
def get_settings() -> RenderSettings:
    """Get cached settings instance."""
    return RenderSettings()
