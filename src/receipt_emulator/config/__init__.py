"""Configuration for the receipt emulator."""

from .settings import PAPER_WIDTHS, FontSettings, RenderSettings, get_settings

__all__ = ["PAPER_WIDTHS", "FontSettings", "RenderSettings", "get_settings"]
