"""Configuration and settings."""

from .settings import (
    Settings,
    AnalysisSettings,
    PlotStyle,
    PathSettings,
    get_default_settings,
    load_settings,
    save_settings,
)

__all__ = [
    "Settings",
    "AnalysisSettings",
    "PlotStyle",
    "PathSettings",
    "get_default_settings",
    "load_settings",
    "save_settings",
]
