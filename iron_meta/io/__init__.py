"""Data loading for the study table."""

from .loaders import load_study_table, save_study_table

__all__ = [
    "load_study_table",
    "save_study_table",
]
