"""
Pipeline automation.

Includes:
- Full two-outcome analysis run
- Command-line entry point
"""

from .analysis import (
    AnalysisResults,
    run_analysis,
    run_outcome,
)

from .cli import main

__all__ = [
    'AnalysisResults',
    'run_analysis',
    'run_outcome',
    'main',
]
