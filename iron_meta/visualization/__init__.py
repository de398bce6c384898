"""Visualization of meta-analysis and meta-regression results."""

from .forest_plots import ForestPlotter
from .regression_plots import plot_bubble, plot_sensitivity, plot_combined_figure

__all__ = ["ForestPlotter", "plot_bubble", "plot_sensitivity", "plot_combined_figure"]
