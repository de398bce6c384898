"""
Bubble, prediction-curve and sensitivity plots for the spline meta-regression.
"""

from typing import Optional

import numpy as np
import matplotlib.pyplot as plt

from ..analysis.prediction import PredictionCurve
from ..analysis.sensitivity import SensitivityResult
from ..core.study import OutcomeData, OUTCOMES, MODERATOR_LABEL
from ..config.settings import PlotStyle
from .forest_plots import ForestPlotter


def plot_bubble(data: OutcomeData, curve: Optional[PredictionCurve] = None,
                style: Optional[PlotStyle] = None, ax=None, title=None):
    """Effect size against initial ferritin, marker area inversely proportional to SE.

    Parameters
    ----------
    data : OutcomeData
        Studies for one outcome.
    curve : PredictionCurve or None
        Spline prediction drawn with its confidence band.
    style : PlotStyle or None
        Presentation parameters.
    ax : matplotlib Axes or None
        Axes to plot on.
    title : str or None
        Axes title (default: outcome label).

    Returns
    -------
    matplotlib Axes
    """
    style = style or PlotStyle()
    if ax is None:
        fig, ax = plt.subplots(figsize=style.bubble_size)

    sizes = style.bubble_scale / data.std_errors
    ax.scatter(data.moderator, data.effects, s=sizes, color=style.study_color,
               alpha=0.7, edgecolors="black", zorder=3)

    if curve is not None:
        ax.fill_between(curve.moderator, curve.ci_lower, curve.ci_upper,
                        color=style.band_color, alpha=style.band_alpha,
                        label=f"{int(round(curve.ci_level * 100))}% CI")
        label = f"Spline fit (K = {curve.n_knots})" if curve.n_knots else "Fit"
        ax.plot(curve.moderator, curve.estimate, color=style.curve_color,
                linewidth=2, label=label)
        ax.legend(loc="upper right", fontsize=style.font_size - 1)

    ax.axhline(0, color="gray", linestyle="--", linewidth=1, alpha=0.7)
    ax.set_xlabel(MODERATOR_LABEL, fontsize=style.font_size)
    ax.set_ylabel(OUTCOMES[data.outcome].label, fontsize=style.font_size)
    ax.set_title(title or OUTCOMES[data.outcome].label, fontsize=style.title_size)
    return ax


def plot_sensitivity(result: SensitivityResult, style: Optional[PlotStyle] = None,
                     ax=None, outcome: Optional[str] = None, show_bands: bool = False):
    """One prediction line per knot count, colored by K.

    Returns
    -------
    matplotlib Axes
    """
    style = style or PlotStyle()
    if ax is None:
        fig, ax = plt.subplots(figsize=style.bubble_size)

    knot_counts = result.knot_counts
    cmap = plt.get_cmap(style.sensitivity_cmap)
    colors = cmap(np.linspace(0, 0.9, len(knot_counts)))

    for k, color in zip(knot_counts, colors):
        curve = result[k]
        ax.plot(curve.moderator, curve.estimate, color=color, linewidth=2,
                label=f"K = {k} (p = {result.qm_pvalues[k]:.3g})")
        if show_bands:
            ax.fill_between(curve.moderator, curve.ci_lower, curve.ci_upper,
                            color=color, alpha=0.1)

    ax.axhline(0, color="gray", linestyle="--", linewidth=1, alpha=0.7)
    ax.set_xlabel(MODERATOR_LABEL, fontsize=style.font_size)
    ylabel = OUTCOMES[outcome].label if outcome else "Predicted effect"
    ax.set_ylabel(ylabel, fontsize=style.font_size)
    ax.set_title("Knot-count sensitivity", fontsize=style.title_size)
    ax.legend(title="Knots", fontsize=style.font_size - 1)
    return ax


def plot_combined_figure(results, style: Optional[PlotStyle] = None):
    """Publication figure: forest plots (top) and spline bubble plots (bottom).

    Parameters
    ----------
    results : AnalysisResults
        Output of ``run_analysis``.
    style : PlotStyle or None
        Presentation parameters; the figure size is ``style.combined_size``.

    Returns
    -------
    matplotlib Figure
    """
    style = style or PlotStyle()
    fig, axes = plt.subplots(2, 2, figsize=style.combined_size)
    plotter = ForestPlotter(style)

    for col, name in enumerate(["ferritin", "vo2max"]):
        data = results.outcomes[name]
        plotter.plot(
            data.effects, data.std_errors, results.pooled[name],
            study_labels=list(data.study_ids),
            title=OUTCOMES[name].label,
            show_weights=False,
            ax=axes[0, col]
        )
        plot_bubble(data, results.curves[name], style=style, ax=axes[1, col])

    fig.tight_layout()
    return fig
