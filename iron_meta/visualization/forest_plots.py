"""
Forest plots for the pooled random-effects models.

Studies are drawn in table order with the pooled estimate as a diamond.
"""

from typing import Optional, Sequence
import numpy as np
import matplotlib.pyplot as plt
from scipy import stats

from ..analysis.random_effects import RandomEffectsFit
from ..config.settings import PlotStyle


class ForestPlotter:
    """
    Create forest plots for a pooled random-effects fit.

    Example:
        >>> plotter = ForestPlotter()
        >>> fig = plotter.plot(
        ...     effects=data.effects,
        ...     std_errors=data.std_errors,
        ...     fit=pooled_fit,
        ...     study_labels=list(data.study_ids)
        ... )
    """

    def __init__(self, style: Optional[PlotStyle] = None):
        self.style = style or PlotStyle()

    def plot(
        self,
        effects: Sequence[float],
        std_errors: Sequence[float],
        fit: RandomEffectsFit,
        study_labels: Optional[Sequence[str]] = None,
        title: str = "Forest Plot",
        effect_label: str = "SMD",
        show_weights: bool = True,
        ax=None
    ):
        """
        Draw the forest plot.

        Args:
            effects: Effect sizes for each study
            std_errors: Standard error of each effect size
            fit: Intercept-only fit providing the pooled estimate and tau^2
            study_labels: Labels for each study (default: fit.study_ids)
            title: Plot title
            effect_label: Label for x-axis
            show_weights: Display random-effects weight column
            ax: Axes to draw on (a new figure is created if None)

        Returns:
            matplotlib Figure
        """
        style = self.style
        effects = np.asarray(effects, dtype=float)
        se = np.asarray(std_errors, dtype=float)
        n_studies = len(effects)

        z_crit = stats.norm.ppf((1 + fit.ci_level) / 2)
        ci_lower = effects - z_crit * se
        ci_upper = effects + z_crit * se

        weights = 1.0 / (se ** 2 + fit.tau2)
        weights = weights / weights.sum()

        if study_labels is None:
            study_labels = fit.study_ids or [f"Study {i + 1}" for i in range(n_studies)]

        if ax is None:
            height = n_studies * 0.5 + 2
            fig, ax = plt.subplots(figsize=(style.forest_width, height))
        else:
            fig = ax.figure

        # First study at the top
        rows = np.arange(n_studies)[::-1]

        for row, es, lo, hi, w in zip(rows, effects, ci_lower, ci_upper, weights):
            ax.hlines(row, lo, hi, colors='black', linewidth=1.5)
            ax.scatter(es, row, s=w * 1000 + 30, marker='s',
                       color=style.study_color, edgecolors='black', zorder=3)

        combined = fit.pooled_effect
        combined_ci = fit.pooled_ci
        diamond_y = -1.5
        diamond_x = [combined_ci[0], combined, combined_ci[1], combined]
        diamond_y_coords = [diamond_y, diamond_y + 0.3, diamond_y, diamond_y - 0.3]
        ax.fill(diamond_x, diamond_y_coords, color=style.pooled_color, edgecolor='black')

        ax.axvline(x=0, color='gray', linestyle='--', linewidth=1, alpha=0.7)

        transform = ax.get_yaxis_transform()
        for row, label in zip(rows, study_labels):
            ax.text(-0.02, row, label, ha='right', va='center',
                    transform=transform, fontsize=style.font_size)
        ax.text(-0.02, diamond_y, f"RE model ({fit.method})", ha='right', va='center',
                transform=transform, fontsize=style.font_size, fontweight='bold')

        for row, es, lo, hi in zip(rows, effects, ci_lower, ci_upper):
            ax.text(1.02, row, f"{es:.2f} [{lo:.2f}, {hi:.2f}]", ha='left', va='center',
                    transform=transform, fontsize=style.font_size - 1)
        ax.text(1.02, diamond_y,
                f"{combined:.2f} [{combined_ci[0]:.2f}, {combined_ci[1]:.2f}]",
                ha='left', va='center', transform=transform,
                fontsize=style.font_size - 1, fontweight='bold')

        if show_weights:
            for row, w in zip(rows, weights):
                ax.text(1.25, row, f"{w * 100:.1f}%", ha='left', va='center',
                        transform=transform, fontsize=style.font_size - 1)
            ax.text(1.25, n_studies + 0.5, "Weight", ha='left', va='center',
                    transform=transform, fontsize=style.font_size - 1, fontweight='bold')

        ax.set_ylim(-2.5, n_studies + 0.5)
        ax.set_yticks([])
        ax.set_xlabel(effect_label, fontsize=style.font_size + 1)
        ax.set_title(title, fontsize=style.title_size, fontweight='bold')

        ax.text(-0.02, n_studies + 0.5, "Study", ha='right', va='center',
                transform=transform, fontsize=style.font_size - 1, fontweight='bold')
        ax.text(1.02, n_studies + 0.5,
                f"{effect_label} [{int(round(fit.ci_level * 100))}% CI]",
                ha='left', va='center', transform=transform,
                fontsize=style.font_size - 1, fontweight='bold')

        ax.text(0.5, -0.12,
                f"tau² = {fit.tau2:.3f}, I² = {fit.i_squared:.1f}%, "
                f"Q({fit.q_e_df}) = {fit.q_e:.1f}, p = {fit.q_e_pvalue:.3f}",
                ha='center', transform=ax.transAxes, fontsize=style.font_size - 1)

        return fig
