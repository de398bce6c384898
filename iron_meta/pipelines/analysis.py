"""
End-to-end analysis pipeline.

Loader -> pooled random-effects model per outcome -> spline
meta-regression on initial ferritin -> prediction curves -> knot-count
sensitivity sweep (and, if configured, a ferritin subgroup split).
"""

from dataclasses import dataclass, field
from typing import Dict, Any, Optional
from pathlib import Path
import json
import numpy as np

from ..core.study import StudyTable, OutcomeData, OUTCOMES
from ..analysis.random_effects import RandomEffectsEstimator, RandomEffectsFit
from ..analysis.prediction import (
    PredictionCurve,
    SplineMetaRegression,
    fit_spline_meta_regression,
    moderator_grid,
)
from ..analysis.sensitivity import SensitivityResult, sensitivity_sweep
from ..analysis.subgroups import SubgroupResult, subgroup_analysis
from ..config.settings import Settings, get_default_settings


@dataclass
class AnalysisResults:
    """Numeric outputs of the full analysis, keyed by outcome."""
    outcomes: Dict[str, OutcomeData]
    pooled: Dict[str, RandomEffectsFit]
    spline: Dict[str, SplineMetaRegression]
    curves: Dict[str, PredictionCurve]
    sensitivity: Dict[str, SensitivityResult]
    subgroups: Dict[str, SubgroupResult] = field(default_factory=dict)
    settings: Optional[Settings] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        return {
            name: {
                "n_studies": self.outcomes[name].n_studies,
                "pooled": self.pooled[name].to_dict(),
                "spline": self.spline[name].to_dict(),
                "curve": self.curves[name].to_dict(),
                "sensitivity": self.sensitivity[name].to_dict(),
                **({"subgroups": self.subgroups[name].to_dict()}
                   if name in self.subgroups else {}),
            }
            for name in self.pooled
        }

    def save_json(self, path) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)
        return path

    def summary(self) -> str:
        """Generate text summary of all outcomes."""
        lines = []
        for name, fit in self.pooled.items():
            spec = OUTCOMES[name]
            lo, hi = fit.pooled_ci
            level = int(round(fit.ci_level * 100))
            model = self.spline[name]
            lines += [
                spec.label,
                "=" * 40,
                f"Studies: {fit.n_studies}",
                f"  Pooled SMD: {fit.pooled_effect:.3f}",
                f"  {level}% CI: [{lo:.3f}, {hi:.3f}]",
                f"  p = {fit.pooled_pvalue:.4f}",
                f"  tau^2 = {fit.tau2:.4f}, I^2 = {fit.i_squared:.1f}%",
                "",
                f"Spline meta-regression (K = {model.n_knots}):",
                f"  QM({model.fit.qm_df}) = {model.fit.qm:.2f}, p = {model.fit.qm_pvalue:.4g}",
                f"  residual tau^2 = {model.fit.tau2:.4f}",
                "",
                "Sensitivity (omnibus p by K):",
            ]
            sens = self.sensitivity[name]
            for k in sens.knot_counts:
                lines.append(f"  K = {k}: p = {sens.qm_pvalues[k]:.4g}")
            if name in self.subgroups:
                sub = self.subgroups[name]
                lines += ["", "Subgroups:"]
                for group, group_fit in sub.fits.items():
                    glo, ghi = group_fit.pooled_ci
                    lines.append(
                        f"  {group}: {group_fit.pooled_effect:.3f} "
                        f"[{glo:.3f}, {ghi:.3f}] (k = {group_fit.n_studies})"
                    )
                lines.append(
                    f"  Q_between({sub.q_between_df}) = {sub.q_between:.2f}, "
                    f"p = {sub.q_between_pvalue:.4f}"
                )
            lines.append("")
        return "\n".join(lines)


def _stratum_labels(moderator: np.ndarray, cutoff: float) -> np.ndarray:
    return np.where(moderator < cutoff, f"< {cutoff:g}", f">= {cutoff:g}")


def run_outcome(
    data: OutcomeData,
    n_knots: int,
    settings: Settings
):
    """Pooled fit, spline fit, curve and sensitivity sweep for one outcome."""
    cfg = settings.analysis
    estimator = RandomEffectsEstimator(
        method=cfg.method, ci_level=cfg.ci_level, tol=cfg.tol, max_iter=cfg.max_iter
    )
    ids = list(data.study_ids)

    pooled = estimator.fit(data.effects, data.std_errors, study_ids=ids)

    model = fit_spline_meta_regression(
        data.effects, data.std_errors, data.moderator, n_knots,
        estimator=estimator, study_ids=ids
    )
    grid = moderator_grid(data.moderator, cfg.grid_points)
    curve = model.predict(grid)

    sensitivity = sensitivity_sweep(
        data.effects, data.std_errors, data.moderator,
        knot_counts=cfg.sensitivity_knots,
        grid=grid,
        estimator=estimator,
        n_jobs=cfg.n_jobs
    )

    subgroups = None
    if cfg.stratify_cutoff is not None:
        subgroups = subgroup_analysis(
            data.effects, data.std_errors,
            _stratum_labels(data.moderator, cfg.stratify_cutoff),
            estimator=estimator, study_ids=ids
        )

    return pooled, model, curve, sensitivity, subgroups


def run_analysis(
    table: StudyTable,
    settings: Optional[Settings] = None
) -> AnalysisResults:
    """
    Run the full analysis on both outcomes.

    Parameters
    ----------
    table : StudyTable
        Loaded study table
    settings : Settings, optional
        Configuration (default: ``get_default_settings()``)

    Returns
    -------
    AnalysisResults
        Any analysis error (InsufficientData, NonConvergence,
        InvalidKnotCount) propagates to the caller.
    """
    settings = settings or get_default_settings()
    results = AnalysisResults(
        outcomes={}, pooled={}, spline={}, curves={}, sensitivity={},
        settings=settings
    )

    for name in OUTCOMES:
        data = table.outcome(name)
        n_knots = settings.analysis.knots[name]
        if settings.verbose:
            print(f"Running {settings.analysis.method} analysis of {name} "
                  f"on {data.n_studies} studies (K = {n_knots})...")

        pooled, model, curve, sensitivity, subgroups = run_outcome(data, n_knots, settings)

        results.outcomes[name] = data
        results.pooled[name] = pooled
        results.spline[name] = model
        results.curves[name] = curve
        results.sensitivity[name] = sensitivity
        if subgroups is not None:
            results.subgroups[name] = subgroups

        if settings.verbose:
            lo, hi = pooled.pooled_ci
            print(f"  pooled = {pooled.pooled_effect:.3f} [{lo:.3f}, {hi:.3f}], "
                  f"QM p = {model.fit.qm_pvalue:.4g}")

    return results
