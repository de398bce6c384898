"""
Subgroup (stratified) random-effects analysis.

Each subgroup gets its own random-effects model and tau^2; subgroup
differences are tested with a Wald-type Q statistic on the pooled
estimates.
"""

from dataclasses import dataclass
from typing import Dict, Any, Optional, Sequence
import numpy as np
from scipy import stats

from .random_effects import RandomEffectsEstimator, RandomEffectsFit


@dataclass
class SubgroupResult:
    """Per-subgroup fits and the test for subgroup differences."""
    fits: Dict[str, RandomEffectsFit]
    q_between: float
    q_between_df: int
    q_between_pvalue: float

    def __repr__(self):
        return (f"SubgroupResult(groups={list(self.fits)}, "
                f"Q_between={self.q_between:.2f}, p={self.q_between_pvalue:.4f})")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "groups": {name: fit.to_dict() for name, fit in self.fits.items()},
            "q_between": self.q_between,
            "q_between_df": self.q_between_df,
            "q_between_pvalue": self.q_between_pvalue,
        }


def subgroup_analysis(
    effects: Sequence[float],
    std_errors: Sequence[float],
    groups: Sequence[str],
    estimator: Optional[RandomEffectsEstimator] = None,
    study_ids: Optional[Sequence[str]] = None
) -> SubgroupResult:
    """
    Fit one random-effects model per subgroup and compare them.

    Parameters
    ----------
    effects, std_errors : array-like
        Per-study effect sizes and standard errors
    groups : sequence of str
        Subgroup label per study; groups are reported in first-seen order
    estimator : RandomEffectsEstimator, optional
        Estimator settings (default: REML)
    study_ids : list of str, optional
        Study labels

    Returns
    -------
    SubgroupResult
    """
    y = np.asarray(effects, dtype=float)
    se = np.asarray(std_errors, dtype=float)
    labels = np.asarray(groups, dtype=object)
    if not (len(y) == len(se) == len(labels)):
        raise ValueError("effects, std_errors and groups must have equal length")
    ids = np.asarray(study_ids, dtype=object) if study_ids is not None else None

    estimator = estimator or RandomEffectsEstimator()
    fits = {}
    for name in dict.fromkeys(labels.tolist()):
        mask = labels == name
        fits[str(name)] = estimator.fit(
            y[mask], se[mask],
            study_ids=ids[mask].tolist() if ids is not None else None
        )

    if len(fits) < 2:
        raise ValueError("At least two subgroups are needed to compare")

    estimates = np.array([f.pooled_effect for f in fits.values()])
    weights = 1.0 / np.array([f.pooled_se for f in fits.values()]) ** 2
    overall = np.sum(weights * estimates) / np.sum(weights)
    q_between = float(np.sum(weights * (estimates - overall) ** 2))
    df = len(fits) - 1

    return SubgroupResult(
        fits=fits,
        q_between=q_between,
        q_between_df=df,
        q_between_pvalue=float(stats.chi2.sf(q_between, df)),
    )
