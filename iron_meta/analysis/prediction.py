"""
Prediction from spline meta-regression fits.

Projects new moderator values through a fitted SplineBasis and evaluates
the regression with confidence and prediction intervals.
"""

from dataclasses import dataclass
from typing import Dict, Any, Optional, Sequence
import numpy as np
import pandas as pd
from scipy import stats

from .random_effects import RandomEffectsEstimator, RandomEffectsFit
from .splines import SplineBasis, build_spline_basis


@dataclass(frozen=True)
class PredictionCurve:
    """Predicted effect with intervals, ordered as the input moderator values."""
    moderator: np.ndarray
    estimate: np.ndarray
    se: np.ndarray
    ci_lower: np.ndarray
    ci_upper: np.ndarray
    pi_lower: np.ndarray
    pi_upper: np.ndarray
    ci_level: float
    n_knots: Optional[int] = None

    def __len__(self) -> int:
        return len(self.moderator)

    def to_frame(self) -> pd.DataFrame:
        df = pd.DataFrame({
            "moderator": self.moderator,
            "estimate": self.estimate,
            "se": self.se,
            "ci_lower": self.ci_lower,
            "ci_upper": self.ci_upper,
            "pi_lower": self.pi_lower,
            "pi_upper": self.pi_upper,
        })
        if self.n_knots is not None:
            df["knots"] = self.n_knots
        return df

    def to_dict(self) -> Dict[str, Any]:
        return {
            "n_knots": self.n_knots,
            "ci_level": self.ci_level,
            **{col: values.tolist() for col, values in self.to_frame().items()
               if col != "knots"}
        }


def moderator_grid(moderator: Sequence[float], n_points: int = 200) -> np.ndarray:
    """Evenly spaced evaluation grid spanning the observed moderator range."""
    x = np.asarray(moderator, dtype=float)
    return np.linspace(x.min(), x.max(), n_points)


def predict_curve(
    fit: RandomEffectsFit,
    basis: SplineBasis,
    new_values: Sequence[float],
    ci_level: Optional[float] = None
) -> PredictionCurve:
    """
    Evaluate a spline meta-regression at new moderator values.

    Parameters
    ----------
    fit : RandomEffectsFit
        Fit whose moderator columns were ``basis.matrix``
    basis : SplineBasis
        The basis used for the fit
    new_values : array-like
        Moderator values to predict at
    ci_level : float, optional
        Interval level (default: the fit's level)

    Returns
    -------
    PredictionCurve
    """
    if len(fit.coefficients) != basis.n_columns + 1:
        raise ValueError(
            f"Fit has {len(fit.coefficients)} coefficients; basis implies "
            f"{basis.n_columns + 1}"
        )
    level = fit.ci_level if ci_level is None else ci_level

    x = np.atleast_1d(np.asarray(new_values, dtype=float))
    rows = np.column_stack([np.ones(len(x)), basis.transform(x)])

    estimate = rows @ fit.coefficients
    se = np.sqrt(np.sum(rows * (rows @ fit.cov), axis=1))
    pi_se = np.sqrt(se ** 2 + fit.tau2)
    z_crit = stats.norm.ppf((1 + level) / 2)

    return PredictionCurve(
        moderator=x,
        estimate=estimate,
        se=se,
        ci_lower=estimate - z_crit * se,
        ci_upper=estimate + z_crit * se,
        pi_lower=estimate - z_crit * pi_se,
        pi_upper=estimate + z_crit * pi_se,
        ci_level=level,
        n_knots=basis.n_knots,
    )


@dataclass(frozen=True)
class SplineMetaRegression:
    """A spline basis together with the random-effects fit that used it."""
    basis: SplineBasis
    fit: RandomEffectsFit

    @property
    def n_knots(self) -> int:
        return self.basis.n_knots

    @property
    def qm_pvalue(self) -> float:
        return self.fit.qm_pvalue

    def predict(self, new_values: Sequence[float]) -> PredictionCurve:
        return predict_curve(self.fit, self.basis, new_values)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "n_knots": self.n_knots,
            "knots": self.basis.knots.tolist(),
            "fit": self.fit.to_dict(),
        }


def fit_spline_meta_regression(
    effects: Sequence[float],
    std_errors: Sequence[float],
    moderator: Sequence[float],
    n_knots: int,
    estimator: Optional[RandomEffectsEstimator] = None,
    study_ids: Optional[Sequence[str]] = None,
    name: str = "ferritin"
) -> SplineMetaRegression:
    """
    Fit a random-effects meta-regression on a spline of the moderator.

    Parameters
    ----------
    effects, std_errors : array-like
        Per-study effect sizes and standard errors
    moderator : array-like
        Continuous moderator, one value per study
    n_knots : int
        Number of spline knots K
    estimator : RandomEffectsEstimator, optional
        Estimator settings (default: REML, 95% CI)
    study_ids : list of str, optional
        Study labels carried into the fit
    name : str
        Moderator name used in the coefficient labels

    Returns
    -------
    SplineMetaRegression
    """
    basis = build_spline_basis(moderator, n_knots, name=name)
    estimator = estimator or RandomEffectsEstimator()
    fit = estimator.fit(
        effects, std_errors,
        moderators=basis.matrix,
        moderator_names=basis.column_names,
        study_ids=study_ids
    )
    return SplineMetaRegression(basis=basis, fit=fit)
