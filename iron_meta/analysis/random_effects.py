"""
Random-effects meta-analysis and meta-regression.

Fits y_i = X_i b + u_i + e_i with known sampling variances s_i^2 and a
shared between-study variance tau^2. tau^2 is estimated with PyMARE's
restricted maximum likelihood or DerSimonian-Laird estimators, or fixed
at zero. The REML value is refined by safeguarded Newton steps on the
restricted log-likelihood until it meets the requested tolerance. The
coefficients come from weighted least squares with weights
1 / (s_i^2 + tau^2) and a fixed unit scale.
"""

from dataclasses import dataclass, field
from typing import Dict, Any, Optional, List, Sequence, Tuple, Union
import warnings
import numpy as np
import pandas as pd
import statsmodels.api as sm
from scipy import stats
from pymare import Dataset as PyMAREDataset
from pymare.estimators import DerSimonianLaird, VarianceBasedLikelihoodEstimator

from ..core.exceptions import (
    InsufficientData,
    NonConvergence,
    TauSquaredTruncationWarning,
)

METHODS = ("REML", "DL", "FE")

# Step halvings allowed per Newton step
MAX_HALVINGS = 30


@dataclass
class RandomEffectsFit:
    """Container for a fitted random-effects model."""
    coefficients: np.ndarray
    coefficient_names: List[str]
    cov: np.ndarray
    std_errors: np.ndarray
    z_values: np.ndarray
    p_values: np.ndarray
    ci_lower: np.ndarray
    ci_upper: np.ndarray
    tau2: float
    tau2_truncated: bool
    method: str
    ci_level: float
    n_studies: int
    n_iterations: int
    q_e: float
    q_e_df: int
    q_e_pvalue: float
    i_squared: float
    h_squared: float
    fitted_values: np.ndarray
    study_ids: List[str] = field(default_factory=list)
    qm: Optional[float] = None
    qm_df: Optional[int] = None
    qm_pvalue: Optional[float] = None

    def __repr__(self):
        if self.has_moderators:
            sig = "*" if self.qm_pvalue < 0.05 else ""
            return (f"RandomEffectsFit(k={self.n_studies}, p={len(self.coefficients)}, "
                    f"QM={self.qm:.2f}, p={self.qm_pvalue:.4g}{sig}, "
                    f"tau2={self.tau2:.4f}, method={self.method})")
        lo, hi = self.pooled_ci
        return (f"RandomEffectsFit(k={self.n_studies}, estimate={self.pooled_effect:.4f}, "
                f"CI=[{lo:.4f}, {hi:.4f}], tau2={self.tau2:.4f}, method={self.method})")

    @property
    def has_moderators(self) -> bool:
        return len(self.coefficients) > 1

    @property
    def tau(self) -> float:
        return float(np.sqrt(self.tau2))

    @property
    def pooled_effect(self) -> float:
        """Intercept; the pooled effect when no moderators were fitted."""
        return float(self.coefficients[0])

    @property
    def pooled_se(self) -> float:
        return float(self.std_errors[0])

    @property
    def pooled_ci(self) -> Tuple[float, float]:
        return float(self.ci_lower[0]), float(self.ci_upper[0])

    @property
    def pooled_pvalue(self) -> float:
        return float(self.p_values[0])

    def coefficient_table(self) -> pd.DataFrame:
        """Coefficients with SE, z, p and CI, one row per model term."""
        return pd.DataFrame({
            "estimate": self.coefficients,
            "se": self.std_errors,
            "z": self.z_values,
            "p": self.p_values,
            "ci_lower": self.ci_lower,
            "ci_upper": self.ci_upper,
        }, index=self.coefficient_names)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        return {
            "method": self.method,
            "n_studies": self.n_studies,
            "ci_level": self.ci_level,
            "coefficients": {
                name: {
                    "estimate": float(b),
                    "se": float(se),
                    "z": float(z),
                    "p": float(p),
                    "ci": [float(lo), float(hi)],
                }
                for name, b, se, z, p, lo, hi in zip(
                    self.coefficient_names, self.coefficients, self.std_errors,
                    self.z_values, self.p_values, self.ci_lower, self.ci_upper
                )
            },
            "tau_squared": self.tau2,
            "tau_squared_truncated": self.tau2_truncated,
            "tau": self.tau,
            "i_squared": self.i_squared,
            "h_squared": self.h_squared,
            "q_statistic": self.q_e,
            "q_df": self.q_e_df,
            "q_pvalue": self.q_e_pvalue,
            "qm": self.qm,
            "qm_df": self.qm_df,
            "qm_pvalue": self.qm_pvalue,
            "n_iterations": self.n_iterations,
            "study_ids": list(self.study_ids),
        }

    def summary(self) -> str:
        """Generate text summary of the fit."""
        level = int(round(self.ci_level * 100))
        lines = [
            f"Random-Effects Model ({self.method}, k = {self.n_studies})",
            "=" * 40,
            "Heterogeneity:",
            f"  tau^2 = {self.tau2:.4f} (tau = {self.tau:.4f})"
            + ("  [truncated at 0]" if self.tau2_truncated else ""),
            f"  I^2 = {self.i_squared:.1f}%, H^2 = {self.h_squared:.2f}",
            f"  Q({self.q_e_df}) = {self.q_e:.2f}, p = {self.q_e_pvalue:.4f}",
        ]
        if self.has_moderators:
            lines += [
                "",
                "Test of Moderators:",
                f"  QM({self.qm_df}) = {self.qm:.2f}, p = {self.qm_pvalue:.4g}",
            ]
        lines += ["", f"Coefficients ({level}% CI):"]
        for name, b, se, p, lo, hi in zip(
            self.coefficient_names, self.coefficients, self.std_errors,
            self.p_values, self.ci_lower, self.ci_upper
        ):
            lines.append(
                f"  {name:<14s} {b:8.4f}  SE {se:.4f}  p = {p:.4f}  [{lo:.4f}, {hi:.4f}]"
            )
        return "\n".join(lines)


def _projection(X: np.ndarray, total_var: np.ndarray) -> np.ndarray:
    """P = W - W X (X' W X)^-1 X' W with W = diag(1 / total_var)."""
    w = 1.0 / total_var
    WX = X * w[:, None]
    XtWX_inv = np.linalg.inv(X.T @ WX)
    return np.diag(w) - WX @ XtWX_inv @ WX.T


def _restricted_loglik(y: np.ndarray, v: np.ndarray, X: np.ndarray, tau2: float) -> float:
    """REML log-likelihood up to a constant."""
    total_var = v + tau2
    WX = X / total_var[:, None]
    _, logdet = np.linalg.slogdet(X.T @ WX)
    P = _projection(X, total_var)
    return float(-0.5 * (np.sum(np.log(total_var)) + logdet + y @ P @ y))


def _pymare_tau2(estimator, y: np.ndarray, v: np.ndarray, X: np.ndarray) -> float:
    """Fit a PyMARE estimator on the full design and return its tau^2."""
    dataset = PyMAREDataset(y=y, v=v, X=X, add_intercept=False)
    estimator.fit_dataset(dataset)
    return float(np.ravel(estimator.params_["tau2"])[0])


def _build_design(
    moderators,
    n_studies: int,
    moderator_names: Optional[Sequence[str]]
) -> Tuple[np.ndarray, List[str]]:
    """Prepend the intercept to the moderator columns."""
    names = ["intercept"]
    if moderators is None:
        return np.ones((n_studies, 1)), names

    if isinstance(moderators, pd.DataFrame):
        mods = moderators.to_numpy(dtype=float)
        default_names = [str(c) for c in moderators.columns]
    else:
        mods = np.asarray(moderators, dtype=float)
        if mods.ndim == 1:
            mods = mods[:, None]
        default_names = [f"x{i + 1}" for i in range(mods.shape[1])]

    if mods.ndim != 2 or mods.shape[0] != n_studies:
        raise ValueError(
            f"Moderators must have {n_studies} rows, got shape {mods.shape}"
        )
    if moderator_names is not None:
        if len(moderator_names) != mods.shape[1]:
            raise ValueError("moderator_names must match the number of moderator columns")
        default_names = list(moderator_names)

    return np.column_stack([np.ones(n_studies), mods]), names + default_names


class RandomEffectsEstimator:
    """
    Random-effects meta-analysis / meta-regression estimator.

    Parameters
    ----------
    method : str
        "REML" (restricted maximum likelihood, default), "DL"
        (DerSimonian-Laird) or "FE" (fixed effect, tau^2 = 0)
    ci_level : float
        Confidence level for Normal-based intervals (default: 0.95)
    tol : float
        Relative convergence tolerance on tau^2 for REML
    max_iter : int
        Fisher scoring iteration budget for REML

    Examples
    --------
    >>> est = RandomEffectsEstimator()
    >>> fit = est.fit(effects, std_errors)
    >>> print(fit.summary())
    """

    def __init__(
        self,
        method: str = "REML",
        ci_level: float = 0.95,
        tol: float = 1e-8,
        max_iter: int = 100
    ):
        method = method.upper()
        if method not in METHODS:
            raise ValueError(f"Unknown method: {method}")
        if not 0 < ci_level < 1:
            raise ValueError(f"ci_level must be in (0, 1), got {ci_level}")
        if max_iter < 1:
            raise ValueError(f"max_iter must be positive, got {max_iter}")
        self.method = method
        self.ci_level = ci_level
        self.tol = tol
        self.max_iter = max_iter

    def fit(
        self,
        effects: Sequence[float],
        std_errors: Sequence[float],
        moderators: Optional[Union[np.ndarray, pd.DataFrame]] = None,
        moderator_names: Optional[Sequence[str]] = None,
        study_ids: Optional[Sequence[str]] = None
    ) -> RandomEffectsFit:
        """
        Fit the model.

        Parameters
        ----------
        effects : array-like
            Per-study effect estimates y_i
        std_errors : array-like
            Per-study standard errors s_i (strictly positive)
        moderators : np.ndarray or pd.DataFrame, optional
            Moderator columns; the intercept is added here
        moderator_names : list of str, optional
            Names for the moderator columns
        study_ids : list of str, optional
            Study labels carried into the result

        Returns
        -------
        RandomEffectsFit
        """
        y = np.asarray(effects, dtype=float)
        se = np.asarray(std_errors, dtype=float)
        k = len(y)

        if y.ndim != 1 or se.shape != y.shape:
            raise ValueError("effects and std_errors must be 1-d arrays of equal length")
        if k < 2:
            raise InsufficientData(f"At least 2 studies required, got {k}")
        if not (np.all(np.isfinite(y)) and np.all(np.isfinite(se))):
            raise ValueError("effects and std_errors must be finite")
        if np.any(se <= 0):
            raise ValueError("std_errors must be strictly positive")
        if study_ids is not None and len(study_ids) != k:
            raise ValueError(
                f"study_ids has {len(study_ids)} labels for {k} studies"
            )

        X, names = _build_design(moderators, k, moderator_names)
        p = X.shape[1]
        if np.linalg.matrix_rank(X) < p:
            raise InsufficientData(
                f"Design matrix is rank-deficient (rank {np.linalg.matrix_rank(X)} < {p} columns)"
            )
        if k <= p:
            raise InsufficientData(
                f"{k} studies cannot support {p} model coefficients"
            )

        v = se ** 2

        if self.method == "FE":
            tau2, truncated, n_iter = 0.0, False, 0
        elif self.method == "DL":
            tau2, truncated = self._tau2_dl(y, v, X)
            n_iter = 0
        else:
            tau2, truncated, n_iter = self._tau2_reml(y, v, X)

        if truncated:
            warnings.warn(
                f"{self.method} estimate of tau^2 was negative and has been "
                f"truncated to 0 (k={k})",
                TauSquaredTruncationWarning
            )

        return self._build_fit(y, v, X, names, tau2, truncated, n_iter, study_ids)

    def _tau2_dl(self, y: np.ndarray, v: np.ndarray, X: np.ndarray) -> Tuple[float, bool]:
        """Method-of-moments estimate, generalised to meta-regression."""
        k, p = X.shape
        tau2 = _pymare_tau2(DerSimonianLaird(), y, v, X)
        # The moment estimate is negative exactly when QE falls below its df
        q_e = float(y @ _projection(X, v) @ y)
        return max(tau2, 0.0), q_e < k - p

    def _tau2_reml(self, y: np.ndarray, v: np.ndarray, X: np.ndarray) -> Tuple[float, bool, int]:
        """
        PyMARE REML estimate, refined by Newton-Raphson on the restricted
        log-likelihood.

        Steps use the observed information, or the expected information
        where the observed one is not positive, and are halved until the
        restricted log-likelihood does not decrease. tau^2 is truncated at 0.
        """
        tau2 = max(_pymare_tau2(VarianceBasedLikelihoodEstimator(method="REML"), y, v, X), 0.0)
        change = np.inf

        for iteration in range(1, self.max_iter + 1):
            P = _projection(X, v + tau2)
            Py = P @ y
            score = Py @ Py - np.trace(P)
            observed = 2 * Py @ P @ Py - np.sum(P * P)
            information = observed if observed > 0 else np.sum(P * P)
            step = score / information

            current = _restricted_loglik(y, v, X, tau2)
            candidate = max(tau2 + step, 0.0)
            for _ in range(MAX_HALVINGS):
                if _restricted_loglik(y, v, X, candidate) >= current:
                    break
                step /= 2
                candidate = max(tau2 + step, 0.0)

            truncated = tau2 + step < 0
            change = abs(candidate - tau2)
            tau2 = candidate

            if change <= self.tol * max(tau2, 1.0):
                return float(tau2), bool(truncated), iteration

        raise NonConvergence(
            f"REML did not converge in {self.max_iter} iterations "
            f"(last change in tau^2: {change:.3g})",
            n_iterations=self.max_iter,
            last_change=float(change)
        )

    def _build_fit(
        self,
        y: np.ndarray,
        v: np.ndarray,
        X: np.ndarray,
        names: List[str],
        tau2: float,
        truncated: bool,
        n_iter: int,
        study_ids: Optional[Sequence[str]]
    ) -> RandomEffectsFit:
        k, p = X.shape

        wls = sm.WLS(y, X, weights=1.0 / (v + tau2)).fit(
            cov_type="fixed scale", cov_kwds={"scale": 1.0}
        )
        beta = np.asarray(wls.params, dtype=float)
        cov = np.asarray(wls.cov_params(), dtype=float)
        se = np.sqrt(np.diag(cov))

        z_crit = stats.norm.ppf((1 + self.ci_level) / 2)
        z = beta / se
        pvals = 2 * stats.norm.sf(np.abs(z))

        # Residual heterogeneity uses fixed-effect weights
        P_fe = _projection(X, v)
        q_e = float(y @ P_fe @ y)
        df = k - p
        q_e_pvalue = float(stats.chi2.sf(q_e, df))

        if self.method == "FE":
            i_squared = max(0.0, (q_e - df) / q_e) * 100 if q_e > 0 else 0.0
            h_squared = q_e / df
        else:
            typical_var = df / np.trace(P_fe)
            i_squared = 100 * tau2 / (typical_var + tau2)
            h_squared = (typical_var + tau2) / typical_var

        qm = qm_df = qm_pvalue = None
        if p > 1:
            b = beta[1:]
            qm = float(b @ np.linalg.solve(cov[1:, 1:], b))
            qm_df = p - 1
            qm_pvalue = float(stats.chi2.sf(qm, qm_df))

        return RandomEffectsFit(
            coefficients=beta,
            coefficient_names=names,
            cov=cov,
            std_errors=se,
            z_values=z,
            p_values=pvals,
            ci_lower=beta - z_crit * se,
            ci_upper=beta + z_crit * se,
            tau2=float(tau2),
            tau2_truncated=bool(truncated),
            method=self.method,
            ci_level=self.ci_level,
            n_studies=k,
            n_iterations=n_iter,
            q_e=q_e,
            q_e_df=df,
            q_e_pvalue=q_e_pvalue,
            i_squared=float(i_squared),
            h_squared=float(h_squared),
            fitted_values=X @ beta,
            study_ids=list(study_ids) if study_ids is not None else [],
            qm=qm,
            qm_df=qm_df,
            qm_pvalue=qm_pvalue,
        )


def fit_random_effects(
    effects: Sequence[float],
    std_errors: Sequence[float],
    moderators: Optional[Union[np.ndarray, pd.DataFrame]] = None,
    method: str = "REML",
    ci_level: float = 0.95,
    tol: float = 1e-8,
    max_iter: int = 100,
    moderator_names: Optional[Sequence[str]] = None,
    study_ids: Optional[Sequence[str]] = None
) -> RandomEffectsFit:
    """Fit a random-effects model in one call. See RandomEffectsEstimator."""
    estimator = RandomEffectsEstimator(
        method=method, ci_level=ci_level, tol=tol, max_iter=max_iter
    )
    return estimator.fit(
        effects, std_errors,
        moderators=moderators,
        moderator_names=moderator_names,
        study_ids=study_ids
    )
