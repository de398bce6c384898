"""
Cubic regression spline basis for a single continuous moderator.

Uses patsy's ``cr()`` stateful transform, which reproduces mgcv's "cr"
basis: K knots at evenly spaced quantiles of the distinct moderator values,
natural boundary conditions, and a sum-to-zero (centering) constraint
absorbed into the basis so it carries no constant component. The fitted
knots and constraint are kept in the patsy design info and re-used for
out-of-sample values.
"""

from dataclasses import dataclass
from typing import List, Sequence, Tuple
import numpy as np
import pandas as pd
from patsy import dmatrix, build_design_matrices, DesignInfo

from ..core.exceptions import InvalidKnotCount

MIN_KNOTS = 3


def valid_knot_range(moderator: Sequence[float]) -> Tuple[int, int]:
    """Inclusive (min, max) knot counts the moderator values support."""
    n_distinct = len(np.unique(np.asarray(moderator, dtype=float)))
    return MIN_KNOTS, n_distinct - 1


def place_knots(moderator: Sequence[float], n_knots: int) -> np.ndarray:
    """K knots at evenly spaced quantiles of the distinct values."""
    values = np.unique(np.asarray(moderator, dtype=float))
    return np.quantile(values, np.linspace(0, 1, n_knots))


@dataclass(frozen=True)
class SplineBasis:
    """
    Centered cubic regression spline design for one moderator.

    Attributes:
        matrix: Training design matrix, studies x (n_knots - 1)
        knots: All knot locations, boundary knots included
        n_knots: Number of knots K
        column_names: Names of the basis columns
        design_info: patsy DesignInfo holding the knots and constraint
    """
    matrix: np.ndarray
    knots: np.ndarray
    n_knots: int
    column_names: List[str]
    design_info: DesignInfo

    @property
    def n_columns(self) -> int:
        return self.matrix.shape[1]

    def transform(self, values: Sequence[float]) -> np.ndarray:
        """
        Project new moderator values into the fitted basis.

        Values outside the training range continue the outermost cubic piece.
        """
        x = np.atleast_1d(np.asarray(values, dtype=float))
        (design,) = build_design_matrices([self.design_info], {"x": x})
        return np.asarray(design)

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(self.matrix, columns=self.column_names)


def build_spline_basis(
    moderator: Sequence[float],
    n_knots: int,
    name: str = "ferritin"
) -> SplineBasis:
    """
    Build the centered cubic regression spline basis.

    Parameters
    ----------
    moderator : array-like
        Moderator values, one per study
    n_knots : int
        Number of knots K (3 <= K <= distinct values - 1)
    name : str
        Prefix for the basis column names

    Returns
    -------
    SplineBasis
        Basis with K - 1 columns after the centering constraint
    """
    x = np.asarray(moderator, dtype=float)
    if x.ndim != 1:
        raise ValueError("moderator must be 1-d")
    if not np.all(np.isfinite(x)):
        raise ValueError("moderator values must be finite")

    min_knots, max_knots = valid_knot_range(x)
    if n_knots < min_knots or n_knots > max_knots:
        raise InvalidKnotCount(n_knots, min_knots, max_knots)

    knots = place_knots(x, n_knots)
    inner_knots = knots[1:-1]
    lower, upper = knots[0], knots[-1]

    design = dmatrix(
        "cr(x, knots=inner_knots, lower_bound=lower, upper_bound=upper, "
        "constraints='center') - 1",
        {"x": x}
    )
    matrix = np.asarray(design)

    return SplineBasis(
        matrix=matrix,
        knots=knots,
        n_knots=n_knots,
        column_names=[f"s({name}).{i + 1}" for i in range(matrix.shape[1])],
        design_info=design.design_info,
    )
