"""
Statistical core.

Includes:
- REML / DerSimonian-Laird random-effects meta-analysis and meta-regression
- Centered cubic regression spline moderators
- Spline meta-regression prediction curves
- Knot-count sensitivity sweep
- Subgroup analysis
"""

from .random_effects import (
    RandomEffectsEstimator,
    RandomEffectsFit,
    fit_random_effects,
)

from .splines import (
    SplineBasis,
    build_spline_basis,
    place_knots,
    valid_knot_range,
)

from .prediction import (
    PredictionCurve,
    SplineMetaRegression,
    fit_spline_meta_regression,
    moderator_grid,
    predict_curve,
)

from .sensitivity import (
    SensitivityResult,
    sensitivity_sweep,
)

from .subgroups import (
    SubgroupResult,
    subgroup_analysis,
)

__all__ = [
    # random_effects
    'RandomEffectsEstimator',
    'RandomEffectsFit',
    'fit_random_effects',
    # splines
    'SplineBasis',
    'build_spline_basis',
    'place_knots',
    'valid_knot_range',
    # prediction
    'PredictionCurve',
    'SplineMetaRegression',
    'fit_spline_meta_regression',
    'moderator_grid',
    'predict_curve',
    # sensitivity
    'SensitivityResult',
    'sensitivity_sweep',
    # subgroups
    'SubgroupResult',
    'subgroup_analysis',
]
