"""
Iron Supplementation Meta-Analysis Toolkit

Reproducible random-effects meta-analysis of iron supplementation trials
in athletes, extended with spline meta-regression on initial serum ferritin:
- Study-level data loading and validation
- REML / DerSimonian-Laird random-effects models
- Cubic regression spline moderators with prediction curves
- Knot-count sensitivity analysis
- Forest, bubble and sensitivity plots
"""

__version__ = "0.1.0"

from . import core
from . import io
from . import analysis
from . import config
from . import pipelines
from . import visualization

__all__ = [
    "core",
    "io",
    "analysis",
    "config",
    "pipelines",
    "visualization",
]
