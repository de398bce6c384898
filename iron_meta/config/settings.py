"""
Configuration settings for the iron supplementation analysis.

Settings can be loaded from:
1. Environment variables
2. YAML config file
3. Direct instantiation
"""

import os
from dataclasses import dataclass, field, asdict
from typing import Dict, List, Optional, Tuple

import yaml


@dataclass
class AnalysisSettings:
    """Statistical parameters for the analysis."""
    # Random-effects estimation
    method: str = "REML"
    ci_level: float = 0.95
    tol: float = 1e-8
    max_iter: int = 100

    # Spline meta-regression knot counts per outcome
    knots: Dict[str, int] = field(default_factory=lambda: {
        'ferritin': 4,
        'vo2max': 3
    })

    # Sensitivity analysis
    sensitivity_knots: List[int] = field(default_factory=lambda: [3, 4, 5, 6])
    grid_points: int = 200
    n_jobs: int = 1

    # Subgroup split on initial ferritin (ng/mL); None skips it
    stratify_cutoff: Optional[float] = None


@dataclass
class PlotStyle:
    """Presentation parameters passed to the plotting functions."""
    study_color: str = 'steelblue'
    pooled_color: str = 'darkred'
    curve_color: str = 'black'
    band_color: str = 'gray'
    band_alpha: float = 0.25
    sensitivity_cmap: str = 'viridis'

    font_size: int = 10
    title_size: int = 12

    forest_width: float = 10.0
    bubble_size: Tuple[float, float] = (8.0, 6.0)
    combined_size: Tuple[float, float] = (12.0, 10.0)
    bubble_scale: float = 60.0


@dataclass
class PathSettings:
    """Default paths for data and outputs."""
    data_path: Optional[str] = None
    results_dir: str = "results"


@dataclass
class Settings:
    """
    Master configuration.

    Example:
        >>> settings = Settings.from_env()
        >>> settings = load_settings("config.yaml")
        >>> save_settings(settings, "my_config.yaml")
    """
    analysis: AnalysisSettings = field(default_factory=AnalysisSettings)
    style: PlotStyle = field(default_factory=PlotStyle)
    paths: PathSettings = field(default_factory=PathSettings)

    # Progress output
    verbose: bool = True

    @classmethod
    def from_env(cls) -> "Settings":
        """Load settings from IRON_META_* environment variables."""
        analysis = AnalysisSettings()
        analysis.method = os.getenv("IRON_META_METHOD", analysis.method)
        analysis.ci_level = float(os.getenv("IRON_META_CI_LEVEL", analysis.ci_level))
        analysis.n_jobs = int(os.getenv("IRON_META_N_JOBS", analysis.n_jobs))
        cutoff = os.getenv("IRON_META_STRATIFY_CUTOFF")
        if cutoff:
            analysis.stratify_cutoff = float(cutoff)

        return cls(
            analysis=analysis,
            paths=PathSettings(
                data_path=os.getenv("IRON_META_DATA"),
                results_dir=os.getenv("IRON_META_RESULTS_DIR", "results"),
            ),
            verbose=os.getenv("IRON_META_VERBOSE", "1") not in ("0", "false", "False"),
        )


def get_default_settings() -> Settings:
    """Get default configuration."""
    return Settings()


def load_settings(config_path: str) -> Settings:
    """
    Load configuration from YAML file.

    Parameters
    ----------
    config_path : str
        Path to YAML config file

    Returns
    -------
    Settings
    """
    with open(config_path, 'r') as f:
        config_dict = yaml.safe_load(f) or {}

    style_dict = dict(config_dict.get('style', {}))
    for key in ('bubble_size', 'combined_size'):
        if key in style_dict:
            style_dict[key] = tuple(style_dict[key])

    return Settings(
        analysis=AnalysisSettings(**config_dict.get('analysis', {})),
        style=PlotStyle(**style_dict),
        paths=PathSettings(**config_dict.get('paths', {})),
        **{k: v for k, v in config_dict.items()
           if k not in ['analysis', 'style', 'paths']}
    )


def save_settings(settings: Settings, config_path: str) -> None:
    """
    Save configuration to YAML file.

    Parameters
    ----------
    settings : Settings
        Configuration to save
    config_path : str
        Output path
    """
    config_dict = asdict(settings)
    for key in ('bubble_size', 'combined_size'):
        config_dict['style'][key] = list(config_dict['style'][key])

    with open(config_path, 'w') as f:
        yaml.safe_dump(config_dict, f, default_flow_style=False)
