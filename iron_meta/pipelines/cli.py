"""
Command-line entry point.

Usage:
    python -m iron_meta data/studies.csv --output results/analysis.json
    python -m iron_meta data/studies.csv --config config.yaml --quiet
"""

import argparse
from typing import List, Optional

from ..config.settings import Settings, load_settings
from ..core.exceptions import MetaAnalysisError
from ..io.loaders import load_study_table
from .analysis import run_analysis


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="iron_meta",
        description="Random-effects and spline meta-regression of iron supplementation studies"
    )
    parser.add_argument("data", nargs="?", default=None,
                        help="Path to study CSV (default: IRON_META_DATA)")
    parser.add_argument("--config", type=str, default=None,
                        help="YAML settings file")
    parser.add_argument("--output", type=str, default=None,
                        help="Write numeric results as JSON to this path")
    parser.add_argument("--skip-malformed", action="store_true",
                        help="Drop rows with one VO2max column missing instead of failing")
    parser.add_argument("--n-jobs", type=int, default=None,
                        help="Workers for the sensitivity sweep")
    parser.add_argument("--quiet", action="store_true",
                        help="Suppress progress output")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = load_settings(args.config) if args.config else Settings.from_env()
    if args.quiet:
        settings.verbose = False
    if args.n_jobs is not None:
        settings.analysis.n_jobs = args.n_jobs

    data_path = args.data or settings.paths.data_path
    if data_path is None:
        parser.error("no data file given (positional argument or IRON_META_DATA)")

    try:
        table = load_study_table(
            data_path, on_malformed="skip" if args.skip_malformed else "raise"
        )
        if settings.verbose:
            print(f"Loaded {table}")
        results = run_analysis(table, settings)
    except MetaAnalysisError as e:
        print(f"Analysis failed: {type(e).__name__}: {e}")
        return 1

    print(results.summary())

    if args.output:
        path = results.save_json(args.output)
        if settings.verbose:
            print(f"Results written to {path}")

    return 0
