"""Shared fixtures: a synthetic 13-study table, 10 of which report VO2max.

Ferritin effects share one standard error (0.25) and average exactly 1.27;
VO2max effects share one standard error (0.30) and average exactly 0.49.
With equal sampling variances the REML estimates have closed forms
(pooled = mean, tau^2 = sample variance - s^2), which the tests use.
Both outcomes fall steadily with initial ferritin.
"""

import matplotlib
matplotlib.use("Agg")

import numpy as np
import pandas as pd
import pytest

from iron_meta.core.study import StudyTable

FERRITIN_SE = 0.25
VO2MAX_SE = 0.30

STUDY_ROWS = [
    # id, initial ferritin, ferritin SMD, VO2max SMD (None = not reported)
    ("Study 01", 12.0, 1.90, 1.80),
    ("Study 02", 15.0, 1.85, 1.60),
    ("Study 03", 18.0, 1.70, None),
    ("Study 04", 20.0, 1.68, 1.30),
    ("Study 05", 22.0, 1.55, 1.20),
    ("Study 06", 25.0, 1.45, 0.90),
    ("Study 07", 28.0, 1.35, None),
    ("Study 08", 30.0, 1.30, 0.50),
    ("Study 09", 35.0, 1.10, 0.10),
    ("Study 10", 40.0, 0.95, -0.30),
    ("Study 11", 45.0, 0.80, None),
    ("Study 12", 55.0, 0.55, -0.80),
    ("Study 13", 70.0, 0.33, -1.40),
]


@pytest.fixture
def study_frame() -> pd.DataFrame:
    records = []
    for study_id, ferritin0, ferritin_smd, vo2_smd in STUDY_ROWS:
        records.append({
            "id": study_id,
            "ferritin_effect_size_smd": ferritin_smd,
            "ferritin_std_error_smd": FERRITIN_SE,
            "vo2max_effect_size": vo2_smd if vo2_smd is not None else np.nan,
            "vo2max_std_error": VO2MAX_SE if vo2_smd is not None else np.nan,
            "initial_ferritin_ng_ml": ferritin0,
        })
    return pd.DataFrame(records)


@pytest.fixture
def study_table(study_frame) -> StudyTable:
    return StudyTable.from_dataframe(study_frame)


@pytest.fixture
def study_csv(study_frame, tmp_path):
    path = tmp_path / "studies.csv"
    study_frame.to_csv(path, index=False)
    return path


@pytest.fixture
def heterogeneous_data():
    """Unequal standard errors, clearly heterogeneous effects."""
    effects = np.array([0.10, 0.90, 0.30, 1.50, -0.20, 0.80, 0.45])
    std_errors = np.array([0.10, 0.30, 0.20, 0.50, 0.15, 0.40, 0.25])
    moderator = np.array([10.0, 25.0, 18.0, 40.0, 12.0, 33.0, 21.0])
    return effects, std_errors, moderator
