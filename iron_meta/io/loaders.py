"""
Data loaders for the study-level table.

Expected CSV format:
    id,ferritin_effect_size_smd,ferritin_std_error_smd,vo2max_effect_size,vo2max_std_error,initial_ferritin_ng_ml
    Study A 1998,1.42,0.31,0.55,0.33,18.5
    Study B 2004,0.87,0.28,,,34.0
    ...
"""

from pathlib import Path
from typing import Union
import warnings
import pandas as pd

from ..core.study import StudyTable, REQUIRED_COLUMNS
from ..core.exceptions import MalformedRecord


def _mixed_vo2max_rows(df: pd.DataFrame) -> pd.Series:
    """Rows where exactly one of the paired VO2max columns is null."""
    effect_null = df["vo2max_effect_size"].isna()
    se_null = df["vo2max_std_error"].isna()
    return effect_null != se_null


def load_study_table(
    path: Union[str, Path],
    on_malformed: str = "raise"
) -> StudyTable:
    """
    Load the study table from a CSV file.

    Parameters
    ----------
    path : str or Path
        CSV file with the columns listed in ``REQUIRED_COLUMNS``
    on_malformed : str
        What to do with rows where exactly one VO2max column is empty:
        ``"raise"`` (default) fails with MalformedRecord, ``"skip"`` drops
        the row and emits a warning

    Returns
    -------
    StudyTable
    """
    if on_malformed not in ("raise", "skip"):
        raise ValueError(f"Unknown on_malformed: {on_malformed}")

    df = pd.read_csv(path)
    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise MalformedRecord(f"{path}: missing required columns {missing}")

    df["id"] = df["id"].astype(str).str.strip()

    mixed = _mixed_vo2max_rows(df)
    if mixed.any():
        bad_ids = df.loc[mixed, "id"].tolist()
        if on_malformed == "raise":
            raise MalformedRecord(
                f"VO2max effect size and standard error must be both present "
                f"or both absent; inconsistent rows: {bad_ids}",
                study_id=bad_ids[0]
            )
        warnings.warn(f"Skipping {len(bad_ids)} malformed VO2max rows: {bad_ids}")
        df = df.loc[~mixed].reset_index(drop=True)

    return StudyTable.from_dataframe(df[REQUIRED_COLUMNS])


def save_study_table(table: StudyTable, path: Union[str, Path]) -> None:
    """Write the table back to CSV in the loader's column order."""
    table.to_dataframe().to_csv(path, index=False)
