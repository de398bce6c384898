"""
Core data models for the iron supplementation studies.

This module defines the study-level records, the ordered study table,
and the per-outcome views that feed the random-effects models.
"""

from dataclasses import dataclass, asdict
from typing import Optional, List, Dict, Any, Iterator, Tuple
import numpy as np
import pandas as pd

from .exceptions import MalformedRecord


@dataclass(frozen=True)
class OutcomeSpec:
    """Column layout and labels for one analysed outcome."""
    name: str
    effect_column: str
    se_column: str
    label: str
    optional: bool = False


OUTCOMES: Dict[str, OutcomeSpec] = {
    "ferritin": OutcomeSpec(
        name="ferritin",
        effect_column="ferritin_effect_size_smd",
        se_column="ferritin_std_error_smd",
        label="Serum ferritin increase (SMD)",
    ),
    "vo2max": OutcomeSpec(
        name="vo2max",
        effect_column="vo2max_effect_size",
        se_column="vo2max_std_error",
        label="VO2max increase (SMD)",
        optional=True,
    ),
}

MODERATOR_COLUMN = "initial_ferritin_ng_ml"
MODERATOR_LABEL = "Initial serum ferritin (ng/mL)"

REQUIRED_COLUMNS = [
    "id",
    "ferritin_effect_size_smd",
    "ferritin_std_error_smd",
    "vo2max_effect_size",
    "vo2max_std_error",
    "initial_ferritin_ng_ml",
]


def get_outcome_spec(name: str) -> OutcomeSpec:
    """Look up an outcome by name."""
    if name not in OUTCOMES:
        raise ValueError(f"Unknown outcome: {name}. Available: {list(OUTCOMES)}")
    return OUTCOMES[name]


def _optional_float(value) -> Optional[float]:
    if value is None or pd.isna(value):
        return None
    return float(value)


@dataclass(frozen=True)
class StudyRecord:
    """
    One published iron supplementation study.

    Attributes:
        id: Unique study label (e.g. "Author 1998")
        ferritin_effect_size_smd: Standardized mean difference, ferritin outcome
        ferritin_std_error_smd: Standard error of the ferritin SMD
        initial_ferritin_ng_ml: Mean serum ferritin at baseline (moderator)
        vo2max_effect_size: SMD for VO2max, if the study reported it
        vo2max_std_error: Standard error of the VO2max SMD
    """
    id: str
    ferritin_effect_size_smd: float
    ferritin_std_error_smd: float
    initial_ferritin_ng_ml: float
    vo2max_effect_size: Optional[float] = None
    vo2max_std_error: Optional[float] = None

    def __post_init__(self):
        for name in ("ferritin_effect_size_smd", "initial_ferritin_ng_ml"):
            if not np.isfinite(getattr(self, name)):
                raise MalformedRecord(
                    f"Study '{self.id}': {name} must be a finite number, "
                    f"got {getattr(self, name)}",
                    study_id=self.id
                )
        if self.vo2max_effect_size is not None and not np.isfinite(self.vo2max_effect_size):
            raise MalformedRecord(
                f"Study '{self.id}': vo2max_effect_size must be finite, "
                f"got {self.vo2max_effect_size}",
                study_id=self.id
            )
        if not self.ferritin_std_error_smd > 0:
            raise MalformedRecord(
                f"Study '{self.id}': ferritin standard error must be positive, "
                f"got {self.ferritin_std_error_smd}",
                study_id=self.id
            )
        if (self.vo2max_effect_size is None) != (self.vo2max_std_error is None):
            raise MalformedRecord(
                f"Study '{self.id}': VO2max effect size and standard error "
                f"must be both present or both absent",
                study_id=self.id
            )
        if self.vo2max_std_error is not None and not self.vo2max_std_error > 0:
            raise MalformedRecord(
                f"Study '{self.id}': VO2max standard error must be positive, "
                f"got {self.vo2max_std_error}",
                study_id=self.id
            )

    @property
    def has_vo2max(self) -> bool:
        return self.vo2max_effect_size is not None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StudyRecord":
        """Create from a dictionary or a DataFrame row; NaN counts as missing."""
        return cls(
            id=str(data["id"]),
            ferritin_effect_size_smd=float(data["ferritin_effect_size_smd"]),
            ferritin_std_error_smd=float(data["ferritin_std_error_smd"]),
            initial_ferritin_ng_ml=float(data["initial_ferritin_ng_ml"]),
            vo2max_effect_size=_optional_float(data.get("vo2max_effect_size")),
            vo2max_std_error=_optional_float(data.get("vo2max_std_error")),
        )


@dataclass(frozen=True)
class OutcomeData:
    """Effect sizes, standard errors and moderator values for one outcome."""
    outcome: str
    study_ids: Tuple[str, ...]
    effects: np.ndarray
    std_errors: np.ndarray
    moderator: np.ndarray

    @property
    def n_studies(self) -> int:
        return len(self.study_ids)

    @property
    def variances(self) -> np.ndarray:
        return self.std_errors ** 2

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame({
            "study_id": list(self.study_ids),
            "effect_size": self.effects,
            "std_error": self.std_errors,
            MODERATOR_COLUMN: self.moderator,
        })


class StudyTable:
    """
    Ordered, read-only collection of studies.

    Insertion order is kept for display; study ids are unique.

    Example:
        >>> table = StudyTable.from_dataframe(pd.read_csv("studies.csv"))
        >>> ferritin = table.outcome("ferritin")
        >>> print(ferritin.n_studies)
    """

    def __init__(self, records: List[StudyRecord]):
        seen = set()
        for record in records:
            if record.id in seen:
                raise MalformedRecord(f"Duplicate study id: '{record.id}'", study_id=record.id)
            seen.add(record.id)
        self._records: Tuple[StudyRecord, ...] = tuple(records)

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[StudyRecord]:
        return iter(self._records)

    def __getitem__(self, index: int) -> StudyRecord:
        return self._records[index]

    def __repr__(self) -> str:
        n_vo2 = sum(1 for r in self._records if r.has_vo2max)
        return f"StudyTable(n_studies={len(self)}, n_vo2max={n_vo2})"

    @property
    def ids(self) -> List[str]:
        return [r.id for r in self._records]

    def get(self, study_id: str) -> Optional[StudyRecord]:
        """Get a study by ID."""
        for record in self._records:
            if record.id == study_id:
                return record
        return None

    def outcome(self, name: str) -> OutcomeData:
        """
        Extract the arrays for one outcome, in table order.

        Studies that did not report an optional outcome are left out.

        Args:
            name: "ferritin" or "vo2max"

        Returns:
            OutcomeData for the studies reporting that outcome
        """
        spec = get_outcome_spec(name)
        rows = [
            r for r in self._records
            if getattr(r, spec.effect_column) is not None
        ]
        return OutcomeData(
            outcome=spec.name,
            study_ids=tuple(r.id for r in rows),
            effects=np.array([getattr(r, spec.effect_column) for r in rows], dtype=float),
            std_errors=np.array([getattr(r, spec.se_column) for r in rows], dtype=float),
            moderator=np.array([r.initial_ferritin_ng_ml for r in rows], dtype=float),
        )

    def to_dataframe(self) -> pd.DataFrame:
        """Export studies as a DataFrame with the input file's columns."""
        return pd.DataFrame(
            [r.to_dict() for r in self._records],
            columns=REQUIRED_COLUMNS
        )

    @classmethod
    def from_dataframe(cls, df: pd.DataFrame) -> "StudyTable":
        """Build a table from a DataFrame with the input file's columns."""
        missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
        if missing:
            raise MalformedRecord(f"Missing required columns: {missing}")
        return cls([StudyRecord.from_dict(row) for row in df.to_dict("records")])
