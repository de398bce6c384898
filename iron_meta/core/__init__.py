"""Core data models and error types."""

from .study import (
    StudyRecord,
    StudyTable,
    OutcomeData,
    OutcomeSpec,
    OUTCOMES,
    MODERATOR_COLUMN,
    MODERATOR_LABEL,
    REQUIRED_COLUMNS,
    get_outcome_spec,
)
from .exceptions import (
    MetaAnalysisError,
    InsufficientData,
    NonConvergence,
    InvalidKnotCount,
    MalformedRecord,
    TauSquaredTruncationWarning,
)

__all__ = [
    "StudyRecord",
    "StudyTable",
    "OutcomeData",
    "OutcomeSpec",
    "OUTCOMES",
    "MODERATOR_COLUMN",
    "MODERATOR_LABEL",
    "REQUIRED_COLUMNS",
    "get_outcome_spec",
    "MetaAnalysisError",
    "InsufficientData",
    "NonConvergence",
    "InvalidKnotCount",
    "MalformedRecord",
    "TauSquaredTruncationWarning",
]
