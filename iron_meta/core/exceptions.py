"""Error and warning types raised by the analysis."""


class MetaAnalysisError(Exception):
    """Base class for failures of an analysis branch."""


class InsufficientData(MetaAnalysisError, ValueError):
    """Too few studies, or a rank-deficient design matrix."""


class NonConvergence(MetaAnalysisError, RuntimeError):
    """The REML iteration did not reach tolerance within its budget."""

    def __init__(self, message: str, n_iterations: int, last_change: float):
        super().__init__(message)
        self.n_iterations = n_iterations
        self.last_change = last_change


class InvalidKnotCount(MetaAnalysisError, ValueError):
    """Requested spline knot count is outside the range the data supports."""

    def __init__(self, n_knots: int, min_knots: int, max_knots: int):
        super().__init__(
            f"n_knots={n_knots} outside valid range [{min_knots}, {max_knots}] "
            f"for this moderator"
        )
        self.n_knots = n_knots
        self.min_knots = min_knots
        self.max_knots = max_knots


class MalformedRecord(MetaAnalysisError, ValueError):
    """A study row violates the table invariants."""

    def __init__(self, message: str, study_id=None):
        super().__init__(message)
        self.study_id = study_id


class TauSquaredTruncationWarning(UserWarning):
    """The between-study variance estimate was truncated at zero."""
