"""Tests for the knot-count sensitivity sweep."""

import numpy as np
import pytest

from iron_meta.analysis.sensitivity import sensitivity_sweep
from iron_meta.core.exceptions import InvalidKnotCount


@pytest.fixture
def ferritin(study_table):
    return study_table.outcome("ferritin")


class TestSensitivitySweep:
    """Tests for sensitivity_sweep."""

    def test_one_curve_per_knot_count(self, ferritin) -> None:
        result = sensitivity_sweep(
            ferritin.effects, ferritin.std_errors, ferritin.moderator
        )
        assert result.knot_counts == [3, 4, 5, 6]
        for k in result.knot_counts:
            assert len(result[k]) == 200
            assert result[k].n_knots == k

    def test_shared_grid(self, ferritin) -> None:
        grid = np.linspace(12, 70, 30)
        result = sensitivity_sweep(
            ferritin.effects, ferritin.std_errors, ferritin.moderator,
            knot_counts=[3, 5], grid=grid
        )
        np.testing.assert_array_equal(result[3].moderator, grid)
        np.testing.assert_array_equal(result[5].moderator, grid)

    def test_duplicate_knot_counts_collapsed(self, ferritin) -> None:
        result = sensitivity_sweep(
            ferritin.effects, ferritin.std_errors, ferritin.moderator,
            knot_counts=[4, 4, 3], n_points=10
        )
        assert result.knot_counts == [3, 4]

    def test_invalid_knot_count_raises(self, ferritin) -> None:
        with pytest.raises(InvalidKnotCount):
            sensitivity_sweep(
                ferritin.effects, ferritin.std_errors, ferritin.moderator,
                knot_counts=[3, 13], n_points=10
            )

    def test_empty_knot_counts(self, ferritin) -> None:
        with pytest.raises(ValueError):
            sensitivity_sweep(
                ferritin.effects, ferritin.std_errors, ferritin.moderator,
                knot_counts=[]
            )

    def test_parallel_matches_sequential(self, ferritin) -> None:
        kwargs = dict(knot_counts=[3, 4, 5], n_points=20)
        sequential = sensitivity_sweep(
            ferritin.effects, ferritin.std_errors, ferritin.moderator, **kwargs
        )
        threaded = sensitivity_sweep(
            ferritin.effects, ferritin.std_errors, ferritin.moderator,
            n_jobs=2, backend="threading", **kwargs
        )
        for k in sequential.knot_counts:
            np.testing.assert_allclose(threaded[k].estimate, sequential[k].estimate)
            assert threaded.qm_pvalues[k] == pytest.approx(sequential.qm_pvalues[k])

    def test_all_knot_counts_detect_moderator(self, ferritin) -> None:
        result = sensitivity_sweep(
            ferritin.effects, ferritin.std_errors, ferritin.moderator, n_points=10
        )
        assert all(p < 0.05 for p in result.qm_pvalues.values())

    def test_to_frame(self, ferritin) -> None:
        result = sensitivity_sweep(
            ferritin.effects, ferritin.std_errors, ferritin.moderator,
            knot_counts=[3, 4], n_points=15
        )
        frame = result.to_frame()
        assert len(frame) == 30
        assert sorted(frame["knots"].unique()) == [3, 4]
        assert set(result.to_dict()) == {"3", "4"}
