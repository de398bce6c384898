"""Tests for spline meta-regression prediction."""

import numpy as np
import pytest
from scipy import stats

from iron_meta.analysis.prediction import (
    fit_spline_meta_regression,
    moderator_grid,
    predict_curve,
)
from iron_meta.analysis.random_effects import fit_random_effects


@pytest.fixture
def ferritin_model(study_table):
    data = study_table.outcome("ferritin")
    return fit_spline_meta_regression(
        data.effects, data.std_errors, data.moderator, 4,
        study_ids=data.study_ids
    )


class TestPredictCurve:
    """Prediction at observed and new moderator values."""

    def test_training_values_match_fitted(self, study_table, ferritin_model) -> None:
        data = study_table.outcome("ferritin")
        curve = ferritin_model.predict(data.moderator)
        np.testing.assert_allclose(
            curve.estimate, ferritin_model.fit.fitted_values, atol=1e-8
        )

    def test_input_order_preserved(self, ferritin_model) -> None:
        values = np.array([50.0, 12.0, 30.0])
        curve = ferritin_model.predict(values)
        np.testing.assert_array_equal(curve.moderator, values)
        reordered = ferritin_model.predict(values[[1, 2, 0]])
        assert curve.estimate[0] == pytest.approx(reordered.estimate[2])

    def test_standard_error_formula(self, ferritin_model) -> None:
        curve = ferritin_model.predict([30.0])
        row = np.concatenate([[1.0], ferritin_model.basis.transform([30.0])[0]])
        expected = np.sqrt(row @ ferritin_model.fit.cov @ row)
        assert curve.se[0] == pytest.approx(expected)
        z = stats.norm.ppf(0.975)
        assert curve.ci_upper[0] == pytest.approx(curve.estimate[0] + z * expected)

    def test_prediction_interval_contains_ci(self, ferritin_model) -> None:
        curve = ferritin_model.predict(moderator_grid([12.0, 70.0], 25))
        assert np.all(curve.pi_lower <= curve.ci_lower)
        assert np.all(curve.pi_upper >= curve.ci_upper)
        pi_se = np.sqrt(curve.se ** 2 + ferritin_model.fit.tau2)
        z = stats.norm.ppf(0.975)
        np.testing.assert_allclose(curve.pi_upper, curve.estimate + z * pi_se)

    def test_effect_declines_with_ferritin(self, ferritin_model) -> None:
        curve = ferritin_model.predict([12.0, 70.0])
        assert curve.estimate[0] > curve.estimate[1]

    def test_extrapolation_is_finite(self, ferritin_model) -> None:
        curve = ferritin_model.predict([5.0, 100.0])
        assert np.all(np.isfinite(curve.estimate))
        assert np.all(np.isfinite(curve.se))

    def test_custom_ci_level(self, ferritin_model) -> None:
        narrow = predict_curve(ferritin_model.fit, ferritin_model.basis, [30.0], ci_level=0.80)
        wide = ferritin_model.predict([30.0])
        assert narrow.ci_level == 0.80
        assert (narrow.ci_upper - narrow.ci_lower)[0] < (wide.ci_upper - wide.ci_lower)[0]

    def test_coefficient_mismatch(self, study_table, ferritin_model) -> None:
        data = study_table.outcome("ferritin")
        pooled = fit_random_effects(data.effects, data.std_errors)
        with pytest.raises(ValueError, match="coefficients"):
            predict_curve(pooled, ferritin_model.basis, [30.0])


class TestSplineMetaRegression:
    """The combined basis + fit object."""

    def test_moderator_significant(self, ferritin_model) -> None:
        assert ferritin_model.n_knots == 4
        assert ferritin_model.fit.qm_df == 3
        assert ferritin_model.qm_pvalue < 0.001

    def test_coefficient_names(self, ferritin_model) -> None:
        assert ferritin_model.fit.coefficient_names[0] == "intercept"
        assert ferritin_model.fit.coefficient_names[1] == "s(ferritin).1"

    def test_curve_frame(self, ferritin_model) -> None:
        curve = ferritin_model.predict(moderator_grid([12.0, 70.0], 50))
        frame = curve.to_frame()
        assert len(frame) == 50
        assert (frame["knots"] == 4).all()
        assert frame["moderator"].iloc[0] == 12.0
        assert frame["moderator"].iloc[-1] == 70.0

    def test_to_dict(self, ferritin_model) -> None:
        result = ferritin_model.to_dict()
        assert result["knots"] == [12.0, 22.0, 35.0, 70.0]
        assert "s(ferritin).3" in result["fit"]["coefficients"]
