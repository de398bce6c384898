"""Tests for the study data models."""

import numpy as np
import pytest

from iron_meta.core.study import StudyRecord, StudyTable, get_outcome_spec
from iron_meta.core.exceptions import MalformedRecord


def make_record(study_id="A", vo2=0.4, vo2_se=0.3, se=0.25):
    return StudyRecord(
        id=study_id,
        ferritin_effect_size_smd=1.0,
        ferritin_std_error_smd=se,
        initial_ferritin_ng_ml=20.0,
        vo2max_effect_size=vo2,
        vo2max_std_error=vo2_se,
    )


class TestStudyRecord:
    """Tests for StudyRecord invariants."""

    def test_valid_record(self) -> None:
        record = make_record()
        assert record.has_vo2max

    def test_record_without_vo2max(self) -> None:
        record = make_record(vo2=None, vo2_se=None)
        assert not record.has_vo2max

    def test_half_missing_vo2max_rejected(self) -> None:
        with pytest.raises(MalformedRecord) as excinfo:
            make_record(vo2=0.4, vo2_se=None)
        assert excinfo.value.study_id == "A"

    def test_non_positive_standard_error_rejected(self) -> None:
        with pytest.raises(MalformedRecord):
            make_record(se=0.0)
        with pytest.raises(MalformedRecord):
            make_record(vo2_se=-0.1)

    def test_from_dict_treats_nan_as_missing(self) -> None:
        record = StudyRecord.from_dict({
            "id": "B",
            "ferritin_effect_size_smd": 1.2,
            "ferritin_std_error_smd": 0.3,
            "initial_ferritin_ng_ml": 15,
            "vo2max_effect_size": float("nan"),
            "vo2max_std_error": float("nan"),
        })
        assert record.vo2max_effect_size is None
        assert record.vo2max_std_error is None


class TestStudyTable:
    """Tests for the ordered study table."""

    def test_duplicate_ids_rejected(self) -> None:
        with pytest.raises(MalformedRecord, match="Duplicate"):
            StudyTable([make_record("A"), make_record("A")])

    def test_order_preserved(self, study_table) -> None:
        assert study_table.ids[0] == "Study 01"
        assert study_table.ids[-1] == "Study 13"
        assert len(study_table) == 13

    def test_ferritin_outcome_uses_all_studies(self, study_table) -> None:
        data = study_table.outcome("ferritin")
        assert data.n_studies == 13
        assert data.effects.mean() == pytest.approx(1.27)
        assert np.all(data.std_errors == 0.25)

    def test_vo2max_outcome_drops_missing_in_order(self, study_table) -> None:
        data = study_table.outcome("vo2max")
        assert data.n_studies == 10
        assert "Study 03" not in data.study_ids
        assert list(data.study_ids) == sorted(data.study_ids)
        assert data.moderator[0] == 12.0

    def test_get(self, study_table) -> None:
        assert study_table.get("Study 05").initial_ferritin_ng_ml == 22.0
        assert study_table.get("missing") is None

    def test_dataframe_round_trip(self, study_table) -> None:
        rebuilt = StudyTable.from_dataframe(study_table.to_dataframe())
        assert rebuilt.ids == study_table.ids
        assert rebuilt.outcome("vo2max").n_studies == 10

    def test_missing_columns_rejected(self, study_frame) -> None:
        with pytest.raises(MalformedRecord, match="Missing required columns"):
            StudyTable.from_dataframe(study_frame.drop(columns=["vo2max_std_error"]))

    def test_unknown_outcome(self, study_table) -> None:
        with pytest.raises(ValueError, match="Unknown outcome"):
            study_table.outcome("hemoglobin")

    def test_outcome_spec(self) -> None:
        assert get_outcome_spec("vo2max").optional
        assert not get_outcome_spec("ferritin").optional


class TestNonFiniteFields:
    """Required numeric fields must be finite."""

    @pytest.mark.parametrize("field", ["ferritin_effect_size_smd", "initial_ferritin_ng_ml"])
    def test_nan_required_field_rejected(self, field) -> None:
        values = {
            "id": "C",
            "ferritin_effect_size_smd": 1.0,
            "ferritin_std_error_smd": 0.25,
            "initial_ferritin_ng_ml": 20.0,
        }
        values[field] = float("nan")
        with pytest.raises(MalformedRecord, match=field) as excinfo:
            StudyRecord(**values)
        assert excinfo.value.study_id == "C"

    def test_infinite_vo2max_rejected(self) -> None:
        with pytest.raises(MalformedRecord):
            make_record(vo2=float("inf"))
