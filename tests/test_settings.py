"""Tests for configuration loading and saving."""

import pytest

from iron_meta.config.settings import (
    Settings,
    get_default_settings,
    load_settings,
    save_settings,
)


class TestSettings:
    """Defaults, YAML round trip and environment variables."""

    def test_defaults(self) -> None:
        settings = get_default_settings()
        assert settings.analysis.method == "REML"
        assert settings.analysis.knots == {"ferritin": 4, "vo2max": 3}
        assert settings.analysis.sensitivity_knots == [3, 4, 5, 6]
        assert settings.analysis.stratify_cutoff is None
        assert settings.style.combined_size == (12.0, 10.0)

    def test_yaml_round_trip(self, tmp_path) -> None:
        settings = Settings()
        settings.analysis.method = "DL"
        settings.analysis.knots["ferritin"] = 5
        settings.analysis.stratify_cutoff = 30.0
        settings.style.bubble_size = (6.0, 4.0)
        settings.verbose = False

        path = tmp_path / "config.yaml"
        save_settings(settings, path)
        loaded = load_settings(path)

        assert loaded == settings
        assert isinstance(loaded.style.bubble_size, tuple)

    def test_partial_yaml(self, tmp_path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text("analysis:\n  ci_level: 0.9\n")
        loaded = load_settings(path)
        assert loaded.analysis.ci_level == 0.9
        assert loaded.analysis.method == "REML"
        assert loaded.verbose

    def test_unknown_key_rejected(self, tmp_path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text("analysis:\n  knot_count: 4\n")
        with pytest.raises(TypeError):
            load_settings(path)

    def test_from_env(self, monkeypatch) -> None:
        monkeypatch.setenv("IRON_META_METHOD", "FE")
        monkeypatch.setenv("IRON_META_N_JOBS", "2")
        monkeypatch.setenv("IRON_META_STRATIFY_CUTOFF", "25")
        monkeypatch.setenv("IRON_META_DATA", "data/studies.csv")
        monkeypatch.setenv("IRON_META_VERBOSE", "0")

        settings = Settings.from_env()
        assert settings.analysis.method == "FE"
        assert settings.analysis.n_jobs == 2
        assert settings.analysis.stratify_cutoff == 25.0
        assert settings.paths.data_path == "data/studies.csv"
        assert not settings.verbose

    def test_from_env_defaults(self, monkeypatch) -> None:
        for name in ("IRON_META_METHOD", "IRON_META_STRATIFY_CUTOFF",
                     "IRON_META_DATA", "IRON_META_VERBOSE"):
            monkeypatch.delenv(name, raising=False)
        settings = Settings.from_env()
        assert settings.analysis.method == "REML"
        assert settings.analysis.stratify_cutoff is None
        assert settings.paths.data_path is None
        assert settings.verbose
