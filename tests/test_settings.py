import json

import pytest
from pydantic import ValidationError

from cv_standardizer.models.settings import (
    DEFAULT_COMPLETENESS_POINTS,
    ScoringSettings,
    load_settings,
    load_skill_aliases,
)
from cv_standardizer.utils.exceptions import ConfigurationError


class TestScoringSettings:
    """Validation of scoring weights"""

    def test_defaults(self):
        """Default settings"""
        settings = ScoringSettings()
        assert sum(settings.completeness_points.values()) == 100
        assert settings.completeness_share == pytest.approx(0.25)

    def test_points_must_sum_to_100(self):
        """Completeness points must sum to 100"""
        points = dict(DEFAULT_COMPLETENESS_POINTS, email=30)
        with pytest.raises(ValidationError):
            ScoringSettings(completeness_points=points)

    def test_points_must_cover_every_check(self):
        """Completeness points must name every check"""
        points = dict(DEFAULT_COMPLETENESS_POINTS)
        links = points.pop("links")
        points["summary"] += links
        with pytest.raises(ValidationError):
            ScoringSettings(completeness_points=points)


class TestLoadSettings:
    """Environment-driven configuration"""

    def test_environment_overrides(self, monkeypatch):
        """Environment variables override defaults"""
        monkeypatch.setenv("OLLAMA_URL", "http://gpu-box:11434/")
        monkeypatch.setenv("OLLAMA_MODEL", "qwen2.5:7b")
        monkeypatch.setenv("CANDIDATE_AI_MAX_CV_CHARS", "12000")
        monkeypatch.setenv("CANDIDATE_AI_PARSE_TIMEOUT_MS", "60000")
        monkeypatch.setenv("DEFAULT_CV_TEMPLATE_KEY", "compact")
        monkeypatch.delenv("SKILL_ALIASES_PATH", raising=False)

        settings = load_settings()

        assert settings.llm_settings.base_url == "http://gpu-box:11434"
        assert settings.llm_settings.model_name == "qwen2.5:7b"
        assert settings.llm_settings.parse_timeout_ms == 60000
        assert settings.processing_settings.max_cv_chars == 12000
        assert settings.processing_settings.default_template_key == "compact"
        assert "kubernetes" in settings.matching_settings.skill_aliases

    @pytest.mark.parametrize("raw,expected", [("0", 1), ("4", 4), ("25", 10)])
    def test_worker_batch_is_clamped(self, monkeypatch, raw, expected):
        """Worker batch size is clamped"""
        monkeypatch.setenv("CANDIDATE_AI_WORKER_BATCH", raw)
        assert load_settings().processing_settings.worker_batch_size == expected

    def test_non_numeric_value(self, monkeypatch):
        """Non-numeric values raise ConfigurationError"""
        monkeypatch.setenv("CANDIDATE_AI_MAX_CV_CHARS", "lots")
        with pytest.raises(ConfigurationError) as exc_info:
            load_settings()
        assert exc_info.value.details["config_key"] == "CANDIDATE_AI_MAX_CV_CHARS"


class TestSkillAliases:
    """Alias table loading"""

    def test_builtin_table(self):
        """Built-in alias table by default"""
        aliases = load_skill_aliases(None)
        assert "k8s" in aliases["kubernetes"]

    def test_file_table(self, tmp_path):
        """Alias table read from a JSON file"""
        path = tmp_path / "aliases.json"
        path.write_text(json.dumps({"postgresql": ["pg", "postgres"]}), encoding="utf-8")
        assert load_skill_aliases(str(path)) == {"postgresql": ["pg", "postgres"]}

    def test_bad_file(self, tmp_path):
        """Malformed alias files raise ConfigurationError"""
        path = tmp_path / "aliases.json"
        path.write_text(json.dumps(["pg"]), encoding="utf-8")
        with pytest.raises(ConfigurationError):
            load_skill_aliases(str(path))

    def test_missing_file(self, tmp_path):
        """Missing alias files raise ConfigurationError"""
        with pytest.raises(ConfigurationError):
            load_skill_aliases(str(tmp_path / "nope.json"))
