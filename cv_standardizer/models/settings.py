"""
Pipeline Settings Models for Configuration Management
"""
import json
import os
from pathlib import Path
from typing import Dict, List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

from cv_standardizer.utils.exceptions import ConfigurationError

# Canonical compact key -> alias phrases that name the same skill.
DEFAULT_SKILL_ALIASES: Dict[str, List[str]] = {
    "javascript": ["js", "ecmascript", "es6", "java script"],
    "typescript": ["ts", "type script"],
    "nodejs": ["node", "node js", "node.js"],
    "react": ["reactjs", "react js", "react.js"],
    "reactnative": ["react native"],
    "vue": ["vuejs", "vue js", "vue.js"],
    "angular": ["angularjs", "angular js", "angular.js"],
    "nextjs": ["next js", "next.js"],
    "nuxt": ["nuxtjs", "nuxt js", "nuxt.js"],
    "express": ["expressjs", "express js", "express.js"],
    "nestjs": ["nest js", "nest.js"],
    "mongodb": ["mongo", "mongo db", "mango db"],
    "postgresql": ["postgres", "postgre sql", "psql"],
    "mysql": ["my sql"],
    "mssql": ["sql server", "microsoft sql server"],
    "kubernetes": ["k8s"],
    "golang": ["go", "go lang"],
    "csharp": ["c#", "c sharp"],
    "dotnet": ["dot net", "net core"],
    "springboot": ["spring boot"],
    "aws": ["amazon web services"],
    "gcp": ["google cloud", "google cloud platform"],
    "azure": ["microsoft azure"],
    "cicd": ["ci cd", "ci/cd", "continuous integration"],
    "machinelearning": ["machine learning"],
    "tailwindcss": ["tailwind", "tailwind css"],
    "restapi": ["rest api", "restful", "restful api"],
}

DEFAULT_COMPLETENESS_POINTS: Dict[str, float] = {
    "fullName": 10,
    "email": 20,
    "phone": 10,
    "location": 10,
    "links": 5,
    "summary": 10,
    "experience": 15,
    "experienceDates": 10,
    "education": 10,
}


class LLMSettings(BaseModel):
    """Generation service configuration"""
    base_url: str = Field(default="http://ollama:11434", description="Ollama base URL")
    model_name: str = Field(default="llama3.2:3b", description="Chat model name")
    keep_alive: str = Field(default="5m", description="How long the model stays loaded")
    parse_timeout_ms: int = Field(default=120_000, ge=1000, description="Timeout of the CV parse call")
    generate_timeout_ms: int = Field(default=180_000, ge=1000, description="Timeout of the content generation call")
    repair_timeout_ms: int = Field(default=90_000, ge=1000, description="Timeout of the JSON repair call")
    parse_max_tokens: int = Field(default=900, ge=1, description="num_predict for the parse call")
    generate_max_tokens: int = Field(default=1400, ge=1, description="num_predict for generation and repair calls")
    temperature: float = Field(default=0.0, ge=0.0, le=2.0, description="Sampling temperature for JSON calls")


class ProcessingSettings(BaseModel):
    """Processing and scheduling configuration"""
    max_cv_chars: int = Field(default=18000, ge=0, description="Character budget of the CV sent to the model")
    worker_batch_size: int = Field(default=3, ge=1, le=10, description="Candidates claimed per worker tick")
    processing_timeout_minutes: int = Field(default=15, ge=0, description="Watchdog threshold for stuck runs")
    default_template_key: str = Field(default="standard", description="Template used when a candidate has none")
    resume_root: str = Field(default="./public", description="Root folder for relative resume URLs")


class ScoringSettings(BaseModel):
    """Weights of the deterministic evaluation"""
    required_weight: float = Field(default=75, ge=0)
    nice_to_have_weight: float = Field(default=15, ge=0)
    experience_weight: float = Field(default=10, ge=0)
    fit_share: float = Field(default=0.75, ge=0.0, le=1.0, description="Share of fit in the final score")
    completeness_points: Dict[str, float] = Field(default_factory=lambda: dict(DEFAULT_COMPLETENESS_POINTS))

    @field_validator('completeness_points')
    @classmethod
    def validate_points(cls, v):
        missing = set(DEFAULT_COMPLETENESS_POINTS) - set(v)
        if missing:
            raise ValueError(f"Completeness points missing checks: {sorted(missing)}")
        if abs(sum(v.values()) - 100) > 1e-9:
            raise ValueError('Completeness points must sum to 100')
        return v

    @property
    def completeness_share(self) -> float:
        return 1.0 - self.fit_share


class MatchingSettings(BaseModel):
    """Skill alias table and substring matching thresholds"""
    skill_aliases: Dict[str, List[str]] = Field(default_factory=lambda: {k: list(v) for k, v in DEFAULT_SKILL_ALIASES.items()})
    compact_match_min_length: int = Field(
        default=3, ge=0,
        description="Single-token variants shorter than this only match as whole words"
    )


class PipelineSettings(BaseModel):
    """Complete pipeline configuration"""
    llm_settings: LLMSettings = Field(default_factory=LLMSettings)
    processing_settings: ProcessingSettings = Field(default_factory=ProcessingSettings)
    scoring_settings: ScoringSettings = Field(default_factory=ScoringSettings)
    matching_settings: MatchingSettings = Field(default_factory=MatchingSettings)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(float(raw))
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number", config_key=name, config_value=raw, cause=e) from e


def load_skill_aliases(path: Optional[str]) -> Dict[str, List[str]]:
    """Load an alias table from a JSON file, falling back to the built-in table."""
    if not path:
        return {k: list(v) for k, v in DEFAULT_SKILL_ALIASES.items()}
    p = Path(path)
    try:
        data = json.loads(p.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise ConfigurationError(f"Could not load skill aliases from {path}: {e}", config_key="SKILL_ALIASES_PATH", cause=e) from e
    if not isinstance(data, dict) or not all(isinstance(v, list) for v in data.values()):
        raise ConfigurationError("Skill aliases file must map strings to lists", config_key="SKILL_ALIASES_PATH", config_value=path)
    return {str(k): [str(a) for a in v] for k, v in data.items()}


def load_settings() -> PipelineSettings:
    """Build settings from the environment (and a local .env file)."""
    load_dotenv()

    llm = LLMSettings(
        base_url=(os.getenv("OLLAMA_URL") or "http://ollama:11434").rstrip("/"),
        model_name=os.getenv("OLLAMA_MODEL", "llama3.2:3b"),
        keep_alive=os.getenv("OLLAMA_KEEP_ALIVE", "5m"),
        parse_timeout_ms=_env_int("CANDIDATE_AI_PARSE_TIMEOUT_MS", 120_000),
        generate_timeout_ms=_env_int("CANDIDATE_AI_GENERATE_TIMEOUT_MS", 180_000),
        repair_timeout_ms=_env_int("CANDIDATE_AI_REPAIR_TIMEOUT_MS", 90_000),
        parse_max_tokens=_env_int("OLLAMA_NUM_PREDICT_PARSE", 900),
        generate_max_tokens=_env_int("OLLAMA_NUM_PREDICT_GENERATE", 1400),
    )
    processing = ProcessingSettings(
        max_cv_chars=_env_int("CANDIDATE_AI_MAX_CV_CHARS", 18000),
        worker_batch_size=max(1, min(10, _env_int("CANDIDATE_AI_WORKER_BATCH", 3))),
        processing_timeout_minutes=_env_int("CANDIDATE_PROCESSING_TIMEOUT_MINUTES", 15),
        default_template_key=os.getenv("DEFAULT_CV_TEMPLATE_KEY", "standard"),
        resume_root=os.getenv("RESUME_ROOT", "./public"),
    )
    matching = MatchingSettings(
        skill_aliases=load_skill_aliases(os.getenv("SKILL_ALIASES_PATH")),
        compact_match_min_length=_env_int("SKILL_COMPACT_MATCH_MIN_LENGTH", 3),
    )
    return PipelineSettings(
        llm_settings=llm,
        processing_settings=processing,
        matching_settings=matching,
    )
