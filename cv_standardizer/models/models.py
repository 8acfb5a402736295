from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Serializes with camelCase keys, accepts camelCase or snake_case."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CandidateStatus(str, Enum):
    NEW = "new"
    PROCESSING = "processing"
    PROCESSED = "processed"
    ERROR = "error"


class ResumeRef(CamelModel):
    """Locator of an uploaded resume: a URL relative to the resume root, or http(s)."""
    url: str
    mime: Optional[str] = None
    ext: Optional[str] = None
    name: Optional[str] = None


class ContactInfo(CamelModel):
    full_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    location: Optional[str] = None
    links: List[str] = Field(default_factory=list)


class ExperienceEntry(CamelModel):
    company: Optional[str] = None
    title: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    highlights: List[str] = Field(default_factory=list)


class EducationEntry(CamelModel):
    school: Optional[str] = None
    degree: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None


class ProjectEntry(CamelModel):
    name: Optional[str] = None
    description: Optional[str] = None
    links: List[str] = Field(default_factory=list)


class RawProfile(CamelModel):
    """First-pass structured guess of the generator, after normalization."""
    contact: ContactInfo = Field(default_factory=ContactInfo)
    summary: Optional[str] = None
    skills: List[str] = Field(default_factory=list)
    experience: List[ExperienceEntry] = Field(default_factory=list)
    education: List[EducationEntry] = Field(default_factory=list)
    certifications: List[str] = Field(default_factory=list)
    projects: List[ProjectEntry] = Field(default_factory=list)


class GeneratedContent(CamelModel):
    """Polished restatement of a profile, used only for presentation."""
    summary: Optional[str] = None
    skills: List[str] = Field(default_factory=list)
    experience: List[ExperienceEntry] = Field(default_factory=list)
    education: List[EducationEntry] = Field(default_factory=list)
    certifications: List[str] = Field(default_factory=list)
    projects: List[ProjectEntry] = Field(default_factory=list)
    languages: List[str] = Field(default_factory=list)
    qualities: List[str] = Field(default_factory=list)
    interests: List[str] = Field(default_factory=list)


class Requirements(CamelModel):
    skills_required: List[str] = Field(default_factory=list)
    skills_nice_to_have: List[str] = Field(default_factory=list)
    min_years_experience: Optional[int] = Field(default=None, ge=0)
    notes: Optional[str] = None


class EvaluationResult(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    score: float
    fit_score: float
    completeness_score: float
    matched_skills: List[str] = Field(default_factory=list)
    missing_skills: List[str] = Field(default_factory=list)
    matched_nice_to_have: List[str] = Field(default_factory=list)
    missing_nice_to_have: List[str] = Field(default_factory=list)
    missing_fields: List[str] = Field(default_factory=list)
    experience_years: float = 0.0
    notes: str = ""


class GenerateOptions(BaseModel):
    """Per-call options handed to the generation service."""
    json_mode: bool = True
    timeout_ms: int = Field(default=120_000, ge=1)
    max_output_tokens: int = Field(default=900, ge=1)
    temperature: float = Field(default=0.0, ge=0.0, le=2.0)
