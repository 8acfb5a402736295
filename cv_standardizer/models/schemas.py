from datetime import datetime
from typing import Any, List, Optional

from pydantic import Field

from cv_standardizer.models.models import CamelModel, EvaluationResult, GeneratedContent, RawProfile, Requirements


# -------- Evaluation --------
class EvaluateRequest(CamelModel):
    requirements: Requirements = Field(default_factory=Requirements)
    profile: RawProfile
    now: Optional[datetime] = None


# -------- JSON recovery --------
class ParseRequest(CamelModel):
    text: str = Field(..., min_length=1)


class ParseResponse(CamelModel):
    value: Any
    recovered: bool


# -------- Rendering --------
class RenderRequest(CamelModel):
    content: GeneratedContent
    template_key: Optional[str] = None


class RenderResponse(CamelModel):
    markdown: str
    template_key: str


class TemplateInfo(CamelModel):
    key: str
    name: str
    description: str
    section_order: List[str]


# -------- Quick skill extraction --------
class ExtractSkillsRequest(CamelModel):
    text: str = Field(..., min_length=1)


class ExtractSkillsResponse(CamelModel):
    skills: List[str]
    profile: RawProfile
    recovered: bool


# -------- Candidates --------
class CandidateStatusResponse(CamelModel):
    candidate_id: str
    status: str
    score: Optional[float] = None
    processing_note: Optional[str] = None
    evaluation: Optional[EvaluationResult] = None
    updated_at: Optional[datetime] = None
