from typing import List

from fastapi import APIRouter, Request

from cv_standardizer.models.models import EvaluationResult
from cv_standardizer.models.schemas import (
    EvaluateRequest,
    ExtractSkillsRequest,
    ExtractSkillsResponse,
    ParseRequest,
    ParseResponse,
    RenderRequest,
    RenderResponse,
    TemplateInfo,
)
from cv_standardizer.services.evaluation import evaluate
from cv_standardizer.services.graph import get_pipeline, quick_extract_profile
from cv_standardizer.services.json_recovery import parse_with_recovery
from cv_standardizer.services.rendering import list_templates, render_template
from cv_standardizer.utils.logging_config import PerformanceMonitor, get_logger

router = APIRouter()
logger = get_logger(__name__)


@router.post("/evaluate", response_model=EvaluationResult, response_model_by_alias=True)
async def evaluate_profile(body: EvaluateRequest, request: Request):
    """Score a profile against requirements without touching the store"""
    request_id = getattr(request.state, 'request_id', 'unknown')
    settings = get_pipeline().settings
    with PerformanceMonitor("evaluate_profile", logger, threshold_ms=100):
        result = evaluate(
            body.requirements,
            body.profile,
            now=body.now,
            settings=settings.scoring_settings,
            matching=settings.matching_settings,
        )
    logger.info(f"Evaluated profile: {result.notes}", extra={"request_id": request_id})
    return result


@router.post("/parse", response_model=ParseResponse, response_model_by_alias=True)
async def parse_json(body: ParseRequest):
    """Recover a JSON value from near-JSON text"""
    result = parse_with_recovery(body.text)
    if result.recovered:
        logger.warning("Submitted text needed JSON recovery")
    return ParseResponse(value=result.value, recovered=result.recovered)


@router.post("/render", response_model=RenderResponse, response_model_by_alias=True)
async def render_content(body: RenderRequest):
    """Render generated content with a catalog template"""
    default_key = get_pipeline().settings.processing_settings.default_template_key
    markdown, key = render_template(body.template_key, body.content, default_key=default_key)
    return RenderResponse(markdown=markdown, template_key=key)


@router.get("/templates", response_model=List[TemplateInfo], response_model_by_alias=True)
async def get_templates():
    return list_templates()


@router.post("/tools/extract-skills", response_model=ExtractSkillsResponse, response_model_by_alias=True)
async def extract_skills(body: ExtractSkillsRequest, request: Request):
    """Quick skill extraction from pasted CV text, no candidate record involved"""
    request_id = getattr(request.state, 'request_id', 'unknown')
    pipeline = get_pipeline()
    with PerformanceMonitor("extract_skills", logger, threshold_ms=30_000):
        profile, recovered = await quick_extract_profile(body.text, pipeline.generator, pipeline.settings)
    logger.info(f"Extracted {len(profile.skills)} skills", extra={"request_id": request_id})
    return ExtractSkillsResponse(skills=profile.skills, profile=profile, recovered=recovered)
