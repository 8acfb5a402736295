from fastapi import APIRouter, Request

from cv_standardizer.models.models import EvaluationResult
from cv_standardizer.models.schemas import CandidateStatusResponse
from cv_standardizer.services.db import get_store
from cv_standardizer.services.worker import request_reprocess
from cv_standardizer.utils.exceptions import NotFoundError
from cv_standardizer.utils.logging_config import get_logger

router = APIRouter()
logger = get_logger(__name__)


@router.get("/{candidate_id}/status", response_model=CandidateStatusResponse, response_model_by_alias=True)
async def get_candidate_status(candidate_id: str, request: Request):
    """Current processing state of a candidate"""
    request_id = getattr(request.state, 'request_id', 'unknown')
    logger.info(f"Fetching status of candidate {candidate_id}", extra={"request_id": request_id})

    candidate = await get_store().get_candidate(candidate_id)
    if candidate is None:
        raise NotFoundError(f"Candidate {candidate_id} not found", resource="candidate", resource_id=candidate_id)

    evaluation = (candidate.get("extracted_data") or {}).get("evaluation")
    return CandidateStatusResponse(
        candidate_id=candidate_id,
        status=candidate.get("status") or "new",
        score=candidate.get("score"),
        processing_note=candidate.get("processing_note"),
        evaluation=EvaluationResult.model_validate(evaluation) if evaluation else None,
        updated_at=candidate.get("updated_at"),
    )


@router.post("/{candidate_id}/reprocess", status_code=202)
async def reprocess_candidate(candidate_id: str, request: Request):
    """Queue a fresh pipeline run for a candidate"""
    request_id = getattr(request.state, 'request_id', 'unknown')
    await request_reprocess(get_store(), candidate_id)
    logger.info(f"Reprocess requested for candidate {candidate_id}", extra={"request_id": request_id})
    return {"success": True, "candidateId": candidate_id, "status": "new"}
