import asyncio

from fastapi import APIRouter, Request

from cv_standardizer.services.db import get_store
from cv_standardizer.services.reports import write_ranking_report
from cv_standardizer.utils.logging_config import get_logger

router = APIRouter()
logger = get_logger(__name__)


@router.post("/{job_posting_id}/report")
async def build_ranking_report(job_posting_id: str, request: Request):
    """Write the CSV ranking and Markdown top table of processed candidates for a job posting"""
    request_id = getattr(request.state, 'request_id', 'unknown')
    candidates = await get_store().list_processed_for_job(job_posting_id)
    csv_path, md_path = await asyncio.to_thread(write_ranking_report, job_posting_id, candidates)
    logger.info(
        f"Ranking report for job {job_posting_id} covers {len(candidates)} candidate(s)",
        extra={"request_id": request_id},
    )
    return {
        "success": True,
        "jobPostingId": job_posting_id,
        "candidates": len(candidates),
        "csvPath": csv_path,
        "markdownPath": md_path,
    }
