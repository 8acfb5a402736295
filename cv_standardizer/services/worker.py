"""
Poll-based scheduling helpers: claim-and-dispatch, stuck-run watchdog and
reprocess requests.
"""
import asyncio
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Set

from cv_standardizer.models.models import CandidateStatus
from cv_standardizer.models.settings import ProcessingSettings
from cv_standardizer.services.graph import resume_of
from cv_standardizer.utils.exceptions import ConflictError, NotFoundError, ValidationError
from cv_standardizer.utils.logging_config import get_logger

logger = get_logger(__name__)

MIN_BATCH = 1
MAX_BATCH = 10

RESULT_FIELDS = ["extracted_data", "score", "standardized_cv_markdown"]


def clamp_batch_size(batch_size: Optional[int]) -> int:
    size = 3 if batch_size is None else int(batch_size)
    return max(MIN_BATCH, min(MAX_BATCH, size))


async def _run_one(pipeline, candidate_id: str) -> bool:
    try:
        await pipeline.run_pipeline(candidate_id)
        return True
    except Exception as e:
        # status and note were already written by the pipeline
        logger.error(f"Worker run for candidate {candidate_id} failed: {e}")
        return False


async def claim_and_dispatch(store, pipeline, batch_size: int = 3,
                             in_flight: Optional[Set[asyncio.Task]] = None) -> List[str]:
    """
    Claim up to ``batch_size`` new candidates, oldest first, and run them
    concurrently.

    Without ``in_flight`` the call waits for every run to finish. With it,
    each run is started as a task, added to the set and removed again when
    done, and the call returns right after claiming.

    Returns:
        ids of the candidates this call claimed
    """
    limit = clamp_batch_size(batch_size)
    pending = await store.find_new_candidates(limit)
    claimed = []
    for doc in pending:
        candidate_id = doc["candidate_id"]
        if await store.claim_candidate(candidate_id):
            claimed.append(candidate_id)
        else:
            logger.debug(f"Candidate {candidate_id} was claimed elsewhere")

    if not claimed:
        return []

    logger.info(f"Dispatching {len(claimed)} candidate(s): {', '.join(claimed)}")
    if in_flight is not None:
        for candidate_id in claimed:
            task = asyncio.create_task(_run_one(pipeline, candidate_id))
            in_flight.add(task)
            task.add_done_callback(in_flight.discard)
        return claimed

    results = await asyncio.gather(*(_run_one(pipeline, cid) for cid in claimed))
    failed = results.count(False)
    if failed:
        logger.warning(f"{failed} of {len(claimed)} candidate run(s) failed")
    return claimed


async def mark_stuck_candidates(store, timeout_minutes: int, now: Optional[datetime] = None) -> List[str]:
    """Move candidates stuck in ``processing`` past the threshold to ``error``."""
    if timeout_minutes <= 0:
        return []
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(minutes=timeout_minutes)
    stuck = await store.find_stuck_candidates(cutoff)
    note = f"AI processing timed out after {timeout_minutes} minutes. Please try reprocessing."
    marked = []
    for doc in stuck:
        candidate_id = doc["candidate_id"]
        await store.update_candidate(candidate_id, {
            "status": CandidateStatus.ERROR.value,
            "processing_note": note,
        })
        marked.append(candidate_id)
    if marked:
        logger.warning(f"Marked {len(marked)} stuck candidate(s) as error: {', '.join(marked)}")
    return marked


async def request_reprocess(store, candidate_id: str) -> None:
    """
    Queue a fresh run: status back to ``new`` and previous results cleared.

    Raises:
        NotFoundError: unknown candidate
        ConflictError: a run is in progress
        ValidationError: the candidate has no resume
    """
    candidate = await store.get_candidate(candidate_id)
    if candidate is None:
        raise NotFoundError(f"Candidate {candidate_id} not found", resource="candidate", resource_id=candidate_id)
    if candidate.get("status") == CandidateStatus.PROCESSING.value:
        raise ConflictError("Candidate is already processing", status=CandidateStatus.PROCESSING.value)
    if resume_of(candidate) is None:
        raise ValidationError("Candidate has no resume", field="resume")

    await store.update_candidate(
        candidate_id,
        {"status": CandidateStatus.NEW.value, "processing_note": None},
        unset=RESULT_FIELDS,
    )
    logger.info(f"Candidate {candidate_id} queued for reprocessing")


async def worker_loop(store, pipeline, settings: ProcessingSettings, interval_seconds: float = 10.0,
                      stop: Optional[asyncio.Event] = None) -> None:
    """
    Run the watchdog and one claim-and-dispatch tick every ``interval_seconds``
    until ``stop`` is set.

    Runs are not awaited by the tick, so a run that never finishes does not
    hold up the watchdog or later claims. Runs still going when the loop
    stops are cancelled; the watchdog moves them to ``error`` later.
    """
    stop = stop or asyncio.Event()
    in_flight: Set[asyncio.Task] = set()
    logger.info(f"Worker started (batch={settings.worker_batch_size}, every {interval_seconds}s)")
    while not stop.is_set():
        try:
            await mark_stuck_candidates(store, settings.processing_timeout_minutes)
            await claim_and_dispatch(store, pipeline, settings.worker_batch_size, in_flight=in_flight)
        except Exception as e:
            logger.error(f"Worker tick failed: {e}")
        try:
            await asyncio.wait_for(stop.wait(), timeout=interval_seconds)
        except asyncio.TimeoutError:
            pass

    pending = list(in_flight)
    if pending:
        logger.warning(f"Cancelling {len(pending)} unfinished candidate run(s)")
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
    logger.info("Worker stopped")
