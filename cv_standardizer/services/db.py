import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import motor.motor_asyncio
from dotenv import load_dotenv
from pymongo import ASCENDING, DESCENDING, ReturnDocument

from cv_standardizer.models.models import CandidateStatus, Requirements
from cv_standardizer.services.normalization import coerce_requirements
from cv_standardizer.utils.logging_config import get_logger

logger = get_logger(__name__)

# Load environment variables from .env
load_dotenv()

MONGO_DETAILS = os.getenv("MONGO_DETAILS", "mongodb://localhost:27017")
DB_NAME = os.getenv("DB_NAME", "cv_standardizer")

CANDIDATES = "candidates"
JOB_POSTINGS = "job_postings"
SETTINGS = "settings"

_client: Optional[motor.motor_asyncio.AsyncIOMotorClient] = None
_store: Optional["MongoCandidateStore"] = None


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def get_database():
    """Lazily create the motor client; nothing connects until the first query."""
    global _client
    if _client is None:
        logger.info(f"Initializing MongoDB connection to database: {DB_NAME}")
        try:
            _client = motor.motor_asyncio.AsyncIOMotorClient(MONGO_DETAILS, tz_aware=True)
            logger.info("MongoDB client initialized successfully")
        except Exception as e:
            logger.error(f"Failed to initialize MongoDB client: {e}")
            raise
    return _client[DB_NAME]


class MongoCandidateStore:
    """
    Candidate, job posting and settings persistence.

    Candidate documents are keyed by ``candidate_id`` and store snake_case
    fields; ``extracted_data`` holds the camelCase payload of a run.
    """

    def __init__(self, db=None):
        db = db if db is not None else get_database()
        self.candidates = db[CANDIDATES]
        self.job_postings = db[JOB_POSTINGS]
        self.settings = db[SETTINGS]

    async def get_candidate(self, candidate_id: str) -> Optional[Dict[str, Any]]:
        return await self.candidates.find_one({"candidate_id": candidate_id}, {"_id": 0})

    async def get_requirements(self, job_posting_id: Optional[str]) -> Requirements:
        if not job_posting_id:
            return Requirements()
        posting = await self.job_postings.find_one({"job_posting_id": job_posting_id}, {"_id": 0, "requirements": 1})
        if not posting:
            logger.warning(f"Job posting {job_posting_id} not found, evaluating without requirements")
            return Requirements()
        return coerce_requirements(posting.get("requirements"))

    async def update_candidate(self, candidate_id: str, fields: Dict[str, Any], unset: Optional[List[str]] = None) -> None:
        update: Dict[str, Any] = {"$set": {**fields, "updated_at": utcnow()}}
        if unset:
            update["$unset"] = {k: "" for k in unset}
        await self.candidates.update_one({"candidate_id": candidate_id}, update)

    async def claim_candidate(self, candidate_id: str) -> bool:
        """Atomic ``new`` -> ``processing`` transition; False when someone else won."""
        now = utcnow()
        doc = await self.candidates.find_one_and_update(
            {"candidate_id": candidate_id, "status": CandidateStatus.NEW.value},
            {"$set": {"status": CandidateStatus.PROCESSING.value, "processing_started_at": now, "updated_at": now}},
            return_document=ReturnDocument.AFTER,
        )
        return doc is not None

    async def find_new_candidates(self, limit: int) -> List[Dict[str, Any]]:
        cursor = (
            self.candidates.find({"status": CandidateStatus.NEW.value}, {"_id": 0})
            .sort("created_at", ASCENDING)
            .limit(limit)
        )
        return await cursor.to_list(length=limit)

    async def find_stuck_candidates(self, cutoff: datetime) -> List[Dict[str, Any]]:
        cursor = self.candidates.find(
            {"status": CandidateStatus.PROCESSING.value, "updated_at": {"$lt": cutoff}},
            {"_id": 0},
        )
        return await cursor.to_list(length=None)

    async def get_setting(self, key: str, default: Any = None) -> Any:
        doc = await self.settings.find_one({"key": key}, {"_id": 0})
        if not doc or doc.get("value") in (None, ""):
            return default
        return doc["value"]

    async def list_processed_for_job(self, job_posting_id: str) -> List[Dict[str, Any]]:
        cursor = self.candidates.find(
            {"job_posting_id": job_posting_id, "status": CandidateStatus.PROCESSED.value},
            {"_id": 0},
        ).sort("score", DESCENDING)
        return await cursor.to_list(length=None)


def get_store() -> MongoCandidateStore:
    global _store
    if _store is None:
        _store = MongoCandidateStore()
    return _store


async def init_indexes():
    """Index initialization for collections."""
    logger.info("Starting database index initialization")
    db = get_database()

    indexes = [
        (CANDIDATES, [("candidate_id", ASCENDING)], {"unique": True}),
        (CANDIDATES, [("status", ASCENDING), ("created_at", ASCENDING)], {}),
        (CANDIDATES, [("job_posting_id", ASCENDING), ("score", DESCENDING)], {}),
        (JOB_POSTINGS, [("job_posting_id", ASCENDING)], {"unique": True}),
        (SETTINGS, [("key", ASCENDING)], {"unique": True}),
    ]
    for coll_name, keys, options in indexes:
        label = f"{coll_name}.({', '.join(k for k, _ in keys)})"
        try:
            await db[coll_name].create_index(keys, **options)
            logger.debug(f"Created index on {label}")
        except Exception as e:
            if "already exists" in str(e).lower():
                logger.debug(f"Index on {label} already exists")
            else:
                logger.warning(f"Could not create index on {label}: {e}")

    logger.info("Database index initialization completed")
