import json
import os
from datetime import datetime

import pytest

os.environ.setdefault("ENVIRONMENT", "testing")

from cv_standardizer.models.models import Requirements  # noqa: E402
from cv_standardizer.services.normalization import coerce_requirements  # noqa: E402
from cv_standardizer.utils.exceptions import UpstreamError  # noqa: E402

FIXED_NOW = datetime(2025, 6, 1)

PROFILE = {
    "contact": {"fullName": "Ada Lovelace", "email": "ada@example.com"},
    "summary": "Backend engineer building data APIs.",
    "skills": ["Python", "AWS"],
    "experience": [
        {
            "company": "Acme",
            "title": "Engineer",
            "startDate": "2020",
            "endDate": "Present",
            "highlights": ["Built REST APIs on AWS Lambda"],
        }
    ],
    "education": [{"school": "MIT", "degree": "BSc Computer Science"}],
}

CONTENT = {
    "summary": "Seasoned backend engineer.",
    "skills": ["Python", "AWS"],
    "experience": [
        {
            "company": "Acme",
            "title": "Senior Engineer",
            "startDate": "2020",
            "endDate": "Present",
            "highlights": ["Designed serverless APIs"],
        }
    ],
    "languages": ["English"],
}

PROFILE_JSON = json.dumps(PROFILE)
CONTENT_JSON = json.dumps(CONTENT)


class FakeStore:
    """In-memory stand-in for MongoCandidateStore."""

    def __init__(self, candidates=None, requirements=None, settings=None):
        self.candidates = {c["candidate_id"]: dict(c) for c in (candidates or [])}
        self.requirements = requirements or {}
        self.settings = settings or {}
        self.updates = []

    async def get_candidate(self, candidate_id):
        doc = self.candidates.get(candidate_id)
        return dict(doc) if doc is not None else None

    async def get_requirements(self, job_posting_id):
        if not job_posting_id:
            return Requirements()
        return coerce_requirements(self.requirements.get(job_posting_id))

    async def update_candidate(self, candidate_id, fields, unset=None):
        self.updates.append((candidate_id, dict(fields)))
        doc = self.candidates.setdefault(candidate_id, {"candidate_id": candidate_id})
        doc.update(fields)
        for key in unset or []:
            doc.pop(key, None)

    async def claim_candidate(self, candidate_id):
        doc = self.candidates.get(candidate_id)
        if doc is None or doc.get("status") != "new":
            return False
        doc["status"] = "processing"
        return True

    async def find_new_candidates(self, limit):
        return [dict(d) for d in self.candidates.values() if d.get("status") == "new"][:limit]

    async def find_stuck_candidates(self, cutoff):
        return [
            dict(d) for d in self.candidates.values()
            if d.get("status") == "processing" and d.get("updated_at") and d["updated_at"] < cutoff
        ]

    async def get_setting(self, key, default=None):
        return self.settings.get(key, default)

    async def list_processed_for_job(self, job_posting_id):
        return [
            dict(d) for d in self.candidates.values()
            if d.get("job_posting_id") == job_posting_id and d.get("status") == "processed"
        ]


class ScriptedGenerator:
    """Replies from a script in order; Exception entries are raised instead."""

    def __init__(self, replies):
        self.replies = list(replies)
        self.calls = []

    async def generate(self, system_prompt, user_prompt, opts):
        self.calls.append((system_prompt, user_prompt, opts))
        if not self.replies:
            raise UpstreamError("No scripted reply left")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


@pytest.fixture
def fixed_now():
    return FIXED_NOW


@pytest.fixture
def candidate():
    return {
        "candidate_id": "cand-1",
        "status": "processing",
        "resume": {"url": "/uploads/ada.pdf", "mime": "application/pdf", "ext": ".pdf"},
        "job_posting_id": "job-1",
        "cv_template_key": "skills_first",
    }


@pytest.fixture
def store(candidate):
    return FakeStore(
        candidates=[candidate],
        requirements={"job-1": {"skillsRequired": ["python"], "minYearsExperience": 3}},
    )
