import pytest
from fastapi.testclient import TestClient
from unittest.mock import MagicMock, patch

from cv_standardizer.models.models import ExperienceEntry, RawProfile, Requirements
from cv_standardizer.models.settings import PipelineSettings
from cv_standardizer.services.evaluation import evaluate
from cv_standardizer.utils.exceptions import UpstreamTimeout
from conftest import FIXED_NOW, PROFILE_JSON, FakeStore, ScriptedGenerator


@pytest.fixture
def test_app():
    from cv_standardizer.main import app
    return app


@pytest.fixture
def client(test_app):
    return TestClient(test_app)


def fake_pipeline(replies=()):
    pipeline = MagicMock()
    pipeline.settings = PipelineSettings()
    pipeline.generator = ScriptedGenerator(replies)
    return pipeline


class TestEvaluationRoutes:
    """Stateless evaluation, parsing and rendering endpoints"""

    @patch('cv_standardizer.routers.evaluation.get_pipeline')
    def test_evaluate(self, mock_get_pipeline, client):
        """Scoring a profile returns the camelCase evaluation"""
        mock_get_pipeline.return_value = fake_pipeline()

        response = client.post("/api/evaluate", json={
            "requirements": {"skillsRequired": ["python"], "minYearsExperience": 3},
            "profile": {
                "skills": ["Python", "AWS"],
                "experience": [{"startDate": "2020", "endDate": "Present"}],
            },
            "now": "2025-06-01T00:00:00",
        })

        assert response.status_code == 200
        data = response.json()
        assert data["score"] == 81.25
        assert data["fitScore"] == 100.0
        assert data["completenessScore"] == 25.0
        assert data["matchedSkills"] == ["python"]
        assert data["experienceYears"] == 5.4
        assert "X-Request-ID" in response.headers
        assert "X-Processing-Time" in response.headers

    def test_parse_recovers_fenced_json(self, client):
        """Fenced JSON with a trailing comma parses and is flagged as recovered"""
        response = client.post("/api/parse", json={"text": '```json\n{"skills": ["Go",]}\n```'})
        assert response.status_code == 200
        assert response.json() == {"value": {"skills": ["Go"]}, "recovered": True}

    def test_parse_unrecoverable_text(self, client):
        """Unrecoverable text maps to a structured 422 error"""
        response = client.post("/api/parse", json={"text": "no json here"})
        assert response.status_code == 422
        data = response.json()
        assert data["success"] is False
        assert data["status_code"] == 422
        assert data["error"]["error_code"] == "JSON_RECOVERY_ERROR"
        assert response.headers["X-Request-ID"] == data["request_id"]

    def test_parse_rejects_empty_text(self, client):
        """Empty text fails request validation"""
        response = client.post("/api/parse", json={"text": ""})
        assert response.status_code == 422

    @patch('cv_standardizer.routers.evaluation.get_pipeline')
    def test_render_unknown_template(self, mock_get_pipeline, client):
        """Unknown template keys render with the standard layout"""
        mock_get_pipeline.return_value = fake_pipeline()

        response = client.post("/api/render", json={
            "content": {"summary": "Hi", "skills": ["Go", "Rust"]},
            "templateKey": "retro",
        })

        assert response.status_code == 200
        assert response.json() == {"markdown": "## Summary\n\nHi\n\n## Skills\n\n- Go\n- Rust\n", "templateKey": "standard"}

    def test_templates(self, client):
        """The catalog lists every template, standard first"""
        response = client.get("/api/templates")
        assert response.status_code == 200
        templates = response.json()
        assert len(templates) == 11
        assert templates[0]["key"] == "standard"
        assert templates[0]["sectionOrder"][0] == "summary"

    @patch('cv_standardizer.routers.evaluation.get_pipeline')
    def test_extract_skills(self, mock_get_pipeline, client):
        """Free text goes through the parse call and returns skills and profile"""
        mock_get_pipeline.return_value = fake_pipeline([PROFILE_JSON])

        response = client.post("/api/tools/extract-skills", json={"text": "Ada Lovelace, Python and AWS"})

        assert response.status_code == 200
        data = response.json()
        assert data["skills"] == ["Python", "AWS"]
        assert data["recovered"] is False
        assert data["profile"]["contact"]["fullName"] == "Ada Lovelace"

    @patch('cv_standardizer.routers.evaluation.get_pipeline')
    def test_extract_skills_timeout(self, mock_get_pipeline, client):
        """A generator timeout maps to 504"""
        mock_get_pipeline.return_value = fake_pipeline([UpstreamTimeout("too slow", timeout_ms=10)])

        response = client.post("/api/tools/extract-skills", json={"text": "Ada Lovelace"})

        assert response.status_code == 504
        assert response.json()["success"] is False


class TestCandidateRoutes:
    """Candidate status and reprocess endpoints"""

    @patch('cv_standardizer.routers.candidates.get_store')
    def test_status(self, mock_get_store, client):
        """Status of a processed candidate includes its evaluation"""
        profile = RawProfile(skills=["Python"], experience=[ExperienceEntry(start_date="2020", end_date="Present")])
        evaluation = evaluate(Requirements(skills_required=["Python"]), profile, now=FIXED_NOW)
        mock_get_store.return_value = FakeStore(candidates=[{
            "candidate_id": "c1",
            "status": "processed",
            "score": evaluation.score,
            "extracted_data": {"evaluation": evaluation.model_dump(by_alias=True)},
        }])

        response = client.get("/api/candidates/c1/status")

        assert response.status_code == 200
        data = response.json()
        assert data["candidateId"] == "c1"
        assert data["status"] == "processed"
        assert data["score"] == evaluation.score
        assert data["evaluation"]["matchedSkills"] == ["Python"]
        assert data["processingNote"] is None

    @patch('cv_standardizer.routers.candidates.get_store')
    def test_status_not_found(self, mock_get_store, client):
        """Unknown candidates give 404 with the resource id"""
        mock_get_store.return_value = FakeStore()
        response = client.get("/api/candidates/ghost/status")
        assert response.status_code == 404
        assert response.json()["error"]["details"]["resource_id"] == "ghost"

    @patch('cv_standardizer.routers.candidates.get_store')
    def test_reprocess(self, mock_get_store, client):
        """Reprocessing resets status and clears previous results"""
        store = FakeStore(candidates=[{
            "candidate_id": "c1", "status": "error", "resume": {"url": "/uploads/cv.pdf"}, "score": 40.0,
        }])
        mock_get_store.return_value = store

        response = client.post("/api/candidates/c1/reprocess")

        assert response.status_code == 202
        assert response.json() == {"success": True, "candidateId": "c1", "status": "new"}
        assert store.candidates["c1"]["status"] == "new"
        assert "score" not in store.candidates["c1"]

    @patch('cv_standardizer.routers.candidates.get_store')
    def test_reprocess_while_processing(self, mock_get_store, client):
        """A running candidate cannot be reprocessed"""
        mock_get_store.return_value = FakeStore(candidates=[{
            "candidate_id": "c1", "status": "processing", "resume": {"url": "/uploads/cv.pdf"},
        }])
        response = client.post("/api/candidates/c1/reprocess")
        assert response.status_code == 409

    @patch('cv_standardizer.routers.candidates.get_store')
    def test_reprocess_without_resume(self, mock_get_store, client):
        """A candidate without a resume cannot be reprocessed"""
        mock_get_store.return_value = FakeStore(candidates=[{"candidate_id": "c1", "status": "error"}])
        response = client.post("/api/candidates/c1/reprocess")
        assert response.status_code == 400


class TestReportRoutes:
    """Ranking report endpoint"""

    @patch('cv_standardizer.routers.reports.get_store')
    def test_build_report(self, mock_get_store, client, tmp_path):
        """Report covers processed candidates only and writes both files"""
        mock_get_store.return_value = FakeStore(candidates=[
            {"candidate_id": "c1", "job_posting_id": "job-1", "status": "processed", "score": 70.0},
            {"candidate_id": "c2", "job_posting_id": "job-1", "status": "processed", "score": 90.0},
            {"candidate_id": "c3", "job_posting_id": "job-1", "status": "new"},
        ])

        with patch('cv_standardizer.services.reports.REPORT_DIR', str(tmp_path)):
            response = client.post("/api/jobs/job-1/report")

        assert response.status_code == 200
        data = response.json()
        assert data["candidates"] == 2
        assert (tmp_path / "job-1_ranking.csv").exists()
        assert data["markdownPath"] == str(tmp_path / "job-1_top.md")


class TestHealth:
    """Health check"""

    def test_health(self, client):
        """Health check reports healthy"""
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_health_head(self, client):
        """HEAD on the health check is allowed"""
        assert client.head("/health").status_code == 200

    def test_request_id_is_echoed(self, client):
        """An incoming request id is reused in the response"""
        response = client.get("/health", headers={"X-Request-ID": "gateway-42"})
        assert response.headers["X-Request-ID"] == "gateway-42"
