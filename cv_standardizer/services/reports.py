import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd

from cv_standardizer.utils.logging_config import get_logger

logger = get_logger(__name__)

REPORT_DIR = os.getenv("REPORT_DIR", "./reports")

COLUMNS = [
    "candidate_id", "full_name", "score", "fit_score", "completeness_score",
    "experience_years", "matched", "missing", "missing_fields", "notes",
]


def _row(candidate: Dict[str, Any]) -> Dict[str, Any]:
    evaluation = (candidate.get("extracted_data") or {}).get("evaluation") or {}
    return {
        "candidate_id": candidate.get("candidate_id"),
        "full_name": candidate.get("full_name") or "",
        "score": float(candidate.get("score") or evaluation.get("score") or 0.0),
        "fit_score": float(evaluation.get("fitScore") or 0.0),
        "completeness_score": float(evaluation.get("completenessScore") or 0.0),
        "experience_years": float(evaluation.get("experienceYears") or 0.0),
        "matched": len(evaluation.get("matchedSkills") or []),
        "missing": len(evaluation.get("missingSkills") or []),
        "missing_fields": ", ".join(evaluation.get("missingFields") or []),
        "notes": evaluation.get("notes") or "",
    }


def write_ranking_report(
    job_posting_id: str,
    candidates: List[Dict[str, Any]],
    report_dir: Optional[str] = None,
) -> Tuple[str, str]:
    """Write ``<job>_ranking.csv`` and ``<job>_top.md`` for processed candidates."""
    report_dir = report_dir or REPORT_DIR
    Path(report_dir).mkdir(parents=True, exist_ok=True)

    df = pd.DataFrame([_row(c) for c in candidates], columns=COLUMNS)
    if len(df):
        df = df.sort_values(["score", "candidate_id"], ascending=[False, True])

    csv_path = os.path.join(report_dir, f"{job_posting_id}_ranking.csv")
    df.to_csv(csv_path, index=False)  # headers only when empty

    md_lines = [f"# Job {job_posting_id} Top Candidates", ""]
    if len(df):
        md_lines += [
            "| Rank | Candidate | Name | Score | Fit | Completeness | Matched | Missing |",
            "|---:|---|---|---:|---:|---:|---:|---:|",
        ]
        for i, r in enumerate(df.head(10).itertuples(), start=1):
            md_lines.append(
                f"| {i} | {r.candidate_id} | {r.full_name} | {r.score:.2f} | {r.fit_score:.2f} | "
                f"{r.completeness_score:.2f} | {r.matched} | {r.missing} |"
            )
    else:
        md_lines.append("> No processed candidates for this job posting.")

    md_path = os.path.join(report_dir, f"{job_posting_id}_top.md")
    Path(md_path).write_text("\n".join(md_lines) + "\n", encoding="utf-8")
    logger.info(f"Wrote ranking report for job {job_posting_id} ({len(df)} candidates)")
    return csv_path, md_path
