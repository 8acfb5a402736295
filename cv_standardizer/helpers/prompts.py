import json

from cv_standardizer.models.models import EvaluationResult, RawProfile

TRUNCATION_MARKER = "\n\n[...truncated...]\n\n"

PARSER_SYSTEM_PROMPT = (
    "Extract contact info, skills, and work history from this CV into a clean JSON structure. "
    "Return ONLY valid JSON (no markdown, no code fences). "
    "Use this shape: { contact: { fullName?: string, email?: string, phone?: string, location?: string, links?: string[] }, "
    "summary?: string, skills: string[], experience: Array<{ company?: string, title?: string, startDate?: string, "
    "endDate?: string, highlights?: string[] }>, education?: Array<{ school?: string, degree?: string, startDate?: string, "
    "endDate?: string }>, certifications?: string[], projects?: Array<{ name?: string, description?: string, links?: string[] }> }"
)

GENERATOR_SYSTEM_PROMPT = (
    "Generate polished resume content from the candidate's extracted data. "
    "Company style guide: concise, ATS-friendly, clear headings, bullet highlights, no tables. "
    "Return ONLY valid JSON (no markdown, no code fences) using this shape: "
    "{ summary?: string, skills: string[], experience: Array<{ company?: string, title?: string, startDate?: string, "
    "endDate?: string, highlights?: string[] }>, education?: Array<{ school?: string, degree?: string, startDate?: string, "
    "endDate?: string }>, certifications?: string[], projects?: Array<{ name?: string, description?: string, links?: string[] }>, "
    "languages?: string[], qualities?: string[], interests?: string[] }"
)

REPAIR_SYSTEM_PROMPT = (
    "You repair malformed JSON. The user message contains JSON that failed to parse. "
    "Return ONLY the corrected, valid JSON (no markdown, no code fences, no commentary). "
    "Keep every key and value that is already present; close unterminated strings, arrays and objects; "
    "remove trailing commas. Do not invent new content."
)

GENERATOR_USER_TEMPLATE = """Candidate extracted data (JSON):
{profile}

Evaluation (JSON):
{evaluation}

Generate strong but truthful bullet highlights. If some fields are missing, omit the section."""

REPAIR_USER_TEMPLATE = """The following JSON is malformed. Repair it.

{broken}"""


def truncate_for_model(text: str, max_chars: int) -> str:
    """Keep the head (65%) and tail (25%) of ``text`` when it exceeds the budget."""
    s = text or ""
    if max_chars <= 1000 or len(s) <= max_chars:
        return s
    head = s[: int(max_chars * 0.65)]
    tail = s[len(s) - int(max_chars * 0.25):]
    return f"{head}{TRUNCATION_MARKER}{tail}"


def compact_evaluation(evaluation: EvaluationResult) -> dict:
    return evaluation.model_dump(
        by_alias=True,
        include={"score", "fit_score", "completeness_score", "matched_skills", "missing_skills", "missing_fields", "notes"},
    )


def build_generator_input(profile: RawProfile, evaluation: EvaluationResult) -> str:
    return GENERATOR_USER_TEMPLATE.format(
        profile=json.dumps(profile.model_dump(by_alias=True), ensure_ascii=False),
        evaluation=json.dumps(compact_evaluation(evaluation), ensure_ascii=False),
    )


def build_repair_input(broken: str) -> str:
    return REPAIR_USER_TEMPLATE.format(broken=broken)
