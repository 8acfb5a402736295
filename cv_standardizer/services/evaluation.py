"""
Deterministic fit and completeness scoring of a normalized profile.

Nothing in here calls the generator: the same requirements, profile and
``now`` always give the same EvaluationResult, down to the notes string.
"""
import math
import re
from datetime import datetime
from typing import List, Optional, Tuple

from dateutil import parser as dtparser

from cv_standardizer.models.models import EvaluationResult, ExperienceEntry, RawProfile, Requirements
from cv_standardizer.models.settings import MatchingSettings, ScoringSettings
from cv_standardizer.services.matching import build_evidence, match_skills
from cv_standardizer.services.normalization import dedupe_preserving_case, normalize_date_text

DAYS_PER_YEAR = 365.25

ENGLISH_MONTHS = {
    "january": 1, "jan": 1, "february": 2, "feb": 2, "march": 3, "mar": 3,
    "april": 4, "apr": 4, "may": 5, "june": 6, "jun": 6, "july": 7, "jul": 7,
    "august": 8, "aug": 8, "september": 9, "sept": 9, "sep": 9,
    "october": 10, "oct": 10, "november": 11, "nov": 11, "december": 12, "dec": 12,
}

_YEAR_RE = re.compile(r"^(\d{4})$")
_YEAR_MONTH_RE = re.compile(r"^(\d{4})[-/.](\d{1,2})(?:[-/.](\d{1,2}))?$")
_MONTH_YEAR_RE = re.compile(r"^(\d{1,2})[-/.](\d{4})$")
_MONTH_NAME_YEAR_RE = re.compile(r"\b([a-z]+)\.?,?\s+(\d{4})\b")


def round_half_away(value: float, digits: int = 2) -> float:
    """Round half away from zero on ``value * 10**digits``."""
    factor = 10 ** digits
    sign = -1 if value < 0 else 1
    return sign * math.floor(abs(value) * factor + 0.5) / factor


def clamp_score(value: float) -> float:
    return max(0.0, min(100.0, value))


def _safe_date(year: int, month: int = 1, day: int = 1) -> Optional[datetime]:
    try:
        return datetime(year, month, day)
    except ValueError:
        return None


def parse_approx_date(value: Optional[str], now: datetime) -> Optional[datetime]:
    """
    Best-effort parse of a CV date string.

    Accepts a bare year, ``YYYY-MM``, ``MM/YYYY``, English or French month
    names followed by a year, and anything else python-dateutil understands.
    "Present" and its synonyms resolve to ``now``. Returns None when nothing
    matches.
    """
    text = normalize_date_text(value)
    if not text:
        return None
    if text == "Present":
        return now
    s = text.strip().lower()

    m = _YEAR_RE.match(s)
    if m:
        return _safe_date(int(m.group(1)))
    m = _YEAR_MONTH_RE.match(s)
    if m:
        return _safe_date(int(m.group(1)), int(m.group(2)), int(m.group(3) or 1))
    m = _MONTH_YEAR_RE.match(s)
    if m:
        return _safe_date(int(m.group(2)), int(m.group(1)))
    for m in _MONTH_NAME_YEAR_RE.finditer(s):
        month = ENGLISH_MONTHS.get(m.group(1))
        if month:
            return _safe_date(int(m.group(2)), month)

    if not any(ch.isdigit() for ch in s):
        return None
    try:
        parsed = dtparser.parse(text, default=datetime(now.year, 1, 1), fuzzy=True)
    except (ValueError, OverflowError):
        return None
    return parsed.replace(tzinfo=None)


def estimate_experience_years(entries: List[ExperienceEntry], now: datetime) -> float:
    """Sum of dated spans in years; undated or inverted entries contribute nothing."""
    total_days = 0.0
    for entry in entries:
        start = parse_approx_date(entry.start_date, now)
        end = parse_approx_date(entry.end_date, now)
        if start is None or end is None:
            continue
        total_days += max(0.0, (end - start).total_seconds() / 86400.0)
    return total_days / DAYS_PER_YEAR


def _completeness(profile: RawProfile, settings: ScoringSettings) -> Tuple[float, List[str]]:
    contact = profile.contact
    has_experience = bool(profile.experience)
    experience_dated = has_experience and all(e.start_date and e.end_date for e in profile.experience)
    checks = {
        "fullName": bool(contact.full_name),
        "email": bool(contact.email),
        "phone": bool(contact.phone),
        "location": bool(contact.location),
        "links": bool(contact.links),
        "summary": bool(profile.summary),
        "experience": has_experience,
        "experienceDates": experience_dated,
        "education": bool(profile.education),
    }
    points = settings.completeness_points
    total = 0.0
    missing = []
    for label, passed in checks.items():
        if passed:
            total += points.get(label, 0)
        elif label != "experienceDates" or has_experience:
            missing.append(label)
    return clamp_score(total), missing


def _coverage(matched: List[str], total: int) -> float:
    return 1.0 if total == 0 else len(matched) / total


def build_notes(
    matched_required: List[str],
    required_total: int,
    matched_nice: List[str],
    nice_total: int,
    years: float,
    min_years: Optional[int],
    fit_score: float,
    completeness_score: float,
    score: float,
) -> str:
    if min_years:
        experience = f"experience {years:.1f}y vs {min_years}y required"
    else:
        experience = f"experience {years:.1f}y (no minimum)"
    return (
        f"required {len(matched_required)}/{required_total}; "
        f"nice-to-have {len(matched_nice)}/{nice_total}; "
        f"{experience}; "
        f"fit {fit_score:.2f}, completeness {completeness_score:.2f}, score {score:.2f}"
    )


def evaluate(
    requirements: Requirements,
    profile: RawProfile,
    now: Optional[datetime] = None,
    settings: Optional[ScoringSettings] = None,
    matching: Optional[MatchingSettings] = None,
) -> EvaluationResult:
    """Score ``profile`` against ``requirements``. Pure for a fixed ``now``."""
    settings = settings or ScoringSettings()
    now = (now or datetime.now()).replace(tzinfo=None)

    required = dedupe_preserving_case(s.strip() for s in requirements.skills_required if s and s.strip())
    nice = dedupe_preserving_case(s.strip() for s in requirements.skills_nice_to_have if s and s.strip())

    evidence = build_evidence(profile)
    matched_required, missing_required = match_skills(required, evidence, matching)
    matched_nice, missing_nice = match_skills(nice, evidence, matching)

    years = estimate_experience_years(profile.experience, now)
    min_years = requirements.min_years_experience
    experience_coverage = min(1.0, years / min_years) if min_years and min_years > 0 else 1.0

    fit = clamp_score(
        _coverage(matched_required, len(required)) * settings.required_weight
        + _coverage(matched_nice, len(nice)) * settings.nice_to_have_weight
        + experience_coverage * settings.experience_weight
    )
    completeness, missing_fields = _completeness(profile, settings)
    score = clamp_score(fit * settings.fit_share + completeness * settings.completeness_share)

    fit = round_half_away(fit)
    completeness = round_half_away(completeness)
    score = round_half_away(score)
    years_rounded = round_half_away(years, 1)

    return EvaluationResult(
        score=score,
        fit_score=fit,
        completeness_score=completeness,
        matched_skills=matched_required,
        missing_skills=missing_required,
        matched_nice_to_have=matched_nice,
        missing_nice_to_have=missing_nice,
        missing_fields=missing_fields,
        experience_years=years_rounded,
        notes=build_notes(
            matched_required, len(required), matched_nice, len(nice),
            years_rounded, min_years, fit, completeness, score,
        ),
    )
