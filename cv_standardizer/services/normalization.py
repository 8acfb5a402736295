"""
Coercion of loosely-typed generator output into normalized profile models.

Generators return strings where lists are expected, lists where strings are
expected, synonyms for field names and dates in several languages. Everything
here is pure: the same input always yields the same model.
"""
import re
from typing import Any, Dict, Iterable, List, Optional, Tuple

from cv_standardizer.models.models import (
    ContactInfo,
    EducationEntry,
    ExperienceEntry,
    GeneratedContent,
    ProjectEntry,
    RawProfile,
    Requirements,
)

PRESENT_SYNONYMS = {
    "present", "current", "currently", "now", "today", "ongoing", "to date", "till date", "till now",
    "aujourd'hui", "aujourd’hui", "actuel", "actuelle", "actuellement", "en cours", "présent",
    "maintenant", "à ce jour", "a ce jour", "ce jour", "à présent", "a present",
}

FRENCH_MONTHS = {
    "janvier": "January", "janv": "January",
    "février": "February", "fevrier": "February", "févr": "February", "fevr": "February", "fév": "February",
    "mars": "March",
    "avril": "April", "avr": "April",
    "mai": "May",
    "juin": "June",
    "juillet": "July", "juil": "July",
    "août": "August", "aout": "August",
    "septembre": "September",
    "octobre": "October",
    "novembre": "November",
    "décembre": "December", "decembre": "December", "déc": "December",
}
_FRENCH_MONTH_RE = re.compile(
    r"(?<![\w])(" + "|".join(sorted((re.escape(m) for m in FRENCH_MONTHS), key=len, reverse=True)) + r")\.?(?![\w])",
    re.IGNORECASE,
)
_RANGE_SPLIT_RE = re.compile(r"\s*(?:–|—|\s-\s|\bto\b|\bà\b|\bau\b|\bjusqu'à\b)\s*", re.IGNORECASE)


def _as_text(x: Any) -> Optional[str]:
    if x is None or isinstance(x, bool):
        return None
    if isinstance(x, list):
        # join list of sentences or tokens into one paragraph
        x = " ".join(str(t).strip() for t in x if t is not None and str(t).strip())
    elif isinstance(x, dict):
        return None
    s = re.sub(r"[ \t]+", " ", str(x)).strip()
    return s or None


def _item_text(x: Any) -> Optional[str]:
    if isinstance(x, dict):
        for key in ("name", "skill", "label", "title", "value", "language", "url"):
            if key in x:
                return _as_text(x.get(key))
        return None
    return _as_text(x)


def _as_list(x: Any) -> List[str]:
    if x is None:
        return []
    if isinstance(x, str):
        # split on commas/semicolons/newlines; normalize tokens
        parts = re.split(r"[,;\n]", x)
        return [p.strip() for p in parts if p.strip()]
    if isinstance(x, (list, tuple)):
        return [t for t in (_item_text(i) for i in x) if t]
    text = _item_text(x)
    return [text] if text else []


def dedupe_preserving_case(items: Iterable[str]) -> List[str]:
    """Case-insensitive dedupe keeping the first-seen spelling and order."""
    seen = set()
    out = []
    for item in items:
        if not item:
            continue
        key = item.casefold()
        if key in seen:
            continue
        seen.add(key)
        out.append(item)
    return out


def _clean_list(x: Any) -> List[str]:
    return dedupe_preserving_case(_as_list(x))


def _pick(data: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in data and data[key] not in (None, "", []):
            return data[key]
    return None


def is_present_token(value: str) -> bool:
    return value.strip().strip(".").casefold() in PRESENT_SYNONYMS


def translate_french_months(value: str) -> str:
    return _FRENCH_MONTH_RE.sub(lambda m: FRENCH_MONTHS[m.group(1).lower()], value)


def normalize_date_text(value: Any) -> Optional[str]:
    """Trim a date string, map 'present' synonyms to 'Present' and French months to English."""
    text = _as_text(value)
    if not text:
        return None
    if is_present_token(text):
        return "Present"
    return translate_french_months(text)


def _split_range(value: Any) -> Tuple[Optional[str], Optional[str]]:
    text = _as_text(value)
    if not text:
        return None, None
    parts = [p for p in _RANGE_SPLIT_RE.split(text, maxsplit=1) if p and p.strip()]
    if len(parts) == 2:
        return parts[0], parts[1]
    return text, None


def _dates_of(entry: Dict[str, Any]) -> Tuple[Optional[str], Optional[str]]:
    start = _pick(entry, "startDate", "start_date", "start", "from", "dateFrom")
    end = _pick(entry, "endDate", "end_date", "end", "to", "dateTo")
    if start is None and end is None:
        start, end = _split_range(_pick(entry, "dates", "period", "date", "duration"))
    return normalize_date_text(start), normalize_date_text(end)


def _dedupe_entries(entries: Iterable[Any], key_fields: Tuple[str, ...]) -> list:
    seen = set()
    out = []
    for entry in entries:
        key = tuple((getattr(entry, f) or "").casefold() for f in key_fields)
        if key in seen:
            continue
        seen.add(key)
        out.append(entry)
    return out


def _normalize_experience(value: Any) -> List[ExperienceEntry]:
    entries = []
    for item in value if isinstance(value, list) else []:
        if not isinstance(item, dict):
            continue
        start, end = _dates_of(item)
        entry = ExperienceEntry(
            company=_as_text(_pick(item, "company", "employer", "organization", "organisation")),
            title=_as_text(_pick(item, "title", "role", "position", "jobTitle")),
            start_date=start,
            end_date=end,
            highlights=_clean_list(_pick(item, "highlights", "bullets", "responsibilities", "achievements", "description")),
        )
        if entry.company or entry.title or entry.start_date or entry.end_date or entry.highlights:
            entries.append(entry)
    return _dedupe_entries(entries, ("company", "title", "start_date", "end_date"))


def _normalize_education(value: Any) -> List[EducationEntry]:
    entries = []
    for item in value if isinstance(value, list) else []:
        if not isinstance(item, dict):
            text = _as_text(item)
            if text:
                entries.append(EducationEntry(degree=text))
            continue
        start, end = _dates_of(item)
        entry = EducationEntry(
            school=_as_text(_pick(item, "school", "institution", "university", "college")),
            degree=_as_text(_pick(item, "degree", "diploma", "field", "qualification")),
            start_date=start,
            end_date=end,
        )
        if entry.school or entry.degree or entry.start_date or entry.end_date:
            entries.append(entry)
    return _dedupe_entries(entries, ("school", "degree", "start_date", "end_date"))


def _normalize_projects(value: Any) -> List[ProjectEntry]:
    entries = []
    for item in value if isinstance(value, list) else []:
        if not isinstance(item, dict):
            text = _as_text(item)
            if text:
                entries.append(ProjectEntry(name=text))
            continue
        entry = ProjectEntry(
            name=_as_text(_pick(item, "name", "title")),
            description=_as_text(_pick(item, "description", "summary")),
            links=_clean_list(_pick(item, "links", "link", "url")),
        )
        if entry.name or entry.description or entry.links:
            entries.append(entry)
    return _dedupe_entries(entries, ("name", "description"))


def _normalize_contact(data: Dict[str, Any]) -> ContactInfo:
    contact = data.get("contact")
    if not isinstance(contact, dict):
        contact = {}
    # some generations flatten contact fields to the top level
    merged = {**{k: v for k, v in data.items() if k != "contact"}, **contact}
    return ContactInfo(
        full_name=_as_text(_pick(merged, "fullName", "full_name", "name")),
        email=_as_text(_pick(merged, "email", "mail")),
        phone=_as_text(_pick(merged, "phone", "telephone", "mobile")),
        location=_as_text(_pick(merged, "location", "address", "city")),
        links=_clean_list(_pick(merged, "links", "urls", "websites")),
    )


def _sections(data: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "summary": _as_text(_pick(data, "summary", "profile", "about")),
        "skills": _clean_list(data.get("skills")),
        "experience": _normalize_experience(_pick(data, "experience", "workExperience", "work_experience")),
        "education": _normalize_education(data.get("education")),
        "certifications": _clean_list(data.get("certifications")),
        "projects": _normalize_projects(data.get("projects")),
    }


def normalize_profile(data: Any) -> RawProfile:
    """Turn the parse-mode generator value into a normalized RawProfile."""
    if not isinstance(data, dict):
        data = {}
    return RawProfile(contact=_normalize_contact(data), **_sections(data))


def normalize_generated_content(data: Any) -> GeneratedContent:
    """Apply the profile normalization rules to generate-mode output."""
    if isinstance(data, GeneratedContent):
        data = data.model_dump(by_alias=True)
    if not isinstance(data, dict):
        data = {}
    return GeneratedContent(
        languages=_clean_list(data.get("languages")),
        qualities=_clean_list(data.get("qualities")),
        interests=_clean_list(_pick(data, "interests", "hobbies")),
        **_sections(data),
    )


def fallback_content(profile: RawProfile) -> GeneratedContent:
    """Deterministic presentation content built straight from a normalized profile."""
    return GeneratedContent(
        summary=profile.summary,
        skills=list(profile.skills),
        experience=[e.model_copy(deep=True) for e in profile.experience],
        education=[e.model_copy(deep=True) for e in profile.education],
        certifications=list(profile.certifications),
        projects=[p.model_copy(deep=True) for p in profile.projects],
    )


def coerce_requirements(raw: Any) -> Requirements:
    """Requirements from a job posting record; unknown shapes yield empty requirements."""
    if isinstance(raw, Requirements):
        return raw
    if not isinstance(raw, dict):
        return Requirements()
    min_years = _pick(raw, "minYearsExperience", "min_years_experience")
    try:
        min_years = max(0, int(float(min_years))) if min_years is not None else None
    except (TypeError, ValueError):
        min_years = None
    return Requirements(
        skills_required=_clean_list(_pick(raw, "skillsRequired", "skills_required")),
        skills_nice_to_have=_clean_list(_pick(raw, "skillsNiceToHave", "skills_nice_to_have")),
        min_years_experience=min_years,
        notes=_as_text(raw.get("notes")),
    )
