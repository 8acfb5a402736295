"""
Ordered-section Markdown assembly of generated CV content.

Visual templates only decide the order of sections; formatting of each
section kind lives here and is the same for every template.
"""
import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from cv_standardizer.models.models import EducationEntry, ExperienceEntry, GeneratedContent
from cv_standardizer.utils.logging_config import get_logger

logger = get_logger(__name__)


class SectionKind(str, Enum):
    SUMMARY = "summary"
    SKILLS = "skills"
    EXPERIENCE = "experience"
    EDUCATION = "education"
    PROJECTS = "projects"
    CERTIFICATIONS = "certifications"
    LANGUAGES = "languages"
    QUALITIES = "qualities"
    INTERESTS = "interests"


@dataclass(frozen=True)
class TemplateSpec:
    key: str
    name: str
    description: str
    section_order: Tuple[SectionKind, ...]


S = SectionKind
BASELINE_ORDER = (S.SUMMARY, S.SKILLS, S.EXPERIENCE, S.EDUCATION, S.PROJECTS, S.CERTIFICATIONS)
EXTRAS = (S.LANGUAGES, S.QUALITIES, S.INTERESTS)

TEMPLATE_CATALOG: Dict[str, TemplateSpec] = {t.key: t for t in (
    TemplateSpec("standard", "Standard (Blue)", "Clean single-column with blue accents and section rules.", BASELINE_ORDER),
    TemplateSpec("experience_first", "Modern (Accent Header)", "Gradient header band + crisp sections.",
                 (S.EXPERIENCE, S.SUMMARY, S.SKILLS, S.EDUCATION, S.PROJECTS, S.CERTIFICATIONS)),
    TemplateSpec("skills_first", "Two Column", "Two-column layout with skill meters in sidebar.",
                 (S.SKILLS, S.SUMMARY, S.EXPERIENCE, S.EDUCATION, S.PROJECTS, S.CERTIFICATIONS)),
    TemplateSpec("compact", "Compact", "Denser spacing for longer resumes.",
                 (S.SUMMARY, S.SKILLS, S.EXPERIENCE, S.PROJECTS, S.EDUCATION, S.CERTIFICATIONS)),
    TemplateSpec("education_first", "Minimal", "Minimal, monochrome, very ATS-friendly.",
                 (S.SUMMARY, S.SKILLS, S.EDUCATION, S.EXPERIENCE, S.PROJECTS, S.CERTIFICATIONS)),
    TemplateSpec("project_focus", "Project Focus", "Projects highlighted early with accent headers.",
                 (S.SUMMARY, S.PROJECTS, S.SKILLS, S.EXPERIENCE, S.EDUCATION, S.CERTIFICATIONS)),
    TemplateSpec("sidebar_photo", "Sidebar + Photo", "Dark sidebar with photo + tag chips.",
                 (S.SUMMARY, S.EXPERIENCE, S.EDUCATION, S.PROJECTS, S.CERTIFICATIONS, S.SKILLS) + EXTRAS),
    TemplateSpec("teal_circle", "Teal Circle", "Circular photo header + teal dividers.",
                 (S.SUMMARY, S.EXPERIENCE, S.SKILLS, S.EDUCATION, S.PROJECTS, S.CERTIFICATIONS, S.LANGUAGES, S.INTERESTS)),
    TemplateSpec("accent_pink", "Pink Accent", "Pink accent with right contact card.", BASELINE_ORDER + EXTRAS),
    TemplateSpec("navy_gold", "Navy & Gold", "Premium look: navy blocks + gold accents.",
                 (S.SUMMARY, S.EXPERIENCE, S.PROJECTS, S.SKILLS, S.EDUCATION, S.CERTIFICATIONS) + EXTRAS),
    TemplateSpec("sunset", "Sunset", "Warm gradient header + soft section cards.",
                 (S.SUMMARY, S.SKILLS, S.EXPERIENCE, S.PROJECTS, S.EDUCATION, S.CERTIFICATIONS) + EXTRAS),
)}

DEFAULT_TEMPLATE_KEY = "standard"


def _span(start: Optional[str], end: Optional[str]) -> str:
    return " – ".join(p for p in (start, end) if p)


def _bullets(items: Sequence[str]) -> List[str]:
    return [f"- {item}" for item in items if item]


def _experience_block(entry: ExperienceEntry) -> List[str]:
    header = " — ".join(p for p in (entry.title, entry.company) if p)
    dates = _span(entry.start_date, entry.end_date)
    lines = []
    if header and dates:
        lines.append(f"**{header}** ({dates})")
    elif header or dates:
        lines.append(f"**{header or dates}**")
    lines.extend(_bullets(entry.highlights))
    return lines


def _education_line(entry: EducationEntry) -> Optional[str]:
    left = " — ".join(p for p in (entry.degree, entry.school) if p)
    dates = _span(entry.start_date, entry.end_date)
    row = f"{left} ({dates})" if left and dates else (left or dates)
    return f"- {row}" if row else None


def _summary(content: GeneratedContent) -> List[str]:
    return [content.summary] if content.summary else []


def _experience(content: GeneratedContent) -> List[str]:
    out = []
    for entry in content.experience:
        block = _experience_block(entry)
        if block:
            out.extend(block)
            out.append("")
    return out


def _education(content: GeneratedContent) -> List[str]:
    return [line for line in (_education_line(e) for e in content.education) if line]


def _projects(content: GeneratedContent) -> List[str]:
    out = []
    for project in content.projects:
        block = []
        if project.name:
            block.append(f"**{project.name}**")
        if project.description:
            block.append(f"- {project.description}")
        block.extend(_bullets(project.links))
        if block:
            out.extend(block)
            out.append("")
    return out


def _list_of(field: str) -> Callable[[GeneratedContent], List[str]]:
    return lambda content: _bullets(getattr(content, field))


SECTION_RENDERERS: Dict[SectionKind, Callable[[GeneratedContent], List[str]]] = {
    S.SUMMARY: _summary,
    S.SKILLS: _list_of("skills"),
    S.EXPERIENCE: _experience,
    S.EDUCATION: _education,
    S.PROJECTS: _projects,
    S.CERTIFICATIONS: _list_of("certifications"),
    S.LANGUAGES: _list_of("languages"),
    S.QUALITIES: _list_of("qualities"),
    S.INTERESTS: _list_of("interests"),
}


def render(section_order: Sequence[SectionKind], content: GeneratedContent) -> str:
    """
    Render ``content`` as Markdown, one ``## Heading`` block per non-empty
    section in ``section_order``.

    Runs of three or more newlines collapse to one blank line and the result
    always ends with exactly one newline.
    """
    md: List[str] = []
    for kind in section_order:
        kind = SectionKind(kind)
        body = SECTION_RENDERERS[kind](content)
        if not body:
            continue
        md.extend([f"## {kind.value.capitalize()}", ""])
        md.extend(body)
        md.append("")
    text = re.sub(r"\n{3,}", "\n\n", "\n".join(md))
    return text.strip() + "\n"


def resolve_template(key: Optional[str], default_key: str = DEFAULT_TEMPLATE_KEY) -> TemplateSpec:
    if key and key in TEMPLATE_CATALOG:
        return TEMPLATE_CATALOG[key]
    if key:
        logger.info(f"Unknown CV template '{key}', using '{default_key}'")
    return TEMPLATE_CATALOG.get(default_key) or TEMPLATE_CATALOG[DEFAULT_TEMPLATE_KEY]


def render_template(key: Optional[str], content: GeneratedContent, default_key: str = DEFAULT_TEMPLATE_KEY) -> Tuple[str, str]:
    """Render with the catalog order of ``key``; returns (markdown, template key used)."""
    template = resolve_template(key, default_key)
    return render(template.section_order, content), template.key


def list_templates() -> List[dict]:
    return [
        {
            "key": t.key,
            "name": t.name,
            "description": t.description,
            "sectionOrder": [s.value for s in t.section_order],
        }
        for t in TEMPLATE_CATALOG.values()
    ]
