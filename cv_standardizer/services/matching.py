import re
from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, List, Optional, Set

from cv_standardizer.models.models import RawProfile
from cv_standardizer.models.settings import DEFAULT_SKILL_ALIASES, MatchingSettings

_DISALLOWED_RE = re.compile(r"[^a-z0-9+#.\s_-]")
_SEPARATORS_RE = re.compile(r"[._\-\s]+")

# Common generator typos that split a single product name in two.
FUSED_TERM_CORRECTIONS = {
    "mango db": "mongodb",
    "mongo db": "mongodb",
    "postgre sql": "postgresql",
    "java script": "javascript",
    "type script": "typescript",
}
_FUSED_RES = [(re.compile(rf"(?<![a-z0-9+#]){re.escape(k)}(?![a-z0-9+#])"), v) for k, v in FUSED_TERM_CORRECTIONS.items()]


def normalize_skill_key(s: str) -> str:
    if not s:
        return ""
    x = str(s).lower()
    x = x.replace("(", " ").replace(")", " ")
    x = _DISALLOWED_RE.sub("", x)
    x = _SEPARATORS_RE.sub(" ", x).strip()
    for pattern, fused in _FUSED_RES:
        x = pattern.sub(fused, x)
    return x


def compact_key(s: str) -> str:
    return normalize_skill_key(s).replace(" ", "")


def normalize_text(s: str) -> str:
    """Like normalize_skill_key, but punctuation becomes a word break instead of vanishing."""
    if not s:
        return ""
    x = str(s).lower()
    x = re.sub(r"[^a-z0-9+#.\s_-]", " ", x)
    return normalize_skill_key(x)


class AliasIndex:
    """Lookup from any spelling of a skill to its alias group."""

    def __init__(self, aliases: Optional[Dict[str, List[str]]] = None):
        table = DEFAULT_SKILL_ALIASES if aliases is None else aliases
        self._groups: Dict[str, FrozenSet[str]] = {}
        self._lookup: Dict[str, str] = {}
        for canonical, phrases in table.items():
            canon = compact_key(canonical)
            if not canon:
                continue
            forms: Set[str] = {canon, normalize_skill_key(canonical)}
            for phrase in phrases:
                forms.add(normalize_skill_key(phrase))
                forms.add(compact_key(phrase))
            forms.discard("")
            self._groups[canon] = frozenset(forms)
            for form in forms:
                self._lookup.setdefault(form, canon)
                self._lookup.setdefault(form.replace(" ", ""), canon)

    def group_for(self, skill: str) -> FrozenSet[str]:
        for key in (normalize_skill_key(skill), compact_key(skill)):
            canon = self._lookup.get(key)
            if canon:
                return self._groups[canon]
        return frozenset()


_default_index: Optional[AliasIndex] = None


def _index_for(settings: Optional[MatchingSettings]) -> AliasIndex:
    global _default_index
    if settings is not None:
        return AliasIndex(settings.skill_aliases)
    if _default_index is None:
        _default_index = AliasIndex()
    return _default_index


def build_variants(skill: str, index: Optional[AliasIndex] = None) -> Set[str]:
    """Every normalized spelling that should count as the same skill."""
    index = index or _index_for(None)
    variants = {normalize_skill_key(skill), compact_key(skill)}
    for form in index.group_for(skill):
        variants.add(form)
        variants.add(form.replace(" ", ""))
    variants.discard("")
    return variants


@dataclass(frozen=True)
class Evidence:
    normalized_text: str
    compact_text: str
    skill_keys: FrozenSet[str]


def build_evidence(profile: RawProfile) -> Evidence:
    parts: List[str] = []
    if profile.summary:
        parts.append(profile.summary)
    for exp in profile.experience:
        parts.extend(p for p in (exp.title, exp.company) if p)
        parts.extend(exp.highlights)
    for project in profile.projects:
        parts.extend(p for p in (project.name, project.description) if p)
        parts.extend(project.links)
    parts.extend(profile.skills)

    normalized = " ".join(t for t in (normalize_text(p) for p in parts) if t)
    keys: Set[str] = set()
    for skill in profile.skills:
        keys.add(normalize_skill_key(skill))
        keys.add(compact_key(skill))
    keys.discard("")
    return Evidence(
        normalized_text=normalized,
        compact_text=normalized.replace(" ", ""),
        skill_keys=frozenset(keys),
    )


def has_skill_match(
    skill: str,
    evidence: Evidence,
    settings: Optional[MatchingSettings] = None,
    index: Optional[AliasIndex] = None,
) -> bool:
    """
    True when any variant of ``skill`` is a declared skill key, appears as a
    phrase in the normalized text (multi-word variants) or inside the compact
    text (single-token variants). Single tokens shorter than
    ``compact_match_min_length`` must appear as a whole word instead.
    """
    min_len = settings.compact_match_min_length if settings is not None else 3
    padded = f" {evidence.normalized_text} "
    for variant in build_variants(skill, index or _index_for(settings)):
        if variant in evidence.skill_keys:
            return True
        if " " in variant:
            if variant in evidence.normalized_text:
                return True
        elif len(variant) >= min_len:
            if variant in evidence.compact_text:
                return True
        elif f" {variant} " in padded:
            return True
    return False


def match_skills(skills: Iterable[str], evidence: Evidence, settings: Optional[MatchingSettings] = None):
    """Split ``skills`` into (matched, missing), preserving input order."""
    index = _index_for(settings)
    matched, missing = [], []
    for skill in skills:
        if has_skill_match(skill, evidence, settings, index=index):
            matched.append(skill)
        else:
            missing.append(skill)
    return matched, missing
