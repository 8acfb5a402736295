from cv_standardizer.models.models import ExperienceEntry, RawProfile
from cv_standardizer.services.normalization import (
    coerce_requirements,
    dedupe_preserving_case,
    fallback_content,
    normalize_date_text,
    normalize_generated_content,
    normalize_profile,
)


class TestNormalizeProfile:
    """Coercion of parse-mode output into a RawProfile"""

    def test_comma_separated_skills_are_split_and_deduped(self):
        """Comma-separated skills are split and deduped"""
        profile = normalize_profile({"skills": "Python, python; AWS\nDocker, "})
        assert profile.skills == ["Python", "AWS", "Docker"]

    def test_skill_objects_become_names(self):
        """Skill objects are reduced to their names"""
        profile = normalize_profile({"skills": [{"name": "Python"}, {"skill": "Go"}, "Python", None, ""]})
        assert profile.skills == ["Python", "Go"]

    def test_full_name_is_trimmed(self):
        """Full name is trimmed"""
        profile = normalize_profile({"contact": {"fullName": "  Ada   Lovelace "}})
        assert profile.contact.full_name == "Ada Lovelace"

    def test_flattened_contact_fields(self):
        """Top-level contact fields are moved into contact"""
        profile = normalize_profile({"name": "Ada", "email": "ada@example.com", "phone": "123", "urls": "https://a.dev"})
        assert profile.contact.full_name == "Ada"
        assert profile.contact.email == "ada@example.com"
        assert profile.contact.phone == "123"
        assert profile.contact.links == ["https://a.dev"]

    def test_french_dates_and_present_synonym(self):
        """French months and present synonyms are normalized"""
        profile = normalize_profile({
            "experience": [{"company": "Acme", "role": "Développeur", "dates": "janvier 2020 - Aujourd'hui"}],
        })
        entry = profile.experience[0]
        assert entry.title == "Développeur"
        assert entry.start_date == "January 2020"
        assert entry.end_date == "Present"

    def test_date_range_is_split(self):
        """A single date range is split into start and end"""
        profile = normalize_profile({"education": [{"school": "MIT", "period": "2018 - 2020"}]})
        assert profile.education[0].start_date == "2018"
        assert profile.education[0].end_date == "2020"

    def test_highlight_string_becomes_list(self):
        """A highlights string becomes a list"""
        profile = normalize_profile({"experience": [{"company": "Acme", "responsibilities": "Did A; Did B"}]})
        assert profile.experience[0].highlights == ["Did A", "Did B"]

    def test_empty_entries_are_dropped(self):
        """Entries without content are dropped"""
        profile = normalize_profile({
            "experience": [{}, {"company": ""}, "not an entry"],
            "education": [{"school": None}],
            "projects": [{}],
        })
        assert profile.experience == []
        assert profile.education == []
        assert profile.projects == []

    def test_duplicate_entries_are_dropped(self):
        """Duplicate entries are dropped"""
        job = {"company": "Acme", "title": "Engineer", "startDate": "2020"}
        profile = normalize_profile({"experience": [job, dict(job, company="ACME")]})
        assert len(profile.experience) == 1

    def test_non_dict_input_gives_empty_profile(self):
        """Non-object input gives an empty profile"""
        profile = normalize_profile(["not", "a", "profile"])
        assert profile.contact.full_name is None
        assert profile.skills == []
        assert profile.experience == []
        assert profile.summary is None

    def test_summary_list_is_joined(self):
        """A summary list is joined into text"""
        profile = normalize_profile({"summary": ["Backend engineer.", "Likes data."]})
        assert profile.summary == "Backend engineer. Likes data."


class TestDates:
    """Date text normalization"""

    def test_present_synonyms(self):
        """Present synonyms map to Present"""
        assert normalize_date_text("currently") == "Present"
        assert normalize_date_text("En cours") == "Present"

    def test_french_month_names(self):
        """French month names become English"""
        assert normalize_date_text("févr. 2019") == "February 2019"
        assert normalize_date_text("Mars 2021") == "March 2021"

    def test_english_is_untouched(self):
        """English dates pass through"""
        assert normalize_date_text("March 2021") == "March 2021"
        assert normalize_date_text("2019-03") == "2019-03"

    def test_blank(self):
        """Blank dates give None"""
        assert normalize_date_text("  ") is None
        assert normalize_date_text(None) is None


class TestGeneratedContent:
    """Generate-mode normalization and the deterministic fallback"""

    def test_hobbies_map_to_interests(self):
        """Hobbies are read as interests"""
        content = normalize_generated_content({
            "summary": "Engineer.",
            "hobbies": "chess, running",
            "languages": [{"language": "French"}, "English"],
            "qualities": ["Curious", "curious"],
        })
        assert content.interests == ["chess", "running"]
        assert content.languages == ["French", "English"]
        assert content.qualities == ["Curious"]

    def test_non_dict_gives_empty_content(self):
        """Non-object input gives empty content"""
        content = normalize_generated_content("oops")
        assert content.summary is None
        assert content.skills == []

    def test_fallback_copies_profile(self):
        """Fallback content copies the profile"""
        profile = RawProfile(
            summary="Engineer.",
            skills=["Python"],
            experience=[ExperienceEntry(company="Acme", highlights=["Built APIs"])],
        )
        content = fallback_content(profile)
        assert content.summary == "Engineer."
        assert content.skills == ["Python"]
        assert content.experience == profile.experience
        assert content.experience[0] is not profile.experience[0]
        assert content.languages == []


class TestRequirements:
    """Job posting requirements coercion"""

    def test_string_skills_and_numeric_text(self):
        """Skill strings are split and numeric strings become years"""
        requirements = coerce_requirements({"skills_required": "Python, Go", "minYearsExperience": "3"})
        assert requirements.skills_required == ["Python", "Go"]
        assert requirements.min_years_experience == 3

    def test_camel_case_keys(self):
        """camelCase requirement keys are accepted"""
        requirements = coerce_requirements({"skillsNiceToHave": ["Docker"], "minYearsExperience": 2.7})
        assert requirements.skills_nice_to_have == ["Docker"]
        assert requirements.min_years_experience == 2

    def test_bad_years(self):
        """Unusable years give None, negative years clamp to 0"""
        assert coerce_requirements({"minYearsExperience": "lots"}).min_years_experience is None
        assert coerce_requirements({"minYearsExperience": -2}).min_years_experience == 0

    def test_unknown_shape(self):
        """Unknown shapes give empty requirements"""
        requirements = coerce_requirements(None)
        assert requirements.skills_required == []
        assert requirements.min_years_experience is None

    def test_dedupe_preserving_case(self):
        """Dedupe keeps the first spelling"""
        assert dedupe_preserving_case(["Go", "go", "", "Rust", "GO"]) == ["Go", "Rust"]
