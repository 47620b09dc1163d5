from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, List, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field
from pydantic.alias_generators import to_camel

RESUME_MIN_CHARS = 50
RESUME_MAX_CHARS = 15000
JOB_DESCRIPTION_MIN_CHARS = 20
JOB_DESCRIPTION_MAX_CHARS = 8000
EXPECTED_ALIGNMENTS = 5


class PipelineState(str, Enum):
    validating = "validating"
    scoring = "scoring"
    revising = "revising"
    writing = "writing"
    done = "done"
    failed = "failed"


def _as_list(value: Any) -> Any:
    if value is None:
        return []
    if isinstance(value, (str, dict)):
        return [value]
    if isinstance(value, (list, tuple)):
        return [item for item in value if item is not None]
    return value


def _as_text(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value


def _as_optional_text(value: Any) -> Any:
    return None if value is None else _as_text(value)


def _as_score(value: Any) -> Any:
    if isinstance(value, str):
        stripped = value.strip().rstrip("%").strip()
        try:
            value = float(stripped)
        except ValueError:
            return value
    if isinstance(value, float):
        value = int(round(value))
    if isinstance(value, int) and not isinstance(value, bool):
        return max(0, min(100, value))
    return value


def _as_section(value: Any) -> Any:
    return {} if value is None else value


# Model output is loosely typed: nulls, bare strings and numeric strings are
# coerced here so absent sections surface as empty values, never None.
Text = Annotated[str, BeforeValidator(_as_text)]
TextList = Annotated[List[Text], BeforeValidator(_as_list)]
Score = Annotated[int, BeforeValidator(_as_score), Field(ge=0, le=100)]
OptionalText = Annotated[Optional[str], BeforeValidator(_as_optional_text)]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AnalysisRequest(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    resume: str
    job_description: str


class Alignment(CamelModel):
    requirement: Text = ""
    match: Text = ""
    score: Score = 0


class AnalysisSummary(CamelModel):
    match_score: Score
    alignments: Annotated[List[Alignment], BeforeValidator(_as_list)]


class SummarySection(CamelModel):
    original: Text = ""
    revised: Text = ""


class ExperienceEntry(CamelModel):
    title: Text = ""
    company: Text = ""
    dates: Text = ""
    location: OptionalText = None
    original_bullets: TextList = Field(default_factory=list)
    revised_bullets: TextList = Field(default_factory=list)


class SkillCategory(CamelModel):
    name: Text = ""
    skills: TextList = Field(default_factory=list)


class SkillsSection(CamelModel):
    original: TextList = Field(default_factory=list)
    categories: Annotated[List[SkillCategory], BeforeValidator(_as_list)] = Field(
        default_factory=list
    )
    added: TextList = Field(default_factory=list)


class ProjectEntry(CamelModel):
    title: Text = ""
    description: Text = ""
    technologies: TextList = Field(default_factory=list)
    bullets: TextList = Field(default_factory=list)


class EducationEntry(CamelModel):
    degree: Text = ""
    institution: Text = ""
    dates: Text = ""
    details: OptionalText = None


class RevisedResume(CamelModel):
    summary: Annotated[SummarySection, BeforeValidator(_as_section)] = Field(
        default_factory=SummarySection
    )
    experience: Annotated[List[ExperienceEntry], BeforeValidator(_as_list)] = Field(
        default_factory=list
    )
    skills: Annotated[SkillsSection, BeforeValidator(_as_section)] = Field(
        default_factory=SkillsSection
    )
    projects: Annotated[List[ProjectEntry], BeforeValidator(_as_list)] = Field(
        default_factory=list
    )
    education: Annotated[List[EducationEntry], BeforeValidator(_as_list)] = Field(
        default_factory=list
    )
    honors: TextList = Field(default_factory=list)
    rewritten_bullets: TextList = Field(default_factory=list)


class AnalysisResult(CamelModel):
    match_score: Score
    alignments: Annotated[List[Alignment], BeforeValidator(_as_list)] = Field(
        default_factory=list
    )
    rewritten_bullets: TextList = Field(default_factory=list)
    cover_letter: str
    revised_resume: Annotated[RevisedResume, BeforeValidator(_as_section)] = Field(
        default_factory=RevisedResume
    )


class CallerIdentity(BaseModel):
    subject: str
    email: Optional[str] = None
