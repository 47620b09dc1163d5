from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from .models import EXPECTED_ALIGNMENTS, Alignment, AnalysisRequest


@dataclass(frozen=True)
class StagePrompt:
    system: str
    user: str


SCORING_SYSTEM = "You are a career analysis expert. Always respond with valid JSON only."
REVISION_SYSTEM = (
    "You are a professional resume writer. Always respond with valid, complete JSON only."
)
COVER_LETTER_SYSTEM = "You are a professional career writer specializing in cover letters."

COVER_LETTER_GREETING = "Dear Hiring Manager,"
COVER_LETTER_SIGNATURE = "[Your Name]"

_REVISED_RESUME_SHAPE = """{
  "summary": {
    "original": "extracted original summary/objective if present, or empty string",
    "revised": "2-3 sentence professional summary emphasizing the candidate's most relevant strengths for this role"
  },
  "experience": [
    {
      "title": "job title",
      "company": "company name",
      "dates": "date range",
      "location": "location if available",
      "originalBullets": ["original bullet 1", "original bullet 2"],
      "revisedBullets": ["action verb first, quantified, 1-2 lines, tied to business outcomes"]
    }
  ],
  "skills": {
    "original": ["skill1", "skill2"],
    "categories": [
      {"name": "Programming & Tools", "skills": ["Python", "SQL"]},
      {"name": "Soft Skills", "skills": ["Communication", "Leadership"]}
    ],
    "added": ["relevant skills from the job description not in the original"]
  },
  "projects": [
    {
      "title": "project name",
      "description": "brief description",
      "technologies": ["tech1", "tech2"],
      "bullets": ["achievement or detail about the project"]
    }
  ],
  "education": [
    {
      "degree": "degree name",
      "institution": "institution name",
      "dates": "graduation date or date range",
      "details": "GPA, relevant coursework, or honors if applicable"
    }
  ],
  "honors": ["honor or affiliation"],
  "rewrittenBullets": ["top 5 most impactful revised bullets across all sections"]
}"""


def format_alignment_context(alignments: Sequence[Alignment]) -> str:
    return "\n".join(f"- {item.requirement}: {item.match}" for item in alignments)


def scoring_prompt(request: AnalysisRequest) -> StagePrompt:
    user = (
        "You are an expert career coach and ATS (Applicant Tracking System) analyzer.\n\n"
        "Analyze this resume against the job description and provide:\n"
        "1. An overall match score (0-100)\n"
        f"2. The top {EXPECTED_ALIGNMENTS} key alignments between specific job requirements "
        "and matching experience from the resume, most relevant first\n"
        "3. A score (0-100) for each alignment\n\n"
        f"Resume:\n{request.resume}\n\n"
        f"Job Description:\n{request.job_description}\n\n"
        "Return ONLY a JSON object with this exact structure:\n"
        "{\n"
        '  "matchScore": number,\n'
        '  "alignments": [\n'
        "    {\n"
        '      "requirement": "specific job requirement",\n'
        '      "match": "specific matching experience from resume",\n'
        '      "score": number\n'
        "    }\n"
        "  ]\n"
        "}\n"
        f'"alignments" must contain exactly {EXPECTED_ALIGNMENTS} items. '
        "Do not add any other keys."
    )
    return StagePrompt(system=SCORING_SYSTEM, user=user)


def revision_prompt(request: AnalysisRequest, alignments: Sequence[Alignment]) -> StagePrompt:
    user = (
        "You are an expert resume writer and ATS optimization specialist. Revise the resume "
        "below so it is tailored to the job description, section by section.\n\n"
        f"Job Description:\n{request.job_description}\n\n"
        f"Original Resume:\n{request.resume}\n\n"
        f"Key Alignments:\n{format_alignment_context(alignments)}\n\n"
        "Return ONLY a JSON object with this exact structure:\n"
        f"{_REVISED_RESUME_SHAPE}\n\n"
        "FORMATTING RULES:\n"
        "- Every bullet starts with a strong action verb.\n"
        "- Bullets follow a parallel grammatical structure.\n"
        "- Include specific numbers, percentages or metrics wherever the resume supports them.\n"
        "- Keep each bullet to 1-2 lines; never use phrases like \"responsible for\".\n"
        "- Current roles use present tense, past roles use past tense, consistently.\n"
        "- Use standard industry terminology that ATS systems recognize.\n\n"
        "CONTENT RULES:\n"
        "- Extract ALL experience entries and ALL projects from the original resume.\n"
        "- Organize skills into logical categories.\n"
        "- List education most recent first, one entry per degree.\n"
        "- Extract honors, awards and professional affiliations.\n"
        "- Omit a section (use an empty array) when the original resume has none.\n"
        "- Preserve truthfulness: improve phrasing but never fabricate experience.\n"
        "- Naturally incorporate relevant keywords from the job description."
    )
    return StagePrompt(system=REVISION_SYSTEM, user=user)


def cover_letter_prompt(
    request: AnalysisRequest, alignments: Sequence[Alignment]
) -> StagePrompt:
    user = (
        "Write a compelling, personalized cover letter for this job application. Use the "
        "candidate's background and the key alignments to show fit, and highlight "
        "quantifiable achievements.\n\n"
        f"Job Description:\n{request.job_description}\n\n"
        f"Resume:\n{request.resume}\n\n"
        f"Key Alignments:\n{format_alignment_context(alignments)}\n\n"
        "STRUCTURE:\n"
        f'- Start with the line "{COVER_LETTER_GREETING}".\n'
        "- Paragraph 1 (hook): name the role and open with the candidate's strongest "
        "relevant achievement.\n"
        "- Paragraph 2 (value proposition): connect two or three alignments to concrete, "
        "quantified results.\n"
        "- Paragraph 3 (cultural fit): explain why the candidate fits the team and company.\n"
        "- Paragraph 4 (close): restate interest and invite a conversation.\n"
        f'- End with a professional sign-off followed by "{COVER_LETTER_SIGNATURE}".\n'
        "- Separate paragraphs with a single blank line.\n"
        "- Do not include contact information, addresses or a date.\n\n"
        "Return the complete cover letter as plain text only: no JSON, no markdown."
    )
    return StagePrompt(system=COVER_LETTER_SYSTEM, user=user)
