from __future__ import annotations

import io
from datetime import date
from typing import Iterable, List, Optional

from docx import Document
from docx.enum.text import WD_ALIGN_PARAGRAPH
from docx.shared import Inches, Pt

from libs.core.models import AnalysisResult

RESUME_FILENAME = "Revised_Resume.docx"
COVER_LETTER_FILENAME = "Cover_Letter.docx"
DOCX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
_CONTACT_LINES = 3


def extract_contact_info(resume: str) -> str:
    lines = [line.strip() for line in (resume or "").splitlines() if line.strip()]
    return "\n".join(lines[:_CONTACT_LINES])


def split_paragraphs(text: str) -> List[str]:
    normalized = (text or "").replace("\r\n", "\n").replace("\r", "\n").strip()
    if not normalized:
        return []
    return [part.strip() for part in normalized.split("\n\n") if part.strip()]


def _new_document(margin_in: float) -> Document:
    document = Document()
    normal_style = document.styles["Normal"]
    normal_style.font.name = "Calibri"
    normal_style.font.size = Pt(11)
    heading_style = document.styles["Heading 1"]
    heading_style.font.size = Pt(12)
    heading_style.font.bold = True
    heading_style.paragraph_format.space_before = Pt(10)
    heading_style.paragraph_format.space_after = Pt(4)
    section = document.sections[0]
    section.top_margin = Inches(margin_in)
    section.bottom_margin = Inches(margin_in)
    section.left_margin = Inches(margin_in)
    section.right_margin = Inches(margin_in)
    return document


def _add_bullets(document: Document, bullets: Iterable[str]) -> None:
    for bullet in bullets:
        if bullet.strip():
            paragraph = document.add_paragraph(bullet.strip(), style="List Bullet")
            paragraph.paragraph_format.space_after = Pt(2)


def _joined(parts: Iterable[Optional[str]], sep: str = " | ") -> str:
    return sep.join(part.strip() for part in parts if part and part.strip())


def build_resume_document(result: AnalysisResult, resume: str) -> Document:
    revised = result.revised_resume
    document = _new_document(0.5)

    contact_info = extract_contact_info(resume)
    if contact_info:
        header = document.add_paragraph()
        header.alignment = WD_ALIGN_PARAGRAPH.CENTER
        lines = contact_info.split("\n")
        name_run = header.add_run(lines[0])
        name_run.bold = True
        name_run.font.size = Pt(16)
        for line in lines[1:]:
            header.add_run("\n" + line)

    if revised.summary.revised.strip():
        document.add_heading("PROFESSIONAL SUMMARY", level=1)
        document.add_paragraph(revised.summary.revised.strip())

    if revised.experience:
        document.add_heading("PROFESSIONAL EXPERIENCE", level=1)
        for role in revised.experience:
            title_line = document.add_paragraph()
            title_line.paragraph_format.space_before = Pt(6)
            title_line.paragraph_format.space_after = Pt(0)
            title_line.add_run(role.title).bold = True
            if role.company:
                title_line.add_run(f" | {role.company}")
            meta = _joined([role.dates, role.location])
            if meta:
                meta_line = document.add_paragraph()
                meta_line.paragraph_format.space_after = Pt(2)
                meta_line.add_run(meta).italic = True
            _add_bullets(document, role.revised_bullets or role.original_bullets)

    skills = revised.skills
    if skills.categories or skills.added or skills.original:
        document.add_heading("SKILLS", level=1)
        if skills.categories:
            for category in skills.categories:
                if not category.skills:
                    continue
                line = document.add_paragraph()
                line.paragraph_format.space_after = Pt(2)
                line.add_run(f"{category.name}: ").bold = True
                line.add_run(", ".join(category.skills))
        elif skills.original:
            document.add_paragraph(" • ".join(skills.original))
        if skills.added:
            line = document.add_paragraph()
            line.add_run("Additional: ").bold = True
            line.add_run(", ".join(skills.added))

    if revised.projects:
        document.add_heading("PROJECTS", level=1)
        for project in revised.projects:
            title_line = document.add_paragraph()
            title_line.paragraph_format.space_after = Pt(0)
            title_line.add_run(project.title).bold = True
            if project.technologies:
                title_line.add_run(f" | {', '.join(project.technologies)}").italic = True
            if project.description:
                document.add_paragraph(project.description)
            _add_bullets(document, project.bullets)

    if revised.education:
        document.add_heading("EDUCATION", level=1)
        for entry in revised.education:
            line = document.add_paragraph()
            line.paragraph_format.space_after = Pt(2)
            line.add_run(entry.degree).bold = True
            rest = _joined([entry.institution, entry.dates])
            if rest:
                line.add_run(f" | {rest}")
            if entry.details:
                document.add_paragraph(entry.details)

    if revised.honors:
        document.add_heading("HONORS & AFFILIATIONS", level=1)
        _add_bullets(document, revised.honors)

    return document


def build_cover_letter_document(
    cover_letter: str, resume: str, today: Optional[date] = None
) -> Document:
    document = _new_document(1.0)
    contact_info = extract_contact_info(resume)
    if contact_info:
        document.add_paragraph(contact_info)
    current = today or date.today()
    document.add_paragraph(f"{current:%B} {current.day}, {current.year}")
    for paragraph in split_paragraphs(cover_letter):
        document.add_paragraph(paragraph)
    return document


def document_bytes(document: Document) -> bytes:
    buffer = io.BytesIO()
    document.save(buffer)
    return buffer.getvalue()
