"""System prompts and user-prompt builders for every AI call in the pipeline."""

from __future__ import annotations

import json
from typing import Any

BLUEPRINT_SYSTEM = """You are MedQ, a medical education content analyzer. Convert provided study
material into a structured topic blueprint for medical students.

Ignore everything that is an extraction artifact rather than study content:
- Page numbers, headers, footers, timestamps (e.g. "Page 12", "5/13/04 12:59 PM")
- Author names, editor lists, publisher info, copyright notices
- ISBN, ISSN, DOI numbers, library cataloging data
- Table of contents, acknowledgments, preface text
- Book title repetitions, edition labels, cover text

Extract ONLY the actual medical/scientific educational content.
If the text contains no real educational content (e.g. a title page, copyright page,
or table of contents), return empty arrays for all fields and set difficulty to 1.

Output STRICT JSON only. No markdown, no commentary, no code fences."""

QUESTIONS_SYSTEM = """You are MedQ Question Writer. Generate exam-style single-best-answer (SBA)
questions for medical students based on the provided topic blueprint.
Questions must be clinically relevant, non-repetitive, unambiguous, and have exactly one
correct answer.
Prioritize reasoning depth over trivial recall.
Every explanation must cite trusted medical sources (PubMed, UpToDate, Medscape).
Output STRICT JSON only."""

TUTOR_SYSTEM = """You are MedQ Tutor. A medical student answered a question incorrectly.
Explain clearly and concisely. Be encouraging but accurate.
Output STRICT JSON only."""

DOCUMENT_EXTRACT_SYSTEM = """You are a medical data extractor.
Extract lab results and return STRICT JSON ONLY.

Rules:
- Output must be valid JSON, no markdown, no comments, no extra text.
- Use this schema:
{
  "page": number,
  "records": [
    { "date": string|null, "test": string, "value": string, "unit": string|null, "flag": string|null }
  ]
}

Medical rules:
- Preserve the unit exactly as written (e.g. mmol/L, mg/dL).
- If date not present, set date null.
- If flag not present, set flag null.
- If no records are found on the page, return an empty records array."""


def blueprint_user_prompt(*, file_name: str, section_label: str, content_type: str, section_text: str) -> str:
    return f"""File: "{file_name}"
Source label: "{section_label}" (this is just a page/slide range, do NOT use it as the title)
Content type: "{content_type}"

Extracted text:
\"\"\"
{section_text}
\"\"\"

Return this exact JSON schema:
{{
  "title": "string: a descriptive topic-based title derived from the actual content (e.g. 'Cardiac Electrophysiology'), NEVER page numbers or file names; include specific medical terms so neighboring sections have distinct titles",
  "learning_objectives": ["string: 3-6 objectives"],
  "key_concepts": ["string: the core concepts covered"],
  "high_yield_points": ["string: most exam-relevant facts"],
  "common_traps": ["string: common misconceptions or exam pitfalls"],
  "terms_to_define": ["string: medical terms students should know"],
  "difficulty": "integer 1-5",
  "estimated_minutes": "integer: realistic study time",
  "topic_tags": ["string: 2-5 medical topic tags for categorization"]
}}"""


def questions_user_prompt(
    *,
    blueprint: Any,
    count: int,
    easy_count: int,
    medium_count: int,
    hard_count: int,
    section_title: str = "Unknown Section",
    source_file_name: str = "Unknown File",
) -> str:
    return f"""Source file: "{source_file_name}"
Section: "{section_title}"

Topic blueprint (learning objectives, key concepts, high-yield points, and terms):
{json.dumps(blueprint, ensure_ascii=False)}

Generate exactly {count} SBA questions with this difficulty distribution:
- {easy_count} easy (difficulty 1-2)
- {medium_count} medium (difficulty 3)
- {hard_count} hard (difficulty 4-5)

Quality rules:
- Every question must test a concrete concept from key_concepts, high_yield_points, or terms_to_define.
- Each stem must be specific to this section; vary diagnosis, mechanism, interpretation, and management styles.
- Keep explanations to 1-2 sentences per field, including the decisive clue and mechanism.
- why_others_wrong must be specific to this vignette for each option.
- Each question must include 2-3 citations from PubMed, UpToDate, or Medscape only.
- For each citation give the source name and a specific topic/article title (do NOT generate URLs).

Return this exact JSON schema:
{{
  "questions": [
    {{
      "stem": "string",
      "options": ["string", "string", "string", "string", "string"],
      "correct_index": "integer 0-4",
      "difficulty": "integer 1-5",
      "tags": ["string"],
      "explanation": {{
        "correct_why": "string",
        "why_others_wrong": ["string, one entry per option"],
        "key_takeaway": "string"
      }},
      "source_ref": {{"fileName": "string", "sectionLabel": "string"}},
      "citations": [{{"source": "PUBMED | UPTODATE | MEDSCAPE", "title": "string"}}]
    }}
  ]
}}"""


def tutor_user_prompt(*, question: dict, student_answer_index: int, correct_index: int) -> str:
    return f"""Question:
{json.dumps(question, ensure_ascii=False, indent=2)}

Student selected: option index {student_answer_index}
Correct answer: option index {correct_index}

Provide the correct answer, why it is correct, why the student's choice is wrong,
a memorable key takeaway, and two follow-up micro-questions.

Return this exact JSON schema:
{{
  "tutor": {{
    "correct_answer": "string",
    "why_correct": "string",
    "why_student_wrong": "string",
    "key_takeaway": "string",
    "follow_ups": [{{"q": "string", "a": "string"}}, {{"q": "string", "a": "string"}}]
  }}
}}"""


def document_extract_user_prompt(*, page_index: int) -> str:
    return f'Extract data from this page. Return JSON matching the schema. Set "page" = {page_index}.'
