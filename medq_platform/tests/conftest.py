"""Pytest configuration for ensuring project modules resolve correctly."""

from __future__ import annotations

import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

import pytest
from flask_jwt_extended import create_access_token

from medq_app import create_app
from medq_app.extensions import db
from medq_app.models import Section, StudyFile
from medq_app.models.study import FILE_PROCESSING, PHASE_ANALYZING, section_id_for
from medq_app.services.ai_client import AIResult
from medq_app.services.blob_store import get_blob_store, section_blob_path

CLINICAL_TEXT = (
    "Community-acquired pneumonia presents with fever, productive cough and pleuritic chest pain. "
    "Diagnosis relies on clinical examination and chest radiograph showing consolidation. "
    "Severity is assessed with the CURB-65 score to guide admission. First-line treatment for "
    "low-severity disease is oral amoxicillin, while patients with high scores need intravenous "
    "antibiotics and close monitoring of oxygen saturation and renal function. "
)


class FakeAIClient:
    """Stands in for the AI gateway; every call returns a canned AIResult."""

    vision_model = "fake-vision"

    def __init__(self):
        self.calls = []
        self.blueprint_result = AIResult(
            success=True,
            data={
                "title": "Section 1",
                "difficulty": 4,
                "estMinutes": 12,
                "topicTags": ["Pneumonia", "CURB-65"],
                "learning_objectives": ["Assess pneumonia severity"],
                "keyConcepts": ["CURB-65 score"],
                "high_yield_points": ["Amoxicillin first line"],
                "commonTraps": ["Ignoring renal function"],
                "terms_to_define": ["Consolidation"],
            },
            model="fake-light",
        )
        self.questions_result = AIResult(
            success=True,
            data={
                "questions": [
                    {
                        "stem": "A 70-year-old with CURB-65 of 3 should be managed how?",
                        "options": ["Discharge", "Admit to hospital", "Oral antibiotics at home"],
                        "correct_index": 1,
                        "explanation": {"correct_why": "High severity needs admission."},
                        "difficulty": 4,
                    },
                    {
                        "stem": "First-line antibiotic for low-severity CAP?",
                        "options": ["Amoxicillin", "Vancomycin"],
                        "correctIndex": 0,
                    },
                    {"stem": "", "options": ["A", "B"], "correct_index": 0},
                ]
            },
            model="fake-light",
        )
        self.tutor_result = AIResult(
            success=True,
            data={
                "tutor": {
                    "correct_answer": "Admit to hospital",
                    "why_correct": "CURB-65 of 3 indicates severe pneumonia.",
                    "why_student_wrong": "Discharge ignores the severity score.",
                    "key_takeaway": "CURB-65 >= 3 means admission.",
                    "follow_ups": [{"q": "What does U stand for?", "a": "Urea"}],
                }
            },
            model="fake-heavy",
        )
        self.page_handler = None

    def generate_blueprint(self, **kwargs):
        self.calls.append(("blueprint", kwargs))
        return self.blueprint_result

    def generate_questions(self, **kwargs):
        self.calls.append(("questions", kwargs))
        return self.questions_result

    def tutor_response(self, **kwargs):
        self.calls.append(("tutor", kwargs))
        return self.tutor_result

    def analyze_page_image(self, image_b64, page_index, mime_type="image/jpeg"):
        self.calls.append(("vision", {"page_index": page_index, "mime_type": mime_type}))
        if self.page_handler is not None:
            return self.page_handler(image_b64, page_index)
        return AIResult(
            success=True,
            data={"page": page_index, "records": [{"test": "Hb", "value": str(page_index), "unit": "g/dL"}]},
            model=self.vision_model,
            ms=1,
        )

    def count(self, kind):
        return sum(1 for name, _ in self.calls if name == kind)


@pytest.fixture()
def fake_ai():
    return FakeAIClient()


@pytest.fixture()
def app_with_db(tmp_path, fake_ai):
    app = create_app("test")
    app.config["BLOB_ROOT"] = str(tmp_path / "blobs")
    app.extensions["ai_client"] = fake_ai
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app_with_db):
    return app_with_db.test_client()


@pytest.fixture()
def auth_headers(app_with_db):
    token = create_access_token(identity="user-1")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def make_file(app_with_db):
    """Create a PROCESSING file with `count` PENDING sections and their text blobs."""

    def _make(count=3, *, file_id="file-1", owner_id="user-1", text=CLINICAL_TEXT * 5):
        study_file = StudyFile(
            id=file_id,
            owner_id=owner_id,
            course_id="course-1",
            original_name="pneumonia.pdf",
            content_type="application/pdf",
            status=FILE_PROCESSING,
            processing_phase=PHASE_ANALYZING,
            section_count=count,
        )
        db.session.add(study_file)
        blobs = get_blob_store()
        for index in range(count):
            blob_path = section_blob_path(owner_id, file_id, index)
            blobs.save_text(blob_path, text)
            db.session.add(
                Section(
                    id=section_id_for(file_id, index),
                    owner_id=owner_id,
                    file_id=file_id,
                    course_id="course-1",
                    title=f"pneumonia: Pages {index * 15 + 1}–{index * 15 + 15}",
                    content_ref={"type": "page", "start": index * 15 + 1, "end": index * 15 + 15},
                    text_blob_path=blob_path,
                    order_index=index,
                )
            )
        db.session.commit()
        return study_file

    return _make
