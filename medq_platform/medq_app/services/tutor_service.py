"""Explain a generated question to a student who answered it."""

from __future__ import annotations

import logging
from typing import Any, Dict

from ..errors import InvalidArgument, NotFound, PipelineError
from ..extensions import db
from ..models import Question
from . import ai_client as ai_client_module
from .normalizer import normalize_tutor_response

logger = logging.getLogger(__name__)


def get_tutor_help(owner_id: str, question_id: str, answered_index: int, *, client=None) -> Dict[str, Any]:
    question = db.session.get(Question, question_id)
    if question is None or question.owner_id != owner_id:
        raise NotFound("Question not found.")
    if answered_index >= len(question.options or []):
        raise InvalidArgument("answeredIndex is out of range for this question.")

    client = client or ai_client_module.get_ai_client()
    prompt_question = {
        "stem": question.stem,
        "options": question.options,
        "explanation": question.explanation,
        "topicTags": question.topic_tags or [],
    }
    result = client.tutor_response(
        question=prompt_question,
        student_answer_index=answered_index,
        correct_index=question.correct_index,
    )
    if not result.success:
        logger.warning("Tutor call failed", extra={"questionId": question_id, "error": result.error})
        raise PipelineError("AI_FAILED")

    tutor = normalize_tutor_response(result.data)
    if tutor is None:
        logger.info("Tutor response missing required fields", extra={"questionId": question_id})
    return {"tutorResponse": tutor, "correct": answered_index == question.correct_index}
