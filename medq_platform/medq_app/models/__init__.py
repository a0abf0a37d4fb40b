"""Database models package."""

from .study import Question, Section, StudyFile

__all__ = [
    "StudyFile",
    "Section",
    "Question",
]
