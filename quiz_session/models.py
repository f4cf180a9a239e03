from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

QuestionType = Literal["multiple-choice", "true-false", "identification", "essay"]


def _coerce_answers(value: Any) -> Dict[str, str]:
    if not value:
        return {}
    return {str(k): str(v) for k, v in dict(value).items() if v is not None}


class QuizQuestion(BaseModel):
    """A single question as returned by the quiz endpoint."""

    model_config = ConfigDict(extra="ignore")

    id: str
    question: str = ""
    question_type: QuestionType = "multiple-choice"
    options: List[str] = Field(default_factory=list)
    correct_answer: Optional[str] = None
    points: Optional[int] = None
    order_number: Optional[int] = None

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, value: Any) -> str:
        return str(value)

    @field_validator("options", mode="before")
    @classmethod
    def parse_options(cls, value: Any) -> List[str]:
        # Options are stored either as a list or as JSON-encoded text
        if value is None:
            return []
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except json.JSONDecodeError:
                return []
        if not isinstance(value, list):
            return []
        return [str(option) for option in value]

    @property
    def weight(self) -> int:
        return self.points or 1


class Quiz(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    title: str = ""
    quiz_questions: List[QuizQuestion] = Field(default_factory=list)

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, value: Any) -> str:
        return str(value)


class Material(BaseModel):
    """An assignable unit of a class (quiz or assignment)."""

    model_config = ConfigDict(extra="ignore")

    id: str
    title: str = ""
    description: Optional[str] = None
    time_limit: Optional[int] = None
    due_date: Optional[str] = None
    quiz_id: Optional[str] = None

    @field_validator("id", "quiz_id", mode="before")
    @classmethod
    def coerce_id(cls, value: Any) -> Optional[str]:
        return None if value is None else str(value)

    @property
    def is_timed(self) -> bool:
        return bool(self.time_limit and self.time_limit > 0)


class DraftRecord(BaseModel):
    """Server-persisted, not yet submitted snapshot of a student's answers."""

    model_config = ConfigDict(extra="ignore")

    student_id: Optional[str] = None
    material_id: Optional[str] = None
    quiz_id: Optional[str] = None
    answers: Dict[str, str] = Field(default_factory=dict)
    start_time: Optional[datetime] = None

    @field_validator("answers", mode="before")
    @classmethod
    def normalize_answers(cls, value: Any) -> Dict[str, str]:
        return _coerce_answers(value)


class ProgressStatus(BaseModel):
    """Response body of GET /student/quiz-progress."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    already_submitted: bool = Field(default=False, alias="alreadySubmitted")
    submission_id: Optional[str] = Field(default=None, alias="submissionId")
    draft: Optional[DraftRecord] = None


class SaveDraftRequest(BaseModel):
    """Body of POST /student/quiz-progress (debounced save and beacon flush)."""

    model_config = ConfigDict(populate_by_name=True)

    student_id: str = Field(alias="studentId")
    material_id: str = Field(alias="materialId")
    quiz_id: str = Field(alias="quizId")
    answers: Dict[str, str] = Field(default_factory=dict)
    start_time: int = Field(alias="startTime")

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class SubmitQuizRequest(BaseModel):
    """Body of POST /student/submit-quiz."""

    student_id: str
    material_id: str
    quiz_id: str
    answers: Dict[str, str] = Field(default_factory=dict)
    time_taken: Optional[int] = None

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class Submission(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    material_id: Optional[str] = None
    student_id: Optional[str] = None
    answers: Dict[str, str] = Field(default_factory=dict)
    time_taken: Optional[int] = None
    submitted_at: Optional[datetime] = None

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, value: Any) -> str:
        return str(value)

    @field_validator("answers", mode="before")
    @classmethod
    def normalize_answers(cls, value: Any) -> Dict[str, str]:
        return _coerce_answers(value)


class SubmitQuizResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    message: Optional[str] = None
    submission: Optional[Submission] = None


class ProgressSummary(BaseModel):
    """Answered/total counters shown above the question list."""

    answered: int
    total_questions: int
    total_points: int

    @property
    def percent(self) -> float:
        if self.total_questions == 0:
            return 0.0
        return self.answered / self.total_questions * 100
