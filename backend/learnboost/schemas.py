from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class _CamelModel(BaseModel):
    # Wire and storage use camelCase; code uses snake_case
    model_config = ConfigDict(populate_by_name=True)


class Question(_CamelModel):
    id: str
    prompt: str
    choices: List[str] = Field(default_factory=list)
    correct_index: int = Field(default=0, alias="correctIndex")


class AnswerResult(_CamelModel):
    q_id: str = Field(alias="qId")
    prompt: str = ""
    selected_index: int = Field(alias="selectedIndex")
    correct_index: int = Field(alias="correctIndex")
    correct: bool


class Submission(_CamelModel):
    id: str
    timestamp: datetime
    user_id: Optional[str] = Field(default=None, alias="userId")
    score: int = Field(ge=0, le=100)
    answers: List[AnswerResult] = Field(default_factory=list)


class Test(_CamelModel):
    id: str
    name: str
    created_at: datetime = Field(alias="createdAt")
    source_text: str = Field(alias="sourceText")
    questions: List[Question] = Field(default_factory=list)
    results: List[Submission] = Field(default_factory=list)


class TestSummary(_CamelModel):
    id: str
    name: str
    created_at: datetime = Field(alias="createdAt")
    question_count: int = Field(alias="questionCount")


# Requests / responses

class CreateTestRequest(_CamelModel):
    # Optional here so a missing field is reported as invalid_argument, not a 422
    name: Optional[str] = None
    text: Optional[str] = None
    requested: Optional[int] = None


class AnswerIn(_CamelModel):
    q_id: str = Field(alias="qId")
    selected_index: Optional[int] = Field(default=None, alias="selectedIndex")

    @field_validator("selected_index", mode="before")
    @classmethod
    def only_json_integers(cls, value: Any) -> Any:
        # true, "1" and 1.0 are not choice indexes; grade them as no selection
        if isinstance(value, bool) or not isinstance(value, int):
            return None
        return value


class SubmitRequest(_CamelModel):
    user_id: Optional[str] = Field(default=None, alias="userId")
    answers: List[AnswerIn] = Field(default_factory=list)


class SubmitResponse(_CamelModel):
    submission: Submission
    score: int


class JustifyRequest(_CamelModel):
    q_ids: List[str] = Field(default_factory=list, alias="qIds")
    context_notes: Optional[str] = Field(default=None, alias="contextNotes")


class Justification(_CamelModel):
    q_id: str = Field(alias="qId")
    explanation: str


class JustifyResponse(_CamelModel):
    justifications: List[Justification]
