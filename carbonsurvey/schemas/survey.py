from pydantic import Field, field_validator
from datetime import datetime
from typing import Optional

from carbonsurvey.schemas.common import CamelModel


def _ensure_unique_question_ids(questions):
    if questions is None:
        return questions
    seen: set[str] = set()
    for q in questions:
        if q.id in seen:
            raise ValueError(f"Duplicate question id: {q.id!r}")
        seen.add(q.id)
    return questions


class SurveyQuestion(CamelModel):
    id: str = Field(min_length=1)
    text: str = Field(min_length=1)
    unit: str
    coefficient: float = Field(allow_inf_nan=False, description="kg CO2 per unit")


class SurveyTemplateCreate(CamelModel):
    name: str = Field(min_length=1)
    description: Optional[str] = None
    questions: list[SurveyQuestion] = Field(min_length=1)

    @field_validator("questions")
    @classmethod
    def unique_question_ids(cls, v: list[SurveyQuestion]) -> list[SurveyQuestion]:
        return _ensure_unique_question_ids(v)


class SurveyTemplateUpdate(CamelModel):
    # no code field: codes never change after creation
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    questions: Optional[list[SurveyQuestion]] = Field(None, min_length=1)

    @field_validator("questions")
    @classmethod
    def unique_question_ids(cls, v):
        return _ensure_unique_question_ids(v)


class SurveyTemplateOut(CamelModel):
    id: int
    name: str
    description: Optional[str]
    code: str
    questions: list[SurveyQuestion]
    created_by: int
    created_at: datetime
    updated_at: datetime


class SurveyAnswer(CamelModel):
    question_id: str = Field(min_length=1)
    value: float = Field(ge=0, allow_inf_nan=False)


class SurveyCreate(CamelModel):
    template_id: int
    household_id: str = Field(min_length=1)
    household_address: str = Field(min_length=1)
    occupants: int = Field(ge=1)
    area: Optional[float] = Field(None, ge=0, allow_inf_nan=False)
    responses: list[SurveyAnswer] = []


class StoredResponse(CamelModel):
    question_id: str
    value: float
    carbon_equivalent: float


class SurveyOut(CamelModel):
    id: int
    template_id: int
    household_id: str
    household_address: str
    occupants: int
    area: Optional[float]
    responses: list[StoredResponse]
    total_carbon_footprint: float
    conducted_by: int
    created_at: datetime
