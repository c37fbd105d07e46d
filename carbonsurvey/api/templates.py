"""
Carbon Survey — Survey Templates API

Designers create templates (an ordered list of questions, each with a
unit and a kg CO2 coefficient).  Each template gets a unique code at
creation which data collectors later use to look it up.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from carbonsurvey.database import get_db
from carbonsurvey.models import Survey, SurveyTemplate, User
from carbonsurvey.schemas.common import MessageResponse
from carbonsurvey.schemas.survey import (
    SurveyOut,
    SurveyTemplateCreate,
    SurveyTemplateOut,
    SurveyTemplateUpdate,
)
from carbonsurvey.services.code_service import (
    CodeGenerationExhaustedError,
    TemplateCodeService,
)
from carbonsurvey.utils.security import get_current_user

logger = structlog.get_logger("carbonsurvey.api.templates")

router = APIRouter()

# ── Service singletons (lazy, constructed on first use) ───────────────────────

_code_service: TemplateCodeService | None = None


def _get_code_service() -> TemplateCodeService:
    global _code_service
    if _code_service is None:
        _code_service = TemplateCodeService()
    return _code_service


# ── Helpers ───────────────────────────────────────────────────────────────────

async def load_template(template_id: int, db: AsyncSession) -> SurveyTemplate:
    """Fetch a SurveyTemplate by ID or raise 404."""
    template = await db.get(SurveyTemplate, template_id)
    if template is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Survey template not found",
        )
    return template


async def _survey_count(template_id: int, db: AsyncSession) -> int:
    stmt = select(func.count()).select_from(Survey).where(Survey.template_id == template_id)
    return (await db.scalar(stmt)) or 0


# ──────────────────────────────────────────────────────────────────────────────
# POST / — Create a template
# ──────────────────────────────────────────────────────────────────────────────

@router.post(
    "",
    response_model=SurveyTemplateOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create a survey template",
)
async def create_template(
    payload: SurveyTemplateCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> SurveyTemplate:
    """Create a template owned by the current user and assign its code.

    Returns 503 when no unique code could be generated; the request can
    simply be retried.
    """
    user_id = current_user.id
    log = logger.bind(user_id=user_id, question_count=len(payload.questions))
    log.info("create_template_start")

    questions = [q.model_dump() for q in payload.questions]

    def build(code: str) -> SurveyTemplate:
        return SurveyTemplate(
            name=payload.name,
            description=payload.description,
            code=code,
            questions=questions,
            created_by=user_id,
        )

    try:
        template = await _get_code_service().insert_with_unique_code(db, build)
    except CodeGenerationExhaustedError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
            headers={"Retry-After": "1"},
        )

    await db.refresh(template)
    log.info("create_template_complete", template_id=template.id, code=template.code)
    return template


# ──────────────────────────────────────────────────────────────────────────────
# GET / — List all templates
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "",
    response_model=list[SurveyTemplateOut],
    summary="List all survey templates",
)
async def list_templates(
    db: AsyncSession = Depends(get_db),
) -> list[SurveyTemplate]:
    stmt = select(SurveyTemplate).order_by(
        SurveyTemplate.created_at.desc(), SurveyTemplate.id.desc()
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


# ──────────────────────────────────────────────────────────────────────────────
# GET /code/{code} — Look up by code (data collection)
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/code/{code}",
    response_model=SurveyTemplateOut,
    summary="Get a survey template by its code",
)
async def get_template_by_code(
    code: str,
    db: AsyncSession = Depends(get_db),
) -> SurveyTemplate:
    """Codes are matched case-insensitively; they are stored uppercase."""
    log = logger.bind(code=code)
    stmt = select(SurveyTemplate).where(SurveyTemplate.code == code.strip().upper())
    template = (await db.execute(stmt)).scalar_one_or_none()

    if template is None:
        log.warning("get_template_by_code_not_found")
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Survey template not found",
        )

    log.info("get_template_by_code", template_id=template.id)
    return template


# ──────────────────────────────────────────────────────────────────────────────
# GET /{template_id}
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/{template_id}",
    response_model=SurveyTemplateOut,
    summary="Get a survey template by ID",
)
async def get_template(
    template_id: int,
    db: AsyncSession = Depends(get_db),
) -> SurveyTemplate:
    return await load_template(template_id, db)


# ──────────────────────────────────────────────────────────────────────────────
# PUT /{template_id} — Update name / description / questions
# ──────────────────────────────────────────────────────────────────────────────

@router.put(
    "/{template_id}",
    response_model=SurveyTemplateOut,
    summary="Update a survey template",
)
async def update_template(
    template_id: int,
    payload: SurveyTemplateUpdate,
    db: AsyncSession = Depends(get_db),
) -> SurveyTemplate:
    """Apply the fields present in the body.

    Questions are frozen once a survey has been conducted against the
    template: stored totals were computed with the old coefficients.
    """
    log = logger.bind(template_id=template_id)
    log.info("update_template_start")

    template = await load_template(template_id, db)
    update_data = payload.model_dump(exclude_unset=True)

    # name and questions are required columns; an explicit null leaves them as-is
    for required in ("name", "questions"):
        if required in update_data and update_data[required] is None:
            del update_data[required]

    if "questions" in update_data and await _survey_count(template_id, db) > 0:
        log.warning("update_template_questions_frozen")
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Questions cannot be changed once surveys have been conducted.",
        )

    for field, value in update_data.items():
        setattr(template, field, value)

    await db.flush()
    await db.refresh(template)

    log.info("update_template_complete", updated_fields=list(update_data.keys()))
    return template


# ──────────────────────────────────────────────────────────────────────────────
# DELETE /{template_id}
# ──────────────────────────────────────────────────────────────────────────────

@router.delete(
    "/{template_id}",
    response_model=MessageResponse,
    summary="Delete a survey template",
)
async def delete_template(
    template_id: int,
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    log = logger.bind(template_id=template_id)

    template = await load_template(template_id, db)
    if await _survey_count(template_id, db) > 0:
        log.warning("delete_template_has_surveys")
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Survey template has conducted surveys and cannot be deleted.",
        )

    await db.delete(template)
    await db.flush()

    log.info("delete_template_complete")
    return MessageResponse(message="Survey template deleted successfully")


# ──────────────────────────────────────────────────────────────────────────────
# GET /{template_id}/surveys
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/{template_id}/surveys",
    response_model=list[SurveyOut],
    summary="List surveys conducted against a template",
)
async def list_template_surveys(
    template_id: int,
    db: AsyncSession = Depends(get_db),
) -> list[Survey]:
    stmt = (
        select(Survey)
        .where(Survey.template_id == template_id)
        .order_by(Survey.created_at.desc(), Survey.id.desc())
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())
