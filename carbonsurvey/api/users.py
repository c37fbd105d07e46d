"""
Carbon Survey — Users API

Per-user dashboards: counts, templates designed and surveys conducted.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from carbonsurvey.database import get_db
from carbonsurvey.models import Survey, SurveyTemplate, User
from carbonsurvey.schemas.survey import SurveyOut, SurveyTemplateOut
from carbonsurvey.schemas.user import UserStats

logger = structlog.get_logger("carbonsurvey.api.users")

router = APIRouter()

# Earlier clients call the singular `/user/{id}/stats`; mounted under `/user`.
legacy_router = APIRouter()


async def _ensure_user(user_id: int, db: AsyncSession) -> None:
    if await db.get(User, user_id) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"User {user_id} not found.",
        )


# ──────────────────────────────────────────────────────────────────────────────
# GET /{user_id}/stats
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/{user_id}/stats",
    response_model=UserStats,
    summary="Template and survey counts for a user",
)
async def get_user_stats(
    user_id: int,
    db: AsyncSession = Depends(get_db),
) -> UserStats:
    log = logger.bind(user_id=user_id)
    await _ensure_user(user_id, db)

    templates_count = await db.scalar(
        select(func.count())
        .select_from(SurveyTemplate)
        .where(SurveyTemplate.created_by == user_id)
    )
    surveys_count = await db.scalar(
        select(func.count())
        .select_from(Survey)
        .where(Survey.conducted_by == user_id)
    )

    log.info("get_user_stats", templates=templates_count, surveys=surveys_count)
    return UserStats(
        templates_count=templates_count or 0,
        surveys_count=surveys_count or 0,
    )


legacy_router.add_api_route(
    "/{user_id}/stats",
    get_user_stats,
    methods=["GET"],
    response_model=UserStats,
    include_in_schema=False,
)


# ──────────────────────────────────────────────────────────────────────────────
# GET /{user_id}/survey-templates
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/{user_id}/survey-templates",
    response_model=list[SurveyTemplateOut],
    summary="Survey templates created by a user",
)
async def list_user_templates(
    user_id: int,
    db: AsyncSession = Depends(get_db),
) -> list[SurveyTemplate]:
    stmt = (
        select(SurveyTemplate)
        .where(SurveyTemplate.created_by == user_id)
        .order_by(SurveyTemplate.created_at.desc(), SurveyTemplate.id.desc())
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


# ──────────────────────────────────────────────────────────────────────────────
# GET /{user_id}/surveys
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/{user_id}/surveys",
    response_model=list[SurveyOut],
    summary="Surveys conducted by a user",
)
async def list_user_surveys(
    user_id: int,
    db: AsyncSession = Depends(get_db),
) -> list[Survey]:
    stmt = (
        select(Survey)
        .where(Survey.conducted_by == user_id)
        .order_by(Survey.created_at.desc(), Survey.id.desc())
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())
