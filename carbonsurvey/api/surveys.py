"""
Carbon Survey — Surveys API

A survey is one data-collection session against a template for a single
household.  The client submits raw answers only; carbon equivalents and
the total are computed here from the template's coefficients.
"""

from __future__ import annotations

import asyncio
import re

import structlog
from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from carbonsurvey.api.templates import load_template
from carbonsurvey.database import get_db
from carbonsurvey.models import Survey, User
from carbonsurvey.schemas.common import MessageResponse
from carbonsurvey.schemas.survey import SurveyCreate, SurveyOut
from carbonsurvey.services.carbon_service import CarbonService, UnknownQuestionError
from carbonsurvey.services.report_service import ReportService
from carbonsurvey.utils.security import get_current_user

logger = structlog.get_logger("carbonsurvey.api.surveys")

router = APIRouter()

# ── Service singletons (lazy, constructed on first use) ───────────────────────

_carbon_service: CarbonService | None = None
_report_service: ReportService | None = None


def _get_carbon_service() -> CarbonService:
    global _carbon_service
    if _carbon_service is None:
        _carbon_service = CarbonService()
    return _carbon_service


def _get_report_service() -> ReportService:
    global _report_service
    if _report_service is None:
        _report_service = ReportService()
    return _report_service


async def _load_survey(survey_id: int, db: AsyncSession) -> Survey:
    """Fetch a Survey by ID or raise 404."""
    survey = await db.get(Survey, survey_id)
    if survey is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Survey not found",
        )
    return survey


# ──────────────────────────────────────────────────────────────────────────────
# POST / — Record a conducted survey
# ──────────────────────────────────────────────────────────────────────────────

@router.post(
    "",
    response_model=SurveyOut,
    status_code=status.HTTP_201_CREATED,
    summary="Record a conducted survey",
)
async def create_survey(
    payload: SurveyCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Survey:
    """Score the answers against the template and persist the survey.

    Each stored response carries ``carbonEquivalent = value * coefficient``
    and ``totalCarbonFootprint`` is their sum.
    """
    log = logger.bind(
        template_id=payload.template_id,
        household_id=payload.household_id,
        response_count=len(payload.responses),
    )
    log.info("create_survey_start")

    template = await load_template(payload.template_id, db)

    carbon = _get_carbon_service()
    try:
        responses = carbon.score_responses(
            template.questions,
            ((a.question_id, a.value) for a in payload.responses),
        )
    except UnknownQuestionError as exc:
        log.warning("create_survey_unknown_question", question_id=exc.question_id)
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(exc),
        )

    total = carbon.total_for(template.questions, responses)

    survey = Survey(
        template_id=template.id,
        household_id=payload.household_id,
        household_address=payload.household_address,
        occupants=payload.occupants,
        area=payload.area,
        responses=responses,
        total_carbon_footprint=total,
        conducted_by=current_user.id,
    )
    db.add(survey)
    await db.flush()
    await db.refresh(survey)

    log.info("create_survey_complete", survey_id=survey.id, total=total)
    return survey


# ──────────────────────────────────────────────────────────────────────────────
# GET /{survey_id}
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/{survey_id}",
    response_model=SurveyOut,
    summary="Get a survey by ID",
)
async def get_survey(
    survey_id: int,
    db: AsyncSession = Depends(get_db),
) -> Survey:
    return await _load_survey(survey_id, db)


# ──────────────────────────────────────────────────────────────────────────────
# DELETE /{survey_id}
# ──────────────────────────────────────────────────────────────────────────────

@router.delete(
    "/{survey_id}",
    response_model=MessageResponse,
    summary="Delete a survey",
)
async def delete_survey(
    survey_id: int,
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    survey = await _load_survey(survey_id, db)
    await db.delete(survey)
    await db.flush()

    logger.info("delete_survey_complete", survey_id=survey_id)
    return MessageResponse(message="Survey deleted successfully")


# ──────────────────────────────────────────────────────────────────────────────
# GET /{survey_id}/report.pdf — Household PDF report
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/{survey_id}/report.pdf",
    response_class=Response,
    summary="Download the household carbon footprint report",
    responses={200: {"content": {"application/pdf": {}}}},
)
async def get_survey_report(
    survey_id: int,
    db: AsyncSession = Depends(get_db),
) -> Response:
    log = logger.bind(survey_id=survey_id)
    log.info("get_survey_report_start")

    survey = await _load_survey(survey_id, db)
    template = await load_template(survey.template_id, db)

    report_svc = _get_report_service()
    report = report_svc.build_report(survey, template)
    # reportlab is synchronous and CPU-bound
    pdf_bytes = await asyncio.to_thread(report_svc.render_pdf, report)

    household = re.sub(r"[^A-Za-z0-9_-]+", "_", survey.household_id)
    filename = f"carbon-report-{household}-{survey.id}.pdf"
    log.info("get_survey_report_complete", size_bytes=len(pdf_bytes))
    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
