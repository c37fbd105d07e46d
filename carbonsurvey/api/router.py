"""
Carbon Survey — Main API Router

Aggregates all sub-routers so that ``carbonsurvey.main`` can mount the
entire API surface with one ``include_router`` call.  Everything except
``/auth`` requires a bearer token.
"""

from fastapi import APIRouter, Depends

from carbonsurvey.api import auth, surveys, templates, users
from carbonsurvey.utils.security import get_current_user

router = APIRouter()

_authenticated = [Depends(get_current_user)]

router.include_router(auth.router, prefix="/auth", tags=["Auth"])
router.include_router(users.router, prefix="/users", tags=["Users"], dependencies=_authenticated)
router.include_router(users.legacy_router, prefix="/user", dependencies=_authenticated)
router.include_router(
    templates.router, prefix="/survey-templates", tags=["Survey Templates"], dependencies=_authenticated
)
router.include_router(surveys.router, prefix="/surveys", tags=["Surveys"], dependencies=_authenticated)
