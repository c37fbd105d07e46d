"""
Carbon Survey — ORM model registry.

Importing every model here ensures that Alembic (and any other tool that
inspects ``Base.metadata``) discovers all tables automatically.
"""

from carbonsurvey.models.user import User
from carbonsurvey.models.survey import Survey, SurveyTemplate

__all__ = [
    "User",
    "SurveyTemplate",
    "Survey",
]
