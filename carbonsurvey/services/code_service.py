"""
Carbon Survey — Survey template code generation.

Template codes are the lookup key data collectors type in the field, so
they are short and human-readable::

    CS-2024-7QK2ZD
    ^  ^    ^
    |  |    six uppercase alphanumerics from a fresh random draw
    |  calendar year of the creation time
    fixed prefix (``SURVEY_CODE_PREFIX``)

Codes are not guaranteed unique by construction.  The ``code`` column
carries a unique constraint and ``TemplateCodeService`` re-draws on
collision, giving up after ``CODE_MAX_ATTEMPTS`` attempts.
"""

from __future__ import annotations

import random
import string
from datetime import datetime, timezone
from typing import Callable, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
)

from carbonsurvey.config import get_settings
from carbonsurvey.models import SurveyTemplate

logger = structlog.get_logger("carbonsurvey.code_service")

CODE_ALPHABET: str = string.ascii_uppercase + string.digits
CODE_RANDOM_LENGTH: int = 6

_system_random = random.SystemRandom()


class CodeCollisionError(Exception):
    """A generated code is already taken."""

    def __init__(self, code: str) -> None:
        super().__init__(f"Survey code {code} already exists.")
        self.code = code


class CodeGenerationExhaustedError(RuntimeError):
    """No unique code could be produced within the attempt budget."""

    def __init__(self, attempts: int) -> None:
        super().__init__(
            f"Could not generate a unique survey code after {attempts} attempts."
        )
        self.attempts = attempts


def generate_code(
    now: datetime,
    rng: Optional[random.Random] = None,
    prefix: str = "CS",
) -> str:
    """Return ``"<prefix>-<YYYY>-<XXXXXX>"`` for the given creation time.

    Pure apart from the random draw: the same ``now`` and a fresh draw
    always produce a well-formed code, so callers may loop freely.
    """
    rng = rng or _system_random
    token = "".join(rng.choices(CODE_ALPHABET, k=CODE_RANDOM_LENGTH))
    return f"{prefix}-{now.year:04d}-{token}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TemplateCodeService:
    """Attach a unique code to a new ``SurveyTemplate`` and insert it.

    The clock and the random source are injectable so tests can pin the
    year and force collisions.
    """

    def __init__(
        self,
        prefix: Optional[str] = None,
        max_attempts: Optional[int] = None,
        clock: Callable[[], datetime] = _utcnow,
        rng: Optional[random.Random] = None,
    ) -> None:
        settings = get_settings()
        self.prefix = prefix or settings.SURVEY_CODE_PREFIX
        self.max_attempts = max_attempts or settings.CODE_MAX_ATTEMPTS
        self._clock = clock
        self._rng = rng or _system_random

    def new_code(self) -> str:
        return generate_code(self._clock(), self._rng, self.prefix)

    async def insert_with_unique_code(
        self,
        db: AsyncSession,
        build: Callable[[str], SurveyTemplate],
    ) -> SurveyTemplate:
        """Insert the template returned by ``build(code)`` with a fresh code.

        Each attempt runs in a SAVEPOINT, so a collision never discards
        work the caller already flushed in the same transaction.
        ``build`` is called once per attempt, because a rolled-back
        savepoint expunges the pending instance from the session.

        Raises
        ------
        CodeGenerationExhaustedError
            When every attempt collided with an existing code.
        """
        try:
            async for attempt in AsyncRetrying(
                retry=retry_if_exception_type(CodeCollisionError),
                stop=stop_after_attempt(self.max_attempts),
            ):
                with attempt:
                    return await self._insert_once(
                        db, build, attempt.retry_state.attempt_number
                    )
        except RetryError as retry_err:
            logger.error(
                "survey_code_exhausted",
                attempts=self.max_attempts,
                last_error=str(retry_err.last_attempt.exception()),
            )
            raise CodeGenerationExhaustedError(self.max_attempts) from retry_err

    async def _insert_once(
        self,
        db: AsyncSession,
        build: Callable[[str], SurveyTemplate],
        attempt_number: int,
    ) -> SurveyTemplate:
        code = self.new_code()
        log = logger.bind(code=code, attempt=attempt_number)

        if await self._code_exists(db, code):
            log.warning("survey_code_collision", stage="precheck")
            raise CodeCollisionError(code)

        template = build(code)
        try:
            # Only the savepoint is rolled back; earlier work in the
            # caller's transaction survives a collision.
            async with db.begin_nested():
                db.add(template)
                await db.flush()
        except IntegrityError as exc:
            # Another request may have claimed the code between the check
            # and the insert.  Anything else is not ours to retry.
            if not await self._code_exists(db, code):
                raise
            log.warning("survey_code_collision", stage="insert")
            raise CodeCollisionError(code) from exc

        log.info("survey_code_assigned")
        return template

    @staticmethod
    async def _code_exists(db: AsyncSession, code: str) -> bool:
        stmt = select(SurveyTemplate.id).where(SurveyTemplate.code == code)
        return (await db.scalar(stmt)) is not None
