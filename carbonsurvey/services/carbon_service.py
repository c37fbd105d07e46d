"""
Carbon Survey — Carbon-equivalent aggregation.

Every survey question carries a fixed linear coefficient (kg CO2 per unit
of input).  A raw answer is converted with::

    carbon_equivalent = value * coefficient

and a survey total is the sum of its equivalents.  No rounding happens
here; display rounding belongs to the report layer and never feeds back
into stored values.
"""

from __future__ import annotations

import math
from typing import Iterable, Mapping, Sequence

import structlog

logger = structlog.get_logger("carbonsurvey.carbon_service")


class UnknownQuestionError(ValueError):
    """Raised when an answer references a question the template lacks."""

    def __init__(self, question_id: str) -> None:
        super().__init__(f"Question {question_id!r} is not part of this template.")
        self.question_id = question_id


def compute_equivalent(value: float, coefficient: float) -> float:
    """Return the kg CO2 equivalent of a single raw answer."""
    return value * coefficient


def compute_total(pairs: Iterable[tuple[float, float]]) -> float:
    """Sum the carbon equivalents of ``(value, coefficient)`` pairs.

    ``math.fsum`` is exactly rounded, so the result does not depend on
    the order of ``pairs``.  An empty input yields ``0.0``.
    """
    return math.fsum(compute_equivalent(value, coefficient) for value, coefficient in pairs)


class CarbonService:
    """Turns raw survey answers into stored responses and a total."""

    def score_responses(
        self,
        questions: Sequence[Mapping],
        answers: Iterable[tuple[str, float]],
    ) -> list[dict]:
        """Join ``(question_id, value)`` answers to the template questions.

        Parameters
        ----------
        questions:
            The template's question dicts (``id``, ``text``, ``unit``,
            ``coefficient``).
        answers:
            Raw answers in submission order.

        Returns
        -------
        list[dict]
            ``{"questionId", "value", "carbonEquivalent"}`` entries, one per
            distinct question id.  A repeated question id keeps the slot of
            its first occurrence but takes the value of its last.

        Raises
        ------
        UnknownQuestionError
            If an answer references a question id absent from ``questions``.
        """
        coefficients = {q["id"]: float(q["coefficient"]) for q in questions}

        latest: dict[str, float] = {}
        for question_id, value in answers:
            if question_id not in coefficients:
                raise UnknownQuestionError(question_id)
            if question_id in latest:
                logger.debug("response_replaced", question_id=question_id)
            latest[question_id] = value

        return [
            {
                "questionId": question_id,
                "value": value,
                "carbonEquivalent": compute_equivalent(value, coefficients[question_id]),
            }
            for question_id, value in latest.items()
        ]

    def total_for(
        self,
        questions: Sequence[Mapping],
        responses: Iterable[Mapping],
    ) -> float:
        """Total footprint of stored responses against their questions."""
        coefficients = {q["id"]: float(q["coefficient"]) for q in questions}
        return compute_total(
            (r["value"], coefficients[r["questionId"]]) for r in responses
        )
