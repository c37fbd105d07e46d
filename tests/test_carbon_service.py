"""Unit tests for the carbon-equivalent aggregation."""
import itertools
import math

import pytest

from carbonsurvey.services.carbon_service import (
    CarbonService,
    UnknownQuestionError,
    compute_equivalent,
    compute_total,
)


class TestComputeEquivalent:

    def test_linear_in_value(self):
        assert compute_equivalent(100, 0.45) == pytest.approx(45.0)
        assert compute_equivalent(0, 0.45) == 0

    def test_negative_coefficient_is_an_offset(self):
        """Offsets (e.g. rooftop solar export) reduce the footprint."""
        assert compute_equivalent(10, -0.4) == pytest.approx(-4.0)


class TestComputeTotal:

    def test_worked_example(self):
        """100 kWh at 0.45 and 20 bags at 1.2 -> 45 + 24 = 69."""
        assert compute_total([(100, 0.45), (20, 1.2)]) == pytest.approx(69.0)

    def test_empty_is_zero(self):
        total = compute_total([])
        assert total == 0
        assert isinstance(total, float)

    def test_matches_sum_of_equivalents(self):
        pairs = [(12.5, 0.233), (3, 2.31), (7.25, 0.18), (1, 255.0)]
        expected = math.fsum(compute_equivalent(v, c) for v, c in pairs)
        assert compute_total(pairs) == expected

    def test_order_independent(self):
        """Every permutation gives the bit-identical total."""
        pairs = [(0.1, 0.7), (1e6, 0.45), (3.3, 1e-3), (42, 2.68), (0.3, 0.1)]
        totals = {compute_total(p) for p in itertools.permutations(pairs)}
        assert len(totals) == 1

    def test_accepts_generator(self):
        assert compute_total((v, 2.0) for v in range(4)) == pytest.approx(12.0)


class TestScoreResponses:

    def test_worked_example(self, sample_questions, sample_answers):
        responses = CarbonService().score_responses(sample_questions, sample_answers)

        assert [r["questionId"] for r in responses] == ["electricity", "waste"]
        assert [r["carbonEquivalent"] for r in responses] == pytest.approx([45.0, 24.0])
        assert [r["value"] for r in responses] == [100.0, 20.0]

    def test_every_equivalent_is_value_times_coefficient(self, sample_questions):
        coefficients = {q["id"]: q["coefficient"] for q in sample_questions}
        responses = CarbonService().score_responses(
            sample_questions, [("waste", 3.5), ("electricity", 812.25)]
        )
        for r in responses:
            assert r["carbonEquivalent"] == r["value"] * coefficients[r["questionId"]]

    def test_empty_answers(self, sample_questions):
        service = CarbonService()
        responses = service.score_responses(sample_questions, [])
        assert responses == []
        assert service.total_for(sample_questions, responses) == 0

    def test_duplicate_answer_last_value_wins(self, sample_questions):
        """A re-answered question keeps its original position."""
        responses = CarbonService().score_responses(
            sample_questions,
            [("electricity", 100), ("waste", 20), ("electricity", 50)],
        )
        assert [r["questionId"] for r in responses] == ["electricity", "waste"]
        assert responses[0]["value"] == 50
        assert responses[0]["carbonEquivalent"] == pytest.approx(22.5)

    def test_unknown_question_raises(self, sample_questions):
        with pytest.raises(UnknownQuestionError) as exc_info:
            CarbonService().score_responses(sample_questions, [("gas", 10)])
        assert exc_info.value.question_id == "gas"
        assert isinstance(exc_info.value, ValueError)

    def test_total_for_stored_responses(self, sample_questions, sample_answers):
        service = CarbonService()
        responses = service.score_responses(sample_questions, sample_answers)
        assert service.total_for(sample_questions, responses) == pytest.approx(69.0)
