"""Tests for the NAPLAN quality score."""

import pytest
from hypothesis import given
from hypothesis import strategies as st

from househunt.models import METRICS, AssessmentScoreSet, SchoolCategory, YearLevelScores
from househunt.quality import BENCHMARK_NAPLAN, calculate_quality, infer_school_category

score_values = st.integers(min_value=1, max_value=999)
year_level_scores = st.builds(
    YearLevelScores,
    reading=score_values,
    writing=score_values,
    spelling=score_values,
    grammar=score_values,
    numeracy=score_values,
)


class TestCalculateQuality:
    """Test suite for benchmark-relative scoring."""

    @pytest.mark.parametrize("category", list(SchoolCategory))
    def test_benchmark_scores_equal_100(self, category: SchoolCategory) -> None:
        """A school identical to the benchmark scores exactly 100.0."""
        scores = BENCHMARK_NAPLAN.model_copy(update={"source": "myschool.edu.au"})

        assert calculate_quality(scores, category) == 100.0

    def test_uses_category_year_levels_only(self) -> None:
        """Secondary year levels do not affect a primary score."""
        scores = AssessmentScoreSet(
            year3=BENCHMARK_NAPLAN.year3,
            year5=BENCHMARK_NAPLAN.year5,
            year9=YearLevelScores(reading=1, numeracy=1),
        )

        assert calculate_quality(scores, SchoolCategory.PRIMARY) == 100.0

    def test_missing_scores_give_none(self) -> None:
        assert calculate_quality(None, SchoolCategory.PRIMARY) is None

    def test_no_usable_year_level_gives_none(self) -> None:
        scores = AssessmentScoreSet(year7=YearLevelScores(reading=600))

        assert calculate_quality(scores, SchoolCategory.PRIMARY) is None

    def test_empty_benchmark_gives_none(self) -> None:
        assert calculate_quality(BENCHMARK_NAPLAN, SchoolCategory.SECONDARY, AssessmentScoreSet()) is None

    def test_single_year_level_is_averaged_alone(self) -> None:
        """Year levels are averaged independently on each side."""
        year3_total = BENCHMARK_NAPLAN.year3.total()
        year5_total = BENCHMARK_NAPLAN.year5.total()
        scores = AssessmentScoreSet(year3=BENCHMARK_NAPLAN.year3)

        expected = round(year3_total / ((year3_total + year5_total) / 2) * 100, 1)

        assert calculate_quality(scores, SchoolCategory.PRIMARY) == expected

    @given(
        year7=year_level_scores,
        year9=year_level_scores,
        metric=st.sampled_from(METRICS),
        level=st.sampled_from(["year7", "year9"]),
        increase=st.integers(min_value=1, max_value=500),
    )
    def test_monotonic_in_any_metric(
        self,
        year7: YearLevelScores,
        year9: YearLevelScores,
        metric: str,
        level: str,
        increase: int,
    ) -> None:
        """Raising one metric never lowers the score."""
        scores = AssessmentScoreSet(year7=year7, year9=year9)
        current = getattr(scores.for_level(level), metric)
        improved_level = scores.for_level(level).model_copy(
            update={metric: min(current + increase, 999)}
        )
        improved = scores.model_copy(update={level: improved_level})

        before = calculate_quality(scores, SchoolCategory.SECONDARY)
        after = calculate_quality(improved, SchoolCategory.SECONDARY)

        assert before is not None and after is not None
        assert after >= before

    def test_first_metric_on_empty_year_level_joins_the_average(self) -> None:
        """Monotonicity holds within populated year levels only.

        A year level with a zero total is left out of the average, so its
        first reported metric adds a low total to the divisor.
        """
        scores = AssessmentScoreSet(year3=BENCHMARK_NAPLAN.year3)
        with_year5 = scores.model_copy(update={"year5": YearLevelScores(reading=400)})

        before = calculate_quality(scores, SchoolCategory.PRIMARY)
        after = calculate_quality(with_year5, SchoolCategory.PRIMARY)

        assert before is not None and after is not None
        assert after < before


class TestInferSchoolCategory:
    @pytest.mark.parametrize(
        ("name", "expected"),
        [
            ("Balwyn High School", SchoolCategory.SECONDARY),
            ("Camberwell Secondary College", SchoolCategory.SECONDARY),
            ("Mont Albert Primary School", SchoolCategory.PRIMARY),
            ("Kew Primary", SchoolCategory.PRIMARY),
        ],
    )
    def test_name_hints(self, name: str, expected: SchoolCategory) -> None:
        assert infer_school_category(name) == expected
