"""Relative-to-benchmark quality score for NAPLAN results.

The score compares the average per-year-level total (five domains summed)
of a school with the same average over a fixed benchmark table:

    quality = round(school_avg / benchmark_avg * 100, 1)

100.0 means the school matches the benchmark; above 100 is better.
"""

from types import MappingProxyType
from typing import Mapping

from househunt.logger import get_logger
from househunt.models import AssessmentScoreSet, SchoolCategory, YearLevelScores

log = get_logger(__name__)

CATEGORY_YEAR_LEVELS: Mapping[SchoolCategory, tuple[str, str]] = MappingProxyType(
    {
        SchoolCategory.PRIMARY: ("year3", "year5"),
        SchoolCategory.SECONDARY: ("year7", "year9"),
    }
)

BENCHMARK_NAPLAN = AssessmentScoreSet(
    source="benchmark",
    year3=YearLevelScores(reading=446, writing=460, spelling=459, grammar=475, numeracy=466),
    year5=YearLevelScores(reading=539, writing=539, spelling=536, grammar=561, numeracy=566),
    year7=YearLevelScores(reading=584, writing=592, spelling=581, grammar=592, numeracy=616),
    year9=YearLevelScores(reading=601, writing=632, spelling=602, grammar=609, numeracy=637),
)

SECONDARY_NAME_HINTS = ("secondary", "high", "college")


def infer_school_category(school_name: str) -> SchoolCategory:
    """Guess the category from the school's name."""
    lowered = school_name.lower()
    if any(hint in lowered for hint in SECONDARY_NAME_HINTS):
        return SchoolCategory.SECONDARY
    return SchoolCategory.PRIMARY


def _average_total(scores: AssessmentScoreSet, levels: tuple[str, ...]) -> float | None:
    totals = [
        total
        for level in levels
        if (year_scores := scores.for_level(level)) is not None and (total := year_scores.total()) > 0
    ]
    if not totals:
        return None
    return sum(totals) / len(totals)


def calculate_quality(
    scores: AssessmentScoreSet | None,
    category: SchoolCategory,
    benchmark: AssessmentScoreSet = BENCHMARK_NAPLAN,
) -> float | None:
    """Score ``scores`` against ``benchmark`` for the category's year levels.

    Returns:
        The rounded percentage, or None when either side has no year level
        with a nonzero total.
    """
    if scores is None:
        return None

    levels = CATEGORY_YEAR_LEVELS[category]
    school_avg = _average_total(scores, levels)
    benchmark_avg = _average_total(benchmark, levels)

    if school_avg is None or benchmark_avg is None:
        log.debug("Insufficient assessment data", category=str(category), levels=levels)
        return None

    return round((school_avg / benchmark_avg) * 100, 1)
