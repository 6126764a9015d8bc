"""Brain-O-Meter scoring.

Pure functions, no I/O. The submission workflow stores whatever
``normalize_brain_o_meter_score`` returns, reports use
``score_from_category_scores`` for the category average.
"""
import math
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Mapping

from pha.core.exceptions import ValidationError

MIN_SCORE = 0
MAX_SCORE = 100


def is_valid_raw_score(value: Any) -> bool:
    """True for finite ints and floats. Booleans are not scores."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def round_half_up(value: float) -> int:
    # Decimal(str(...)) so that 74.5 rounds to 75 and not banker's 74
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def normalize_brain_o_meter_score(raw_score: Any) -> int:
    """Map a raw score to the stored integer in the range 0-100.

    Raises:
        ValidationError: if ``raw_score`` is not a finite number.
    """
    if not is_valid_raw_score(raw_score):
        raise ValidationError(
            "Brain-O-Meter score must be a finite number",
            field="brain_o_meter_score",
            details={"value": repr(raw_score)},
        )
    return max(MIN_SCORE, min(MAX_SCORE, round_half_up(raw_score)))


def score_from_category_scores(category_scores: Mapping[str, float]) -> int:
    """Average of category percentages, 0 when there are none."""
    if not category_scores:
        return 0
    average = sum(category_scores.values()) / len(category_scores)
    return max(MIN_SCORE, min(MAX_SCORE, round_half_up(average)))
