"""Tests for Brain-O-Meter score normalization."""

import math

import pytest

from pha.core.exceptions import ValidationError
from pha.services.scoring import (
    is_valid_raw_score,
    normalize_brain_o_meter_score,
    score_from_category_scores,
)


@pytest.mark.parametrize(
    "raw, expected",
    [
        (75, 75),
        (75.0, 75),
        (74.5, 75),
        (74.49, 74),
        (0.5, 1),
        (-3, 0),
        (100.4, 100),
        (250, 100),
    ],
)
def test_normalize_rounds_half_up_and_clamps(raw, expected):
    assert normalize_brain_o_meter_score(raw) == expected


@pytest.mark.parametrize("raw", ["75", None, True, False, math.nan, math.inf, -math.inf, [75]])
def test_normalize_rejects_non_numeric(raw):
    with pytest.raises(ValidationError) as exc_info:
        normalize_brain_o_meter_score(raw)
    assert exc_info.value.field == "brain_o_meter_score"


def test_is_valid_raw_score_excludes_booleans():
    assert is_valid_raw_score(1)
    assert not is_valid_raw_score(True)


def test_score_from_category_scores():
    assert score_from_category_scores({}) == 0
    assert score_from_category_scores({"sleep": 80.0, "cognitive": 65.0}) == 73
    assert score_from_category_scores({"sleep": 100.0}) == 100
