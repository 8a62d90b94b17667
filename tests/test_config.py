"""
Unit tests for loyalty configuration and money helpers
"""

import pytest

from config.loyalty_config import (
    MAX_POINTS_SHARE_PERCENT,
    get_loyalty_level,
    max_usable_points,
)
from src.core.enums import EngineErrorKind
from src.core.results import LedgerResult
from src.utils.dates import as_utc
from src.utils.money import percent_of


@pytest.mark.parametrize(
    "points,expected",
    [
        (0, ("Новичок", 500)),
        (499, ("Новичок", 1)),
        (500, ("Bronze", 1500)),
        (2500, ("Silver", 2500)),
        (5000, ("Gold", 5000)),
        (12000, ("Platinum", 0)),
        (-100, ("Новичок", 600)),
    ],
)
def test_get_loyalty_level(points, expected):
    assert get_loyalty_level(points) == expected


def test_max_usable_points():
    assert MAX_POINTS_SHARE_PERCENT == 50
    assert max_usable_points(1000) == 500
    assert max_usable_points(999) == 499
    assert max_usable_points(-10) == 0


def test_percent_of_floors():
    assert percent_of(999, 5) == 49
    assert percent_of(1000, 20) == 200
    assert percent_of(2000, 10) == 200
    assert percent_of(950, 10.5) == 99
    assert percent_of(0, 10) == 0
    assert percent_of(1000, 0) == 0


def test_percent_of_decimal_boundary():
    """0.1-style floats must not round down an exact result"""
    assert percent_of(300, 0.1) == 0
    assert percent_of(1000, 0.3) == 3


def test_as_utc_handles_naive():
    from datetime import datetime, UTC

    naive = datetime(2026, 1, 1, 12, 0)
    assert as_utc(naive).tzinfo is UTC
    assert as_utc(None) is None


def test_error_dict():
    result = LedgerResult(error=EngineErrorKind.INSUFFICIENT_BALANCE)

    assert not result.ok
    assert result.error_dict() == {"error": "insufficient_balance", "message": "Недостаточно баллов"}
    assert LedgerResult().error_dict() == {"error": None, "message": None}
