"""
Tests for bot command parsing and formatting
"""

import pytest

from src.bot.handlers.loyalty import format_points_message
from src.bot.handlers.loyalty_admin import parse_award_args
from src.bot.handlers.start import parse_referral_code


@pytest.mark.parametrize(
    "args,expected",
    [
        ("ref_ivan1234", "IVAN1234"),
        (" ref_KAVARA123456 ", "KAVARA123456"),
        ("ref_", None),
        ("promo_summer", None),
        ("", None),
        (None, None),
    ],
)
def test_parse_referral_code(args, expected):
    assert parse_referral_code(args) == expected


def test_parse_award_args():
    assert parse_award_args("/award @ivan 500 Подарок за отзыв") == ("@ivan", 500, "Подарок за отзыв")
    assert parse_award_args("/award ivan -200") == ("ivan", -200, None)
    assert parse_award_args("/award ivan") is None
    assert parse_award_args("/award ivan many") is None
    assert parse_award_args(None) is None


def test_format_points_message():
    text = format_points_message(
        {
            "total_points": 12500,
            "total_earned": 13000,
            "total_spent": -500,
            "total_referrals": 2,
            "level": "Platinum",
            "points_to_next_level": 0,
        }
    )

    assert "12 500" in text
    assert "Platinum" in text
    assert "Потрачено: 500" in text
    assert "До следующего уровня" not in text
