"""
Tests for fee calculation in teesheet/services/rate_engine.py.
"""

from datetime import date

import pytest
from pydantic import ValidationError

from teesheet.exceptions import MissingHoleBucket, UnknownRatio, UnknownTier
from teesheet.models.schemas import BaseFees, DayRates, RateSchedule, TaxConfig
from teesheet.services import rate_engine

REQUIRED_TIERS = ["platinum", "gold", "team_friend", "guest"]
REQUIRED_RATIOS = ["1:1", "1:2", "1:3", "1:4"]


@pytest.fixture
def schedule() -> RateSchedule:
    return RateSchedule(
        green_fees={
            "platinum": {
                9: DayRates(weekday=500, holiday=500),
                18: DayRates(weekday=1000, holiday=1000),
            },
            "gold": {9: DayRates(weekday=700, holiday=900), 18: DayRates(weekday=1200, holiday=1500)},
            "team_friend": {
                9: DayRates(weekday=900, holiday=1100),
                18: DayRates(weekday=1500, holiday=1900),
            },
            "guest": {
                9: DayRates(weekday=1100, holiday=1400),
                18: DayRates(weekday=1800, holiday=2400),
            },
        },
        caddy_fees={
            "1:1": {9: 900, 18: 1800},
            "1:2": {9: 1000, 18: 2000},
            "1:3": {9: 1100, 18: 2200},
            "1:4": {9: 800, 18: 1600},
        },
        base_fees=BaseFees(cleaning={9: 100, 18: 200}, cart_per_person={9: 250, 18: 500}),
        tax_config=TaxConfig(entertainment_tax=0.05),
    )


class TestCalculate:
    """Tests for single-tier group pricing."""

    def test_four_guests_eighteen_holes(self, schedule: RateSchedule) -> None:
        """(1800 + 200 + 500) * 4 + 1600 = 11600, tax 580, total 12180."""
        fees = rate_engine.calculate("guest", 18, False, "1:4", 4, schedule)

        assert fees.green_fee == 7200
        assert fees.cleaning_fee == 800
        assert fees.cart_fee == 2000
        assert fees.caddy_fee == 1600
        assert fees.subtotal == 11600
        assert fees.entertainment_tax == 580
        assert fees.total == 12180
        assert fees.tax_rate == 0.05

    def test_caddy_fee_charged_once_per_group(self, schedule: RateSchedule) -> None:
        two = rate_engine.calculate("guest", 18, False, "1:4", 2, schedule)
        four = rate_engine.calculate("guest", 18, False, "1:4", 4, schedule)

        assert two.caddy_fee == four.caddy_fee == 1600
        assert four.subtotal - two.subtotal == 2 * (1800 + 200 + 500)

    def test_holiday_rates(self, schedule: RateSchedule) -> None:
        fees = rate_engine.calculate("guest", 18, True, "1:4", 1, schedule)

        assert fees.green_fee == 2400

    def test_nine_holes(self, schedule: RateSchedule) -> None:
        fees = rate_engine.calculate("gold", 9, False, "1:2", 2, schedule)

        assert fees.subtotal == (700 + 100 + 250) * 2 + 1000

    def test_deterministic(self, schedule: RateSchedule) -> None:
        first = rate_engine.calculate("team_friend", 18, True, "1:3", 3, schedule)
        second = rate_engine.calculate("team_friend", 18, True, "1:3", 3, schedule)

        assert first == second
        assert first.model_dump_json() == second.model_dump_json()

    def test_per_player_lines_exclude_caddy(self, schedule: RateSchedule) -> None:
        fees = rate_engine.calculate("guest", 18, False, "1:4", 4, schedule)

        assert len(fees.per_player) == 4
        assert all(p.green_fee == 1800 for p in fees.per_player)
        assert sum(p.green_fee + p.cleaning_fee + p.cart_fee for p in fees.per_player) == (
            fees.subtotal - fees.caddy_fee
        )

    def test_player_count_must_be_positive(self, schedule: RateSchedule) -> None:
        with pytest.raises(ValueError):
            rate_engine.calculate("guest", 18, False, "1:4", 0, schedule)


class TestCalculateGroup:
    def test_mixed_tiers(self, schedule: RateSchedule) -> None:
        fees = rate_engine.calculate_group(
            ["platinum", "guest", "guest"], 18, True, "1:3", schedule
        )

        assert [p.green_fee for p in fees.per_player] == [1000, 2400, 2400]
        assert fees.green_fee == 5800
        assert fees.caddy_fee == 2200
        assert fees.subtotal == 5800 + 600 + 1500 + 2200


class TestLookupErrors:
    def test_unknown_tier(self, schedule: RateSchedule) -> None:
        with pytest.raises(UnknownTier):
            rate_engine.calculate("diamond", 18, False, "1:4", 4, schedule)

    def test_unknown_ratio(self, schedule: RateSchedule) -> None:
        with pytest.raises(UnknownRatio):
            rate_engine.calculate("guest", 18, False, "1:5", 4, schedule)

    def test_missing_hole_bucket(self, schedule: RateSchedule) -> None:
        with pytest.raises(MissingHoleBucket):
            rate_engine.calculate("guest", 27, False, "1:4", 4, schedule)


class TestEntertainmentTax:
    @pytest.mark.parametrize(
        "subtotal,expected",
        [(11600, 580), (10010, 501), (10030, 502), (9, 0), (10, 1)],
    )
    def test_rounds_half_up(self, subtotal: int, expected: int) -> None:
        assert rate_engine.entertainment_tax(subtotal, 0.05) == expected


class TestValidateCompleteness:
    def test_complete_config_passes(self, schedule: RateSchedule) -> None:
        rate_engine.validate_completeness(schedule, REQUIRED_TIERS, REQUIRED_RATIOS)

    def test_missing_required_tier(self, schedule: RateSchedule) -> None:
        del schedule.green_fees["team_friend"]

        with pytest.raises(UnknownTier):
            rate_engine.validate_completeness(schedule, REQUIRED_TIERS, REQUIRED_RATIOS)

    def test_missing_required_ratio(self, schedule: RateSchedule) -> None:
        del schedule.caddy_fees["1:1"]

        with pytest.raises(UnknownRatio):
            rate_engine.validate_completeness(schedule, REQUIRED_TIERS, REQUIRED_RATIOS)

    def test_missing_bucket_on_extra_tier(self, schedule: RateSchedule) -> None:
        schedule.green_fees["junior"] = {18: DayRates(weekday=600, holiday=700)}

        with pytest.raises(MissingHoleBucket):
            rate_engine.validate_completeness(schedule, REQUIRED_TIERS, REQUIRED_RATIOS)

    def test_missing_cart_bucket(self, schedule: RateSchedule) -> None:
        del schedule.base_fees.cart_per_person[9]

        with pytest.raises(MissingHoleBucket, match="Cart fee"):
            rate_engine.validate_completeness(schedule, REQUIRED_TIERS, REQUIRED_RATIOS)


class TestPlatinumRule:
    def test_platinum_weekday_must_equal_holiday(self, schedule: RateSchedule) -> None:
        data = schedule.model_dump()
        data["green_fees"]["platinum"][18] = {"weekday": 1000, "holiday": 1200}

        with pytest.raises(ValidationError, match="Platinum 18-hole"):
            RateSchedule.model_validate(data)


class TestTierMapping:
    @pytest.mark.parametrize(
        "golfer_type,tier",
        [
            ("白金會員", "platinum"),
            ("金卡會員", "gold"),
            ("VIP-A", "gold"),
            ("團友", "team_friend"),
            ("來賓", "guest"),
            ("unknown", "guest"),
            (None, "guest"),
        ],
    )
    def test_golfer_type_to_tier(self, golfer_type: str | None, tier: str) -> None:
        assert rate_engine.golfer_type_to_tier(golfer_type) == tier

    def test_weekends_are_holidays(self) -> None:
        assert not rate_engine.is_holiday(date(2026, 3, 6))
        assert rate_engine.is_holiday(date(2026, 3, 7))
        assert rate_engine.is_holiday(date(2026, 3, 8))
