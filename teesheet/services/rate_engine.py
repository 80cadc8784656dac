"""
Fee calculation under a rate config.

All functions here are pure: the same inputs and an unmodified config always produce
the same FeeBreakdown. Missing config keys raise instead of defaulting, and the same
lookups are run by validate_completeness before a config may be activated.
"""

from collections.abc import Iterable, Sequence
from datetime import date
from decimal import ROUND_HALF_UP, Decimal

from teesheet.exceptions import MissingHoleBucket, UnknownRatio, UnknownTier
from teesheet.models.schemas import FeeBreakdown, PlayerFee, RateSchedule

HOLE_BUCKETS = (9, 18)

# Member categories as recorded on the user profile -> pricing tier.
TIER_BY_GOLFER_TYPE = {
    "白金會員": "platinum",
    "金卡會員": "gold",
    "社區會員": "gold",
    "VIP-A": "gold",
    "VIP-B": "gold",
    "團友": "team_friend",
    "來賓": "guest",
}


def golfer_type_to_tier(golfer_type: str | None) -> str:
    return TIER_BY_GOLFER_TYPE.get(golfer_type or "", "guest")


def is_holiday(play_date: date) -> bool:
    """Saturdays and Sundays are priced at holiday rates."""
    return play_date.weekday() >= 5


def _hole_bucket(table: dict[int, int], holes: int, label: str) -> int:
    try:
        return table[holes]
    except KeyError:
        raise MissingHoleBucket(f"{label} has no {holes}-hole bucket") from None


def green_fee(config: RateSchedule, tier: str, holes: int, holiday: bool) -> int:
    if tier not in config.green_fees:
        raise UnknownTier(f"No green fees configured for tier '{tier}'")
    by_holes = config.green_fees[tier]
    if holes not in by_holes:
        raise MissingHoleBucket(f"Green fees for tier '{tier}' have no {holes}-hole bucket")
    rates = by_holes[holes]
    return rates.holiday if holiday else rates.weekday


def caddy_fee(config: RateSchedule, caddy_ratio: str, holes: int) -> int:
    if caddy_ratio not in config.caddy_fees:
        raise UnknownRatio(f"No caddy fee configured for ratio '{caddy_ratio}'")
    return _hole_bucket(config.caddy_fees[caddy_ratio], holes, f"Caddy fee {caddy_ratio}")


def entertainment_tax(subtotal: int, rate: float) -> int:
    """Tax rounded half-up to a whole currency unit."""
    amount = Decimal(subtotal) * Decimal(str(rate))
    return int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def calculate_group(
    tiers: Sequence[str],
    holes: int,
    holiday: bool,
    caddy_ratio: str,
    config: RateSchedule,
) -> FeeBreakdown:
    """
    Price a group whose players may be on different tiers.

    Green, cleaning and cart fees are charged per player. The caddy fee is charged
    once for the whole group and is not split across the per-player lines.

    Args:
        tiers: One pricing tier per player, in player order.
        holes: 9 or 18.
        holiday: Whether holiday green fees apply.
        caddy_ratio: Caddies to players, e.g. "1:4".
        config: The rate schedule to price under.

    Returns:
        The itemized FeeBreakdown, including one PlayerFee per player.
    """
    if not tiers:
        raise ValueError("At least one player is required")
    holes = int(holes)

    cleaning = _hole_bucket(config.base_fees.cleaning, holes, "Cleaning fee")
    cart = _hole_bucket(config.base_fees.cart_per_person, holes, "Cart fee")
    group_caddy_fee = caddy_fee(config, caddy_ratio, holes)

    per_player = [
        PlayerFee(
            index=i,
            tier=tier,
            green_fee=green_fee(config, tier, holes, holiday),
            cleaning_fee=cleaning,
            cart_fee=cart,
        )
        for i, tier in enumerate(tiers)
    ]

    total_green = sum(p.green_fee for p in per_player)
    total_cleaning = sum(p.cleaning_fee for p in per_player)
    total_cart = sum(p.cart_fee for p in per_player)
    subtotal = total_green + total_cleaning + total_cart + group_caddy_fee
    rate = config.tax_config.entertainment_tax
    tax = entertainment_tax(subtotal, rate)

    return FeeBreakdown(
        green_fee=total_green,
        cleaning_fee=total_cleaning,
        cart_fee=total_cart,
        caddy_fee=group_caddy_fee,
        subtotal=subtotal,
        entertainment_tax=tax,
        total=subtotal + tax,
        tax_rate=rate,
        per_player=per_player,
    )


def calculate(
    tier: str,
    holes: int,
    holiday: bool,
    caddy_ratio: str,
    player_count: int,
    config: RateSchedule,
) -> FeeBreakdown:
    """Price a group where every player is on the same tier."""
    if player_count < 1:
        raise ValueError("player_count must be at least 1")
    return calculate_group([tier] * player_count, holes, holiday, caddy_ratio, config)


def validate_completeness(
    config: RateSchedule,
    required_tiers: Iterable[str],
    required_ratios: Iterable[str],
) -> None:
    """
    Check every lookup a live quote could make.

    Raises:
        UnknownTier, UnknownRatio, MissingHoleBucket: on the first gap found.
    """
    for holes in HOLE_BUCKETS:
        _hole_bucket(config.base_fees.cleaning, holes, "Cleaning fee")
        _hole_bucket(config.base_fees.cart_per_person, holes, "Cart fee")
        for tier in required_tiers:
            green_fee(config, tier, holes, holiday=False)
        for ratio in required_ratios:
            caddy_fee(config, ratio, holes)
    for tier, by_holes in config.green_fees.items():
        for holes in HOLE_BUCKETS:
            if holes not in by_holes:
                raise MissingHoleBucket(
                    f"Green fees for tier '{tier}' have no {holes}-hole bucket"
                )
    for ratio, by_holes in config.caddy_fees.items():
        for holes in HOLE_BUCKETS:
            _hole_bucket(by_holes, holes, f"Caddy fee {ratio}")
