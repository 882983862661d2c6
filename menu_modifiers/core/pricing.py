from decimal import Decimal
from typing import Sequence

from menu_modifiers.models import TieredPricingConfig

ZERO = Decimal("0")


def compute_price(
    selection_count: int,
    base_unit_prices: Sequence[Decimal],
    config: TieredPricingConfig | None,
) -> Decimal:
    """Price ``selection_count`` selections of one group.

    ``base_unit_prices`` holds each selected modifier's own price in selection
    order. Flat tiers use cumulative ``up_to`` ceilings: tiers
    ``[(3, 1.00), (7, 0.75)]`` charge selections 1-3 at 1.00 and 4-7 at 0.75,
    anything past the last ceiling at ``overflow_price``. When both modes are
    switched on, flat tiers win.
    """
    if selection_count < 0:
        raise ValueError("selection_count must be >= 0")

    if config is None or not config.enabled:
        return sum(base_unit_prices, ZERO)

    if config.modes.flat_tiers and config.flat_tiers is not None:
        return flat_tiers_price(selection_count, config)

    if config.modes.free_threshold and config.free_threshold is not None:
        free_count = config.free_threshold.free_count
        return sum(base_unit_prices[free_count:selection_count], ZERO)

    return sum(base_unit_prices, ZERO)


def flat_tiers_price(selection_count: int, config: TieredPricingConfig) -> Decimal:
    flat_tiers = config.flat_tiers
    if flat_tiers is None:
        raise ValueError("flat tiers are not configured")

    total = ZERO
    consumed = 0
    for tier in flat_tiers.tiers:
        if consumed >= selection_count:
            break
        units = min(tier.up_to, selection_count) - consumed
        if units <= 0:
            continue
        total += tier.price * units
        consumed += units

    if consumed < selection_count:
        total += flat_tiers.overflow_price * (selection_count - consumed)
    return total

