"""
liquidation.py - Liquidation of undercollateralized positions

A liquidation attempt moves through these stages:

    ELIGIBILITY -> COMPUTING -> SEIZING -> BURNING -> VERIFYING -> DONE

Any failure moves it to ABORTED; the enclosing atomic unit of the engine
rolls back every ledger mutation and compensates every external effect made
so far.

Key Formulas:
    base_amount  = debt_to_cover * PRECISION / price_scaled
    bonus        = base_amount * LIQUIDATION_BONUS / LIQUIDATION_PRECISION
    total_seized = base_amount + bonus

Known limitation:
    Sizing assumes the target holds enough of the asset to cover
    debt_to_cover plus the bonus. When collateral value has collapsed below
    that (at or under 100% collateralization) the seizure fails with
    InsufficientCollateral and the position cannot be liquidated through
    this asset. There is no insolvency-socialization fallback.
"""

from __future__ import annotations
from enum import Enum
from typing import TYPE_CHECKING, Tuple
import logging

from .core import (
    LIQUIDATION_BONUS, LIQUIDATION_PRECISION, MIN_HEALTH_FACTOR,
    LiquidationResult,
    HealthFactorNotImproved, HealthFactorOk,
)
from .fixed_point import checked_add, mul_div
from .valuation import ValuationEngine

if TYPE_CHECKING:
    from .engine import CollateralEngine

logger = logging.getLogger(__name__)


class LiquidationStage(Enum):
    """Stage reached by a liquidation attempt."""
    ELIGIBILITY = "eligibility"
    COMPUTING = "computing"
    SEIZING = "seizing"
    BURNING = "burning"
    VERIFYING = "verifying"
    DONE = "done"
    ABORTED = "aborted"


def calculate_seizure(base_amount: int) -> Tuple[int, int]:
    """
    Apply the liquidation bonus to a base collateral amount.

    PURE FUNCTION.

    Returns:
        (bonus, total_seized)
    """
    bonus = mul_div(base_amount, LIQUIDATION_BONUS, LIQUIDATION_PRECISION)
    return bonus, checked_add(base_amount, bonus)


def quote_seizure(valuation: ValuationEngine, asset_id: str, debt_to_cover: int) -> Tuple[int, int, int]:
    """
    Size a seizure at the current oracle price.

    Returns:
        (base_amount, bonus, total_seized) in the asset's native units
    """
    base_amount = valuation.asset_amount_for_value(asset_id, debt_to_cover)
    bonus, total = calculate_seizure(base_amount)
    return base_amount, bonus, total


def execute_liquidation(
    engine: CollateralEngine,
    liquidator: str,
    target: str,
    asset_id: str,
    debt_to_cover: int,
) -> LiquidationResult:
    """
    Run the liquidation state machine against a live engine.

    Must be called inside the engine's atomic unit: this function mutates
    engine state and relies on the caller to roll back on failure.

    Raises:
        HealthFactorOk: target's health factor is above MIN_HEALTH_FACTOR
        InsufficientCollateral: target does not hold total_seized of asset_id
        HealthFactorNotImproved: target's health factor did not increase
        BreaksHealthFactor: the liquidator's own account ends up insolvent
        (plus any error raised by valuation, custody or the debt token)
    """
    stage = LiquidationStage.ELIGIBILITY
    try:
        starting_health = engine.health.health_factor(target)
        if starting_health > MIN_HEALTH_FACTOR:
            raise HealthFactorOk(
                f"{target} health factor {starting_health} is above {MIN_HEALTH_FACTOR}"
            )

        stage = LiquidationStage.COMPUTING
        base_amount, bonus, total_seized = quote_seizure(engine.valuation, asset_id, debt_to_cover)

        stage = LiquidationStage.SEIZING
        engine._redeem(asset_id, total_seized, target, liquidator)

        stage = LiquidationStage.BURNING
        engine._burn_debt(debt_to_cover, on_behalf_of=target, token_holder=liquidator)

        stage = LiquidationStage.VERIFYING
        ending_health = engine.health.health_factor(target)
        if ending_health <= starting_health:
            raise HealthFactorNotImproved(
                f"{target} health factor went from {starting_health} to {ending_health}"
            )
        engine.health.assert_solvent(liquidator)
    except Exception as exc:
        logger.debug(
            "liquidation of %s by %s %s at %s: %s",
            target, liquidator, LiquidationStage.ABORTED.value, stage.value, exc,
        )
        raise

    stage = LiquidationStage.DONE
    logger.debug("liquidation of %s by %s %s", target, liquidator, stage.value)

    return LiquidationResult(
        target=target,
        liquidator=liquidator,
        asset=asset_id,
        debt_covered=debt_to_cover,
        base_amount=base_amount,
        bonus=bonus,
        total_seized=total_seized,
        starting_health=starting_health,
        ending_health=ending_health,
    )
