"""
health.py - Account solvency ratio and the minimum-solvency check

    health_factor = (collateral_value * LIQUIDATION_THRESHOLD / LIQUIDATION_PRECISION)
                    * PRECISION / debt

An account with zero debt reports MAX_HEALTH_FACTOR and can never be
liquidated. A non-zero debt with zero collateral value reports 0.
"""

from __future__ import annotations
from typing import Callable, Tuple

from .core import (
    LIQUIDATION_PRECISION, LIQUIDATION_THRESHOLD,
    MAX_HEALTH_FACTOR, MIN_HEALTH_FACTOR, PRECISION,
    BreaksHealthFactor,
)
from .fixed_point import mul_div


def calculate_health_factor(total_debt: int, collateral_value: int) -> int:
    """
    Compute the health factor from explicit inputs.

    PURE FUNCTION - no engine state, no oracle.

    Args:
        total_debt: Minted value units outstanding
        collateral_value: Total collateral value in value units

    Returns:
        Health factor scaled by PRECISION (MAX_HEALTH_FACTOR if no debt)
    """
    if total_debt == 0:
        return MAX_HEALTH_FACTOR
    adjusted = mul_div(collateral_value, LIQUIDATION_THRESHOLD, LIQUIDATION_PRECISION)
    return mul_div(adjusted, PRECISION, total_debt)


class HealthFactorEngine:
    """
    Health factor and solvency assertion for live accounts.

    Args:
        summary: Callable returning (debt, collateral_value) for an account.
    """

    def __init__(self, summary: Callable[[str], Tuple[int, int]]):
        self._summary = summary

    def health_factor(self, account: str) -> int:
        debt, collateral_value = self._summary(account)
        return calculate_health_factor(debt, collateral_value)

    def is_solvent(self, account: str) -> bool:
        return self.health_factor(account) >= MIN_HEALTH_FACTOR

    def assert_solvent(self, account: str) -> int:
        """
        Raise BreaksHealthFactor if the account is below the minimum.

        The boundary is inclusive: exactly MIN_HEALTH_FACTOR passes.

        Returns:
            The account's health factor.
        """
        ratio = self.health_factor(account)
        if ratio < MIN_HEALTH_FACTOR:
            raise BreaksHealthFactor(ratio, account)
        return ratio
