"""
test_liquidation_scenarios.py - End-to-end liquidation scenario tests

Tests complete liquidation flows against a live engine:
- Quoting a seizure
- Successful partial liquidation after a price drop
- Liquidation exactly at the minimum health factor
- Rejected liquidations (healthy target, no improvement, insolvent liquidator)
- Collapsed collateral value (known limitation)
- Multi-asset positions
- Stage logging
"""

import logging

import pytest

from cdp_ledger import (
    CollateralRedeemed, LiquidationResult,
    PRECISION, MIN_HEALTH_FACTOR, MAX_HEALTH_FACTOR,
    BreaksHealthFactor, BurnFailed, HealthFactorNotImproved, HealthFactorOk,
    InsufficientCollateral, InsufficientDebt, InvalidAccount, InvalidAmount, PriceUnavailable,
    UnsupportedAsset,
    calculate_seizure,
)

from tests.fakes import engine_state, feed_price, usd


def undercollateralize(engine, oracle, price=1800):
    """alice: 2 WETH backing 2000 units of debt, then WETH drops to `price`."""
    engine.deposit_collateral_and_mint("alice", "WETH", 2 * PRECISION, usd(2000))
    oracle.update_price("WETH", feed_price(price))


class TestQuote:
    """Seizure sizing without state changes."""

    def test_reference_quote(self, engine, oracle):
        oracle.update_price("WETH", feed_price(1000))
        assert engine.quote_liquidation("WETH", usd(500)) == (
            5 * 10 ** 17, 5 * 10 ** 16, 55 * 10 ** 16,
        )

    def test_bonus_is_ten_percent_floored(self):
        assert calculate_seizure(100) == (10, 110)
        assert calculate_seizure(9) == (0, 9)

    def test_quote_validates_inputs(self, engine):
        with pytest.raises(InvalidAmount):
            engine.quote_liquidation("WETH", 0)
        with pytest.raises(UnsupportedAsset):
            engine.quote_liquidation("DOGE", usd(1))


class TestSuccessfulLiquidation:
    """Partial liquidation of an undercollateralized account."""

    def test_partial_liquidation_after_price_drop(self, funded_liquidator, oracle, token, custody):
        engine = funded_liquidator
        undercollateralize(engine, oracle)
        starting = engine.health_factor("alice")
        assert starting == 9 * PRECISION // 10

        wallet_before = custody.wallet("liquidator", "WETH")
        supply_before = token.total_supply

        result = engine.liquidate("liquidator", "alice", "WETH", usd(500))

        base = usd(500) * PRECISION // (1800 * PRECISION)
        bonus = base * 10 // 100
        assert isinstance(result, LiquidationResult)
        assert (result.base_amount, result.bonus, result.total_seized) == (base, bonus, base + bonus)
        assert result.starting_health == starting
        assert result.ending_health == engine.health_factor("alice")
        assert result.ending_health > starting

        assert engine.debt_of("alice") == usd(1500)
        assert engine.collateral_balance("alice", "WETH") == 2 * PRECISION - (base + bonus)
        assert custody.wallet("liquidator", "WETH") == wallet_before + base + bonus
        assert token.balance_of("liquidator") == usd(9500)
        assert token.total_supply == supply_before - usd(500)
        assert engine.events[-1] == CollateralRedeemed("alice", "liquidator", base + bonus, "WETH")

    def test_liquidator_position_untouched(self, funded_liquidator, oracle):
        engine = funded_liquidator
        undercollateralize(engine, oracle)
        engine.liquidate("liquidator", "alice", "WETH", usd(500))

        assert engine.debt_of("liquidator") == usd(10_000)
        assert engine.collateral_balance("liquidator", "WETH") == 50 * PRECISION

    def test_restored_account_cannot_be_liquidated_again(self, funded_liquidator, oracle):
        engine = funded_liquidator
        undercollateralize(engine, oracle)
        engine.liquidate("liquidator", "alice", "WETH", usd(500))
        assert engine.health_factor("alice") > MIN_HEALTH_FACTOR

        with pytest.raises(HealthFactorOk):
            engine.liquidate("liquidator", "alice", "WETH", usd(100))

    def test_liquidation_at_exact_minimum(self, funded_liquidator):
        engine = funded_liquidator
        engine.deposit_collateral_and_mint("alice", "WETH", 2 * PRECISION, usd(2000))
        assert engine.health_factor("alice") == MIN_HEALTH_FACTOR

        result = engine.liquidate("liquidator", "alice", "WETH", usd(100))
        assert result.total_seized == 55 * 10 ** 15
        assert result.ending_health > MIN_HEALTH_FACTOR

    def test_multi_asset_seizes_requested_asset(self, funded_liquidator, oracle):
        engine = funded_liquidator
        engine.deposit_collateral("alice", "WETH", PRECISION)
        engine.deposit_collateral_and_mint("alice", "WBTC", PRECISION // 10, usd(2500))
        oracle.update_price("WBTC", feed_price(20_000))
        assert engine.health_factor("alice") == 8 * PRECISION // 10

        result = engine.liquidate("liquidator", "alice", "WBTC", usd(500))
        assert result.total_seized == 275 * 10 ** 14
        assert engine.collateral_balance("alice", "WETH") == PRECISION
        assert engine.collateral_balance("alice", "WBTC") == PRECISION // 10 - 275 * 10 ** 14

    def test_stage_logged_on_success(self, funded_liquidator, oracle, caplog):
        engine = funded_liquidator
        undercollateralize(engine, oracle)
        with caplog.at_level(logging.DEBUG, logger="cdp_ledger.liquidation"):
            engine.liquidate("liquidator", "alice", "WETH", usd(500))
        assert "liquidation of alice by liquidator done" in caplog.text


class TestRejectedLiquidation:
    """Every rejection leaves the engine and collaborators unchanged."""

    def test_healthy_target(self, funded_liquidator, token, custody):
        engine = funded_liquidator
        engine.deposit_collateral_and_mint("alice", "WETH", PRECISION, usd(500))
        before = engine_state(engine, token, custody)

        with pytest.raises(HealthFactorOk):
            engine.liquidate("liquidator", "alice", "WETH", usd(100))
        assert engine_state(engine, token, custody) == before

    def test_debt_free_target(self, funded_liquidator):
        engine = funded_liquidator
        engine.deposit_collateral("alice", "WETH", PRECISION)
        assert engine.health_factor("alice") == MAX_HEALTH_FACTOR
        with pytest.raises(HealthFactorOk):
            engine.liquidate("liquidator", "alice", "WETH", usd(1))

    def test_half_price_not_improved(self, funded_liquidator, oracle, token, custody):
        engine = funded_liquidator
        engine.deposit_collateral_and_mint("alice", "WETH", PRECISION, usd(1000))
        oracle.update_price("WETH", feed_price(1000))
        assert engine.health_factor("alice") == PRECISION // 2
        before = engine_state(engine, token, custody)

        with pytest.raises(HealthFactorNotImproved):
            engine.liquidate("liquidator", "alice", "WETH", usd(500))
        assert engine_state(engine, token, custody) == before

    def test_not_improved_logs_aborted_stage(self, funded_liquidator, oracle, caplog):
        engine = funded_liquidator
        engine.deposit_collateral_and_mint("alice", "WETH", PRECISION, usd(1000))
        oracle.update_price("WETH", feed_price(1000))

        with caplog.at_level(logging.DEBUG, logger="cdp_ledger.liquidation"):
            with pytest.raises(HealthFactorNotImproved):
                engine.liquidate("liquidator", "alice", "WETH", usd(500))
        assert "aborted at verifying" in caplog.text

    def test_collapsed_collateral_cannot_be_seized(self, funded_liquidator, oracle, token, custody):
        engine = funded_liquidator
        undercollateralize(engine, oracle, price=100)
        before = engine_state(engine, token, custody)

        with pytest.raises(InsufficientCollateral):
            engine.liquidate("liquidator", "alice", "WETH", usd(1000))
        assert engine_state(engine, token, custody) == before

    def test_liquidator_left_insolvent(self, setup):
        engine, oracle, token, custody = setup
        engine.deposit_collateral_and_mint("liquidator", "WETH", PRECISION, usd(1000))
        undercollateralize(engine, oracle)
        before = engine_state(engine, token, custody)

        with pytest.raises(BreaksHealthFactor) as exc_info:
            engine.liquidate("liquidator", "alice", "WETH", usd(500))
        assert exc_info.value.account == "liquidator"
        assert engine_state(engine, token, custody) == before

    def test_liquidator_without_tokens(self, setup):
        engine, oracle, token, custody = setup
        undercollateralize(engine, oracle)
        before = engine_state(engine, token, custody)

        with pytest.raises(BurnFailed):
            engine.liquidate("liquidator", "alice", "WETH", usd(500))
        assert engine_state(engine, token, custody) == before

    def test_target_without_asset(self, funded_liquidator, oracle):
        engine = funded_liquidator
        undercollateralize(engine, oracle)
        with pytest.raises(InsufficientCollateral):
            engine.liquidate("liquidator", "alice", "WBTC", usd(100))

    def test_cover_more_than_debt(self, funded_liquidator, oracle):
        engine = funded_liquidator
        engine.deposit_collateral_and_mint("alice", "WETH", 20 * PRECISION, usd(2000))
        oracle.update_price("WETH", feed_price(190))
        with pytest.raises(InsufficientDebt):
            engine.liquidate("liquidator", "alice", "WETH", usd(2001))
        assert engine.debt_of("alice") == usd(2000)

    def test_dead_oracle(self, funded_liquidator, oracle):
        engine = funded_liquidator
        undercollateralize(engine, oracle)
        del oracle.prices["WETH"]
        with pytest.raises(PriceUnavailable):
            engine.liquidate("liquidator", "alice", "WETH", usd(100))

    def test_invalid_inputs(self, engine):
        with pytest.raises(InvalidAmount):
            engine.liquidate("liquidator", "alice", "WETH", 0)
        with pytest.raises(UnsupportedAsset):
            engine.liquidate("liquidator", "alice", "DOGE", usd(1))
        with pytest.raises(InvalidAccount):
            engine.liquidate("", "alice", "WETH", usd(1))
        with pytest.raises(InvalidAccount):
            engine.liquidate("liquidator", None, "WETH", usd(1))
