"""
conftest.py - Shared pytest fixtures for engine tests

Provides common fixtures used across unit, conformance and functional tests:
- Fresh engine with fake collaborators (WETH at $2000, WBTC at $30000)
- Positions at the minimum health factor
- A well-capitalized liquidator
"""

import pytest

from cdp_ledger import PRECISION

from tests.fakes import make_engine, usd


@pytest.fixture
def setup():
    """(engine, oracle, token, custody) with funded wallets and no positions."""
    return make_engine()


@pytest.fixture
def engine(setup):
    return setup[0]


@pytest.fixture
def oracle(setup):
    return setup[1]


@pytest.fixture
def token(setup):
    return setup[2]


@pytest.fixture
def custody(setup):
    return setup[3]


@pytest.fixture
def boundary_position(engine):
    """alice: 1 WETH at $2000 backing 1000 units of debt (health factor exactly 1.0)."""
    engine.deposit_collateral_and_mint("alice", "WETH", 1 * PRECISION, usd(1000))
    return engine


@pytest.fixture
def funded_liquidator(engine):
    """liquidator: 50 WETH backing 10,000 units of debt (health factor 5.0 at $2000)."""
    engine.deposit_collateral_and_mint("liquidator", "WETH", 50 * PRECISION, usd(10_000))
    return engine
