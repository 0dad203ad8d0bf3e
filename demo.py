#!/usr/bin/env python3
"""
demo.py - Interactive Tutorial: Learn the Collateral Engine Step by Step

A pedagogical walk through one collateralized-debt position, from the first
deposit to its liquidation. Each step builds on the previous one. Press
Enter to advance.

WHAT YOU'LL LEARN:
  1-3: Positions    - Deposits, minting, the health factor
  4-5: Protection   - Rejected mints, atomic rollback
  6-7: Liquidation  - Price drops, quotes, seizure with bonus

Run:
    python demo.py           # Interactive mode (press Enter for each step)
    python demo.py --quick   # Run all steps without pausing
"""

from collections import defaultdict
from dataclasses import dataclass
import logging
import sys

from cdp_ledger import (
    CollateralEngine, StaticPriceOracle,
    PRECISION,
    BreaksHealthFactor, TransferFailed,
)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class DemoConfig:
    """Configuration for the tutorial. Modify these to experiment."""
    weth_price: int = 2000          # dollars
    crash_price: int = 1800         # dollars
    alice_weth: int = 10
    alice_deposit: int = 2
    alice_mint: int = 2000          # value units
    bob_weth: int = 100
    bob_deposit: int = 50
    bob_mint: int = 10_000
    debt_to_cover: int = 500


CONFIG = DemoConfig()

QUICK_MODE = "--quick" in sys.argv


def wait_for_enter():
    """Pause for user input unless in quick mode."""
    if not QUICK_MODE:
        input("\n[Press Enter to continue...]")


def step_header(number: int, title: str, objective: str):
    """Print a step header with learning objective."""
    print(f"\n{'='*70}")
    print(f"STEP {number}: {title}")
    print(f"{'='*70}")
    print(f"\nObjective: {objective}\n")


def section_header(text: str):
    print(f"\n--- {text} ---\n")


def fmt(amount: int) -> str:
    """18-decimal fixed point -> human readable."""
    return f"{amount / PRECISION:,.4f}"


def feed(dollars: int) -> int:
    return dollars * 10 ** 8


# ============================================================================
# IN-MEMORY COLLABORATORS
# ============================================================================

class DemoToken:
    """The synthetic value unit. Only the engine mints."""

    def __init__(self, engine_account: str = "engine"):
        self.engine_account = engine_account
        self.balances = defaultdict(int)

    def mint(self, account, amount):
        self.balances[account] += amount
        return True

    def burn(self, amount):
        if self.balances[self.engine_account] < amount:
            return False
        self.balances[self.engine_account] -= amount
        return True

    def transfer_from(self, holder, recipient, amount):
        if self.balances[holder] < amount:
            return False
        self.balances[holder] -= amount
        self.balances[recipient] += amount
        return True

    def transfer(self, recipient, amount):
        return self.transfer_from(self.engine_account, recipient, amount)


class DemoVault:
    """Collateral wallets plus the engine's vault."""

    def __init__(self):
        self.wallets = defaultdict(lambda: defaultdict(int))
        self.vault = defaultdict(int)
        self.frozen = False

    def transfer_in(self, asset_id, sender, amount):
        if self.frozen or self.wallets[sender][asset_id] < amount:
            return False
        self.wallets[sender][asset_id] -= amount
        self.vault[asset_id] += amount
        return True

    def transfer_out(self, asset_id, recipient, amount):
        if self.frozen or self.vault[asset_id] < amount:
            return False
        self.vault[asset_id] -= amount
        self.wallets[recipient][asset_id] += amount
        return True


def show_position(engine: CollateralEngine, account: str):
    debt, value = engine.account_summary(account)
    ratio = engine.health_factor(account)
    ratio_text = "max (no debt)" if debt == 0 else fmt(ratio)
    print(f"{account:>6}: WETH {fmt(engine.collateral_balance(account, 'WETH'))}  "
          f"value ${fmt(value)}  debt {fmt(debt)}  health {ratio_text}")


# ============================================================================
# STEPS
# ============================================================================

def step_01_setup():
    step_header(1, "The Engine",
        "An engine is a registry of collateral assets and their price feeds.")

    print(f"""
    We register one asset, WETH, priced by an 8-decimal feed at ${CONFIG.weth_price}.
    alice and bob each start with WETH in their wallets and no position.
    """)
    wait_for_enter()

    oracle = StaticPriceOracle({"WETH": feed(CONFIG.weth_price)})
    token = DemoToken()
    vault = DemoVault()
    vault.wallets["alice"]["WETH"] = CONFIG.alice_weth * PRECISION
    vault.wallets["bob"]["WETH"] = CONFIG.bob_weth * PRECISION

    print(">>> engine = CollateralEngine(['WETH'], [oracle], token, vault)")
    engine = CollateralEngine(["WETH"], [oracle], token, vault)
    print(f"\n{engine!r}")
    return engine, oracle, token, vault


def step_02_deposit(engine: CollateralEngine):
    step_header(2, "Depositing Collateral",
        "Collateral is credited to the ledger and pulled into custody together.")
    wait_for_enter()

    print(f">>> engine.deposit_collateral('alice', 'WETH', {CONFIG.alice_deposit} * PRECISION)")
    engine.deposit_collateral("alice", "WETH", CONFIG.alice_deposit * PRECISION)
    show_position(engine, "alice")


def step_03_mint(engine: CollateralEngine):
    step_header(3, "Minting Against Collateral",
        "Only half the collateral value counts, so minting stops at 200% collateralization.")
    wait_for_enter()

    print(f">>> engine.mint('alice', {CONFIG.alice_mint} * PRECISION)")
    engine.mint("alice", CONFIG.alice_mint * PRECISION)
    show_position(engine, "alice")

    section_header("Key Insight")
    print("""
    health = (collateral value * 50 / 100) / debt

    alice sits exactly at 1.0: the minimum the engine allows after any
    of her own operations.
    """)


def step_04_rejected_mint(engine: CollateralEngine):
    step_header(4, "Rejected Mint",
        "An operation that would push health below 1.0 is refused.")
    wait_for_enter()

    try:
        engine.mint("alice", 1)
    except BreaksHealthFactor as exc:
        print(f"Rejected: {exc}")
    show_position(engine, "alice")


def step_05_atomicity(engine: CollateralEngine, vault: DemoVault):
    step_header(5, "Atomicity",
        "If custody fails mid-operation, the ledger change is rolled back too.")
    wait_for_enter()

    vault.frozen = True
    try:
        engine.deposit_collateral_and_mint("bob", "WETH", PRECISION, 100 * PRECISION)
    except TransferFailed as exc:
        print(f"Rejected: {exc}")
    vault.frozen = False
    show_position(engine, "bob")


def step_06_price_drop(engine: CollateralEngine, oracle: StaticPriceOracle):
    step_header(6, "Price Drop",
        "Prices move outside the engine; positions can fall below 1.0.")
    wait_for_enter()

    engine.deposit_collateral_and_mint(
        "bob", "WETH", CONFIG.bob_deposit * PRECISION, CONFIG.bob_mint * PRECISION
    )
    print(f">>> oracle.update_price('WETH', {CONFIG.crash_price} * 10**8)")
    oracle.update_price("WETH", feed(CONFIG.crash_price))
    show_position(engine, "alice")
    show_position(engine, "bob")

    report = engine.verify_solvency()
    print(f"\nSolvency audit valid: {report['valid']}")
    for violation in report['violations']:
        print(f"  {violation['account']}: health {fmt(violation['health_factor'])}")


def step_07_liquidation(engine: CollateralEngine, vault: DemoVault):
    step_header(7, "Liquidation",
        "bob burns part of alice's debt and receives her collateral plus a 10% bonus.")
    wait_for_enter()

    cover = CONFIG.debt_to_cover * PRECISION
    base, bonus, total = engine.quote_liquidation("WETH", cover)
    print(f"Quote for {fmt(cover)} debt: base {fmt(base)} + bonus {fmt(bonus)} = {fmt(total)} WETH")

    result = engine.liquidate("bob", "alice", "WETH", cover)
    print(f"\nHealth {fmt(result.starting_health)} -> {fmt(result.ending_health)}")
    show_position(engine, "alice")
    show_position(engine, "bob")
    print(f"bob's wallet WETH: {fmt(vault.wallets['bob']['WETH'])}")


def main():
    logging.basicConfig(level=logging.INFO, format="%(name)s: %(message)s")

    print("""
    ======================================================================
                  COLLATERAL ENGINE INTERACTIVE TUTORIAL
    ======================================================================
    """)

    engine, oracle, _, vault = step_01_setup()
    step_02_deposit(engine)
    step_03_mint(engine)
    step_04_rejected_mint(engine)
    step_05_atomicity(engine, vault)
    step_06_price_drop(engine, oracle)
    step_07_liquidation(engine, vault)

    print("""
    ======================================================================
                              TUTORIAL COMPLETE
    ======================================================================

    Next steps:
      - See cdp_ledger/engine.py for the atomic operation pipeline
      - Run tests: pytest tests/
    """)


if __name__ == "__main__":
    main()
