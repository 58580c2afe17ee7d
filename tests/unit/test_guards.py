from typing import NoReturn, get_type_hints

import pytest
from solders.pubkey import Pubkey

from mcp_torch_market.addresses import get_raydium_accounts, get_star_record_pda
from mcp_torch_market.constants import SUPPLY_FLOOR
from mcp_torch_market.errors import InvalidInputError, PreconditionFailedError
from mcp_torch_market.guards import (
    _reject,
    check_auto_buyback,
    check_star,
    validate_message,
    validate_token_metadata,
)
from mcp_torch_market.models import TokenState
from tests.fakes import FakeChain, curve_model, treasury_model

pytestmark = pytest.mark.asyncio


def buyback_state(mint: Pubkey, migrated: bool = True, **treasury_overrides) -> TokenState:
    return TokenState(
        mint=str(mint),
        bonding_curve=curve_model(mint, migrated=migrated, bonding_complete=True),
        treasury=treasury_model(mint, **treasury_overrides),
    )

def buyback_chain(mint: Pubkey, pool_sol: int = 50_000_000_000, pool_tokens: int = 100_000_000_000_000) -> FakeChain:
    """Chain state where every buyback check passes unless overridden."""
    chain = FakeChain()
    chain.slot = 2_000
    chain.supply = SUPPLY_FLOOR + 1
    raydium = get_raydium_accounts(mint)
    chain.token_balances[raydium.wsol_vault] = pool_sol
    chain.token_balances[raydium.token_vault] = pool_tokens
    return chain

# --- Auto-buyback ordering ---

async def test_buyback_passes_and_returns_amount():
    mint = Pubkey.new_unique()
    chain = buyback_chain(mint)
    amount = await check_auto_buyback(chain.client, buyback_state(mint))
    # 10 SOL balance, 30% reserved, 20% of the rest.
    assert amount == 1_400_000_000

async def test_buyback_rejects_unmigrated_without_reads():
    mint = Pubkey.new_unique()
    chain = buyback_chain(mint)
    with pytest.raises(PreconditionFailedError, match="Token not yet migrated"):
        await check_auto_buyback(chain.client, buyback_state(mint, migrated=False))
    assert chain.called_methods() == []

async def test_buyback_rejects_missing_baseline_without_reads():
    mint = Pubkey.new_unique()
    chain = buyback_chain(mint)
    with pytest.raises(PreconditionFailedError, match="baseline not initialized"):
        await check_auto_buyback(chain.client, buyback_state(mint, baseline_initialized=False))
    assert chain.called_methods() == []

async def test_buyback_cooldown_stops_before_supply_read():
    mint = Pubkey.new_unique()
    chain = buyback_chain(mint)
    chain.slot = 1_200
    with pytest.raises(PreconditionFailedError, match="Buyback cooldown: 300 slots remaining"):
        await check_auto_buyback(chain.client, buyback_state(mint))
    assert chain.called_methods() == ["get_slot"]

async def test_buyback_supply_floor_stops_before_pool_read():
    mint = Pubkey.new_unique()
    chain = buyback_chain(mint)
    chain.supply = SUPPLY_FLOOR
    with pytest.raises(PreconditionFailedError, match="Supply at floor"):
        await check_auto_buyback(chain.client, buyback_state(mint))
    assert chain.called_methods() == ["get_slot", "get_token_supply"]
    chain.client.get_token_account_balance.assert_not_awaited()

async def test_buyback_rejects_healthy_price():
    mint = Pubkey.new_unique()
    chain = buyback_chain(mint, pool_sol=100_000_000_000)
    with pytest.raises(PreconditionFailedError, match=r"current: 100\.0% of baseline, threshold: 80\.0%"):
        await check_auto_buyback(chain.client, buyback_state(mint))

async def test_buyback_rejects_dust_amount():
    mint = Pubkey.new_unique()
    chain = buyback_chain(mint)
    with pytest.raises(PreconditionFailedError, match="Treasury SOL too low"):
        await check_auto_buyback(chain.client, buyback_state(mint, sol_balance=10_000_000))

# --- Stars ---

async def test_cannot_star_own_token():
    mint, creator = Pubkey.new_unique(), Pubkey.new_unique()
    chain = FakeChain()
    with pytest.raises(PreconditionFailedError, match="Cannot star your own token"):
        await check_star(chain.client, curve_model(mint, creator), creator, mint)
    assert chain.called_methods() == []

async def test_cannot_star_twice():
    mint, user = Pubkey.new_unique(), Pubkey.new_unique()
    chain = FakeChain()
    star_record, _ = get_star_record_pda(user, mint)
    chain.accounts[star_record] = b"\x00" * 16
    with pytest.raises(PreconditionFailedError, match="Already starred"):
        await check_star(chain.client, curve_model(mint), user, mint)

# --- Parameter checks ---

async def test_message_is_trimmed_and_capped():
    assert validate_message("  gm  ") == "gm"
    assert validate_message("   ") is None
    assert validate_message(None) is None
    assert validate_message(" " + "x" * 500 + " ") == "x" * 500
    with pytest.raises(InvalidInputError, match="500 characters or less"):
        validate_message("x" * 501)

async def test_token_metadata_limits():
    validate_token_metadata("x" * 32, "y" * 10)
    with pytest.raises(InvalidInputError, match="Name must be 32"):
        validate_token_metadata("x" * 33, "SYM")
    with pytest.raises(InvalidInputError, match="Symbol must be 10"):
        validate_token_metadata("Name", "y" * 11)

async def test_reject_never_returns():
    assert get_type_hints(_reject)["return"] is NoReturn
    with pytest.raises(PreconditionFailedError, match="nope"):
        _reject("nope")
