import pytest
from solders.pubkey import Pubkey

from mcp_torch_market.addresses import (
    get_bonding_curve_pda,
    get_loan_position_pda,
    get_raydium_accounts,
    get_star_record_pda,
    get_token_account,
    get_torch_vault_pda,
    get_user_position_pda,
    get_vault_wallet_link_pda,
    order_mints,
    to_pubkey,
)
from mcp_torch_market.constants import WSOL_MINT
from mcp_torch_market.errors import InvalidInputError



def test_derivation_is_deterministic():
    mint = Pubkey.new_unique()
    user = Pubkey.new_unique()
    assert get_bonding_curve_pda(mint) == get_bonding_curve_pda(mint)
    assert get_loan_position_pda(mint, user) == get_loan_position_pda(mint, user)
    assert get_raydium_accounts(mint) == get_raydium_accounts(mint)
    assert bytes(get_token_account(user, mint)) == bytes(get_token_account(user, mint))

def test_distinct_owners_never_collide():
    mint = Pubkey.new_unique()
    bonding_curve, _ = get_bonding_curve_pda(mint)
    seen_vaults = set()
    seen_links = set()
    seen_positions = set()
    seen_stars = set()
    for _ in range(64):
        owner = Pubkey.new_unique()
        seen_vaults.add(get_torch_vault_pda(owner)[0])
        seen_links.add(get_vault_wallet_link_pda(owner)[0])
        seen_positions.add(get_user_position_pda(bonding_curve, owner)[0])
        seen_stars.add(get_star_record_pda(owner, mint)[0])
    assert len(seen_vaults) == len(seen_links) == len(seen_positions) == len(seen_stars) == 64

def test_vault_and_wallet_link_use_different_seeds():
    owner = Pubkey.new_unique()
    assert get_torch_vault_pda(owner)[0] != get_vault_wallet_link_pda(owner)[0]

def test_order_mints_sorts_by_key_bytes():
    low = Pubkey.from_bytes(bytes([0] * 31 + [1]))
    high = Pubkey.from_bytes(bytes([255] * 32))
    assert order_mints(high, low) == (low, high, False)
    assert order_mints(low, high) == (low, high, True)

def test_raydium_vault_properties_follow_mint_order():
    mint = Pubkey.new_unique()
    accounts = get_raydium_accounts(mint)
    if accounts.is_wsol_token0:
        assert accounts.token0 == WSOL_MINT
        assert accounts.wsol_vault == accounts.token0_vault
        assert accounts.token_vault == accounts.token1_vault
    else:
        assert accounts.token1 == WSOL_MINT
        assert accounts.wsol_vault == accounts.token1_vault
        assert accounts.token_vault == accounts.token0_vault

def test_to_pubkey_rejects_malformed_input():
    with pytest.raises(InvalidInputError, match="Invalid mint"):
        to_pubkey("not-a-key", "mint")
