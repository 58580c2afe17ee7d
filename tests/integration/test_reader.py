from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from solana.rpc.core import RPCException
from solders.pubkey import Pubkey

from mcp_torch_market import reader
from mcp_torch_market.addresses import (
    get_loan_position_pda,
    get_raydium_accounts,
    get_torch_vault_pda,
    get_vault_wallet_link_pda,
)
from mcp_torch_market.constants import LAMPORTS_PER_SOL
from mcp_torch_market.errors import NotFoundError, PreconditionFailedError
from mcp_torch_market.program import LOAN_POSITION_AMOUNTS_OFFSET
from tests.fakes import FakeChain

pytestmark = pytest.mark.asyncio


def add_vault(chain: FakeChain, creator: Pubkey, linked_wallet: Pubkey) -> Pubkey:
    vault, _ = get_torch_vault_pda(creator)
    chain.add_account(
        vault,
        "TorchVault",
        dict(
            creator=str(creator),
            authority=str(creator),
            sol_balance=3 * LAMPORTS_PER_SOL,
            total_deposited=5 * LAMPORTS_PER_SOL,
            total_withdrawn=LAMPORTS_PER_SOL,
            total_spent=LAMPORTS_PER_SOL,
            total_received=0,
            linked_wallets=2,
            created_at=1_700_000_000,
            bump=255,
        ),
    )
    link, _ = get_vault_wallet_link_pda(linked_wallet)
    chain.add_account(
        link,
        "VaultWalletLink",
        dict(vault=str(vault), wallet=str(linked_wallet), linked_at=1_700_000_100, bump=254),
    )
    return vault

def add_loan(chain: FakeChain, mint: Pubkey, borrower: Pubkey, collateral: int, borrowed: int, interest: int = 0) -> None:
    address, _ = get_loan_position_pda(mint, borrower)
    chain.add_account(
        address,
        "LoanPosition",
        dict(
            user=str(borrower),
            mint=str(mint),
            collateral_amount=collateral,
            borrowed_amount=borrowed,
            accrued_interest=interest,
            last_update_slot=0,
            bump=255,
        ),
    )

def set_pool(chain: FakeChain, mint: Pubkey, sol: int, tokens: int) -> None:
    raydium = get_raydium_accounts(mint)
    chain.token_balances[raydium.wsol_vault] = sol
    chain.token_balances[raydium.token_vault] = tokens

# --- Token detail ---

async def test_get_token_merges_metadata(chain: FakeChain, mint: Pubkey, creator: Pubkey):
    chain.add_token(mint, creator, uri="https://gateway.irys.xyz/abc", real_sol_reserves=50 * LAMPORTS_PER_SOL)
    metadata = {"description": "hot", "image": "https://gateway.irys.xyz/img", "twitter": "@torch"}
    with patch.object(reader, "fetch_metadata", AsyncMock(return_value=metadata)) as fetch:
        detail = await reader.get_token(chain.client, str(mint))
    fetch.assert_awaited_once()
    assert detail.status == "bonding"
    assert detail.progress_percent == 25.0
    assert detail.image == "https://uploader.irys.xyz/img"
    assert detail.twitter == "@torch"
    assert detail.warnings == []

async def test_get_token_metadata_failure_becomes_warning(chain: FakeChain, mint: Pubkey, creator: Pubkey):
    chain.add_token(mint, creator, uri="https://example.com/meta.json", migrated=True, bonding_complete=True)
    with patch.object(reader, "fetch_metadata", AsyncMock(side_effect=httpx.ReadTimeout("slow"))):
        detail = await reader.get_token(chain.client, str(mint))
    assert detail.status == "migrated"
    assert detail.description is None
    assert detail.warnings and "Metadata fetch failed" in detail.warnings[0]

async def test_get_token_not_found(chain: FakeChain, mint: Pubkey):
    with pytest.raises(NotFoundError):
        await reader.get_token(chain.client, str(mint))

async def test_irys_rewrite_only_touches_gateway_host():
    assert reader.is_irys_url("https://gateway.irys.xyz/x")
    assert not reader.is_irys_url("https://example.com/gateway.irys.xyz")
    assert reader.irys_to_uploader("https://gateway.irys.xyz/x") == "https://uploader.irys.xyz/x"

# --- Vaults ---

async def test_vault_lookups(chain: FakeChain, creator: Pubkey, user: Pubkey):
    vault = add_vault(chain, creator, user)

    by_creator = await reader.get_vault(chain.client, str(creator))
    by_wallet = await reader.get_vault_for_wallet(chain.client, str(user))
    link = await reader.get_vault_wallet_link(chain.client, str(user))

    assert by_creator.address == str(vault)
    assert by_creator.sol_balance == 3 * LAMPORTS_PER_SOL
    assert by_wallet == by_creator
    assert link.vault == str(vault)
    assert link.wallet == str(user)

async def test_missing_vault_is_none(chain: FakeChain, creator: Pubkey, user: Pubkey):
    assert await reader.get_vault(chain.client, str(creator)) is None
    assert await reader.get_vault_for_wallet(chain.client, str(user)) is None
    assert await reader.get_vault_wallet_link(chain.client, str(user)) is None

# --- Lending ---

async def test_lending_info_requires_migration(chain: FakeChain, mint: Pubkey, creator: Pubkey):
    chain.add_token(mint, creator)
    with pytest.raises(PreconditionFailedError, match="lending not available"):
        await reader.get_lending_info(chain.client, str(mint))

async def test_lending_info_sums_active_loans(chain: FakeChain, mint: Pubkey, creator: Pubkey):
    chain.add_token(mint, creator, bonding_complete=True, migrated=True)

    def loan_slice(collateral: int, borrowed: int) -> MagicMock:
        keyed = MagicMock()
        keyed.account.data = collateral.to_bytes(8, "little") + borrowed.to_bytes(8, "little")
        return keyed

    chain.client.get_program_accounts.return_value.value = [
        loan_slice(10, 2 * LAMPORTS_PER_SOL),
        loan_slice(10, 0),
        loan_slice(10, LAMPORTS_PER_SOL),
    ]
    info = await reader.get_lending_info(chain.client, str(mint))

    assert info.active_loans == 2
    assert info.total_sol_lent == 3 * LAMPORTS_PER_SOL
    assert info.treasury_sol_available == 10 * LAMPORTS_PER_SOL
    assert chain.client.get_program_accounts.await_args.kwargs["data_slice"].offset == LOAN_POSITION_AMOUNTS_OFFSET

async def test_lending_info_enumeration_failure_is_a_warning(chain: FakeChain, mint: Pubkey, creator: Pubkey):
    chain.add_token(mint, creator, bonding_complete=True, migrated=True)
    chain.client.get_program_accounts.side_effect = RPCException("method disabled")
    info = await reader.get_lending_info(chain.client, str(mint))
    assert info.active_loans is None
    assert info.total_sol_lent is None
    assert "Loan enumeration failed" in info.warnings[0]

async def test_loan_position_health(chain: FakeChain, mint: Pubkey, user: Pubkey):
    # 1 token = 0.001 SOL in the pool.
    set_pool(chain, mint, sol=LAMPORTS_PER_SOL, tokens=1_000 * 1_000_000)
    add_loan(chain, mint, user, collateral=1_000 * 1_000_000, borrowed=400_000_000)

    position = await reader.get_loan_position(chain.client, str(mint), str(user))

    assert position.collateral_value_sol == LAMPORTS_PER_SOL
    assert position.current_ltv_bps == 4000
    assert position.health == "healthy"

async def test_loan_position_liquidatable(chain: FakeChain, mint: Pubkey, user: Pubkey):
    set_pool(chain, mint, sol=LAMPORTS_PER_SOL, tokens=1_000 * 1_000_000)
    add_loan(chain, mint, user, collateral=1_000 * 1_000_000, borrowed=600_000_000, interest=100_000_000)
    position = await reader.get_loan_position(chain.client, str(mint), str(user))
    assert position.total_owed == 700_000_000
    assert position.health == "liquidatable"

async def test_no_loan_position(chain: FakeChain, mint: Pubkey, user: Pubkey):
    position = await reader.get_loan_position(chain.client, str(mint), str(user))
    assert position.health == "none"
    assert position.total_owed == 0
