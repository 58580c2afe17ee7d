"""
Integration tests for lending builders and the permissionless cranks
(migration, auto-buyback, fee harvest, fee swap).
"""

from unittest.mock import MagicMock

import httpx
import pytest
from solana.rpc.core import RPCException
from solders.compute_budget import ID as COMPUTE_BUDGET_PROGRAM_ID
from solders.compute_budget import set_compute_unit_limit
from solders.pubkey import Pubkey

from mcp_torch_market.addresses import (
    get_loan_position_pda,
    get_raydium_accounts,
    get_token_account,
    get_torch_vault_pda,
)
from mcp_torch_market.constants import (
    ASSOCIATED_TOKEN_PROGRAM_ID,
    LAMPORTS_PER_SOL,
    PROGRAM_ID,
    SUPPLY_FLOOR,
)
from mcp_torch_market.errors import CompositionFailedError, PreconditionFailedError
from mcp_torch_market.models import (
    AutoBuybackParams,
    BorrowParams,
    ClaimProtocolRewardsParams,
    HarvestFeesParams,
    LiquidateParams,
    MigrateParams,
    RepayParams,
    SwapFeesToSolParams,
)
from mcp_torch_market.program import instruction_discriminator
from mcp_torch_market.transactions import (
    build_auto_buyback_transaction,
    build_borrow_transaction,
    build_claim_protocol_rewards_transaction,
    build_harvest_fees_transaction,
    build_liquidate_transaction,
    build_migrate_transaction,
    build_repay_transaction,
    build_swap_fees_to_sol_transaction,
    harvest_compute_units,
)
from tests.fakes import FakeChain, instruction_accounts, instruction_data, instruction_programs

pytestmark = pytest.mark.asyncio


def compute_limit_data(units: int) -> bytes:
    return bytes(set_compute_unit_limit(units).data)

# --- Lending ---

async def test_borrow_requires_migration(chain: FakeChain, mint: Pubkey, creator: Pubkey, user: Pubkey):
    chain.add_token(mint, creator)
    with pytest.raises(PreconditionFailedError, match="lending not available"):
        await build_borrow_transaction(
            chain.client,
            BorrowParams(mint=str(mint), borrower=str(user), collateral_amount=1_000_000, sol_to_borrow=1_000),
        )
    chain.client.get_latest_blockhash.assert_not_awaited()

async def test_borrow_on_migrated_token(chain: FakeChain, mint: Pubkey, creator: Pubkey, user: Pubkey):
    chain.add_token(mint, creator, bonding_complete=True, migrated=True)
    result = await build_borrow_transaction(
        chain.client,
        BorrowParams(mint=str(mint), borrower=str(user), collateral_amount=5_000_000, sol_to_borrow=LAMPORTS_PER_SOL),
    )
    tx = result.transaction
    assert instruction_programs(tx) == [PROGRAM_ID]
    assert instruction_accounts(tx, 0)[6] == get_loan_position_pda(mint, user)[0]
    assert instruction_data(tx, 0)[8:] == (5_000_000).to_bytes(8, "little") + LAMPORTS_PER_SOL.to_bytes(8, "little")
    assert result.message == "Borrow 1 SOL with 5 tokens as collateral"

async def test_vault_repay_creates_vault_token_account(chain: FakeChain, mint: Pubkey, creator: Pubkey, user: Pubkey):
    vault_creator = Pubkey.new_unique()
    chain.add_token(mint, creator, bonding_complete=True, migrated=True)
    result = await build_repay_transaction(
        chain.client,
        RepayParams(mint=str(mint), borrower=str(user), sol_amount=LAMPORTS_PER_SOL, vault=str(vault_creator)),
    )
    vault, _ = get_torch_vault_pda(vault_creator)
    assert instruction_programs(result.transaction) == [ASSOCIATED_TOKEN_PROGRAM_ID, PROGRAM_ID]
    assert instruction_accounts(result.transaction, 1)[6] == vault
    assert result.message == "Repay 1 SOL (via vault)"

async def test_liquidate_creates_liquidator_account_first(chain: FakeChain, mint: Pubkey, creator: Pubkey, user: Pubkey):
    borrower = Pubkey.new_unique()
    chain.add_token(mint, creator, bonding_complete=True, migrated=True)
    result = await build_liquidate_transaction(
        chain.client, LiquidateParams(mint=str(mint), liquidator=str(user), borrower=str(borrower))
    )
    tx = result.transaction
    assert instruction_programs(tx) == [ASSOCIATED_TOKEN_PROGRAM_ID, PROGRAM_ID]
    accounts = instruction_accounts(tx, 1)
    assert accounts[1] == borrower
    assert accounts[6] == get_token_account(user, mint)
    assert result.message == f"Liquidate loan position for {str(borrower)[:8]}..."

async def test_claim_protocol_rewards(chain: FakeChain, user: Pubkey):
    result = await build_claim_protocol_rewards_transaction(chain.client, ClaimProtocolRewardsParams(user=str(user)))
    assert instruction_data(result.transaction, 0) == instruction_discriminator("claim_protocol_rewards")
    assert instruction_accounts(result.transaction, 0)[3:5] == [PROGRAM_ID, PROGRAM_ID]
    assert result.message == "Claim protocol rewards"

# --- Migration ---

async def test_migration_orders_prefund_before_pool_creation(chain: FakeChain, mint: Pubkey, user: Pubkey):
    result = await build_migrate_transaction(chain.client, MigrateParams(mint=str(mint), payer=str(user)))
    tx = result.transaction
    assert instruction_programs(tx) == [
        COMPUTE_BUDGET_PROGRAM_ID,
        ASSOCIATED_TOKEN_PROGRAM_ID,
        ASSOCIATED_TOKEN_PROGRAM_ID,
        ASSOCIATED_TOKEN_PROGRAM_ID,
        PROGRAM_ID,
        PROGRAM_ID,
    ]
    assert instruction_data(tx, 0) == compute_limit_data(400_000)
    assert instruction_data(tx, 4) == instruction_discriminator("fund_migration_wsol")
    assert instruction_data(tx, 5) == instruction_discriminator("migrate_to_dex")
    assert get_raydium_accounts(mint).pool_state in instruction_accounts(tx, 5)
    assert result.message == f"Migrate token {str(mint)[:8]}... to Raydium DEX"

# --- Auto-buyback ---

def ready_for_buyback(chain: FakeChain, mint: Pubkey, creator: Pubkey) -> None:
    chain.add_token(mint, creator, bonding_complete=True, migrated=True)
    chain.slot = 10_000
    chain.supply = SUPPLY_FLOOR * 2
    raydium = get_raydium_accounts(mint)
    # Half the baseline price.
    chain.token_balances[raydium.wsol_vault] = 50_000_000_000
    chain.token_balances[raydium.token_vault] = 100_000_000_000_000

async def test_auto_buyback_when_every_check_passes(chain: FakeChain, mint: Pubkey, creator: Pubkey, user: Pubkey):
    ready_for_buyback(chain, mint, creator)
    result = await build_auto_buyback_transaction(chain.client, AutoBuybackParams(mint=str(mint), payer=str(user)))
    tx = result.transaction
    assert instruction_programs(tx) == [COMPUTE_BUDGET_PROGRAM_ID, ASSOCIATED_TOKEN_PROGRAM_ID, PROGRAM_ID]
    assert instruction_data(tx, 2) == instruction_discriminator("execute_auto_buyback") + (1).to_bytes(8, "little")
    assert result.message == f"Auto-buyback 1.4000 SOL for {str(mint)[:8]}..."

async def test_auto_buyback_cooldown(chain: FakeChain, mint: Pubkey, creator: Pubkey, user: Pubkey):
    ready_for_buyback(chain, mint, creator)
    chain.slot = 1_100
    with pytest.raises(PreconditionFailedError, match="Buyback cooldown: 400 slots remaining"):
        await build_auto_buyback_transaction(chain.client, AutoBuybackParams(mint=str(mint), payer=str(user)))
    chain.client.get_token_supply.assert_not_awaited()
    chain.client.get_latest_blockhash.assert_not_awaited()

# --- Fee harvest ---

async def test_harvest_compute_scales_with_sources(chain: FakeChain, mint: Pubkey, user: Pubkey):
    sources = [str(Pubkey.new_unique()) for _ in range(3)]
    result = await build_harvest_fees_transaction(
        chain.client, HarvestFeesParams(mint=str(mint), payer=str(user), sources=sources)
    )
    tx = result.transaction
    assert harvest_compute_units(3) == 260_000
    assert instruction_data(tx, 0) == compute_limit_data(260_000)
    assert [str(key) for key in instruction_accounts(tx, 1)[-3:]] == sources
    assert result.message == f"Harvest transfer fees for {str(mint)[:8]}... (3 source accounts)"
    chain.client.get_token_largest_accounts.assert_not_awaited()

async def test_harvest_discovers_sources_with_withheld_fees(chain: FakeChain, mint: Pubkey, user: Pubkey):
    holder_with_fees, holder_without = Pubkey.new_unique(), Pubkey.new_unique()
    withheld = bytes(165) + b"\x02" + (2).to_bytes(2, "little") + (8).to_bytes(2, "little") + (99).to_bytes(8, "little")
    largest = chain.client.get_token_largest_accounts.return_value
    largest.value = [MagicMock(address=holder_with_fees), MagicMock(address=holder_without)]
    multiple = chain.client.get_multiple_accounts.return_value
    multiple.value = [MagicMock(data=withheld), MagicMock(data=bytes(165))]

    result = await build_harvest_fees_transaction(chain.client, HarvestFeesParams(mint=str(mint), payer=str(user)))

    assert instruction_accounts(result.transaction, 1)[-1] == holder_with_fees
    assert instruction_data(result.transaction, 0) == compute_limit_data(220_000)

async def test_harvest_discovery_failure_is_best_effort(chain: FakeChain, mint: Pubkey, user: Pubkey):
    chain.client.get_token_largest_accounts.side_effect = RPCException("rate limited")
    result = await build_harvest_fees_transaction(chain.client, HarvestFeesParams(mint=str(mint), payer=str(user)))
    assert instruction_data(result.transaction, 0) == compute_limit_data(200_000)
    assert result.message.endswith("(0 source accounts)")

# --- Fee swap ---

async def test_swap_fees_with_harvest(chain: FakeChain, mint: Pubkey, user: Pubkey):
    result = await build_swap_fees_to_sol_transaction(
        chain.client,
        SwapFeesToSolParams(mint=str(mint), payer=str(user), sources=[str(Pubkey.new_unique())]),
    )
    tx = result.transaction
    assert instruction_programs(tx) == [COMPUTE_BUDGET_PROGRAM_ID, ASSOCIATED_TOKEN_PROGRAM_ID, PROGRAM_ID, PROGRAM_ID]
    assert instruction_data(tx, 2) == instruction_discriminator("harvest_fees")
    assert instruction_data(tx, 3)[:8] == instruction_discriminator("swap_fees_to_sol")
    assert result.message.endswith("(harvest + swap)")

async def test_swap_fees_without_harvest(chain: FakeChain, mint: Pubkey, user: Pubkey):
    result = await build_swap_fees_to_sol_transaction(
        chain.client, SwapFeesToSolParams(mint=str(mint), payer=str(user), harvest=False, minimum_amount_out=7)
    )
    tx = result.transaction
    assert len(tx.message.instructions) == 3
    assert instruction_data(tx, 2)[8:] == (7).to_bytes(8, "little")
    assert not result.message.endswith("(harvest + swap)")

# --- Composition ---

async def test_blockhash_failure_is_a_composition_error(chain: FakeChain, user: Pubkey):
    chain.client.get_latest_blockhash.side_effect = httpx.ConnectError("connection refused")
    with pytest.raises(CompositionFailedError, match="Failed to fetch latest blockhash"):
        await build_claim_protocol_rewards_transaction(chain.client, ClaimProtocolRewardsParams(user=str(user)))
