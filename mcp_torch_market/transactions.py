"""
Transaction builders, one per market intent.

Each builder takes an explicit chain client and a params record, runs the
pre-flight guards, assembles the instruction list and returns an unsigned
transaction with a one-line summary. Instruction order inside a transaction
is always: compute budget, idempotent account creation, pre-funding, the
market instruction(s), memo.
"""

import asyncio
from typing import List, Optional

from mcp.server.fastmcp.utilities.logging import get_logger
from solana.rpc.async_api import AsyncClient
from solders.instruction import Instruction
from solders.pubkey import Pubkey

from .addresses import (
    get_bonding_curve_pda,
    get_collateral_vault_pda,
    get_global_config_pda,
    get_loan_position_pda,
    get_lp_token_account,
    get_protocol_treasury_pda,
    get_raydium_accounts,
    get_star_record_pda,
    get_token_account,
    get_token_treasury_pda,
    get_torch_vault_pda,
    get_treasury_lock_pda,
    get_treasury_lock_token_account,
    get_treasury_token_account,
    get_user_position_pda,
    get_user_stats_pda,
    get_vault_wallet_link_pda,
    get_wsol_account,
    to_pubkey,
)
from .composer import compose_transaction
from .constants import (
    HARVEST_BASE_COMPUTE_UNITS,
    HARVEST_COMPUTE_UNITS_PER_SOURCE,
    HEAVY_COMPUTE_UNITS,
    LAMPORTS_PER_SOL,
    STAR_COST_LAMPORTS,
    TOKEN_MULTIPLIER,
    VANITY_MAX_ATTEMPTS,
    VANITY_SUFFIX,
)
from .errors import InvalidInputError
from .guards import (
    check_auto_buyback,
    check_star,
    ensure_migrated_for_lending,
    validate_amount,
    validate_message,
    validate_slippage,
    validate_token_metadata,
)
from .instructions import (
    ViaVault,
    borrow_ix,
    buy_ix,
    claim_protocol_rewards_ix,
    compute_limit_ix,
    create_token_account_ix,
    create_token_ix,
    create_vault_ix,
    create_wsol_account_ix,
    deposit_vault_ix,
    execute_auto_buyback_ix,
    fund_migration_wsol_ix,
    fund_vault_wsol_ix,
    harvest_fees_ix,
    link_wallet_ix,
    liquidate_ix,
    memo_ix,
    migrate_to_dex_ix,
    repay_ix,
    resolve_funding,
    sell_ix,
    star_token_ix,
    swap_fees_to_sol_ix,
    transfer_authority_ix,
    unlink_wallet_ix,
    vault_swap_ix,
    withdraw_tokens_ix,
    withdraw_vault_ix,
)
from .keys import grind_vanity_keypair
from .models import (
    AutoBuybackParams,
    BorrowParams,
    BuyParams,
    BuyTransactionResult,
    ClaimProtocolRewardsParams,
    CreateTokenParams,
    CreateTokenResult,
    CreateVaultParams,
    DepositVaultParams,
    DirectBuyParams,
    HarvestFeesParams,
    LinkWalletParams,
    LiquidateParams,
    MigrateParams,
    RepayParams,
    SellParams,
    StarParams,
    SwapFeesToSolParams,
    TransactionResult,
    TransferAuthorityParams,
    UnlinkWalletParams,
    VaultSwapParams,
    WithdrawTokensParams,
    WithdrawVaultParams,
)
from .quotes import quote_buy, quote_sell
from .reader import fetch_global_config, fetch_token_state, find_fee_sources

logger = get_logger(__name__)

# --- Summary formatting ---

def _trim(value: str) -> str:
    return value.rstrip("0").rstrip(".")

def format_sol(lamports: int) -> str:
    return _trim(f"{lamports / LAMPORTS_PER_SOL:.9f}")

def format_tokens(raw: int) -> str:
    return _trim(f"{raw / TOKEN_MULTIPLIER:.6f}")

def short_address(address: str) -> str:
    return f"{address[:8]}..."

def _vault_label(vault_creator: Optional[str]) -> str:
    return " (via vault)" if vault_creator else ""

def _optional_pubkey(value: Optional[str], field: str) -> Optional[Pubkey]:
    return to_pubkey(value, field) if value else None

# --- Bonding curve trading ---

async def _build_buy(
    client: AsyncClient, params: DirectBuyParams, vault_creator: Optional[str]
) -> BuyTransactionResult:
    validate_slippage(params.slippage_bps)
    validate_amount(params.amount_sol, "amount_sol")
    memo = validate_message(params.message)
    mint = to_pubkey(params.mint, "mint")
    buyer = to_pubkey(params.buyer, "buyer")
    vault_key = _optional_pubkey(vault_creator, "vault")
    logger.info(f"Building buy of {params.amount_sol} lamports of {params.mint} for {params.buyer}{_vault_label(vault_creator)}")

    state, config = await asyncio.gather(fetch_token_state(client, mint), fetch_global_config(client))
    quote = quote_buy(state.bonding_curve, params.amount_sol, params.slippage_bps)
    logger.debug(f"Buy quote: {quote.tokens_to_user} tokens to user, min {quote.min_output_tokens}, completes bonding: {quote.completes_bonding}")

    bonding_curve, _ = get_bonding_curve_pda(mint)
    treasury, _ = get_token_treasury_pda(mint)
    user_position, _ = get_user_position_pda(bonding_curve, buyer)
    user_stats, _ = get_user_stats_pda(buyer)
    global_config, _ = get_global_config_pda()
    protocol_treasury, _ = get_protocol_treasury_pda()
    buyer_token_account = get_token_account(buyer, mint)
    funding = resolve_funding(buyer, vault_key, mint)

    instructions = [create_token_account_ix(buyer, buyer, mint)]
    if isinstance(funding, ViaVault):
        # Bought tokens land in the vault's account, not the buyer's.
        instructions.append(create_token_account_ix(buyer, funding.vault, mint))
    instructions.append(
        buy_ix(
            buyer=buyer,
            global_config=global_config,
            dev_wallet=Pubkey.from_string(config.dev_wallet),
            protocol_treasury=protocol_treasury,
            mint=mint,
            bonding_curve=bonding_curve,
            token_vault=get_token_account(bonding_curve, mint),
            treasury=treasury,
            treasury_token_account=get_treasury_token_account(mint, treasury),
            buyer_token_account=buyer_token_account,
            user_position=user_position,
            user_stats=user_stats,
            funding=funding,
            sol_amount=params.amount_sol,
            min_tokens_out=quote.min_output_tokens,
            vote=None if params.vote is None else params.vote == "return",
        )
    )
    if memo:
        instructions.append(memo_ix(buyer, memo))

    summary = (
        f"Buy {format_tokens(quote.tokens_to_user)} tokens for {format_sol(params.amount_sol)} SOL"
        f"{_vault_label(vault_creator)}{' + migrate to DEX' if quote.completes_bonding else ''}"
    )
    composed = await compose_transaction(client, instructions, buyer, summary)

    migration_transaction = None
    if quote.completes_bonding:
        # Kept separate: buy + migration does not fit in one legacy transaction.
        migration = await build_migrate_transaction(client, MigrateParams(mint=params.mint, payer=params.buyer))
        migration_transaction = migration.transaction

    return BuyTransactionResult(
        transaction=composed.transaction,
        message=summary,
        migration_transaction=migration_transaction,
    )

async def build_buy_transaction(client: AsyncClient, params: BuyParams) -> BuyTransactionResult:
    """Vault-funded buy. The vault pays and receives the tokens; the buyer signs via its wallet link."""
    return await _build_buy(client, params, params.vault)

async def build_direct_buy_transaction(client: AsyncClient, params: DirectBuyParams) -> BuyTransactionResult:
    """Buy paid from the buyer's own wallet."""
    return await _build_buy(client, params, None)

async def build_sell_transaction(client: AsyncClient, params: SellParams) -> TransactionResult:
    validate_slippage(params.slippage_bps)
    validate_amount(params.amount_tokens, "amount_tokens")
    memo = validate_message(params.message)
    mint = to_pubkey(params.mint, "mint")
    seller = to_pubkey(params.seller, "seller")
    vault_key = _optional_pubkey(params.vault, "vault")
    logger.info(f"Building sell of {params.amount_tokens} tokens of {params.mint} for {params.seller}{_vault_label(params.vault)}")

    state = await fetch_token_state(client, mint)
    quote = quote_sell(state.bonding_curve, params.amount_tokens, params.slippage_bps)

    bonding_curve, _ = get_bonding_curve_pda(mint)
    treasury, _ = get_token_treasury_pda(mint)
    user_position, _ = get_user_position_pda(bonding_curve, seller)
    user_stats, _ = get_user_stats_pda(seller)
    funding = resolve_funding(seller, vault_key, mint)

    instructions = []
    if isinstance(funding, ViaVault):
        instructions.append(create_token_account_ix(seller, funding.vault, mint))
    instructions.append(
        sell_ix(
            seller=seller,
            mint=mint,
            bonding_curve=bonding_curve,
            token_vault=get_token_account(bonding_curve, mint),
            seller_token_account=get_token_account(seller, mint),
            user_position=user_position,
            treasury=treasury,
            user_stats=user_stats,
            funding=funding,
            token_amount=params.amount_tokens,
            min_sol_out=quote.min_output_sol,
        )
    )
    if memo:
        instructions.append(memo_ix(seller, memo))

    summary = (
        f"Sell {format_tokens(params.amount_tokens)} tokens for {format_sol(quote.output_sol)} SOL"
        f"{_vault_label(params.vault)}"
    )
    return await compose_transaction(client, instructions, seller, summary)

async def build_create_token_transaction(
    client: AsyncClient,
    params: CreateTokenParams,
    vanity_suffix: str = VANITY_SUFFIX,
    vanity_max_attempts: int = VANITY_MAX_ATTEMPTS,
) -> CreateTokenResult:
    """Create a token. The transaction comes back partially signed by the new mint keypair."""
    validate_token_metadata(params.name, params.symbol)
    if params.sol_target < 0:
        raise InvalidInputError(f"sol_target must not be negative, got {params.sol_target}")
    creator = to_pubkey(params.creator, "creator")
    logger.info(f"Building create token {params.name!r} ({params.symbol}) for {params.creator}")

    # CPU-bound, so it runs off the event loop.
    mint_keypair = await asyncio.to_thread(grind_vanity_keypair, vanity_suffix, vanity_max_attempts)
    mint = mint_keypair.pubkey()
    logger.debug(f"New mint {mint}")

    global_config, _ = get_global_config_pda()
    bonding_curve, _ = get_bonding_curve_pda(mint)
    treasury, _ = get_token_treasury_pda(mint)
    treasury_lock, _ = get_treasury_lock_pda(mint)

    instructions = [
        create_token_ix(
            creator=creator,
            global_config=global_config,
            mint=mint,
            bonding_curve=bonding_curve,
            token_vault=get_token_account(bonding_curve, mint),
            treasury=treasury,
            treasury_token_account=get_treasury_token_account(mint, treasury),
            treasury_lock=treasury_lock,
            treasury_lock_token_account=get_treasury_lock_token_account(mint, treasury_lock),
            name=params.name,
            symbol=params.symbol,
            uri=params.metadata_uri,
            sol_target=params.sol_target,
        )
    ]
    summary = f'Create token "{params.name}" (${params.symbol})'
    composed = await compose_transaction(client, instructions, creator, summary, signers=[mint_keypair])
    return CreateTokenResult(
        transaction=composed.transaction,
        message=summary,
        mint=str(mint),
        mint_keypair=mint_keypair,
    )

async def build_star_transaction(client: AsyncClient, params: StarParams) -> TransactionResult:
    mint = to_pubkey(params.mint, "mint")
    user = to_pubkey(params.user, "user")
    vault_key = _optional_pubkey(params.vault, "vault")
    logger.info(f"Building star of {params.mint} by {params.user}{_vault_label(params.vault)}")

    state = await fetch_token_state(client, mint)
    curve = state.bonding_curve
    await check_star(client, curve, user, mint)

    bonding_curve, _ = get_bonding_curve_pda(mint)
    treasury, _ = get_token_treasury_pda(mint)
    star_record, _ = get_star_record_pda(user, mint)
    funding = resolve_funding(user, vault_key)

    instructions = [
        star_token_ix(
            user=user,
            mint=mint,
            bonding_curve=bonding_curve,
            treasury=treasury,
            creator=Pubkey.from_string(curve.creator),
            star_record=star_record,
            funding=funding,
        )
    ]
    summary = f"Star token (costs {format_sol(STAR_COST_LAMPORTS)} SOL){_vault_label(params.vault)}"
    return await compose_transaction(client, instructions, user, summary)

# --- Vault management ---

async def build_create_vault_transaction(client: AsyncClient, params: CreateVaultParams) -> TransactionResult:
    """Create the creator's vault; the creator's own wallet is linked automatically."""
    creator = to_pubkey(params.creator, "creator")
    vault, _ = get_torch_vault_pda(creator)
    wallet_link, _ = get_vault_wallet_link_pda(creator)
    logger.info(f"Building create vault {vault} for {params.creator}")
    instructions = [create_vault_ix(creator, vault, wallet_link)]
    return await compose_transaction(client, instructions, creator, f"Create vault for {short_address(params.creator)}")

async def build_deposit_vault_transaction(client: AsyncClient, params: DepositVaultParams) -> TransactionResult:
    validate_amount(params.amount_sol, "amount_sol")
    depositor = to_pubkey(params.depositor, "depositor")
    vault, _ = get_torch_vault_pda(to_pubkey(params.vault_creator, "vault_creator"))
    logger.info(f"Building deposit of {params.amount_sol} lamports into {vault}")
    instructions = [deposit_vault_ix(depositor, vault, params.amount_sol)]
    return await compose_transaction(
        client, instructions, depositor, f"Deposit {format_sol(params.amount_sol)} SOL into vault"
    )

async def build_withdraw_vault_transaction(client: AsyncClient, params: WithdrawVaultParams) -> TransactionResult:
    validate_amount(params.amount_sol, "amount_sol")
    authority = to_pubkey(params.authority, "authority")
    vault, _ = get_torch_vault_pda(to_pubkey(params.vault_creator, "vault_creator"))
    logger.info(f"Building withdrawal of {params.amount_sol} lamports from {vault}")
    instructions = [withdraw_vault_ix(authority, vault, params.amount_sol)]
    return await compose_transaction(
        client, instructions, authority, f"Withdraw {format_sol(params.amount_sol)} SOL from vault"
    )

async def build_link_wallet_transaction(client: AsyncClient, params: LinkWalletParams) -> TransactionResult:
    authority = to_pubkey(params.authority, "authority")
    wallet = to_pubkey(params.wallet_to_link, "wallet_to_link")
    vault, _ = get_torch_vault_pda(to_pubkey(params.vault_creator, "vault_creator"))
    wallet_link, _ = get_vault_wallet_link_pda(wallet)
    logger.info(f"Building link of {params.wallet_to_link} to {vault}")
    instructions = [link_wallet_ix(authority, vault, wallet, wallet_link)]
    return await compose_transaction(
        client, instructions, authority, f"Link wallet {short_address(params.wallet_to_link)} to vault"
    )

async def build_unlink_wallet_transaction(client: AsyncClient, params: UnlinkWalletParams) -> TransactionResult:
    authority = to_pubkey(params.authority, "authority")
    wallet = to_pubkey(params.wallet_to_unlink, "wallet_to_unlink")
    vault, _ = get_torch_vault_pda(to_pubkey(params.vault_creator, "vault_creator"))
    wallet_link, _ = get_vault_wallet_link_pda(wallet)
    logger.info(f"Building unlink of {params.wallet_to_unlink} from {vault}")
    instructions = [unlink_wallet_ix(authority, vault, wallet, wallet_link)]
    return await compose_transaction(
        client, instructions, authority, f"Unlink wallet {short_address(params.wallet_to_unlink)} from vault"
    )

async def build_transfer_authority_transaction(client: AsyncClient, params: TransferAuthorityParams) -> TransactionResult:
    authority = to_pubkey(params.authority, "authority")
    new_authority = to_pubkey(params.new_authority, "new_authority")
    vault, _ = get_torch_vault_pda(to_pubkey(params.vault_creator, "vault_creator"))
    logger.info(f"Building authority transfer of {vault} to {params.new_authority}")
    instructions = [transfer_authority_ix(authority, vault, new_authority)]
    return await compose_transaction(
        client, instructions, authority, f"Transfer vault authority to {short_address(params.new_authority)}"
    )

async def build_withdraw_tokens_transaction(client: AsyncClient, params: WithdrawTokensParams) -> TransactionResult:
    """Withdraw any token the vault holds to ``destination``'s token account."""
    validate_amount(params.amount, "amount")
    authority = to_pubkey(params.authority, "authority")
    mint = to_pubkey(params.mint, "mint")
    destination = to_pubkey(params.destination, "destination")
    vault, _ = get_torch_vault_pda(to_pubkey(params.vault_creator, "vault_creator"))
    destination_token_account = get_token_account(destination, mint)
    logger.info(f"Building withdrawal of {params.amount} {params.mint} from {vault} to {params.destination}")

    instructions = [
        create_token_account_ix(authority, destination, mint),
        withdraw_tokens_ix(
            authority=authority,
            vault=vault,
            mint=mint,
            vault_token_account=get_token_account(vault, mint),
            destination_token_account=destination_token_account,
            amount=params.amount,
        ),
    ]
    return await compose_transaction(
        client,
        instructions,
        authority,
        f"Withdraw {format_tokens(params.amount)} tokens from vault to {short_address(params.destination)}",
    )

async def build_vault_swap_transaction(client: AsyncClient, params: VaultSwapParams) -> TransactionResult:
    """Swap on the Raydium pool of a migrated token with the vault's funds."""
    validate_amount(params.amount_in, "amount_in")
    if params.minimum_amount_out < 0:
        raise InvalidInputError(f"minimum_amount_out must not be negative, got {params.minimum_amount_out}")
    mint = to_pubkey(params.mint, "mint")
    signer_key = to_pubkey(params.signer, "signer")
    vault = resolve_funding(signer_key, to_pubkey(params.vault_creator, "vault_creator"), mint)
    direction = "Buy" if params.is_buy else "Sell"
    logger.info(f"Building vault DEX swap ({direction.lower()}) of {params.amount_in} on {params.mint}")

    bonding_curve, _ = get_bonding_curve_pda(mint)
    vault_wsol_account = get_wsol_account(vault.vault)

    instructions = [
        create_token_account_ix(signer_key, vault.vault, mint),
        create_wsol_account_ix(signer_key, vault.vault),
    ]
    if params.is_buy:
        # Raw lamport move, isolated from the swap CPI below.
        instructions.append(fund_vault_wsol_ix(signer_key, vault, vault_wsol_account, params.amount_in))
    instructions.append(
        vault_swap_ix(
            signer_key=signer_key,
            vault=vault,
            mint=mint,
            bonding_curve=bonding_curve,
            vault_wsol_account=vault_wsol_account,
            raydium=get_raydium_accounts(mint),
            amount_in=params.amount_in,
            minimum_amount_out=params.minimum_amount_out,
            is_buy=params.is_buy,
        )
    )

    amount_label = f"{format_sol(params.amount_in)} SOL" if params.is_buy else f"{format_tokens(params.amount_in)} tokens"
    return await compose_transaction(client, instructions, signer_key, f"{direction} {amount_label} via vault DEX swap")

# --- Lending ---

async def build_borrow_transaction(client: AsyncClient, params: BorrowParams) -> TransactionResult:
    validate_amount(params.collateral_amount, "collateral_amount")
    validate_amount(params.sol_to_borrow, "sol_to_borrow")
    mint = to_pubkey(params.mint, "mint")
    borrower = to_pubkey(params.borrower, "borrower")
    vault_key = _optional_pubkey(params.vault, "vault")
    logger.info(f"Building borrow of {params.sol_to_borrow} lamports against {params.collateral_amount} {params.mint}")

    state = await fetch_token_state(client, mint)
    ensure_migrated_for_lending(state.bonding_curve)

    bonding_curve, _ = get_bonding_curve_pda(mint)
    treasury, _ = get_token_treasury_pda(mint)
    collateral_vault, _ = get_collateral_vault_pda(mint)
    loan_position, _ = get_loan_position_pda(mint, borrower)
    funding = resolve_funding(borrower, vault_key, mint)

    instructions = []
    if isinstance(funding, ViaVault):
        instructions.append(create_token_account_ix(borrower, funding.vault, mint))
    instructions.append(
        borrow_ix(
            borrower=borrower,
            mint=mint,
            bonding_curve=bonding_curve,
            treasury=treasury,
            collateral_vault=collateral_vault,
            borrower_token_account=get_token_account(borrower, mint),
            loan_position=loan_position,
            raydium=get_raydium_accounts(mint),
            funding=funding,
            collateral_amount=params.collateral_amount,
            sol_to_borrow=params.sol_to_borrow,
        )
    )
    summary = (
        f"Borrow {format_sol(params.sol_to_borrow)} SOL with {format_tokens(params.collateral_amount)} tokens "
        f"as collateral{_vault_label(params.vault)}"
    )
    return await compose_transaction(client, instructions, borrower, summary)

async def build_repay_transaction(client: AsyncClient, params: RepayParams) -> TransactionResult:
    """Repay SOL debt. Interest is paid first; a full repay returns the collateral."""
    validate_amount(params.sol_amount, "sol_amount")
    mint = to_pubkey(params.mint, "mint")
    borrower = to_pubkey(params.borrower, "borrower")
    vault_key = _optional_pubkey(params.vault, "vault")
    logger.info(f"Building repay of {params.sol_amount} lamports on {params.mint}")

    state = await fetch_token_state(client, mint)
    ensure_migrated_for_lending(state.bonding_curve)

    treasury, _ = get_token_treasury_pda(mint)
    collateral_vault, _ = get_collateral_vault_pda(mint)
    loan_position, _ = get_loan_position_pda(mint, borrower)
    funding = resolve_funding(borrower, vault_key, mint)

    instructions = []
    if isinstance(funding, ViaVault):
        instructions.append(create_token_account_ix(borrower, funding.vault, mint))
    instructions.append(
        repay_ix(
            borrower=borrower,
            mint=mint,
            treasury=treasury,
            collateral_vault=collateral_vault,
            borrower_token_account=get_token_account(borrower, mint),
            loan_position=loan_position,
            funding=funding,
            sol_amount=params.sol_amount,
        )
    )
    summary = f"Repay {format_sol(params.sol_amount)} SOL{_vault_label(params.vault)}"
    return await compose_transaction(client, instructions, borrower, summary)

async def build_liquidate_transaction(client: AsyncClient, params: LiquidateParams) -> TransactionResult:
    """Liquidate a loan. Eligibility is decided by the program at execution time."""
    mint = to_pubkey(params.mint, "mint")
    liquidator = to_pubkey(params.liquidator, "liquidator")
    borrower = to_pubkey(params.borrower, "borrower")
    vault_key = _optional_pubkey(params.vault, "vault")
    logger.info(f"Building liquidation of {params.borrower} on {params.mint}")

    state = await fetch_token_state(client, mint)
    ensure_migrated_for_lending(state.bonding_curve)

    bonding_curve, _ = get_bonding_curve_pda(mint)
    treasury, _ = get_token_treasury_pda(mint)
    collateral_vault, _ = get_collateral_vault_pda(mint)
    loan_position, _ = get_loan_position_pda(mint, borrower)
    liquidator_token_account = get_token_account(liquidator, mint)
    funding = resolve_funding(liquidator, vault_key, mint)

    instructions = [create_token_account_ix(liquidator, liquidator, mint)]
    if isinstance(funding, ViaVault):
        # Seized collateral goes to the vault.
        instructions.append(create_token_account_ix(liquidator, funding.vault, mint))
    instructions.append(
        liquidate_ix(
            liquidator=liquidator,
            borrower=borrower,
            mint=mint,
            bonding_curve=bonding_curve,
            treasury=treasury,
            collateral_vault=collateral_vault,
            liquidator_token_account=liquidator_token_account,
            loan_position=loan_position,
            raydium=get_raydium_accounts(mint),
            funding=funding,
        )
    )
    summary = f"Liquidate loan position for {short_address(params.borrower)}{_vault_label(params.vault)}"
    return await compose_transaction(client, instructions, liquidator, summary)

async def build_claim_protocol_rewards_transaction(
    client: AsyncClient, params: ClaimProtocolRewardsParams
) -> TransactionResult:
    user = to_pubkey(params.user, "user")
    vault_key = _optional_pubkey(params.vault, "vault")
    user_stats, _ = get_user_stats_pda(user)
    protocol_treasury, _ = get_protocol_treasury_pda()
    logger.info(f"Building protocol rewards claim for {params.user}{_vault_label(params.vault)}")
    instructions = [claim_protocol_rewards_ix(user, user_stats, protocol_treasury, resolve_funding(user, vault_key))]
    return await compose_transaction(client, instructions, user, f"Claim protocol rewards{_vault_label(params.vault)}")

# --- Migration and treasury cranks ---

async def build_migrate_transaction(client: AsyncClient, params: MigrateParams) -> TransactionResult:
    """Move a completed curve's liquidity into a new Raydium CPMM pool.

    Permissionless; the treasury reimburses the payer's costs on chain.
    """
    mint = to_pubkey(params.mint, "mint")
    payer = to_pubkey(params.payer, "payer")
    logger.info(f"Building migration of {params.mint} paid by {params.payer}")

    bonding_curve, _ = get_bonding_curve_pda(mint)
    global_config, _ = get_global_config_pda()
    treasury, _ = get_token_treasury_pda(mint)
    bonding_curve_wsol = get_wsol_account(bonding_curve)
    raydium = get_raydium_accounts(mint)

    instructions = [
        compute_limit_ix(HEAVY_COMPUTE_UNITS),
        create_wsol_account_ix(payer, bonding_curve),
        create_wsol_account_ix(payer, payer),
        create_token_account_ix(payer, payer, mint),
        # Raw lamport move, isolated from the pool-creation CPI.
        fund_migration_wsol_ix(payer, mint, bonding_curve, bonding_curve_wsol),
        migrate_to_dex_ix(
            payer=payer,
            global_config=global_config,
            mint=mint,
            bonding_curve=bonding_curve,
            treasury=treasury,
            token_vault=get_token_account(bonding_curve, mint),
            treasury_token_account=get_treasury_token_account(mint, treasury),
            bonding_curve_wsol=bonding_curve_wsol,
            payer_wsol=get_wsol_account(payer),
            payer_token=get_token_account(payer, mint),
            raydium=raydium,
            payer_lp_token=get_lp_token_account(payer, raydium.lp_mint),
        ),
    ]
    return await compose_transaction(
        client, instructions, payer, f"Migrate token {short_address(params.mint)} to Raydium DEX"
    )

async def build_auto_buyback_transaction(client: AsyncClient, params: AutoBuybackParams) -> TransactionResult:
    """Permissionless treasury buyback crank. Fails fast unless every buyback check passes."""
    mint = to_pubkey(params.mint, "mint")
    payer = to_pubkey(params.payer, "payer")
    logger.info(f"Building auto-buyback for {params.mint}")

    state = await fetch_token_state(client, mint)
    amount = await check_auto_buyback(client, state)

    bonding_curve, _ = get_bonding_curve_pda(mint)
    treasury, _ = get_token_treasury_pda(mint)
    treasury_wsol = get_wsol_account(treasury)

    instructions = [
        compute_limit_ix(HEAVY_COMPUTE_UNITS),
        create_wsol_account_ix(payer, treasury),
        execute_auto_buyback_ix(
            payer=payer,
            mint=mint,
            bonding_curve=bonding_curve,
            treasury=treasury,
            treasury_wsol=treasury_wsol,
            treasury_token_account=get_treasury_token_account(mint, treasury),
            raydium=get_raydium_accounts(mint),
            minimum_amount_out=params.minimum_amount_out,
        ),
    ]
    summary = f"Auto-buyback {amount / LAMPORTS_PER_SOL:.4f} SOL for {short_address(params.mint)}"
    return await compose_transaction(client, instructions, payer, summary)

async def _resolve_fee_sources(client: AsyncClient, mint: Pubkey, sources: Optional[List[str]]) -> List[Pubkey]:
    if sources:
        return [to_pubkey(source, "source") for source in sources]
    return await find_fee_sources(client, mint)

def _harvest_ix(payer: Pubkey, mint: Pubkey, sources: List[Pubkey]) -> Instruction:
    bonding_curve, _ = get_bonding_curve_pda(mint)
    treasury, _ = get_token_treasury_pda(mint)
    return harvest_fees_ix(
        payer=payer,
        mint=mint,
        bonding_curve=bonding_curve,
        treasury=treasury,
        treasury_token_account=get_treasury_token_account(mint, treasury),
        sources=sources,
    )

def harvest_compute_units(source_count: int) -> int:
    return HARVEST_BASE_COMPUTE_UNITS + HARVEST_COMPUTE_UNITS_PER_SOURCE * source_count

async def build_harvest_fees_transaction(client: AsyncClient, params: HarvestFeesParams) -> TransactionResult:
    """Harvest withheld Token-2022 transfer fees into the token treasury."""
    mint = to_pubkey(params.mint, "mint")
    payer = to_pubkey(params.payer, "payer")
    logger.info(f"Building fee harvest for {params.mint}")

    sources = await _resolve_fee_sources(client, mint, params.sources)
    instructions = [
        compute_limit_ix(harvest_compute_units(len(sources))),
        _harvest_ix(payer, mint, sources),
    ]
    summary = f"Harvest transfer fees for {short_address(params.mint)} ({len(sources)} source accounts)"
    return await compose_transaction(client, instructions, payer, summary)

async def build_swap_fees_to_sol_transaction(client: AsyncClient, params: SwapFeesToSolParams) -> TransactionResult:
    """Sell the treasury's harvested fee tokens for SOL, optionally harvesting first."""
    mint = to_pubkey(params.mint, "mint")
    payer = to_pubkey(params.payer, "payer")
    logger.info(f"Building fee swap to SOL for {params.mint} (harvest: {params.harvest})")

    bonding_curve, _ = get_bonding_curve_pda(mint)
    treasury, _ = get_token_treasury_pda(mint)
    treasury_wsol = get_wsol_account(treasury)

    instructions = [
        compute_limit_ix(HEAVY_COMPUTE_UNITS),
        create_wsol_account_ix(payer, treasury),
    ]
    if params.harvest:
        sources = await _resolve_fee_sources(client, mint, params.sources)
        instructions.append(_harvest_ix(payer, mint, sources))
    instructions.append(
        swap_fees_to_sol_ix(
            payer=payer,
            mint=mint,
            bonding_curve=bonding_curve,
            treasury=treasury,
            treasury_token_account=get_treasury_token_account(mint, treasury),
            treasury_wsol=treasury_wsol,
            raydium=get_raydium_accounts(mint),
            minimum_amount_out=params.minimum_amount_out,
        )
    )
    summary = f"Swap harvested fees to SOL for {short_address(params.mint)}{' (harvest + swap)' if params.harvest else ''}"
    return await compose_transaction(client, instructions, payer, summary)
