"""
Read façade: fetch account bytes from the chain and decode them.

The ``fetch_*`` helpers feed the quote engine, guards and builders. The
``get_*`` reads are caller-facing views; their LTV and health figures are
advisory display data only.
"""

import asyncio
from typing import List, Optional

import httpx
from construct import Int16ul, Int64ul
from mcp.server.fastmcp.utilities.logging import get_logger
from solana.rpc.async_api import AsyncClient
from solana.rpc.types import DataSliceOpts, MemcmpOpts
from solders.pubkey import Pubkey

from .addresses import (
    get_bonding_curve_pda,
    get_global_config_pda,
    get_loan_position_pda,
    get_raydium_accounts,
    get_star_record_pda,
    get_token_treasury_pda,
    get_torch_vault_pda,
    get_vault_wallet_link_pda,
    to_pubkey,
)
from .constants import (
    BPS_DENOMINATOR,
    DEFAULT_METADATA_TIMEOUT,
    INTEREST_RATE_BPS,
    IRYS_GATEWAY,
    IRYS_UPLOADER,
    LAMPORTS_PER_SOL,
    LIQUIDATION_BONUS_BPS,
    LIQUIDATION_THRESHOLD_BPS,
    MAX_LTV_BPS,
    PROGRAM_ID,
    TOKEN_MULTIPLIER,
    TOTAL_SUPPLY,
)
from .curve import calculate_bonding_progress, calculate_price, resolve_bonding_target
from .errors import RPC_ERRORS, NotFoundError, PreconditionFailedError
from .models import (
    BondingCurve,
    GlobalConfig,
    LendingInfo,
    LoanPositionInfo,
    PoolReserves,
    TokenDetail,
    TokenState,
    TokenStatus,
    VaultInfo,
    VaultWalletLinkInfo,
)
from .program import (
    LOAN_POSITION_AMOUNTS_OFFSET,
    LOAN_POSITION_MINT_OFFSET,
    account_discriminator,
    decode_account,
)

logger = get_logger(__name__)

# Token-2022 account layout: 165-byte base account, one account-type byte, then TLV extensions.
TOKEN_ACCOUNT_BASE_SIZE = 165
TRANSFER_FEE_AMOUNT_EXTENSION = 2

# --- Raw fetches ---

async def fetch_account_data(client: AsyncClient, address: Pubkey) -> Optional[bytes]:
    resp = await client.get_account_info(address)
    if resp.value is None:
        return None
    return bytes(resp.value.data)

async def fetch_token_state(client: AsyncClient, mint: Pubkey) -> TokenState:
    """Fetch the bonding curve and treasury for ``mint`` in parallel."""
    bonding_curve, _ = get_bonding_curve_pda(mint)
    treasury, _ = get_token_treasury_pda(mint)
    curve_data, treasury_data = await asyncio.gather(
        fetch_account_data(client, bonding_curve),
        fetch_account_data(client, treasury),
    )
    if curve_data is None:
        raise NotFoundError(f"Token not found: {mint}")
    return TokenState(
        mint=str(mint),
        bonding_curve=decode_account("BondingCurve", curve_data),
        treasury=decode_account("Treasury", treasury_data) if treasury_data else None,
    )

async def fetch_global_config(client: AsyncClient) -> GlobalConfig:
    global_config, _ = get_global_config_pda()
    data = await fetch_account_data(client, global_config)
    if data is None:
        raise NotFoundError(f"Global config not found: {global_config}")
    return decode_account("GlobalConfig", data)

async def fetch_current_slot(client: AsyncClient) -> int:
    return (await client.get_slot()).value

async def fetch_mint_supply(client: AsyncClient, mint: Pubkey) -> int:
    resp = await client.get_token_supply(mint)
    return int(resp.value.amount)

async def fetch_pool_reserves(client: AsyncClient, mint: Pubkey) -> PoolReserves:
    """Live SOL and token balances of the Raydium pool vaults for ``mint``."""
    raydium = get_raydium_accounts(mint)
    sol_resp, token_resp = await asyncio.gather(
        client.get_token_account_balance(raydium.wsol_vault),
        client.get_token_account_balance(raydium.token_vault),
    )
    return PoolReserves(sol=int(sol_resp.value.amount), tokens=int(token_resp.value.amount))

async def star_record_exists(client: AsyncClient, user: Pubkey, mint: Pubkey) -> bool:
    star_record, _ = get_star_record_pda(user, mint)
    return await fetch_account_data(client, star_record) is not None

def withheld_transfer_fee(data: bytes) -> int:
    """Withheld amount from a Token-2022 account's TransferFeeAmount extension, or 0."""
    offset = TOKEN_ACCOUNT_BASE_SIZE + 1
    while offset + 4 <= len(data):
        ext_type = Int16ul.parse(data[offset:offset + 2])
        ext_len = Int16ul.parse(data[offset + 2:offset + 4])
        if ext_type == TRANSFER_FEE_AMOUNT_EXTENSION and ext_len >= 8:
            return Int64ul.parse(data[offset + 4:offset + 12])
        if ext_type == 0:
            break
        offset += 4 + ext_len
    return 0

async def find_fee_sources(client: AsyncClient, mint: Pubkey) -> List[Pubkey]:
    """Largest holders of ``mint`` with withheld transfer fees.

    Best effort: an RPC failure is logged and yields no sources, so the
    harvest still goes out (it just collects nothing from holder accounts).
    """
    try:
        largest = await client.get_token_largest_accounts(mint)
        addresses = [entry.address for entry in largest.value]
        if not addresses:
            return []
        accounts = (await client.get_multiple_accounts(addresses)).value
    except RPC_ERRORS as e:
        logger.warning(f"Fee source discovery failed for {mint}, harvesting without sources: {e}")
        return []

    sources = []
    for address, account in zip(addresses, accounts):
        if account is None:
            continue
        if withheld_transfer_fee(bytes(account.data)) > 0:
            sources.append(address)
    logger.debug(f"Found {len(sources)} fee source accounts for {mint}")
    return sources

# --- Caller-facing views ---

def token_status(curve: BondingCurve) -> TokenStatus:
    if curve.migrated:
        return "migrated"
    if curve.bonding_complete:
        return "complete"
    return "bonding"

def irys_to_uploader(url: str) -> str:
    return url.replace(IRYS_GATEWAY, IRYS_UPLOADER)

def is_irys_url(url: str) -> bool:
    try:
        return httpx.URL(url).host == IRYS_GATEWAY
    except httpx.InvalidURL:
        return False

async def fetch_metadata(uri: str, timeout: float = DEFAULT_METADATA_TIMEOUT) -> dict:
    """Fetch off-chain token metadata JSON. Irys gateway URLs go to the uploader host."""
    if is_irys_url(uri):
        uri = irys_to_uploader(uri)
    async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as http:
        resp = await http.get(uri)
        resp.raise_for_status()
        return resp.json()

async def get_token(client: AsyncClient, mint: str, metadata_timeout: float = DEFAULT_METADATA_TIMEOUT) -> TokenDetail:
    state = await fetch_token_state(client, to_pubkey(mint, "mint"))
    curve, treasury = state.bonding_curve, state.treasury
    warnings = []

    metadata = {}
    if curve.uri:
        try:
            metadata = await fetch_metadata(curve.uri, metadata_timeout)
        except (httpx.HTTPError, ValueError) as e:
            warnings.append(f"Metadata fetch failed: {e}")
    image = metadata.get("image")
    if image and is_irys_url(image):
        image = irys_to_uploader(image)

    price_sol = calculate_price(curve.virtual_sol_reserves, curve.virtual_token_reserves) * TOKEN_MULTIPLIER / LAMPORTS_PER_SOL
    circulating = TOTAL_SUPPLY - curve.real_token_reserves - curve.vote_vault_balance

    return TokenDetail(
        mint=mint,
        name=curve.name,
        symbol=curve.symbol,
        status=token_status(curve),
        creator=curve.creator,
        price_sol=price_sol,
        market_cap_sol=price_sol * circulating / TOKEN_MULTIPLIER,
        progress_percent=calculate_bonding_progress(curve.real_sol_reserves, curve.bonding_target),
        sol_raised=curve.real_sol_reserves,
        sol_target=resolve_bonding_target(curve.bonding_target),
        circulating_supply=circulating,
        tokens_in_curve=curve.real_token_reserves,
        tokens_in_vote_vault=curve.vote_vault_balance,
        tokens_burned=curve.permanently_burned_tokens,
        treasury_sol_balance=treasury.sol_balance if treasury else 0,
        treasury_token_balance=treasury.tokens_held if treasury else 0,
        total_bought_back=treasury.total_bought_back if treasury else 0,
        buyback_count=treasury.buyback_count if treasury else 0,
        stars=treasury.total_stars if treasury else 0,
        votes_return=curve.votes_return,
        votes_burn=curve.votes_burn,
        description=metadata.get("description"),
        image=image,
        twitter=metadata.get("twitter"),
        telegram=metadata.get("telegram"),
        website=metadata.get("website"),
        warnings=warnings,
    )

def _vault_info(address: Pubkey, data: bytes) -> VaultInfo:
    vault = decode_account("TorchVault", data)
    return VaultInfo(address=str(address), **vault.model_dump(exclude={"bump"}))

async def get_vault(client: AsyncClient, creator: str) -> Optional[VaultInfo]:
    """Vault owned by ``creator``, or None if it was never created."""
    vault, _ = get_torch_vault_pda(to_pubkey(creator, "creator"))
    data = await fetch_account_data(client, vault)
    if data is None:
        return None
    return _vault_info(vault, data)

async def get_vault_wallet_link(client: AsyncClient, wallet: str) -> Optional[VaultWalletLinkInfo]:
    link, _ = get_vault_wallet_link_pda(to_pubkey(wallet, "wallet"))
    data = await fetch_account_data(client, link)
    if data is None:
        return None
    record = decode_account("VaultWalletLink", data)
    return VaultWalletLinkInfo(address=str(link), vault=record.vault, wallet=record.wallet, linked_at=record.linked_at)

async def get_vault_for_wallet(client: AsyncClient, wallet: str) -> Optional[VaultInfo]:
    """Vault that ``wallet`` is linked to, or None if it is not linked."""
    link = await get_vault_wallet_link(client, wallet)
    if link is None:
        return None
    vault = Pubkey.from_string(link.vault)
    data = await fetch_account_data(client, vault)
    if data is None:
        return None
    return _vault_info(vault, data)

async def get_lending_info(client: AsyncClient, mint: str) -> LendingInfo:
    mint_key = to_pubkey(mint, "mint")
    state = await fetch_token_state(client, mint_key)
    if not state.bonding_curve.migrated:
        raise PreconditionFailedError("Token not yet migrated, lending not available")

    warnings = []
    active_loans: Optional[int] = 0
    total_sol_lent: Optional[int] = 0
    try:
        resp = await client.get_program_accounts(
            PROGRAM_ID,
            encoding="base64",
            data_slice=DataSliceOpts(offset=LOAN_POSITION_AMOUNTS_OFFSET, length=16),
            filters=[
                MemcmpOpts(offset=0, bytes=account_discriminator("LoanPosition")),
                MemcmpOpts(offset=LOAN_POSITION_MINT_OFFSET, bytes=bytes(mint_key)),
            ],
        )
        for keyed in resp.value:
            # Slice holds collateral_amount then borrowed_amount.
            borrowed = Int64ul.parse(bytes(keyed.account.data)[8:16])
            if borrowed > 0:
                active_loans += 1
                total_sol_lent += borrowed
    except RPC_ERRORS as e:
        active_loans = total_sol_lent = None
        warnings.append(f"Loan enumeration failed: {e}")

    return LendingInfo(
        interest_rate_bps=INTEREST_RATE_BPS,
        max_ltv_bps=MAX_LTV_BPS,
        liquidation_threshold_bps=LIQUIDATION_THRESHOLD_BPS,
        liquidation_bonus_bps=LIQUIDATION_BONUS_BPS,
        total_sol_lent=total_sol_lent,
        active_loans=active_loans,
        treasury_sol_available=state.treasury.sol_balance if state.treasury else 0,
        warnings=warnings,
    )

async def get_loan_position(client: AsyncClient, mint: str, wallet: str) -> LoanPositionInfo:
    """Loan view for (mint, wallet). Health is advisory; the program decides liquidation."""
    mint_key = to_pubkey(mint, "mint")
    loan_address, _ = get_loan_position_pda(mint_key, to_pubkey(wallet, "wallet"))
    data = await fetch_account_data(client, loan_address)
    if data is None:
        return LoanPositionInfo(
            collateral_amount=0,
            borrowed_amount=0,
            accrued_interest=0,
            total_owed=0,
            collateral_value_sol=0,
            current_ltv_bps=0,
            health="none",
        )

    loan = decode_account("LoanPosition", data)
    total_owed = loan.borrowed_amount + loan.accrued_interest
    warnings = []

    collateral_value: Optional[int] = 0
    try:
        reserves = await fetch_pool_reserves(client, mint_key)
        if reserves.tokens > 0:
            collateral_value = loan.collateral_amount * reserves.sol // reserves.tokens
    except RPC_ERRORS as e:
        collateral_value = None
        warnings.append(f"Collateral valuation failed: {e}")

    if collateral_value is None:
        ltv_bps = None
    elif collateral_value > 0:
        ltv_bps = total_owed * BPS_DENOMINATOR // collateral_value
    else:
        ltv_bps = BPS_DENOMINATOR if total_owed > 0 else 0

    if loan.borrowed_amount == 0 and loan.accrued_interest == 0:
        health = "none"
    elif ltv_bps is None:
        health = "healthy"
    elif ltv_bps >= LIQUIDATION_THRESHOLD_BPS:
        health = "liquidatable"
    elif ltv_bps >= MAX_LTV_BPS:
        health = "at_risk"
    else:
        health = "healthy"

    return LoanPositionInfo(
        collateral_amount=loan.collateral_amount,
        borrowed_amount=loan.borrowed_amount,
        accrued_interest=loan.accrued_interest,
        total_owed=total_owed,
        collateral_value_sol=collateral_value,
        current_ltv_bps=ltv_bps,
        health=health,
        warnings=warnings,
    )
