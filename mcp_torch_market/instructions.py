"""
Instruction encoders for the torch_market program and the helper programs it
is used with (associated token accounts, compute budget, memo).

Every market instruction is built from an ordered AccountMeta list matching the
program's account struct, plus Anchor-encoded argument data. Intents that can
be paid for from a vault take a FundingMode instead of nullable vault fields.
"""

from typing import List, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict
from solders.compute_budget import set_compute_unit_limit
from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey
from solders.system_program import ID as SYSTEM_PROGRAM_ID
from solders.sysvar import RENT
from spl.memo.instructions import MemoParams, create_memo
from spl.token.instructions import create_idempotent_associated_token_account

from .addresses import (
    RaydiumAccounts,
    get_token_account,
    get_torch_vault_pda,
    get_vault_wallet_link_pda,
)
from .constants import (
    ASSOCIATED_TOKEN_PROGRAM_ID,
    MEMO_PROGRAM_ID,
    PROGRAM_ID,
    RAYDIUM_AMM_CONFIG,
    RAYDIUM_CPMM_PROGRAM,
    RAYDIUM_CREATE_POOL_FEE,
    TOKEN_2022_PROGRAM_ID,
    TOKEN_PROGRAM_ID,
    WSOL_MINT,
)
from .program import encode_instruction_data

# --- Funding mode ---

class Direct(BaseModel):
    """Paid and settled from the signer's own wallet."""
    model_config = ConfigDict(frozen=True)


class ViaVault(BaseModel):
    """Paid and settled from a creator's vault; the signer proves access via its wallet link.

    ``vault_token_account`` is None only for intents that move no tokens
    (starring, claiming protocol rewards).
    """
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    vault: Pubkey
    wallet_link: Pubkey
    vault_token_account: Optional[Pubkey] = None


FundingMode = Union[Direct, ViaVault]


def resolve_funding(signer: Pubkey, vault_creator: Optional[Pubkey], mint: Optional[Pubkey] = None) -> FundingMode:
    if vault_creator is None:
        return Direct()
    vault, _ = get_torch_vault_pda(vault_creator)
    wallet_link, _ = get_vault_wallet_link_pda(signer)
    return ViaVault(
        vault=vault,
        wallet_link=wallet_link,
        vault_token_account=get_token_account(vault, mint) if mint is not None else None,
    )

# --- Account meta helpers ---

def signer(pubkey: Pubkey) -> AccountMeta:
    return AccountMeta(pubkey, is_signer=True, is_writable=True)

def writable(pubkey: Pubkey) -> AccountMeta:
    return AccountMeta(pubkey, is_signer=False, is_writable=True)

def readonly(pubkey: Pubkey) -> AccountMeta:
    return AccountMeta(pubkey, is_signer=False, is_writable=False)

# Anchor reads the program id in an optional account slot as "not provided".
_ABSENT = readonly(PROGRAM_ID)

def vault_metas(funding: FundingMode, with_token_account: bool = True) -> List[AccountMeta]:
    """torch_vault, vault_wallet_link[, vault_token_account] slots for ``funding``."""
    if isinstance(funding, ViaVault):
        metas = [writable(funding.vault), readonly(funding.wallet_link)]
        if with_token_account:
            metas.append(writable(funding.vault_token_account))
    else:
        metas = [_ABSENT, _ABSENT]
        if with_token_account:
            metas.append(_ABSENT)
    return metas

def _market_ix(method: str, accounts: List[AccountMeta], **args) -> Instruction:
    return Instruction(PROGRAM_ID, encode_instruction_data(method, **args), accounts)

# --- Helper program instructions ---

def compute_limit_ix(units: int) -> Instruction:
    return set_compute_unit_limit(units)

def create_token_account_ix(payer: Pubkey, owner: Pubkey, mint: Pubkey) -> Instruction:
    """Idempotent Token-2022 ATA creation."""
    return create_idempotent_associated_token_account(payer, owner, mint, token_program_id=TOKEN_2022_PROGRAM_ID)

def create_wsol_account_ix(payer: Pubkey, owner: Pubkey) -> Instruction:
    """Idempotent WSOL ATA creation (classic SPL Token)."""
    return create_idempotent_associated_token_account(payer, owner, WSOL_MINT, token_program_id=TOKEN_PROGRAM_ID)

def memo_ix(author: Pubkey, text: str) -> Instruction:
    return create_memo(MemoParams(program_id=MEMO_PROGRAM_ID, signer=author, message=text.encode("utf-8")))

# --- Bonding curve trading ---

def create_token_ix(
    creator: Pubkey,
    global_config: Pubkey,
    mint: Pubkey,
    bonding_curve: Pubkey,
    token_vault: Pubkey,
    treasury: Pubkey,
    treasury_token_account: Pubkey,
    treasury_lock: Pubkey,
    treasury_lock_token_account: Pubkey,
    name: str,
    symbol: str,
    uri: str,
    sol_target: int,
) -> Instruction:
    accounts = [
        signer(creator),
        writable(global_config),
        AccountMeta(mint, is_signer=True, is_writable=True),
        writable(bonding_curve),
        writable(token_vault),
        writable(treasury),
        writable(treasury_token_account),
        writable(treasury_lock),
        writable(treasury_lock_token_account),
        readonly(TOKEN_2022_PROGRAM_ID),
        readonly(ASSOCIATED_TOKEN_PROGRAM_ID),
        readonly(SYSTEM_PROGRAM_ID),
        readonly(RENT),
    ]
    return _market_ix("create_token", accounts, name=name, symbol=symbol, uri=uri, sol_target=sol_target)

def buy_ix(
    buyer: Pubkey,
    global_config: Pubkey,
    dev_wallet: Pubkey,
    protocol_treasury: Pubkey,
    mint: Pubkey,
    bonding_curve: Pubkey,
    token_vault: Pubkey,
    treasury: Pubkey,
    treasury_token_account: Pubkey,
    buyer_token_account: Pubkey,
    user_position: Pubkey,
    user_stats: Pubkey,
    funding: FundingMode,
    sol_amount: int,
    min_tokens_out: int,
    vote: Optional[bool] = None,
) -> Instruction:
    accounts = [
        signer(buyer),
        writable(global_config),
        writable(dev_wallet),
        writable(protocol_treasury),
        writable(mint),
        writable(bonding_curve),
        writable(token_vault),
        writable(treasury),
        writable(treasury_token_account),
        writable(buyer_token_account),
        writable(user_position),
        writable(user_stats),
        *vault_metas(funding),
        readonly(TOKEN_2022_PROGRAM_ID),
        readonly(ASSOCIATED_TOKEN_PROGRAM_ID),
        readonly(SYSTEM_PROGRAM_ID),
    ]
    return _market_ix(
        "buy",
        accounts,
        sol_amount=sol_amount,
        min_tokens_out=min_tokens_out,
        vote_tag=0 if vote is None else 1,
        vote=vote,
    )

def sell_ix(
    seller: Pubkey,
    mint: Pubkey,
    bonding_curve: Pubkey,
    token_vault: Pubkey,
    seller_token_account: Pubkey,
    user_position: Pubkey,
    treasury: Pubkey,
    user_stats: Pubkey,
    funding: FundingMode,
    token_amount: int,
    min_sol_out: int,
) -> Instruction:
    accounts = [
        signer(seller),
        writable(mint),
        writable(bonding_curve),
        writable(token_vault),
        writable(seller_token_account),
        writable(user_position),
        writable(treasury),
        writable(user_stats),
        *vault_metas(funding),
        readonly(TOKEN_2022_PROGRAM_ID),
        readonly(SYSTEM_PROGRAM_ID),
    ]
    return _market_ix("sell", accounts, token_amount=token_amount, min_sol_out=min_sol_out)

def star_token_ix(
    user: Pubkey,
    mint: Pubkey,
    bonding_curve: Pubkey,
    treasury: Pubkey,
    creator: Pubkey,
    star_record: Pubkey,
    funding: FundingMode,
) -> Instruction:
    accounts = [
        signer(user),
        readonly(mint),
        writable(bonding_curve),
        writable(treasury),
        writable(creator),
        writable(star_record),
        *vault_metas(funding, with_token_account=False),
        readonly(SYSTEM_PROGRAM_ID),
    ]
    return _market_ix("star_token", accounts)

# --- Vault management ---

def create_vault_ix(creator: Pubkey, vault: Pubkey, wallet_link: Pubkey) -> Instruction:
    accounts = [signer(creator), writable(vault), writable(wallet_link), readonly(SYSTEM_PROGRAM_ID)]
    return _market_ix("create_vault", accounts)

def deposit_vault_ix(depositor: Pubkey, vault: Pubkey, amount: int) -> Instruction:
    accounts = [signer(depositor), writable(vault), readonly(SYSTEM_PROGRAM_ID)]
    return _market_ix("deposit_vault", accounts, amount=amount)

def withdraw_vault_ix(authority: Pubkey, vault: Pubkey, amount: int) -> Instruction:
    accounts = [signer(authority), writable(vault), readonly(SYSTEM_PROGRAM_ID)]
    return _market_ix("withdraw_vault", accounts, amount=amount)

def link_wallet_ix(authority: Pubkey, vault: Pubkey, wallet: Pubkey, wallet_link: Pubkey) -> Instruction:
    accounts = [
        signer(authority),
        writable(vault),
        readonly(wallet),
        writable(wallet_link),
        readonly(SYSTEM_PROGRAM_ID),
    ]
    return _market_ix("link_wallet", accounts)

def unlink_wallet_ix(authority: Pubkey, vault: Pubkey, wallet: Pubkey, wallet_link: Pubkey) -> Instruction:
    accounts = [
        signer(authority),
        writable(vault),
        readonly(wallet),
        writable(wallet_link),
        readonly(SYSTEM_PROGRAM_ID),
    ]
    return _market_ix("unlink_wallet", accounts)

def transfer_authority_ix(authority: Pubkey, vault: Pubkey, new_authority: Pubkey) -> Instruction:
    accounts = [signer(authority), writable(vault), readonly(new_authority)]
    return _market_ix("transfer_authority", accounts)

def withdraw_tokens_ix(
    authority: Pubkey,
    vault: Pubkey,
    mint: Pubkey,
    vault_token_account: Pubkey,
    destination_token_account: Pubkey,
    amount: int,
) -> Instruction:
    accounts = [
        signer(authority),
        readonly(vault),
        readonly(mint),
        writable(vault_token_account),
        writable(destination_token_account),
        readonly(TOKEN_2022_PROGRAM_ID),
    ]
    return _market_ix("withdraw_tokens", accounts, amount=amount)

def fund_vault_wsol_ix(signer_key: Pubkey, vault: ViaVault, vault_wsol_account: Pubkey, amount: int) -> Instruction:
    accounts = [
        signer(signer_key),
        writable(vault.vault),
        readonly(vault.wallet_link),
        writable(vault_wsol_account),
    ]
    return _market_ix("fund_vault_wsol", accounts, amount=amount)

def vault_swap_ix(
    signer_key: Pubkey,
    vault: ViaVault,
    mint: Pubkey,
    bonding_curve: Pubkey,
    vault_wsol_account: Pubkey,
    raydium: RaydiumAccounts,
    amount_in: int,
    minimum_amount_out: int,
    is_buy: bool,
) -> Instruction:
    accounts = [
        signer(signer_key),
        writable(vault.vault),
        readonly(vault.wallet_link),
        readonly(mint),
        readonly(bonding_curve),
        writable(vault.vault_token_account),
        writable(vault_wsol_account),
        readonly(RAYDIUM_CPMM_PROGRAM),
        readonly(raydium.authority),
        readonly(RAYDIUM_AMM_CONFIG),
        writable(raydium.pool_state),
        writable(raydium.token0_vault),
        writable(raydium.token1_vault),
        writable(raydium.observation_state),
        readonly(WSOL_MINT),
        readonly(TOKEN_PROGRAM_ID),
        readonly(TOKEN_2022_PROGRAM_ID),
        readonly(ASSOCIATED_TOKEN_PROGRAM_ID),
        readonly(SYSTEM_PROGRAM_ID),
    ]
    return _market_ix(
        "vault_swap", accounts, amount_in=amount_in, minimum_amount_out=minimum_amount_out, is_buy=is_buy
    )

# --- Lending ---

def borrow_ix(
    borrower: Pubkey,
    mint: Pubkey,
    bonding_curve: Pubkey,
    treasury: Pubkey,
    collateral_vault: Pubkey,
    borrower_token_account: Pubkey,
    loan_position: Pubkey,
    raydium: RaydiumAccounts,
    funding: FundingMode,
    collateral_amount: int,
    sol_to_borrow: int,
) -> Instruction:
    accounts = [
        signer(borrower),
        readonly(mint),
        readonly(bonding_curve),
        writable(treasury),
        writable(collateral_vault),
        writable(borrower_token_account),
        writable(loan_position),
        readonly(raydium.pool_state),
        readonly(raydium.token0_vault),
        readonly(raydium.token1_vault),
        *vault_metas(funding),
        readonly(TOKEN_2022_PROGRAM_ID),
        readonly(SYSTEM_PROGRAM_ID),
    ]
    return _market_ix("borrow", accounts, collateral_amount=collateral_amount, sol_to_borrow=sol_to_borrow)

def repay_ix(
    borrower: Pubkey,
    mint: Pubkey,
    treasury: Pubkey,
    collateral_vault: Pubkey,
    borrower_token_account: Pubkey,
    loan_position: Pubkey,
    funding: FundingMode,
    sol_amount: int,
) -> Instruction:
    accounts = [
        signer(borrower),
        readonly(mint),
        writable(treasury),
        writable(collateral_vault),
        writable(borrower_token_account),
        writable(loan_position),
        *vault_metas(funding),
        readonly(TOKEN_2022_PROGRAM_ID),
        readonly(SYSTEM_PROGRAM_ID),
    ]
    return _market_ix("repay", accounts, amount=sol_amount)

def liquidate_ix(
    liquidator: Pubkey,
    borrower: Pubkey,
    mint: Pubkey,
    bonding_curve: Pubkey,
    treasury: Pubkey,
    collateral_vault: Pubkey,
    liquidator_token_account: Pubkey,
    loan_position: Pubkey,
    raydium: RaydiumAccounts,
    funding: FundingMode,
) -> Instruction:
    accounts = [
        signer(liquidator),
        writable(borrower),
        readonly(mint),
        readonly(bonding_curve),
        writable(treasury),
        writable(collateral_vault),
        writable(liquidator_token_account),
        writable(loan_position),
        readonly(raydium.pool_state),
        readonly(raydium.token0_vault),
        readonly(raydium.token1_vault),
        *vault_metas(funding),
        readonly(TOKEN_2022_PROGRAM_ID),
        readonly(ASSOCIATED_TOKEN_PROGRAM_ID),
        readonly(SYSTEM_PROGRAM_ID),
    ]
    return _market_ix("liquidate", accounts)

def claim_protocol_rewards_ix(
    user: Pubkey, user_stats: Pubkey, protocol_treasury: Pubkey, funding: FundingMode
) -> Instruction:
    accounts = [
        signer(user),
        writable(user_stats),
        writable(protocol_treasury),
        *vault_metas(funding, with_token_account=False),
        readonly(SYSTEM_PROGRAM_ID),
    ]
    return _market_ix("claim_protocol_rewards", accounts)

# --- Migration and treasury cranks ---

def fund_migration_wsol_ix(payer: Pubkey, mint: Pubkey, bonding_curve: Pubkey, bonding_curve_wsol: Pubkey) -> Instruction:
    accounts = [signer(payer), readonly(mint), writable(bonding_curve), writable(bonding_curve_wsol)]
    return _market_ix("fund_migration_wsol", accounts)

def migrate_to_dex_ix(
    payer: Pubkey,
    global_config: Pubkey,
    mint: Pubkey,
    bonding_curve: Pubkey,
    treasury: Pubkey,
    token_vault: Pubkey,
    treasury_token_account: Pubkey,
    bonding_curve_wsol: Pubkey,
    payer_wsol: Pubkey,
    payer_token: Pubkey,
    raydium: RaydiumAccounts,
    payer_lp_token: Pubkey,
) -> Instruction:
    accounts = [
        signer(payer),
        readonly(global_config),
        writable(mint),
        writable(bonding_curve),
        writable(treasury),
        writable(token_vault),
        writable(treasury_token_account),
        writable(bonding_curve_wsol),
        writable(payer_wsol),
        writable(payer_token),
        readonly(RAYDIUM_CPMM_PROGRAM),
        readonly(RAYDIUM_AMM_CONFIG),
        readonly(raydium.authority),
        writable(raydium.pool_state),
        readonly(WSOL_MINT),
        writable(raydium.token0_vault),
        writable(raydium.token1_vault),
        writable(raydium.lp_mint),
        writable(payer_lp_token),
        writable(raydium.observation_state),
        writable(RAYDIUM_CREATE_POOL_FEE),
        readonly(TOKEN_PROGRAM_ID),
        readonly(TOKEN_2022_PROGRAM_ID),
        readonly(ASSOCIATED_TOKEN_PROGRAM_ID),
        readonly(SYSTEM_PROGRAM_ID),
        readonly(RENT),
    ]
    return _market_ix("migrate_to_dex", accounts)

def execute_auto_buyback_ix(
    payer: Pubkey,
    mint: Pubkey,
    bonding_curve: Pubkey,
    treasury: Pubkey,
    treasury_wsol: Pubkey,
    treasury_token_account: Pubkey,
    raydium: RaydiumAccounts,
    minimum_amount_out: int,
) -> Instruction:
    # WSOL in, token out.
    accounts = [
        signer(payer),
        writable(mint),
        readonly(bonding_curve),
        writable(treasury),
        writable(treasury_wsol),
        writable(treasury_token_account),
        readonly(RAYDIUM_CPMM_PROGRAM),
        readonly(raydium.authority),
        readonly(RAYDIUM_AMM_CONFIG),
        writable(raydium.pool_state),
        writable(raydium.wsol_vault),
        writable(raydium.token_vault),
        readonly(WSOL_MINT),
        writable(raydium.observation_state),
        readonly(TOKEN_PROGRAM_ID),
        readonly(TOKEN_2022_PROGRAM_ID),
        readonly(SYSTEM_PROGRAM_ID),
    ]
    return _market_ix("execute_auto_buyback", accounts, minimum_amount_out=minimum_amount_out)

def harvest_fees_ix(
    payer: Pubkey,
    mint: Pubkey,
    bonding_curve: Pubkey,
    treasury: Pubkey,
    treasury_token_account: Pubkey,
    sources: Sequence[Pubkey],
) -> Instruction:
    accounts = [
        signer(payer),
        writable(mint),
        readonly(bonding_curve),
        writable(treasury),
        writable(treasury_token_account),
        readonly(TOKEN_2022_PROGRAM_ID),
        readonly(ASSOCIATED_TOKEN_PROGRAM_ID),
        # Remaining accounts: holder token accounts with withheld fees.
        *[writable(source) for source in sources],
    ]
    return _market_ix("harvest_fees", accounts)

def swap_fees_to_sol_ix(
    payer: Pubkey,
    mint: Pubkey,
    bonding_curve: Pubkey,
    treasury: Pubkey,
    treasury_token_account: Pubkey,
    treasury_wsol: Pubkey,
    raydium: RaydiumAccounts,
    minimum_amount_out: int,
) -> Instruction:
    # Token in, WSOL out.
    accounts = [
        signer(payer),
        readonly(mint),
        readonly(bonding_curve),
        writable(treasury),
        writable(treasury_token_account),
        writable(treasury_wsol),
        readonly(RAYDIUM_CPMM_PROGRAM),
        readonly(raydium.authority),
        readonly(RAYDIUM_AMM_CONFIG),
        writable(raydium.pool_state),
        writable(raydium.token_vault),
        writable(raydium.wsol_vault),
        readonly(WSOL_MINT),
        writable(raydium.observation_state),
        readonly(TOKEN_PROGRAM_ID),
        readonly(TOKEN_2022_PROGRAM_ID),
        readonly(SYSTEM_PROGRAM_ID),
    ]
    return _market_ix("swap_fees_to_sol", accounts, minimum_amount_out=minimum_amount_out)
