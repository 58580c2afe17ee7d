"""
Deterministic address derivation for every account the market touches.

All functions are pure: same inputs, same address, no network access.
PDA helpers return ``(address, bump)`` like ``Pubkey.find_program_address``;
token-account helpers return just the address.
"""

from typing import NamedTuple, Tuple

from solders.pubkey import Pubkey
from spl.token.instructions import get_associated_token_address

from .constants import (
    BONDING_CURVE_SEED,
    COLLATERAL_VAULT_SEED,
    GLOBAL_CONFIG_SEED,
    LOAN_SEED,
    PROGRAM_ID,
    PROTOCOL_TREASURY_SEED,
    RAYDIUM_AMM_CONFIG,
    RAYDIUM_AUTHORITY_SEED,
    RAYDIUM_CPMM_PROGRAM,
    RAYDIUM_LP_MINT_SEED,
    RAYDIUM_OBSERVATION_SEED,
    RAYDIUM_POOL_SEED,
    RAYDIUM_VAULT_SEED,
    STAR_RECORD_SEED,
    TOKEN_2022_PROGRAM_ID,
    TOKEN_PROGRAM_ID,
    TORCH_VAULT_SEED,
    TREASURY_LOCK_SEED,
    TREASURY_SEED,
    USER_POSITION_SEED,
    USER_STATS_SEED,
    VAULT_WALLET_LINK_SEED,
    WSOL_MINT,
)
from .errors import InvalidInputError

Pda = Tuple[Pubkey, int]


def to_pubkey(value: str, field: str = "address") -> Pubkey:
    """Parse a caller-supplied base58 address, rejecting malformed input."""
    try:
        return Pubkey.from_string(value)
    except ValueError as e:
        raise InvalidInputError(f"Invalid {field}: {value!r}") from e

# --- Market program PDAs ---

def get_global_config_pda() -> Pda:
    return Pubkey.find_program_address([GLOBAL_CONFIG_SEED], PROGRAM_ID)

def get_bonding_curve_pda(mint: Pubkey) -> Pda:
    return Pubkey.find_program_address([BONDING_CURVE_SEED, bytes(mint)], PROGRAM_ID)

def get_token_treasury_pda(mint: Pubkey) -> Pda:
    return Pubkey.find_program_address([TREASURY_SEED, bytes(mint)], PROGRAM_ID)

def get_user_position_pda(bonding_curve: Pubkey, user: Pubkey) -> Pda:
    return Pubkey.find_program_address(
        [USER_POSITION_SEED, bytes(bonding_curve), bytes(user)], PROGRAM_ID
    )

def get_user_stats_pda(user: Pubkey) -> Pda:
    return Pubkey.find_program_address([USER_STATS_SEED, bytes(user)], PROGRAM_ID)

def get_protocol_treasury_pda() -> Pda:
    return Pubkey.find_program_address([PROTOCOL_TREASURY_SEED], PROGRAM_ID)

def get_star_record_pda(user: Pubkey, mint: Pubkey) -> Pda:
    """Stars are per (user, token), not per (user, creator)."""
    return Pubkey.find_program_address([STAR_RECORD_SEED, bytes(user), bytes(mint)], PROGRAM_ID)

def get_loan_position_pda(mint: Pubkey, borrower: Pubkey) -> Pda:
    return Pubkey.find_program_address([LOAN_SEED, bytes(mint), bytes(borrower)], PROGRAM_ID)

def get_collateral_vault_pda(mint: Pubkey) -> Pda:
    return Pubkey.find_program_address([COLLATERAL_VAULT_SEED, bytes(mint)], PROGRAM_ID)

def get_torch_vault_pda(creator: Pubkey) -> Pda:
    return Pubkey.find_program_address([TORCH_VAULT_SEED, bytes(creator)], PROGRAM_ID)

def get_vault_wallet_link_pda(wallet: Pubkey) -> Pda:
    """One link record per wallet, so a wallet can belong to at most one vault."""
    return Pubkey.find_program_address([VAULT_WALLET_LINK_SEED, bytes(wallet)], PROGRAM_ID)

def get_treasury_lock_pda(mint: Pubkey) -> Pda:
    return Pubkey.find_program_address([TREASURY_LOCK_SEED, bytes(mint)], PROGRAM_ID)

# --- Token accounts ---

def get_token_account(owner: Pubkey, mint: Pubkey) -> Pubkey:
    """Token-2022 ATA. Market tokens are always Token-2022 mints; PDA owners are fine."""
    return get_associated_token_address(owner, mint, token_program_id=TOKEN_2022_PROGRAM_ID)

def get_wsol_account(owner: Pubkey) -> Pubkey:
    """Wrapped SOL lives under the classic SPL Token program."""
    return get_associated_token_address(owner, WSOL_MINT, token_program_id=TOKEN_PROGRAM_ID)

def get_lp_token_account(owner: Pubkey, lp_mint: Pubkey) -> Pubkey:
    return get_associated_token_address(owner, lp_mint, token_program_id=TOKEN_PROGRAM_ID)

def get_treasury_token_account(mint: Pubkey, treasury: Pubkey) -> Pubkey:
    return get_token_account(treasury, mint)

def get_treasury_lock_token_account(mint: Pubkey, treasury_lock: Pubkey) -> Pubkey:
    return get_token_account(treasury_lock, mint)

# --- Raydium CPMM ---

class RaydiumAccounts(NamedTuple):
    token0: Pubkey
    token1: Pubkey
    is_wsol_token0: bool
    authority: Pubkey
    pool_state: Pubkey
    lp_mint: Pubkey
    token0_vault: Pubkey
    token1_vault: Pubkey
    observation_state: Pubkey

    @property
    def wsol_vault(self) -> Pubkey:
        return self.token0_vault if self.is_wsol_token0 else self.token1_vault

    @property
    def token_vault(self) -> Pubkey:
        return self.token1_vault if self.is_wsol_token0 else self.token0_vault


def order_mints(mint_a: Pubkey, mint_b: Pubkey) -> Tuple[Pubkey, Pubkey, bool]:
    """Raydium requires token0 < token1 by raw key bytes.

    Returns (token0, token1, a_is_token0). Equal keys keep the given order.
    """
    if bytes(mint_a) <= bytes(mint_b):
        return mint_a, mint_b, True
    return mint_b, mint_a, False

def get_raydium_authority_pda() -> Pda:
    return Pubkey.find_program_address([RAYDIUM_AUTHORITY_SEED], RAYDIUM_CPMM_PROGRAM)

def get_raydium_pool_state_pda(amm_config: Pubkey, token0: Pubkey, token1: Pubkey) -> Pda:
    return Pubkey.find_program_address(
        [RAYDIUM_POOL_SEED, bytes(amm_config), bytes(token0), bytes(token1)],
        RAYDIUM_CPMM_PROGRAM,
    )

def get_raydium_lp_mint_pda(pool_state: Pubkey) -> Pda:
    return Pubkey.find_program_address([RAYDIUM_LP_MINT_SEED, bytes(pool_state)], RAYDIUM_CPMM_PROGRAM)

def get_raydium_vault_pda(pool_state: Pubkey, token_mint: Pubkey) -> Pda:
    return Pubkey.find_program_address(
        [RAYDIUM_VAULT_SEED, bytes(pool_state), bytes(token_mint)], RAYDIUM_CPMM_PROGRAM
    )

def get_raydium_observation_pda(pool_state: Pubkey) -> Pda:
    return Pubkey.find_program_address(
        [RAYDIUM_OBSERVATION_SEED, bytes(pool_state)], RAYDIUM_CPMM_PROGRAM
    )

def get_raydium_accounts(mint: Pubkey) -> RaydiumAccounts:
    """All Raydium CPMM accounts for the WSOL/<mint> pool created at migration."""
    token0, token1, is_wsol_token0 = order_mints(WSOL_MINT, mint)
    authority, _ = get_raydium_authority_pda()
    pool_state, _ = get_raydium_pool_state_pda(RAYDIUM_AMM_CONFIG, token0, token1)
    lp_mint, _ = get_raydium_lp_mint_pda(pool_state)
    token0_vault, _ = get_raydium_vault_pda(pool_state, token0)
    token1_vault, _ = get_raydium_vault_pda(pool_state, token1)
    observation_state, _ = get_raydium_observation_pda(pool_state)
    return RaydiumAccounts(
        token0=token0,
        token1=token1,
        is_wsol_token0=is_wsol_token0,
        authority=authority,
        pool_state=pool_state,
        lp_mint=lp_mint,
        token0_vault=token0_vault,
        token1_vault=token1_vault,
        observation_state=observation_state,
    )
