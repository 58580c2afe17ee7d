"""
Pre-flight guards.

Each guard runs its checks in a fixed order and raises on the first failure,
so a doomed transaction is rejected before it costs a round-trip. Checks
that need chain state read it lazily: a read needed only by a later check is
never made once an earlier check has failed.

These guards are a fail-fast convenience. The on-chain program enforces
every rule again and is the only authority.
"""

from typing import NoReturn, Optional

from mcp.server.fastmcp.utilities.logging import get_logger
from solana.rpc.async_api import AsyncClient
from solders.pubkey import Pubkey

from .constants import (
    BPS_DENOMINATOR,
    LAMPORTS_PER_SOL,
    MAX_MESSAGE_LENGTH,
    MAX_NAME_LENGTH,
    MAX_SLIPPAGE_BPS,
    MAX_SYMBOL_LENGTH,
    MIN_BUYBACK_AMOUNT,
    MIN_SLIPPAGE_BPS,
    RATIO_PRECISION,
    SUPPLY_FLOOR,
)
from .errors import InvalidInputError, PreconditionFailedError
from .models import BondingCurve, TokenState
from .reader import fetch_current_slot, fetch_mint_supply, fetch_pool_reserves, star_record_exists

logger = get_logger(__name__)


def _reject(message: str) -> NoReturn:
    logger.info(f"Pre-flight check rejected: {message}")
    raise PreconditionFailedError(message)

# --- Parameter checks (no network) ---

def validate_slippage(slippage_bps: int) -> None:
    if not MIN_SLIPPAGE_BPS <= slippage_bps <= MAX_SLIPPAGE_BPS:
        raise InvalidInputError(
            f"slippage_bps must be between {MIN_SLIPPAGE_BPS} and {MAX_SLIPPAGE_BPS} (0.1%-10%), got {slippage_bps}"
        )

def validate_amount(amount: int, field: str = "amount") -> None:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise InvalidInputError(f"{field} must be a positive integer, got {amount!r}")

def validate_message(message: Optional[str]) -> Optional[str]:
    """Returns the trimmed memo text, or None when there is nothing to attach."""
    if message is None:
        return None
    trimmed = message.strip()
    if len(trimmed) > MAX_MESSAGE_LENGTH:
        raise InvalidInputError(f"Message must be {MAX_MESSAGE_LENGTH} characters or less")
    return trimmed or None

def validate_token_metadata(name: str, symbol: str) -> None:
    if len(name) > MAX_NAME_LENGTH:
        raise InvalidInputError(f"Name must be {MAX_NAME_LENGTH} characters or less")
    if len(symbol) > MAX_SYMBOL_LENGTH:
        raise InvalidInputError(f"Symbol must be {MAX_SYMBOL_LENGTH} characters or less")

# --- State checks ---

def ensure_tradeable(curve: BondingCurve) -> None:
    if curve.bonding_complete:
        _reject("Bonding curve complete, trade on DEX")

def ensure_migrated_for_lending(curve: BondingCurve) -> None:
    # Loan pricing reads the live Raydium pool, which only exists after migration.
    if not curve.migrated:
        _reject("Token not yet migrated, lending not available")

async def check_star(client: AsyncClient, curve: BondingCurve, user: Pubkey, mint: Pubkey) -> None:
    if str(user) == curve.creator:
        _reject("Cannot star your own token")
    if await star_record_exists(client, user, mint):
        _reject("Already starred this token")

async def check_auto_buyback(client: AsyncClient, state: TokenState) -> int:
    """Run the buyback checks in order and return the buyback amount in lamports.

    1. token migrated
    2. baseline initialized
    3. cooldown elapsed (one slot read)
    4. supply above the floor (one supply read)
    5. pool price below the baseline threshold (two vault balance reads)
    6. affordable amount above dust
    """
    curve, treasury = state.bonding_curve, state.treasury
    mint = Pubkey.from_string(state.mint)

    if not curve.migrated:
        _reject("Token not yet migrated")
    if treasury is None or not treasury.baseline_initialized:
        _reject("Buyback baseline not initialized")

    current_slot = await fetch_current_slot(client)
    ready_slot = treasury.last_buyback_slot + treasury.min_buyback_interval_slots
    if current_slot < ready_slot:
        _reject(f"Buyback cooldown: {ready_slot - current_slot} slots remaining")

    supply = await fetch_mint_supply(client, mint)
    if supply <= SUPPLY_FLOOR:
        _reject("Supply at floor, buybacks paused")

    pool = await fetch_pool_reserves(client, mint)
    if pool.tokens > 0 and treasury.baseline_token_reserves > 0:
        current_ratio = pool.sol * RATIO_PRECISION // pool.tokens
        baseline_ratio = treasury.baseline_sol_reserves * RATIO_PRECISION // treasury.baseline_token_reserves
        threshold_ratio = baseline_ratio * treasury.ratio_threshold_bps // BPS_DENOMINATOR
        if current_ratio >= threshold_ratio:
            current_pct = current_ratio * BPS_DENOMINATOR // baseline_ratio / 100 if baseline_ratio else 0.0
            _reject(
                f"Price is healthy, no buyback needed "
                f"(current: {current_pct:.1f}% of baseline, threshold: {treasury.ratio_threshold_bps / 100:.1f}%)"
            )

    available = treasury.sol_balance * (BPS_DENOMINATOR - treasury.reserve_ratio_bps) // BPS_DENOMINATOR
    amount = available * treasury.buyback_percent_bps // BPS_DENOMINATOR
    if amount < MIN_BUYBACK_AMOUNT:
        _reject(
            f"Treasury SOL too low for buyback "
            f"(available: {available / LAMPORTS_PER_SOL:.4f} SOL, need >= 0.01 SOL after reserves)"
        )
    logger.debug(f"Auto-buyback for {state.mint} passes all checks, amount {amount} lamports")
    return amount
