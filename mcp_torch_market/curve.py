"""
Bonding curve arithmetic, mirroring the on-chain program.

Everything here is integer math on raw units (lamports, 6-decimal token
units) except the marginal price, which is a float for display only.
"""

from .constants import (
    BONDING_TARGET_LAMPORTS,
    BPS_DENOMINATOR,
    COMMUNITY_ALLOCATION_BPS,
    PROTOCOL_FEE_BPS,
    TREASURY_FEE_BPS,
    TREASURY_SOL_MAX_BPS,
    TREASURY_SOL_MIN_BPS,
)
from .models import BondingCurve, BuyCurveResult, SellCurveResult


def resolve_bonding_target(bonding_target: int) -> int:
    """A per-token target of 0 means the default 200 SOL."""
    return bonding_target or BONDING_TARGET_LAMPORTS


def calculate_tokens_out(
    sol_amount: int,
    virtual_sol: int,
    virtual_tokens: int,
    real_sol: int = 0,
    protocol_fee_bps: int = PROTOCOL_FEE_BPS,
    treasury_fee_bps: int = TREASURY_FEE_BPS,
    bonding_target: int = BONDING_TARGET_LAMPORTS,
) -> BuyCurveResult:
    """Tokens received for ``sol_amount`` lamports spent on the curve.

    Both flat fees come off the top. The remainder is split between the
    token treasury and the curve at a rate that decays linearly from 20% to
    5% as ``real_sol`` approaches the target. The curve share buys tokens
    at constant product; 10% of those go to the community allocation.
    """
    protocol_fee = sol_amount * protocol_fee_bps // BPS_DENOMINATOR
    treasury_fee = sol_amount * treasury_fee_bps // BPS_DENOMINATOR
    sol_after_fees = sol_amount - protocol_fee - treasury_fee

    target = resolve_bonding_target(bonding_target)
    decay = real_sol * (TREASURY_SOL_MAX_BPS - TREASURY_SOL_MIN_BPS) // target
    treasury_rate_bps = max(TREASURY_SOL_MAX_BPS - decay, TREASURY_SOL_MIN_BPS)

    sol_to_treasury_split = sol_after_fees * treasury_rate_bps // BPS_DENOMINATOR
    sol_to_curve = sol_after_fees - sol_to_treasury_split

    tokens_out = virtual_tokens * sol_to_curve // (virtual_sol + sol_to_curve)
    tokens_to_user = tokens_out * (BPS_DENOMINATOR - COMMUNITY_ALLOCATION_BPS) // BPS_DENOMINATOR

    return BuyCurveResult(
        tokens_out=tokens_out,
        tokens_to_user=tokens_to_user,
        tokens_to_community=tokens_out - tokens_to_user,
        protocol_fee=protocol_fee,
        treasury_fee=treasury_fee,
        sol_to_curve=sol_to_curve,
        sol_to_treasury=treasury_fee + sol_to_treasury_split,
        treasury_rate_bps=treasury_rate_bps,
    )


def calculate_sol_out(token_amount: int, virtual_sol: int, virtual_tokens: int) -> SellCurveResult:
    # No sell fee: the seller receives the full curve output.
    sol_out = virtual_sol * token_amount // (virtual_tokens + token_amount)
    return SellCurveResult(sol_out=sol_out, sol_to_user=sol_out)


def calculate_price(virtual_sol: int, virtual_tokens: int) -> float:
    """Marginal price in lamports per raw token unit."""
    return virtual_sol / virtual_tokens


def price_impact_percent(price_before: float, price_after: float) -> float:
    return (price_after - price_before) / price_before * 100


def calculate_bonding_progress(real_sol: int, bonding_target: int = 0) -> float:
    target = resolve_bonding_target(bonding_target)
    if real_sol >= target:
        return 100.0
    return real_sol / target * 100


def will_complete_bonding(curve: BondingCurve, sol_to_curve: int) -> bool:
    """True when a buy routing ``sol_to_curve`` lamports reaches the funding target."""
    return curve.real_sol_reserves + sol_to_curve >= resolve_bonding_target(curve.bonding_target)
