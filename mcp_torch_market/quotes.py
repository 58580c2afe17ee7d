"""Buy/sell quotes against the bonding curve, with slippage-bounded minimums."""

from solana.rpc.async_api import AsyncClient

from .addresses import to_pubkey
from .constants import BPS_DENOMINATOR, DEFAULT_SLIPPAGE_BPS, LAMPORTS_PER_SOL, TOKEN_MULTIPLIER
from .curve import (
    calculate_price,
    calculate_sol_out,
    calculate_tokens_out,
    price_impact_percent,
    will_complete_bonding,
)
from .guards import ensure_tradeable, validate_amount, validate_slippage
from .models import BondingCurve, BuyQuote, SellQuote
from .reader import fetch_token_state


def apply_slippage(amount: int, slippage_bps: int) -> int:
    """Minimum acceptable output: floor(amount * (10000 - bps) / 10000)."""
    validate_slippage(slippage_bps)
    return amount * (BPS_DENOMINATOR - slippage_bps) // BPS_DENOMINATOR

def _price_in_sol(price: float) -> float:
    return price * TOKEN_MULTIPLIER / LAMPORTS_PER_SOL

def quote_buy(curve: BondingCurve, amount_sol: int, slippage_bps: int = DEFAULT_SLIPPAGE_BPS) -> BuyQuote:
    validate_slippage(slippage_bps)
    validate_amount(amount_sol, "amount_sol")
    ensure_tradeable(curve)

    result = calculate_tokens_out(
        amount_sol,
        curve.virtual_sol_reserves,
        curve.virtual_token_reserves,
        curve.real_sol_reserves,
        bonding_target=curve.bonding_target,
    )
    price_before = calculate_price(curve.virtual_sol_reserves, curve.virtual_token_reserves)
    price_after = calculate_price(
        curve.virtual_sol_reserves + result.sol_to_curve,
        curve.virtual_token_reserves - result.tokens_out,
    )
    return BuyQuote(
        input_sol=amount_sol,
        output_tokens=result.tokens_out,
        tokens_to_user=result.tokens_to_user,
        tokens_to_community=result.tokens_to_community,
        protocol_fee_sol=result.protocol_fee,
        sol_to_curve=result.sol_to_curve,
        price_before=price_before,
        price_after=price_after,
        price_per_token_sol=_price_in_sol(price_before),
        price_impact_percent=price_impact_percent(price_before, price_after),
        min_output_tokens=apply_slippage(result.tokens_to_user, slippage_bps),
        completes_bonding=will_complete_bonding(curve, result.sol_to_curve),
    )

def quote_sell(curve: BondingCurve, amount_tokens: int, slippage_bps: int = DEFAULT_SLIPPAGE_BPS) -> SellQuote:
    validate_slippage(slippage_bps)
    validate_amount(amount_tokens, "amount_tokens")
    ensure_tradeable(curve)

    result = calculate_sol_out(amount_tokens, curve.virtual_sol_reserves, curve.virtual_token_reserves)
    price_before = calculate_price(curve.virtual_sol_reserves, curve.virtual_token_reserves)
    price_after = calculate_price(
        curve.virtual_sol_reserves - result.sol_out,
        curve.virtual_token_reserves + amount_tokens,
    )
    return SellQuote(
        input_tokens=amount_tokens,
        output_sol=result.sol_to_user,
        price_before=price_before,
        price_after=price_after,
        price_per_token_sol=_price_in_sol(price_before),
        # Reported as a positive percentage; sells only move the price down.
        price_impact_percent=-price_impact_percent(price_before, price_after),
        min_output_sol=apply_slippage(result.sol_to_user, slippage_bps),
    )

async def get_buy_quote(
    client: AsyncClient, mint: str, amount_sol: int, slippage_bps: int = DEFAULT_SLIPPAGE_BPS
) -> BuyQuote:
    validate_slippage(slippage_bps)
    validate_amount(amount_sol, "amount_sol")
    state = await fetch_token_state(client, to_pubkey(mint, "mint"))
    return quote_buy(state.bonding_curve, amount_sol, slippage_bps)

async def get_sell_quote(
    client: AsyncClient, mint: str, amount_tokens: int, slippage_bps: int = DEFAULT_SLIPPAGE_BPS
) -> SellQuote:
    validate_slippage(slippage_bps)
    validate_amount(amount_tokens, "amount_tokens")
    state = await fetch_token_state(client, to_pubkey(mint, "mint"))
    return quote_sell(state.bonding_curve, amount_tokens, slippage_bps)
