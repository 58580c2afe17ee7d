from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from solders.keypair import Keypair
from solders.transaction import Transaction

from .constants import DEFAULT_SLIPPAGE_BPS

# --- Decoded on-chain state ---
# Pubkeys are kept as base58 strings, amounts as raw integers.

class BondingCurve(BaseModel):
    mint: str
    creator: str
    virtual_sol_reserves: int
    virtual_token_reserves: int
    real_sol_reserves: int
    real_token_reserves: int
    vote_vault_balance: int
    permanently_burned_tokens: int
    bonding_complete: bool
    bonding_complete_slot: int
    votes_return: int
    votes_burn: int
    total_voters: int
    vote_finalized: bool
    vote_result_return: bool
    migrated: bool
    is_token_2022: bool
    last_activity_slot: int
    reclaimed: bool
    name: str
    symbol: str
    uri: str
    bump: int
    treasury_bump: int
    bonding_target: int # 0 means the default target
    migration_announced_slot: int
    pending_token_destination: str
    pending_sol_destination: str

class Treasury(BaseModel):
    bonding_curve: str
    mint: str
    sol_balance: int
    total_bought_back: int
    total_burned_from_buyback: int
    tokens_held: int
    last_buyback_slot: int
    buyback_count: int
    harvested_fees: int
    baseline_sol_reserves: int
    baseline_token_reserves: int
    ratio_threshold_bps: int
    reserve_ratio_bps: int
    buyback_percent_bps: int
    min_buyback_interval_slots: int
    baseline_initialized: bool
    total_stars: int
    star_sol_balance: int
    creator_paid_out: bool
    bump: int

class GlobalConfig(BaseModel):
    authority: str
    treasury: str
    dev_wallet: str
    deprecated_platform_treasury: str
    protocol_fee_bps: int
    paused: bool
    total_tokens_launched: int
    total_volume_sol: int
    bump: int

class TorchVault(BaseModel):
    creator: str
    authority: str
    sol_balance: int
    total_deposited: int
    total_withdrawn: int
    total_spent: int
    total_received: int
    linked_wallets: int
    created_at: int
    bump: int

class VaultWalletLink(BaseModel):
    vault: str
    wallet: str
    linked_at: int
    bump: int

class LoanPosition(BaseModel):
    user: str
    mint: str
    collateral_amount: int
    borrowed_amount: int
    accrued_interest: int
    last_update_slot: int
    bump: int

class TokenState(BaseModel):
    """Curve plus (optional) treasury, fetched together for one mint."""
    mint: str
    bonding_curve: BondingCurve
    treasury: Optional[Treasury] = None

class PoolReserves(BaseModel):
    sol: int
    tokens: int

# --- Quotes ---

class BuyCurveResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    tokens_out: int
    tokens_to_user: int
    tokens_to_community: int
    protocol_fee: int
    treasury_fee: int
    sol_to_curve: int
    sol_to_treasury: int
    treasury_rate_bps: int

class SellCurveResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    sol_out: int
    sol_to_user: int

class BuyQuote(BaseModel):
    input_sol: int
    output_tokens: int
    tokens_to_user: int
    tokens_to_community: int
    protocol_fee_sol: int
    sol_to_curve: int
    price_before: float # lamports per raw token
    price_after: float
    price_per_token_sol: float
    price_impact_percent: float
    min_output_tokens: int
    completes_bonding: bool

class SellQuote(BaseModel):
    input_tokens: int
    output_sol: int
    protocol_fee_sol: int = 0
    price_before: float
    price_after: float
    price_per_token_sol: float
    price_impact_percent: float
    min_output_sol: int

# --- Read views ---

TokenStatus = Literal["bonding", "complete", "migrated"]
LoanHealth = Literal["healthy", "at_risk", "liquidatable", "none"]

class TokenDetail(BaseModel):
    mint: str
    name: str
    symbol: str
    status: TokenStatus
    creator: str
    price_sol: float
    market_cap_sol: float
    progress_percent: float
    sol_raised: int
    sol_target: int
    circulating_supply: int
    tokens_in_curve: int
    tokens_in_vote_vault: int
    tokens_burned: int
    treasury_sol_balance: int = 0
    treasury_token_balance: int = 0
    total_bought_back: int = 0
    buyback_count: int = 0
    stars: int = 0
    votes_return: int
    votes_burn: int
    description: Optional[str] = None
    image: Optional[str] = None
    twitter: Optional[str] = None
    telegram: Optional[str] = None
    website: Optional[str] = None
    warnings: List[str] = Field(default_factory=list)

class VaultInfo(BaseModel):
    address: str
    creator: str
    authority: str
    sol_balance: int
    total_deposited: int
    total_withdrawn: int
    total_spent: int
    total_received: int
    linked_wallets: int
    created_at: int

class VaultWalletLinkInfo(BaseModel):
    address: str
    vault: str
    wallet: str
    linked_at: int

class LendingInfo(BaseModel):
    interest_rate_bps: int
    max_ltv_bps: int
    liquidation_threshold_bps: int
    liquidation_bonus_bps: int
    total_sol_lent: Optional[int]
    active_loans: Optional[int]
    treasury_sol_available: int
    warnings: List[str] = Field(default_factory=list)

class LoanPositionInfo(BaseModel):
    """Advisory display data. Never use it to decide liquidation eligibility."""
    collateral_amount: int
    borrowed_amount: int
    accrued_interest: int
    total_owed: int
    collateral_value_sol: Optional[int]
    current_ltv_bps: Optional[int]
    health: LoanHealth
    warnings: List[str] = Field(default_factory=list)

# --- Operation parameters ---

Vote = Literal["burn", "return"]

class DirectBuyParams(BaseModel):
    mint: str
    buyer: str
    amount_sol: int = Field(..., description="SOL to spend, in lamports.")
    slippage_bps: int = DEFAULT_SLIPPAGE_BPS
    vote: Optional[Vote] = None
    message: Optional[str] = None

class BuyParams(DirectBuyParams):
    vault: str = Field(..., description="Vault creator pubkey. The vault pays for the buy.")

class SellParams(BaseModel):
    mint: str
    seller: str
    amount_tokens: int = Field(..., description="Tokens to sell, in raw units.")
    slippage_bps: int = DEFAULT_SLIPPAGE_BPS
    message: Optional[str] = None
    vault: Optional[str] = None

class CreateTokenParams(BaseModel):
    creator: str
    name: str
    symbol: str
    metadata_uri: str
    sol_target: int = 0 # 0 = default bonding target

class StarParams(BaseModel):
    mint: str
    user: str
    vault: Optional[str] = None

class CreateVaultParams(BaseModel):
    creator: str

class DepositVaultParams(BaseModel):
    depositor: str
    vault_creator: str
    amount_sol: int

class WithdrawVaultParams(BaseModel):
    authority: str
    vault_creator: str
    amount_sol: int

class WithdrawTokensParams(BaseModel):
    authority: str
    vault_creator: str
    mint: str
    destination: str
    amount: int

class LinkWalletParams(BaseModel):
    authority: str
    vault_creator: str
    wallet_to_link: str

class UnlinkWalletParams(BaseModel):
    authority: str
    vault_creator: str
    wallet_to_unlink: str

class TransferAuthorityParams(BaseModel):
    authority: str
    vault_creator: str
    new_authority: str

class VaultSwapParams(BaseModel):
    mint: str
    signer: str
    vault_creator: str
    amount_in: int
    minimum_amount_out: int
    is_buy: bool

class BorrowParams(BaseModel):
    mint: str
    borrower: str
    collateral_amount: int
    sol_to_borrow: int
    vault: Optional[str] = None

class RepayParams(BaseModel):
    mint: str
    borrower: str
    sol_amount: int
    vault: Optional[str] = None

class LiquidateParams(BaseModel):
    mint: str
    liquidator: str
    borrower: str
    vault: Optional[str] = None

class ClaimProtocolRewardsParams(BaseModel):
    user: str
    vault: Optional[str] = None

class MigrateParams(BaseModel):
    mint: str
    payer: str

class AutoBuybackParams(BaseModel):
    mint: str
    payer: str
    minimum_amount_out: int = 1

class HarvestFeesParams(BaseModel):
    mint: str
    payer: str
    sources: Optional[List[str]] = None

class SwapFeesToSolParams(BaseModel):
    mint: str
    payer: str
    minimum_amount_out: int = 1
    harvest: bool = True
    sources: Optional[List[str]] = None

# --- Operation results ---

class TransactionResult(BaseModel):
    """An unsigned (or partially signed) transaction plus a one-line summary.

    Self-describing: fee payer and blockhash are already in the message, so the
    caller only has to sign and submit before the blockhash expires.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    transaction: Transaction
    message: str

class BuyTransactionResult(TransactionResult):
    # Present when this buy completes bonding; submit it after `transaction`.
    migration_transaction: Optional[Transaction] = None

class CreateTokenResult(TransactionResult):
    mint: str
    mint_keypair: Keypair
