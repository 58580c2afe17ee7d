from solders.pubkey import Pubkey
from spl.token.constants import (
    ASSOCIATED_TOKEN_PROGRAM_ID,
    TOKEN_2022_PROGRAM_ID,
    TOKEN_PROGRAM_ID,
    WRAPPED_SOL_MINT,
)

# --- Programs ---

PROGRAM_ID = Pubkey.from_string("8hbUkonssSEEtkqzwM7ZcZrD9evacM92TcWSooVF4BeT")
RAYDIUM_CPMM_PROGRAM = Pubkey.from_string("CPMMoo8L3F4NbTegBCKVNunggL7H1ZpdTHKxQB5qKP1C")
RAYDIUM_AMM_CONFIG = Pubkey.from_string("D4FPEruKEHrG5TenZ2mpDGEfu1iUvTiqBxvpU8HLBvC2") # 0.25% fee tier
RAYDIUM_CREATE_POOL_FEE = Pubkey.from_string("DNXgeM9EiiaAbaWvwjHj9fQQLAX5ZsfHyvmYUNRAdNC8")
MEMO_PROGRAM_ID = Pubkey.from_string("MemoSq4gqABAXKb96qnH8TysNcWxMyWCqXgDLGmfcHr")
WSOL_MINT = WRAPPED_SOL_MINT
# SPL token program ids are re-exported from spl.token.constants above.

# --- PDA seeds (must match the on-chain program) ---

GLOBAL_CONFIG_SEED = b"global_config"
BONDING_CURVE_SEED = b"bonding_curve"
TREASURY_SEED = b"treasury"
USER_POSITION_SEED = b"user_position"
PROTOCOL_TREASURY_SEED = b"protocol_treasury_v11"
USER_STATS_SEED = b"user_stats"
STAR_RECORD_SEED = b"star_record"
LOAN_SEED = b"loan"
COLLATERAL_VAULT_SEED = b"collateral_vault"
TORCH_VAULT_SEED = b"torch_vault"
VAULT_WALLET_LINK_SEED = b"vault_wallet_link"
TREASURY_LOCK_SEED = b"treasury_lock"

RAYDIUM_AUTHORITY_SEED = b"vault_and_lp_mint_auth_seed"
RAYDIUM_POOL_SEED = b"pool"
RAYDIUM_LP_MINT_SEED = b"pool_lp_mint"
RAYDIUM_VAULT_SEED = b"pool_vault"
RAYDIUM_OBSERVATION_SEED = b"observation"

# --- Denominations ---

LAMPORTS_PER_SOL = 1_000_000_000
TOKEN_DECIMALS = 6
TOKEN_MULTIPLIER = 10**TOKEN_DECIMALS
BPS_DENOMINATOR = 10_000

# --- Bonding curve economics ---

TOTAL_SUPPLY = 1_000_000_000_000_000 # 1B tokens
INITIAL_VIRTUAL_SOL = 30_000_000_000
INITIAL_VIRTUAL_TOKENS = 107_300_000_000_000
BONDING_TARGET_LAMPORTS = 200_000_000_000 # 0 on-chain means this default
PROTOCOL_FEE_BPS = 100
TREASURY_FEE_BPS = 100
TREASURY_SOL_MAX_BPS = 2000 # treasury share of buy SOL at curve start
TREASURY_SOL_MIN_BPS = 500 # ... and at completion
COMMUNITY_ALLOCATION_BPS = 1000 # tokens routed to the community treasury on buys
STAR_COST_LAMPORTS = 50_000_000

# --- Slippage ---

MIN_SLIPPAGE_BPS = 10
MAX_SLIPPAGE_BPS = 1000
DEFAULT_SLIPPAGE_BPS = 100

# --- Input caps ---

MAX_NAME_LENGTH = 32
MAX_SYMBOL_LENGTH = 10
MAX_MESSAGE_LENGTH = 500

# --- Vanity mint grinding ---

VANITY_SUFFIX = "tm"
VANITY_MAX_ATTEMPTS = 500_000

# --- Auto-buyback crank ---

SUPPLY_FLOOR = 500_000_000_000_000 # 500M tokens
MIN_BUYBACK_AMOUNT = 10_000_000 # 0.01 SOL
RATIO_PRECISION = 1_000_000_000

# --- Lending ---

INTEREST_RATE_BPS = 200 # per epoch
MAX_LTV_BPS = 5000
LIQUIDATION_THRESHOLD_BPS = 6500
LIQUIDATION_BONUS_BPS = 1000

# --- Compute budget ---

HEAVY_COMPUTE_UNITS = 400_000
HARVEST_BASE_COMPUTE_UNITS = 200_000
HARVEST_COMPUTE_UNITS_PER_SOURCE = 20_000

# --- Off-chain metadata ---

IRYS_GATEWAY = "gateway.irys.xyz"
IRYS_UPLOADER = "uploader.irys.xyz"
DEFAULT_METADATA_TIMEOUT = 10.0 # seconds
