"""
MCP Torch Market Package

Transaction planning for the Torch Market Solana program: bonding-curve token
launches and trading, creator vaults, treasury-backed lending, and the
permissionless migration, buyback and fee cranks.

Every builder takes an explicit chain client, reads the state it needs, runs
fail-fast pre-flight checks and returns an unsigned transaction with a short
summary. Nothing here holds user keys or submits transactions; signing and
submission belong to the caller.

Main components:
- transactions.py: one async builder per market intent
- quotes.py / curve.py: bonding-curve quotes
- reader.py: account decoding and read views
- server.py: MCP tools wrapping the builders and reads
"""

from .errors import (
    CompositionFailedError,
    InvalidInputError,
    NotFoundError,
    PreconditionFailedError,
    TorchMarketError,
)
from .keys import EphemeralAgent, create_ephemeral_agent
from .quotes import get_buy_quote, get_sell_quote
from .reader import (
    get_lending_info,
    get_loan_position,
    get_token,
    get_vault,
    get_vault_for_wallet,
    get_vault_wallet_link,
)
from .transactions import (
    build_auto_buyback_transaction,
    build_borrow_transaction,
    build_buy_transaction,
    build_claim_protocol_rewards_transaction,
    build_create_token_transaction,
    build_create_vault_transaction,
    build_deposit_vault_transaction,
    build_direct_buy_transaction,
    build_harvest_fees_transaction,
    build_link_wallet_transaction,
    build_liquidate_transaction,
    build_migrate_transaction,
    build_repay_transaction,
    build_sell_transaction,
    build_star_transaction,
    build_swap_fees_to_sol_transaction,
    build_transfer_authority_transaction,
    build_unlink_wallet_transaction,
    build_vault_swap_transaction,
    build_withdraw_tokens_transaction,
    build_withdraw_vault_transaction,
)
