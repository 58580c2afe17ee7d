"""
Interface descriptor for the on-chain torch_market program.

Holds everything that must stay in lock-step with the deployed program:
Anchor discriminators, Borsh account layouts and instruction argument layouts.
A breaking program upgrade is a code change here, never a runtime switch.
"""

import hashlib
from typing import Any, Dict, Tuple, Type

from construct import (
    Bytes,
    Flag,
    If,
    Int8ul,
    Int16ul,
    Int32ul,
    Int64sl,
    Int64ul,
    PaddedString,
    PascalString,
    Struct,
    this,
)
from pydantic import BaseModel
from solders.pubkey import Pubkey

from .models import (
    BondingCurve,
    GlobalConfig,
    LoanPosition,
    TorchVault,
    Treasury,
    VaultWalletLink,
)

IDL_VERSION = "28"

def account_discriminator(name: str) -> bytes:
    return hashlib.sha256(f"account:{name}".encode()).digest()[:8]

def instruction_discriminator(method: str) -> bytes:
    return hashlib.sha256(f"global:{method}".encode()).digest()[:8]

PublicKey = Bytes(32)
BorshString = PascalString(Int32ul, "utf8")

# --- Account layouts (after the 8-byte discriminator) ---

BONDING_CURVE_LAYOUT = Struct(
    "mint" / PublicKey,
    "creator" / PublicKey,
    "virtual_sol_reserves" / Int64ul,
    "virtual_token_reserves" / Int64ul,
    "real_sol_reserves" / Int64ul,
    "real_token_reserves" / Int64ul,
    "vote_vault_balance" / Int64ul,
    "permanently_burned_tokens" / Int64ul,
    "bonding_complete" / Flag,
    "bonding_complete_slot" / Int64ul,
    "votes_return" / Int64ul,
    "votes_burn" / Int64ul,
    "total_voters" / Int64ul,
    "vote_finalized" / Flag,
    "vote_result_return" / Flag,
    "migrated" / Flag,
    "is_token_2022" / Flag,
    "last_activity_slot" / Int64ul,
    "reclaimed" / Flag,
    "name" / PaddedString(32, "utf8"),
    "symbol" / PaddedString(10, "utf8"),
    "uri" / PaddedString(200, "utf8"),
    "bump" / Int8ul,
    "treasury_bump" / Int8ul,
    "bonding_target" / Int64ul,
    "migration_announced_slot" / Int64ul,
    "pending_token_destination" / PublicKey,
    "pending_sol_destination" / PublicKey,
)

TREASURY_LAYOUT = Struct(
    "bonding_curve" / PublicKey,
    "mint" / PublicKey,
    "sol_balance" / Int64ul,
    "total_bought_back" / Int64ul,
    "total_burned_from_buyback" / Int64ul,
    "tokens_held" / Int64ul,
    "last_buyback_slot" / Int64ul,
    "buyback_count" / Int64ul,
    "harvested_fees" / Int64ul,
    "baseline_sol_reserves" / Int64ul,
    "baseline_token_reserves" / Int64ul,
    "ratio_threshold_bps" / Int16ul,
    "reserve_ratio_bps" / Int16ul,
    "buyback_percent_bps" / Int16ul,
    "min_buyback_interval_slots" / Int64ul,
    "baseline_initialized" / Flag,
    "total_stars" / Int64ul,
    "star_sol_balance" / Int64ul,
    "creator_paid_out" / Flag,
    "bump" / Int8ul,
)

GLOBAL_CONFIG_LAYOUT = Struct(
    "authority" / PublicKey,
    "treasury" / PublicKey,
    "dev_wallet" / PublicKey,
    "deprecated_platform_treasury" / PublicKey,
    "protocol_fee_bps" / Int16ul,
    "paused" / Flag,
    "total_tokens_launched" / Int64ul,
    "total_volume_sol" / Int64ul,
    "bump" / Int8ul,
)

TORCH_VAULT_LAYOUT = Struct(
    "creator" / PublicKey,
    "authority" / PublicKey,
    "sol_balance" / Int64ul,
    "total_deposited" / Int64ul,
    "total_withdrawn" / Int64ul,
    "total_spent" / Int64ul,
    "total_received" / Int64ul,
    "linked_wallets" / Int8ul,
    "created_at" / Int64sl,
    "bump" / Int8ul,
)

VAULT_WALLET_LINK_LAYOUT = Struct(
    "vault" / PublicKey,
    "wallet" / PublicKey,
    "linked_at" / Int64sl,
    "bump" / Int8ul,
)

LOAN_POSITION_LAYOUT = Struct(
    "user" / PublicKey,
    "mint" / PublicKey,
    "collateral_amount" / Int64ul,
    "borrowed_amount" / Int64ul,
    "accrued_interest" / Int64ul,
    "last_update_slot" / Int64ul,
    "bump" / Int8ul,
)

ACCOUNTS: Dict[str, Tuple[Struct, Type[BaseModel]]] = {
    "BondingCurve": (BONDING_CURVE_LAYOUT, BondingCurve),
    "Treasury": (TREASURY_LAYOUT, Treasury),
    "GlobalConfig": (GLOBAL_CONFIG_LAYOUT, GlobalConfig),
    "TorchVault": (TORCH_VAULT_LAYOUT, TorchVault),
    "VaultWalletLink": (VAULT_WALLET_LINK_LAYOUT, VaultWalletLink),
    "LoanPosition": (LOAN_POSITION_LAYOUT, LoanPosition),
}

# Byte offsets used by getProgramAccounts filters on LoanPosition.
LOAN_POSITION_MINT_OFFSET = 8 + 32
LOAN_POSITION_AMOUNTS_OFFSET = 8 + 32 + 32

def decode_account(name: str, data: bytes) -> Any:
    """Decode raw account bytes into the matching pydantic model.

    Raises ValueError when the discriminator does not match ``name``.
    """
    layout, model = ACCOUNTS[name]
    if bytes(data[:8]) != account_discriminator(name):
        raise ValueError(f"Account data is not a {name}")
    parsed = layout.parse(bytes(data[8:]))
    values = {}
    for key, value in parsed.items():
        if key.startswith("_"):
            continue
        if isinstance(value, bytes):
            value = str(Pubkey.from_bytes(value))
        values[key] = value
    return model(**values)

def encode_account(name: str, values: Dict[str, Any]) -> bytes:
    """Inverse of decode_account; pubkey fields may be given as strings or Pubkeys."""
    layout, _ = ACCOUNTS[name]
    raw = {}
    for key, value in values.items():
        if isinstance(value, (str, Pubkey)) and _is_pubkey_field(layout, key):
            value = bytes(Pubkey.from_string(value) if isinstance(value, str) else value)
        raw[key] = value
    return account_discriminator(name) + layout.build(raw)

def _is_pubkey_field(layout: Struct, key: str) -> bool:
    for sub in layout.subcons:
        if sub.name == key:
            return sub.subcon is PublicKey
    return False

# --- Instruction argument layouts ---

_NO_ARGS = Struct()
_AMOUNT = Struct("amount" / Int64ul)
_MIN_OUT = Struct("minimum_amount_out" / Int64ul)

INSTRUCTION_ARGS: Dict[str, Struct] = {
    "create_token": Struct(
        "name" / BorshString,
        "symbol" / BorshString,
        "uri" / BorshString,
        "sol_target" / Int64ul,
    ),
    "buy": Struct(
        "sol_amount" / Int64ul,
        "min_tokens_out" / Int64ul,
        # Option<bool>: 0 = None, 1 = Some(vote)
        "vote_tag" / Int8ul,
        "vote" / If(this.vote_tag == 1, Flag),
    ),
    "sell": Struct("token_amount" / Int64ul, "min_sol_out" / Int64ul),
    "star_token": _NO_ARGS,
    "create_vault": _NO_ARGS,
    "deposit_vault": _AMOUNT,
    "withdraw_vault": _AMOUNT,
    "withdraw_tokens": _AMOUNT,
    "link_wallet": _NO_ARGS,
    "unlink_wallet": _NO_ARGS,
    "transfer_authority": _NO_ARGS,
    "fund_vault_wsol": _AMOUNT,
    "vault_swap": Struct(
        "amount_in" / Int64ul,
        "minimum_amount_out" / Int64ul,
        "is_buy" / Flag,
    ),
    "borrow": Struct("collateral_amount" / Int64ul, "sol_to_borrow" / Int64ul),
    "repay": _AMOUNT,
    "liquidate": _NO_ARGS,
    "claim_protocol_rewards": _NO_ARGS,
    "fund_migration_wsol": _NO_ARGS,
    "migrate_to_dex": _NO_ARGS,
    "execute_auto_buyback": _MIN_OUT,
    "harvest_fees": _NO_ARGS,
    "swap_fees_to_sol": _MIN_OUT,
}

def encode_instruction_data(method: str, **args: Any) -> bytes:
    return instruction_discriminator(method) + INSTRUCTION_ARGS[method].build(args)
