import base64
import functools
import json
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type

from pydantic import BaseModel, Field
from solana.rpc.async_api import AsyncClient
from solders.transaction import Transaction

from mcp.server.fastmcp import Context, FastMCP
from mcp.server.fastmcp.utilities.logging import get_logger

from .config import load_settings
from .errors import TorchMarketError
from .keys import EphemeralAgent, create_ephemeral_agent
from .models import (
    AutoBuybackParams,
    BorrowParams,
    BuyParams,
    BuyTransactionResult,
    ClaimProtocolRewardsParams,
    CreateTokenParams,
    CreateTokenResult,
    CreateVaultParams,
    DepositVaultParams,
    DirectBuyParams,
    HarvestFeesParams,
    LinkWalletParams,
    LiquidateParams,
    MigrateParams,
    RepayParams,
    SellParams,
    StarParams,
    SwapFeesToSolParams,
    TransactionResult,
    TransferAuthorityParams,
    UnlinkWalletParams,
    VaultSwapParams,
    WithdrawTokensParams,
    WithdrawVaultParams,
)
from .quotes import get_buy_quote as read_buy_quote
from .quotes import get_sell_quote as read_sell_quote
from . import reader, transactions

settings = load_settings()
logger = get_logger(__name__)

# In-process agent wallets, keyed by public key. Lost when the server exits.
agents: Dict[str, EphemeralAgent] = {}

mcp = FastMCP(name="Torch Market Server")

# --- Helper Functions ---

def encode_transaction(tx: Transaction) -> str:
    return base64.b64encode(bytes(tx)).decode("ascii")

def serialize_result(result: TransactionResult) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "transaction": encode_transaction(result.transaction),
        "message": result.message,
    }
    if isinstance(result, BuyTransactionResult) and result.migration_transaction is not None:
        payload["migration_transaction"] = encode_transaction(result.migration_transaction)
    if isinstance(result, CreateTokenResult):
        payload["mint"] = result.mint
    return payload

def _slippage(slippage_bps: Optional[int]) -> int:
    return settings.default_slippage_bps if slippage_bps is None else slippage_bps

async def _build(
    label: str,
    builder: Callable[[AsyncClient, Any], Awaitable[TransactionResult]],
    params_type: Type[BaseModel],
    **fields: Any,
) -> str:
    """Validate params, run ``builder`` against a fresh client and serialize the result."""
    try:
        params = params_type(**fields)
        async with AsyncClient(settings.rpc_endpoint) as client:
            result = await builder(client, params)
        logger.info(f"Built {label} transaction: {result.message}")
        return json.dumps(serialize_result(result), indent=2)
    except (TorchMarketError, ValueError) as e:
        logger.info(f"Rejected {label} request: {e}")
        return f"Error: {e}"
    except Exception as e:
        logger.exception(f"Error building {label} transaction: {e}")
        return f"An error occurred while building the {label} transaction: {e}"

async def _read(label: str, read: Callable[..., Awaitable[Optional[BaseModel]]], *args: Any) -> str:
    try:
        async with AsyncClient(settings.rpc_endpoint) as client:
            result = await read(client, *args)
        if result is None:
            return f"No {label} found."
        return result.model_dump_json(indent=2)
    except (TorchMarketError, ValueError) as e:
        logger.info(f"Rejected {label} read: {e}")
        return f"Error: {e}"
    except Exception as e:
        logger.exception(f"Error reading {label}: {e}")
        return f"An error occurred while reading the {label}: {e}"

# --- MCP Tools: reads and quotes ---

@mcp.tool()
async def get_token(
    context: Context,
    mint: str = Field(..., description="Token mint address."),
) -> str:
    """Token detail: status, price, market cap, bonding progress, treasury and metadata."""
    logger.info(f"Received get_token request for mint={mint}")
    read = functools.partial(reader.get_token, metadata_timeout=settings.metadata_timeout)
    return await _read("token", read, mint)

@mcp.tool()
async def get_buy_quote(
    context: Context,
    mint: str = Field(..., description="Token mint address."),
    amount_sol: int = Field(..., description="SOL to spend, in lamports."),
    slippage_bps: Optional[int] = Field(None, description="Slippage tolerance in basis points (10-1000)."),
) -> str:
    """Quote a bonding-curve buy without building a transaction."""
    logger.info(f"Received get_buy_quote request for mint={mint}, amount_sol={amount_sol}")
    return await _read("buy quote", read_buy_quote, mint, amount_sol, _slippage(slippage_bps))

@mcp.tool()
async def get_sell_quote(
    context: Context,
    mint: str = Field(..., description="Token mint address."),
    amount_tokens: int = Field(..., description="Tokens to sell, in raw units (6 decimals)."),
    slippage_bps: Optional[int] = Field(None, description="Slippage tolerance in basis points (10-1000)."),
) -> str:
    """Quote a bonding-curve sell without building a transaction."""
    logger.info(f"Received get_sell_quote request for mint={mint}, amount_tokens={amount_tokens}")
    return await _read("sell quote", read_sell_quote, mint, amount_tokens, _slippage(slippage_bps))

@mcp.tool()
async def get_vault(
    context: Context,
    creator: str = Field(..., description="Public key of the vault creator."),
) -> str:
    return await _read("vault", reader.get_vault, creator)

@mcp.tool()
async def get_vault_for_wallet(
    context: Context,
    wallet: str = Field(..., description="Public key of a wallet linked to a vault."),
) -> str:
    return await _read("vault", reader.get_vault_for_wallet, wallet)

@mcp.tool()
async def get_vault_wallet_link(
    context: Context,
    wallet: str = Field(..., description="Public key of the wallet."),
) -> str:
    return await _read("wallet link", reader.get_vault_wallet_link, wallet)

@mcp.tool()
async def get_lending_info(
    context: Context,
    mint: str = Field(..., description="Mint of a migrated token."),
) -> str:
    """Lending rates and active loans for a migrated token."""
    return await _read("lending info", reader.get_lending_info, mint)

@mcp.tool()
async def get_loan_position(
    context: Context,
    mint: str = Field(..., description="Token mint address."),
    wallet: str = Field(..., description="Borrower public key."),
) -> str:
    """Loan position for (mint, wallet). LTV and health are advisory only."""
    return await _read("loan position", reader.get_loan_position, mint, wallet)

# --- MCP Tools: trading ---

@mcp.tool()
async def build_buy(
    context: Context,
    mint: str = Field(..., description="Token mint address."),
    buyer: str = Field(..., description="Public key of the signer."),
    amount_sol: int = Field(..., description="SOL to spend, in lamports."),
    vault: Optional[str] = Field(None, description="Vault creator public key. When set, the vault pays."),
    slippage_bps: Optional[int] = Field(None, description="Slippage tolerance in basis points (10-1000)."),
    vote: Optional[str] = Field(None, description="Vote on the treasury: 'burn' or 'return'."),
    message: Optional[str] = Field(None, description="Optional memo, up to 500 characters."),
) -> str:
    """Build a bonding-curve buy. Returns a second migration transaction when the buy completes bonding."""
    logger.info(f"Received build_buy request for mint={mint}, buyer={buyer}, amount_sol={amount_sol}, vault={vault}")
    fields = dict(
        mint=mint, buyer=buyer, amount_sol=amount_sol, slippage_bps=_slippage(slippage_bps), vote=vote, message=message
    )
    if vault:
        return await _build("buy", transactions.build_buy_transaction, BuyParams, vault=vault, **fields)
    return await _build("buy", transactions.build_direct_buy_transaction, DirectBuyParams, **fields)

@mcp.tool()
async def build_sell(
    context: Context,
    mint: str = Field(..., description="Token mint address."),
    seller: str = Field(..., description="Public key of the signer."),
    amount_tokens: int = Field(..., description="Tokens to sell, in raw units (6 decimals)."),
    vault: Optional[str] = Field(None, description="Vault creator public key. When set, proceeds go to the vault."),
    slippage_bps: Optional[int] = Field(None, description="Slippage tolerance in basis points (10-1000)."),
    message: Optional[str] = Field(None, description="Optional memo, up to 500 characters."),
) -> str:
    logger.info(f"Received build_sell request for mint={mint}, seller={seller}, amount_tokens={amount_tokens}")
    return await _build(
        "sell",
        transactions.build_sell_transaction,
        SellParams,
        mint=mint,
        seller=seller,
        amount_tokens=amount_tokens,
        vault=vault,
        slippage_bps=_slippage(slippage_bps),
        message=message,
    )

@mcp.tool()
async def build_create_token(
    context: Context,
    creator: str = Field(..., description="Public key of the creator (fee payer)."),
    name: str = Field(..., description="Token name, up to 32 characters."),
    symbol: str = Field(..., description="Token symbol, up to 10 characters."),
    metadata_uri: str = Field(..., description="URI of the off-chain metadata JSON."),
    sol_target: int = Field(0, description="Bonding target in lamports; 0 for the default."),
) -> str:
    """Build a token launch. The result is already signed by the new mint key; the creator signs the rest."""
    logger.info(f"Received build_create_token request for name={name!r}, symbol={symbol}, creator={creator}")
    builder = functools.partial(
        transactions.build_create_token_transaction,
        vanity_suffix=settings.vanity_suffix,
        vanity_max_attempts=settings.vanity_max_attempts,
    )
    return await _build(
        "create token",
        builder,
        CreateTokenParams,
        creator=creator,
        name=name,
        symbol=symbol,
        metadata_uri=metadata_uri,
        sol_target=sol_target,
    )

@mcp.tool()
async def build_star(
    context: Context,
    mint: str = Field(..., description="Token mint address."),
    user: str = Field(..., description="Public key of the signer."),
    vault: Optional[str] = Field(None, description="Vault creator public key. When set, the vault pays the star fee."),
) -> str:
    logger.info(f"Received build_star request for mint={mint}, user={user}")
    return await _build("star", transactions.build_star_transaction, StarParams, mint=mint, user=user, vault=vault)

# --- MCP Tools: vault management ---

@mcp.tool()
async def build_create_vault(
    context: Context,
    creator: str = Field(..., description="Public key of the vault creator."),
) -> str:
    return await _build("create vault", transactions.build_create_vault_transaction, CreateVaultParams, creator=creator)

@mcp.tool()
async def build_deposit_vault(
    context: Context,
    depositor: str = Field(..., description="Public key of the depositor. Anyone can deposit."),
    vault_creator: str = Field(..., description="Public key of the vault creator."),
    amount_sol: int = Field(..., description="Lamports to deposit."),
) -> str:
    return await _build(
        "deposit",
        transactions.build_deposit_vault_transaction,
        DepositVaultParams,
        depositor=depositor,
        vault_creator=vault_creator,
        amount_sol=amount_sol,
    )

@mcp.tool()
async def build_withdraw_vault(
    context: Context,
    authority: str = Field(..., description="Public key of the vault authority."),
    vault_creator: str = Field(..., description="Public key of the vault creator."),
    amount_sol: int = Field(..., description="Lamports to withdraw."),
) -> str:
    return await _build(
        "withdraw",
        transactions.build_withdraw_vault_transaction,
        WithdrawVaultParams,
        authority=authority,
        vault_creator=vault_creator,
        amount_sol=amount_sol,
    )

@mcp.tool()
async def build_withdraw_tokens(
    context: Context,
    authority: str = Field(..., description="Public key of the vault authority."),
    vault_creator: str = Field(..., description="Public key of the vault creator."),
    mint: str = Field(..., description="Mint of the token to withdraw."),
    destination: str = Field(..., description="Wallet that receives the tokens."),
    amount: int = Field(..., description="Tokens to withdraw, in raw units."),
) -> str:
    return await _build(
        "withdraw tokens",
        transactions.build_withdraw_tokens_transaction,
        WithdrawTokensParams,
        authority=authority,
        vault_creator=vault_creator,
        mint=mint,
        destination=destination,
        amount=amount,
    )

@mcp.tool()
async def build_link_wallet(
    context: Context,
    authority: str = Field(..., description="Public key of the vault authority."),
    vault_creator: str = Field(..., description="Public key of the vault creator."),
    wallet_to_link: str = Field(..., description="Wallet to link to the vault."),
) -> str:
    return await _build(
        "link wallet",
        transactions.build_link_wallet_transaction,
        LinkWalletParams,
        authority=authority,
        vault_creator=vault_creator,
        wallet_to_link=wallet_to_link,
    )

@mcp.tool()
async def build_unlink_wallet(
    context: Context,
    authority: str = Field(..., description="Public key of the vault authority."),
    vault_creator: str = Field(..., description="Public key of the vault creator."),
    wallet_to_unlink: str = Field(..., description="Wallet to unlink from the vault."),
) -> str:
    return await _build(
        "unlink wallet",
        transactions.build_unlink_wallet_transaction,
        UnlinkWalletParams,
        authority=authority,
        vault_creator=vault_creator,
        wallet_to_unlink=wallet_to_unlink,
    )

@mcp.tool()
async def build_transfer_authority(
    context: Context,
    authority: str = Field(..., description="Public key of the current vault authority."),
    vault_creator: str = Field(..., description="Public key of the vault creator."),
    new_authority: str = Field(..., description="Public key of the new authority."),
) -> str:
    return await _build(
        "transfer authority",
        transactions.build_transfer_authority_transaction,
        TransferAuthorityParams,
        authority=authority,
        vault_creator=vault_creator,
        new_authority=new_authority,
    )

@mcp.tool()
async def build_vault_swap(
    context: Context,
    mint: str = Field(..., description="Mint of a migrated token."),
    signer: str = Field(..., description="Public key of a wallet linked to the vault."),
    vault_creator: str = Field(..., description="Public key of the vault creator."),
    amount_in: int = Field(..., description="Lamports (buy) or raw tokens (sell) to swap."),
    minimum_amount_out: int = Field(..., description="Minimum output accepted."),
    is_buy: bool = Field(..., description="True to buy tokens with SOL, False to sell."),
) -> str:
    """Swap on the token's Raydium pool using vault funds."""
    return await _build(
        "vault swap",
        transactions.build_vault_swap_transaction,
        VaultSwapParams,
        mint=mint,
        signer=signer,
        vault_creator=vault_creator,
        amount_in=amount_in,
        minimum_amount_out=minimum_amount_out,
        is_buy=is_buy,
    )

# --- MCP Tools: lending ---

@mcp.tool()
async def build_borrow(
    context: Context,
    mint: str = Field(..., description="Mint of a migrated token."),
    borrower: str = Field(..., description="Public key of the borrower."),
    collateral_amount: int = Field(..., description="Tokens to lock as collateral, in raw units."),
    sol_to_borrow: int = Field(..., description="Lamports to borrow."),
    vault: Optional[str] = Field(None, description="Vault creator public key for vault-routed loans."),
) -> str:
    return await _build(
        "borrow",
        transactions.build_borrow_transaction,
        BorrowParams,
        mint=mint,
        borrower=borrower,
        collateral_amount=collateral_amount,
        sol_to_borrow=sol_to_borrow,
        vault=vault,
    )

@mcp.tool()
async def build_repay(
    context: Context,
    mint: str = Field(..., description="Mint of a migrated token."),
    borrower: str = Field(..., description="Public key of the borrower."),
    sol_amount: int = Field(..., description="Lamports to repay."),
    vault: Optional[str] = Field(None, description="Vault creator public key for vault-routed loans."),
) -> str:
    return await _build(
        "repay",
        transactions.build_repay_transaction,
        RepayParams,
        mint=mint,
        borrower=borrower,
        sol_amount=sol_amount,
        vault=vault,
    )

@mcp.tool()
async def build_liquidate(
    context: Context,
    mint: str = Field(..., description="Mint of a migrated token."),
    liquidator: str = Field(..., description="Public key of the liquidator."),
    borrower: str = Field(..., description="Public key of the borrower to liquidate."),
    vault: Optional[str] = Field(None, description="Vault creator public key. When set, the vault pays."),
) -> str:
    return await _build(
        "liquidate",
        transactions.build_liquidate_transaction,
        LiquidateParams,
        mint=mint,
        liquidator=liquidator,
        borrower=borrower,
        vault=vault,
    )

@mcp.tool()
async def build_claim_protocol_rewards(
    context: Context,
    user: str = Field(..., description="Public key of the trader claiming rewards."),
    vault: Optional[str] = Field(None, description="Vault creator public key. When set, rewards go to the vault."),
) -> str:
    return await _build(
        "claim protocol rewards",
        transactions.build_claim_protocol_rewards_transaction,
        ClaimProtocolRewardsParams,
        user=user,
        vault=vault,
    )

# --- MCP Tools: permissionless cranks ---

@mcp.tool()
async def build_migrate(
    context: Context,
    mint: str = Field(..., description="Mint of a token whose bonding is complete."),
    payer: str = Field(..., description="Public key paying for the migration."),
) -> str:
    return await _build("migrate", transactions.build_migrate_transaction, MigrateParams, mint=mint, payer=payer)

@mcp.tool()
async def build_auto_buyback(
    context: Context,
    mint: str = Field(..., description="Mint of a migrated token."),
    payer: str = Field(..., description="Public key paying the transaction fee."),
    minimum_amount_out: int = Field(1, description="Minimum tokens accepted from the pool."),
) -> str:
    """Build the treasury buyback crank. Fails with the first unmet buyback condition."""
    return await _build(
        "auto-buyback",
        transactions.build_auto_buyback_transaction,
        AutoBuybackParams,
        mint=mint,
        payer=payer,
        minimum_amount_out=minimum_amount_out,
    )

@mcp.tool()
async def build_harvest_fees(
    context: Context,
    mint: str = Field(..., description="Token mint address."),
    payer: str = Field(..., description="Public key paying the transaction fee."),
    sources: Optional[List[str]] = Field(None, description="Token accounts to harvest; discovered when omitted."),
) -> str:
    return await _build(
        "harvest fees",
        transactions.build_harvest_fees_transaction,
        HarvestFeesParams,
        mint=mint,
        payer=payer,
        sources=sources,
    )

@mcp.tool()
async def build_swap_fees_to_sol(
    context: Context,
    mint: str = Field(..., description="Mint of a migrated token."),
    payer: str = Field(..., description="Public key paying the transaction fee."),
    minimum_amount_out: int = Field(1, description="Minimum lamports accepted from the pool."),
    harvest: bool = Field(True, description="Harvest withheld fees in the same transaction."),
    sources: Optional[List[str]] = Field(None, description="Token accounts to harvest; discovered when omitted."),
) -> str:
    return await _build(
        "swap fees to SOL",
        transactions.build_swap_fees_to_sol_transaction,
        SwapFeesToSolParams,
        mint=mint,
        payer=payer,
        minimum_amount_out=minimum_amount_out,
        harvest=harvest,
        sources=sources,
    )

# --- MCP Tools: agent wallet ---

@mcp.tool()
async def create_agent_wallet(context: Context) -> str:
    """Create an in-memory agent keypair. Link its public key to a vault, then sign with sign_with_agent."""
    agent = create_ephemeral_agent()
    agents[agent.public_key] = agent
    logger.info(f"Created agent wallet {agent.public_key}")
    return json.dumps({"public_key": agent.public_key})

@mcp.tool()
async def sign_with_agent(
    context: Context,
    agent: str = Field(..., description="Public key of an agent wallet created by this server."),
    transaction: str = Field(..., description="Base64-encoded transaction to sign."),
) -> str:
    """Add the agent's signature to a transaction and return it base64-encoded."""
    if agent not in agents:
        return f"Error: Unknown agent wallet {agent}."
    try:
        tx = Transaction.from_bytes(base64.b64decode(transaction))
        signed = agents[agent].sign(tx)
        return json.dumps({"transaction": encode_transaction(signed)})
    except ValueError as e:
        return f"Error: Invalid transaction: {e}"
    except Exception as e:
        logger.exception(f"Error signing with agent {agent}: {e}")
        return f"An error occurred while signing the transaction: {e}"


if __name__ == "__main__":
    print(f"Using RPC Endpoint: {settings.rpc_endpoint}")
    # Example: python -m mcp_torch_market.server
    mcp.run(transport="stdio")
