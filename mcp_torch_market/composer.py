from typing import Sequence

from mcp.server.fastmcp.utilities.logging import get_logger
from solana.rpc.async_api import AsyncClient
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.message import Message
from solders.pubkey import Pubkey
from solders.transaction import Transaction

from .errors import RPC_ERRORS, CompositionFailedError
from .models import TransactionResult

logger = get_logger(__name__)


async def compose_transaction(
    client: AsyncClient,
    instructions: Sequence[Instruction],
    fee_payer: Pubkey,
    message: str,
    signers: Sequence[Keypair] = (),
) -> TransactionResult:
    """Stamp a fresh blockhash and fee payer onto ``instructions``.

    ``signers`` are ephemeral keys the caller does not hold (e.g. a freshly
    generated mint); they partially sign here. The fee payer and any other
    required signers sign later, before the blockhash expires.
    """
    try:
        resp = await client.get_latest_blockhash()
    except RPC_ERRORS as e:
        logger.error(f"Failed to fetch latest blockhash: {e}")
        raise CompositionFailedError(f"Failed to fetch latest blockhash: {e}") from e
    blockhash = resp.value.blockhash

    msg = Message.new_with_blockhash(list(instructions), fee_payer, blockhash)
    tx = Transaction.new_unsigned(msg)
    if signers:
        tx.partial_sign(list(signers), blockhash)
    logger.debug(f"Composed transaction with {len(instructions)} instructions, payer {fee_payer}, blockhash {blockhash}")
    return TransactionResult(transaction=tx, message=message)
