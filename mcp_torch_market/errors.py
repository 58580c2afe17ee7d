"""
Error taxonomy for the transaction-planning layer.

Every failure is raised as a subclass of TorchMarketError so callers (agents,
front-ends, the MCP tool server) can catch one type and present the message.
None of these checks are a security boundary: the on-chain program remains
the final authority on every validation.
"""

import httpx
from solana.exceptions import SolanaRpcException
from solana.rpc.core import RPCException

class TorchMarketError(Exception):
    """Base class for all caller-facing failures."""


class NotFoundError(TorchMarketError):
    """A referenced token or account does not exist on chain."""


class InvalidInputError(TorchMarketError, ValueError):
    """A parameter is outside its allowed range. Raised before any network call."""


class PreconditionFailedError(TorchMarketError):
    """A pre-flight guard rejected the operation."""


class CompositionFailedError(TorchMarketError):
    """The transaction could not be composed (e.g. blockhash fetch failed). Safe to retry."""


# Transport-level failures raised by solana-py and its httpx provider.
RPC_ERRORS = (SolanaRpcException, RPCException, httpx.HTTPError)
