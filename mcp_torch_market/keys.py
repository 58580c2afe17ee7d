"""
Key utilities: vanity mint grinding and in-memory agent keypairs.
"""

from pydantic import BaseModel, ConfigDict
from solders.keypair import Keypair
from solders.transaction import Transaction

from .constants import VANITY_MAX_ATTEMPTS, VANITY_SUFFIX


def grind_vanity_keypair(suffix: str = VANITY_SUFFIX, max_attempts: int = VANITY_MAX_ATTEMPTS) -> Keypair:
    """Generate keypairs until the base58 address ends with ``suffix``.

    The suffix is cosmetic. After ``max_attempts`` the last keypair generated
    is returned whether it matches or not.
    """
    keypair = Keypair()
    for _ in range(max_attempts - 1):
        if str(keypair.pubkey()).endswith(suffix):
            break
        keypair = Keypair()
    return keypair


class EphemeralAgent(BaseModel):
    """A keypair that exists only in this process.

    Flow: the vault authority links ``public_key`` to its vault, the agent
    signs vault operations with ``sign``, and the authority unlinks the wallet
    when the agent shuts down. Nothing is written to disk; when the process
    exits the private key is gone.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    keypair: Keypair

    @property
    def public_key(self) -> str:
        return str(self.keypair.pubkey())

    def sign(self, tx: Transaction) -> Transaction:
        tx.partial_sign([self.keypair], tx.message.recent_blockhash)
        return tx


def create_ephemeral_agent() -> EphemeralAgent:
    return EphemeralAgent(keypair=Keypair())
