import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel

from .constants import DEFAULT_METADATA_TIMEOUT, DEFAULT_SLIPPAGE_BPS, VANITY_MAX_ATTEMPTS, VANITY_SUFFIX

# .env at the repository root; values already in the environment win.
DOTENV_PATH = Path(__file__).parent.parent / '.env'


class Settings(BaseModel):
    rpc_endpoint: str = "http://localhost:8899"
    default_slippage_bps: int = DEFAULT_SLIPPAGE_BPS
    vanity_suffix: str = VANITY_SUFFIX
    vanity_max_attempts: int = VANITY_MAX_ATTEMPTS
    metadata_timeout: float = DEFAULT_METADATA_TIMEOUT


def load_settings(dotenv_path: Path = DOTENV_PATH) -> Settings:
    """Read settings from the process environment, after loading ``dotenv_path``."""
    load_dotenv(dotenv_path=dotenv_path)
    defaults = Settings()
    # pydantic coerces the raw strings and rejects malformed numbers.
    return Settings(
        rpc_endpoint=os.getenv("RPC_ENDPOINT", defaults.rpc_endpoint),
        default_slippage_bps=os.getenv("TORCH_DEFAULT_SLIPPAGE_BPS", defaults.default_slippage_bps),
        vanity_suffix=os.getenv("TORCH_VANITY_SUFFIX", defaults.vanity_suffix),
        vanity_max_attempts=os.getenv("TORCH_VANITY_MAX_ATTEMPTS", defaults.vanity_max_attempts),
        metadata_timeout=os.getenv("TORCH_METADATA_TIMEOUT", defaults.metadata_timeout),
    )
