import types
from typing import Generator
from unittest.mock import MagicMock, patch

import pytest
from solders.pubkey import Pubkey

from tests.fakes import FakeChain

# --- Chain Fixtures ---

@pytest.fixture(scope="function")
def chain() -> FakeChain:
    """Fresh in-memory chain with the global config account in place."""
    fake = FakeChain()
    fake.add_global_config()
    return fake

@pytest.fixture(scope="function")
def mint() -> Pubkey:
    return Pubkey.new_unique()

@pytest.fixture(scope="function")
def creator() -> Pubkey:
    return Pubkey.new_unique()

@pytest.fixture(scope="function")
def user() -> Pubkey:
    return Pubkey.new_unique()

# --- Mock Context Fixture ---

@pytest.fixture(scope="function")
def mock_context() -> MagicMock:
    """Provides a mock MCP Context object."""
    return MagicMock()

# --- Patched Server Module Fixture ---

@pytest.fixture(scope="function")
def server_module(chain: FakeChain) -> Generator[types.ModuleType, None, None]:
    """
    The server module with AsyncClient replaced, so every tool call talks to
    ``chain.client``. Agent wallets are cleared between tests.
    """
    import mcp_torch_market.server as server

    with patch.object(server, "AsyncClient") as MockAsyncClient:
        MockAsyncClient.return_value.__aenter__.return_value = chain.client
        server.agents.clear()
        yield server
        server.agents.clear()
