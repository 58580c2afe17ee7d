# Unit tests for mcp-torch-market
