"""
Test Package for MCP Torch Market

Unit tests cover the pure modules (address derivation, curve math, quotes,
guards, account codecs, keys, configuration). Integration tests drive the
transaction builders and the MCP tools against a mocked chain client.

Test Structure:
- unit/: pure-function and guard tests
- integration/: builder and MCP tool tests
- fakes.py: in-memory chain client shared by both
"""
