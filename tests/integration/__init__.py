"""
Integration Tests for MCP Torch Market

These tests build real solders transactions through the public builders and
MCP tools, with every chain read served by a mocked AsyncClient.

The integration tests cover:
- Instruction ordering and account wiring per intent
- Direct vs vault funding for the same intent
- Buys that complete bonding and return a migration transaction
- Pre-flight rejections and composer failures
- Tool-level JSON output and error strings
"""
