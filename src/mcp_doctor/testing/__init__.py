"""Public testing utilities for MCP Doctor.

Provides a scripted chat model so advisor behaviour can be exercised
without network access or API keys.
"""

from mcp_doctor.testing.mock_llm import MockStructuredChatModel

__all__ = ["MockStructuredChatModel"]
