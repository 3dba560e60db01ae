"""LLM client used by LLM-backed specialists."""

from consilium.llm.client import LLMClient, MockLLMClient

__all__ = ["LLMClient", "MockLLMClient"]
