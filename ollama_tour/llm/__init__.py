"""Task-level LLM client built on the Ollama HTTP client."""

from .client import LLMClient, RetryExhaustedError

__all__ = ["LLMClient", "RetryExhaustedError"]
