"""
ollama-tour: a guided tour of a local Ollama server.

Text generation, chat, code generation, sampling options, multi-model
comparison, batch prompts, retries, and embeddings with a pairwise
cosine-similarity matrix, all against Ollama's HTTP API.
"""

__version__ = "0.1.0"

from .config import Config, load_profile_yaml
from .llm import LLMClient, RetryExhaustedError
from .ollama_client import OllamaClient, OllamaError
from .similarity import SimilarityMatrix, SimilarityScorer, cosine_similarity

__all__ = [
    "Config",
    "LLMClient",
    "OllamaClient",
    "OllamaError",
    "RetryExhaustedError",
    "SimilarityMatrix",
    "SimilarityScorer",
    "cosine_similarity",
    "load_profile_yaml",
]
