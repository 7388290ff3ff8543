"""
LLM Client for the tour.

Wraps OllamaClient to provide:
  - query() with a fixed-count, fixed-delay retry ("robust generation")
  - query_json() / query_stream() / query_with_usage()
  - chat helpers
  - compare_models(): the same prompt across several models
  - batch_generate(): several prompts in sequence
  - embed_texts() / similarity_matrix(): one embed call per text, then the
    pairwise cosine-similarity matrix

OllamaClient API reference (see ollama_tour.ollama_client):

    ai = OllamaClient(base_url="http://localhost:11434")
    ai.select_model("llama3.2:latest")
    ai.generate(prompt, system=..., temperature=..., num_predict=...)
    ai.chat([ChatMessage.user("hi")])
    ai.embed("text", model="nomic-embed-text:latest")
"""

import json
import logging
import re
import time
from typing import Any, Iterator, Mapping, Sequence

from ..ollama_client import (
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_TIMEOUT,
    ChatMessage,
    ChatResponse,
    ModelInfo,
    OllamaClient,
    OllamaError,
)
from ..similarity import SimilarityMatrix, SimilarityScorer

logger = logging.getLogger(__name__)


class RetryExhaustedError(OllamaError):
    """Raised by query() when every attempt failed."""

    def __init__(self, attempts: int, last_error: Exception | None = None):
        self.attempts = attempts
        self.last_error = last_error
        message = f"Failed after {attempts} attempts"
        if last_error is not None:
            message += f": {last_error}"
        super().__init__(message)


class LLMClient:
    """
    Task-level wrapper around OllamaClient.

    Usage:
        client = LLMClient(model="llama3.2:latest")

        text = client.query("What is the capital of Norway?")
        data = client.query_json("List 3 pros of remote work as JSON")

        results = client.compare_models(
            "What are the key differences between ML and AI?",
            models=["llama3.2:latest", "deepseek-coder:6.7b"],
        )
        # [{"model": "llama3.2:latest", "response": "...", "error": None, "elapsed": 3.2}, ...]

        answers = client.batch_generate(
            {"Climate change": "Explain Climate change in exactly 2 sentences"},
            num_predict=100,
        )
    """

    def __init__(
        self,
        model: str = "llama3.2:latest",
        base_url: str | None = None,
        system_prompt: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        validate_model: bool = False,
        ollama: OllamaClient | None = None,
    ):
        """
        Args:
            model: Default model for generation and chat.
            base_url: Ollama server URL (None = OLLAMA_HOST or localhost).
            system_prompt: Default system prompt for all queries.
            timeout: HTTP request timeout in seconds.
            connect_timeout: TCP connect timeout in seconds.
            validate_model: Verify the model exists at first use.
            ollama: Pre-built OllamaClient to use instead of creating one.
        """
        self.model = model
        self.base_url = base_url
        self.system_prompt = system_prompt
        self._timeout = timeout
        self._connect_timeout = connect_timeout
        self._validate_model = validate_model
        self._ollama = ollama
        self._scorer = SimilarityScorer()

    # ════════════════════════════════════════════════════════════════════
    # INITIALIZATION
    # ════════════════════════════════════════════════════════════════════

    def _ensure_initialized(self):
        """Lazy-initialize the Ollama connection on first use."""
        if self._ollama is None:
            self._ollama = OllamaClient(
                base_url=self.base_url,
                timeout=self._timeout,
                connect_timeout=self._connect_timeout,
                validate_model=self._validate_model,
            )
            logger.info(f"Ollama client initialized: {self._ollama.base_url}")
        if self._ollama.model != self.model:
            self._ollama.select_model(self.model)
            logger.info(f"Default model: {self.model}")

    @property
    def ollama(self) -> OllamaClient:
        """Direct access to the underlying OllamaClient."""
        self._ensure_initialized()
        return self._ollama

    # ════════════════════════════════════════════════════════════════════
    # CORE QUERY METHODS
    # ════════════════════════════════════════════════════════════════════

    def query(
        self,
        prompt: str,
        system: str | None = None,
        model: str | None = None,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        **options,
    ) -> str:
        """
        Generate text, retrying on failure.

        Makes up to ``max_retries`` attempts, sleeping a fixed
        ``retry_delay`` seconds between them. An empty response counts as
        a failed attempt.

        Args:
            prompt: The prompt text.
            system: System prompt (falls back to self.system_prompt).
            model: Model override for this call.
            max_retries: Total number of attempts (>= 1).
            retry_delay: Seconds to wait between attempts.
            **options: Sampling options (temperature, top_p, num_predict, ...).

        Returns:
            Stripped response text.

        Raises:
            RetryExhaustedError: After the last attempt fails.
        """
        if max_retries < 1:
            raise ValueError(f"max_retries must be at least 1, got {max_retries}")
        self._ensure_initialized()

        effective_system = system if system is not None else self.system_prompt
        last_error: Exception | None = None

        for attempt in range(1, max_retries + 1):
            try:
                response = self._ollama.generate(
                    prompt, model=model, system=effective_system, **options
                )
                text = response.text.strip()
                if text:
                    return text
                last_error = OllamaError("Empty response from model")
                logger.warning(f"Attempt {attempt} failed: empty response")
            except OllamaError as e:
                last_error = e
                logger.warning(f"Attempt {attempt} failed: {e}")

            if attempt < max_retries:
                time.sleep(retry_delay)

        raise RetryExhaustedError(max_retries, last_error) from last_error

    def query_json(
        self,
        prompt: str,
        system: str | None = None,
        model: str | None = None,
        max_retries: int = 2,
        **options,
    ) -> dict[str, Any] | list:
        """
        Generate with ``format="json"`` and parse the reply.

        Handles markdown code blocks, trailing commas, preamble text and
        reasoning-model tags (<think>...</think>).

        Raises:
            ValueError: If no valid JSON comes back after all attempts.
        """
        json_system = system or self.system_prompt or (
            "You are a data extraction assistant. Always respond with valid JSON only. "
            "No markdown formatting, no explanation, no preamble."
        )

        last_error = None
        current_prompt = prompt

        for attempt in range(max_retries + 1):
            raw_response = self.query(
                current_prompt,
                system=json_system,
                model=model,
                max_retries=1,
                format="json",
                **options,
            )

            try:
                return self._parse_json_response(raw_response)
            except ValueError as e:
                last_error = e
                logger.warning(
                    f"JSON parse failed (attempt {attempt + 1}/{max_retries + 1}): {e}"
                )
                if attempt < max_retries:
                    current_prompt = prompt + (
                        "\n\nCRITICAL: Respond with ONLY valid JSON. "
                        "No markdown code fences, no explanation text."
                    )

        raise ValueError(
            f"Could not parse LLM response as JSON after {max_retries + 1} attempts. "
            f"Last error: {last_error}"
        )

    def query_stream(
        self,
        prompt: str,
        system: str | None = None,
        model: str | None = None,
        **options,
    ) -> Iterator[str]:
        """Stream a response, yielding text fragments as they arrive."""
        self._ensure_initialized()
        effective_system = system if system is not None else self.system_prompt
        yield from self._ollama.generate_stream(
            prompt, model=model, system=effective_system, **options
        )

    def query_with_usage(
        self,
        prompt: str,
        system: str | None = None,
        model: str | None = None,
        **options,
    ) -> tuple[str, dict]:
        """Generate once and return (text, usage) without retrying."""
        self._ensure_initialized()
        effective_system = system if system is not None else self.system_prompt
        response = self._ollama.generate(
            prompt, model=model, system=effective_system, **options
        )
        return response.text.strip(), response.usage

    # ════════════════════════════════════════════════════════════════════
    # CHAT
    # ════════════════════════════════════════════════════════════════════

    def chat(
        self,
        messages: Sequence[dict] | Sequence[ChatMessage],
        model: str | None = None,
        **options,
    ) -> ChatResponse:
        """Multi-message chat; returns the full ChatResponse."""
        self._ensure_initialized()
        return self._ollama.chat(list(messages), model=model, **options)

    def ask(
        self,
        question: str,
        system: str | None = None,
        model: str | None = None,
        **options,
    ) -> ChatResponse:
        """One user message, optionally preceded by a system message."""
        self._ensure_initialized()
        effective_system = system if system is not None else self.system_prompt
        return self._ollama.ask(question, model=model, system=effective_system, **options)

    # ════════════════════════════════════════════════════════════════════
    # MULTI-MODEL AND BATCH
    # ════════════════════════════════════════════════════════════════════

    def compare_models(
        self,
        prompt: str,
        models: Sequence[str],
        system: str | None = None,
        max_retries: int = 1,
        **options,
    ) -> list[dict[str, Any]]:
        """
        Run the same prompt across several models, one after another.

        Each entry carries that model's own response:
            [
                {"model": "llama3.2:latest", "response": "...", "error": None, "elapsed": 2.1},
                {"model": "deepseek-coder:6.7b", "response": "", "error": "...", "elapsed": 0.1},
            ]

        A failing model is recorded with ``error`` set and does not stop
        the others. Each call passes its model explicitly, so the default
        model is left unchanged.
        """
        results = []

        for model_id in models:
            logger.info(f"Model comparison: querying {model_id}")
            started = time.perf_counter()
            try:
                response = self.query(
                    prompt,
                    system=system,
                    model=model_id,
                    max_retries=max_retries,
                    **options,
                )
                results.append({
                    "model": model_id,
                    "response": response,
                    "error": None,
                    "elapsed": time.perf_counter() - started,
                })
            except OllamaError as e:
                logger.error(f"Model comparison failed for {model_id}: {e}")
                results.append({
                    "model": model_id,
                    "response": "",
                    "error": str(e),
                    "elapsed": time.perf_counter() - started,
                })

        return results

    def batch_generate(
        self,
        prompts: Sequence[str] | Mapping[str, str],
        system: str | None = None,
        model: str | None = None,
        max_retries: int = 1,
        **options,
    ) -> dict[str, str]:
        """
        Generate a response for each prompt, in input order.

        Args:
            prompts: A list of prompts (keys are the prompts themselves) or a
                mapping of label -> prompt.

        Returns:
            Ordered dict of label -> response text.

        Raises:
            RetryExhaustedError: If any prompt fails after its retries.
        """
        items = list(prompts.items()) if isinstance(prompts, Mapping) else [(p, p) for p in prompts]
        results: dict[str, str] = {}

        for i, (label, prompt) in enumerate(items, 1):
            logger.info(f"Processing {i} of {len(items)}: {label}")
            results[label] = self.query(
                prompt,
                system=system,
                model=model,
                max_retries=max_retries,
                **options,
            )

        return results

    # ════════════════════════════════════════════════════════════════════
    # EMBEDDINGS
    # ════════════════════════════════════════════════════════════════════

    def embed_texts(self, texts: Sequence[str], model: str) -> list[list[float]]:
        """One /api/embed call per text, preserving input order."""
        self._ensure_initialized()
        return [self._ollama.embed(text, model=model) for text in texts]

    def similarity_matrix(self, texts: Sequence[str], model: str) -> SimilarityMatrix:
        """Embed each text with ``model`` and return the pairwise cosine matrix."""
        self._ensure_initialized()
        return self._scorer.score_texts(
            texts, embed=lambda text: self._ollama.embed(text, model=model)
        )

    # ════════════════════════════════════════════════════════════════════
    # MODEL MANAGEMENT
    # ════════════════════════════════════════════════════════════════════

    def switch_model(self, model: str):
        """Change the default model."""
        old_model = self.model
        self.model = model

        if self._ollama is not None:
            self._ollama.select_model(model)

        if old_model != model:
            logger.info(f"Model switched: {old_model} → {model}")

    def list_models(self) -> list[ModelInfo]:
        """Models available on the server."""
        self._ensure_initialized()
        return self._ollama.list_models()

    def health_check(self) -> dict:
        self._ensure_initialized()
        return self._ollama.health_check()

    # ════════════════════════════════════════════════════════════════════
    # JSON PARSING
    # ════════════════════════════════════════════════════════════════════

    @staticmethod
    def _parse_json_response(response: str) -> dict[str, Any] | list:
        """
        Parse JSON from an LLM response, handling common formatting issues.

        Tries in order:
        1. Direct JSON parse
        2. Extract from ```json ... ``` code blocks
        3. Extract from ``` ... ``` code blocks
        4. Find first { ... } or [ ... ] in response
        5. Fix trailing commas and retry

        Raises:
            ValueError: If no valid JSON can be extracted.
        """
        if not response or not response.strip():
            raise ValueError("Empty response")

        response = response.strip()

        # Strip reasoning model tags (e.g., deepseek-r1 <think>...</think>)
        response = re.sub(r"<think>.*?</think>", "", response, flags=re.DOTALL).strip()

        try:
            return json.loads(response)
        except json.JSONDecodeError:
            pass

        for pattern in [r"```json\s*(.*?)\s*```", r"```\s*(.*?)\s*```"]:
            match = re.search(pattern, response, re.DOTALL)
            if match:
                try:
                    return json.loads(match.group(1))
                except json.JSONDecodeError:
                    continue

        for open_char, close_char in [("{", "}"), ("[", "]")]:
            start = response.find(open_char)
            end = response.rfind(close_char)
            if start != -1 and end > start:
                candidate = response[start : end + 1]
                try:
                    return json.loads(candidate)
                except json.JSONDecodeError:
                    pass

                # Fix trailing commas: ,} → } and ,] → ]
                fixed = re.sub(r",\s*([}\]])", r"\1", candidate)
                try:
                    return json.loads(fixed)
                except json.JSONDecodeError:
                    continue

        raise ValueError(
            f"Could not extract valid JSON from response: {response[:300]}..."
        )
