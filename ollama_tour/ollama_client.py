"""
Ollama Client: a Python wrapper for a local Ollama model server.

Ollama serves models over a small JSON/HTTP API, by default on
http://localhost:11434. This module presents that API as plain Python
calls and dataclasses, and translates transport failures into exceptions
with actionable messages.

================================================================================
API ENDPOINTS USED
================================================================================

    GET  /               → "Ollama is running" (liveness)
    GET  /api/version    → {"version": "0.5.7"}
    GET  /api/tags       → locally available models
    POST /api/show       → details for one model
    GET  /api/ps         → models currently loaded in memory
    POST /api/generate   → single-prompt completion
    POST /api/chat       → chat completion over a message list
    POST /api/embed      → embedding vectors for one or more inputs

Sampling options (temperature, top_p, num_predict, seed, ...) are not
top-level request fields in Ollama; they travel inside an "options" object.
generate()/chat() accept them as keyword arguments and move them there.

Streaming responses are newline-delimited JSON, one chunk per line, the
last one carrying "done": true.

================================================================================
QUICK START
================================================================================

    from ollama_tour.ollama_client import OllamaClient, Conversation

    ai = OllamaClient()
    print(ai.test_connection())          # True
    print(ai.models)                     # ['codellama:7b', 'llama3.2:latest', ...]

    ai.select_model("llama3.2:latest")
    resp = ai.generate("Explain quantum computing to a 10-year-old")
    print(resp.text)

    resp = ai.generate("Write a story", temperature=0.8, top_p=0.9, num_predict=300)

    # Chat
    resp = ai.chat([ChatMessage.user("3 must-see places in Norway?")])
    print(resp.content)

    conv = Conversation(system="You are a helpful data science tutor.")
    conv.add_user("How do I handle missing values?")
    ai.chat_conversation(conv)           # assistant reply appended to conv

    # Embeddings
    vec = ai.embed("I love R and data science", model="nomic-embed-text:latest")
    sim = ai.similarity("lions", "tigers", model="nomic-embed-text:latest")
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator

import httpx

from .similarity import cosine_similarity

logger = logging.getLogger(__name__)


# ════════════════════════════════════════════════════════════════════════════
# CONFIGURATION & CONSTANTS
# ════════════════════════════════════════════════════════════════════════════
#
# The timeouts are generous: the first request after a model is pulled has
# to load the weights into memory (cold start), which can take a while on
# CPU-only machines.
#
# ════════════════════════════════════════════════════════════════════════════

DEFAULT_BASE_URL = "http://localhost:11434"

# Total request timeout in seconds
DEFAULT_TIMEOUT = 120

# Connection timeout in seconds
DEFAULT_CONNECT_TIMEOUT = 10

# Environment variable the Ollama CLI itself uses for the server address
ENV_HOST = "OLLAMA_HOST"

# Keys accepted by /api/generate and /api/chat at the top level.
# Everything else passed as a keyword goes into "options".
_TOP_LEVEL_KEYS = {"format", "keep_alive", "template", "raw", "context", "images", "suffix", "tools"}


def resolve_base_url(base_url: str | None = None) -> str:
    """
    Work out the server URL.

    Priority: explicit argument > OLLAMA_HOST > http://localhost:11434.
    A bare ``host:port`` (as OLLAMA_HOST is often written) gets ``http://``.
    """
    url = base_url or os.environ.get(ENV_HOST) or DEFAULT_BASE_URL
    url = url.strip()
    if "://" not in url:
        url = f"http://{url}"
    return url.rstrip("/")


# ════════════════════════════════════════════════════════════════════════════
# CUSTOM EXCEPTIONS
# ════════════════════════════════════════════════════════════════════════════
#
# Exception Hierarchy:
#   OllamaError (base)
#   ├── ConnectionError       - server not reachable
#   ├── TimeoutError          - connect or read timed out
#   ├── ModelNotFoundError    - model not pulled / unknown name
#   ├── APIError              - any other HTTP error status
#   └── ResponseFormatError   - body is not the JSON we expect
#
# ════════════════════════════════════════════════════════════════════════════

class OllamaError(Exception):
    """
    Base exception for all Ollama client errors.

    Catch this to handle every failure coming out of the client:

        try:
            ai.generate("Hello")
        except OllamaError as e:
            print(f"Ollama error: {e}")
    """
    pass


class ConnectionError(OllamaError):
    """
    Raised when the Ollama server cannot be reached.

    Common causes:
    - The server is not running (start it with ``ollama serve``)
    - OLLAMA_HOST points at the wrong address or port
    """
    pass


class TimeoutError(OllamaError):
    """
    Raised when a request times out.

    Usually a cold start: the model is being loaded into memory. Retry,
    or raise the timeout (``OllamaClient(timeout=300)`` / ``--timeout 300``).
    """
    pass


class ModelNotFoundError(OllamaError):
    """
    Raised when the requested model is not available locally.

    Resolution: ``ollama pull <model>``, or pick a name from ``ai.models``.
    """
    pass


class APIError(OllamaError):
    """Raised for HTTP error responses not covered above."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ResponseFormatError(OllamaError):
    """Raised when the server answers with something that is not the expected JSON."""
    pass


# ════════════════════════════════════════════════════════════════════════════
# DATA CLASSES
# ════════════════════════════════════════════════════════════════════════════

@dataclass
class ModelInfo:
    """
    A model available on the server, as listed by /api/tags.

    Attributes:
    ----------
    name : str
        Model tag, e.g. "llama3.2:latest".
    size : int
        Size on disk in bytes.
    modified_at : str
        ISO timestamp of the last pull/modification.
    digest : str
        Content digest of the model blob.
    family, parameter_size, quantization_level, format : str
        Taken from the "details" object when present.
    """
    name: str
    size: int = 0
    modified_at: str = ""
    digest: str = ""
    family: str = ""
    parameter_size: str = ""
    quantization_level: str = ""
    format: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> ModelInfo:
        details = data.get("details") or {}
        return cls(
            name=data.get("name") or data.get("model", ""),
            size=int(data.get("size") or 0),
            modified_at=data.get("modified_at", ""),
            digest=data.get("digest", ""),
            family=details.get("family", ""),
            parameter_size=details.get("parameter_size", ""),
            quantization_level=details.get("quantization_level", ""),
            format=details.get("format", ""),
        )

    @property
    def size_gb(self) -> float:
        return self.size / 1e9

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "size": self.size,
            "modified_at": self.modified_at,
            "digest": self.digest,
            "family": self.family,
            "parameter_size": self.parameter_size,
            "quantization_level": self.quantization_level,
            "format": self.format,
        }


@dataclass
class ChatMessage:
    """
    A single message in a conversation.

    Example:
    -------
    >>> ChatMessage.system("You are a helpful data science tutor.")
    >>> ChatMessage.user("How do I handle missing values?")
    >>> ChatMessage.user("Hello!").to_dict()
    {'role': 'user', 'content': 'Hello!'}
    """
    role: str  # 'system', 'user', or 'assistant'
    content: str

    def to_dict(self) -> dict:
        return {"role": self.role, "content": self.content}

    @classmethod
    def system(cls, content: str) -> ChatMessage:
        return cls(role="system", content=content)

    @classmethod
    def user(cls, content: str) -> ChatMessage:
        return cls(role="user", content=content)

    @classmethod
    def assistant(cls, content: str) -> ChatMessage:
        return cls(role="assistant", content=content)


def _usage_from(data: dict) -> dict:
    """Token and timing fields common to /api/generate and /api/chat."""
    return {
        "prompt_eval_count": data.get("prompt_eval_count"),
        "eval_count": data.get("eval_count"),
        "total_duration": data.get("total_duration"),
        "load_duration": data.get("load_duration"),
        "eval_duration": data.get("eval_duration"),
    }


@dataclass
class GenerateResponse:
    """
    Response from /api/generate.

    Attributes:
    ----------
    text : str
        The generated text (the "response" field of the body).
    model : str
        Model that produced it.
    created_at : str
        Server timestamp.
    done_reason : str or None
        "stop" for a natural end, "length" when num_predict was hit.
    prompt_tokens, completion_tokens : int or None
        Ollama's prompt_eval_count / eval_count.
    total_duration : int or None
        Wall time on the server, in nanoseconds.
    raw_response : dict
        The unmodified JSON body.
    """
    text: str
    model: str
    created_at: str = ""
    done: bool = True
    done_reason: str | None = None
    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    total_duration: int | None = None
    raw_response: dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict) -> GenerateResponse:
        if "response" not in data:
            raise ResponseFormatError(
                f"Generate response has no 'response' field: {sorted(data)}"
            )
        return cls(
            text=data.get("response") or "",
            model=data.get("model", ""),
            created_at=data.get("created_at", ""),
            done=bool(data.get("done", True)),
            done_reason=data.get("done_reason"),
            prompt_tokens=data.get("prompt_eval_count"),
            completion_tokens=data.get("eval_count"),
            total_duration=data.get("total_duration"),
            raw_response=data,
        )

    @property
    def usage(self) -> dict:
        return _usage_from(self.raw_response)


@dataclass
class ChatResponse:
    """
    Response from /api/chat.

    ``content`` and ``role`` come from the "message" object of the body;
    everything else mirrors GenerateResponse.
    """
    content: str
    model: str
    role: str = "assistant"
    created_at: str = ""
    done: bool = True
    done_reason: str | None = None
    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    total_duration: int | None = None
    raw_response: dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict) -> ChatResponse:
        message = data.get("message")
        if not isinstance(message, dict):
            raise ResponseFormatError(
                f"Chat response has no 'message' object: {sorted(data)}"
            )
        return cls(
            content=message.get("content") or "",
            role=message.get("role", "assistant"),
            model=data.get("model", ""),
            created_at=data.get("created_at", ""),
            done=bool(data.get("done", True)),
            done_reason=data.get("done_reason"),
            prompt_tokens=data.get("prompt_eval_count"),
            completion_tokens=data.get("eval_count"),
            total_duration=data.get("total_duration"),
            raw_response=data,
        )

    @property
    def usage(self) -> dict:
        return _usage_from(self.raw_response)


@dataclass
class EmbeddingResponse:
    """
    Response from /api/embed.

    Indexable and iterable over the embedding vectors, which are in the
    same order as ``texts``.

    Example:
    -------
    >>> resp = ai.embed_complete(["cat", "dog"], model="nomic-embed-text:latest")
    >>> resp.dimension
    768
    >>> for text, vec in zip(resp.texts, resp):
    ...     print(text, len(vec))
    """
    embeddings: list[list[float]]
    texts: list[str]
    model: str
    dimension: int
    prompt_tokens: int | None = None
    raw_response: dict = field(default_factory=dict)

    def __getitem__(self, index: int) -> list[float]:
        return self.embeddings[index]

    def __len__(self) -> int:
        return len(self.embeddings)

    def __iter__(self):
        return iter(self.embeddings)


@dataclass
class Conversation:
    """
    A multi-turn conversation with automatic history tracking.

    The system prompt is kept apart from ``messages`` and prepended by
    ``to_messages()``.

    Example:
    -------
    >>> conv = Conversation(system="You are a helpful tutor.")
    >>> conv.add_user("What is correlation?")
    >>> ai.chat_conversation(conv)          # reply appended
    >>> conv.add_user("How do I interpret it?").add_assistant("...")  # chainable
    """
    system: str | None = None
    messages: list[ChatMessage] = field(default_factory=list)

    def add_user(self, content: str) -> Conversation:
        self.messages.append(ChatMessage.user(content))
        return self

    def add_assistant(self, content: str) -> Conversation:
        self.messages.append(ChatMessage.assistant(content))
        return self

    def clear(self) -> Conversation:
        """Drop the history, keep the system prompt."""
        self.messages = []
        return self

    def to_messages(self) -> list[dict]:
        result = []
        if self.system:
            result.append({"role": "system", "content": self.system})
        result.extend(m.to_dict() for m in self.messages)
        return result

    def __len__(self) -> int:
        return len(self.messages)


# ════════════════════════════════════════════════════════════════════════════
# MAIN CLIENT CLASS
# ════════════════════════════════════════════════════════════════════════════

class OllamaClient:
    """
    Client for a local Ollama server.

    Provides:
    - Connection test, version and health check
    - Model listing (cached), details and running models
    - Generation and chat (blocking or streaming)
    - Embeddings and text similarity

    Every request opens a short-lived httpx.Client. Pass ``transport`` to
    route requests somewhere else (tests use httpx.MockTransport).

    Attributes:
    ----------
    base_url : str
        Server URL without trailing slash.
    timeout, connect_timeout : float
        Total and connect timeouts, in seconds.
    validate_model : bool
        Check model names against the server list in select_model().
    on_request_start, on_request_end : Callable[[str], None] or None
        Called with the operation name ("generate", "chat", "embed", ...)
        around each request. The end callback runs even on error.

    Example:
    -------
    >>> ai = OllamaClient()
    >>> ai.select_model("llama3.2:latest").generate("Hello").text
    >>> ai = OllamaClient("http://gpu-box:11434", timeout=300)
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        validate_model: bool = False,
        transport: httpx.BaseTransport | None = None,
    ):
        self.base_url = resolve_base_url(base_url)
        self.timeout = timeout
        self.connect_timeout = connect_timeout
        self.validate_model = validate_model

        self._http_timeout = httpx.Timeout(timeout=timeout, connect=connect_timeout)
        self._transport = transport

        # Currently selected model (None until select_model() is called)
        self._model: str | None = None

        # Cached model list, populated on first access to .models
        self._available_models: list[ModelInfo] | None = None

        self.on_request_start: Callable[[str], None] | None = None
        self.on_request_end: Callable[[str], None] | None = None

    # ════════════════════════════════════════════════════════════════════
    # INTERNAL HTTP HELPERS
    # ════════════════════════════════════════════════════════════════════

    def _http_client(self) -> httpx.Client:
        return httpx.Client(
            base_url=self.base_url,
            timeout=self._http_timeout,
            transport=self._transport,
        )

    def _translate_error(self, exc: Exception, model: str | None = None) -> OllamaError:
        """Map an httpx exception to our exception hierarchy."""
        if isinstance(exc, httpx.ConnectTimeout):
            return TimeoutError(
                f"Connection to {self.base_url} timed out after {self.connect_timeout}s.\n"
                f"Is the server up? Try `ollama serve`, or raise --timeout."
            )
        if isinstance(exc, httpx.TimeoutException):
            return TimeoutError(
                f"Read timed out after {self.timeout}s.\n"
                f"The model may still be loading (cold start). Try:\n"
                f"  - Waiting a moment and retrying\n"
                f"  - Increasing timeout: OllamaClient(timeout=300)"
            )
        if isinstance(exc, httpx.ConnectError):
            return ConnectionError(
                f"Could not connect to Ollama at {self.base_url}\n"
                f"Possible causes:\n"
                f"  - The server is not running (start it with `ollama serve`)\n"
                f"  - {ENV_HOST} points at the wrong host or port\n"
                f"Details: {exc}"
            )
        if isinstance(exc, httpx.HTTPStatusError):
            status = exc.response.status_code
            detail = _error_detail(exc.response)
            if status == 404 and model:
                return ModelNotFoundError(
                    f"Model '{model}' not found on {self.base_url}.\n"
                    f"Pull it first: ollama pull {model}\n"
                    f"Server said: {detail}"
                )
            return APIError(f"HTTP error {status}: {detail}", status_code=status)
        if isinstance(exc, httpx.HTTPError):
            return ConnectionError(f"HTTP transport error talking to {self.base_url}: {exc}")
        return OllamaError(str(exc))

    def _request(
        self,
        method: str,
        path: str,
        operation: str,
        payload: dict | None = None,
        model: str | None = None,
    ) -> httpx.Response:
        """Send one request, run the callbacks, translate failures."""
        if self.on_request_start:
            self.on_request_start(operation)
        try:
            with self._http_client() as http:
                resp = http.request(method, path, json=payload)
            resp.raise_for_status()
            return resp
        except httpx.HTTPError as e:
            raise self._translate_error(e, model=model) from e
        finally:
            if self.on_request_end:
                self.on_request_end(operation)

    def _request_json(
        self,
        method: str,
        path: str,
        operation: str,
        payload: dict | None = None,
        model: str | None = None,
    ) -> dict:
        resp = self._request(method, path, operation, payload=payload, model=model)
        try:
            data = resp.json()
        except (json.JSONDecodeError, ValueError) as e:
            raise ResponseFormatError(
                f"Expected JSON from {path}, got: {resp.text[:200]!r}"
            ) from e
        if not isinstance(data, dict):
            raise ResponseFormatError(f"Expected a JSON object from {path}, got {type(data).__name__}")
        return data

    def _stream(
        self,
        path: str,
        operation: str,
        payload: dict,
        model: str | None = None,
    ) -> Iterator[dict]:
        """POST with stream=true and yield each newline-delimited JSON chunk."""
        if self.on_request_start:
            self.on_request_start(operation)
        try:
            with self._http_client() as http:
                with http.stream("POST", path, json=payload) as resp:
                    if resp.is_error:
                        resp.read()
                    resp.raise_for_status()
                    for line in resp.iter_lines():
                        if not line.strip():
                            continue
                        try:
                            chunk = json.loads(line)
                        except json.JSONDecodeError as e:
                            raise ResponseFormatError(f"Bad stream chunk: {line[:200]!r}") from e
                        if "error" in chunk:
                            raise APIError(f"Stream error: {chunk['error']}")
                        yield chunk
                        if chunk.get("done"):
                            break
        except httpx.HTTPError as e:
            raise self._translate_error(e, model=model) from e
        finally:
            if self.on_request_end:
                self.on_request_end(operation)

    @staticmethod
    def _build_payload(base: dict, system: str | None, kwargs: dict) -> dict:
        """Split keyword arguments into top-level fields and sampling options."""
        payload = dict(base)
        if system:
            payload["system"] = system
        options = dict(kwargs.pop("options", None) or {})
        for key, value in kwargs.items():
            if value is None:
                continue
            if key in _TOP_LEVEL_KEYS:
                payload[key] = value
            else:
                options[key] = value
        if options:
            payload["options"] = options
        return payload

    # ════════════════════════════════════════════════════════════════════
    # CONNECTION
    # ════════════════════════════════════════════════════════════════════

    def test_connection(self) -> bool:
        """
        Check that the server answers on its root URL.

        Returns True when it responds with a 2xx status, False when it is
        unreachable or answers with an error. Never raises OllamaError.
        """
        try:
            resp = self._request("GET", "/", "test_connection")
        except OllamaError as e:
            logger.info(f"Ollama not reachable at {self.base_url}: {e}")
            return False
        logger.info(f"Ollama at {self.base_url}: {resp.text.strip() or resp.status_code}")
        return True

    def version(self) -> str:
        data = self._request_json("GET", "/api/version", "version")
        return str(data.get("version", ""))

    # ════════════════════════════════════════════════════════════════════
    # MODEL MANAGEMENT
    # ════════════════════════════════════════════════════════════════════
    #
    # The model list is cached after the first fetch; refresh_models()
    # forces a new one.
    #
    # ════════════════════════════════════════════════════════════════════

    def list_models(self) -> list[ModelInfo]:
        """
        Locally available models with their metadata (cached).

        Returns:
        -------
        list[ModelInfo]
            Sorted by name.
        """
        if self._available_models is None:
            self._fetch_models()
        return list(self._available_models)

    def _fetch_models(self) -> None:
        data = self._request_json("GET", "/api/tags", "list_models")
        if "models" not in data:
            raise ResponseFormatError(f"/api/tags response has no 'models' field: {sorted(data)}")
        self._available_models = sorted(
            (ModelInfo.from_dict(m) for m in data["models"] or []),
            key=lambda m: m.name,
        )
        logger.debug(f"Fetched {len(self._available_models)} models from {self.base_url}")

    @property
    def models(self) -> list[str]:
        """
        Sorted list of available model names (cached).

        Example:
        -------
        >>> ai.models
        ['codellama:7b', 'deepseek-coder:6.7b', 'llama3.2:latest', 'nomic-embed-text:latest']
        """
        return [m.name for m in self.list_models()]

    def refresh_models(self) -> list[str]:
        """Drop the cached model list and fetch it again."""
        self._available_models = None
        return self.models

    def show_model(self, model: str | None = None) -> dict:
        """Details for one model (/api/show): modelfile, parameters, template, details."""
        model = self._resolve_model(model)
        return self._request_json("POST", "/api/show", "show_model", payload={"model": model}, model=model)

    def running_models(self) -> list[ModelInfo]:
        """Models currently loaded in memory (/api/ps)."""
        data = self._request_json("GET", "/api/ps", "running_models")
        return [ModelInfo.from_dict(m) for m in data.get("models") or []]

    @property
    def model(self) -> str | None:
        """The currently selected model, or None."""
        return self._model

    @model.setter
    def model(self, model_id: str) -> None:
        if self.validate_model and model_id not in self.models:
            available = self.models
            raise ModelNotFoundError(
                f"Model '{model_id}' not found.\n"
                f"Available models ({len(available)}): {', '.join(available[:5])}"
                f"{'...' if len(available) > 5 else ''}\n"
                f"Pull it first: ollama pull {model_id}"
            )
        self._model = model_id

    def select_model(self, model_id: str) -> OllamaClient:
        """
        Select the default model (fluent interface).

        Raises:
        ------
        ModelNotFoundError
            If validate_model=True and the model is not on the server.
        """
        self.model = model_id
        return self

    def _resolve_model(self, model: str | None) -> str:
        """Explicit parameter wins over the selected model."""
        model = model or self._model
        if not model:
            raise ValueError(
                "No model selected. Either:\n"
                "  1. Call ai.select_model('model-name') first\n"
                "  2. Pass model='model-name' to this method"
            )
        return model

    # ════════════════════════════════════════════════════════════════════
    # GENERATION
    # ════════════════════════════════════════════════════════════════════
    #
    # Common keyword arguments (all optional), sent in "options":
    # - temperature (float): randomness; 0.8 creative, 0.2 focused
    # - top_p (float): nucleus sampling cut-off
    # - num_predict (int): maximum tokens to generate
    # - seed (int), stop (list[str]), num_ctx (int), ...
    #
    # And at the top level:
    # - format ("json" or a JSON schema dict) for structured output
    # - keep_alive (str/int) how long the model stays loaded
    #
    # ════════════════════════════════════════════════════════════════════

    def generate(
        self,
        prompt: str,
        model: str | None = None,
        system: str | None = None,
        **kwargs,
    ) -> GenerateResponse:
        """
        Single-prompt completion via /api/generate.

        Parameters:
        ----------
        prompt : str
            The prompt text.
        model : str, optional
            Model to use. Falls back to the selected model.
        system : str, optional
            System prompt overriding the one in the Modelfile.
        **kwargs
            Sampling options and top-level fields, see above.

        Returns:
        -------
        GenerateResponse

        Example:
        -------
        >>> resp = ai.generate(
        ...     "Write a short story about double-entry bookkeeping",
        ...     model="llama3.2:latest", temperature=0.8, top_p=0.9, num_predict=300,
        ... )
        >>> print(resp.text)
        """
        model = self._resolve_model(model)
        payload = self._build_payload(
            {"model": model, "prompt": prompt, "stream": False}, system, kwargs
        )
        data = self._request_json("POST", "/api/generate", "generate", payload=payload, model=model)
        return GenerateResponse.from_dict(data)

    def generate_stream(
        self,
        prompt: str,
        model: str | None = None,
        system: str | None = None,
        **kwargs,
    ) -> Iterator[str]:
        """
        Stream a completion, yielding text fragments as they arrive.

        >>> for chunk in ai.generate_stream("Tell me a story"):
        ...     print(chunk, end="", flush=True)
        """
        model = self._resolve_model(model)
        payload = self._build_payload(
            {"model": model, "prompt": prompt, "stream": True}, system, kwargs
        )
        for chunk in self._stream("/api/generate", "generate_stream", payload, model=model):
            text = chunk.get("response")
            if text:
                yield text

    # ════════════════════════════════════════════════════════════════════
    # CHAT
    # ════════════════════════════════════════════════════════════════════

    @staticmethod
    def _message_dicts(messages: list[dict] | list[ChatMessage]) -> list[dict]:
        return [m.to_dict() if isinstance(m, ChatMessage) else dict(m) for m in messages]

    def chat(
        self,
        messages: list[dict] | list[ChatMessage],
        model: str | None = None,
        **kwargs,
    ) -> ChatResponse:
        """
        Chat completion over a message list via /api/chat.

        Parameters:
        ----------
        messages : list[dict] or list[ChatMessage]
            Conversation so far; roles 'system', 'user', 'assistant'.
        model : str, optional
            Model to use. Falls back to the selected model.
        **kwargs
            Sampling options and top-level fields (format, keep_alive, ...).

        Example:
        -------
        >>> resp = ai.chat([
        ...     ChatMessage.system("You are a helpful data science tutor."),
        ...     ChatMessage.user("How do I handle missing values in my dataset?"),
        ... ])
        >>> resp.model, resp.created_at, resp.role
        >>> print(resp.content)
        """
        model = self._resolve_model(model)
        if not messages:
            raise ValueError("chat() needs at least one message")
        payload = self._build_payload(
            {"model": model, "messages": self._message_dicts(messages), "stream": False},
            None,
            kwargs,
        )
        data = self._request_json("POST", "/api/chat", "chat", payload=payload, model=model)
        return ChatResponse.from_dict(data)

    def ask(
        self,
        prompt: str,
        model: str | None = None,
        system: str | None = None,
        **kwargs,
    ) -> ChatResponse:
        """Single-turn chat: optional system message plus one user message."""
        messages = []
        if system:
            messages.append(ChatMessage.system(system))
        messages.append(ChatMessage.user(prompt))
        return self.chat(messages, model=model, **kwargs)

    def chat_stream(
        self,
        messages: list[dict] | list[ChatMessage],
        model: str | None = None,
        **kwargs,
    ) -> Iterator[str]:
        """Stream a chat reply, yielding content fragments."""
        model = self._resolve_model(model)
        if not messages:
            raise ValueError("chat_stream() needs at least one message")
        payload = self._build_payload(
            {"model": model, "messages": self._message_dicts(messages), "stream": True},
            None,
            kwargs,
        )
        for chunk in self._stream("/api/chat", "chat_stream", payload, model=model):
            text = (chunk.get("message") or {}).get("content")
            if text:
                yield text

    def chat_conversation(
        self,
        conversation: Conversation,
        model: str | None = None,
        stream: bool = False,
        auto_update: bool = True,
        **kwargs,
    ) -> ChatResponse | Iterator[str]:
        """
        Chat using a Conversation that keeps the history.

        With stream=False and auto_update=True the assistant reply is
        appended to the conversation. When streaming, the caller has to add
        the reply itself once the stream is consumed.
        """
        messages = conversation.to_messages()
        if stream:
            return self.chat_stream(messages, model=model, **kwargs)

        response = self.chat(messages, model=model, **kwargs)
        if auto_update:
            conversation.add_assistant(response.content)
        return response

    # ════════════════════════════════════════════════════════════════════
    # EMBEDDINGS
    # ════════════════════════════════════════════════════════════════════

    def embed(
        self,
        text: str | list[str],
        model: str | None = None,
    ) -> list[float] | list[list[float]]:
        """
        Embedding vector(s) for text.

        A single string returns one vector; a list returns one vector per
        item, in order.

        >>> vec = ai.embed("I love R and data science", model="nomic-embed-text:latest")
        >>> len(vec)
        768
        """
        response = self.embed_complete(text, model=model)
        if isinstance(text, str):
            return response.embeddings[0]
        return response.embeddings

    def embed_complete(
        self,
        text: str | list[str],
        model: str | None = None,
    ) -> EmbeddingResponse:
        """Embeddings with metadata (dimension, token count, raw body)."""
        model = self._resolve_model(model)
        texts = [text] if isinstance(text, str) else list(text)
        if not texts:
            raise ValueError("Cannot embed an empty list of texts")

        data = self._request_json(
            "POST", "/api/embed", "embed", payload={"model": model, "input": texts}, model=model
        )
        embeddings = data.get("embeddings")
        if not isinstance(embeddings, list):
            raise ResponseFormatError(f"Embed response has no 'embeddings' list: {sorted(data)}")
        if len(embeddings) != len(texts):
            raise ResponseFormatError(
                f"Asked for {len(texts)} embeddings, got {len(embeddings)}"
            )

        return EmbeddingResponse(
            embeddings=embeddings,
            texts=texts,
            model=data.get("model", model),
            dimension=len(embeddings[0]) if embeddings else 0,
            prompt_tokens=data.get("prompt_eval_count"),
            raw_response=data,
        )

    def similarity(self, text1: str, text2: str, model: str | None = None) -> float:
        """
        Cosine similarity between the embeddings of two texts.

        Raises DegenerateVectorError if the model returns an all-zero vector.
        """
        embeddings = self.embed([text1, text2], model=model)
        return cosine_similarity(embeddings[0], embeddings[1])

    # ════════════════════════════════════════════════════════════════════
    # UTILITY METHODS
    # ════════════════════════════════════════════════════════════════════

    def health_check(self) -> dict:
        """
        Connection health summary.

        Returns:
        -------
        dict
            status ("connected" or "error"), base_url, version,
            model_count, selected_model, error.
        """
        result: dict[str, Any] = {
            "status": "unknown",
            "base_url": self.base_url,
            "version": None,
            "model_count": 0,
            "selected_model": self._model,
            "error": None,
        }
        try:
            result["version"] = self.version()
            result["model_count"] = len(self.refresh_models())
            result["status"] = "connected"
        except OllamaError as e:
            result["status"] = "error"
            result["error"] = str(e)
        return result

    def __repr__(self) -> str:
        model_count = len(self._available_models) if self._available_models is not None else "?"
        return f"OllamaClient(base_url={self.base_url}, model={self._model}, available={model_count} models)"


def _error_detail(response: httpx.Response) -> str:
    """Pull the "error" field out of an Ollama error body, else the raw text."""
    try:
        body = response.json()
    except ValueError:
        return response.text.strip()[:300]
    if isinstance(body, dict) and "error" in body:
        return str(body["error"])
    return response.text.strip()[:300]
