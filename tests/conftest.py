"""
Shared fixtures: an in-memory Ollama server behind httpx.MockTransport.

FakeOllama answers the endpoints the client uses, records every request,
and can be told which models are missing or which calls should fail.
"""

import json

import httpx
import pytest

from ollama_tour.config import Config
from ollama_tour.llm import LLMClient
from ollama_tour.ollama_client import OllamaClient

BASE_URL = "http://ollama.test:11434"

MODELS = [
    {
        "name": "llama3.2:latest",
        "size": 2019393189,
        "modified_at": "2025-01-10T09:00:00Z",
        "digest": "a80c4f17acd5",
        "details": {"family": "llama", "parameter_size": "3.2B", "quantization_level": "Q4_K_M", "format": "gguf"},
    },
    {
        "name": "nomic-embed-text:latest",
        "size": 274302450,
        "modified_at": "2025-01-09T09:00:00Z",
        "digest": "0a109f422b47",
        "details": {"family": "nomic-bert", "parameter_size": "137M", "quantization_level": "F16", "format": "gguf"},
    },
    {
        "name": "codellama:7b",
        "size": 3825910662,
        "modified_at": "2025-01-08T09:00:00Z",
        "digest": "8fdf8f752f6e",
        "details": {"family": "llama", "parameter_size": "7B", "quantization_level": "Q4_0", "format": "gguf"},
    },
    {
        "name": "deepseek-coder:6.7b",
        "size": 3827834503,
        "modified_at": "2025-01-07T09:00:00Z",
        "digest": "ce298d984115",
        "details": {"family": "llama", "parameter_size": "7B", "quantization_level": "Q4_0", "format": "gguf"},
    },
]

CREATED_AT = "2025-01-10T12:00:00.000000Z"


class FakeOllama:
    """Routes requests like an Ollama server would."""

    def __init__(self):
        self.requests: list[tuple[str, str, dict | None]] = []
        self.missing_models: set[str] = set()
        self.embeddings: dict[str, list[float]] = {}
        # path -> number of upcoming calls that answer 500
        self.fail_next: dict[str, int] = {}
        self.json_reply = json.dumps({
            "remote_work": {"pros": ["no commute"], "cons": ["isolation"]},
            "office_work": {"pros": ["collaboration"], "cons": ["commute"]},
        })

    # ── Helpers for assertions ──

    def calls(self, path: str) -> list[dict | None]:
        return [payload for _, p, payload in self.requests if p == path]

    # ── Handler ──

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        payload = json.loads(request.content) if request.content else None
        self.requests.append((request.method, path, payload))

        if self.fail_next.get(path):
            self.fail_next[path] -= 1
            return httpx.Response(500, json={"error": "llama runner process has terminated"})

        model = (payload or {}).get("model")
        if model and model in self.missing_models:
            return httpx.Response(404, json={"error": f"model '{model}' not found"})

        if path == "/":
            return httpx.Response(200, text="Ollama is running")
        if path == "/api/version":
            return httpx.Response(200, json={"version": "0.5.7"})
        if path == "/api/tags":
            return httpx.Response(200, json={"models": MODELS})
        if path == "/api/ps":
            return httpx.Response(200, json={"models": MODELS[:1]})
        if path == "/api/show":
            return httpx.Response(200, json={"modelfile": "FROM llama3.2", "details": MODELS[0]["details"]})
        if path == "/api/generate":
            return self._generate(payload)
        if path == "/api/chat":
            return self._chat(payload)
        if path == "/api/embed":
            return self._embed(payload)
        return httpx.Response(404, text="404 page not found")

    def _reply_text(self, payload: dict, prompt: str) -> str:
        if payload.get("format") == "json":
            return self.json_reply
        return f"[{payload['model']}] {prompt}"

    def _generate(self, payload: dict) -> httpx.Response:
        text = self._reply_text(payload, payload["prompt"])
        if payload.get("stream"):
            words = text.split(" ")
            lines = [
                json.dumps({"model": payload["model"], "response": w + " ", "done": False})
                for w in words
            ]
            lines.append(json.dumps({"model": payload["model"], "response": "", "done": True}))
            return httpx.Response(200, content=("\n".join(lines) + "\n").encode())
        return httpx.Response(200, json={
            "model": payload["model"],
            "created_at": CREATED_AT,
            "response": text,
            "done": True,
            "done_reason": "stop",
            "prompt_eval_count": 12,
            "eval_count": 34,
            "total_duration": 1_500_000_000,
        })

    def _chat(self, payload: dict) -> httpx.Response:
        last = payload["messages"][-1]["content"]
        text = self._reply_text(payload, last)
        if payload.get("stream"):
            lines = [
                json.dumps({"model": payload["model"], "message": {"role": "assistant", "content": part}, "done": False})
                for part in (text[: len(text) // 2], text[len(text) // 2:])
            ]
            lines.append(json.dumps({"model": payload["model"], "message": {"role": "assistant", "content": ""}, "done": True}))
            return httpx.Response(200, content=("\n".join(lines) + "\n").encode())
        return httpx.Response(200, json={
            "model": payload["model"],
            "created_at": CREATED_AT,
            "message": {"role": "assistant", "content": text},
            "done": True,
            "done_reason": "stop",
            "prompt_eval_count": 20,
            "eval_count": 40,
            "total_duration": 2_000_000_000,
        })

    def _embed(self, payload: dict) -> httpx.Response:
        inputs = payload["input"]
        if isinstance(inputs, str):
            inputs = [inputs]
        vectors = [self.embeddings.get(text, self._default_vector(text)) for text in inputs]
        return httpx.Response(200, json={"model": payload["model"], "embeddings": vectors, "prompt_eval_count": 8})

    @staticmethod
    def _default_vector(text: str) -> list[float]:
        return [float(len(text)), float(sum(map(ord, text)) % 97) + 1.0, 1.0]


@pytest.fixture
def fake() -> FakeOllama:
    return FakeOllama()


@pytest.fixture
def ollama(fake) -> OllamaClient:
    return OllamaClient(base_url=BASE_URL, transport=httpx.MockTransport(fake.handler))


@pytest.fixture
def llm(ollama) -> LLMClient:
    return LLMClient(model="llama3.2:latest", ollama=ollama)


@pytest.fixture
def config(tmp_path) -> Config:
    cfg = Config()
    cfg.server.base_url = BASE_URL
    cfg.retry.retry_delay = 0.0
    cfg.results_dir = tmp_path / "reports"
    return cfg


@pytest.fixture(autouse=True)
def no_sleep(monkeypatch):
    """Retries never really wait in tests."""
    monkeypatch.setattr("ollama_tour.llm.client.time.sleep", lambda seconds: None)
