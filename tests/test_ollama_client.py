"""
Tests for the Ollama HTTP client, against an in-memory server.

Run with: pytest tests/test_ollama_client.py
"""

import httpx
import pytest

from ollama_tour.ollama_client import (
    APIError,
    ChatMessage,
    ConnectionError,
    Conversation,
    GenerateResponse,
    ModelInfo,
    ModelNotFoundError,
    OllamaClient,
    OllamaError,
    ResponseFormatError,
    TimeoutError,
    resolve_base_url,
)

from .conftest import BASE_URL, CREATED_AT


def _client_raising(exc_factory) -> OllamaClient:
    def handler(request):
        raise exc_factory(request)
    return OllamaClient(base_url=BASE_URL, transport=httpx.MockTransport(handler))


class TestBaseUrl:
    """Tests for server URL resolution."""

    def test_default(self, monkeypatch):
        monkeypatch.delenv("OLLAMA_HOST", raising=False)
        assert resolve_base_url() == "http://localhost:11434"

    def test_env_var(self, monkeypatch):
        monkeypatch.setenv("OLLAMA_HOST", "gpu-box:11434")
        assert resolve_base_url() == "http://gpu-box:11434"

    def test_explicit_wins_over_env(self, monkeypatch):
        monkeypatch.setenv("OLLAMA_HOST", "gpu-box:11434")
        assert resolve_base_url("https://remote.example/") == "https://remote.example"


class TestConnection:
    """Tests for connection checks and error translation."""

    def test_connection_ok(self, ollama):
        assert ollama.test_connection() is True

    def test_connection_refused_returns_false(self):
        client = _client_raising(lambda r: httpx.ConnectError("refused", request=r))
        assert client.test_connection() is False

    def test_version(self, ollama):
        assert ollama.version() == "0.5.7"

    def test_connect_error_translated(self):
        client = _client_raising(lambda r: httpx.ConnectError("refused", request=r))
        with pytest.raises(ConnectionError, match="ollama serve"):
            client.version()

    def test_timeout_translated(self):
        client = _client_raising(lambda r: httpx.ReadTimeout("slow", request=r))
        with pytest.raises(TimeoutError):
            client.generate("hi", model="llama3.2:latest")

    def test_server_error_translated(self, ollama, fake):
        fake.fail_next["/api/generate"] = 1
        with pytest.raises(APIError) as exc_info:
            ollama.generate("hi", model="llama3.2:latest")
        assert exc_info.value.status_code == 500
        assert "llama runner process has terminated" in str(exc_info.value)

    def test_missing_model(self, ollama, fake):
        fake.missing_models.add("nope:latest")
        with pytest.raises(ModelNotFoundError, match="ollama pull nope:latest"):
            ollama.generate("hi", model="nope:latest")

    def test_all_errors_share_base(self):
        for exc in (ConnectionError, TimeoutError, ModelNotFoundError, APIError, ResponseFormatError):
            assert issubclass(exc, OllamaError)

    def test_request_callbacks(self, ollama):
        events = []
        ollama.on_request_start = lambda op: events.append(("start", op))
        ollama.on_request_end = lambda op: events.append(("end", op))
        ollama.version()
        assert events == [("start", "version"), ("end", "version")]

    def test_health_check(self, ollama):
        result = ollama.health_check()
        assert result["status"] == "connected"
        assert result["version"] == "0.5.7"
        assert result["model_count"] == 4
        assert result["error"] is None

    def test_health_check_down(self):
        client = _client_raising(lambda r: httpx.ConnectError("refused", request=r))
        result = client.health_check()
        assert result["status"] == "error"
        assert "Could not connect" in result["error"]


class TestModels:
    """Tests for model listing and selection."""

    def test_list_models_sorted(self, ollama):
        names = ollama.models
        assert names == sorted(names)
        assert "llama3.2:latest" in names

    def test_model_info_details(self, ollama):
        info = {m.name: m for m in ollama.list_models()}["llama3.2:latest"]
        assert isinstance(info, ModelInfo)
        assert info.family == "llama"
        assert info.parameter_size == "3.2B"
        assert info.size_gb == pytest.approx(2.019, abs=1e-3)

    def test_list_is_cached(self, ollama, fake):
        ollama.list_models()
        ollama.list_models()
        assert len(fake.calls("/api/tags")) == 1
        ollama.refresh_models()
        assert len(fake.calls("/api/tags")) == 2

    def test_running_models(self, ollama):
        assert [m.name for m in ollama.running_models()] == ["llama3.2:latest"]

    def test_show_model(self, ollama, fake):
        details = ollama.show_model("llama3.2:latest")
        assert details["details"]["family"] == "llama"
        assert fake.calls("/api/show") == [{"model": "llama3.2:latest"}]

    def test_no_model_selected(self, ollama):
        with pytest.raises(ValueError, match="No model selected"):
            ollama.generate("hi")

    def test_validate_model(self, fake):
        client = OllamaClient(base_url=BASE_URL, validate_model=True,
                              transport=httpx.MockTransport(fake.handler))
        client.select_model("codellama:7b")
        assert client.model == "codellama:7b"
        with pytest.raises(ModelNotFoundError):
            client.select_model("missing:1b")


class TestGenerate:
    """Tests for /api/generate."""

    def test_generate(self, ollama, fake):
        response = ollama.generate("Explain quantum computing", model="llama3.2:latest")

        assert isinstance(response, GenerateResponse)
        assert response.text == "[llama3.2:latest] Explain quantum computing"
        assert response.created_at == CREATED_AT
        assert response.prompt_tokens == 12
        assert response.completion_tokens == 34
        assert response.usage["eval_count"] == 34
        assert fake.calls("/api/generate")[0]["stream"] is False

    def test_options_nested(self, ollama, fake):
        ollama.generate(
            "story", model="llama3.2:latest", system="be brief",
            temperature=0.8, top_p=0.9, num_predict=300, format="json", keep_alive="5m",
        )
        payload = fake.calls("/api/generate")[0]
        assert payload["options"] == {"temperature": 0.8, "top_p": 0.9, "num_predict": 300}
        assert payload["format"] == "json"
        assert payload["keep_alive"] == "5m"
        assert payload["system"] == "be brief"

    def test_selected_model_used(self, ollama, fake):
        ollama.select_model("codellama:7b").generate("code please")
        assert fake.calls("/api/generate")[0]["model"] == "codellama:7b"

    def test_stream(self, ollama):
        chunks = list(ollama.generate_stream("Tell me a story", model="llama3.2:latest"))
        assert len(chunks) > 1
        assert "".join(chunks).strip() == "[llama3.2:latest] Tell me a story"

    def test_stream_error_chunk(self):
        def handler(request):
            return httpx.Response(200, content=b'{"error": "out of memory"}\n')
        client = OllamaClient(base_url=BASE_URL, transport=httpx.MockTransport(handler))
        with pytest.raises(APIError, match="out of memory"):
            list(client.generate_stream("hi", model="llama3.2:latest"))

    def test_missing_response_field(self):
        def handler(request):
            return httpx.Response(200, json={"model": "llama3.2:latest", "done": True})
        client = OllamaClient(base_url=BASE_URL, transport=httpx.MockTransport(handler))
        with pytest.raises(ResponseFormatError):
            client.generate("hi", model="llama3.2:latest")

    def test_non_json_body(self):
        def handler(request):
            return httpx.Response(200, text="<html>proxy error</html>")
        client = OllamaClient(base_url=BASE_URL, transport=httpx.MockTransport(handler))
        with pytest.raises(ResponseFormatError):
            client.version()


class TestChat:
    """Tests for /api/chat."""

    def test_chat(self, ollama, fake):
        response = ollama.chat(
            [ChatMessage.system("You are a tutor."), ChatMessage.user("Missing values?")],
            model="llama3.2:latest",
        )
        assert response.content == "[llama3.2:latest] Missing values?"
        assert response.role == "assistant"
        assert response.created_at == CREATED_AT
        messages = fake.calls("/api/chat")[0]["messages"]
        assert messages[0] == {"role": "system", "content": "You are a tutor."}

    def test_chat_accepts_dicts(self, ollama):
        response = ollama.chat([{"role": "user", "content": "hi"}], model="llama3.2:latest")
        assert response.content.endswith("hi")

    def test_chat_requires_messages(self, ollama):
        with pytest.raises(ValueError):
            ollama.chat([], model="llama3.2:latest")

    def test_ask_with_system(self, ollama, fake):
        ollama.ask("Norway?", model="llama3.2:latest", system="Be brief")
        roles = [m["role"] for m in fake.calls("/api/chat")[0]["messages"]]
        assert roles == ["system", "user"]

    def test_chat_stream(self, ollama):
        chunks = list(ollama.chat_stream([ChatMessage.user("hello there")], model="llama3.2:latest"))
        assert "".join(chunks) == "[llama3.2:latest] hello there"

    def test_conversation_history(self, ollama, fake):
        conv = Conversation(system="tutor")
        conv.add_user("first")
        ollama.chat_conversation(conv, model="llama3.2:latest")
        conv.add_user("second")
        ollama.chat_conversation(conv, model="llama3.2:latest")

        assert len(conv) == 4
        assert conv.messages[1].role == "assistant"
        sent = fake.calls("/api/chat")[1]["messages"]
        assert [m["role"] for m in sent] == ["system", "user", "assistant", "user"]

    def test_conversation_clear_keeps_system(self):
        conv = Conversation(system="tutor").add_user("a").add_assistant("b")
        conv.clear()
        assert conv.to_messages() == [{"role": "system", "content": "tutor"}]


class TestEmbed:
    """Tests for /api/embed and similarity."""

    def test_embed_single(self, ollama, fake):
        fake.embeddings["cat"] = [0.1, 0.2, 0.3]
        assert ollama.embed("cat", model="nomic-embed-text:latest") == [0.1, 0.2, 0.3]

    def test_embed_many_in_order(self, ollama, fake):
        fake.embeddings.update({"a": [1.0, 0.0], "b": [0.0, 1.0]})
        assert ollama.embed(["a", "b"], model="nomic-embed-text:latest") == [[1.0, 0.0], [0.0, 1.0]]

    def test_embed_complete(self, ollama, fake):
        fake.embeddings["cat"] = [0.1, 0.2, 0.3]
        response = ollama.embed_complete("cat", model="nomic-embed-text:latest")
        assert response.dimension == 3
        assert response.texts == ["cat"]
        assert len(response) == 1

    def test_embed_empty(self, ollama):
        with pytest.raises(ValueError):
            ollama.embed([], model="nomic-embed-text:latest")

    def test_embed_count_mismatch(self):
        def handler(request):
            return httpx.Response(200, json={"embeddings": [[1.0]]})
        client = OllamaClient(base_url=BASE_URL, transport=httpx.MockTransport(handler))
        with pytest.raises(ResponseFormatError):
            client.embed(["a", "b"], model="nomic-embed-text:latest")

    def test_similarity(self, ollama, fake):
        fake.embeddings.update({"x": [1.0, 1.0], "y": [1.0, 0.0]})
        assert ollama.similarity("x", "y", model="nomic-embed-text:latest") == pytest.approx(0.7071, abs=1e-4)
