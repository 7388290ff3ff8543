"""
The twelve tour sections.

Each section is a function ``(client, config) -> SectionResult`` registered
with ``@section(key, title)``. Registration order is execution order, so the
order of definitions below is the order of the tour.

Sections raise on failure; run_tour() records the error and moves on.
"""

import json
import logging
import time
from dataclasses import dataclass
from typing import Callable

from ..config import Config
from ..llm import LLMClient
from ..models import ResponseItem, SectionResult
from ..ollama_client import ChatMessage, ChatResponse, GenerateResponse, OllamaError
from ..similarity import SimilarityScorer

logger = logging.getLogger(__name__)

SectionFunc = Callable[[LLMClient, Config], SectionResult]


@dataclass(frozen=True)
class Section:
    key: str
    title: str
    run: SectionFunc


SECTIONS: dict[str, Section] = {}


def section(key: str, title: str):
    """Register a section function under ``key``."""
    def decorator(func: SectionFunc) -> SectionFunc:
        if key in SECTIONS:
            raise ValueError(f"Duplicate tour section: {key}")
        SECTIONS[key] = Section(key=key, title=title, run=func)
        return func
    return decorator


def section_keys() -> list[str]:
    return list(SECTIONS)


def response_metadata(response: GenerateResponse | ChatResponse) -> dict:
    """Model, timestamp and token counts from a generate or chat response."""
    meta = {
        "model": response.model,
        "created_at": response.created_at,
        "done_reason": response.done_reason,
        "prompt_tokens": response.prompt_tokens,
        "completion_tokens": response.completion_tokens,
        "total_duration": response.total_duration,
    }
    if isinstance(response, ChatResponse):
        meta["role"] = response.role
    return meta


def _generate_item(
    client: LLMClient, label: str, prompt: str, model: str, **options
) -> ResponseItem:
    started = time.perf_counter()
    response = client.ollama.generate(prompt, model=model, **options)
    return ResponseItem(
        label=label,
        prompt=prompt,
        response=response.text.strip(),
        model=response.model or model,
        elapsed=time.perf_counter() - started,
        metadata=response_metadata(response),
    )


# ════════════════════════════════════════════════════════════════════════════
# SECTIONS
# ════════════════════════════════════════════════════════════════════════════


@section("setup", "Basic setup and connection test")
def setup(client: LLMClient, config: Config) -> SectionResult:
    ollama = client.ollama
    # version() raises a ConnectionError with a hint when the server is down
    version = ollama.version()
    ollama.refresh_models()
    models = ollama.list_models()
    return SectionResult(
        key="setup",
        title=SECTIONS["setup"].title,
        response=f"Connected to Ollama {version} at {ollama.base_url} ({len(models)} models available)",
        data={
            "connected": True,
            "version": version,
            "base_url": ollama.base_url,
            "models": [m.to_dict() for m in models],
        },
    )


@section("generate", "Simple text generation")
def generate(client: LLMClient, config: Config) -> SectionResult:
    model = config.models.chat_model
    prompt = config.prompts.simple
    response = client.ollama.generate(prompt, model=model)
    return SectionResult(
        key="generate",
        title=SECTIONS["generate"].title,
        model=model,
        prompt=prompt,
        response=response.text.strip(),
        metadata=response_metadata(response),
    )


@section("chat", "Interactive chat conversation")
def chat(client: LLMClient, config: Config) -> SectionResult:
    model = config.models.chat_model
    prompt = config.prompts.chat
    response = client.chat([ChatMessage.user(prompt)], model=model)
    return SectionResult(
        key="chat",
        title=SECTIONS["chat"].title,
        model=model,
        prompt=prompt,
        response=response.content.strip(),
        metadata=response_metadata(response),
    )


@section("code", "Code generation")
def code(client: LLMClient, config: Config) -> SectionResult:
    model = config.models.code_model
    items = [
        _generate_item(client, "Python", config.prompts.code_python, model),
        _generate_item(client, "R", config.prompts.code_r, model),
    ]
    return SectionResult(
        key="code",
        title=SECTIONS["code"].title,
        model=model,
        items=items,
    )


@section("explain", "Code explanation")
def explain(client: LLMClient, config: Config) -> SectionResult:
    model = config.models.explain_model
    prompt = f"Explain this R code step by step:\n\n{config.prompts.code_to_explain}"
    response = client.ollama.generate(prompt, model=model)
    return SectionResult(
        key="explain",
        title=SECTIONS["explain"].title,
        model=model,
        prompt=prompt,
        response=response.text.strip(),
        metadata=response_metadata(response),
    )


@section("creative", "Creative writing with options")
def creative(client: LLMClient, config: Config) -> SectionResult:
    model = config.models.chat_model
    prompt = config.prompts.creative
    items = []
    for preset in config.prompts.creative_presets:
        item = _generate_item(client, preset.name, prompt, model, **preset.options())
        item.metadata["options"] = preset.options()
        items.append(item)
    return SectionResult(
        key="creative",
        title=SECTIONS["creative"].title,
        model=model,
        prompt=prompt,
        items=items,
    )


STRUCTURED_JSON_PROMPT = (
    "Analyze the pros and cons of remote work vs office work. "
    'Respond as a JSON object with the keys "remote_work" and "office_work"; '
    'each maps to an object with "pros" and "cons" lists of short strings.'
)


@section("structured", "Structured data analysis")
def structured(client: LLMClient, config: Config) -> SectionResult:
    model = config.models.chat_model
    prompt = config.prompts.structured
    headings = _generate_item(client, "Headings", prompt, model)

    # A failed JSON variant is recorded on its item; the section still passes
    started = time.perf_counter()
    json_item = ResponseItem(label="JSON", prompt=STRUCTURED_JSON_PROMPT, model=model)
    parsed = None
    try:
        parsed = client.query_json(STRUCTURED_JSON_PROMPT, model=model)
        json_item.response = json.dumps(parsed, indent=2, ensure_ascii=False)
    except (OllamaError, ValueError) as e:
        logger.warning(f"Structured JSON variant failed: {e}")
        json_item.error = str(e)
    json_item.elapsed = time.perf_counter() - started

    return SectionResult(
        key="structured",
        title=SECTIONS["structured"].title,
        model=model,
        prompt=prompt,
        response=headings.response,
        metadata=headings.metadata,
        items=[json_item],
        data={"parsed": parsed} if parsed is not None else {},
    )


@section("compare", "Multi-model comparison")
def compare(client: LLMClient, config: Config) -> SectionResult:
    prompt = config.prompts.comparison
    results = client.compare_models(prompt, config.models.comparison_models)
    items = [
        ResponseItem(
            label=r["model"],
            prompt=prompt,
            response=r["response"],
            model=r["model"],
            error=r["error"],
            elapsed=r["elapsed"],
        )
        for r in results
    ]
    if items and all(not item.ok for item in items):
        raise OllamaError(f"All {len(items)} models failed: {items[0].error}")
    return SectionResult(
        key="compare",
        title=SECTIONS["compare"].title,
        prompt=prompt,
        items=items,
    )


@section("embeddings", "Embeddings and similarity")
def embeddings(client: LLMClient, config: Config) -> SectionResult:
    model = config.models.embed_model
    texts = config.embeddings.texts
    decimals = config.embeddings.decimals

    vectors = client.embed_texts(texts, model=model)
    labels = [f"text{i}" for i in range(1, len(texts) + 1)]
    matrix = SimilarityScorer().score(vectors, labels=labels)

    highlights = []
    for first, second in config.embeddings.highlight_pairs:
        if not (1 <= first <= len(texts) and 1 <= second <= len(texts)):
            logger.warning(f"Skipping highlight pair {first}-{second}: only {len(texts)} texts")
            continue
        highlights.append({
            "pair": f"{first}-{second}",
            "first": texts[first - 1],
            "second": texts[second - 1],
            "score": round(matrix[first - 1, second - 1], decimals),
        })

    return SectionResult(
        key="embeddings",
        title=SECTIONS["embeddings"].title,
        model=model,
        similarity=matrix.to_dict(decimals=decimals),
        highlights=highlights,
        data={
            "texts": list(texts),
            "dimension": len(vectors[0]) if vectors else 0,
        },
    )


@section("batch", "Batch processing")
def batch(client: LLMClient, config: Config) -> SectionResult:
    model = config.models.chat_model
    prompts = config.batch_prompts()
    answers = client.batch_generate(prompts, model=model, num_predict=config.batch.num_predict)
    items = [
        ResponseItem(label=topic, prompt=prompts[topic], response=text, model=model)
        for topic, text in answers.items()
    ]
    return SectionResult(
        key="batch",
        title=SECTIONS["batch"].title,
        model=model,
        items=items,
        data={"num_predict": config.batch.num_predict},
    )


@section("system", "Chat with a system prompt")
def system(client: LLMClient, config: Config) -> SectionResult:
    model = config.models.chat_model
    system_prompt = config.prompts.tutor_system
    question = config.prompts.tutor_question
    response = client.ask(question, system=system_prompt, model=model)
    return SectionResult(
        key="system",
        title=SECTIONS["system"].title,
        model=model,
        system=system_prompt,
        prompt=question,
        response=response.content.strip(),
        metadata=response_metadata(response),
    )


@section("robust", "Error handling and robustness")
def robust(client: LLMClient, config: Config) -> SectionResult:
    model = config.models.chat_model
    prompt = config.prompts.robust
    text = client.query(
        prompt,
        model=model,
        max_retries=config.retry.max_retries,
        retry_delay=config.retry.retry_delay,
    )
    return SectionResult(
        key="robust",
        title=SECTIONS["robust"].title,
        model=model,
        prompt=prompt,
        response=text,
        data={
            "max_retries": config.retry.max_retries,
            "retry_delay": config.retry.retry_delay,
        },
    )
