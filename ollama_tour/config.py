"""
Configuration for ollama-tour.

Central configuration for the server connection, the models each tour
section uses, prompts, retry behaviour, embedding texts, batch topics and
the report viewer.

There are two ways to customize a run:

1. **Edit this file directly**: change defaults in the dataclasses below.
2. **Use a YAML profile**: pass ``--profile profiles/my-setup.yaml`` on the
   CLI. Any section present in the YAML overrides the defaults; missing
   sections keep them.

The server address also honours the ``OLLAMA_HOST`` environment variable,
and CLI flags (``--host``, ``--timeout``) override everything.
"""

from dataclasses import dataclass, field, fields, replace
from pathlib import Path

from .ollama_client import DEFAULT_CONNECT_TIMEOUT, DEFAULT_TIMEOUT, resolve_base_url


@dataclass
class ServerConfig:
    """Where the Ollama server lives and how long to wait for it."""
    base_url: str = field(default_factory=resolve_base_url)
    timeout: float = DEFAULT_TIMEOUT
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT


@dataclass
class ModelsConfig:
    """Which model each part of the tour talks to."""
    chat_model: str = "llama3.2:latest"
    code_model: str = "codellama:7b"
    explain_model: str = "deepseek-coder:6.7b"
    embed_model: str = "nomic-embed-text:latest"

    # Models that answer the same question in the comparison section
    comparison_models: list[str] = field(default_factory=lambda: [
        "llama3.2:latest",
        "deepseek-coder:6.7b",
    ])


@dataclass
class SamplingPreset:
    """A named set of sampling options for creative generation."""
    name: str
    temperature: float
    top_p: float
    num_predict: int = 300

    def options(self) -> dict:
        return {
            "temperature": self.temperature,
            "top_p": self.top_p,
            "num_predict": self.num_predict,
        }


@dataclass
class PromptsConfig:
    """Prompt text for each tour section."""
    simple: str = "Explain quantum computing in simple terms for a 10-year-old"
    chat: str = "I'm planning a trip to Norway. What are 3 must-see places?"
    code_python: str = (
        "Write a Python function that calculates the following Financial metrics: "
        "NPV, IRR, and Payback Period for a given cash flow series"
    )
    code_r: str = (
        "Write an R function that creates a beautiful ggplot2 visualization "
        "of the penguins dataset"
    )
    code_to_explain: str = (
        "library(dplyr)\n"
        "iris %>% \n"
        "  group_by(Species) %>% \n"
        "  summarise(avg_length = mean(Sepal.Length), \n"
        "            count = n()) %>% \n"
        "  arrange(desc(avg_length))"
    )
    creative: str = (
        "Write a short story about the origin and the development of the "
        "double entry system of Accounting"
    )
    structured: str = (
        "Analyze the pros and cons of remote work vs office work. "
        "Present your answer in a structured format with clear headings."
    )
    comparison: str = (
        "What are the key differences between machine learning and artificial intelligence?"
    )
    tutor_system: str = (
        "You are a helpful data science tutor. Always provide practical examples "
        "and suggest R code when relevant."
    )
    tutor_question: str = "How do I handle missing values in my dataset?"
    robust: str = "What is the capital of Norway?"

    creative_presets: list[SamplingPreset] = field(default_factory=lambda: [
        SamplingPreset(name="creative", temperature=0.8, top_p=0.9, num_predict=300),
        SamplingPreset(name="focused", temperature=0.2, top_p=0.1, num_predict=300),
    ])


@dataclass
class RetryConfig:
    """Fixed-count, fixed-delay retry for robust generation."""
    max_retries: int = 3
    retry_delay: float = 1.0


@dataclass
class EmbeddingConfig:
    """Texts compared in the embeddings section."""
    texts: list[str] = field(default_factory=lambda: [
        "I love R and data science",
        "I went to the zoo and looked at the wild animals.",
        "I think that the Tiger is the most awsome animal in the world",
        "In Africa you will find wild lions as well as elephants.",
    ])

    # Pairs (1-based, as shown in the report) called out individually
    highlight_pairs: list[tuple[int, int]] = field(default_factory=lambda: [
        (1, 2), (1, 3), (2, 3), (3, 4),
    ])

    # Decimal places for displayed scores
    decimals: int = 3


@dataclass
class BatchConfig:
    """Topics processed in the batch section."""
    topics: list[str] = field(default_factory=lambda: [
        "Climate change",
        "Artificial Intelligence",
        "Space exploration",
    ])
    prompt_template: str = "Explain {topic} in exactly 2 sentences"
    num_predict: int = 100


@dataclass
class ViewerConfig:
    """Web viewer settings."""
    host: str = "127.0.0.1"
    port: int = 5000
    debug: bool = False


@dataclass
class Config:
    """Master configuration combining all settings."""
    server: ServerConfig = field(default_factory=ServerConfig)
    models: ModelsConfig = field(default_factory=ModelsConfig)
    prompts: PromptsConfig = field(default_factory=PromptsConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    embeddings: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    batch: BatchConfig = field(default_factory=BatchConfig)
    viewer: ViewerConfig = field(default_factory=ViewerConfig)

    report_title: str = "Ollama Tour"
    results_dir: Path = field(default_factory=lambda: Path("data/reports"))

    def batch_prompts(self) -> dict[str, str]:
        """Topic -> prompt, in topic order."""
        return {
            topic: self.batch.prompt_template.format(topic=topic)
            for topic in self.batch.topics
        }


# ── Global default config ──
DEFAULT_CONFIG = Config()


# ════════════════════════════════════════════════════════════════════════════
# YAML PROFILE LOADER
# ════════════════════════════════════════════════════════════════════════════


def _merge_section(current, overrides: dict, section: str):
    """Return a copy of dataclass ``current`` with known keys from ``overrides``."""
    if not isinstance(overrides, dict):
        raise ValueError(f"Section '{section}' must be a mapping, got {type(overrides).__name__}")
    known = {f.name for f in fields(current)}
    unknown = sorted(set(overrides) - known)
    if unknown:
        raise ValueError(f"Unknown keys in section '{section}': {', '.join(unknown)}")
    return replace(current, **overrides)


def load_profile_yaml(yaml_path: str | Path) -> Config:
    """
    Load a YAML profile and return a Config with its values applied.

    Recognised top-level sections: server, models, prompts, retry,
    embeddings, batch, viewer, plus the scalars report_title and
    results_dir. Example::

        server:
          base_url: http://gpu-box:11434
          timeout: 300
        models:
          chat_model: mistral:latest
          comparison_models: [mistral:latest, llama3.2:latest]
        prompts:
          creative_presets:
            - {name: wild, temperature: 1.2, top_p: 0.95}
        embeddings:
          texts: ["cats", "dogs", "stock markets"]
          highlight_pairs: [[1, 2], [1, 3]]

    Raises:
        FileNotFoundError: If the YAML file doesn't exist.
        ValueError: If the YAML is empty, not a mapping, or has unknown keys.
    """
    import yaml

    yaml_path = Path(yaml_path)
    if not yaml_path.exists():
        raise FileNotFoundError(f"Profile not found: {yaml_path}")

    with open(yaml_path) as f:
        data = yaml.safe_load(f)

    if not data or not isinstance(data, dict):
        raise ValueError(f"Empty or invalid YAML profile: {yaml_path}")

    config = Config()

    if "server" in data:
        server = dict(data["server"] or {})
        if "base_url" in server:
            server["base_url"] = resolve_base_url(server["base_url"])
        config.server = _merge_section(config.server, server, "server")

    if "models" in data:
        config.models = _merge_section(config.models, data["models"] or {}, "models")

    if "prompts" in data:
        prompts = dict(data["prompts"] or {})
        if "creative_presets" in prompts:
            prompts["creative_presets"] = [
                SamplingPreset(**preset) for preset in prompts["creative_presets"]
            ]
        config.prompts = _merge_section(config.prompts, prompts, "prompts")

    if "retry" in data:
        config.retry = _merge_section(config.retry, data["retry"] or {}, "retry")

    if "embeddings" in data:
        emb = dict(data["embeddings"] or {})
        if "highlight_pairs" in emb:
            # YAML gives lists; normalise to tuples
            emb["highlight_pairs"] = [tuple(int(x) for x in pair) for pair in emb["highlight_pairs"]]
        config.embeddings = _merge_section(config.embeddings, emb, "embeddings")

    if "batch" in data:
        config.batch = _merge_section(config.batch, data["batch"] or {}, "batch")

    if "viewer" in data:
        config.viewer = _merge_section(config.viewer, data["viewer"] or {}, "viewer")

    if "report_title" in data:
        config.report_title = str(data["report_title"])
    if "results_dir" in data:
        config.results_dir = Path(data["results_dir"])

    return config
