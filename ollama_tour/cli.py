"""
Command-Line Interface for ollama-tour.

This module provides the CLI commands using Click:
- models: List models on the server
- generate: One-shot text generation (optionally streamed, with retries)
- chat: Single message or interactive chat session
- embed: Embeddings and the cosine-similarity matrix between texts
- health: Connection health check
- tour: Run the guided tour and save a report
- report: Re-render a saved report as HTML
- serve: Launch the report viewer

Usage:
    ollama-tour [--host URL] [--timeout SEC] [--profile YAML] [-v] <command> [options]

Exit codes: 0 on success, 1 on Ollama or similarity errors, 130 on Ctrl+C.
"""

import functools
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape

from . import __version__
from .config import Config, load_profile_yaml
from .llm import LLMClient
from .models import SectionResult
from .ollama_client import Conversation, OllamaError, resolve_base_url
from .report import (
    batch_table,
    load_report,
    models_table,
    render_html,
    save_report,
    similarity_table,
    summary_table,
)
from .tour import run_tour, section_keys

# Rich consoles for pretty output
console = Console()
err_console = Console(stderr=True)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

CHAT_HELP = """Commands:
  /clear    Forget the conversation so far
  /history  Show the conversation so far
  /help     Show this help
  exit      Leave the chat (also: quit, Ctrl+D)"""


def setup_logging(verbose: bool = False):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format=LOG_FORMAT,
        force=True,
    )


def make_client(config: Config, model: str | None = None) -> LLMClient:
    """Build an LLMClient from the server section of ``config``."""
    return LLMClient(
        model=model or config.models.chat_model,
        base_url=config.server.base_url,
        timeout=config.server.timeout,
        connect_timeout=config.server.connect_timeout,
    )


def cli_errors(func):
    """Turn library errors into ``Error: ...`` on stderr and the right exit code."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except KeyboardInterrupt:
            err_console.print("\n[yellow]Interrupted[/]")
            sys.exit(130)
        except (OllamaError, ValueError) as e:
            # SimilarityError is a ValueError
            err_console.print(f"[bold red]Error:[/] {escape(str(e))}", highlight=False)
            sys.exit(1)
    return wrapper


def _sampling_options(temperature, top_p, num_predict) -> dict:
    options = {}
    if temperature is not None:
        options["temperature"] = temperature
    if top_p is not None:
        options["top_p"] = top_p
    if num_predict is not None:
        options["num_predict"] = num_predict
    return options


@click.group()
@click.version_option(version=__version__)
@click.option("--host", default=None, help="Ollama server URL (default: $OLLAMA_HOST or http://localhost:11434)")
@click.option("--timeout", default=None, type=float, help="Request timeout in seconds")
@click.option("--profile", default=None, type=click.Path(exists=True, dir_okay=False, path_type=Path),
              help="YAML profile overriding the default configuration")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
@click.pass_context
def main(ctx, host: str | None, timeout: float | None, profile: Path | None, verbose: bool):
    """
    ollama-tour - A guided tour of a local Ollama server.

    List models, generate text, chat, compare embeddings, and run the full
    tutorial tour with a saved HTML report.
    """
    setup_logging(verbose)

    try:
        config = load_profile_yaml(profile) if profile else Config()
    except (FileNotFoundError, ValueError) as e:
        raise click.ClickException(str(e))

    if host:
        config.server.base_url = resolve_base_url(host)
    if timeout:
        config.server.timeout = timeout

    ctx.obj = config


# ════════════════════════════════════════════════════════════════════════════
# MODELS / HEALTH
# ════════════════════════════════════════════════════════════════════════════


@main.command()
@click.option("--filter", "name_filter", default=None, help="Only models whose name contains this")
@click.option("--json", "as_json", is_flag=True, help="Print JSON instead of a table")
@click.option("--count", is_flag=True, help="Print only the number of models")
@click.pass_obj
@cli_errors
def models(config: Config, name_filter: str | None, as_json: bool, count: bool):
    """
    List models available on the server.

    Example:
        ollama-tour models --filter llama
    """
    found = make_client(config).list_models()
    if name_filter:
        found = [m for m in found if name_filter.lower() in m.name.lower()]

    if count:
        click.echo(len(found))
    elif as_json:
        click.echo(json.dumps([m.to_dict() for m in found], indent=2))
    elif not found:
        console.print("[yellow]No models found.[/] Pull one with: ollama pull llama3.2")
    else:
        console.print(models_table(found))


@main.command()
@click.pass_obj
@cli_errors
def health(config: Config):
    """Check the connection to the Ollama server."""
    result = make_client(config).health_check()

    if result["status"] == "connected":
        console.print(f"[bold green]✓ Connected[/] to {result['base_url']}")
        console.print(f"  Version: {result['version']}")
        console.print(f"  Models:  {result['model_count']}")
    else:
        err_console.print(f"[bold red]✗ Cannot reach[/] {result['base_url']}")
        err_console.print(f"  {result['error']}", markup=False)
        sys.exit(1)


# ════════════════════════════════════════════════════════════════════════════
# GENERATION / CHAT
# ════════════════════════════════════════════════════════════════════════════


@main.command()
@click.argument("prompt")
@click.option("--model", "-m", default=None, help="Model (default: chat model from config)")
@click.option("--system", "-s", default=None, help="System prompt")
@click.option("--temperature", "-t", default=None, type=float, help="Sampling temperature")
@click.option("--top-p", default=None, type=float, help="Nucleus sampling cut-off")
@click.option("--num-predict", default=None, type=int, help="Maximum tokens to generate")
@click.option("--stream", is_flag=True, help="Print tokens as they arrive")
@click.option("--retries", default=None, type=click.IntRange(min=1), help="Attempts before giving up")
@click.pass_obj
@cli_errors
def generate(config: Config, prompt: str, model: str | None, system: str | None,
             temperature: float | None, top_p: float | None, num_predict: int | None,
             stream: bool, retries: int | None):
    """
    Generate text from a single prompt.

    Example:
        ollama-tour generate "Explain quantum computing simply" -t 0.2
    """
    client = make_client(config, model)
    options = _sampling_options(temperature, top_p, num_predict)

    if stream:
        for chunk in client.query_stream(prompt, system=system, **options):
            click.echo(chunk, nl=False)
        click.echo()
        return

    text = client.query(
        prompt,
        system=system,
        max_retries=retries or config.retry.max_retries,
        retry_delay=config.retry.retry_delay,
        **options,
    )
    click.echo(text)


def _chat_turn(client: LLMClient, conversation: Conversation, stream: bool) -> str:
    """Send the conversation, print the reply and record it."""
    if stream:
        parts = []
        for chunk in client.ollama.chat_conversation(conversation, stream=True):
            click.echo(chunk, nl=False)
            parts.append(chunk)
        click.echo()
        reply = "".join(parts)
        conversation.add_assistant(reply)
        return reply

    response = client.ollama.chat_conversation(conversation)
    click.echo(response.content.strip())
    return response.content


def _interactive_chat(client: LLMClient, conversation: Conversation, stream: bool):
    console.print(f"[bold blue]Chatting with {client.model}[/] [dim](type /help for commands)[/]")
    while True:
        try:
            line = click.prompt("you", prompt_suffix="> ", default="", show_default=False)
        except click.exceptions.Abort:
            # Ctrl+D / end of input
            click.echo()
            break

        line = line.strip()
        if not line:
            continue
        if line.lower() in ("exit", "quit", "/exit", "/quit"):
            break
        if line == "/help":
            click.echo(CHAT_HELP)
            continue
        if line == "/clear":
            conversation.clear()
            console.print("[dim]Conversation cleared.[/]")
            continue
        if line == "/history":
            if not conversation.messages:
                console.print("[dim]No messages yet.[/]")
            for message in conversation.to_messages():
                click.echo(f"[{message['role']}] {message['content']}")
            continue
        if line.startswith("/"):
            console.print(f"[yellow]Unknown command {escape(line)}[/] (type /help)", highlight=False)
            continue

        conversation.add_user(line)
        try:
            _chat_turn(client, conversation, stream)
        except OllamaError as e:
            # Keep the session alive; drop the unanswered message
            conversation.messages.pop()
            err_console.print(f"[bold red]Error:[/] {escape(str(e))}", highlight=False)


@main.command()
@click.argument("prompt", required=False)
@click.option("--model", "-m", default=None, help="Model (default: chat model from config)")
@click.option("--system", "-s", default=None, help="System prompt")
@click.option("--interactive", "-i", is_flag=True, help="Keep chatting until 'exit'")
@click.option("--stream", is_flag=True, help="Print replies as they arrive")
@click.pass_obj
@cli_errors
def chat(config: Config, prompt: str | None, model: str | None, system: str | None,
         interactive: bool, stream: bool):
    """
    Chat with a model.

    Example:
        ollama-tour chat "What are 3 must-see places in Norway?"
        ollama-tour chat -i --system "You are a helpful data science tutor."
    """
    if not prompt and not interactive:
        raise click.UsageError("Give a PROMPT or use --interactive")

    client = make_client(config, model)
    conversation = Conversation(system=system)

    if prompt:
        conversation.add_user(prompt)
        _chat_turn(client, conversation, stream)

    if interactive:
        _interactive_chat(client, conversation, stream)


# ════════════════════════════════════════════════════════════════════════════
# EMBEDDINGS
# ════════════════════════════════════════════════════════════════════════════


@main.command()
@click.argument("texts", nargs=-1, required=True)
@click.option("--model", "-m", default=None, help="Embedding model (default: from config)")
@click.option("--similarity", is_flag=True, help="Show the pairwise cosine-similarity matrix")
@click.option("--json", "as_json", is_flag=True, help="Print JSON")
@click.option("--dims", default=5, show_default=True, type=click.IntRange(min=0),
              help="Vector components to preview per text")
@click.pass_obj
@cli_errors
def embed(config: Config, texts: tuple[str, ...], model: str | None, similarity: bool,
          as_json: bool, dims: int):
    """
    Embed one or more texts.

    Example:
        ollama-tour embed "I love R" "I went to the zoo" --similarity
    """
    model = model or config.models.embed_model
    client = make_client(config)
    decimals = config.embeddings.decimals

    if similarity:
        matrix = client.similarity_matrix(list(texts), model=model)
        if as_json:
            click.echo(json.dumps(
                {"model": model, "texts": list(texts), **matrix.to_dict(decimals=decimals)},
                indent=2,
            ))
            return
        short = replace(matrix, labels=tuple(f"text{i}" for i in range(1, len(texts) + 1)))
        for i, text in enumerate(texts, 1):
            click.echo(f"text{i}: {text}")
        console.print(similarity_table(short, decimals=decimals, title=f"Cosine Similarity ({model})"))
        return

    vectors = client.embed_texts(list(texts), model=model)
    if as_json:
        click.echo(json.dumps({"model": model, "texts": list(texts), "embeddings": vectors}))
        return

    for text, vector in zip(texts, vectors):
        preview = ", ".join(f"{v:.4f}" for v in vector[:dims])
        more = ", ..." if len(vector) > dims else ""
        click.echo(f"{text}")
        click.echo(f"  dims={len(vector)} [{preview}{more}]")


# ════════════════════════════════════════════════════════════════════════════
# TOUR / REPORTS / VIEWER
# ════════════════════════════════════════════════════════════════════════════


def _print_section_result(result: SectionResult):
    if result.ok:
        console.print(f"  [green]✓[/] {result.title} [dim]({result.elapsed:.1f}s)[/]")
    else:
        console.print(f"  [red]✗[/] {result.title}: ", end="")
        console.print(result.error, markup=False, highlight=False)

    if result.key == "batch" and result.ok:
        console.print(batch_table({item.label: item.response for item in result.items}))


@main.command()
@click.option("--section", "sections", multiple=True, type=click.Choice(section_keys()),
              help="Run only this section (repeatable)")
@click.option("--output", "-o", default=None, type=click.Path(file_okay=False, path_type=Path),
              help="Directory for the saved report (default: data/reports)")
@click.option("--no-html", is_flag=True, help="Save JSON only")
@click.pass_obj
@cli_errors
def tour(config: Config, sections: tuple[str, ...], output: Path | None, no_html: bool):
    """
    Run the guided tour and save a report.

    Example:
        ollama-tour tour
        ollama-tour tour --section generate --section embeddings
    """
    client = make_client(config)
    console.print(f"[bold blue]Ollama tour against[/] {config.server.base_url}")

    report = run_tour(
        client,
        config,
        sections=list(sections) or None,
        on_section_start=lambda i, n, key, title: console.print(f"[dim][{i}/{n}][/] {title}..."),
        on_section_done=_print_section_result,
    )

    console.print(summary_table(report))
    paths = save_report(report, output or config.results_dir, html=not no_html)
    for kind, path in paths.items():
        console.print(f"[bold green]Saved {kind}:[/] {path}")


@main.command("report")
@click.argument("json_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--output", "-o", default=None, type=click.Path(dir_okay=False, path_type=Path),
              help="HTML file to write (default: next to the JSON)")
@click.pass_obj
@cli_errors
def report_cmd(config: Config, json_file: Path, output: Path | None):
    """
    Re-render a saved report as HTML.

    Example:
        ollama-tour report data/reports/ollama-tour-20250101-120000.json
    """
    report = load_report(json_file)
    output = output or json_file.with_suffix(".html")
    output.write_text(render_html(report), encoding="utf-8")
    console.print(summary_table(report))
    console.print(f"[bold green]Saved html:[/] {output}")


@main.command()
@click.option("--host", "-h", default=None, help="Host to bind to (default: 127.0.0.1)")
@click.option("--port", "-p", default=None, type=int, help="Port to bind to (default: 5000)")
@click.option("--results-dir", default=None, type=click.Path(file_okay=False, path_type=Path),
              help="Directory with saved reports (default: data/reports)")
@click.pass_obj
def serve(config: Config, host: str | None, port: int | None, results_dir: Path | None):
    """
    Launch the web viewer for browsing saved reports.

    Example:
        ollama-tour serve --port 8080
    """
    from .viewer import create_app

    results_dir = results_dir or config.results_dir
    app = create_app(results_dir)

    # Use provided values or fall back to config
    host = host or config.viewer.host
    port = port or config.viewer.port

    console.print(f"[bold green]Starting viewer at http://{host}:{port}[/]")
    console.print(f"[dim]Reports from {Path(results_dir).resolve()}. Press Ctrl+C to stop[/]")

    app.run(host=host, port=port, debug=config.viewer.debug)


if __name__ == "__main__":
    main()
