"""
Terminal tables (rich) for models, similarity matrices, batch results and
the tour summary.
"""

from typing import Mapping, Sequence

from rich.table import Table

from ..models import TourReport
from ..ollama_client import ModelInfo
from ..similarity import SimilarityMatrix


def models_table(models: Sequence[ModelInfo], title: str = "Available Models") -> Table:
    table = Table(title=title)
    table.add_column("Model", style="bold cyan")
    table.add_column("Family")
    table.add_column("Parameters", justify="right")
    table.add_column("Quantization")
    table.add_column("Size", justify="right")
    table.add_column("Modified", style="dim")

    for m in models:
        table.add_row(
            m.name,
            m.family or "-",
            m.parameter_size or "-",
            m.quantization_level or "-",
            f"{m.size_gb:.2f} GB",
            m.modified_at[:19] if m.modified_at else "-",
        )
    return table


def _score_style(value: float) -> str:
    if value >= 0.7:
        return "bold green"
    if value >= 0.4:
        return "yellow"
    return "red"


def similarity_table(
    matrix: SimilarityMatrix,
    decimals: int = 3,
    title: str = "Cosine Similarity",
) -> Table:
    """Full n x n matrix; diagonal dimmed, scores coloured by strength."""
    table = Table(title=title)
    table.add_column("", style="bold")
    for i in range(len(matrix)):
        table.add_column(matrix.label(i), justify="right")

    for i in range(len(matrix)):
        cells = []
        for j in range(len(matrix)):
            value = matrix[i, j]
            style = "dim" if i == j else _score_style(value)
            cells.append(f"[{style}]{value:.{decimals}f}[/]")
        table.add_row(matrix.label(i), *cells)
    return table


def batch_table(results: Mapping[str, str], title: str = "Batch Results") -> Table:
    table = Table(title=title, show_lines=True)
    table.add_column("Topic", style="bold cyan", no_wrap=True)
    table.add_column("Response")
    for topic, text in results.items():
        table.add_row(topic, text)
    return table


def summary_table(report: TourReport) -> Table:
    """One row per section: status, model and elapsed time."""
    table = Table(title=f"{report.title} ({len(report.passed)}/{len(report.sections)} passed)")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Section", style="bold")
    table.add_column("Model")
    table.add_column("Status")
    table.add_column("Time", justify="right")
    table.add_column("Error", style="red")

    for i, s in enumerate(report.sections, 1):
        status = "[green]✓ ok[/]" if s.ok else "[red]✗ failed[/]"
        table.add_row(
            str(i),
            s.title,
            s.model or "-",
            status,
            f"{s.elapsed:.1f}s",
            (s.error or "")[:80],
        )
    return table
