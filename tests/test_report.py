"""
Tests for HTML rendering, terminal tables and report storage.

Run with: pytest tests/test_report.py
"""

import json
from datetime import datetime

import pytest
from rich.console import Console

from ollama_tour.models import ResponseItem, SectionResult, SectionStatus, TourReport
from ollama_tour.ollama_client import ModelInfo
from ollama_tour.report import (
    batch_table,
    list_reports,
    load_report,
    models_table,
    render_html,
    response_card,
    save_report,
    similarity_table,
    summary_table,
)
from ollama_tour.similarity import SimilarityScorer


@pytest.fixture
def report() -> TourReport:
    return TourReport(
        title="Ollama Tour",
        base_url="http://localhost:11434",
        started_at=datetime(2025, 1, 10, 12, 0, 0),
        finished_at=datetime(2025, 1, 10, 12, 0, 42),
        sections=[
            SectionResult(
                key="generate", title="Simple text generation", model="llama3.2:latest",
                prompt="Explain <quantum> computing",
                response="Line one\nLine two <b>not bold</b>",
                metadata={"model": "llama3.2:latest", "created_at": "2025-01-10T12:00:01Z",
                          "prompt_tokens": 12, "completion_tokens": 34},
                elapsed=2.5,
            ),
            SectionResult(
                key="embeddings", title="Embeddings and similarity", model="nomic-embed-text:latest",
                similarity={"labels": ["text1", "text2"], "values": [[1.0, 0.532], [0.532, 1.0]]},
                highlights=[{"pair": "1-2", "first": "cats", "second": "dogs", "score": 0.532}],
                data={"texts": ["cats", "dogs"], "dimension": 768},
            ),
            SectionResult(
                key="compare", title="Multi-model comparison", prompt="ML vs AI?",
                items=[
                    ResponseItem(label="llama3.2:latest", model="llama3.2:latest", response="llama says", elapsed=1.0),
                    ResponseItem(label="deepseek-coder:6.7b", model="deepseek-coder:6.7b",
                                 error="Model not found", elapsed=0.1),
                ],
            ),
            SectionResult(
                key="code", title="Code generation", status=SectionStatus.FAILED,
                error="Could not connect to Ollama",
            ),
        ],
    )


def _render(renderable) -> str:
    console = Console(width=200, record=True)
    console.print(renderable)
    return console.export_text()


class TestRenderHtml:
    """Tests for the standalone HTML report."""

    def test_structure(self, report):
        html = render_html(report)
        assert html.startswith("<!DOCTYPE html>") or "<!DOCTYPE html>" in html
        assert "<style>" in html
        assert "Ollama Tour" in html
        assert "http://localhost:11434" in html
        for section in report.sections:
            assert f'id="{section.key}"' in html

    def test_response_escaped(self, report):
        html = render_html(report)
        assert "&lt;b&gt;not bold&lt;/b&gt;" in html
        assert "<b>not bold</b>" not in html
        assert "Explain &lt;quantum&gt; computing" in html

    def test_line_breaks_preserved(self, report):
        html = render_html(report)
        assert "Line one\nLine two" in html
        assert "white-space: pre-wrap" in html

    def test_metadata(self, report):
        html = render_html(report)
        assert "2025-01-10T12:00:01Z" in html
        assert ">34<" in html

    def test_similarity_and_comparison_tables(self, report):
        html = render_html(report)
        assert "0.532" in html
        assert "1-2" in html
        assert "llama says" in html
        assert "Model not found" in html

    def test_failed_section(self, report):
        html = render_html(report)
        assert "status-failed" in html
        assert "Could not connect to Ollama" in html


class TestResponseCard:
    """Tests for single-response cards."""

    def test_generate_payload(self):
        html = response_card("Simple generation", {
            "model": "llama3.2:latest",
            "created_at": "2025-01-10T12:00:00Z",
            "response": "Quantum computers use qubits.",
            "eval_count": 7,
        })
        assert "Simple generation" in html
        assert "Quantum computers use qubits." in html
        assert "llama3.2:latest" in html

    def test_chat_payload(self):
        html = response_card("Chat", {
            "model": "llama3.2:latest",
            "message": {"role": "assistant", "content": "Visit Geirangerfjord & Lofoten"},
        })
        assert "Geirangerfjord &amp; Lofoten" in html
        assert "assistant" in html

    def test_unknown_payload(self):
        with pytest.raises(ValueError):
            response_card("Bad", {"embeddings": [[0.1]]})


class TestTables:
    """Tests for rich terminal tables."""

    def test_models_table(self):
        text = _render(models_table([
            ModelInfo(name="llama3.2:latest", size=2_000_000_000, family="llama", parameter_size="3.2B"),
        ]))
        assert "llama3.2:latest" in text
        assert "2.00 GB" in text

    def test_similarity_table(self):
        matrix = SimilarityScorer().score([[1, 0], [1, 1]])
        text = _render(similarity_table(matrix))
        assert "text1" in text
        assert "0.707" in text
        assert "1.000" in text

    def test_batch_table(self):
        text = _render(batch_table({"Climate change": "It is warming."}))
        assert "Climate change" in text
        assert "It is warming." in text

    def test_summary_table(self, report):
        text = _render(summary_table(report))
        assert "3/4 passed" in text
        assert "failed" in text
        assert "Simple text generation" in text


class TestStorage:
    """Tests for saving and loading reports."""

    def test_save_and_load(self, report, tmp_path):
        paths = save_report(report, tmp_path / "reports")

        assert paths["json"].name == "ollama-tour-20250110-120000.json"
        assert paths["html"].name == "ollama-tour-20250110-120000.html"
        assert "<!DOCTYPE html>" in paths["html"].read_text()

        loaded = load_report(paths["json"])
        assert loaded.to_dict() == report.to_dict()

    def test_save_json_only(self, report, tmp_path):
        paths = save_report(report, tmp_path, html=False)
        assert set(paths) == {"json"}
        assert not (tmp_path / f"{report.slug}.html").exists()

    def test_load_missing(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_report(tmp_path / "nope.json")

    def test_load_invalid(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text(json.dumps({"title": "no timestamps"}))
        with pytest.raises(ValueError):
            load_report(path)

    def test_list_reports_skips_bad_files(self, report, tmp_path):
        save_report(report, tmp_path)
        (tmp_path / "broken.json").write_text("{not json")
        listed = list_reports(tmp_path)
        assert [path.stem for path, _ in listed] == [report.slug]

    def test_load_non_object_json(self, tmp_path):
        path = tmp_path / "embeddings.json"
        path.write_text("[[0.1, 0.2]]")
        with pytest.raises(ValueError, match="JSON object"):
            load_report(path)

    def test_list_reports_skips_non_object_json(self, report, tmp_path):
        save_report(report, tmp_path)
        (tmp_path / "embeddings.json").write_text("[[0.1, 0.2]]")
        assert [path.stem for path, _ in list_reports(tmp_path)] == [report.slug]

    def test_same_slug_does_not_overwrite(self, report, tmp_path):
        first = save_report(report, tmp_path)
        second = save_report(report, tmp_path)

        assert first["json"].name == "ollama-tour-20250110-120000.json"
        assert second["json"].name == "ollama-tour-20250110-120000-2.json"
        assert second["html"].name == "ollama-tour-20250110-120000-2.html"
        assert len(list_reports(tmp_path)) == 2

    def test_list_reports_missing_dir(self, tmp_path):
        assert list_reports(tmp_path / "nothing") == []
