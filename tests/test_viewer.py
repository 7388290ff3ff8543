"""
Tests for the Flask report viewer.

Run with: pytest tests/test_viewer.py
"""

from datetime import datetime

import pytest

from ollama_tour.models import SectionResult, TourReport
from ollama_tour.report import save_report
from ollama_tour.viewer import create_app


@pytest.fixture
def results_dir(tmp_path):
    report = TourReport(
        title="Ollama Tour",
        base_url="http://localhost:11434",
        started_at=datetime(2025, 1, 10, 12, 0, 0),
        finished_at=datetime(2025, 1, 10, 12, 0, 30),
        sections=[SectionResult(key="generate", title="Simple text generation", response="Hello from llama")],
    )
    save_report(report, tmp_path)
    # A file next to the results dir that must never be served
    (tmp_path.parent / "secret.json").write_text('{"password": "hunter2"}')
    return tmp_path


@pytest.fixture
def client(results_dir):
    app = create_app(results_dir)
    app.config["TESTING"] = True
    return app.test_client()


NAME = "ollama-tour-20250110-120000"


class TestViewer:
    """Tests for viewer routes."""

    def test_index_lists_reports(self, client):
        resp = client.get("/")
        assert resp.status_code == 200
        assert b"Ollama Tour" in resp.data
        assert f"/report/{NAME}".encode() in resp.data

    def test_report_page(self, client):
        resp = client.get(f"/report/{NAME}")
        assert resp.status_code == 200
        assert b"Hello from llama" in resp.data

    def test_api_reports(self, client):
        data = client.get("/api/reports").get_json()
        assert len(data) == 1
        assert data[0]["name"] == NAME
        assert data[0]["passed"] == 1

    def test_api_report(self, client):
        data = client.get(f"/api/report/{NAME}").get_json()
        assert data["title"] == "Ollama Tour"
        assert data["sections"][0]["response"] == "Hello from llama"

    def test_missing_report(self, client):
        assert client.get("/report/nope").status_code == 404
        assert client.get("/api/report/nope").status_code == 404

    def test_path_traversal(self, client):
        assert client.get("/api/report/..%2Fsecret").status_code == 404
        assert client.get("/report/..%2Fsecret").status_code == 404
        assert client.get("/api/report/..").status_code == 404

    def test_stray_json_file_ignored(self, client, results_dir):
        (results_dir / "embeddings.json").write_text("[[0.1, 0.2]]")
        resp = client.get("/")
        assert resp.status_code == 200
        assert f"/report/{NAME}".encode() in resp.data
        assert len(client.get("/api/reports").get_json()) == 1
        assert client.get("/api/report/embeddings").status_code == 404

    def test_empty_dir(self, tmp_path):
        app = create_app(tmp_path / "empty")
        resp = app.test_client().get("/")
        assert resp.status_code == 200
        assert b"No reports yet" in resp.data
