"""
Web Viewer - Flask Application.

Browse saved tour reports. Runs locally only.

Routes:
    /                       List of saved reports
    /report/<name>          Rendered HTML report
    /api/reports            JSON list of saved reports
    /api/report/<name>      JSON for one report

``<name>`` is a report slug (the JSON filename without ``.json``). Names
that resolve outside the results directory return 404.
"""

import logging
from pathlib import Path

from flask import Flask, abort, jsonify, render_template

from ..models import TourReport
from ..report import list_reports, load_report, render_html

logger = logging.getLogger(__name__)


def create_app(results_dir: Path | str | None = None) -> Flask:
    """
    Create and configure the Flask application.

    Args:
        results_dir: Directory holding saved reports (default data/reports/).

    Returns:
        Configured Flask app.
    """
    app = Flask(__name__)
    app.config["RESULTS_DIR"] = Path(results_dir or "data/reports").resolve()

    # ── Helper Functions ──

    def _resolve_report(name: str) -> Path | None:
        """Path of ``<name>.json`` inside the results dir, or None."""
        results = app.config["RESULTS_DIR"]
        candidate = (results / f"{name}.json").resolve()
        if candidate.parent != results:
            logger.warning(f"Rejected report name outside results dir: {name!r}")
            return None
        if not candidate.is_file():
            return None
        return candidate

    def _load(name: str) -> TourReport:
        path = _resolve_report(name)
        if path is None:
            abort(404)
        try:
            return load_report(path)
        except ValueError as e:
            logger.warning(f"Error loading report {name}: {e}")
            abort(404)

    def _summary(path: Path, report: TourReport) -> dict:
        return {
            "name": path.stem,
            "title": report.title,
            "base_url": report.base_url,
            "started_at": report.started_at.isoformat(),
            "sections": len(report.sections),
            "passed": len(report.passed),
            "failed": len(report.failed),
        }

    # ── Routes ──

    @app.route("/")
    def index():
        reports = [_summary(path, r) for path, r in list_reports(app.config["RESULTS_DIR"])]
        return render_template(
            "index.html",
            reports=reports,
            results_dir=str(app.config["RESULTS_DIR"]),
        )

    @app.route("/report/<name>")
    def report_page(name: str):
        return render_html(_load(name))

    @app.route("/api/reports")
    def api_reports():
        return jsonify([_summary(path, r) for path, r in list_reports(app.config["RESULTS_DIR"])])

    @app.route("/api/report/<name>")
    def api_report(name: str):
        return jsonify(_load(name).to_dict())

    return app
