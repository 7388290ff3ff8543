"""Saving and loading tour reports as JSON (plus rendered HTML)."""

import logging
from pathlib import Path

from ..models import TourReport
from .html import render_html

logger = logging.getLogger(__name__)


def _free_stem(results_dir: Path, slug: str) -> str:
    stem, n = slug, 1
    while (results_dir / f"{stem}.json").exists() or (results_dir / f"{stem}.html").exists():
        n += 1
        stem = f"{slug}-{n}"
    return stem


def save_report(report: TourReport, results_dir: Path | str, html: bool = True) -> dict[str, Path]:
    """
    Write ``<slug>.json`` and, unless ``html`` is False, ``<slug>.html``.

    An existing report with the same slug is never overwritten; the new one
    gets a ``-2``, ``-3``, ... suffix instead.

    Returns:
        {"json": path, "html": path} for the files written.
    """
    results_dir = Path(results_dir)
    results_dir.mkdir(parents=True, exist_ok=True)

    stem = _free_stem(results_dir, report.slug)
    paths = {"json": results_dir / f"{stem}.json"}
    paths["json"].write_text(report.to_json(), encoding="utf-8")
    logger.info(f"Report saved to {paths['json']}")

    if html:
        paths["html"] = results_dir / f"{stem}.html"
        paths["html"].write_text(render_html(report), encoding="utf-8")
        logger.info(f"HTML report saved to {paths['html']}")

    return paths


def load_report(path: Path | str) -> TourReport:
    """
    Read a report written by save_report().

    Raises:
        FileNotFoundError: If the file doesn't exist.
        ValueError: If it isn't a valid report.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Report not found: {path}")
    try:
        return TourReport.from_json(path.read_text(encoding="utf-8"))
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        raise ValueError(f"Invalid report file {path}: {e}") from e


def list_reports(results_dir: Path | str) -> list[tuple[Path, TourReport]]:
    """(path, report) for each saved report in ``results_dir``, newest first.

    Unreadable files are skipped.
    """
    results_dir = Path(results_dir)
    if not results_dir.is_dir():
        return []

    reports = []
    for path in sorted(results_dir.glob("*.json")):
        try:
            reports.append((path, load_report(path)))
        except ValueError as e:
            logger.warning(f"Skipping {path.name}: {e}")
    reports.sort(key=lambda item: item[1].started_at, reverse=True)
    return reports
