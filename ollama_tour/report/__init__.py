"""Report rendering: HTML pages, terminal tables and JSON storage."""

from .html import render_html, response_card
from .storage import list_reports, load_report, save_report
from .tables import batch_table, models_table, similarity_table, summary_table

__all__ = [
    "batch_table",
    "list_reports",
    "load_report",
    "models_table",
    "render_html",
    "response_card",
    "save_report",
    "similarity_table",
    "summary_table",
]
