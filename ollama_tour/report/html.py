"""
HTML rendering for tour reports.

Produces a single self-contained page (inline CSS, no external assets) from
a TourReport, and styled cards for individual /api/generate or /api/chat
response bodies. Templates live in ``report/templates`` and are rendered
with Jinja2 with autoescaping on, so model output is always escaped.
"""

from datetime import datetime
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, select_autoescape

from ..models import TourReport

TEMPLATES_DIR = Path(__file__).parent / "templates"


def heat_filter(value) -> str:
    """Background colour for a similarity score: red at -1, white at 0, green at 1."""
    try:
        v = max(-1.0, min(1.0, float(value)))
    except (TypeError, ValueError):
        return "transparent"
    if v >= 0:
        r, g, b = int(255 - 181 * v), int(255 - 33 * v), int(255 - 127 * v)
    else:
        r, g, b = int(255 + 7 * v), int(255 - 142 * -v), int(255 - 142 * -v)
    return f"rgb({r}, {g}, {b})"


def nanos_filter(value) -> str:
    """Format a nanosecond duration as seconds."""
    try:
        return f"{int(value) / 1e9:.2f}s"
    except (TypeError, ValueError):
        return str(value)


def _environment() -> Environment:
    env = Environment(
        loader=FileSystemLoader(str(TEMPLATES_DIR)),
        autoescape=select_autoescape(["html"]),
        trim_blocks=True,
        lstrip_blocks=True,
    )
    env.filters["heat"] = heat_filter
    env.filters["nanos"] = nanos_filter
    return env


_env = _environment()


def render_html(report: TourReport) -> str:
    """Render a TourReport as a standalone HTML page."""
    template = _env.get_template("report.html")
    return template.render(
        report=report,
        generated_at=datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
    )


def payload_text(payload: dict) -> str:
    """The generated text of a generate ("response") or chat ("message") body."""
    if "response" in payload:
        return payload.get("response") or ""
    message = payload.get("message")
    if isinstance(message, dict):
        return message.get("content") or ""
    raise ValueError(
        "Payload is neither a generate response (no 'response' field) "
        "nor a chat response (no 'message' object)"
    )


def response_card(title: str, payload: dict) -> str:
    """
    Format one JSON response body as a styled HTML card.

    Args:
        title: Card heading.
        payload: A decoded /api/generate or /api/chat response body.

    Returns:
        A standalone HTML document containing the card.

    Raises:
        ValueError: If the payload has neither shape.
    """
    text = payload_text(payload)
    message = payload.get("message") if isinstance(payload.get("message"), dict) else {}
    meta = {
        "model": payload.get("model", ""),
        "created_at": payload.get("created_at", ""),
        "role": message.get("role", ""),
        "prompt_tokens": payload.get("prompt_eval_count"),
        "completion_tokens": payload.get("eval_count"),
        "total_duration": payload.get("total_duration"),
        "done_reason": payload.get("done_reason"),
    }
    return _env.get_template("card.html").render(title=title, text=text, meta=meta)
