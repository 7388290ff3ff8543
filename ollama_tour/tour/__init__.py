"""The guided tour of a local Ollama server."""

from .runner import resolve_sections, run_section, run_tour
from .sections import SECTIONS, Section, section_keys

__all__ = [
    "SECTIONS",
    "Section",
    "resolve_sections",
    "run_section",
    "run_tour",
    "section_keys",
]
