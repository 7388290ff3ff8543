"""
Tour runner.

Runs the selected sections in order and gathers their results into a
TourReport. A section that raises is recorded as failed with its error
text, and the tour moves on to the next one.
"""

import logging
import time
from datetime import datetime
from typing import Callable, Optional, Sequence

from ..config import Config
from ..llm import LLMClient
from ..models import SectionResult, SectionStatus, TourReport
from .sections import SECTIONS

logger = logging.getLogger(__name__)


def resolve_sections(sections: Optional[Sequence[str]] = None) -> list[str]:
    """
    Validate section keys and return them in tour order.

    None or an empty sequence selects every section. Duplicates are dropped.

    Raises:
        ValueError: If a key is not a known section.
    """
    if not sections:
        return list(SECTIONS)
    unknown = [key for key in sections if key not in SECTIONS]
    if unknown:
        raise ValueError(
            f"Unknown tour section(s): {', '.join(unknown)}. "
            f"Available: {', '.join(SECTIONS)}"
        )
    wanted = set(sections)
    return [key for key in SECTIONS if key in wanted]


def run_section(client: LLMClient, config: Config, key: str) -> SectionResult:
    """Run one section, turning any exception into a failed SectionResult."""
    entry = SECTIONS[key]
    started = time.perf_counter()
    try:
        result = entry.run(client, config)
    except Exception as e:
        logger.error(f"Section '{key}' failed: {e}")
        result = SectionResult(
            key=key,
            title=entry.title,
            status=SectionStatus.FAILED,
            error=str(e) or type(e).__name__,
        )
    result.elapsed = time.perf_counter() - started
    return result


def run_tour(
    client: LLMClient,
    config: Config,
    sections: Optional[Sequence[str]] = None,
    on_section_start: Optional[Callable[[int, int, str, str], None]] = None,
    on_section_done: Optional[Callable[[SectionResult], None]] = None,
) -> TourReport:
    """
    Run the tour and return its report.

    Parameters:
    ----------
    client : LLMClient
        Client used by every section.
    config : Config
        Models, prompts, retry settings, texts and topics.
    sections : list[str], optional
        Section keys to run; None runs all twelve. Always run in tour order.
    on_section_start : callable, optional
        Called as ``(index, total, key, title)`` before each section.
    on_section_done : callable, optional
        Called with each SectionResult as soon as it is available.

    Example:
    -------
    >>> report = run_tour(LLMClient(), Config(), sections=["generate", "embeddings"])
    >>> [s.status.value for s in report.sections]
    ['ok', 'ok']
    """
    keys = resolve_sections(sections)
    report = TourReport(title=config.report_title, base_url=client.ollama.base_url)
    logger.info(f"Starting tour with {len(keys)} section(s) against {report.base_url}")

    for i, key in enumerate(keys, 1):
        title = SECTIONS[key].title
        logger.info(f"[{i}/{len(keys)}] {title}")
        if on_section_start:
            on_section_start(i, len(keys), key, title)

        result = run_section(client, config, key)
        report.sections.append(result)

        if on_section_done:
            on_section_done(result)

    report.finished_at = datetime.now()
    logger.info(
        f"Tour finished: {len(report.passed)} passed, {len(report.failed)} failed "
        f"in {report.duration:.1f}s"
    )
    return report
