"""
Tour result data model.

Stores what each tour section sent and received: prompts, response text,
per-call metadata (model, created_at, token counts), sub-results for
sections that make several calls, and the similarity matrix for the
embeddings section. A TourReport groups the sections of one run.
"""

import json
import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class SectionStatus(str, Enum):
    """Outcome of a single tour section."""
    OK = "ok"
    FAILED = "failed"

    @property
    def color(self) -> str:
        """Color used in terminal tables and the HTML report."""
        return {"ok": "green", "failed": "red"}.get(self.value, "gray")

    @property
    def emoji(self) -> str:
        return {"ok": "🟢", "failed": "🔴"}.get(self.value, "⚪")


@dataclass
class ResponseItem:
    """One call inside a section (a code prompt, a preset, a model, a topic)."""
    label: str
    prompt: str = ""
    response: str = ""
    model: str = ""
    error: Optional[str] = None
    elapsed: Optional[float] = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict:
        return {
            "label": self.label,
            "prompt": self.prompt,
            "response": self.response,
            "model": self.model,
            "error": self.error,
            "elapsed": self.elapsed,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ResponseItem":
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


@dataclass
class SectionResult:
    """Everything one tour section produced."""
    key: str
    title: str
    status: SectionStatus = SectionStatus.OK

    # ── Primary exchange ──
    model: str = ""
    system: str = ""
    prompt: str = ""
    response: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)   # created_at, token counts, role

    # ── Multi-call sections (code, creative, compare, batch) ──
    items: list[ResponseItem] = field(default_factory=list)

    # ── Embeddings ──
    similarity: Optional[dict] = None          # {"labels": [...], "values": [[...]]}
    highlights: list[dict] = field(default_factory=list)   # [{"pair": "1-2", "score": 0.53}]

    # ── Free-form section data (model table, parsed JSON, server info) ──
    data: dict[str, Any] = field(default_factory=dict)

    error: Optional[str] = None
    elapsed: float = 0.0

    @property
    def ok(self) -> bool:
        return self.status == SectionStatus.OK

    def to_dict(self) -> dict:
        """Serialize to dictionary for JSON storage."""
        return {
            "key": self.key,
            "title": self.title,
            "status": self.status.value,
            "model": self.model,
            "system": self.system,
            "prompt": self.prompt,
            "response": self.response,
            "metadata": self.metadata,
            "items": [item.to_dict() for item in self.items],
            "similarity": self.similarity,
            "highlights": self.highlights,
            "data": self.data,
            "error": self.error,
            "elapsed": self.elapsed,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SectionResult":
        """Deserialize from dictionary."""
        return cls(
            key=data["key"],
            title=data.get("title", data["key"]),
            status=SectionStatus(data.get("status", "ok")),
            model=data.get("model", ""),
            system=data.get("system", ""),
            prompt=data.get("prompt", ""),
            response=data.get("response", ""),
            metadata=data.get("metadata", {}),
            items=[ResponseItem.from_dict(i) for i in data.get("items", [])],
            similarity=data.get("similarity"),
            highlights=data.get("highlights", []),
            data=data.get("data", {}),
            error=data.get("error"),
            elapsed=data.get("elapsed", 0.0),
        )


@dataclass
class TourReport:
    """The results of one tour run."""
    title: str
    base_url: str
    started_at: datetime = field(default_factory=datetime.now)
    finished_at: Optional[datetime] = None
    sections: list[SectionResult] = field(default_factory=list)

    @property
    def passed(self) -> list[SectionResult]:
        return [s for s in self.sections if s.ok]

    @property
    def failed(self) -> list[SectionResult]:
        return [s for s in self.sections if not s.ok]

    @property
    def duration(self) -> Optional[float]:
        if self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()

    @property
    def slug(self) -> str:
        """File-safe name: <title>-<YYYYmmdd-HHMMSS>."""
        base = re.sub(r"[^a-z0-9]+", "-", self.title.lower()).strip("-") or "report"
        return f"{base}-{self.started_at.strftime('%Y%m%d-%H%M%S')}"

    def section(self, key: str) -> Optional[SectionResult]:
        for s in self.sections:
            if s.key == key:
                return s
        return None

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "base_url": self.base_url,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "sections": [s.to_dict() for s in self.sections],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TourReport":
        if not isinstance(data, dict):
            raise ValueError(f"Expected a JSON object, got {type(data).__name__}")
        finished = data.get("finished_at")
        return cls(
            title=data.get("title", "Ollama Tour"),
            base_url=data.get("base_url", ""),
            started_at=datetime.fromisoformat(data["started_at"]),
            finished_at=datetime.fromisoformat(finished) if finished else None,
            sections=[SectionResult.from_dict(s) for s in data.get("sections", [])],
        )

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)

    @classmethod
    def from_json(cls, text: str) -> "TourReport":
        return cls.from_dict(json.loads(text))
