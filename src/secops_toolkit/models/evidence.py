"""
Data models for host evidence collection.

An ``EvidenceBundle`` holds one ``ArtifactRecord`` per collected category
together with the status of every category that was attempted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

from dateutil import parser as date_parser
from pydantic import BaseModel, Field

from secops_toolkit.errors import PartialCollectionFailure


class CategoryStatus(str, Enum):
    """Collection status of one artifact category."""

    COLLECTED = "collected"
    FAILED = "failed"
    SKIPPED = "skipped"


class ArtifactRecord(BaseModel):
    """Rows collected for one artifact category."""

    category: str = Field(description="Category label (e.g. processes, services)")
    rows: list[dict[str, Any]] = Field(default_factory=list)
    collected_at: datetime

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "category": self.category,
            "collected_at": self.collected_at.isoformat(),
            "row_count": self.row_count,
            "rows": self.rows,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ArtifactRecord":
        """Rebuild a record from its serialized form."""
        return cls(
            category=data["category"],
            rows=data.get("rows", []),
            collected_at=date_parser.parse(data["collected_at"]),
        )


@dataclass
class CategoryResult:
    """Outcome of attempting one category."""

    category: str
    status: CategoryStatus
    output_file: Path | None = None
    row_count: int = 0
    error: PartialCollectionFailure | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category,
            "status": self.status.value,
            "file": self.output_file.name if self.output_file else None,
            "row_count": self.row_count,
            "error": str(self.error.cause) if self.error else None,
        }


@dataclass
class EvidenceBundle:
    """
    Triage package for a single host.

    Created once per run. Records are appended as categories complete and
    the bundle is finalized by writing its manifest.
    """

    host_id: str
    collected_at: datetime
    output_dir: Path
    records: list[ArtifactRecord] = field(default_factory=list)
    results: list[CategoryResult] = field(default_factory=list)
    manifest_path: Path | None = None

    @property
    def attempted(self) -> list[CategoryResult]:
        return [r for r in self.results if r.status != CategoryStatus.SKIPPED]

    @property
    def collected(self) -> list[CategoryResult]:
        return [r for r in self.results if r.status == CategoryStatus.COLLECTED]

    @property
    def failed(self) -> list[CategoryResult]:
        return [r for r in self.results if r.status == CategoryStatus.FAILED]

    @property
    def skipped(self) -> list[CategoryResult]:
        return [r for r in self.results if r.status == CategoryStatus.SKIPPED]

    @property
    def failures(self) -> list[PartialCollectionFailure]:
        return [r.error for r in self.failed if r.error]

    def manifest(self) -> dict[str, Any]:
        """Summary of the run, written last."""
        return {
            "host": self.host_id,
            "collected_at": self.collected_at.isoformat(),
            "output_dir": str(self.output_dir),
            "categories_attempted": len(self.attempted),
            "categories_collected": len(self.collected),
            "categories_failed": len(self.failed),
            "categories_skipped": len(self.skipped),
            "categories": [r.to_dict() for r in self.results],
        }
